from fastapi import APIRouter

from ..config import client_config


router = APIRouter(tags=["settings"])


@router.get("/config")
def get_client_config():
    return client_config()
