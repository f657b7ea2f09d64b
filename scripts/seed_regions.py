"""
Seed the default service regions (OC, LA, UCI, KP, RIV).
Existing codes are left untouched, so the script can be run repeatedly.
"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from fleetcommand.db import Base, engine, SessionLocal
from fleetcommand.models import models  # noqa: F401
from fleetcommand.routes.regions import DEFAULT_REGIONS, seed_default_regions


def main():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        added = seed_default_regions(db)
        print(f"Regions added: {added} (defaults: {', '.join(code for code, _ in DEFAULT_REGIONS)})")
    finally:
        db.close()


if __name__ == "__main__":
    main()
