import smtplib
from email.message import EmailMessage
from html import escape
from typing import Optional

import structlog

from ..config import settings


log = structlog.get_logger()


def smtp_configured() -> bool:
    return bool(settings.smtp_host and settings.mail_from)


def send_email(to: str, subject: str, text: str, html: Optional[str] = None) -> bool:
    """Send through SMTP. Returns False when SMTP is not configured."""
    if not smtp_configured():
        log.info("email_skipped_smtp_not_configured", to=to, subject=subject)
        return False
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.mail_from
    msg["To"] = to
    msg.set_content(text)
    if html:
        msg.add_alternative(html, subtype="html")
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as s:
        if settings.smtp_tls:
            s.starttls()
        if settings.smtp_username and settings.smtp_password:
            s.login(settings.smtp_username, settings.smtp_password)
        s.send_message(msg)
    return True


def invitation_link(token: str, origin: Optional[str] = None) -> str:
    base = (origin or settings.public_base_url).rstrip("/")
    return f"{base}/auth?invitation={token}"


def invitation_message(role: str, link: str, ttl_days: int) -> tuple:
    subject = f"You're invited to {settings.app_name}"
    text = (
        f"You've been invited to join {settings.app_name} with the role of {role}.\n\n"
        f"Accept your invitation and create your account:\n{link}\n\n"
        f"This invitation will expire in {ttl_days} days. "
        "If you didn't expect this invitation, you can safely ignore this email."
    )
    safe_link = escape(link, quote=True)
    html = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h1 style="color: #333;">Welcome to {escape(settings.app_name)}</h1>
  <p>You've been invited to join {escape(settings.app_name)} with the role of <strong>{escape(role)}</strong>.</p>
  <p>Click the button below to accept your invitation and create your account:</p>
  <div style="text-align: center; margin: 30px 0;">
    <a href="{safe_link}" style="background-color: #0066cc; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block;">Accept Invitation</a>
  </div>
  <p style="color: #666; font-size: 14px;">This invitation will expire in {ttl_days} days. If you didn't expect this invitation, you can safely ignore this email.</p>
  <p style="color: #666; font-size: 14px;">Or copy and paste this link into your browser:<br><a href="{safe_link}" style="color: #0066cc;">{safe_link}</a></p>
</div>
"""
    return subject, text, html


def send_invitation_email(email: str, role: str, token: str, origin: Optional[str] = None) -> bool:
    """Invitation mail; delivery failures are logged, never raised."""
    link = invitation_link(token, origin)
    subject, text, html = invitation_message(role, link, settings.invitation_ttl_days)
    try:
        return send_email(email, subject, text, html)
    except (smtplib.SMTPException, OSError) as e:
        log.warning("invitation_email_failed", email=email, error=str(e))
        return False
