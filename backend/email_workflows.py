import logging
import os
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from auth import generate_token, get_password_hash, hash_token
from email_bulk import build_entry_context, derive_text_from_html, render_email_template
from email_templates import build_reset_email, build_welcome_email
from emailer import send_email
from models import EmailLog, Entry, User
from time_utils import ensure_timezone, now_tz

logger = logging.getLogger(__name__)

RESET_TOKEN_TTL_SECONDS = 30 * 60
WELCOME_TOKEN_TTL_SECONDS = 7 * 24 * 60 * 60


def _now() -> datetime:
    return now_tz()


def _build_url(path: str, token: str) -> str:
    base = os.environ.get("APP_URL", "").rstrip("/")
    return f"{base}{path}?token={token}"


def _store_reset_token(db: Session, user: User, ttl_seconds: int) -> str:
    token = generate_token()
    user.password_reset_token_hash = hash_token(token)
    user.password_reset_expires_at = _now() + timedelta(seconds=ttl_seconds)
    user.password_reset_sent_at = _now()
    db.commit()
    return token


def issue_password_reset(db: Session, user: Optional[User]) -> Tuple[bool, str]:
    if not user or not user.email:
        return False, "missing_email"

    token = _store_reset_token(db, user, RESET_TOKEN_TTL_SECONDS)
    subject, html, text = build_reset_email(_build_url("/auth/update-password", token), validity_minutes=30)
    send_email(user.email, subject, html, text)
    return True, "sent"


def reset_password_with_token(db: Session, token: str, new_password: str) -> Optional[User]:
    if not token:
        return None
    user = db.query(User).filter(User.password_reset_token_hash == hash_token(token)).first()
    if not user or not user.password_reset_expires_at:
        return None
    if ensure_timezone(user.password_reset_expires_at) <= _now():
        return None

    user.hashed_password = get_password_hash(new_password)
    user.password_reset_token_hash = None
    user.password_reset_expires_at = None
    db.commit()
    return user


def send_welcome_email(db: Session, user: User) -> None:
    token = _store_reset_token(db, user, WELCOME_TOKEN_TTL_SECONDS)
    subject, html, text = build_welcome_email(user.name, _build_url("/auth/update-password", token))
    send_email(user.email, subject, html, text)


def send_and_log(
    db: Session,
    to_email: str,
    subject: str,
    html: str,
    text: Optional[str] = None,
    entry_id: Optional[int] = None,
    sent_by: Optional[int] = None,
) -> dict:
    """Send one message and record the attempt in ``email_logs``.

    Delivery failures are reported in the returned dict rather than raised.
    """
    log = EmailLog(
        entry_id=entry_id,
        recipient_email=to_email,
        subject=subject,
        body=html,
        sent_by=sent_by,
    )
    try:
        send_email(to_email, subject, html, text or derive_text_from_html(html))
        log.status = "sent"
    except Exception as exc:
        logger.error("Email to %s failed: %s", to_email, exc)
        log.status = "failed"
        log.error = str(exc)
    db.add(log)
    db.commit()
    result = {"email": to_email, "entry_id": entry_id, "status": log.status}
    if log.error:
        result["error"] = log.error
    return result


def send_bulk(
    db: Session,
    entries: Iterable[Entry],
    subject_template: str,
    body_template: str,
    sent_by: Optional[int] = None,
    site_title: Optional[str] = None,
) -> dict:
    results: List[dict] = []
    for entry in entries:
        user = entry.user
        if not user or not user.email:
            results.append({"email": None, "entry_id": entry.id, "status": "failed", "error": "missing_email"})
            continue
        context = build_entry_context(entry, user, site_title=site_title)
        subject = render_email_template(subject_template, context, html_mode=False)
        html = render_email_template(body_template, context, html_mode=True)
        results.append(send_and_log(db, user.email, subject, html, entry_id=entry.id, sent_by=sent_by))

    sent = sum(1 for r in results if r["status"] == "sent")
    return {
        "total": len(results),
        "sent": sent,
        "failed": len(results) - sent,
        "results": results,
    }
