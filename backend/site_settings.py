import logging
import math
from typing import Dict, Optional

from sqlalchemy.orm import Session

from models import Setting
from sections import CONSENT_FORM_DEADLINE_KEY, SECTIONS
from time_utils import now_tz, parse_datetime_setting

logger = logging.getLogger(__name__)

DEFAULT_SITE_TITLE = "Valqua Cup Dance Entry System"
ADVANCED_START_DATE_KEY = "advanced_start_date"
BACKGROUND_PAGE_TYPES = ("login", "dashboard", "entry", "music")
FAVICON_KEY = "favicon_url"
URGENT_DAYS = 3

DEFAULT_SETTINGS = {
    "site_title": (DEFAULT_SITE_TITLE, "Site title shown on every page"),
    "admin_email": ("", "Sender and contact address for notifications"),
    ADVANCED_START_DATE_KEY: ("", "Date from which advanced sections accept input"),
    CONSENT_FORM_DEADLINE_KEY: ("", "Consent form deadline"),
    FAVICON_KEY: ("", "Storage key or URL of the site favicon"),
}
for _spec in SECTIONS.values():
    DEFAULT_SETTINGS[_spec.deadline_key] = ("", f"{_spec.label} deadline")
for _page in BACKGROUND_PAGE_TYPES:
    DEFAULT_SETTINGS[f"{_page}_background_image"] = ("", f"{_page} page background image")


def background_key(page_type: str) -> str:
    return f"{page_type}_background_image"


def get_setting(db: Session, key: str, default: Optional[str] = None) -> Optional[str]:
    row = db.query(Setting).filter(Setting.key == key).first()
    if not row or row.value in (None, ""):
        return default
    return row.value


def get_settings_map(db: Session) -> Dict[str, str]:
    rows = db.query(Setting).order_by(Setting.key.asc()).all()
    return {row.key: row.value for row in rows}


def upsert_settings(db: Session, values: Dict[str, Optional[str]]) -> Dict[str, str]:
    try:
        existing = {row.key: row for row in db.query(Setting).filter(Setting.key.in_(list(values))).all()}
        for key, value in values.items():
            text = "" if value is None else str(value)
            row = existing.get(key)
            if row:
                row.value = text
            else:
                db.add(Setting(key=key, value=text))
        db.commit()
    except Exception:
        db.rollback()
        raise
    return get_settings_map(db)


def ensure_default_settings(db: Session) -> None:
    present = {key for (key,) in db.query(Setting.key).all()}
    added = False
    for key, (value, description) in DEFAULT_SETTINGS.items():
        if key not in present:
            db.add(Setting(key=key, value=value, description=description))
            added = True
    if added:
        db.commit()


def deadline_info(value: Optional[str]) -> Optional[dict]:
    deadline = parse_datetime_setting(value, end_of_day=True)
    if deadline is None:
        return None
    now = now_tz()
    days_left = math.ceil((deadline - now).total_seconds() / 86400)
    is_expired = now > deadline
    return {
        "deadline": deadline.isoformat(),
        "date": deadline.strftime("%Y-%m-%d %H:%M"),
        "days_left": days_left,
        "is_expired": is_expired,
        "is_urgent": not is_expired and days_left <= URGENT_DAYS,
    }


def section_deadline_info(db: Session, section: str) -> Optional[dict]:
    spec = SECTIONS[section]
    return deadline_info(get_setting(db, spec.deadline_key))


def all_deadlines(db: Session) -> Dict[str, Optional[dict]]:
    settings = get_settings_map(db)
    result = {name: deadline_info(settings.get(spec.deadline_key)) for name, spec in SECTIONS.items()}
    result["consent_form"] = deadline_info(settings.get(CONSENT_FORM_DEADLINE_KEY))
    return result


def is_deadline_passed(db: Session, deadline_key: str) -> bool:
    deadline = parse_datetime_setting(get_setting(db, deadline_key), end_of_day=True)
    return deadline is not None and now_tz() > deadline


def advanced_start_info(db: Session) -> dict:
    start = parse_datetime_setting(get_setting(db, ADVANCED_START_DATE_KEY))
    if start is None:
        return {"is_available": True, "start_date": None}
    return {"is_available": now_tz() >= start, "start_date": start.isoformat()}


def site_title(db: Session) -> str:
    try:
        return get_setting(db, "site_title") or DEFAULT_SITE_TITLE
    except Exception:
        logger.exception("Failed to load site title")
        return DEFAULT_SITE_TITLE
