import logging
import time
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from sqlalchemy.orm import Session

from csrf import require_csrf
from database import get_db
from debug_log import ring_buffer
from file_validation import BACKGROUND_MIME_TYPES, FAVICON_MIME_TYPES, MB, sanitize_file_name, validate_upload
from models import AdminLog, User
from routers.public import resolve_image_url
from schemas import AdminLogResponse, DeadlinesUpdate, SettingsUpdate
from sections import CONSENT_FORM_DEADLINE_KEY, SECTIONS
from security import require_admin
from site_settings import (
    ADVANCED_START_DATE_KEY,
    BACKGROUND_PAGE_TYPES,
    FAVICON_KEY,
    all_deadlines,
    background_key,
    get_setting,
    get_settings_map,
    upsert_settings,
)
from time_utils import parse_datetime_setting
from utils import delete_objects, log_admin_action, upload_bytes

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_csrf)])

BACKGROUND_MAX_BYTES = 10 * MB
FAVICON_MAX_BYTES = 1 * MB


def _deadline_keys() -> dict:
    keys = {name: spec.deadline_key for name, spec in SECTIONS.items()}
    keys["consent_form"] = CONSENT_FORM_DEADLINE_KEY
    keys["advanced_start"] = ADVANCED_START_DATE_KEY
    return keys


def _replace_stored_image(db: Session, setting_key: str, key: str, contents: bytes, content_type: Optional[str]) -> None:
    """Upload ``key`` and point ``setting_key`` at it, dropping the previous object."""
    previous = get_setting(db, setting_key)
    upload_bytes(key, contents, content_type)
    try:
        upsert_settings(db, {setting_key: key})
    except Exception:
        logger.warning("Removing %s after failed settings update", key)
        delete_objects([key])
        raise
    if previous and not previous.startswith("http"):
        delete_objects([previous])


def _clear_stored_image(db: Session, setting_key: str) -> None:
    previous = get_setting(db, setting_key)
    upsert_settings(db, {setting_key: ""})
    if previous and not previous.startswith("http"):
        delete_objects([previous])


@router.get("/admin/settings")
def get_settings(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return {"settings": get_settings_map(db)}


@router.post("/admin/settings")
def update_settings(
    payload: SettingsUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    settings = upsert_settings(db, payload.settings)
    log_admin_action(db, admin, "Update settings", request.method, request.url.path, {"keys": sorted(payload.settings)})
    return {"settings": settings}


@router.get("/admin/deadlines")
def get_deadlines(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    settings = get_settings_map(db)
    return {
        "values": {name: settings.get(key, "") for name, key in _deadline_keys().items()},
        "deadlines": all_deadlines(db),
    }


@router.post("/admin/deadlines")
def update_deadlines(
    payload: DeadlinesUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    keys = _deadline_keys()
    values = {}
    for name, value in payload.deadlines.items():
        if name not in keys:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown deadline: {name}")
        text = (value or "").strip()
        if text and parse_datetime_setting(text) is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid date for {name}: {text}")
        values[keys[name]] = text
    upsert_settings(db, values)
    log_admin_action(db, admin, "Update deadlines", request.method, request.url.path, {"deadlines": values})
    return {"deadlines": all_deadlines(db)}


@router.post("/admin/background/{page_type}")
def upload_background_image(
    page_type: str,
    request: Request,
    file: UploadFile = File(...),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if page_type not in BACKGROUND_PAGE_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid page type")
    contents = file.file.read()
    check = validate_upload(
        "photo", file.content_type, contents, max_bytes=BACKGROUND_MAX_BYTES, allowed_types=BACKGROUND_MIME_TYPES
    )
    if not check.valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=check.error)

    key = f"backgrounds/{page_type}/{int(time.time() * 1000)}-{sanitize_file_name(file.filename)}"
    _replace_stored_image(db, background_key(page_type), key, contents, file.content_type)

    log_admin_action(db, admin, "Upload background image", request.method, request.url.path, {"page_type": page_type, "key": key})
    return {"page_type": page_type, "key": key, "image_url": resolve_image_url(key)}


@router.delete("/admin/background/{page_type}")
def delete_background_image(
    page_type: str,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if page_type not in BACKGROUND_PAGE_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid page type")
    _clear_stored_image(db, background_key(page_type))
    log_admin_action(db, admin, "Remove background image", request.method, request.url.path, {"page_type": page_type})
    return {"page_type": page_type, "image_url": None}


@router.post("/admin/favicon")
def upload_favicon(
    request: Request,
    file: UploadFile = File(...),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    content_type = (file.content_type or "").split(";")[0].strip().lower()
    # browsers often send .ico files as application/octet-stream
    if content_type not in FAVICON_MIME_TYPES and (file.filename or "").lower().endswith(".ico"):
        content_type = "image/x-icon"
    contents = file.file.read()
    check = validate_upload(
        "favicon", content_type, contents, max_bytes=FAVICON_MAX_BYTES, allowed_types=FAVICON_MIME_TYPES
    )
    if not check.valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=check.error)

    ext = "png" if content_type == "image/png" else "ico"
    key = f"favicons/favicon_{int(time.time() * 1000)}.{ext}"
    _replace_stored_image(db, FAVICON_KEY, key, contents, content_type)

    log_admin_action(db, admin, "Upload favicon", request.method, request.url.path, {"key": key})
    return {"success": True, "key": key, "url": resolve_image_url(key)}


@router.delete("/admin/favicon")
def delete_favicon(request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    _clear_stored_image(db, FAVICON_KEY)
    log_admin_action(db, admin, "Remove favicon", request.method, request.url.path, None)
    return {"success": True, "url": None}


@router.get("/admin/logs")
def get_debug_logs(
    level: Optional[str] = None,
    limit: Optional[int] = None,
    admin: User = Depends(require_admin),
):
    return {"logs": ring_buffer.records(level=level, limit=limit)}


@router.delete("/admin/logs")
def clear_debug_logs(admin: User = Depends(require_admin)):
    ring_buffer.clear()
    return {"status": "cleared"}


@router.get("/admin/admin-logs", response_model=List[AdminLogResponse])
def get_admin_logs(
    limit: int = 100,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return (
        db.query(AdminLog)
        .order_by(AdminLog.created_at.desc(), AdminLog.id.desc())
        .limit(min(max(limit, 1), 500))
        .all()
    )
