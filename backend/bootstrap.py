from __future__ import annotations

import logging
import os
from datetime import datetime, timezone

from sqlalchemy import inspect

from auth import get_password_hash
from database import Base, engine, get_db
from models import Setting, User, UserRole
from site_settings import ensure_default_settings

logger = logging.getLogger(__name__)

MIGRATION_MARKER_KEY = "migration_backend_bootstrap_v1"


def _settings_table_exists() -> bool:
    return inspect(engine).has_table(Setting.__tablename__)


def has_bootstrap_marker() -> bool:
    if not _settings_table_exists():
        return False
    db = next(get_db())
    try:
        marker = db.query(Setting).filter(Setting.key == MIGRATION_MARKER_KEY).first()
        return marker is not None
    finally:
        db.close()


def set_bootstrap_marker() -> None:
    db = next(get_db())
    try:
        marker = db.query(Setting).filter(Setting.key == MIGRATION_MARKER_KEY).first()
        value = datetime.now(timezone.utc).isoformat()
        if marker:
            marker.value = value
        else:
            db.add(Setting(key=MIGRATION_MARKER_KEY, value=value, description="Bootstrap migration marker"))
        db.commit()
    finally:
        db.close()


def clear_bootstrap_marker() -> bool:
    if not _settings_table_exists():
        return False
    db = next(get_db())
    try:
        marker = db.query(Setting).filter(Setting.key == MIGRATION_MARKER_KEY).first()
        if not marker:
            return False
        db.delete(marker)
        db.commit()
        return True
    finally:
        db.close()


def ensure_default_admin(db) -> bool:
    email = (os.environ.get("ADMIN_EMAIL") or "").strip().lower()
    password = os.environ.get("ADMIN_PASSWORD")
    if not email or not password:
        logger.info("ADMIN_EMAIL/ADMIN_PASSWORD not set; skipping default admin.")
        return False

    user = db.query(User).filter(User.email == email).first()
    if user:
        if user.role != UserRole.ADMIN:
            user.role = UserRole.ADMIN
            db.commit()
            logger.info("Promoted existing user %s to admin.", email)
        return False

    db.add(User(
        email=email,
        name="Administrator",
        role=UserRole.ADMIN,
        hashed_password=get_password_hash(password),
    ))
    db.commit()
    logger.info("Created default admin %s.", email)
    return True


def run_bootstrap_migrations() -> None:
    Base.metadata.create_all(bind=engine)

    db = next(get_db())
    try:
        ensure_default_settings(db)
        ensure_default_admin(db)
    finally:
        db.close()
