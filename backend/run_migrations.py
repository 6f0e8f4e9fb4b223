from __future__ import annotations

import argparse
import getpass
import logging
import os
import sys

from bootstrap import (
    MIGRATION_MARKER_KEY,
    clear_bootstrap_marker,
    ensure_default_admin,
    has_bootstrap_marker,
    run_bootstrap_migrations,
    set_bootstrap_marker,
)
from database import get_db

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create tables, default settings and the default admin account.")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Run the bootstrap even if the marker already exists.",
    )
    parser.add_argument(
        "--clear-marker",
        action="store_true",
        help=f"Remove the `{MIGRATION_MARKER_KEY}` setting before running.",
    )
    parser.add_argument(
        "--clear-only",
        action="store_true",
        help="Remove the marker and exit.",
    )
    parser.add_argument(
        "--admin-email",
        help="Create or promote this admin account (password read from ADMIN_PASSWORD or prompted).",
    )
    return parser.parse_args(argv)


def _create_admin(email: str) -> None:
    password = os.environ.get("ADMIN_PASSWORD") or getpass.getpass(f"Password for {email}: ")
    os.environ["ADMIN_EMAIL"] = email
    os.environ["ADMIN_PASSWORD"] = password
    db = next(get_db())
    try:
        created = ensure_default_admin(db)
    finally:
        db.close()
    logger.info("Admin %s %s.", email, "created" if created else "already present")


def main(argv=None) -> int:
    args = parse_args(argv)

    if args.clear_marker or args.clear_only:
        removed = clear_bootstrap_marker()
        if removed:
            logger.info("Cleared bootstrap marker `%s`.", MIGRATION_MARKER_KEY)
        else:
            logger.info("Marker `%s` was already absent.", MIGRATION_MARKER_KEY)
        if args.clear_only:
            return 0

    if has_bootstrap_marker() and not args.force:
        logger.info("Bootstrap marker `%s` exists; nothing to do. Use --force to rerun.", MIGRATION_MARKER_KEY)
    else:
        logger.info("Running backend bootstrap (tables, settings, admin)...")
        run_bootstrap_migrations()
        set_bootstrap_marker()
        logger.info("Bootstrap completed and marker `%s` updated.", MIGRATION_MARKER_KEY)

    if args.admin_email:
        _create_admin(args.admin_email.strip().lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
