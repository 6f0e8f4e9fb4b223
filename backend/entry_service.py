import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from csv_tools import IMPORT_TEMPLATE_COLUMNS, clean_import_value
from models import (
    BasicInfo,
    EmailLog,
    Entry,
    EntryFile,
    EntryStatus,
    Selection,
    SectionStatus,
    User,
    UserRole,
)
from sections import SECTIONS, SectionSpec, evaluate_section, finals_sync_updates, row_to_dict
from time_utils import now_tz

logger = logging.getLogger(__name__)

MAX_IMPORT_ERRORS = 10


def get_entry_for_user(db: Session, user: User) -> Optional[Entry]:
    return db.query(Entry).filter(Entry.user_id == user.id).order_by(Entry.id.asc()).first()


def get_or_create_entry(db: Session, user: User) -> Entry:
    """Return the caller's entry, adding an unflushed one when none exists."""
    entry = get_entry_for_user(db, user)
    if entry is None:
        entry = Entry(user_id=user.id, participant_names=user.name, status=EntryStatus.PENDING)
        db.add(entry)
        db.flush()
    return entry


def get_section_row(db: Session, entry_id: int, spec: SectionSpec):
    return db.query(spec.model).filter(spec.model.entry_id == entry_id).first()


def list_entry_files(db: Session, entry_id: int) -> List[EntryFile]:
    return db.query(EntryFile).filter(EntryFile.entry_id == entry_id).order_by(EntryFile.uploaded_at.asc()).all()


def refresh_section_status(db: Session, entry: Entry, spec: SectionSpec, row=None) -> SectionStatus:
    if row is None:
        row = get_section_row(db, entry.id, spec)
    status = evaluate_section(spec, row_to_dict(row), list_entry_files(db, entry.id))
    setattr(entry, spec.status_column, status)
    if spec.name == "basic_info" and status == SectionStatus.SUBMITTED and entry.status == EntryStatus.PENDING:
        entry.status = EntryStatus.SUBMITTED
    return status


def _participant_names(row: BasicInfo, fallback: Optional[str]) -> Optional[str]:
    name = (row.representative_name or "").strip()
    partner = (row.partner_name or "").strip()
    if name and partner:
        return f"{name} & {partner}"
    return name or fallback


def _sync_finals(db: Session, entry: Entry, semifinals: Dict[str, Any]) -> bool:
    finals = get_section_row(db, entry.id, SECTIONS["finals_info"])
    if finals is None:
        return False
    updates = finals_sync_updates(finals, semifinals)
    if not updates:
        return False
    for key, value in updates.items():
        setattr(finals, key, value)
    refresh_section_status(db, entry, SECTIONS["finals_info"], finals)
    logger.info("Synced %d finals fields from semifinals for entry %s", len(updates), entry.id)
    return True


def save_section(
    db: Session,
    user: User,
    section: str,
    values: Dict[str, Any],
    entry: Optional[Entry] = None,
) -> Tuple[Entry, Any, SectionStatus]:
    """Upsert one section row and its derived statuses in a single commit.

    ``values`` holds only the fields sent by the client. On any failure the
    session is rolled back, so a first save never leaves an entry without its
    detail row.
    """
    spec = SECTIONS[section]
    try:
        if entry is None:
            entry = get_or_create_entry(db, user)
        row = get_section_row(db, entry.id, spec)
        if row is None:
            row = spec.model(entry_id=entry.id)
            db.add(row)

        for key, value in values.items():
            if hasattr(spec.model, key) and key not in {"id", "entry_id", "created_at", "updated_at"}:
                setattr(row, key, value)
        db.flush()

        if section == "basic_info":
            entry.participant_names = _participant_names(row, entry.participant_names)
        status = refresh_section_status(db, entry, spec, row)
        if section == "semifinals_info":
            _sync_finals(db, entry, row_to_dict(row))

        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(entry)
    db.refresh(row)
    return entry, row, status


def submit_consent_form(db: Session, entry: Entry) -> Entry:
    entry.consent_form_submitted = True
    entry.consent_form_submitted_at = now_tz()
    db.commit()
    db.refresh(entry)
    return entry


def entry_progress(entry: Entry) -> Dict[str, str]:
    return {name: getattr(entry, spec.status_column).value for name, spec in SECTIONS.items()}


def bulk_update_status(db: Session, entry_ids: Sequence[int], status: EntryStatus) -> int:
    try:
        entries = db.query(Entry).filter(Entry.id.in_(list(entry_ids))).all()
        for entry in entries:
            entry.status = status
        db.commit()
    except Exception:
        db.rollback()
        raise
    return len(entries)


def upsert_selection(
    db: Session,
    entry: Entry,
    admin: User,
    score: Optional[int],
    comments: Optional[str],
    status: EntryStatus,
) -> Selection:
    try:
        selection = db.query(Selection).filter(Selection.entry_id == entry.id).first()
        if selection is None:
            selection = Selection(entry_id=entry.id)
            db.add(selection)
        selection.admin_id = admin.id
        selection.score = score
        selection.comments = comments
        selection.status = status
        entry.status = status
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(selection)
    return selection


def delete_entries(db: Session, entry_ids: Sequence[int]) -> Tuple[List[int], List[str]]:
    """Delete entries with their selections, files and section rows.

    Returns the deleted ids and the storage keys of their files; the caller
    removes stored objects after the commit.
    """
    entries = db.query(Entry).filter(Entry.id.in_(list(entry_ids))).all()
    if not entries:
        return [], []
    deleted_ids = [entry.id for entry in entries]
    storage_keys = [
        path for (path,) in db.query(EntryFile.file_path).filter(EntryFile.entry_id.in_(deleted_ids)).all()
    ]
    try:
        db.query(EmailLog).filter(EmailLog.entry_id.in_(deleted_ids)).update(
            {EmailLog.entry_id: None}, synchronize_session=False
        )
        for entry in entries:
            db.delete(entry)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return deleted_ids, storage_keys


def _row_values(row: List[str]) -> Dict[str, str]:
    padded = list(row) + [""] * (len(IMPORT_TEMPLATE_COLUMNS) - len(row))
    return {column: clean_import_value(padded[index]) for index, column in enumerate(IMPORT_TEMPLATE_COLUMNS)}


def _import_row(db: Session, row: List[str]) -> None:
    values = _row_values(row)

    email = values["representative_email"].lower()
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        user = User(email=email, name=values["representative_name"], role=UserRole.PARTICIPANT)
        db.add(user)
        db.flush()

    partner = values["partner_name"]
    entry = Entry(
        user_id=user.id,
        participant_names=f"{values['representative_name']} & {partner}" if partner else values["representative_name"],
        status=EntryStatus.PENDING,
    )
    db.add(entry)
    db.flush()

    basic = BasicInfo(entry_id=entry.id, **values)
    db.add(basic)
    db.flush()
    refresh_section_status(db, entry, SECTIONS["basic_info"], basic)


def validate_import_row(row: List[str]) -> Optional[str]:
    values = _row_values(row)
    if not values["representative_email"] or not values["representative_name"] or not values["category_division"]:
        return "representative email, representative name and category division are required"
    if "@" not in values["representative_email"]:
        return f"invalid email address (received: \"{values['representative_email']}\")"
    return None


def import_entries(db: Session, rows: Iterable[List[str]]) -> Dict[str, Any]:
    """Create users, entries and basic info from parsed CSV data rows.

    Each row commits on its own; a failing row is rolled back and reported
    without stopping the rows after it.
    """
    success = 0
    failed = 0
    errors: List[str] = []

    for index, row in enumerate(rows, start=1):
        problem = validate_import_row(row)
        if problem is None:
            try:
                _import_row(db, row)
                db.commit()
                success += 1
                continue
            except Exception as exc:
                db.rollback()
                logger.error("CSV import row %d failed: %s", index, exc)
                problem = f"failed to save row ({exc.__class__.__name__})"
        failed += 1
        errors.append(f"Row {index}: {problem}")

    return {"success": success, "failed": failed, "errors": errors[:MAX_IMPORT_ERRORS]}
