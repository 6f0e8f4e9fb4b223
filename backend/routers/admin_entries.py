import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy import or_
from sqlalchemy.orm import Session

from csrf import require_csrf
from database import get_db
from entry_service import (
    bulk_update_status,
    delete_entries,
    get_section_row,
    list_entry_files,
    save_section,
    upsert_selection,
)
from models import BasicInfo, Entry, EntryStatus, Selection, User
from routers.entries import build_section_response
from routers.files import file_response
from schemas import (
    AdminEntryListItem,
    BulkDeleteRequest,
    BulkStatusUpdate,
    EntryStatusEnum,
    EntrySummary,
    SECTION_PAYLOADS,
    SectionResponse,
    SelectionResponse,
    SelectionUpdate,
    UserResponse,
)
from sections import SECTIONS, row_to_dict
from security import require_admin
from utils import delete_objects, log_admin_action

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_csrf)])


def _get_entry(db: Session, entry_id: int) -> Entry:
    entry = db.query(Entry).filter(Entry.id == entry_id).first()
    if not entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found")
    return entry


def _list_item(entry: Entry, user: Optional[User], basic: Optional[BasicInfo], selection: Optional[Selection]) -> AdminEntryListItem:
    item = AdminEntryListItem.model_validate(entry)
    item.user_name = user.name if user else None
    item.user_email = user.email if user else None
    item.dance_style = basic.dance_style if basic else None
    item.category_division = basic.category_division if basic else None
    item.score = selection.score if selection else None
    return item


@router.get("/admin/entries", response_model=List[AdminEntryListItem])
def list_entries(
    status_filter: Optional[EntryStatusEnum] = Query(None, alias="status"),
    search: Optional[str] = None,
    limit: int = 200,
    offset: int = 0,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = (
        db.query(Entry, User, BasicInfo, Selection)
        .outerjoin(User, User.id == Entry.user_id)
        .outerjoin(BasicInfo, BasicInfo.entry_id == Entry.id)
        .outerjoin(Selection, Selection.entry_id == Entry.id)
    )
    if status_filter:
        query = query.filter(Entry.status == EntryStatus(status_filter.value))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                User.name.ilike(pattern),
                User.email.ilike(pattern),
                Entry.participant_names.ilike(pattern),
                BasicInfo.representative_name.ilike(pattern),
                BasicInfo.representative_email.ilike(pattern),
            )
        )
    rows = query.order_by(Entry.created_at.desc(), Entry.id.desc()).offset(max(offset, 0)).limit(min(max(limit, 1), 1000)).all()
    return [_list_item(entry, user, basic, selection) for entry, user, basic, selection in rows]


@router.get("/admin/entries/{entry_id}")
def get_entry_detail(entry_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    entry = _get_entry(db, entry_id)
    sections: Dict[str, Any] = {
        name: row_to_dict(get_section_row(db, entry.id, spec)) for name, spec in SECTIONS.items()
    }
    return {
        "entry": EntrySummary.model_validate(entry),
        "user": UserResponse.model_validate(entry.user) if entry.user else None,
        "sections": sections,
        "files": [file_response(item, with_url=True) for item in list_entry_files(db, entry.id)],
        "selection": SelectionResponse.model_validate(entry.selection) if entry.selection else None,
    }


@router.put("/admin/entries/status")
def update_entries_status(
    payload: BulkStatusUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    updated = bulk_update_status(db, payload.entry_ids, EntryStatus(payload.status.value))
    log_admin_action(
        db, admin, "Bulk update entry status", request.method, request.url.path,
        {"entry_ids": payload.entry_ids, "status": payload.status.value, "updated": updated},
    )
    return {"updated": updated}


@router.put("/admin/entries/{entry_id}/selection", response_model=SelectionResponse)
def update_selection(
    entry_id: int,
    payload: SelectionUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    entry = _get_entry(db, entry_id)
    selection = upsert_selection(db, entry, admin, payload.score, payload.comments, EntryStatus(payload.status.value))
    log_admin_action(
        db, admin, "Update selection", request.method, request.url.path,
        {"entry_id": entry_id, "score": payload.score, "status": payload.status.value},
    )
    return SelectionResponse.model_validate(selection)


@router.put("/admin/entries/{entry_id}/sections/{section}", response_model=SectionResponse)
def update_entry_section(
    entry_id: int,
    section: str,
    request: Request,
    body: Dict[str, Any] = Body(...),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if section not in SECTIONS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown section")
    entry = _get_entry(db, entry_id)
    try:
        payload = SECTION_PAYLOADS[section].model_validate(body)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc

    entry, _row, _status = save_section(db, entry.user, section, payload.model_dump(exclude_unset=True), entry=entry)
    log_admin_action(
        db, admin, "Edit entry section", request.method, request.url.path,
        {"entry_id": entry_id, "section": section},
    )
    return build_section_response(db, entry, SECTIONS[section], admin)


@router.post("/admin/entries/delete")
def delete_entries_bulk(
    payload: BulkDeleteRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    deleted_ids, storage_keys = delete_entries(db, payload.entry_ids)
    if not deleted_ids:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No entries found")
    failures = delete_objects(storage_keys)
    log_admin_action(
        db, admin, "Delete entries", request.method, request.url.path,
        {"entry_ids": deleted_ids, "files": len(storage_keys), "storage_errors": len(failures)},
    )
    logger.info("Admin %s deleted entries %s", admin.id, deleted_ids)
    return {"deleted": deleted_ids, "deleted_count": len(deleted_ids), "storage_errors": failures}
