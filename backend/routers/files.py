import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from csrf import require_csrf
from database import get_db
from entry_service import get_entry_for_user, get_or_create_entry, list_entry_files, refresh_section_status
from file_validation import build_storage_key, validate_upload
from models import Entry, EntryFile, FileType, User
from rate_limit import rate_limit
from schemas import EntryFileResponse, FileTypeEnum
from sections import FILE_PURPOSES, SECTIONS
from security import require_user
from utils import delete_objects, generate_download_url, try_download_url, upload_bytes

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_csrf)])


def file_response(item: EntryFile, with_url: bool = False) -> EntryFileResponse:
    response = EntryFileResponse.model_validate(item)
    if with_url:
        response.download_url = try_download_url(item.file_path)
    return response


def _refresh_file_sections(db: Session, entry: Entry, purpose: Optional[str]) -> None:
    for spec in SECTIONS.values():
        if purpose and purpose in spec.required_file_purposes:
            refresh_section_status(db, entry, spec)


def _get_own_file(db: Session, user: User, file_id: int) -> EntryFile:
    item = (
        db.query(EntryFile)
        .join(Entry, Entry.id == EntryFile.entry_id)
        .filter(EntryFile.id == file_id, Entry.user_id == user.id)
        .first()
    )
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return item


@router.post("/entry/files", response_model=EntryFileResponse, status_code=status.HTTP_201_CREATED)
def upload_entry_file(
    file: UploadFile = File(...),
    file_type: FileTypeEnum = Form(...),
    purpose: Optional[str] = Form(None),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
    _limit=Depends(rate_limit("upload")),
):
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing filename")
    purpose = (purpose or "").strip() or None
    if purpose and purpose not in FILE_PURPOSES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown file purpose: {purpose}")

    contents = file.file.read()
    check = validate_upload(file_type.value, file.content_type, contents)
    if not check.valid:
        logger.warning("Rejected upload from user %s: %s", user.id, check.error)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=check.error)

    stored_key = None
    try:
        entry = get_or_create_entry(db, user)
        key = build_storage_key(user.id, entry.id, file_type.value, file.filename)
        upload_bytes(key, contents, file.content_type)
        stored_key = key
        item = EntryFile(
            entry_id=entry.id,
            file_type=FileType(file_type.value),
            purpose=purpose,
            file_name=file.filename,
            file_path=key,
            file_size=len(contents),
            mime_type=file.content_type,
        )
        db.add(item)
        db.flush()
        _refresh_file_sections(db, entry, purpose)
        db.commit()
    except Exception:
        db.rollback()
        if stored_key:
            logger.warning("Removing %s after failed upload bookkeeping", stored_key)
            delete_objects([stored_key])
        raise
    db.refresh(item)
    logger.info("User %s uploaded %s (%d bytes) to entry %s", user.id, key, len(contents), entry.id)
    return file_response(item)


@router.get("/entry/files", response_model=List[EntryFileResponse])
def list_my_files(
    purpose: Optional[str] = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    entry = get_entry_for_user(db, user)
    if not entry:
        return []
    files = list_entry_files(db, entry.id)
    if purpose:
        files = [item for item in files if item.purpose == purpose]
    return [file_response(item) for item in files]


@router.get("/entry/files/{file_id}/url")
def get_file_url(file_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    item = _get_own_file(db, user, file_id)
    return {"id": item.id, "url": generate_download_url(item.file_path)}


@router.delete("/entry/files/{file_id}")
def delete_entry_file(file_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    item = _get_own_file(db, user, file_id)
    entry = item.entry
    key = item.file_path
    purpose = item.purpose
    try:
        db.delete(item)
        db.flush()
        _refresh_file_sections(db, entry, purpose)
        db.commit()
    except Exception:
        db.rollback()
        raise
    failures = delete_objects([key])
    return {"status": "deleted", "storage_errors": failures}
