import io
import json
import logging
import re
import zipfile
from datetime import datetime
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from csrf import require_csrf
from csv_tools import (
    BOM,
    ENTRY_EXPORT_PREFIX,
    SECTION_EXPORT_COLUMNS,
    build_xlsx,
    generate_csv,
    parse_csv,
    template_columns,
    write_csv,
)
from database import get_db
from entry_service import import_entries
from models import Entry, EntryFile, FileType, Selection, Setting, User
from schemas import CsvImportResult
from sections import SECTIONS, row_to_dict
from security import require_admin
from utils import download_bytes, log_admin_action

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_csrf)])

USER_EXPORT_FIELDS = ["id", "email", "name", "role", "created_at", "updated_at"]


def _csv_response(content: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        io.BytesIO(content.encode("utf-8")),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


def _stamp() -> str:
    return datetime.now().strftime("%Y%m%d")


@router.get("/admin/csv-template")
def download_csv_template(
    template_type: str = Query("entries", alias="type"),
    admin: User = Depends(require_admin),
):
    try:
        columns, sample = template_columns(template_type)
    except KeyError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown template type: {template_type}")
    return _csv_response(generate_csv(columns, sample), f"{template_type}_template.csv")


@router.post("/admin/csv-import", response_model=CsvImportResult)
def import_csv(
    request: Request,
    file: UploadFile = File(...),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    raw = file.file.read()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV must be UTF-8 encoded")

    rows = parse_csv(text)
    if len(rows) < 2:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV has no data rows")

    result = import_entries(db, rows[1:])
    log_admin_action(
        db, admin, "Import entries from CSV", request.method, request.url.path,
        {"file_name": file.filename, "success": result["success"], "failed": result["failed"]},
    )
    logger.info("CSV import by admin %s: %d ok, %d failed", admin.id, result["success"], result["failed"])
    return CsvImportResult(**result)


def _user_rows(db: Session) -> List[Dict[str, Any]]:
    users = db.query(User).order_by(User.id.asc()).all()
    return [{field: getattr(user, field) for field in USER_EXPORT_FIELDS} for user in users]


def _table_rows(db: Session, model) -> List[Dict[str, Any]]:
    return [row_to_dict(row) for row in db.query(model).order_by(model.id.asc()).all()]


def _export_tables(db: Session) -> Dict[str, List[Dict[str, Any]]]:
    tables = {
        "users": _user_rows(db),
        "entries": _table_rows(db, Entry),
    }
    for name, spec in SECTIONS.items():
        tables[name] = _table_rows(db, spec.model)
    tables["entry_files"] = _table_rows(db, EntryFile)
    tables["selections"] = _table_rows(db, Selection)
    tables["settings"] = _table_rows(db, Setting)
    return tables


@router.get("/admin/export/data")
def export_all_data(
    request: Request,
    export_format: str = Query("json", alias="format"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if export_format not in ("json", "csv"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Format must be json or csv")
    tables = _export_tables(db)
    log_admin_action(db, admin, "Export all data", request.method, request.url.path, {"format": export_format})

    if export_format == "json":
        return {
            "exported_at": datetime.now().isoformat(),
            "counts": {name: len(rows) for name, rows in tables.items()},
            "data": tables,
        }

    parts: List[str] = []
    for name, rows in tables.items():
        parts.append(f"# === {name.upper()} ({len(rows)}) ===\n")
        if rows:
            headers = list(rows[0].keys())
            parts.append(write_csv(headers, [[row.get(h) for h in headers] for row in rows], bom=False))
        parts.append("\n")
    return _csv_response(BOM + "".join(parts), f"all_data_{_stamp()}.csv")


FILE_FOLDERS = {
    FileType.MUSIC: "01_Music",
    FileType.AUDIO: "02_Audio",
    FileType.PHOTO: "03_Photos",
    FileType.VIDEO: "04_Videos",
}
_UNSAFE_ARCHIVE_CHARS = re.compile(r"[^A-Za-z0-9._-]")

ARCHIVE_README = """Dance entry file export

Folders:
  01_Music   music files
  02_Audio   audio files
  03_Photos  photos
  04_Videos  videos

File names are <participant>_<file id>_<original name>.
metadata.json lists every file with its entry and owner.
failed_files.json lists files that could not be read from storage.
"""


def _archive_name(user_name: str, item: EntryFile) -> str:
    safe_user = _UNSAFE_ARCHIVE_CHARS.sub("_", user_name or "unknown")[:20]
    safe_file = _UNSAFE_ARCHIVE_CHARS.sub("_", item.file_name or "file")
    return f"{safe_user}_{item.id}_{safe_file}"


@router.get("/admin/export/files")
def export_files_archive(
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    rows = (
        db.query(EntryFile, User)
        .join(Entry, Entry.id == EntryFile.entry_id)
        .outerjoin(User, User.id == Entry.user_id)
        .order_by(EntryFile.uploaded_at.desc(), EntryFile.id.desc())
        .all()
    )
    if not rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No files found to export")

    exported_at = datetime.now()
    metadata = {
        "export_info": {
            "exported_at": exported_at.isoformat(),
            "exported_by": admin.email,
            "total_files": len(rows),
            "export_type": "files_archive",
        },
        "files": [],
    }
    failed = []
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for item, user in rows:
            user_name = user.name if user else ""
            metadata["files"].append({
                "id": item.id,
                "entry_id": item.entry_id,
                "file_name": item.file_name,
                "file_type": item.file_type.value,
                "file_size": item.file_size,
                "mime_type": item.mime_type,
                "uploaded_at": item.uploaded_at.isoformat() if item.uploaded_at else None,
                "user_name": user_name,
                "user_email": user.email if user else "",
            })
            try:
                data = download_bytes(item.file_path)
            except HTTPException as exc:
                failed.append({"id": item.id, "file_name": item.file_name, "file_path": item.file_path, "error": exc.detail})
                continue
            folder = FILE_FOLDERS.get(item.file_type, "99_Other")
            archive.writestr(f"{folder}/{_archive_name(user_name, item)}", data)

        archive.writestr("metadata.json", json.dumps(metadata, ensure_ascii=False, indent=2))
        if failed:
            archive.writestr("failed_files.json", json.dumps(failed, ensure_ascii=False, indent=2))
        archive.writestr("README.txt", ARCHIVE_README)

    log_admin_action(
        db, admin, "Export files archive", request.method, request.url.path,
        {"total_files": len(rows), "failed": len(failed)},
    )
    logger.info("Files archive exported by admin %s: %d files, %d failed", admin.id, len(rows), len(failed))
    buffer.seek(0)
    return StreamingResponse(
        buffer,
        media_type="application/zip",
        headers={"Content-Disposition": f"attachment; filename=dance_entry_files_{exported_at.strftime('%Y%m%d_%H%M%S')}.zip"},
    )


@router.get("/admin/export/{section}")
def export_section(
    section: str,
    request: Request,
    export_format: str = Query("csv", alias="format"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    spec = SECTIONS.get(section)
    if spec is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown section")
    if export_format not in ("csv", "xlsx"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Format must be csv or xlsx")

    columns = SECTION_EXPORT_COLUMNS.get(section) or [
        (column.name, column.name) for column in spec.model.__table__.columns if column.name not in ("id", "entry_id")
    ]
    headers = [label for _, label in ENTRY_EXPORT_PREFIX] + [label for _, label in columns]

    entries = (
        db.query(Entry, User)
        .outerjoin(User, User.id == Entry.user_id)
        .order_by(Entry.id.asc())
        .all()
    )
    rows = []
    for entry, user in entries:
        data = row_to_dict(getattr(entry, section)) or {}
        rows.append(
            [
                entry.id,
                user.name if user else "",
                user.email if user else "",
                entry.status,
                getattr(entry, spec.status_column),
            ]
            + [data.get(key) for key, _ in columns]
        )

    log_admin_action(
        db, admin, "Export section", request.method, request.url.path,
        {"section": section, "format": export_format, "rows": len(rows)},
    )
    filename = f"{section}_{_stamp()}"
    if export_format == "xlsx":
        output = build_xlsx(spec.label, headers, rows)
        return StreamingResponse(
            output,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": f"attachment; filename={filename}.xlsx"},
        )
    return _csv_response(write_csv(headers, rows), f"{filename}.csv")
