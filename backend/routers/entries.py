import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from csrf import require_csrf
from database import get_db
from entry_service import (
    entry_progress,
    get_entry_for_user,
    get_or_create_entry,
    get_section_row,
    save_section,
    submit_consent_form,
)
from models import Entry, SectionStatus, User, UserRole
from rate_limit import rate_limit
from schemas import (
    ApplicationsInfoUpdate,
    BasicInfoUpdate,
    EntrySummary,
    FinalsInfoUpdate,
    PreliminaryInfoUpdate,
    ProgramInfoUpdate,
    SectionResponse,
    SemifinalsInfoUpdate,
    SnsInfoUpdate,
)
from sections import CONSENT_FORM_DEADLINE_KEY, SECTIONS, SectionSpec, missing_fields, row_to_dict
from security import require_user
from site_settings import advanced_start_info, all_deadlines, is_deadline_passed, section_deadline_info

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_csrf), Depends(rate_limit("api"))])


def section_lock_reason(db: Session, spec: SectionSpec, user: User) -> Optional[str]:
    """Return why ``user`` may not edit ``spec`` right now, or None."""
    if user.role == UserRole.ADMIN:
        return None
    if is_deadline_passed(db, spec.deadline_key):
        return f"The deadline for {spec.label.lower()} has passed"
    if spec.advanced and not advanced_start_info(db)["is_available"]:
        return f"{spec.label} is not open for input yet"
    return None


def build_section_response(db: Session, entry: Optional[Entry], spec: SectionSpec, user: User) -> SectionResponse:
    row = get_section_row(db, entry.id, spec) if entry else None
    data = row_to_dict(row)
    return SectionResponse(
        section=spec.name,
        status=getattr(entry, spec.status_column) if entry else SectionStatus.NOT_STARTED,
        entry_id=entry.id if entry else None,
        data=data,
        missing_fields=missing_fields(spec, data or {}),
        deadline=section_deadline_info(db, spec.name),
        editable=section_lock_reason(db, spec, user) is None,
    )


def _get_section(section: str, user: User, db: Session) -> SectionResponse:
    return build_section_response(db, get_entry_for_user(db, user), SECTIONS[section], user)


def _put_section(section: str, payload, user: User, db: Session) -> SectionResponse:
    spec = SECTIONS[section]
    reason = section_lock_reason(db, spec, user)
    if reason:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=reason)
    entry, _row, section_status = save_section(db, user, section, payload.model_dump(exclude_unset=True))
    logger.info("User %s saved %s for entry %s (%s)", user.id, section, entry.id, section_status.value)
    return build_section_response(db, entry, spec, user)


@router.get("/entry")
def get_my_entry(user: User = Depends(require_user), db: Session = Depends(get_db)):
    entry = get_entry_for_user(db, user)
    return {
        "entry": EntrySummary.model_validate(entry) if entry else None,
        "progress": entry_progress(entry) if entry else {name: SectionStatus.NOT_STARTED.value for name in SECTIONS},
        "deadlines": all_deadlines(db),
        "advanced": advanced_start_info(db),
    }


@router.get("/entry/basic-info", response_model=SectionResponse)
def get_basic_info(user: User = Depends(require_user), db: Session = Depends(get_db)):
    return _get_section("basic_info", user, db)


@router.put("/entry/basic-info", response_model=SectionResponse)
def update_basic_info(payload: BasicInfoUpdate, user: User = Depends(require_user), db: Session = Depends(get_db)):
    return _put_section("basic_info", payload, user, db)


@router.get("/entry/preliminary-info", response_model=SectionResponse)
def get_preliminary_info(user: User = Depends(require_user), db: Session = Depends(get_db)):
    return _get_section("preliminary_info", user, db)


@router.put("/entry/preliminary-info", response_model=SectionResponse)
def update_preliminary_info(payload: PreliminaryInfoUpdate, user: User = Depends(require_user), db: Session = Depends(get_db)):
    return _put_section("preliminary_info", payload, user, db)


@router.get("/entry/semifinals-info", response_model=SectionResponse)
def get_semifinals_info(user: User = Depends(require_user), db: Session = Depends(get_db)):
    return _get_section("semifinals_info", user, db)


@router.put("/entry/semifinals-info", response_model=SectionResponse)
def update_semifinals_info(payload: SemifinalsInfoUpdate, user: User = Depends(require_user), db: Session = Depends(get_db)):
    return _put_section("semifinals_info", payload, user, db)


@router.get("/entry/finals-info", response_model=SectionResponse)
def get_finals_info(user: User = Depends(require_user), db: Session = Depends(get_db)):
    return _get_section("finals_info", user, db)


@router.put("/entry/finals-info", response_model=SectionResponse)
def update_finals_info(payload: FinalsInfoUpdate, user: User = Depends(require_user), db: Session = Depends(get_db)):
    return _put_section("finals_info", payload, user, db)


@router.get("/entry/program-info", response_model=SectionResponse)
def get_program_info(user: User = Depends(require_user), db: Session = Depends(get_db)):
    return _get_section("program_info", user, db)


@router.put("/entry/program-info", response_model=SectionResponse)
def update_program_info(payload: ProgramInfoUpdate, user: User = Depends(require_user), db: Session = Depends(get_db)):
    return _put_section("program_info", payload, user, db)


@router.get("/entry/sns-info", response_model=SectionResponse)
def get_sns_info(user: User = Depends(require_user), db: Session = Depends(get_db)):
    return _get_section("sns_info", user, db)


@router.put("/entry/sns-info", response_model=SectionResponse)
def update_sns_info(payload: SnsInfoUpdate, user: User = Depends(require_user), db: Session = Depends(get_db)):
    return _put_section("sns_info", payload, user, db)


@router.get("/entry/applications-info", response_model=SectionResponse)
def get_applications_info(user: User = Depends(require_user), db: Session = Depends(get_db)):
    return _get_section("applications_info", user, db)


@router.put("/entry/applications-info", response_model=SectionResponse)
def update_applications_info(payload: ApplicationsInfoUpdate, user: User = Depends(require_user), db: Session = Depends(get_db)):
    return _put_section("applications_info", payload, user, db)


@router.post("/entry/consent-form", response_model=EntrySummary)
def submit_consent(user: User = Depends(require_user), db: Session = Depends(get_db)):
    if user.role != UserRole.ADMIN and is_deadline_passed(db, CONSENT_FORM_DEADLINE_KEY):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="The consent form deadline has passed")
    try:
        entry = get_or_create_entry(db, user)
    except Exception:
        db.rollback()
        raise
    entry = submit_consent_form(db, entry)
    return EntrySummary.model_validate(entry)
