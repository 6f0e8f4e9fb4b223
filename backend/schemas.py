from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import datetime
import re

from models import EntryStatus, FileType, SectionStatus, TemplateCategory, UserRole


class EntryStatusEnum(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    SELECTED = "selected"
    REJECTED = "rejected"


class FileTypeEnum(str, Enum):
    MUSIC = "music"
    AUDIO = "audio"
    PHOTO = "photo"
    VIDEO = "video"


class TemplateCategoryEnum(str, Enum):
    ENTRY = "entry"
    SELECTION = "selection"
    REMINDER = "reminder"
    GENERAL = "general"


PHONE_RE = re.compile(r"^[0-9+\-() ]{6,30}$")


def _normalize_phone(value: Optional[str]) -> Optional[str]:
    raw = str(value or "").strip()
    if not raw:
        return value
    if not PHONE_RE.match(raw):
        raise ValueError("Phone number may only contain digits, spaces, +, -, and parentheses")
    return raw


# Auth Schemas
class UserRegister(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Name is required')
        return v


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=10)
    new_password: str = Field(..., min_length=8, max_length=128)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    role: UserRole
    created_at: Optional[datetime] = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse


# Section Schemas
class LightingScene(BaseModel):
    time: Optional[str] = Field(None, max_length=50)
    trigger: Optional[str] = Field(None, max_length=255)
    color_type: Optional[str] = Field(None, max_length=100)
    color_other: Optional[str] = Field(None, max_length=255)
    image_path: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=2000)


class RelatedPerson(BaseModel):
    relationship: Optional[str] = Field(None, max_length=100)
    name: Optional[str] = Field(None, max_length=255)
    furigana: Optional[str] = Field(None, max_length=255)


class Companion(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    furigana: Optional[str] = Field(None, max_length=255)
    purpose: Optional[str] = Field(None, max_length=255)


class BasicInfoUpdate(BaseModel):
    dance_style: Optional[str] = Field(None, max_length=100)
    category_division: Optional[str] = Field(None, max_length=100)
    representative_name: Optional[str] = Field(None, max_length=255)
    representative_furigana: Optional[str] = Field(None, max_length=255)
    representative_email: Optional[str] = Field(None, max_length=255)
    phone_number: Optional[str] = Field(None, max_length=30)
    real_name: Optional[str] = Field(None, max_length=255)
    real_name_kana: Optional[str] = Field(None, max_length=255)
    partner_name: Optional[str] = Field(None, max_length=255)
    partner_furigana: Optional[str] = Field(None, max_length=255)
    partner_real_name: Optional[str] = Field(None, max_length=255)
    partner_real_name_kana: Optional[str] = Field(None, max_length=255)
    emergency_contact_name_1: Optional[str] = Field(None, max_length=255)
    emergency_contact_phone_1: Optional[str] = Field(None, max_length=30)
    emergency_contact_name_2: Optional[str] = Field(None, max_length=255)
    emergency_contact_phone_2: Optional[str] = Field(None, max_length=30)
    choreographer: Optional[str] = Field(None, max_length=255)
    choreographer_furigana: Optional[str] = Field(None, max_length=255)
    agreement_checked: Optional[bool] = None
    media_consent_checked: Optional[bool] = None
    privacy_policy_checked: Optional[bool] = None

    @field_validator('representative_email')
    @classmethod
    def validate_email(cls, v):
        if v and '@' not in v:
            raise ValueError('Representative email must contain @')
        return v.strip() if v else v

    @field_validator('phone_number', 'emergency_contact_phone_1', 'emergency_contact_phone_2')
    @classmethod
    def validate_phone(cls, v):
        return _normalize_phone(v)


class PreliminaryInfoUpdate(BaseModel):
    work_title: Optional[str] = Field(None, max_length=255)
    work_title_kana: Optional[str] = Field(None, max_length=255)
    work_story: Optional[str] = Field(None, max_length=5000)
    video_submitted: Optional[bool] = None
    music_rights_cleared: Optional[str] = Field(None, max_length=50)
    music_title: Optional[str] = Field(None, max_length=255)
    cd_title: Optional[str] = Field(None, max_length=255)
    artist: Optional[str] = Field(None, max_length=255)
    record_number: Optional[str] = Field(None, max_length=100)
    jasrac_code: Optional[str] = Field(None, max_length=100)
    music_type: Optional[str] = Field(None, max_length=50)
    choreographer1_name: Optional[str] = Field(None, max_length=255)
    choreographer1_furigana: Optional[str] = Field(None, max_length=255)
    choreographer2_name: Optional[str] = Field(None, max_length=255)
    choreographer2_furigana: Optional[str] = Field(None, max_length=255)


class StageInfoUpdate(BaseModel):
    work_title: Optional[str] = Field(None, max_length=255)
    work_title_kana: Optional[str] = Field(None, max_length=255)
    work_character_story: Optional[str] = Field(None, max_length=5000)
    copyright_permission: Optional[str] = Field(None, max_length=50)
    music_title: Optional[str] = Field(None, max_length=255)
    cd_title: Optional[str] = Field(None, max_length=255)
    artist: Optional[str] = Field(None, max_length=255)
    record_number: Optional[str] = Field(None, max_length=100)
    jasrac_code: Optional[str] = Field(None, max_length=100)
    music_type: Optional[str] = Field(None, max_length=50)
    music_data_path: Optional[str] = Field(None, max_length=500)
    music_usage_method: Optional[str] = Field(None, max_length=100)
    sound_start_timing: Optional[str] = Field(None, max_length=255)
    chaser_song_designation: Optional[str] = Field(None, max_length=100)
    chaser_song: Optional[str] = Field(None, max_length=500)
    fade_out_start_time: Optional[str] = Field(None, max_length=50)
    fade_out_complete_time: Optional[str] = Field(None, max_length=50)
    dance_start_timing: Optional[str] = Field(None, max_length=255)
    lighting_scenes: Optional[List[LightingScene]] = Field(None, max_length=5)
    chaser_exit: Optional[LightingScene] = None
    choreographer_name: Optional[str] = Field(None, max_length=255)
    choreographer_name_kana: Optional[str] = Field(None, max_length=255)


class SemifinalsInfoUpdate(StageInfoUpdate):
    music_change_from_preliminary: Optional[bool] = None
    choreographer_change_from_preliminary: Optional[bool] = None
    bank_name: Optional[str] = Field(None, max_length=255)
    branch_name: Optional[str] = Field(None, max_length=255)
    account_type: Optional[str] = Field(None, max_length=50)
    account_number: Optional[str] = Field(None, max_length=50)
    account_holder: Optional[str] = Field(None, max_length=255)

    @field_validator('account_number')
    @classmethod
    def validate_account_number(cls, v):
        if v and not v.strip().isdigit():
            raise ValueError('Account number must contain only digits')
        return v.strip() if v else v


class FinalsInfoUpdate(StageInfoUpdate):
    music_change: Optional[bool] = None
    sound_change_from_semifinals: Optional[bool] = None
    lighting_change_from_semifinals: Optional[bool] = None
    choreographer_change: Optional[bool] = None
    choreographer2_name: Optional[str] = Field(None, max_length=255)
    choreographer2_name_kana: Optional[str] = Field(None, max_length=255)
    choreographer_attendance: Optional[str] = Field(None, max_length=100)
    choreographer_photo_permission: Optional[str] = Field(None, max_length=100)


class ProgramInfoUpdate(BaseModel):
    song_count: Optional[str] = Field(None, max_length=20)
    player_name: Optional[str] = Field(None, max_length=255)
    player_name_furigana: Optional[str] = Field(None, max_length=255)
    affiliation: Optional[str] = Field(None, max_length=255)
    player_photo_type: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=5000)
    semifinal_story: Optional[str] = Field(None, max_length=5000)
    semifinal_highlight: Optional[str] = Field(None, max_length=5000)
    final_affiliation: Optional[str] = Field(None, max_length=255)
    final_story: Optional[str] = Field(None, max_length=5000)
    final_highlight: Optional[str] = Field(None, max_length=5000)


class SnsInfoUpdate(BaseModel):
    sns_notes: Optional[str] = Field(None, max_length=5000)


class ApplicationsInfoUpdate(BaseModel):
    related_ticket_count: Optional[int] = Field(None, ge=0, le=5)
    related_persons: Optional[List[RelatedPerson]] = Field(None, max_length=5)
    related_ticket_total_amount: Optional[int] = Field(None, ge=0)
    companions: Optional[List[Companion]] = Field(None, max_length=3)
    companion_total_amount: Optional[int] = Field(None, ge=0)
    makeup_preferred_stylist: Optional[str] = Field(None, max_length=255)
    makeup_name: Optional[str] = Field(None, max_length=255)
    makeup_email: Optional[str] = Field(None, max_length=255)
    makeup_phone: Optional[str] = Field(None, max_length=30)
    makeup_notes: Optional[str] = Field(None, max_length=5000)
    makeup_style1: Optional[str] = Field(None, max_length=255)
    makeup_style2: Optional[str] = Field(None, max_length=255)
    applications_notes: Optional[str] = Field(None, max_length=5000)

    @field_validator('makeup_phone')
    @classmethod
    def validate_phone(cls, v):
        return _normalize_phone(v)


SECTION_PAYLOADS = {
    "basic_info": BasicInfoUpdate,
    "preliminary_info": PreliminaryInfoUpdate,
    "semifinals_info": SemifinalsInfoUpdate,
    "finals_info": FinalsInfoUpdate,
    "program_info": ProgramInfoUpdate,
    "sns_info": SnsInfoUpdate,
    "applications_info": ApplicationsInfoUpdate,
}


class SectionResponse(BaseModel):
    section: str
    status: SectionStatus
    entry_id: Optional[int] = None
    data: Optional[Dict[str, Any]] = None
    missing_fields: List[str] = []
    deadline: Optional[Dict[str, Any]] = None
    editable: bool = True


class EntryFileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    entry_id: int
    file_type: FileType
    purpose: Optional[str] = None
    file_name: str
    file_path: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    download_url: Optional[str] = None


class SelectionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    entry_id: int
    admin_id: Optional[int] = None
    score: Optional[int] = None
    comments: Optional[str] = None
    status: EntryStatus
    updated_at: Optional[datetime] = None


class EntrySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    participant_names: Optional[str] = None
    status: EntryStatus
    basic_info_status: SectionStatus
    preliminary_info_status: SectionStatus
    semifinals_info_status: SectionStatus
    finals_info_status: SectionStatus
    program_info_status: SectionStatus
    sns_info_status: SectionStatus
    applications_info_status: SectionStatus
    consent_form_submitted: Optional[bool] = False
    consent_form_submitted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AdminEntryListItem(EntrySummary):
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    dance_style: Optional[str] = None
    category_division: Optional[str] = None
    score: Optional[int] = None


# Admin Schemas
class BulkStatusUpdate(BaseModel):
    entry_ids: List[int] = Field(..., min_length=1)
    status: EntryStatusEnum


class SelectionUpdate(BaseModel):
    score: Optional[int] = Field(None, ge=1, le=10)
    comments: Optional[str] = Field(None, max_length=5000)
    status: EntryStatusEnum


class BulkDeleteRequest(BaseModel):
    entry_ids: List[int] = Field(..., min_length=1)


class SettingsUpdate(BaseModel):
    settings: Dict[str, Optional[str]]

    @field_validator('settings')
    @classmethod
    def validate_keys(cls, v):
        for key in v:
            if not re.match(r"^[a-z0-9_]{1,100}$", key):
                raise ValueError(f'Invalid setting key: {key}')
        return v


class DeadlinesUpdate(BaseModel):
    deadlines: Dict[str, Optional[str]]


class NotificationTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    subject: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)
    category: TemplateCategoryEnum = TemplateCategoryEnum.GENERAL
    is_active: bool = True


class NotificationTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    subject: Optional[str] = Field(None, min_length=1, max_length=500)
    body: Optional[str] = Field(None, min_length=1)
    category: Optional[TemplateCategoryEnum] = None
    is_active: Optional[bool] = None


class NotificationTemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    subject: str
    body: str
    category: TemplateCategory
    is_active: bool
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CustomEmailRequest(BaseModel):
    to: EmailStr
    subject: str = Field(..., min_length=1, max_length=500)
    template_id: str = Field(..., min_length=1, max_length=100)
    data: Dict[str, Any] = {}
    entry_id: Optional[int] = None


class BulkEmailRequest(BaseModel):
    entry_ids: List[int] = Field(..., min_length=1)
    template_id: Optional[int] = None
    subject: Optional[str] = Field(None, max_length=500)
    body: Optional[str] = None


class WelcomeEmailRequest(BaseModel):
    user_id: int


class EmailLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    entry_id: Optional[int] = None
    recipient_email: str
    subject: str
    sent_by: Optional[int] = None
    status: str
    error: Optional[str] = None
    sent_at: Optional[datetime] = None


class AdminLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    admin_id: Optional[int] = None
    admin_email: str
    action: str
    method: Optional[str] = None
    path: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class CsvImportResult(BaseModel):
    success: int
    failed: int
    errors: List[str]
