from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SQLEnum, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base
import enum


class UserRole(enum.Enum):
    PARTICIPANT = "participant"
    ADMIN = "admin"


class EntryStatus(enum.Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    SELECTED = "selected"
    REJECTED = "rejected"


class SectionStatus(enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


class FileType(enum.Enum):
    MUSIC = "music"
    AUDIO = "audio"
    PHOTO = "photo"
    VIDEO = "video"


class TemplateCategory(enum.Enum):
    ENTRY = "entry"
    SELECTION = "selection"
    REMINDER = "reminder"
    GENERAL = "general"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), default=UserRole.PARTICIPANT, nullable=False)
    hashed_password = Column(String(255), nullable=True)
    password_reset_token_hash = Column(String(255), nullable=True, index=True)
    password_reset_expires_at = Column(DateTime(timezone=True), nullable=True)
    password_reset_sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    entries = relationship("Entry", back_populates="user")


class Entry(Base):
    __tablename__ = "entries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    participant_names = Column(String(500), nullable=True)
    status = Column(SQLEnum(EntryStatus), default=EntryStatus.PENDING, nullable=False)
    basic_info_status = Column(SQLEnum(SectionStatus), default=SectionStatus.NOT_STARTED, nullable=False)
    preliminary_info_status = Column(SQLEnum(SectionStatus), default=SectionStatus.NOT_STARTED, nullable=False)
    semifinals_info_status = Column(SQLEnum(SectionStatus), default=SectionStatus.NOT_STARTED, nullable=False)
    finals_info_status = Column(SQLEnum(SectionStatus), default=SectionStatus.NOT_STARTED, nullable=False)
    program_info_status = Column(SQLEnum(SectionStatus), default=SectionStatus.NOT_STARTED, nullable=False)
    sns_info_status = Column(SQLEnum(SectionStatus), default=SectionStatus.NOT_STARTED, nullable=False)
    applications_info_status = Column(SQLEnum(SectionStatus), default=SectionStatus.NOT_STARTED, nullable=False)
    consent_form_submitted = Column(Boolean, default=False)
    consent_form_submitted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="entries")
    files = relationship("EntryFile", back_populates="entry", cascade="all, delete-orphan")
    selection = relationship("Selection", back_populates="entry", uselist=False, cascade="all, delete-orphan")
    basic_info = relationship("BasicInfo", uselist=False, cascade="all, delete-orphan")
    preliminary_info = relationship("PreliminaryInfo", uselist=False, cascade="all, delete-orphan")
    semifinals_info = relationship("SemifinalsInfo", uselist=False, cascade="all, delete-orphan")
    finals_info = relationship("FinalsInfo", uselist=False, cascade="all, delete-orphan")
    program_info = relationship("ProgramInfo", uselist=False, cascade="all, delete-orphan")
    sns_info = relationship("SnsInfo", uselist=False, cascade="all, delete-orphan")
    applications_info = relationship("ApplicationsInfo", uselist=False, cascade="all, delete-orphan")


class BasicInfo(Base):
    __tablename__ = "basic_info"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("entries.id"), unique=True, nullable=False)
    dance_style = Column(String(100), nullable=True)
    category_division = Column(String(100), nullable=True)
    representative_name = Column(String(255), nullable=True)
    representative_furigana = Column(String(255), nullable=True)
    representative_email = Column(String(255), nullable=True)
    phone_number = Column(String(30), nullable=True)
    real_name = Column(String(255), nullable=True)
    real_name_kana = Column(String(255), nullable=True)
    partner_name = Column(String(255), nullable=True)
    partner_furigana = Column(String(255), nullable=True)
    partner_real_name = Column(String(255), nullable=True)
    partner_real_name_kana = Column(String(255), nullable=True)
    emergency_contact_name_1 = Column(String(255), nullable=True)
    emergency_contact_phone_1 = Column(String(30), nullable=True)
    emergency_contact_name_2 = Column(String(255), nullable=True)
    emergency_contact_phone_2 = Column(String(30), nullable=True)
    choreographer = Column(String(255), nullable=True)
    choreographer_furigana = Column(String(255), nullable=True)
    agreement_checked = Column(Boolean, default=False)
    media_consent_checked = Column(Boolean, default=False)
    privacy_policy_checked = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class PreliminaryInfo(Base):
    __tablename__ = "preliminary_info"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("entries.id"), unique=True, nullable=False)
    work_title = Column(String(255), nullable=True)
    work_title_kana = Column(String(255), nullable=True)
    work_story = Column(Text, nullable=True)
    video_submitted = Column(Boolean, default=False)
    music_rights_cleared = Column(String(50), nullable=True)
    music_title = Column(String(255), nullable=True)
    cd_title = Column(String(255), nullable=True)
    artist = Column(String(255), nullable=True)
    record_number = Column(String(100), nullable=True)
    jasrac_code = Column(String(100), nullable=True)
    music_type = Column(String(50), nullable=True)
    choreographer1_name = Column(String(255), nullable=True)
    choreographer1_furigana = Column(String(255), nullable=True)
    choreographer2_name = Column(String(255), nullable=True)
    choreographer2_furigana = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class StageInfoColumns:
    """Music, sound and lighting columns shared by the semifinal and final forms."""

    work_title = Column(String(255), nullable=True)
    work_title_kana = Column(String(255), nullable=True)
    work_character_story = Column(Text, nullable=True)
    copyright_permission = Column(String(50), nullable=True)
    music_title = Column(String(255), nullable=True)
    cd_title = Column(String(255), nullable=True)
    artist = Column(String(255), nullable=True)
    record_number = Column(String(100), nullable=True)
    jasrac_code = Column(String(100), nullable=True)
    music_type = Column(String(50), nullable=True)
    music_data_path = Column(String(500), nullable=True)
    music_usage_method = Column(String(100), nullable=True)
    sound_start_timing = Column(String(255), nullable=True)
    chaser_song_designation = Column(String(100), nullable=True)
    chaser_song = Column(String(500), nullable=True)
    fade_out_start_time = Column(String(50), nullable=True)
    fade_out_complete_time = Column(String(50), nullable=True)
    dance_start_timing = Column(String(255), nullable=True)
    lighting_scenes = Column(JSON, nullable=True)  # [{"time", "trigger", "color_type", "color_other", "image_path", "notes"}, ...]
    chaser_exit = Column(JSON, nullable=True)
    choreographer_name = Column(String(255), nullable=True)
    choreographer_name_kana = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class SemifinalsInfo(StageInfoColumns, Base):
    __tablename__ = "semifinals_info"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("entries.id"), unique=True, nullable=False)
    music_change_from_preliminary = Column(Boolean, default=False)
    choreographer_change_from_preliminary = Column(Boolean, default=False)
    bank_name = Column(String(255), nullable=True)
    branch_name = Column(String(255), nullable=True)
    account_type = Column(String(50), nullable=True)
    account_number = Column(String(50), nullable=True)
    account_holder = Column(String(255), nullable=True)


class FinalsInfo(StageInfoColumns, Base):
    __tablename__ = "finals_info"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("entries.id"), unique=True, nullable=False)
    music_change = Column(Boolean, nullable=True)
    sound_change_from_semifinals = Column(Boolean, nullable=True)
    lighting_change_from_semifinals = Column(Boolean, nullable=True)
    choreographer_change = Column(Boolean, nullable=True)
    choreographer2_name = Column(String(255), nullable=True)
    choreographer2_name_kana = Column(String(255), nullable=True)
    choreographer_attendance = Column(String(100), nullable=True)
    choreographer_photo_permission = Column(String(100), nullable=True)


class ProgramInfo(Base):
    __tablename__ = "program_info"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("entries.id"), unique=True, nullable=False)
    song_count = Column(String(20), nullable=True)
    player_name = Column(String(255), nullable=True)
    player_name_furigana = Column(String(255), nullable=True)
    affiliation = Column(String(255), nullable=True)
    player_photo_type = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    semifinal_story = Column(Text, nullable=True)
    semifinal_highlight = Column(Text, nullable=True)
    final_affiliation = Column(String(255), nullable=True)
    final_story = Column(Text, nullable=True)
    final_highlight = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class SnsInfo(Base):
    __tablename__ = "sns_info"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("entries.id"), unique=True, nullable=False)
    sns_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class ApplicationsInfo(Base):
    __tablename__ = "applications_info"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("entries.id"), unique=True, nullable=False)
    related_ticket_count = Column(Integer, nullable=True)
    related_persons = Column(JSON, nullable=True)  # [{"relationship", "name", "furigana"}, ...]
    related_ticket_total_amount = Column(Integer, nullable=True)
    companions = Column(JSON, nullable=True)  # [{"name", "furigana", "purpose"}, ...]
    companion_total_amount = Column(Integer, nullable=True)
    makeup_preferred_stylist = Column(String(255), nullable=True)
    makeup_name = Column(String(255), nullable=True)
    makeup_email = Column(String(255), nullable=True)
    makeup_phone = Column(String(30), nullable=True)
    makeup_notes = Column(Text, nullable=True)
    makeup_style1 = Column(String(255), nullable=True)
    makeup_style2 = Column(String(255), nullable=True)
    applications_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class EntryFile(Base):
    __tablename__ = "entry_files"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("entries.id"), nullable=False, index=True)
    file_type = Column(SQLEnum(FileType), nullable=False)
    purpose = Column(String(100), nullable=True)  # "preliminary_video", "sns_practice_video", ...
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=True)
    mime_type = Column(String(100), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now())

    entry = relationship("Entry", back_populates="files")


class Selection(Base):
    __tablename__ = "selections"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("entries.id"), unique=True, nullable=False)
    admin_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    score = Column(Integer, nullable=True)
    comments = Column(Text, nullable=True)
    status = Column(SQLEnum(EntryStatus), default=EntryStatus.PENDING, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    entry = relationship("Entry", back_populates="selection")


class Setting(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False)
    value = Column(Text, nullable=False, default="")
    description = Column(String(500), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class NotificationTemplate(Base):
    __tablename__ = "notification_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=False)
    category = Column(SQLEnum(TemplateCategory), default=TemplateCategory.GENERAL, nullable=False)
    is_active = Column(Boolean, default=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class EmailLog(Base):
    __tablename__ = "email_logs"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("entries.id"), nullable=True, index=True)
    recipient_email = Column(String(255), nullable=False)
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=True)
    sent_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    status = Column(String(20), nullable=False)  # "sent" | "failed"
    error = Column(Text, nullable=True)
    sent_at = Column(DateTime(timezone=True), server_default=func.now())


class AdminLog(Base):
    __tablename__ = "admin_logs"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(Integer, nullable=True)
    admin_email = Column(String(255), nullable=False)
    action = Column(String(255), nullable=False)
    method = Column(String(10), nullable=True)
    path = Column(String(255), nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
