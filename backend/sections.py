import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from models import (
    ApplicationsInfo,
    BasicInfo,
    EntryFile,
    FinalsInfo,
    PreliminaryInfo,
    ProgramInfo,
    SectionStatus,
    SemifinalsInfo,
    SnsInfo,
)

logger = logging.getLogger(__name__)

PRELIMINARY_VIDEO_PURPOSE = "preliminary_video"
SNS_PRACTICE_VIDEO_PURPOSE = "sns_practice_video"
SNS_INTRODUCTION_VIDEO_PURPOSE = "sns_introduction_highlight"

FILE_PURPOSES = {
    PRELIMINARY_VIDEO_PURPOSE,
    SNS_PRACTICE_VIDEO_PURPOSE,
    SNS_INTRODUCTION_VIDEO_PURPOSE,
    "preliminary_music",
    "semifinals_music",
    "finals_music",
    "semifinals_chaser_song",
    "finals_chaser_song",
    "semifinals_lighting_scene",
    "finals_lighting_scene",
    "program_player_photo",
    "program_semifinal_photo",
    "program_final_photo",
    "consent_form",
    "other",
}


@dataclass(frozen=True)
class SectionSpec:
    name: str
    label: str
    model: Any
    required_fields: Tuple[str, ...]
    advanced: bool = False
    required_true: Tuple[str, ...] = ()
    required_file_purposes: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def status_column(self) -> str:
        return f"{self.name}_status"

    @property
    def deadline_key(self) -> str:
        return f"{self.name}_deadline"


SECTIONS: Dict[str, SectionSpec] = {
    spec.name: spec
    for spec in (
        SectionSpec(
            name="basic_info",
            label="Basic information",
            model=BasicInfo,
            required_fields=(
                "dance_style",
                "category_division",
                "representative_name",
                "representative_furigana",
                "representative_email",
                "partner_name",
                "partner_furigana",
                "phone_number",
                "real_name",
                "real_name_kana",
                "partner_real_name",
                "partner_real_name_kana",
                "emergency_contact_name_1",
                "emergency_contact_phone_1",
            ),
            required_true=("agreement_checked", "privacy_policy_checked"),
        ),
        SectionSpec(
            name="preliminary_info",
            label="Preliminary round",
            model=PreliminaryInfo,
            required_fields=(
                "work_title",
                "work_title_kana",
                "work_story",
                "music_title",
                "cd_title",
                "artist",
                "record_number",
                "jasrac_code",
                "choreographer1_name",
                "choreographer1_furigana",
            ),
            required_file_purposes=(PRELIMINARY_VIDEO_PURPOSE,),
        ),
        SectionSpec(
            name="semifinals_info",
            label="Semifinal round",
            model=SemifinalsInfo,
            required_fields=(
                "work_title",
                "work_character_story",
                "music_title",
                "cd_title",
                "artist",
                "record_number",
                "jasrac_code",
                "music_type",
                "copyright_permission",
            ),
            advanced=True,
        ),
        SectionSpec(
            name="finals_info",
            label="Final round",
            model=FinalsInfo,
            required_fields=(
                "work_title",
                "work_character_story",
                "music_title",
                "cd_title",
                "artist",
                "record_number",
                "jasrac_code",
                "music_type",
                "copyright_permission",
            ),
            advanced=True,
        ),
        SectionSpec(
            name="program_info",
            label="Program listing",
            model=ProgramInfo,
            required_fields=("player_name", "player_name_furigana"),
        ),
        SectionSpec(
            name="sns_info",
            label="SNS",
            model=SnsInfo,
            required_fields=(),
            advanced=True,
            required_file_purposes=(SNS_PRACTICE_VIDEO_PURPOSE, SNS_INTRODUCTION_VIDEO_PURPOSE),
        ),
        SectionSpec(
            name="applications_info",
            label="Applications",
            model=ApplicationsInfo,
            required_fields=(),
            advanced=True,
        ),
    )
}

CONSENT_FORM_DEADLINE_KEY = "consent_form_deadline"

# semifinal fields copied into an existing finals row, keyed by the finals flag
# that must be False for the group to follow the semifinal values
FINALS_SYNC_GROUPS: Dict[str, Tuple[str, ...]] = {
    "music_change": (
        "work_title",
        "work_title_kana",
        "work_character_story",
        "copyright_permission",
        "music_title",
        "artist",
        "cd_title",
        "record_number",
        "jasrac_code",
        "music_type",
        "music_data_path",
    ),
    "sound_change_from_semifinals": (
        "sound_start_timing",
        "chaser_song_designation",
        "chaser_song",
        "fade_out_start_time",
        "fade_out_complete_time",
    ),
    "lighting_change_from_semifinals": (
        "dance_start_timing",
        "lighting_scenes",
        "chaser_exit",
    ),
    "choreographer_change": (
        "choreographer_name",
        "choreographer_name_kana",
    ),
}


def _is_filled(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (list, dict)):
        return len(value) > 0
    if isinstance(value, (int, float)):
        return True
    return str(value).strip() != ""


def row_to_dict(row: Any) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    return {column.name: getattr(row, column.name) for column in row.__table__.columns}


def has_any_data(data: Dict[str, Any], ignore: Iterable[str] = ("id", "entry_id", "created_at", "updated_at")) -> bool:
    skipped = set(ignore)
    return any(_is_filled(value) for key, value in data.items() if key not in skipped)


def missing_fields(spec: SectionSpec, data: Dict[str, Any]) -> List[str]:
    missing = [name for name in spec.required_fields if not _is_filled(data.get(name))]
    missing.extend(name for name in spec.required_true if data.get(name) is not True)
    return missing


def evaluate_section(spec: SectionSpec, data: Optional[Dict[str, Any]], files: Iterable[EntryFile] = ()) -> SectionStatus:
    """Derive a section status from its stored values and uploaded files."""
    uploaded = {f.purpose for f in files if f.purpose}
    has_files = any(purpose in uploaded for purpose in spec.required_file_purposes)
    data = data or {}
    if not has_any_data(data) and not has_files:
        return SectionStatus.NOT_STARTED

    if missing_fields(spec, data):
        return SectionStatus.IN_PROGRESS
    if not all(purpose in uploaded for purpose in spec.required_file_purposes):
        return SectionStatus.IN_PROGRESS
    return SectionStatus.SUBMITTED


def finals_sync_updates(finals: FinalsInfo, semifinals: Dict[str, Any]) -> Dict[str, Any]:
    updates: Dict[str, Any] = {}
    for flag, fields in FINALS_SYNC_GROUPS.items():
        if getattr(finals, flag) is False:
            for name in fields:
                updates[name] = semifinals.get(name)
    return updates
