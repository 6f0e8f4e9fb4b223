import csv
import enum
import io
import json
from datetime import date, datetime
from typing import Any, Iterable, List, Sequence, Tuple

from openpyxl import Workbook

BOM = "\ufeff"

IMPORT_TEMPLATE_COLUMNS = [
    "dance_style",
    "category_division",
    "representative_name",
    "representative_furigana",
    "representative_email",
    "phone_number",
    "partner_name",
    "partner_furigana",
]

IMPORT_TEMPLATE_SAMPLE = [
    "Ballroom",
    "Professional",
    "Taro Valqua",
    "TARO VALQUA",
    "taro@example.com",
    "090-1234-5678",
    "Hanako Valqua",
    "HANAKO VALQUA",
]

ENTRY_EXPORT_PREFIX: List[Tuple[str, str]] = [
    ("entry_id", "Entry ID"),
    ("user_name", "User name"),
    ("user_email", "Email"),
    ("entry_status", "Entry status"),
    ("section_status", "Section status"),
]

SECTION_EXPORT_COLUMNS: dict = {
    "basic_info": [
        ("dance_style", "Dance style"),
        ("category_division", "Category"),
        ("representative_name", "Representative"),
        ("representative_furigana", "Representative furigana"),
        ("representative_email", "Representative email"),
        ("phone_number", "Phone"),
        ("real_name", "Real name"),
        ("real_name_kana", "Real name kana"),
        ("partner_name", "Partner"),
        ("partner_furigana", "Partner furigana"),
        ("partner_real_name", "Partner real name"),
        ("partner_real_name_kana", "Partner real name kana"),
        ("emergency_contact_name_1", "Emergency contact 1"),
        ("emergency_contact_phone_1", "Emergency phone 1"),
        ("emergency_contact_name_2", "Emergency contact 2"),
        ("emergency_contact_phone_2", "Emergency phone 2"),
        ("agreement_checked", "Agreement"),
        ("media_consent_checked", "Media consent"),
        ("privacy_policy_checked", "Privacy policy"),
    ],
    "preliminary_info": [
        ("work_title", "Work title"),
        ("work_title_kana", "Work title kana"),
        ("work_story", "Story"),
        ("video_submitted", "Video submitted"),
        ("music_rights_cleared", "Music rights"),
        ("music_title", "Music title"),
        ("cd_title", "CD title"),
        ("artist", "Artist"),
        ("record_number", "Record number"),
        ("jasrac_code", "JASRAC code"),
        ("music_type", "Music type"),
        ("choreographer1_name", "Choreographer 1"),
        ("choreographer1_furigana", "Choreographer 1 furigana"),
        ("choreographer2_name", "Choreographer 2"),
        ("choreographer2_furigana", "Choreographer 2 furigana"),
    ],
    "semifinals_info": [
        ("music_change_from_preliminary", "Music changed from preliminary"),
        ("work_title", "Work title"),
        ("work_title_kana", "Work title kana"),
        ("work_character_story", "Character story"),
        ("copyright_permission", "Copyright permission"),
        ("music_title", "Music title"),
        ("cd_title", "CD title"),
        ("artist", "Artist"),
        ("record_number", "Record number"),
        ("jasrac_code", "JASRAC code"),
        ("music_type", "Music type"),
        ("music_usage_method", "Music usage"),
        ("sound_start_timing", "Sound start"),
        ("chaser_song_designation", "Chaser designation"),
        ("chaser_song", "Chaser song"),
        ("fade_out_start_time", "Fade out start"),
        ("fade_out_complete_time", "Fade out complete"),
        ("dance_start_timing", "Dance start"),
        ("lighting_scenes", "Lighting scenes"),
        ("choreographer_name", "Choreographer"),
        ("choreographer_name_kana", "Choreographer kana"),
        ("bank_name", "Bank"),
        ("branch_name", "Branch"),
        ("account_type", "Account type"),
        ("account_number", "Account number"),
        ("account_holder", "Account holder"),
    ],
    "finals_info": [
        ("music_change", "Music changed"),
        ("sound_change_from_semifinals", "Sound changed"),
        ("lighting_change_from_semifinals", "Lighting changed"),
        ("choreographer_change", "Choreographer changed"),
        ("work_title", "Work title"),
        ("work_title_kana", "Work title kana"),
        ("work_character_story", "Character story"),
        ("copyright_permission", "Copyright permission"),
        ("music_title", "Music title"),
        ("cd_title", "CD title"),
        ("artist", "Artist"),
        ("record_number", "Record number"),
        ("jasrac_code", "JASRAC code"),
        ("music_type", "Music type"),
        ("sound_start_timing", "Sound start"),
        ("chaser_song", "Chaser song"),
        ("dance_start_timing", "Dance start"),
        ("lighting_scenes", "Lighting scenes"),
        ("choreographer_name", "Choreographer"),
        ("choreographer_name_kana", "Choreographer kana"),
        ("choreographer2_name", "Choreographer 2"),
        ("choreographer2_name_kana", "Choreographer 2 kana"),
        ("choreographer_attendance", "Choreographer attendance"),
        ("choreographer_photo_permission", "Choreographer photo permission"),
    ],
    "program_info": [
        ("song_count", "Song count"),
        ("player_name", "Player name"),
        ("player_name_furigana", "Player name furigana"),
        ("affiliation", "Affiliation"),
        ("player_photo_type", "Photo type"),
        ("semifinal_story", "Semifinal story"),
        ("semifinal_highlight", "Semifinal highlight"),
        ("final_affiliation", "Final affiliation"),
        ("final_story", "Final story"),
        ("final_highlight", "Final highlight"),
        ("notes", "Notes"),
    ],
    "sns_info": [
        ("sns_notes", "Notes"),
    ],
    "applications_info": [
        ("related_ticket_count", "Related tickets"),
        ("related_persons", "Related persons"),
        ("related_ticket_total_amount", "Ticket total"),
        ("companions", "Companions"),
        ("companion_total_amount", "Companion total"),
        ("makeup_preferred_stylist", "Preferred stylist"),
        ("makeup_name", "Makeup name"),
        ("makeup_email", "Makeup email"),
        ("makeup_phone", "Makeup phone"),
        ("makeup_style1", "Makeup style 1"),
        ("makeup_style2", "Makeup style 2"),
        ("makeup_notes", "Makeup notes"),
        ("applications_notes", "Notes"),
    ],
}


def template_columns(template_type: str) -> Tuple[List[str], List[str]]:
    """Return ``(columns, sample_row)`` for a template type."""
    if template_type == "entries":
        return list(IMPORT_TEMPLATE_COLUMNS), list(IMPORT_TEMPLATE_SAMPLE)
    columns = SECTION_EXPORT_COLUMNS.get(template_type)
    if columns is None:
        raise KeyError(template_type)
    return [key for key, _ in columns], ["" for _ in columns]


def format_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return str(value.value)
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def write_csv(headers: Sequence[Any], rows: Iterable[Sequence[Any]], bom: bool = True) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([format_cell(h) for h in headers])
    for row in rows:
        writer.writerow([format_cell(v) for v in row])
    text = output.getvalue()
    return f"{BOM}{text}" if bom else text


def generate_csv(columns: Sequence[str], sample_row: Sequence[Any]) -> str:
    return write_csv(columns, [sample_row])


def parse_csv(text: str) -> List[List[str]]:
    if text.startswith(BOM):
        text = text[len(BOM):]
    reader = csv.reader(io.StringIO(text, newline=""))
    return [row for row in reader if row]


def clean_import_value(value: Any) -> str:
    return str(value or "").strip().replace('"', "").replace("\r", "").replace("\n", "")


def build_xlsx(title: str, headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> io.BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]
    ws.append(list(headers))
    for row in rows:
        ws.append([format_cell(v) for v in row])

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return output
