import html as html_lib
import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from sections import SECTIONS

# matches both <tag> and {{ tag }}
PLACEHOLDER_PATTERN = re.compile(r"<([a-z0-9_]+)>|\{\{\s*([a-z0-9_]+)\s*\}\}", re.IGNORECASE)

USER_TAGS = ("name", "email")
ENTRY_TAGS = ("entry_id", "participant_names", "status", "created_at", "updated_at")
SELECTION_TAGS = ("score", "comments")
BASIC_INFO_TAGS = (
    "dance_style",
    "category_division",
    "representative_name",
    "representative_email",
    "partner_name",
    "phone_number",
)
STATUS_TAGS = tuple(spec.status_column for spec in SECTIONS.values())

ALLOWED_TAGS = frozenset(
    USER_TAGS + ENTRY_TAGS + SELECTION_TAGS + BASIC_INFO_TAGS + STATUS_TAGS + ("site_title",)
)

_TEXT_RULES = (
    (re.compile(r"<\s*br\s*/?>", re.IGNORECASE), "\n"),
    (re.compile(r"<\s*/(p|h[1-6]|li|div)\s*>", re.IGNORECASE), "\n"),
    (re.compile(r"<[^>]+>"), ""),
)


def _display(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def build_entry_context(entry, user=None, site_title: Optional[str] = None) -> Dict[str, Any]:
    """Collect the placeholder values for one entry and its owner."""
    user = user or entry.user
    context: Dict[str, Any] = {"site_title": site_title, "entry_id": entry.id}
    for tag in USER_TAGS:
        context[tag] = getattr(user, tag) if user else ""
    for tag in ENTRY_TAGS[1:] + STATUS_TAGS:
        context[tag] = getattr(entry, tag)
    for tag in SELECTION_TAGS:
        context[tag] = getattr(entry.selection, tag) if entry.selection else None
    for tag in BASIC_INFO_TAGS:
        context[tag] = getattr(entry.basic_info, tag) if entry.basic_info else None
    return context


def render_email_template(template: str, context: Dict[str, Any], *, html_mode: bool) -> str:
    """Fill allow-listed placeholders; unknown ones are left as written."""
    if not template:
        return ""

    def substitute(match: re.Match) -> str:
        tag = (match.group(1) or match.group(2)).lower()
        if tag not in ALLOWED_TAGS:
            return match.group(0)
        value = _display(context.get(tag))
        return html_lib.escape(value) if html_mode else value

    return PLACEHOLDER_PATTERN.sub(substitute, template)


def derive_text_from_html(html: str) -> str:
    if not html:
        return ""
    text = html
    for pattern, replacement in _TEXT_RULES:
        text = pattern.sub(replacement, text)
    lines = (" ".join(line.split()) for line in html_lib.unescape(text).splitlines())
    return "\n".join(line for line in lines if line)


def available_tags() -> Iterable[str]:
    return sorted(ALLOWED_TAGS)
