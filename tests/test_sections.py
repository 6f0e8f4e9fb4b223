from types import SimpleNamespace

from conftest import BASIC_COMPLETE, PRELIMINARY_COMPLETE
from models import FinalsInfo, SectionStatus
from sections import (
    PRELIMINARY_VIDEO_PURPOSE,
    SECTIONS,
    SNS_INTRODUCTION_VIDEO_PURPOSE,
    SNS_PRACTICE_VIDEO_PURPOSE,
    evaluate_section,
    finals_sync_updates,
    has_any_data,
    missing_fields,
)


def _file(purpose):
    return SimpleNamespace(purpose=purpose)


def test_empty_section_not_started():
    assert evaluate_section(SECTIONS["basic_info"], None) == SectionStatus.NOT_STARTED
    assert evaluate_section(SECTIONS["basic_info"], {"agreement_checked": False, "phone_number": "  "}) == SectionStatus.NOT_STARTED


def test_partial_section_in_progress():
    assert evaluate_section(SECTIONS["basic_info"], {"dance_style": "Latin"}) == SectionStatus.IN_PROGRESS


def test_basic_info_requires_agreements():
    data = dict(BASIC_COMPLETE, privacy_policy_checked=False)
    assert evaluate_section(SECTIONS["basic_info"], data) == SectionStatus.IN_PROGRESS
    assert missing_fields(SECTIONS["basic_info"], data) == ["privacy_policy_checked"]
    assert evaluate_section(SECTIONS["basic_info"], BASIC_COMPLETE) == SectionStatus.SUBMITTED


def test_preliminary_requires_video_file():
    spec = SECTIONS["preliminary_info"]
    assert evaluate_section(spec, PRELIMINARY_COMPLETE) == SectionStatus.IN_PROGRESS
    assert evaluate_section(spec, PRELIMINARY_COMPLETE, [_file(PRELIMINARY_VIDEO_PURPOSE)]) == SectionStatus.SUBMITTED


def test_uploaded_file_alone_starts_section():
    spec = SECTIONS["sns_info"]
    assert evaluate_section(spec, None, [_file(SNS_PRACTICE_VIDEO_PURPOSE)]) == SectionStatus.IN_PROGRESS
    both = [_file(SNS_PRACTICE_VIDEO_PURPOSE), _file(SNS_INTRODUCTION_VIDEO_PURPOSE)]
    assert evaluate_section(spec, None, both) == SectionStatus.SUBMITTED


def test_unrelated_files_do_not_count():
    spec = SECTIONS["sns_info"]
    assert evaluate_section(spec, None, [_file(PRELIMINARY_VIDEO_PURPOSE)]) == SectionStatus.NOT_STARTED


def test_applications_submitted_with_any_data():
    spec = SECTIONS["applications_info"]
    assert evaluate_section(spec, {"related_ticket_count": 0}) == SectionStatus.SUBMITTED
    assert evaluate_section(spec, {"companions": []}) == SectionStatus.NOT_STARTED


def test_has_any_data_ignores_bookkeeping_columns():
    assert not has_any_data({"id": 1, "entry_id": 2, "created_at": "x"})
    assert has_any_data({"id": 1, "notes": "hello"})


def test_advanced_sections():
    advanced = {name for name, spec in SECTIONS.items() if spec.advanced}
    assert advanced == {"semifinals_info", "finals_info", "sns_info", "applications_info"}


def test_finals_sync_follows_unchanged_groups():
    finals = FinalsInfo(music_change=False, sound_change_from_semifinals=True, lighting_change_from_semifinals=False)
    semis = {
        "music_title": "Song",
        "artist": "Artist",
        "chaser_song": "Other",
        "lighting_scenes": [{"time": "0:10"}],
        "choreographer_name": "C",
    }
    updates = finals_sync_updates(finals, semis)
    assert updates["music_title"] == "Song"
    assert updates["artist"] == "Artist"
    assert updates["lighting_scenes"] == [{"time": "0:10"}]
    assert "chaser_song" not in updates
    # choreographer_change is unset, so that group is left alone
    assert "choreographer_name" not in updates
