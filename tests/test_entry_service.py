import pytest

import entry_service
from conftest import BASIC_COMPLETE, make_user
from entry_service import (
    MAX_IMPORT_ERRORS,
    delete_entries,
    get_entry_for_user,
    import_entries,
    save_section,
    upsert_selection,
)
from models import (
    BasicInfo,
    EmailLog,
    Entry,
    EntryFile,
    EntryStatus,
    FileType,
    FinalsInfo,
    SectionStatus,
    Selection,
    User,
    UserRole,
)


def test_first_save_creates_entry_and_row(db, participant):
    entry, row, status = save_section(db, participant, "program_info", {"player_name": "Taro"})
    assert entry.user_id == participant.id
    assert row.entry_id == entry.id
    assert status == SectionStatus.IN_PROGRESS
    assert entry.program_info_status == SectionStatus.IN_PROGRESS
    assert entry.status == EntryStatus.PENDING


def test_second_save_updates_same_row(db, participant):
    entry, first, _ = save_section(db, participant, "program_info", {"player_name": "Taro"})
    _, second, status = save_section(db, participant, "program_info", {"player_name_furigana": "TARO"})
    assert first.id == second.id
    assert second.player_name == "Taro"
    assert status == SectionStatus.SUBMITTED
    assert db.query(Entry).count() == 1


def test_submitted_basic_info_moves_entry_to_submitted(db, participant):
    entry, _row, status = save_section(db, participant, "basic_info", dict(BASIC_COMPLETE))
    assert status == SectionStatus.SUBMITTED
    assert entry.status == EntryStatus.SUBMITTED
    assert entry.participant_names == "Taro & Hanako"


def test_failed_first_save_leaves_nothing_behind(db, participant, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("status refresh failed")

    monkeypatch.setattr(entry_service, "refresh_section_status", boom)
    with pytest.raises(RuntimeError):
        save_section(db, participant, "program_info", {"player_name": "Taro"})
    assert db.query(Entry).count() == 0
    assert get_entry_for_user(db, participant) is None


def test_semifinals_save_syncs_unchanged_finals_groups(db, participant):
    entry, _, _ = save_section(
        db, participant, "finals_info",
        {"music_change": False, "sound_change_from_semifinals": True, "chaser_song": "Finals chaser"},
    )
    save_section(
        db, participant, "semifinals_info",
        {"music_title": "Semi song", "artist": "Semi artist", "chaser_song": "Semi chaser"},
    )
    finals = db.query(FinalsInfo).filter(FinalsInfo.entry_id == entry.id).one()
    assert finals.music_title == "Semi song"
    assert finals.artist == "Semi artist"
    assert finals.chaser_song == "Finals chaser"


def test_selection_updates_entry_status(db, participant, admin):
    entry, _, _ = save_section(db, participant, "program_info", {"player_name": "Taro"})
    selection = upsert_selection(db, entry, admin, 8, "Strong", EntryStatus.SELECTED)
    assert selection.score == 8
    db.refresh(entry)
    assert entry.status == EntryStatus.SELECTED

    upsert_selection(db, entry, admin, None, None, EntryStatus.REJECTED)
    assert db.query(Selection).count() == 1
    db.refresh(entry)
    assert entry.status == EntryStatus.REJECTED


def test_delete_entries_cascades_and_keeps_email_logs(db, participant, admin):
    entry, _, _ = save_section(db, participant, "basic_info", dict(BASIC_COMPLETE))
    db.add(EntryFile(entry_id=entry.id, file_type=FileType.VIDEO, file_name="a.mp4", file_path="1/1/video/a.mp4"))
    db.add(EmailLog(entry_id=entry.id, recipient_email="dancer@example.com", subject="Hi", status="sent"))
    db.commit()
    upsert_selection(db, entry, admin, 5, None, EntryStatus.SELECTED)

    deleted_ids, keys = delete_entries(db, [entry.id, 9999])
    assert deleted_ids == [entry.id]
    assert keys == ["1/1/video/a.mp4"]
    db.expire_all()
    assert db.query(Entry).count() == 0
    assert db.query(BasicInfo).count() == 0
    assert db.query(EntryFile).count() == 0
    assert db.query(Selection).count() == 0
    log = db.query(EmailLog).one()
    assert log.entry_id is None


def test_delete_unknown_entries(db):
    assert delete_entries(db, [123]) == ([], [])


def test_import_entries(db):
    make_user(db, "existing@example.com", name="Existing")
    rows = [
        ["Ballroom", "Pro", "Taro", "TARO", "Taro@Example.com", "090", "Hanako", "HANAKO"],
        ["Latin", "Amateur", "Existing", "EXISTING", "existing@example.com", "", "", ""],
        ["Latin", "", "No Category", "", "x@example.com"],
        ["Latin", "Amateur", "Bad Email", "", "not-an-email"],
    ]
    result = import_entries(db, rows)
    assert result["success"] == 2
    assert result["failed"] == 2
    assert result["errors"][0].startswith("Row 3:")
    assert result["errors"][1].startswith("Row 4:")

    taro = db.query(User).filter(User.email == "taro@example.com").one()
    assert taro.role == UserRole.PARTICIPANT
    assert taro.hashed_password is None
    entry = get_entry_for_user(db, taro)
    assert entry.participant_names == "Taro & Hanako"
    assert entry.basic_info_status == SectionStatus.IN_PROGRESS
    assert db.query(User).filter(User.email == "existing@example.com").count() == 1


def test_import_error_list_is_capped(db):
    rows = [["", "", "", "", ""] for _ in range(MAX_IMPORT_ERRORS + 5)]
    result = import_entries(db, rows)
    assert result["failed"] == MAX_IMPORT_ERRORS + 5
    assert len(result["errors"]) == MAX_IMPORT_ERRORS
