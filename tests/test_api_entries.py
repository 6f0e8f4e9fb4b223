from datetime import timedelta

import pytest

import routers.files
from conftest import BASIC_COMPLETE, PRELIMINARY_COMPLETE
from models import EntryFile
from site_settings import upsert_settings
from time_utils import now_tz

JPEG_BYTES = b"\xFF\xD8\xFF\xE0" + b"\x00" * 64
MP4_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64


def _day(offset_days):
    return (now_tz() + timedelta(days=offset_days)).strftime("%Y-%m-%d")


def _upload(client, headers, content, content_type, file_type, purpose=None, name="clip.mp4"):
    data = {"file_type": file_type}
    if purpose:
        data["purpose"] = purpose
    return client.post(
        "/api/entry/files",
        files={"file": (name, content, content_type)},
        data=data,
        headers=headers,
    )


def test_entry_summary_before_any_input(client, participant_headers):
    response = client.get("/api/entry", headers=participant_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["entry"] is None
    assert body["progress"]["basic_info"] == "not_started"
    assert "consent_form" in body["deadlines"]


def test_get_empty_section(client, participant_headers):
    response = client.get("/api/entry/basic-info", headers=participant_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["data"] is None
    assert body["status"] == "not_started"
    assert body["editable"] is True
    assert "dance_style" in body["missing_fields"]


def test_save_basic_info_submits_entry(client, participant_headers):
    response = client.put("/api/entry/basic-info", json=BASIC_COMPLETE, headers=participant_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "submitted"
    assert body["missing_fields"] == []
    assert body["data"]["partner_name"] == "Hanako"

    summary = client.get("/api/entry", headers=participant_headers).json()
    assert summary["entry"]["status"] == "submitted"
    assert summary["entry"]["participant_names"] == "Taro & Hanako"
    assert summary["progress"]["basic_info"] == "submitted"


def test_partial_update_keeps_earlier_fields(client, participant_headers):
    client.put("/api/entry/program-info", json={"player_name": "Taro"}, headers=participant_headers)
    response = client.put("/api/entry/program-info", json={"player_name_furigana": "TARO"}, headers=participant_headers)
    body = response.json()
    assert body["data"]["player_name"] == "Taro"
    assert body["status"] == "submitted"


def test_section_payload_validation(client, participant_headers):
    response = client.put(
        "/api/entry/basic-info", json={"representative_email": "no-at-sign"}, headers=participant_headers
    )
    assert response.status_code == 422
    assert response.json()["error"] == "Invalid request"

    scenes = [{"time": f"0:{i}0"} for i in range(6)]
    response = client.put("/api/entry/semifinals-info", json={"lighting_scenes": scenes}, headers=participant_headers)
    assert response.status_code == 422


def test_json_columns_round_trip(client, participant_headers):
    payload = {
        "related_ticket_count": 2,
        "related_persons": [{"relationship": "Parent", "name": "Mother", "furigana": "MOTHER"}],
        "companions": [{"name": "Coach", "purpose": "Support"}],
    }
    response = client.put("/api/entry/applications-info", json=payload, headers=participant_headers)
    assert response.status_code == 200
    data = client.get("/api/entry/applications-info", headers=participant_headers).json()["data"]
    assert data["related_persons"][0]["name"] == "Mother"
    assert data["companions"][0]["purpose"] == "Support"


def test_deadline_blocks_participant(client, db, participant_headers):
    upsert_settings(db, {"basic_info_deadline": _day(-1)})
    response = client.put("/api/entry/basic-info", json={"dance_style": "Latin"}, headers=participant_headers)
    assert response.status_code == 403
    assert "deadline" in response.json()["error"]
    assert client.get("/api/entry/basic-info", headers=participant_headers).json()["editable"] is False


def test_advanced_sections_wait_for_start_date(client, db, participant_headers):
    upsert_settings(db, {"advanced_start_date": _day(7)})
    blocked = client.put("/api/entry/finals-info", json={"music_title": "Song"}, headers=participant_headers)
    assert blocked.status_code == 403
    allowed = client.put("/api/entry/program-info", json={"player_name": "Taro"}, headers=participant_headers)
    assert allowed.status_code == 200


def test_semifinals_sync_through_api(client, participant_headers):
    client.put("/api/entry/finals-info", json={"music_change": False, "music_title": "Old"}, headers=participant_headers)
    client.put("/api/entry/semifinals-info", json={"music_title": "New", "artist": "Band"}, headers=participant_headers)
    finals = client.get("/api/entry/finals-info", headers=participant_headers).json()["data"]
    assert finals["music_title"] == "New"
    assert finals["artist"] == "Band"


def test_consent_form(client, db, participant_headers):
    response = client.post("/api/entry/consent-form", headers=participant_headers)
    assert response.status_code == 200
    assert response.json()["consent_form_submitted"] is True

    upsert_settings(db, {"consent_form_deadline": _day(-1)})
    assert client.post("/api/entry/consent-form", headers=participant_headers).status_code == 403


def test_failed_upload_bookkeeping_removes_stored_object(client, participant_headers, fake_s3, db, monkeypatch):
    def broken_refresh(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(routers.files, "_refresh_file_sections", broken_refresh)
    with pytest.raises(RuntimeError):
        _upload(client, participant_headers, MP4_BYTES, "video/mp4", "video", "preliminary_video")

    assert fake_s3.objects == {}
    assert len(fake_s3.deleted) == 1
    assert fake_s3.deleted[0].endswith("-clip.mp4")
    assert db.query(EntryFile).count() == 0


def test_upload_preliminary_video_completes_section(client, participant_headers, fake_s3):
    client.put("/api/entry/preliminary-info", json=PRELIMINARY_COMPLETE, headers=participant_headers)
    assert client.get("/api/entry/preliminary-info", headers=participant_headers).json()["status"] == "in_progress"

    response = _upload(client, participant_headers, MP4_BYTES, "video/mp4", "video", "preliminary_video")
    assert response.status_code == 201
    body = response.json()
    assert body["file_path"] in fake_s3.objects
    assert body["file_path"].endswith("-clip.mp4")
    assert body["file_size"] == len(MP4_BYTES)

    assert client.get("/api/entry/preliminary-info", headers=participant_headers).json()["status"] == "submitted"

    files = client.get("/api/entry/files", headers=participant_headers).json()
    assert [item["id"] for item in files] == [body["id"]]

    url = client.get(f"/api/entry/files/{body['id']}/url", headers=participant_headers).json()["url"]
    assert url.startswith("https://fake-s3.local/")

    deleted = client.delete(f"/api/entry/files/{body['id']}", headers=participant_headers)
    assert deleted.status_code == 200
    assert body["file_path"] in fake_s3.deleted
    assert client.get("/api/entry/preliminary-info", headers=participant_headers).json()["status"] == "in_progress"


def test_upload_rejects_mismatched_content(client, participant_headers, fake_s3):
    response = _upload(client, participant_headers, JPEG_BYTES, "image/png", "photo", name="photo.png")
    assert response.status_code == 400
    assert response.json() == {"error": "File content does not match its declared type"}
    assert fake_s3.objects == {}


def test_upload_rejects_unknown_purpose(client, participant_headers):
    response = _upload(client, participant_headers, MP4_BYTES, "video/mp4", "video", "mystery")
    assert response.status_code == 400


def test_upload_rate_limited(client, participant_headers):
    for _ in range(10):
        assert _upload(client, participant_headers, JPEG_BYTES, "image/jpeg", "photo", name="p.jpg").status_code == 201
    response = _upload(client, participant_headers, JPEG_BYTES, "image/jpeg", "photo", name="p.jpg")
    assert response.status_code == 429


def test_other_users_files_are_hidden(client, db, participant_headers):
    from conftest import auth_headers, csrf_headers, make_user

    uploaded = _upload(client, participant_headers, JPEG_BYTES, "image/jpeg", "photo", name="p.jpg").json()
    other = make_user(db, "other@example.com")
    headers = {**auth_headers(other), **csrf_headers(client)}
    assert client.get(f"/api/entry/files/{uploaded['id']}/url", headers=headers).status_code == 404
    assert client.delete(f"/api/entry/files/{uploaded['id']}", headers=headers).status_code == 404


def test_public_deadlines_and_backgrounds(client, db):
    upsert_settings(db, {"program_info_deadline": _day(2)})
    body = client.get("/api/public/deadlines").json()
    assert body["deadlines"]["program_info"]["is_urgent"] is True
    assert body["advanced"]["is_available"] is True

    assert client.get("/api/public/background/nowhere").status_code == 400
    assert client.get("/api/public/background/login").json() == {"page_type": "login", "image_url": None}
