from datetime import timedelta

from models import Setting
from site_settings import (
    ADVANCED_START_DATE_KEY,
    DEFAULT_SETTINGS,
    DEFAULT_SITE_TITLE,
    advanced_start_info,
    all_deadlines,
    deadline_info,
    ensure_default_settings,
    get_setting,
    get_settings_map,
    is_deadline_passed,
    site_title,
    upsert_settings,
)
from time_utils import now_tz, parse_datetime_setting


def _day(offset_days):
    return (now_tz() + timedelta(days=offset_days)).strftime("%Y-%m-%d")


def test_bare_date_means_end_of_day_for_deadlines():
    parsed = parse_datetime_setting("2026-04-01", end_of_day=True)
    assert (parsed.hour, parsed.minute, parsed.second) == (23, 59, 59)
    assert parse_datetime_setting("2026-04-01").hour == 0
    assert parse_datetime_setting("not a date") is None
    assert parse_datetime_setting("") is None


def test_deadline_info_flags():
    assert deadline_info(None) is None

    urgent = deadline_info(_day(1))
    assert not urgent["is_expired"]
    assert urgent["is_urgent"]

    later = deadline_info(_day(30))
    assert not later["is_urgent"]
    assert later["days_left"] >= 29

    expired = deadline_info(_day(-2))
    assert expired["is_expired"]
    assert not expired["is_urgent"]


def test_default_settings_seeded_once(db):
    ensure_default_settings(db)
    ensure_default_settings(db)
    settings = get_settings_map(db)
    assert set(DEFAULT_SETTINGS) <= set(settings)
    assert db.query(Setting).filter(Setting.key == "site_title").count() == 1


def test_get_setting_treats_empty_as_default(db):
    upsert_settings(db, {"admin_email": ""})
    assert get_setting(db, "admin_email", "fallback@example.com") == "fallback@example.com"
    upsert_settings(db, {"admin_email": "office@example.com"})
    assert get_setting(db, "admin_email") == "office@example.com"


def test_site_title_default(db):
    assert site_title(db) == DEFAULT_SITE_TITLE
    upsert_settings(db, {"site_title": "Spring Cup"})
    assert site_title(db) == "Spring Cup"


def test_deadline_checks(db):
    upsert_settings(db, {"basic_info_deadline": _day(-1), "consent_form_deadline": _day(5)})
    assert is_deadline_passed(db, "basic_info_deadline")
    assert not is_deadline_passed(db, "consent_form_deadline")
    assert not is_deadline_passed(db, "program_info_deadline")

    deadlines = all_deadlines(db)
    assert deadlines["basic_info"]["is_expired"]
    assert deadlines["consent_form"]["days_left"] >= 4
    assert deadlines["program_info"] is None


def test_advanced_start(db):
    assert advanced_start_info(db) == {"is_available": True, "start_date": None}
    upsert_settings(db, {ADVANCED_START_DATE_KEY: _day(10)})
    assert not advanced_start_info(db)["is_available"]
    upsert_settings(db, {ADVANCED_START_DATE_KEY: _day(-1)})
    assert advanced_start_info(db)["is_available"]
