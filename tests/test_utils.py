from datetime import date, datetime, time

import pytest

from bookings.utils import (
    cell_text,
    format_date,
    has_value,
    is_present,
    is_valid_time_range,
    normalize_phone,
    parse_date,
    parse_time,
    split_name,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-01-15", date(2024, 1, 15)),
        ("15/01/2024", date(2024, 1, 15)),
        ("15-01-2024", date(2024, 1, 15)),
        ("2024/01/15", date(2024, 1, 15)),
        (" 2024-01-15 ", date(2024, 1, 15)),
        ("January 15, 2024", date(2024, 1, 15)),
    ],
)
def test_parse_date_formats(raw, expected):
    assert parse_date(raw) == expected


def test_shaped_date_reads_day_first():
    assert parse_date("03/04/2024") == date(2024, 4, 3)


def test_impossible_shaped_date_falls_back_to_generic_parse():
    # not a valid day/month reading, the generic parser reads it month-first
    assert parse_date("12/31/2024") == date(2024, 12, 31)


@pytest.mark.parametrize("raw", ["not-a-date", "", "   ", None, "2024-02-30", float("nan")])
def test_parse_date_invalid(raw):
    assert parse_date(raw) is None


def test_parse_date_accepts_spreadsheet_values():
    assert parse_date(datetime(2024, 1, 15, 8, 0)) == date(2024, 1, 15)
    assert parse_date(date(2024, 1, 15)) == date(2024, 1, 15)


@pytest.mark.parametrize("text", ["2024-01-15", "1999-12-31", "2024-02-29"])
def test_iso_date_round_trip(text):
    assert format_date(parse_date(text)) == text


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("09:00", "09:00"),
        ("9:05", "09:05"),
        ("23:59", "23:59"),
        ("0:00", "00:00"),
        ("2:30 PM", "14:30"),
        ("12:00 AM", "00:00"),
        ("12:15 pm", "12:15"),
        ("11:45am", "11:45"),
        ("  7:10   PM ", "19:10"),
    ],
)
def test_parse_time(raw, expected):
    assert parse_time(raw) == expected


@pytest.mark.parametrize("raw", ["24:00", "9:60", "13:00 PM", "930", "9:5", "noon", "", None, "09:00:00"])
def test_parse_time_invalid(raw):
    assert parse_time(raw) is None


def test_parse_time_accepts_time_objects():
    assert parse_time(time(8, 5)) == "08:05"


@pytest.mark.parametrize("clock", ["00:00", "09:30", "12:00", "23:59"])
def test_canonical_time_is_unchanged(clock):
    assert parse_time(clock) == clock


@pytest.mark.parametrize(
    "start, end",
    [("09:00", "09:30"), ("9:00 AM", "1:00 PM"), ("11:59", "12:00")],
)
def test_time_range_is_anti_symmetric(start, end):
    assert is_valid_time_range(start, end)
    assert not is_valid_time_range(end, start)


def test_time_range_rejects_equal_and_unparseable():
    assert not is_valid_time_range("09:00", "09:00")
    assert not is_valid_time_range("09:00", "later")
    assert not is_valid_time_range("10:00", "09:00")


def test_has_value():
    assert has_value("x")
    assert has_value(0)
    assert not has_value("  ")
    assert not has_value(None)
    assert not has_value(float("nan"))


def test_is_present_counts_blank_text():
    assert is_present("  ")
    assert is_present(0)
    assert not is_present(None)
    assert not is_present(float("nan"))


def test_phone_and_name_helpers():
    assert normalize_phone("(415) 555-0142") == "4155550142"
    assert normalize_phone(None) == ""
    assert split_name("Mary Ann Jones") == ("Mary", "Ann Jones")
    assert split_name("Cher") == ("Cher", "")
    assert cell_text("  booked ") == "booked"
    assert cell_text(None) == ""
