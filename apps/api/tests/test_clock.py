import os
import sys
from datetime import datetime, timedelta, timezone

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.clock import add_months, isoformat_utc, seconds_until_next_utc_midnight, utc_date_key


def test_isoformat_has_millis_and_z():
    dt = datetime(2024, 3, 15, 18, 30, 5, 123456, tzinfo=timezone.utc)
    assert isoformat_utc(dt) == "2024-03-15T18:30:05.123Z"


def test_isoformat_converts_offsets_to_utc():
    dt = datetime(2024, 3, 15, 20, 0, tzinfo=timezone(timedelta(hours=2)))
    assert isoformat_utc(dt) == "2024-03-15T18:00:00.000Z"


def test_date_key_uses_utc_day():
    late_evening_west = datetime(2024, 3, 15, 22, 0, tzinfo=timezone(timedelta(hours=-5)))
    assert utc_date_key(late_evening_west) == "2024-03-16"


def test_seconds_until_midnight():
    assert seconds_until_next_utc_midnight(datetime(2024, 3, 15, 23, 59, 0, tzinfo=timezone.utc)) == 60
    assert seconds_until_next_utc_midnight(datetime(2024, 3, 15, 0, 0, tzinfo=timezone.utc)) == 86400
    assert seconds_until_next_utc_midnight(datetime(2024, 3, 15, 23, 59, 59, 999999, tzinfo=timezone.utc)) == 1


def test_add_months_across_year_and_month_end():
    assert add_months(datetime(2024, 11, 30, tzinfo=timezone.utc), 3) == datetime(2025, 2, 28, tzinfo=timezone.utc)
    assert add_months(datetime(2024, 3, 31, tzinfo=timezone.utc), 1) == datetime(2024, 4, 30, tzinfo=timezone.utc)
