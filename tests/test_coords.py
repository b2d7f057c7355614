# tests/test_coords.py
import math

from geosync.coords import is_missing, is_suspicious, is_valid


def test_is_valid_ranges_and_edges():
    assert is_valid(40.7128, -74.006)
    assert is_valid(90, 180)
    assert is_valid(-90, -180)
    assert not is_valid(90.0001, 0)
    assert not is_valid(0, -180.5)


def test_is_valid_rejects_absent_and_nan():
    assert not is_valid(None, 10)
    assert not is_valid(10, None)
    assert not is_valid(math.nan, 10)
    assert not is_valid("abc", 10)


def test_is_suspicious_near_origin_only():
    assert is_suspicious(0, 0)
    assert is_suspicious(0.005, -0.009)
    assert not is_suspicious(0.01, 0)
    assert not is_suspicious(0.005, 12.3)


def test_is_missing():
    assert is_missing(None, None)
    assert is_missing(40.0, None)
    assert is_missing(math.nan, -74.0)
    assert is_missing(0.001, 0.002)
    # equator / prime meridian are real places
    assert not is_missing(0, -74.0)
    assert not is_missing(51.4769, 0.0)
    assert not is_missing(40.7128, -74.006)
