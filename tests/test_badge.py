"""Tests for covgate/reports/badge.py"""

from decimal import Decimal

import pytest

from covgate.models import Source
from covgate.reports.badge import ParseError, load_local_report, parse_coverage

GRCOV_BADGE = (
    b'<svg xmlns="http://www.w3.org/2000/svg" width="104" height="20">'
    b"<title>coverage: 82.3%</title>"
    b'<linearGradient id="s" x2="0" y2="100%"><stop offset="0" stop-color="#bbb"/></linearGradient>'
    b'<text x="81.5" y="14">82%</text></svg>'
)


# ---------------------------------------------------------------------------
# parse_coverage: happy path
# ---------------------------------------------------------------------------

def test_parse_grcov_badge():
    assert parse_coverage(GRCOV_BADGE) == Decimal("82.3")


def test_parse_plain_text():
    assert parse_coverage("...coverage: 87.5%...") == Decimal("87.5")


def test_parse_is_case_insensitive():
    assert parse_coverage("<title>Coverage: 87.5%</title>") == Decimal("87.5")
    assert parse_coverage("COVERAGE:12%") == Decimal("12")


def test_parse_uses_first_match_only():
    assert parse_coverage("coverage: 10% then coverage: 90%") == Decimal("10")


def test_parse_strips_whitespace():
    assert parse_coverage("coverage:   \t 64.25 %") == Decimal("64.25")


@pytest.mark.parametrize("text, expected", [
    ("coverage: 0%", Decimal("0")),
    ("coverage: 100%", Decimal("100")),
    ("coverage: 100.00%", Decimal("100.00")),
])
def test_parse_accepts_bounds(text, expected):
    assert parse_coverage(text) == expected


def test_parse_is_idempotent():
    assert parse_coverage(GRCOV_BADGE) == parse_coverage(GRCOV_BADGE)


def test_parse_tolerates_non_utf8_bytes():
    assert parse_coverage(b"\xff\xfe<title>coverage: 55.5%</title>") == Decimal("55.5")


def test_parse_index_stable_with_non_ascii_prefix():
    # "İ".lower() is two characters long; the scan must not drift.
    assert parse_coverage("İİİ coverage: 42%") == Decimal("42")


# ---------------------------------------------------------------------------
# parse_coverage: failures
# ---------------------------------------------------------------------------

def test_parse_missing_token():
    with pytest.raises(ParseError, match="No 'coverage:' token"):
        parse_coverage(b"<svg><title>build: passing</title></svg>")


def test_parse_missing_percent_sign():
    with pytest.raises(ParseError, match="No '%'"):
        parse_coverage("coverage: 80")


def test_parse_empty_value():
    with pytest.raises(ParseError, match="Empty value"):
        parse_coverage("coverage: %")


@pytest.mark.parametrize("text", [
    "coverage: abc%",
    "coverage: 8 0%",
    "coverage: 80.1.2%",
    "coverage: NaN%",
    "coverage: Infinity%",
    "coverage: 8_0%",
    "coverage: \u0668\u0660%",
    "coverage: 8e1%",
])
def test_parse_malformed_value(text):
    with pytest.raises(ParseError, match="Malformed"):
        parse_coverage(text)


@pytest.mark.parametrize("text", ["coverage: -0.5%", "coverage: 100.01%", "coverage: 250%"])
def test_parse_out_of_range(text):
    with pytest.raises(ParseError, match=r"outside \[0, 100\]"):
        parse_coverage(text)


# ---------------------------------------------------------------------------
# load_local_report
# ---------------------------------------------------------------------------

def test_load_local_report(tmp_path):
    badge = tmp_path / "flat.svg"
    badge.write_bytes(GRCOV_BADGE)
    report = load_local_report(badge)
    assert report.source is Source.LOCAL
    assert report.percentage == Decimal("82.3")
    assert report.raw_artifact == GRCOV_BADGE


def test_load_local_report_missing_file(tmp_path):
    with pytest.raises(ParseError, match="Unable to read"):
        load_local_report(tmp_path / "missing.svg")
