"""Tests for value normalization helpers."""
from datetime import date, datetime

import pytest

from billwatch.database.normalization import (
    clean_html,
    normalize_chamber,
    normalize_party,
    normalize_sponsor_name,
    normalize_state,
    parse_date,
    parse_datetime,
)


class TestStateAndParty:

    @pytest.mark.parametrize("raw, expected", [
        ("UT", "UT"),
        ("ut", "UT"),
        (" Utah ", "UT"),
        ("new york", "NY"),
        ("District of Columbia", "DC"),
        ("GU", "GU"),
        ("XX", None),
        ("Atlantis", None),
        ("", None),
        (None, None),
    ])
    def test_normalize_state(self, raw, expected):
        assert normalize_state(raw) == expected

    @pytest.mark.parametrize("raw, expected", [
        ("R", "R"),
        ("Republican", "R"),
        ("democratic", "D"),
        ("Independent", "I"),
        ("ID", "ID"),
        (None, None),
    ])
    def test_normalize_party(self, raw, expected):
        assert normalize_party(raw) == expected

    def test_unknown_party_is_logged(self, caplog):
        assert normalize_party("Whig") is None
        assert "Whig" in caplog.text

    @pytest.mark.parametrize("raw, expected", [
        ("House", "house"),
        ("Senate", "senate"),
        ("House of Representatives", "house"),
        ("S", "senate"),
        ("Joint", None),
        (None, None),
    ])
    def test_normalize_chamber(self, raw, expected):
        assert normalize_chamber(raw) == expected


class TestText:

    def test_sponsor_name_drops_annotation(self):
        assert normalize_sponsor_name("Rep. Moore, Blake D. [R-UT-1]") == "Rep. Moore, Blake D."
        assert normalize_sponsor_name("Sen. Lee, Mike (R-UT)") == "Sen. Lee, Mike"
        assert normalize_sponsor_name("[R-UT]") is None
        assert normalize_sponsor_name(None) is None

    def test_clean_html_strips_tags_and_entities(self):
        raw = "<p>This bill <strong>amends</strong> the tax code &amp; more.</p>"

        assert clean_html(raw) == "This bill amends the tax code & more."

    def test_clean_html_keeps_escaped_markup_as_text(self):
        assert clean_html("Use &lt;b&gt; for bold") == "Use <b> for bold"

    def test_clean_html_collapses_whitespace(self):
        assert clean_html("<p>One</p>\n\n<p>Two&nbsp;three</p>") == "One Two three"

    def test_clean_html_empty(self):
        assert clean_html(None) == ""
        assert clean_html("") == ""


class TestDates:

    def test_parse_date(self):
        assert parse_date("2025-01-03") == date(2025, 1, 3)
        assert parse_date("2025-01-03T17:05:12Z") == date(2025, 1, 3)
        assert parse_date("January 3") is None
        assert parse_date(None) is None

    def test_parse_datetime_returns_naive_utc(self):
        assert parse_datetime("2025-01-03T17:05:12Z") == datetime(2025, 1, 3, 17, 5, 12)
        assert parse_datetime("2025-01-03T12:05:12-05:00") == datetime(2025, 1, 3, 17, 5, 12)
        assert parse_datetime("2025-01-03") == datetime(2025, 1, 3)

    def test_parse_datetime_invalid(self):
        assert parse_datetime("not a date") is None
        assert parse_datetime("") is None
