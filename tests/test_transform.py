"""
Tests for mapping Congress.gov payloads into bill models.
"""
from datetime import date, datetime

import pytest

from billwatch.config.constants import (
    SYNC_ACTIONS,
    SYNC_COMPLETE,
    SYNC_DETAIL,
    SYNC_SUMMARIES,
    SYNC_TITLES,
)
from billwatch.errors import TransformError
from billwatch.ingestion.transform import (
    build_bill_id,
    congress_gov_url,
    latest_action_from_detail,
    select_latest_summary,
    strip_title_number,
    transform_actions,
    transform_bill,
    transform_subject,
    transform_summaries,
    transform_text_version,
)
from billwatch.models.legislation import BillType

from tests.fakes import (
    DEFAULT_ACTIONS,
    DEFAULT_SUBJECTS,
    DEFAULT_SUMMARIES,
    DEFAULT_TEXT_VERSIONS,
    DEFAULT_TITLES,
    make_detail,
)


def full_bundle(**overrides):
    detail = overrides.pop("detail", None) or make_detail(1234)
    kwargs = {
        "actions": DEFAULT_ACTIONS,
        "summaries": DEFAULT_SUMMARIES,
        "titles": DEFAULT_TITLES,
        "subjects": DEFAULT_SUBJECTS,
        "text_versions": DEFAULT_TEXT_VERSIONS,
    }
    kwargs.update(overrides)
    return transform_bill(detail, **kwargs)


class TestHelpers:

    def test_build_bill_id(self):
        assert build_bill_id(1234, "HR", 119) == "1234hr119"
        assert build_bill_id("5", "sjres", "118") == "5sjres118"

    @pytest.mark.parametrize("title, expected", [
        ("H.R. 1234 - Tax Relief Act", "Tax Relief Act"),
        ("S.J.Res. 12 - Disapproving a rule", "Disapproving a rule"),
        ("Tax Relief Act", "Tax Relief Act"),
        (None, ""),
    ])
    def test_strip_title_number(self, title, expected):
        assert strip_title_number(title) == expected

    def test_congress_gov_url(self):
        assert congress_gov_url(119, "hr", "1234") == \
            "https://www.congress.gov/bill/119th-congress/house-bill/1234"
        assert congress_gov_url(111, "sconres", "2") == \
            "https://www.congress.gov/bill/111th-congress/senate-concurrent-resolution/2"
        assert congress_gov_url(102, "s", "9").startswith("https://www.congress.gov/bill/102nd-congress/")


class TestBill:

    def test_full_payload(self):
        bundle = full_bundle()
        bill = bundle.bill

        assert bill.bill_id == "1234hr119"
        assert bill.bill_type == BillType.HR
        assert bill.bill_type_label == "H.R."
        assert bill.bill_number == "1234"
        assert bill.origin_chamber == "house"
        assert bill.introduced_date == date(2025, 1, 3)
        assert bill.sponsor_full_name == "Rep. Moore, Blake D."
        assert bill.sponsor_party == "R"
        assert bill.sponsor_state == "UT"
        assert bill.summary == "This bill amends the tax code & more."
        assert bill.source_update_date == datetime(2025, 3, 1, 12, 0, 0)
        assert bill.congress_gov_url.endswith("/119th-congress/house-bill/1234")
        assert bill.progress_stage is None
        assert bundle.resolved_endpoints == SYNC_COMPLETE

    def test_child_records(self):
        bundle = full_bundle()

        assert [t.title for t in bundle.titles] == ["Test Act of 2025", "To amend the tax code."]
        assert bundle.subject.policy_area_name == "Taxation"
        assert bundle.subject.legislative_subjects == ["Income tax rates", "Tax reform"]
        assert bundle.text_version.version_type == "Introduced in House"
        assert bundle.text_version.formats_url_pdf.endswith(".pdf")
        assert bundle.text_version.formats_url_txt.endswith(".htm")
        assert all(a.bill_id == "1234hr119" for a in bundle.actions)

    def test_latest_action_taken_from_action_list(self):
        actions = [
            {"actionDate": "2025-03-05", "text": "Passed House", "type": "Floor"},
            {"actionDate": "2025-01-03", "text": "Introduced in House", "type": "IntroReferral"},
        ]

        bill = full_bundle(actions=actions).bill

        assert bill.latest_action_date == date(2025, 3, 5)
        assert bill.latest_action_text == "Passed House"

    def test_latest_action_falls_back_to_detail(self):
        bill = full_bundle(actions=[]).bill

        assert bill.latest_action_date == date(2025, 1, 3)
        assert bill.latest_action_text == "Referred to the Committee on Ways and Means."

    def test_update_date_falls_back_to_update_date(self):
        detail = make_detail(1)
        del detail["updateDateIncludingText"]
        detail["updateDate"] = "2025-02-01T08:00:00Z"

        assert transform_bill(detail).bill.source_update_date == datetime(2025, 2, 1, 8)

    @pytest.mark.parametrize("missing", ["type", "number", "congress"])
    def test_missing_identity_fields(self, missing):
        detail = make_detail(1)
        del detail[missing]

        with pytest.raises(TransformError):
            transform_bill(detail)

    def test_unknown_bill_type(self):
        detail = make_detail(1)
        detail["type"] = "HAMDT"

        with pytest.raises(TransformError) as exc_info:
            transform_bill(detail)

        assert exc_info.value.bill_id == "1hamdt119"

    def test_non_object_detail(self):
        with pytest.raises(TransformError):
            transform_bill(["not", "a", "bill"])


class TestNotFetchedVersusEmpty:

    def test_detail_only(self):
        detail = make_detail(1)
        del detail["actions"]

        bundle = transform_bill(detail)

        assert bundle.resolved_endpoints == SYNC_DETAIL
        assert bundle.actions is None
        assert bundle.summaries is None
        assert bundle.titles is None
        assert bundle.subject is None
        assert bundle.text_version is None

    def test_empty_lists_resolve_their_bits(self):
        detail = make_detail(1)

        bundle = transform_bill(detail, actions=[], summaries=[], titles=[])

        assert bundle.resolved_endpoints == SYNC_DETAIL | SYNC_ACTIONS | SYNC_SUMMARIES | SYNC_TITLES
        assert bundle.actions == []
        assert bundle.summaries == []
        assert bundle.bill.summary is None

    def test_inline_action_items(self):
        detail = make_detail(1)
        detail["actions"] = {"count": 1, "items": [DEFAULT_ACTIONS[0]]}

        bundle = transform_bill(detail)

        assert bundle.resolved_endpoints & SYNC_ACTIONS
        assert len(bundle.actions) == 1


class TestSubResources:

    def test_actions_sorted_ascending_with_newest_last(self):
        # API order: newest first
        raw = [
            {"actionDate": "2025-03-05", "text": "Passed House"},
            {"actionDate": "2025-01-03", "text": "Referred to committee"},
            {"actionDate": "2025-01-03", "text": "Introduced in House"},
        ]

        actions = transform_actions("1hr119", raw)

        assert [a.text for a in actions] == ["Introduced in House", "Referred to committee", "Passed House"]

    def test_action_source_system(self):
        actions = transform_actions("1hr119", DEFAULT_ACTIONS)

        assert actions[0].source_system_name == "Library of Congress"
        assert actions[0].source_system_code == 9
        assert actions[1].action_code == "H11100"

    def test_latest_summary_by_update_date(self):
        raw = [
            {"text": "<p>Introduced</p>", "updateDate": "2025-01-10T00:00:00Z", "versionCode": "00"},
            {"text": "<p>Reported</p>", "updateDate": "2025-04-02T00:00:00Z", "versionCode": "17"},
            {"text": "<p>Undated</p>"},
        ]

        summaries = transform_summaries("1hr119", raw)

        assert len(summaries) == 2
        assert select_latest_summary(summaries).text == "Reported"
        assert select_latest_summary([]) is None

    def test_subject_without_legislative_subjects(self):
        subject = transform_subject("1hr119", {"policyArea": {"name": "Health"}})

        assert subject.policy_area_name == "Health"
        assert subject.legislative_subjects == []

    def test_text_version_picks_newest_dated(self):
        raw = [
            {"date": None, "type": "Enrolled Bill", "formats": []},
            {"date": "2025-01-03T05:00:00Z", "type": "Introduced in House", "formats": []},
            {"date": "2025-03-10T04:00:00Z", "type": "Engrossed in House", "formats": [
                {"type": "PDF", "url": "https://example.test/eh.pdf"},
            ]},
        ]

        version = transform_text_version("1hr119", raw)

        assert version.version_type == "Engrossed in House"
        assert version.formats_url_pdf == "https://example.test/eh.pdf"
        assert version.formats_url_txt is None

    def test_text_version_empty(self):
        assert transform_text_version("1hr119", []) is None

    def test_latest_action_from_detail(self):
        action = latest_action_from_detail(make_detail(1), "1hr119")

        assert action.action_date == date(2025, 1, 3)
        assert action.action_type is None
        assert latest_action_from_detail({}, "1hr119") is None
