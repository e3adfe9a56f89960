"""Tests for data models."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from cloudflare_ddns.models import (
    AUTO_TTL,
    AddressFamily,
    CycleReport,
    DomainRecord,
    Outcome,
    PublicAddress,
    RecordAction,
    RecordOutcome,
    RecordType,
    RemoteRecordState,
    plan_action,
)


class TestRecordType:
    """Tests for RecordType enum."""

    def test_record_type_values(self):
        assert RecordType.A == "A"
        assert RecordType.AAAA == "AAAA"

    def test_family_mapping(self):
        assert RecordType.A.family is AddressFamily.V4
        assert RecordType.AAAA.family is AddressFamily.V6
        assert AddressFamily.V4.record_type is RecordType.A
        assert AddressFamily.V6.record_type is RecordType.AAAA

    def test_unsupported_type(self):
        with pytest.raises(ValueError):
            RecordType("CNAME")


class TestDomainRecord:
    """Tests for DomainRecord model."""

    def test_defaults(self):
        record = DomainRecord(name="jf.example.com")
        assert record.record_type is RecordType.A
        assert record.proxied is True
        assert record.ttl == AUTO_TTL
        assert record.name_file is None

    def test_type_alias(self):
        record = DomainRecord.model_validate({"name": "v6.example.com", "type": "AAAA"})
        assert record.record_type is RecordType.AAAA
        assert record.family is AddressFamily.V6

    def test_name_or_name_file_required(self):
        with pytest.raises(ValidationError) as exc_info:
            DomainRecord(proxied=False)
        assert exc_info.value.errors()[0]["type"] == "domain_name_error"

    def test_name_file_only(self):
        record = DomainRecord(name_file="/run/secrets/domain-jellyfin")
        assert record.name is None
        assert record.label == "</run/secrets/domain-jellyfin>"

    def test_label_uses_literal_name(self):
        assert DomainRecord(name="jf.example.com").label == "jf.example.com"

    def test_ttl_bounds(self):
        with pytest.raises(ValidationError):
            DomainRecord(name="jf.example.com", ttl=0)
        with pytest.raises(ValidationError):
            DomainRecord(name="jf.example.com", ttl=86401)
        assert DomainRecord(name="jf.example.com", ttl=300).ttl == 300

    def test_immutable(self):
        record = DomainRecord(name="jf.example.com")
        with pytest.raises(ValidationError):
            record.ttl = 300  # type: ignore[misc]


class TestPublicAddress:
    """Tests for PublicAddress model."""

    def test_resolved(self):
        assert PublicAddress(family=AddressFamily.V4, value="203.0.113.9").resolved

    def test_unresolved(self):
        assert not PublicAddress(family=AddressFamily.V6).resolved


class TestPlanAction:
    """Tests for the pure reconciliation decision."""

    def test_matching_content_is_unchanged(self):
        remote = RemoteRecordState(record_id="rec1", content="203.0.113.9")
        assert plan_action("203.0.113.9", remote) is RecordAction.UNCHANGED

    def test_absent_record_is_created(self):
        assert plan_action("203.0.113.9", RemoteRecordState()) is RecordAction.CREATE

    def test_stale_record_is_updated(self):
        remote = RemoteRecordState(record_id="rec1", content="198.51.100.1")
        assert plan_action("203.0.113.9", remote) is RecordAction.UPDATE

    def test_exists(self):
        assert RemoteRecordState(record_id="rec1").exists
        assert not RemoteRecordState().exists


class TestCycleReport:
    """Tests for CycleReport helpers."""

    def test_counts(self):
        report = CycleReport(started_at=datetime.now(UTC))
        report.records.extend(
            [
                RecordOutcome(name="a", type=RecordType.A, outcome=Outcome.CREATED, message=""),
                RecordOutcome(name="b", type=RecordType.A, outcome=Outcome.UPDATED, message=""),
                RecordOutcome(name="c", type=RecordType.A, outcome=Outcome.FAILED, message=""),
                RecordOutcome(name="d", type=RecordType.A, outcome=Outcome.UNCHANGED, message=""),
            ],
        )
        assert report.writes == 2
        assert report.failures == 1
        assert report.count(Outcome.UNCHANGED) == 1
        assert report.count(Outcome.SKIPPED) == 0
