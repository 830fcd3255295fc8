import uuid
from unittest.mock import AsyncMock

import pytest

from factgraph.core.config import RetrievalSettings
from factgraph.services.conflicts.conflict_detector import (
    NULL_VALUE,
    ConflictDetector,
    assertion_value,
    group_conflicts,
)


class TestAssertionValue:

    def test_object_id_wins(self, make_assertion):
        a = make_assertion(literal_value="ignored")
        assert assertion_value(a) == str(a.object_entity_id)

    def test_literal_is_canonical_json(self, make_assertion):
        a = make_assertion(object_entity_id=None, literal_value={"b": 1, "a": 2})
        assert assertion_value(a) == '{"a": 2, "b": 1}'

    def test_neither_is_null_sentinel(self, make_assertion):
        a = make_assertion(object_entity_id=None, literal_value=None)
        assert assertion_value(a) == NULL_VALUE


class TestGroupConflicts:

    def test_two_ceos_for_one_company_conflict(self, make_assertion):
        company = uuid.uuid4()
        first = make_assertion(subject_entity_id=company)
        second = make_assertion(subject_entity_id=company)

        conflicts = group_conflicts([first, second])

        assert len(conflicts) == 1
        warning = conflicts[0]
        assert warning.subject_entity_id == company
        assert warning.predicate == "CEO"
        assert warning.values == [str(first.object_entity_id), str(second.object_entity_id)]
        assert warning.assertion_ids == [first.id, second.id]

    def test_same_value_twice_is_not_a_conflict(self, make_assertion):
        company, person = uuid.uuid4(), uuid.uuid4()
        rows = [
            make_assertion(subject_entity_id=company, object_entity_id=person),
            make_assertion(subject_entity_id=company, object_entity_id=person),
        ]
        assert group_conflicts(rows) == []

    def test_groups_are_per_subject_and_predicate(self, make_assertion):
        company = uuid.uuid4()
        rows = [
            make_assertion(subject_entity_id=company, predicate="CEO"),
            make_assertion(subject_entity_id=company, predicate="HEADQUARTERED_IN"),
            make_assertion(subject_entity_id=uuid.uuid4(), predicate="CEO"),
        ]
        assert group_conflicts(rows) == []

    def test_literal_and_null_values_count_as_distinct(self, make_assertion):
        company = uuid.uuid4()
        rows = [
            make_assertion(subject_entity_id=company, predicate="FOUNDED_IN", object_entity_id=None, literal_value=1998),
            make_assertion(subject_entity_id=company, predicate="FOUNDED_IN", object_entity_id=None, literal_value=None),
        ]

        conflicts = group_conflicts(rows)

        assert conflicts[0].values == ["1998", NULL_VALUE]


class TestConflictDetector:

    @pytest.fixture
    def detector(self, mock_session):
        detector = ConflictDetector(mock_session, RetrievalSettings())
        detector.assertions = AsyncMock()
        return detector

    @pytest.mark.asyncio
    async def test_defaults_to_configured_predicates(self, detector):
        detector.assertions.find_active_assertions.return_value = []

        report = await detector.detect()

        flt = detector.assertions.find_active_assertions.await_args.args[0]
        assert flt.predicates == ["CEO", "HEADQUARTERED_IN", "FOUNDED_IN"]
        assert detector.assertions.find_active_assertions.await_args.kwargs["limit"] == 2000
        assert report.scanned == 0
        assert report.truncated is False
        assert report.conflicts == []

    @pytest.mark.asyncio
    async def test_predicates_are_normalized(self, detector):
        detector.assertions.find_active_assertions.return_value = []

        report = await detector.detect(predicates=[" ceo ", ""])

        assert report.predicates == ["CEO"]

    @pytest.mark.asyncio
    async def test_scan_hitting_the_limit_is_truncated(self, detector, make_assertion):
        company = uuid.uuid4()
        detector.assertions.find_active_assertions.return_value = [
            make_assertion(subject_entity_id=company),
            make_assertion(subject_entity_id=company),
        ]

        report = await detector.detect(limit=2)

        assert report.scanned == 2
        assert report.truncated is True
        assert len(report.conflicts) == 1
