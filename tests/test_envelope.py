"""Tests for response envelope normalization."""

import copy

import pytest

from mcp_quickbooks.errors import ShapeError
from mcp_quickbooks.quickbooks.envelope import (
    QueryEnvelope,
    ReportEnvelope,
    SingleEntityEnvelope,
    classify,
    normalize,
)


class TestClassify:
    def test_query(self):
        assert isinstance(classify({"QueryResponse": {}, "time": "t"}), QueryEnvelope)

    def test_report(self):
        body = {"Header": {"ReportName": "BalanceSheet"}, "Columns": {}, "Rows": {}}
        assert isinstance(classify(body), ReportEnvelope)

    def test_single(self):
        assert isinstance(classify({"Customer": {"Id": "1"}}), SingleEntityEnvelope)

    @pytest.mark.parametrize("body", [None, "text", [1, 2]])
    def test_non_object_rejected(self, body):
        with pytest.raises(ShapeError):
            classify(body)


class TestNormalizeSingleEntity:
    """``{"<Entity>": {...}, "time": ...}`` responses."""

    def test_payload_moves_to_data(self):
        body = {"Customer": {"Id": "1", "DisplayName": "Acme"}, "time": "2024-07-01T10:00:00-07:00"}
        assert normalize(body) == {
            "time": "2024-07-01T10:00:00-07:00",
            "data": {"Id": "1", "DisplayName": "Acme"},
        }

    def test_input_not_mutated(self):
        body = {"Invoice": {"Id": "9"}, "time": "t"}
        snapshot = copy.deepcopy(body)
        normalize(body)
        assert body == snapshot

    def test_null_fields_are_skipped(self):
        assert normalize({"Vendor": {"Id": "3"}, "warnings": None, "time": "t"})["data"] == {"Id": "3"}

    def test_ambiguous_payload_rejected(self):
        with pytest.raises(ShapeError, match="Unexpected property"):
            normalize({"Customer": {}, "Vendor": {}, "time": "t"})

    def test_empty_payload_rejected(self):
        with pytest.raises(ShapeError):
            normalize({"time": "t"})

    def test_batch_response(self):
        body = {"BatchItemResponse": [{"bId": "1", "Customer": {"Id": "1"}}], "time": "t"}
        assert normalize(body)["data"] == [{"bId": "1", "Customer": {"Id": "1"}}]


class TestNormalizeQuery:
    """``QueryResponse`` envelopes."""

    def test_metadata_routed(self):
        body = {
            "QueryResponse": {"Customer": [{"Id": "1"}, {"Id": "2"}], "startPosition": 1, "maxResults": 2},
            "time": "t",
        }
        assert normalize(body) == {
            "time": "t",
            "startPosition": 1,
            "maxResults": 2,
            "data": [{"Id": "1"}, {"Id": "2"}],
        }

    def test_empty_result_set(self):
        assert normalize({"QueryResponse": {}, "time": "t"}) == {"time": "t", "data": []}

    def test_count(self):
        result = normalize({"QueryResponse": {"totalCount": 42}, "time": "t"}, count=True)
        assert result["data"] == 42
        assert result["totalCount"] == 42

    def test_ambiguous_query_payload_rejected(self):
        with pytest.raises(ShapeError):
            normalize({"QueryResponse": {"Customer": [], "Vendor": []}})


class TestNormalizeReport:
    def test_report_sections_under_data(self):
        body = {
            "Header": {"ReportName": "ProfitAndLoss"},
            "Columns": {"Column": []},
            "Rows": {"Row": []},
        }
        assert normalize(body) == {"data": body}
