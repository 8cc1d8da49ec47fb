"""Tests for the query criteria compiler."""

import logging

import pytest

from mcp_quickbooks.errors import ValidationError
from mcp_quickbooks.quickbooks.criteria import (
    CompiledQuery,
    Criterion,
    CriteriaList,
    FieldMap,
    QueryOptions,
    RawClause,
    compile_query,
    encode_clause,
    parse_criteria,
    quote_value,
)


class TestParseCriteria:
    """Criteria shapes are resolved once into a tagged variant."""

    def test_none_is_empty_list(self):
        assert parse_criteria(None) == CriteriaList()

    def test_string_is_raw_clause(self):
        assert parse_criteria("where Active = true") == RawClause("where Active = true")

    def test_mapping_is_field_map(self):
        assert parse_criteria({"Active": True}) == FieldMap({"Active": True})

    def test_single_record_mapping(self):
        parsed = parse_criteria({"field": "Balance", "value": 100, "operator": ">"})
        assert parsed == CriteriaList((Criterion("Balance", 100, ">"),))

    def test_list_of_records_and_mappings(self):
        parsed = parse_criteria([
            {"field": "Balance", "value": 100, "operator": ">"},
            {"Active": True},
        ])
        assert parsed.items == (
            Criterion("Balance", 100, ">"),
            Criterion("Active", True, "="),
        )

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValidationError):
            parse_criteria([{"field": "Balance", "value": 1, "operator": "!="}])

    def test_non_mapping_list_element_rejected(self):
        with pytest.raises(ValidationError):
            parse_criteria(["Active = true"])

    def test_unsupported_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_criteria(42)


class TestCompileQuery:
    """Statements produced for each criteria shape."""

    def test_no_criteria(self):
        query = compile_query("Customer")
        assert query.statement == "select * from Customer startposition 1 maxresults 1000"

    def test_list_value_uses_in(self):
        query = compile_query("Customer", {"Id": ["1", "2"]})
        assert query.statement == (
            "select * from Customer where Id IN ('1','2') startposition 1 maxresults 1000"
        )

    def test_scalar_value_uses_equals(self):
        query = compile_query("Customer", {"Active": True, "DisplayName": "Acme"})
        assert query.statement == (
            "select * from Customer where Active = true and DisplayName = 'Acme'"
            " startposition 1 maxresults 1000"
        )

    def test_operator_record(self):
        query = compile_query("Invoice", [{"field": "Balance", "value": 100, "operator": ">"}])
        assert query.statement == (
            "select * from Invoice where Balance > 100 startposition 1 maxresults 1000"
        )

    def test_pseudo_fields_never_reach_where(self):
        query = compile_query(
            "Customer",
            {"Active": True, "limit": 10, "offset": 21, "asc": "DisplayName", "fetchAll": False},
        )
        assert "limit" not in query.where.lower()
        assert query.options == QueryOptions(limit=10, offset=21, asc="DisplayName")
        assert query.statement == (
            "select * from Customer where Active = true orderby DisplayName asc"
            " startposition 21 maxresults 10"
        )

    def test_pseudo_field_names_ignore_case(self):
        query = compile_query("Customer", [{"field": "FetchAll", "value": True}])
        assert query.options.fetch_all is True
        assert query.where == ""

    def test_desc_wins_over_asc(self, caplog):
        with caplog.at_level(logging.WARNING):
            query = compile_query("Customer", {"asc": "Id", "desc": "MetaData.LastUpdatedTime"})
            statement = query.statement
        assert " orderby MetaData.LastUpdatedTime desc" in statement
        assert "asc" not in statement
        assert "using desc" in caplog.text

    def test_count(self):
        query = compile_query("Customer", {"Active": True, "count": True})
        assert query.statement.startswith("select count(*) from Customer where Active = true")

    def test_with_count_disables_fetch_all(self):
        query = compile_query("Customer", {"fetchAll": True}).with_count()
        assert query.options.count is True
        assert query.options.fetch_all is False

    def test_raw_clause_gets_leading_space_and_no_paging(self):
        query = compile_query("Customer", "where Active = true maxresults 5")
        assert query.statement == "select * from Customer where Active = true maxresults 5"

    def test_with_offset(self):
        query = compile_query("Customer", {"limit": 2})
        assert query.with_offset(3).statement.endswith("startposition 3 maxresults 2")
        assert query.options.offset == 1

    @pytest.mark.parametrize("limit", [0, -5, "abc"])
    def test_invalid_limit_rejected(self, limit):
        with pytest.raises(ValidationError):
            compile_query("Customer", {"limit": limit})


class TestEncoding:
    """Quoting and percent-encoding of statements."""

    def test_quote_escapes_single_quote(self):
        assert quote_value("O'Brien") == "'O\\'Brien'"

    def test_quote_non_strings(self):
        assert quote_value(True) == "true"
        assert quote_value(False) == "false"
        assert quote_value(None) == "null"
        assert quote_value(12.5) == "12.5"

    def test_percent_encoded_first(self):
        assert encode_clause("50% off") == "50%25 off"
        assert encode_clause("a='b'") == "a%3D%27b%27"

    def test_reserved_characters(self):
        assert encode_clause("<>&#\\+") == "%3C%3E%26%23%5C%2B"

    def test_path_encodes_statement(self):
        query = compile_query("Customer", {"DisplayName": "O'Brien"})
        assert query.path == (
            "/query?query=select * from Customer where DisplayName %3D %27O%5C%27Brien%27"
            " startposition 1 maxresults 1000"
        )

    def test_path_for_plain_query(self):
        assert isinstance(compile_query("Bill"), CompiledQuery)
        assert compile_query("Bill").path.startswith("/query?query=select * from Bill")
