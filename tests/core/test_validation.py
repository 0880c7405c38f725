import pytest

from dataconnect.core.validation import (
    QueryGrammar,
    SQLDialect,
    apply_limit,
    check_limit,
    format_sql,
    format_verb_query,
    looks_like_sql,
    parse_verb_query,
    quote_identifier,
    split_target,
    validate_sql,
)

DIALECT = SQLDialect(name="TestDB", allowed_keywords=("select", "with", "explain"))
REDSHIFT_LIKE = SQLDialect(
    name="Redshift",
    allowed_keywords=("select", "with"),
    requires_order_by_with_limit=True,
)
GRAMMAR = QueryGrammar(
    label="CSV",
    verbs=("READ_CSV", "FILTER", "GET_ROWS"),
    example="READ_CSV:data",
    sample_verb="READ_CSV",
)


class TestValidateSql:
    def test_accepts_allowed_keyword(self):
        assert validate_sql("SELECT * FROM users", DIALECT).valid
        assert validate_sql("  with x as (select 1) select * from x", DIALECT).valid

    def test_rejects_empty(self):
        result = validate_sql("   ", DIALECT)
        assert not result.valid
        assert result.error == "Query is empty"

    def test_rejects_unknown_keyword(self):
        result = validate_sql("UPDATE users SET name = 'x'", DIALECT)
        assert result.error == "Query must start with a valid SQL keyword"

    @pytest.mark.parametrize("query", [
        "select 1; drop   database shop",
        "SELECT 1; TRUNCATE users",
        "select * from x; DELETE FROM users",
    ])
    def test_rejects_dangerous_patterns(self, query):
        result = validate_sql(query, DIALECT)
        assert result.error == "Query contains potentially dangerous operations"

    def test_order_by_required_with_limit(self):
        result = validate_sql("SELECT * FROM t LIMIT 5", REDSHIFT_LIKE)
        assert result.error == "Redshift requires ORDER BY when using LIMIT"
        assert validate_sql("SELECT * FROM t ORDER BY 1 LIMIT 5", REDSHIFT_LIKE).valid

    def test_dialect_validate_delegates(self):
        assert DIALECT.validate("select 1")
        assert not DIALECT.validate("")


class TestVerbQueries:
    def test_valid_prefix_is_case_insensitive(self):
        assert GRAMMAR.validate("read_csv:data").valid

    def test_invalid_prefix_names_example(self):
        result = GRAMMAR.validate("SELECT * FROM data")
        assert result.error == "Query must use CSV-specific format (e.g., READ_CSV:data)"

    def test_verb_without_colon_is_invalid(self):
        assert not GRAMMAR.validate("READ_CSV").valid

    def test_spaces_around_colon_are_accepted(self):
        assert GRAMMAR.validate("read_csv : sales").valid
        assert GRAMMAR.validate("  FILTER :price>5").valid
        assert not GRAMMAR.validate("read csv : sales").valid

    def test_formatted_query_and_raw_query_agree(self):
        raw = "read_csv : sales"
        assert GRAMMAR.validate(raw).valid == GRAMMAR.validate(format_verb_query(raw)).valid
        parsed = GRAMMAR.parse(raw)
        assert (parsed.verb, parsed.target) == ("READ_CSV", "sales")

    def test_parse_splits_target_and_extra(self):
        parsed = parse_verb_query("filter: products : price > 5", GRAMMAR)
        assert parsed.verb == "FILTER"
        assert parsed.target == "products"
        assert parsed.extra == "price > 5"

    def test_parse_keeps_later_colons_in_extra(self):
        parsed = GRAMMAR.parse("GET_ROWS:sheet:A1:C2")
        assert parsed.target == "sheet"
        assert parsed.extra == "A1:C2"

    def test_parse_empty_extra_is_none(self):
        assert GRAMMAR.parse("READ_CSV:data").extra is None
        assert GRAMMAR.parse("READ_CSV:").target == ""

    def test_parse_invalid_raises(self):
        with pytest.raises(ValueError, match="CSV-specific format"):
            parse_verb_query("nope", GRAMMAR)

    def test_format_verb_query(self):
        assert format_verb_query(" read_csv : data ") == "READ_CSV:data"
        assert format_verb_query("plain") == "plain"


class TestFormatting:
    def test_format_sql_collapses_whitespace(self):
        formatted = format_sql("SELECT   *\n\n  FROM users")
        assert formatted.startswith("SELECT")
        assert "  " not in formatted
        assert "\n\n" not in formatted

    def test_format_sql_keeps_literals(self):
        assert "'a  b'" in format_sql("select  'a  b'")

    def test_quote_identifier(self):
        assert quote_identifier("users") == '"users"'
        assert quote_identifier("public.users") == '"public"."users"'
        assert quote_identifier("orders", "`") == "`orders`"

    @pytest.mark.parametrize("name", ["", "users; drop", 'a"b', "1abc"])
    def test_quote_identifier_rejects(self, name):
        with pytest.raises(ValueError, match="Invalid identifier"):
            quote_identifier(name)


class TestLimits:
    def test_appends_limit(self):
        assert apply_limit("SELECT * FROM t;", 10) == "SELECT * FROM t LIMIT 10"

    def test_keeps_smaller_limit(self):
        assert apply_limit("SELECT * FROM t LIMIT 5", 10) == "SELECT * FROM t LIMIT 5"

    def test_tightens_larger_limit(self):
        assert apply_limit("SELECT * FROM t limit 500", 10) == "SELECT * FROM t LIMIT 10"

    def test_keeps_offset(self):
        assert apply_limit("SELECT * FROM t LIMIT 50 OFFSET 20", 10) == (
            "SELECT * FROM t LIMIT 10 OFFSET 20"
        )

    def test_tightens_mysql_offset_form(self):
        assert apply_limit("SELECT * FROM t LIMIT 5, 10", 3) == "SELECT * FROM t LIMIT 5, 3"
        assert apply_limit("SELECT * FROM t LIMIT 5,2", 3) == "SELECT * FROM t LIMIT 5,2"

    def test_trailing_comment_does_not_hide_limit(self):
        assert apply_limit("SELECT * FROM t -- all rows", 2) == "SELECT * FROM t LIMIT 2"
        assert apply_limit("SELECT * FROM t LIMIT 50 -- page", 10) == "SELECT * FROM t LIMIT 10"

    def test_check_limit(self):
        assert check_limit("7") == 7
        with pytest.raises(ValueError):
            check_limit(-1)
        with pytest.raises(ValueError):
            check_limit(True)


class TestHelpers:
    @pytest.mark.parametrize("query,expected", [
        ("SELECT 1", True),
        ("  with x as (select 1) select 1", True),
        ("DELETE FROM users", True),
        ("READ_CSV:data", False),
        ("select:foo", False),
        ("SEARCH:select", False),
    ])
    def test_looks_like_sql(self, query, expected):
        assert looks_like_sql(query) is expected

    def test_split_target(self):
        assert split_target("Sheet1!A1:B2") == ("Sheet1", "A1:B2")
        assert split_target("Sheet1") == ("Sheet1", None)
        assert split_target("Sheet1!") == ("Sheet1", None)
