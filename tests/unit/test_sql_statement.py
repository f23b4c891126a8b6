import pytest
from sqlalchemy.dialects import sqlite

from queryproc.drivers.sql.statement import build_statement
from queryproc.query.compiler import QueryCompiler
from queryproc.query.models import QueryDescription


@pytest.fixture
def render(catalog, sql_caps):
    def _render(raw):
        compiled = QueryCompiler().compile(QueryDescription.parse(raw), sql_caps, catalog, 1)
        stmt = build_statement(compiled)
        return " ".join(str(stmt.compile(dialect=sqlite.dialect(), compile_kwargs={"literal_binds": True})).split())
    return _render


def test_rows_are_labelled_with_display_names(render, ids):
    # Validates labels because relational results must use the upper-case display names.
    # Act
    sql = render({"source_table": ids["venues"], "limit": 10})

    # Assert
    assert sql.startswith("SELECT venues.id AS \"ID\", venues.category_id AS \"CATEGORY_ID\"")
    assert "FROM venues" in sql
    assert sql.endswith("LIMIT 10 OFFSET 0") or sql.endswith("LIMIT 10")


def test_count_with_breakout_groups_and_orders(render, ids):
    # Validates grouping because each breakout combination yields one row.
    # Act
    sql = render({
        "source_table": ids["venues"],
        "aggregation": ["count"],
        "breakout": [ids["venue_fields"]["price"]],
    })

    # Assert
    assert "count(*)" in sql
    assert "GROUP BY venues.price" in sql
    assert "ORDER BY venues.price ASC" in sql


def test_distinct_counts_distinct_values(render, ids):
    # Validates distinct because it counts values, not rows.
    # Act
    sql = render({"source_table": ids["venues"], "aggregation": ["distinct", ids["venue_fields"]["price"]]})

    # Assert
    assert "count(DISTINCT venues.price)" in sql


def test_fk_filter_joins_target_table(render, ids):
    # Validates fk-> lowering because the filter reads a column of the referenced table.
    # Act
    sql = render({
        "source_table": ids["venues"],
        "aggregation": ["count"],
        "filter": ["=", ["fk->", ids["venue_fields"]["category_id"], ids["category_fields"]["name"]], "Burger"],
    })

    # Assert
    assert "LEFT OUTER JOIN categories AS categories__via_category_id" in sql
    assert "ON venues.category_id = categories__via_category_id.id" in sql
    assert "WHERE categories__via_category_id.name = 'Burger'" in sql


def test_compound_filter_lowering(render, ids):
    # Validates predicate lowering because nested clauses keep their structure.
    # Arrange
    price = ids["venue_fields"]["price"]
    name = ids["venue_fields"]["name"]

    # Act
    sql = render({
        "source_table": ids["venues"],
        "aggregation": ["count"],
        "filter": ["OR", ["=", price, 1, 3], ["AND", ["NOT_NULL", name], ["NOT", ["BETWEEN", price, 2, 2]]]],
    })

    # Assert
    assert "venues.price IN (1, 3)" in sql
    assert "venues.name IS NOT NULL" in sql
    assert "venues.price NOT BETWEEN 2 AND 2" in sql or "NOT (venues.price BETWEEN 2 AND 2)" in sql


def test_page_lowers_to_limit_and_offset(render, ids):
    # Validates paging because page N starts after (N - 1) * items rows.
    # Act
    sql = render({
        "source_table": ids["categories"],
        "order_by": [[ids["category_fields"]["name"], "ascending"]],
        "page": {"items": 5, "page": 2},
    })

    # Assert
    assert "ORDER BY categories.name ASC, categories.id ASC" in sql
    assert sql.endswith("LIMIT 5 OFFSET 5")
