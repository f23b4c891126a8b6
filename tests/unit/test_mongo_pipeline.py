from queryproc.drivers.mongo.pipeline import build_pipeline
from queryproc.query.compiler import QueryCompiler
from queryproc.query.models import QueryDescription


def _pipeline(catalog, caps, raw):
    compiled = QueryCompiler().compile(QueryDescription.parse(raw), caps, catalog, 1)
    return build_pipeline(compiled, caps)


def test_rows_project_physical_names(catalog, ids, mongo_caps):
    # Validates row projection because the logical id lives in _id.
    # Act
    pipeline = _pipeline(catalog, mongo_caps, {"source_table": ids["venues"], "limit": 10})

    # Assert
    assert pipeline == [
        {"$limit": 10},
        {"$project": {"_id": 1, "category_id": 1, "price": 1, "longitude": 1, "latitude": 1, "name": 1}},
    ]


def test_count_groups_on_null_key(catalog, ids, mongo_caps):
    # Validates ungrouped aggregates because they collapse the collection to one document.
    # Act
    pipeline = _pipeline(catalog, mongo_caps, {"source_table": ids["venues"], "aggregation": ["count"]})

    # Assert
    assert pipeline == [
        {"$group": {"_id": None, "agg": {"$sum": 1}}},
        {"$project": {"_id": 0, "agg": "$agg"}},
    ]


def test_breakout_groups_and_sorts_on_group_keys(catalog, ids, mongo_caps):
    # Validates grouped ordering because sort must run on projected keys.
    # Act
    pipeline = _pipeline(catalog, mongo_caps, {
        "source_table": ids["venues"],
        "aggregation": ["sum", ids["venue_fields"]["price"]],
        "breakout": [ids["venue_fields"]["category_id"]],
        "order_by": [[ids["venue_fields"]["category_id"], "descending"]],
    })

    # Assert
    assert pipeline == [
        {"$group": {
            "_id": {"k0": "$category_id"},
            "agg": {"$sum": "$price"},
            "present": {"$sum": {"$cond": [{"$eq": [{"$ifNull": ["$price", None]}, None]}, 0, 1]}},
        }},
        {"$project": {
            "_id": 0,
            "k0": "$_id.k0",
            "agg": {"$cond": [{"$gt": ["$present", 0]}, "$agg", None]},
        }},
        {"$sort": {"k0": -1}},
    ]


def test_distinct_excludes_nulls_before_grouping(catalog, ids, mongo_caps):
    # Validates distinct because null is not a countable value.
    # Act
    pipeline = _pipeline(catalog, mongo_caps, {
        "source_table": ids["venues"],
        "aggregation": ["distinct", ids["venue_fields"]["price"]],
    })

    # Assert
    assert pipeline[0] == {"$match": {"price": {"$ne": None}}}
    assert pipeline[1] == {"$group": {"_id": None, "values": {"$addToSet": "$price"}}}
    assert pipeline[2] == {"$project": {"_id": 0, "agg": {"$size": "$values"}}}


def test_filters_lower_to_match_operators(catalog, ids, mongo_caps):
    # Validates filter lowering because each operator has a fixed document form.
    # Arrange
    price = ids["venue_fields"]["price"]
    name = ids["venue_fields"]["name"]

    # Act
    pipeline = _pipeline(catalog, mongo_caps, {
        "source_table": ids["venues"],
        "aggregation": ["count"],
        "filter": [
            "AND",
            ["!=", price, 1],
            ["BETWEEN", ids["venue_fields"]["latitude"], 34.0, 34.1],
            ["IS_NULL", name],
            ["NOT", ["=", price, 2, 3]],
        ],
    })

    # Assert
    assert pipeline[0] == {"$match": {"$and": [
        {"price": {"$nin": [1, None]}},
        {"latitude": {"$gte": 34.0, "$lte": 34.1}},
        {"name": None},
        {"$nor": [{"price": {"$in": [2, 3]}}]},
    ]}}


def test_paging_follows_sort(catalog, ids, mongo_caps):
    # Validates stage order because skip and limit only make sense after sorting.
    # Act
    pipeline = _pipeline(catalog, mongo_caps, {
        "source_table": ids["categories"],
        "order_by": [[ids["category_fields"]["name"], "ascending"]],
        "page": {"items": 5, "page": 2},
    })

    # Assert
    assert pipeline[:3] == [
        {"$sort": {"name": 1, "_id": 1}},
        {"$skip": 5},
        {"$limit": 5},
    ]
