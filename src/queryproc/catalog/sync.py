"""Catalog synchronisation: populate a catalog by introspecting a backend."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import Engine, column, func, inspect, select, table
from sqlalchemy.exc import SQLAlchemyError

from queryproc.catalog.in_memory import InMemoryCatalog
from queryproc.catalog.models import BaseType, TableDescriptor
from queryproc.catalog.types import base_type_for_sql, base_type_for_value, infer_special_type

logger = logging.getLogger(__name__)

MONGO_ID_FIELD = "_id"
LOGICAL_ID_FIELD = "id"


def sync_sql_catalog(
    engine: Engine,
    catalog: InMemoryCatalog,
    database_id: int,
    cardinality_threshold: int = 40,
) -> List[TableDescriptor]:
    """Registers every table of ``engine`` in ``catalog``.

    Tables are registered in name order and columns in declaration order.
    Foreign keys are linked in a second pass so forward references resolve.
    """
    inspector = inspect(engine)
    tables: Dict[str, TableDescriptor] = {}
    pending_fks: List[Tuple[int, str, str, str]] = []

    for table_name in sorted(inspector.get_table_names()):
        try:
            tbl_comment = inspector.get_table_comment(table_name).get("text")
        except NotImplementedError:
            tbl_comment = None

        tbl = catalog.add_table(database_id, table_name, description=tbl_comment)
        tables[table_name] = tbl

        pk_columns = set(inspector.get_pk_constraint(table_name).get("constrained_columns") or [])
        columns = inspector.get_columns(table_name)
        distinct_counts = _sql_distinct_counts(engine, table_name, [c["name"] for c in columns])

        for position, col_info in enumerate(columns):
            name = col_info["name"]
            base_type = base_type_for_sql(col_info["type"])
            special_type = infer_special_type(
                name,
                base_type,
                is_primary_key=name in pk_columns,
                distinct_count=distinct_counts.get(name),
                cardinality_threshold=cardinality_threshold,
            )
            catalog.add_field(
                tbl.id,
                name,
                base_type,
                special_type=special_type,
                description=col_info.get("comment"),
                position=position,
            )

        for fk_info in inspector.get_foreign_keys(table_name):
            constrained = fk_info.get("constrained_columns") or []
            referred = fk_info.get("referred_columns") or []
            if len(constrained) != 1 or len(referred) != 1:
                logger.warning(
                    f"Skipping composite foreign key on {table_name}: {constrained} -> {fk_info.get('referred_table')}"
                )
                continue
            pending_fks.append((tbl.id, constrained[0], fk_info["referred_table"], referred[0]))

    for table_id, column_name, referred_table, referred_column in pending_fks:
        target_table = tables.get(referred_table)
        if target_table is None:
            logger.warning(f"Foreign key target table {referred_table!r} is not in the catalog")
            continue
        source = catalog.resolve_field(table_id, column_name)
        target = catalog.resolve_field(target_table.id, referred_column)
        catalog.set_foreign_key(source.id, target.id)

    logger.info(f"Synchronised {len(tables)} tables for database {database_id}")
    return [tables[name] for name in sorted(tables)]


def _sql_distinct_counts(engine: Engine, table_name: str, column_names: List[str]) -> Dict[str, int]:
    if not column_names:
        return {}
    stmt = select(
        *[func.count(column(name).distinct()) for name in column_names]
    ).select_from(table(table_name))
    try:
        with engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
    except SQLAlchemyError as e:
        logger.warning(f"Failed to fetch distinct counts for {table_name}: {e}")
        return {}
    return dict(zip(column_names, row))


def sync_mongo_catalog(
    db: Any,
    catalog: InMemoryCatalog,
    database_id: int,
    sample_size: int = 100,
    cardinality_threshold: int = 40,
) -> List[TableDescriptor]:
    """Registers every collection of the pymongo database ``db`` in ``catalog``.

    Fields are inferred from the first ``sample_size`` documents, in the order
    they are first seen. ``_id`` is registered under the logical name ``id``.
    """
    tables: List[TableDescriptor] = []
    for collection_name in sorted(db.list_collection_names()):
        if collection_name.startswith("system."):
            continue
        tbl = catalog.add_table(database_id, collection_name)
        tables.append(tbl)

        field_types: Dict[str, Optional[BaseType]] = {}
        distinct_values: Dict[str, set] = {}
        for doc in db[collection_name].find().limit(sample_size):
            for key, value in doc.items():
                field_types[key] = _merge_base_type(field_types.get(key), base_type_for_value(value))
                values = distinct_values.setdefault(key, set())
                if value is not None and not isinstance(value, (dict, list)):
                    values.add(value)

        for position, (key, base_type) in enumerate(field_types.items()):
            name = LOGICAL_ID_FIELD if key == MONGO_ID_FIELD else key
            resolved_type = base_type or BaseType.UNKNOWN
            special_type = infer_special_type(
                name,
                resolved_type,
                is_primary_key=key == MONGO_ID_FIELD,
                distinct_count=len(distinct_values.get(key, ())),
                cardinality_threshold=cardinality_threshold,
            )
            catalog.add_field(tbl.id, name, resolved_type, special_type=special_type, position=position)

    logger.info(f"Synchronised {len(tables)} collections for database {database_id}")
    return tables


def _merge_base_type(current: Optional[BaseType], seen: Optional[BaseType]) -> Optional[BaseType]:
    if current is None:
        return seen
    if seen is None or seen == current:
        return current
    if {current, seen} == {BaseType.INTEGER, BaseType.FLOAT}:
        return BaseType.FLOAT
    return current
