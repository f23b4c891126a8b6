from queryproc.drivers.sql.adapter import GenericSQLAdapter

__all__ = ["GenericSQLAdapter"]
