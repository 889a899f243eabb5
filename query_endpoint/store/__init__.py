"""Default query store: SQLAlchemy datasets plus an optional search index."""

from __future__ import annotations

from .errors import IndexNotConfigured, QueryRejected, QueryTimeout, SecondaryIndexError, StoreError
from .index import SearchHit, SecondaryIndex
from .sql import QueryResult, SqlQueryStore, SqlStoreConnection, dataset_url

__all__ = [
    "IndexNotConfigured",
    "QueryRejected",
    "QueryResult",
    "QueryTimeout",
    "SearchHit",
    "SecondaryIndex",
    "SecondaryIndexError",
    "SqlQueryStore",
    "SqlStoreConnection",
    "StoreError",
    "dataset_url",
]
