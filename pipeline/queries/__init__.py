"""pipeline.queries

Analysis queries against a built index: kind registry, built-in catalog,
entity resolution and the concurrent runner.
"""

from .catalog import DEFAULT_QUERIES, apply_entity_overrides, build_catalog, select_queries
from .entities import EntityResolutionError, EntityResolver
from .registry import QueryKind, get_query_kind, list_query_kinds, register_query_kind
from .runner import QueryRunner, run_all

__all__ = [
    "DEFAULT_QUERIES",
    "EntityResolutionError",
    "EntityResolver",
    "QueryKind",
    "QueryRunner",
    "apply_entity_overrides",
    "build_catalog",
    "get_query_kind",
    "list_query_kinds",
    "register_query_kind",
    "run_all",
    "select_queries",
]
