"""pipeline.queries.catalog

The built-in query catalog and query selection.

The catalog mirrors the analyses the container pipeline always ran against a
fresh index. Config files may add queries or redefine a catalog entry by name.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

from pipeline.errors import ConfigError
from pipeline.models import AnalysisQuery

from .registry import entity_keys, get_query_kind

DEFAULT_QUERIES: Tuple[AnalysisQuery, ...] = (
    AnalysisQuery(name="divergent_candidates", kind="divergence", params={"show_locations": True}),
    AnalysisQuery(name="log_symbol_search", kind="symbol_search", params={"name": "log"}),
    AnalysisQuery(name="sketchy_casts", kind="unsafe_casts", params={"include_implicit": False}),
    AnalysisQuery(name="call_graph", kind="call_graph"),
    AnalysisQuery(name="reference_graph", kind="reference_graph", params={"length": 3}),
)


def build_catalog(extra: Sequence[AnalysisQuery] = ()) -> Dict[str, AnalysisQuery]:
    """Built-in queries overlaid with *extra* (same name replaces)."""
    catalog: Dict[str, AnalysisQuery] = {q.name: q for q in DEFAULT_QUERIES}
    for q in extra:
        catalog[q.name] = q
    return catalog


def _with_entity(query: AnalysisQuery, slot: str, value: str) -> AnalysisQuery:
    id_key, name_key = entity_keys(slot)
    params = {k: v for k, v in query.params.items() if k not in (id_key, name_key)}
    v = str(value).strip()
    params[id_key if v.isdigit() else name_key] = v
    return AnalysisQuery(name=query.name, kind=query.kind, params=params, artifact=query.artifact)


def apply_entity_overrides(
    query: AnalysisQuery,
    *,
    entity: Optional[str] = None,
    reachable_from: Optional[str] = None,
) -> AnalysisQuery:
    """Point graph queries at ``--entity`` / ``--reachable-from``.

    A numeric value is taken as an entity id, anything else as a symbol name.
    Kinds without the matching slot are returned unchanged.
    """
    try:
        kind = get_query_kind(query.kind)
    except KeyError:
        return query
    if entity and "entity" in kind.entity_slots:
        query = _with_entity(query, "entity", entity)
    if reachable_from and "reachable_from" in kind.entity_slots:
        query = _with_entity(query, "reachable_from", reachable_from)
    return query


def select_queries(
    names: Optional[Sequence[str]],
    *,
    extra: Sequence[AnalysisQuery] = (),
    entity: Optional[str] = None,
    reachable_from: Optional[str] = None,
) -> List[AnalysisQuery]:
    """Resolve query names against the catalog.

    ``names=None`` selects the whole catalog; an empty sequence selects
    nothing. Unknown names raise :class:`ConfigError`.
    """
    catalog = build_catalog(extra)
    if names is None:
        chosen = list(catalog.values())
    else:
        unknown = [n for n in names if n not in catalog]
        if unknown:
            raise ConfigError(f"Unknown queries: {', '.join(unknown)}. Available: {', '.join(catalog)}")
        seen = set()
        chosen = []
        for n in names:
            if n in seen:
                continue
            seen.add(n)
            chosen.append(catalog[n])
    return [apply_entity_overrides(q, entity=entity, reachable_from=reachable_from) for q in chosen]
