"""pipeline.queries.registry

Registry of query *kinds*: which Multiplier binary a kind runs, which
parameters it accepts, and how those parameters turn into command-line flags.

A kind is registered with :func:`register_query_kind` on a small flag-building
function. The function receives parameters with defaults applied and entity
names already resolved to ids, and returns an ordered flag mapping for
:func:`tools.multiplier.query_command`. It raises ``ValueError`` for malformed
parameters; the runner turns that into a per-query ``QueryError``.

Entity slots
------------
Graph kinds address a function by entity id. Each slot may be given either as
an id or as a name (``entity_id`` / ``entity_name``,
``reachable_from_entity_id`` / ``reachable_from_name``); a name is resolved
through symbol search before the flag function runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

FlagFunc = Callable[[Mapping[str, Any]], Dict[str, Any]]


@dataclass(frozen=True)
class QueryKind:
    name: str
    binary: str
    func: FlagFunc
    ext: str = "txt"
    description: str = ""

    # Entity slots that must / may be supplied (see module docstring).
    required_entities: Tuple[str, ...] = ()
    optional_entities: Tuple[str, ...] = ()
    defaults: Mapping[str, Any] = field(default_factory=dict)

    @property
    def entity_slots(self) -> Tuple[str, ...]:
        return self.required_entities + self.optional_entities

    def build_flags(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        merged = dict(self.defaults)
        merged.update(params)
        return self.func(merged)


_QUERY_KINDS: Dict[str, QueryKind] = {}


def register_query_kind(
    name: str,
    *,
    binary: str,
    ext: str = "txt",
    description: str = "",
    required_entities: Tuple[str, ...] = (),
    optional_entities: Tuple[str, ...] = (),
    defaults: Optional[Mapping[str, Any]] = None,
):
    """Decorator to register a query kind."""

    def _decorator(fn: FlagFunc) -> FlagFunc:
        _QUERY_KINDS[name] = QueryKind(
            name=name,
            binary=binary,
            func=fn,
            ext=ext,
            description=description,
            required_entities=tuple(required_entities),
            optional_entities=tuple(optional_entities),
            defaults=dict(defaults or {}),
        )
        return fn

    return _decorator


def get_query_kind(name: str) -> QueryKind:
    if name not in _QUERY_KINDS:
        raise KeyError(f"Unknown query kind: {name!r}. Valid: {sorted(_QUERY_KINDS)}")
    return _QUERY_KINDS[name]


def list_query_kinds() -> List[QueryKind]:
    return sorted(_QUERY_KINDS.values(), key=lambda k: k.name)


def entity_keys(slot: str) -> Tuple[str, str]:
    """``(id_key, name_key)`` for an entity slot."""
    if slot == "entity":
        return "entity_id", "entity_name"
    return f"{slot}_entity_id", f"{slot}_name"


# ---------------------------------------------------------------------------
# Parameter coercion
# ---------------------------------------------------------------------------


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"1", "true", "yes", "on"}:
        return True
    if isinstance(value, str) and value.strip().lower() in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{key} must be a boolean, got {value!r}")


def _as_positive_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{key} must be an integer >= 1, got {value!r}")
    try:
        out = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be an integer >= 1, got {value!r}") from None
    if out < 1:
        raise ValueError(f"{key} must be an integer >= 1, got {value!r}")
    return out


def _as_entity_id(value: Any, key: str) -> str:
    s = str(value).strip()
    if not s.isdigit():
        raise ValueError(f"{key} must be a numeric entity id, got {value!r}")
    return s


def _require_text(params: Mapping[str, Any], key: str) -> str:
    value = params.get(key)
    if value is None or not str(value).strip():
        raise ValueError(f"missing required parameter {key!r}")
    return str(value).strip()


# ---------------------------------------------------------------------------
# Built-in kinds
# ---------------------------------------------------------------------------


@register_query_kind(
    "divergence",
    binary="mx-find-divergent-candidates",
    description="Declarations whose representations diverge across translation units",
    defaults={"show_locations": True},
)
def _divergence(params: Mapping[str, Any]) -> Dict[str, Any]:
    return {"show_locations": _as_bool(params["show_locations"], "show_locations")}


@register_query_kind(
    "symbol_search",
    binary="mx-find-symbol",
    description="Look up symbols by name",
)
def _symbol_search(params: Mapping[str, Any]) -> Dict[str, Any]:
    return {"name": _require_text(params, "name")}


@register_query_kind(
    "unsafe_casts",
    binary="mx-find-sketchy-casts",
    description="Explicit (and optionally implicit) casts that may lose information",
    defaults={"include_implicit": False},
)
def _unsafe_casts(params: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "show_explicit": True,
        "show_implicit": _as_bool(params["include_implicit"], "include_implicit"),
    }


@register_query_kind(
    "call_graph",
    binary="mx-print-call-graph",
    ext="dot",
    description="Graphviz call graph of a function",
    required_entities=("entity",),
    optional_entities=("reachable_from",),
)
def _call_graph(params: Mapping[str, Any]) -> Dict[str, Any]:
    flags: Dict[str, Any] = {"entity_id": _as_entity_id(params.get("entity_id"), "entity_id")}
    if params.get("reachable_from_entity_id") is not None:
        flags["reachable_from_entity_id"] = _as_entity_id(
            params["reachable_from_entity_id"], "reachable_from_entity_id"
        )
    return flags


@register_query_kind(
    "reference_graph",
    binary="mx-print-reference-graph",
    ext="dot",
    description="Graphviz reference graph around an entity",
    required_entities=("entity",),
    defaults={"length": 3},
)
def _reference_graph(params: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "entity_id": _as_entity_id(params.get("entity_id"), "entity_id"),
        "length": _as_positive_int(params["length"], "length"),
    }
