"""Graph IR — funnel records, trigger references and the edges derived from them.

A funnel whose app trigger is a *linking* trigger (e.g. "qualification merchant
complete") names a predecessor funnel in its trigger config. Each such
reference becomes one directed ``Edge`` predecessor → funnel.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import networkx as nx

from merchant_graph.triggers import DEFAULT_CATALOG, TriggerCatalog, TriggerType, trigger_id

logger = logging.getLogger(__name__)


class InvalidFunnelRecord(ValueError):
    """A host record could not be read as a funnel."""

    def __init__(self, message: str, record: Any) -> None:
        super().__init__(message)
        self.record = record


# ─── Funnel Records ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TriggerConfig:
    """The parts of a trigger config the graph cares about.

    ``sub_filter_id`` is the profile id of a qualification trigger; two edges
    from the same source with different profiles are drawn as separate pills.
    Unrecognised keys are kept in ``extra``.
    """

    funnel_id: str | None = None
    sub_filter_id: str | None = None
    resource_id: str | None = None
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> TriggerConfig:
        if not raw:
            return cls()
        known = {"funnelId", "profileId", "subFilterId", "resourceId"}
        sub_filter = raw.get("profileId")
        if sub_filter is None:
            sub_filter = raw.get("subFilterId")
        return cls(
            funnel_id=_optional_str(raw.get("funnelId")),
            sub_filter_id=_optional_str(sub_filter),
            resource_id=_optional_str(raw.get("resourceId")),
            extra=MappingProxyType({k: v for k, v in raw.items() if k not in known}),
        )


@dataclass(frozen=True)
class TriggerReference:
    trigger_type: TriggerType | str
    config: TriggerConfig = field(default_factory=TriggerConfig)


@dataclass(frozen=True)
class NamedRef:
    """A profile or product, as far as labels are concerned."""

    id: str
    name: str | None = None


@dataclass(frozen=True)
class FunnelNode:
    """One merchant funnel as supplied by the host application.

    ``resources`` are the products attached to the funnel; membership labels
    fall back to them when the caller supplies no product list.
    """

    id: str
    name: str = ""
    app_trigger: TriggerReference | None = None
    membership_trigger: TriggerReference | None = None
    merchant_type: str | None = None
    resources: tuple[NamedRef, ...] = ()

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> FunnelNode:
        """Build a FunnelNode from a host record (camelCase keys).

        Both the dashboard spelling (``appTriggerType`` / ``appTriggerConfig``)
        and the flat spelling (``triggerType`` / ``triggerConfig``) are accepted.
        """
        if not isinstance(record, Mapping):
            raise InvalidFunnelRecord(f"funnel record must be a mapping, got {type(record).__name__}", record)
        funnel_id = record.get("id")
        if not isinstance(funnel_id, str) or not funnel_id:
            raise InvalidFunnelRecord("funnel record has no string 'id'", record)

        app_type = record.get("appTriggerType", record.get("triggerType"))
        app_config = record.get("appTriggerConfig", record.get("triggerConfig"))
        membership_type = record.get("membershipTriggerType")

        return cls(
            id=funnel_id,
            name=str(record.get("name") or ""),
            app_trigger=_reference(app_type, app_config, record),
            membership_trigger=_reference(membership_type, record.get("membershipTriggerConfig"), record),
            merchant_type=_optional_str(record.get("merchantType")),
            resources=_resources(record.get("resources"), record),
        )


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _resources(raw: Any, record: Mapping[str, Any]) -> tuple[NamedRef, ...]:
    """Products listed on a record; entries without an id are skipped."""
    if raw is None:
        return ()
    if isinstance(raw, (str, Mapping)) or not isinstance(raw, Iterable):
        raise InvalidFunnelRecord("funnel resources must be a list", record)
    refs: list[NamedRef] = []
    for item in raw:
        if not isinstance(item, Mapping):
            raise InvalidFunnelRecord("funnel resource must be a mapping", record)
        ref_id = _optional_str(item.get("id"))
        if ref_id is not None:
            refs.append(NamedRef(id=ref_id, name=_optional_str(item.get("name"))))
    return tuple(refs)


def _reference(raw_type: Any, raw_config: Any, record: Mapping[str, Any]) -> TriggerReference | None:
    if raw_type is None:
        return None
    if raw_config is not None and not isinstance(raw_config, Mapping):
        raise InvalidFunnelRecord("trigger config must be a mapping", record)
    return TriggerReference(
        trigger_type=TriggerType.parse(str(raw_type)),
        config=TriggerConfig.from_mapping(raw_config),
    )


def coerce_funnels(records: Iterable[FunnelNode | Mapping[str, Any] | None]) -> list[FunnelNode]:
    """Normalise host input: skip ``None`` entries, convert mappings, drop duplicate ids.

    The first funnel with a given id wins.
    """
    funnels: list[FunnelNode] = []
    seen: set[str] = set()
    for record in records:
        if record is None:
            continue
        funnel = record if isinstance(record, FunnelNode) else FunnelNode.from_record(record)
        if funnel.id in seen:
            logger.warning("duplicate funnel id %r ignored", funnel.id)
            continue
        seen.add(funnel.id)
        funnels.append(funnel)
    return funnels


# ─── Edges ────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Edge:
    """A directed link: ``target_id``'s trigger fires when ``source_id`` completes."""

    source_id: str
    target_id: str
    trigger_type: TriggerType | str
    trigger_name: str
    sub_filter_id: str | None = None

    @property
    def group_key(self) -> tuple[str, str, str]:
        """Key under which parallel edges share one connector pill."""
        return (self.source_id, trigger_id(self.trigger_type), self.sub_filter_id or "")


def extract_edges(funnels: Iterable[FunnelNode], catalog: TriggerCatalog = DEFAULT_CATALOG) -> list[Edge]:
    """Derive one edge per funnel whose linking trigger names a known funnel.

    Funnels with a non-linking trigger, no trigger, or a reference to a funnel
    that is not in ``funnels`` (e.g. a deleted one) produce no edge. The result
    follows the input order.
    """
    funnels = list(funnels)
    funnel_ids = {f.id for f in funnels}
    edges: list[Edge] = []
    dropped = 0

    for funnel in funnels:
        trigger = funnel.app_trigger
        if trigger is None or not catalog.is_linking(trigger.trigger_type):
            continue
        source_id = trigger.config.funnel_id
        if source_id is None or source_id not in funnel_ids:
            dropped += 1
            continue
        edges.append(
            Edge(
                source_id=source_id,
                target_id=funnel.id,
                trigger_type=trigger.trigger_type,
                trigger_name=catalog.display_name(trigger.trigger_type),
                sub_filter_id=trigger.config.sub_filter_id,
            )
        )

    logger.debug("extracted %d edges from %d funnels (%d dangling references dropped)", len(edges), len(funnels), dropped)
    return edges


def build_funnel_graph(funnels: Iterable[FunnelNode], edges: Iterable[Edge]) -> nx.MultiDiGraph:
    """Materialise funnels and edges as a MultiDiGraph.

    Nodes are added in funnel order (attribute ``data`` = FunnelNode) and edges
    in edge order (attribute ``data`` = Edge), so adjacency iteration is
    deterministic.
    """
    g: nx.MultiDiGraph = nx.MultiDiGraph()
    for funnel in funnels:
        g.add_node(funnel.id, data=funnel)
    for edge in edges:
        g.add_edge(edge.source_id, edge.target_id, data=edge)
    return g
