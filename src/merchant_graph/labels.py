"""Display labels for the merchant graph — text only, no geometry.

The renderer shows three kinds of labels:
  - a trigger pill on every edge group connector
  - an entry pill above a level-0 funnel started by an entry trigger
  - a membership label above a funnel started by a membership trigger
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from merchant_graph.graph import FunnelNode, NamedRef
from merchant_graph.layout import EdgeGroup, MerchantGraph
from merchant_graph.triggers import DEFAULT_CATALOG, TriggerCatalog, TriggerType, trigger_id


def _name_lookup(refs: Iterable[NamedRef | Mapping[str, str]] | None) -> dict[str, str]:
    lookup: dict[str, str] = {}
    for ref in refs or ():
        ref_id, name = (ref.id, ref.name) if isinstance(ref, NamedRef) else (ref.get("id"), ref.get("name"))
        if ref_id and name:
            lookup.setdefault(ref_id, name)
    return lookup


def trigger_display_name(trigger_type: TriggerType | str, catalog: TriggerCatalog = DEFAULT_CATALOG) -> str:
    return catalog.display_name(trigger_type)


def trigger_pill_label(
    group: EdgeGroup,
    profiles: Iterable[NamedRef | Mapping[str, str]] | None = None,
) -> str:
    """Label of a connector pill.

    Qualification triggers filtered on a profile show the profile name,
    e.g. ``"Qualification merchant complete (VIP)"``.
    """
    if trigger_id(group.trigger_type) == TriggerType.QualificationMerchantComplete.value and group.sub_filter_id:
        profile_name = _name_lookup(profiles).get(group.sub_filter_id)
        if profile_name:
            return f"{group.trigger_name} ({profile_name})"
    return group.trigger_name


def membership_label(
    funnel: FunnelNode,
    resources: Iterable[NamedRef | Mapping[str, str]] | None = None,
    catalog: TriggerCatalog = DEFAULT_CATALOG,
) -> str | None:
    """``"<trigger> – <product>"`` for membership-triggered funnels, ``None`` otherwise.

    Without an explicit ``resources`` list the funnel's own products are used.
    """
    trigger = funnel.membership_trigger
    if trigger is None or not catalog.is_membership(trigger.trigger_type):
        return None
    name = catalog.display_name(trigger.trigger_type)
    resource_id = trigger.config.resource_id
    if resources is None:
        resources = funnel.resources
    product = _name_lookup(resources).get(resource_id) if resource_id else None
    return f"{name} – {product}" if product else name


def entry_label(funnel: FunnelNode, level: int, catalog: TriggerCatalog = DEFAULT_CATALOG) -> str | None:
    """Entry pill text; only funnels on level 0 show one."""
    trigger = funnel.app_trigger
    if level != 0 or trigger is None or not catalog.is_entry(trigger.trigger_type):
        return None
    return catalog.display_name(trigger.trigger_type)


# ─── Whole-graph Decoration ───────────────────────────────────────────────────


@dataclass(frozen=True)
class NodeDecoration:
    entry_label: str | None = None
    membership_label: str | None = None


@dataclass(frozen=True)
class ConnectorLabel:
    level: int
    group: EdgeGroup
    label: str


@dataclass(frozen=True)
class GraphDecoration:
    nodes: Mapping[str, NodeDecoration]
    connectors: tuple[ConnectorLabel, ...]


def decorate(
    graph: MerchantGraph,
    profiles: Iterable[NamedRef | Mapping[str, str]] | None = None,
    resources: Iterable[NamedRef | Mapping[str, str]] | None = None,
    catalog: TriggerCatalog = DEFAULT_CATALOG,
) -> GraphDecoration:
    """Compute every label the renderer needs for ``graph``."""
    profiles = list(profiles or ())
    resources = list(resources) if resources is not None else None

    nodes: dict[str, NodeDecoration] = {}
    connectors: list[ConnectorLabel] = []
    for layout in graph.layouts:
        for node_id in layout.component:
            funnel = graph.funnels[node_id]
            nodes[node_id] = NodeDecoration(
                entry_label=entry_label(funnel, layout.levels[node_id], catalog),
                membership_label=membership_label(funnel, resources, catalog),
            )
        for level, groups in enumerate(layout.edge_groups_by_level):
            for group in groups:
                connectors.append(ConnectorLabel(level=level, group=group, label=trigger_pill_label(group, profiles)))

    return GraphDecoration(nodes=MappingProxyType(nodes), connectors=tuple(connectors))
