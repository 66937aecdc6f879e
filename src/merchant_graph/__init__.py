"""merchant_graph — layered layout of merchant funnels linked by triggers."""

from merchant_graph.graph import Edge, FunnelNode, InvalidFunnelRecord, extract_edges
from merchant_graph.labels import decorate
from merchant_graph.layout import (
    Component,
    ComponentLayout,
    EdgeGroup,
    MerchantGraph,
    SourceSpan,
    assign_levels,
    group_edges,
    layout_merchant_graph,
    order_levels,
    partition_components,
    source_spans,
)
from merchant_graph.triggers import DEFAULT_CATALOG, TriggerCatalog, TriggerType

build_merchant_graph = layout_merchant_graph

__all__ = [
    "DEFAULT_CATALOG",
    "Component",
    "ComponentLayout",
    "Edge",
    "EdgeGroup",
    "FunnelNode",
    "InvalidFunnelRecord",
    "MerchantGraph",
    "SourceSpan",
    "TriggerCatalog",
    "TriggerType",
    "assign_levels",
    "build_merchant_graph",
    "decorate",
    "extract_edges",
    "group_edges",
    "layout_merchant_graph",
    "order_levels",
    "partition_components",
    "source_spans",
]
