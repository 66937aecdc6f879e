"""Tests for graph.py and triggers.py — funnel records, trigger catalog and edge extraction."""

from __future__ import annotations

import logging

import pytest

from merchant_graph.graph import (
    Edge,
    FunnelNode,
    InvalidFunnelRecord,
    NamedRef,
    TriggerConfig,
    TriggerReference,
    build_funnel_graph,
    coerce_funnels,
    extract_edges,
)
from merchant_graph.triggers import (
    DEFAULT_CATALOG,
    ENTRY_TRIGGER_TYPES,
    LINKING_TRIGGER_TYPES,
    MEMBERSHIP_TRIGGER_TYPES,
    TriggerCatalog,
    TriggerType,
    trigger_id,
)

QUAL = TriggerType.QualificationMerchantComplete

# ─── Helpers ──────────────────────────────────────────────────────────────────


def make_funnel(
    funnel_id: str,
    source: str | None = None,
    trigger: TriggerType | str | None = QUAL,
    profile: str | None = None,
) -> FunnelNode:
    """Funnel whose app trigger optionally references ``source``."""
    if source is None and trigger is QUAL:
        return FunnelNode(id=funnel_id, name=funnel_id.upper())
    return FunnelNode(
        id=funnel_id,
        name=funnel_id.upper(),
        app_trigger=TriggerReference(trigger_type=trigger, config=TriggerConfig(funnel_id=source, sub_filter_id=profile)),
    )


# ─── Trigger Catalog Tests ────────────────────────────────────────────────────


class TestTriggerCatalog:
    def test_categories_are_disjoint(self):
        """No trigger belongs to two categories."""
        assert not LINKING_TRIGGER_TYPES & ENTRY_TRIGGER_TYPES
        assert not LINKING_TRIGGER_TYPES & MEMBERSHIP_TRIGGER_TYPES
        assert not ENTRY_TRIGGER_TYPES & MEMBERSHIP_TRIGGER_TYPES
        assert len(LINKING_TRIGGER_TYPES | ENTRY_TRIGGER_TYPES | MEMBERSHIP_TRIGGER_TYPES) == len(TriggerType)

    def test_default_classification(self):
        assert DEFAULT_CATALOG.is_linking(TriggerType.UpsellMerchantComplete)
        assert DEFAULT_CATALOG.is_linking("delete_merchant_conversation")
        assert DEFAULT_CATALOG.is_entry(TriggerType.OnAppEntry)
        assert DEFAULT_CATALOG.is_membership("cancel_membership")
        assert not DEFAULT_CATALOG.is_linking(TriggerType.OnAppEntry)
        assert not DEFAULT_CATALOG.is_linking(None)

    def test_display_names(self):
        """Known triggers have a name; unknown ones fall back to their id."""
        assert DEFAULT_CATALOG.display_name(QUAL) == "Qualification merchant complete"
        assert DEFAULT_CATALOG.display_name("any_cancel_membership") == "Any membership cancel"
        assert DEFAULT_CATALOG.display_name("something_new") == "something_new"

    def test_custom_catalog_accepts_raw_ids(self):
        """Raw string ids and enum members are interchangeable in a custom catalog."""
        catalog = TriggerCatalog(linking=frozenset({"upsell_merchant_complete"}))
        assert catalog.is_linking(TriggerType.UpsellMerchantComplete)
        assert not catalog.is_linking(QUAL)

    def test_trigger_id_normalises(self):
        """Enum members and raw ids map to the same string."""
        assert trigger_id(TriggerType.OnAppEntry) == "on_app_entry"
        assert trigger_id("on_app_entry") == "on_app_entry"
        assert trigger_id("custom") == "custom"

    def test_parse(self):
        assert TriggerType.parse("on_app_entry") is TriggerType.OnAppEntry
        assert TriggerType.parse("not_a_trigger") == "not_a_trigger"
        assert TriggerType.parse(None) is None


# ─── Funnel Record Tests ──────────────────────────────────────────────────────


class TestFunnelRecord:
    def test_flat_spelling(self):
        """triggerType / triggerConfig are read as the app trigger."""
        funnel = FunnelNode.from_record(
            {"id": "b", "name": "B", "triggerType": "qualification_merchant_complete", "triggerConfig": {"funnelId": "a"}}
        )
        assert funnel.app_trigger is not None
        assert funnel.app_trigger.trigger_type is QUAL
        assert funnel.app_trigger.config.funnel_id == "a"
        assert funnel.app_trigger.config.sub_filter_id is None

    def test_dashboard_spelling(self):
        """appTrigger*, membershipTrigger* and merchantType are all read."""
        funnel = FunnelNode.from_record(
            {
                "id": "b",
                "name": "B",
                "merchantType": "upsell",
                "appTriggerType": "qualification_merchant_complete",
                "appTriggerConfig": {"funnelId": "a", "profileId": "vip", "delayMinutes": 5},
                "membershipTriggerType": "membership_buy",
                "membershipTriggerConfig": {"resourceId": "prod_1"},
            }
        )
        assert funnel.merchant_type == "upsell"
        assert funnel.app_trigger.config.sub_filter_id == "vip"
        assert funnel.app_trigger.config.extra == {"delayMinutes": 5}
        assert funnel.membership_trigger.trigger_type is TriggerType.MembershipBuy
        assert funnel.membership_trigger.config.resource_id == "prod_1"

    def test_resources(self):
        """Products listed on the record are kept; entries without an id are skipped."""
        funnel = FunnelNode.from_record(
            {"id": "m", "resources": [{"id": "prod_1", "name": "Pro Plan"}, {"id": "prod_2"}, {"name": "no id"}]}
        )
        assert funnel.resources == (NamedRef(id="prod_1", name="Pro Plan"), NamedRef(id="prod_2"))

    @pytest.mark.parametrize("resources", ["prod_1", {"id": "prod_1"}, ["prod_1"]])
    def test_invalid_resources(self, resources):
        with pytest.raises(InvalidFunnelRecord):
            FunnelNode.from_record({"id": "m", "resources": resources})

    @pytest.mark.parametrize(("raw", "expected"), [("qualification", "qualification"), ("", None), (None, None), (3, "3")])
    def test_merchant_type_normalised(self, raw, expected):
        """merchantType is read like every other optional string field."""
        assert FunnelNode.from_record({"id": "m", "merchantType": raw}).merchant_type == expected

    def test_no_trigger(self):
        funnel = FunnelNode.from_record({"id": "a"})
        assert funnel.app_trigger is None
        assert funnel.membership_trigger is None
        assert funnel.name == ""
        assert funnel.resources == ()

    def test_unknown_trigger_kept_raw(self):
        funnel = FunnelNode.from_record({"id": "a", "triggerType": "mystery"})
        assert funnel.app_trigger.trigger_type == "mystery"

    @pytest.mark.parametrize("record", [{"name": "no id"}, {"id": 7}, {"id": ""}, "a"])
    def test_invalid_record(self, record):
        """Records without a usable string id are rejected."""
        with pytest.raises(InvalidFunnelRecord) as exc_info:
            FunnelNode.from_record(record)
        assert exc_info.value.record is record

    def test_invalid_trigger_config(self):
        with pytest.raises(InvalidFunnelRecord):
            FunnelNode.from_record({"id": "a", "triggerType": "on_app_entry", "triggerConfig": ["x"]})

    def test_coerce_skips_none_and_duplicates(self, caplog):
        """None entries vanish; a repeated id keeps its first record and logs a warning."""
        first = make_funnel("a")
        with caplog.at_level(logging.WARNING, logger="merchant_graph.graph"):
            funnels = coerce_funnels([None, first, {"id": "b"}, {"id": "a", "name": "later"}])
        assert [f.id for f in funnels] == ["a", "b"]
        assert funnels[0] is first
        assert "duplicate funnel id 'a'" in caplog.text


# ─── Edge Extraction Tests ────────────────────────────────────────────────────


class TestExtractEdges:
    def test_linking_trigger_makes_edge(self):
        funnels = [make_funnel("a"), make_funnel("b", source="a", profile="p1")]
        assert extract_edges(funnels) == [
            Edge(
                source_id="a",
                target_id="b",
                trigger_type=QUAL,
                trigger_name="Qualification merchant complete",
                sub_filter_id="p1",
            )
        ]

    def test_input_order_preserved(self):
        """Edges follow the order of the funnels that declare them."""
        funnels = [make_funnel("c", source="a"), make_funnel("a"), make_funnel("b", source="a")]
        assert [(e.source_id, e.target_id) for e in extract_edges(funnels)] == [("a", "c"), ("a", "b")]

    def test_dangling_reference_dropped(self):
        """A reference to a missing funnel produces no edge."""
        funnels = [make_funnel("a"), make_funnel("b", source="deleted")]
        assert extract_edges(funnels) == []

    def test_missing_funnel_id_dropped(self):
        funnels = [make_funnel("a"), make_funnel("b", source=None, trigger=TriggerType.UpsellMerchantComplete)]
        assert extract_edges(funnels) == []

    @pytest.mark.parametrize(
        "trigger",
        [TriggerType.OnAppEntry, TriggerType.NoActiveConversation, TriggerType.MembershipBuy, "mystery"],
    )
    def test_non_linking_trigger_ignored(self, trigger):
        """Entry, membership and unknown triggers never link, even with a funnelId."""
        funnels = [make_funnel("a"), make_funnel("b", source="a", trigger=trigger)]
        assert extract_edges(funnels) == []

    def test_all_linking_types(self):
        funnels = [make_funnel("a")] + [
            make_funnel(f"t{i}", source="a", trigger=t) for i, t in enumerate(sorted(LINKING_TRIGGER_TYPES))
        ]
        assert len(extract_edges(funnels)) == 3

    def test_self_reference(self):
        """A funnel triggered by its own completion yields a self-loop."""
        edges = extract_edges([make_funnel("a", source="a")])
        assert [(e.source_id, e.target_id) for e in edges] == [("a", "a")]

    def test_custom_catalog(self):
        """A custom linking set and display names are honoured."""
        catalog = TriggerCatalog(linking=frozenset({"custom_link"}), display_names={"custom_link": "Custom"})
        funnels = [make_funnel("a"), make_funnel("b", source="a", trigger="custom_link"), make_funnel("c", source="a")]
        edges = extract_edges(funnels, catalog)
        assert [(e.target_id, e.trigger_name) for e in edges] == [("b", "Custom")]

    def test_deterministic(self):
        funnels = [make_funnel("a"), make_funnel("b", source="a"), make_funnel("c", source="b")]
        assert extract_edges(funnels) == extract_edges(funnels)


class TestBuildFunnelGraph:
    def test_nodes_and_edges_carry_data(self):
        funnels = [make_funnel("a"), make_funnel("b", source="a")]
        edges = extract_edges(funnels)
        g = build_funnel_graph(funnels, edges)
        assert list(g.nodes) == ["a", "b"]
        assert g.nodes["a"]["data"] is funnels[0]
        assert [d["data"] for _, _, d in g.edges(data=True)] == edges

    def test_parallel_edges_kept(self):
        edges = extract_edges([make_funnel("a")]) + [
            Edge("a", "b", QUAL, "Qualification merchant complete"),
            Edge("a", "b", QUAL, "Qualification merchant complete"),
        ]
        g = build_funnel_graph([], edges)
        assert g.number_of_edges("a", "b") == 2
