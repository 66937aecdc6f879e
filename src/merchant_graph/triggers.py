"""Trigger catalog — the closed set of trigger types a merchant funnel can carry.

Triggers fall into three categories:
  - linking     a funnel starts when another funnel completes (these make edges)
  - entry       a funnel is an entry point of the app
  - membership  a funnel reacts to a membership purchase or cancellation

Only linking triggers take part in the graph algorithm; the other two are
passed through for display decoration.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum


class TriggerType(str, Enum):
    """Every trigger id known to the funnel builder."""

    OnAppEntry = "on_app_entry"
    NoActiveConversation = "no_active_conversation"
    AnyMembershipBuy = "any_membership_buy"
    MembershipBuy = "membership_buy"
    AnyCancelMembership = "any_cancel_membership"
    CancelMembership = "cancel_membership"
    QualificationMerchantComplete = "qualification_merchant_complete"
    UpsellMerchantComplete = "upsell_merchant_complete"
    DeleteMerchantConversation = "delete_merchant_conversation"

    @classmethod
    def parse(cls, raw: str | None) -> TriggerType | str | None:
        """Return the enum member for ``raw``, or ``raw`` itself if it is unknown."""
        if raw is None:
            return None
        try:
            return cls(raw)
        except ValueError:
            return raw


# ─── Default Categories ───────────────────────────────────────────────────────

LINKING_TRIGGER_TYPES: frozenset[TriggerType] = frozenset(
    {
        TriggerType.QualificationMerchantComplete,
        TriggerType.UpsellMerchantComplete,
        TriggerType.DeleteMerchantConversation,
    }
)

ENTRY_TRIGGER_TYPES: frozenset[TriggerType] = frozenset(
    {
        TriggerType.OnAppEntry,
        TriggerType.NoActiveConversation,
    }
)

MEMBERSHIP_TRIGGER_TYPES: frozenset[TriggerType] = frozenset(
    {
        TriggerType.AnyMembershipBuy,
        TriggerType.MembershipBuy,
        TriggerType.AnyCancelMembership,
        TriggerType.CancelMembership,
    }
)

TRIGGER_DISPLAY_NAMES: Mapping[TriggerType, str] = {
    TriggerType.OnAppEntry: "App Entry",
    TriggerType.AnyMembershipBuy: "Any membership buy",
    TriggerType.MembershipBuy: "Membership buy",
    TriggerType.NoActiveConversation: "No active conversation",
    TriggerType.QualificationMerchantComplete: "Qualification merchant complete",
    TriggerType.UpsellMerchantComplete: "Upsell merchant complete",
    TriggerType.DeleteMerchantConversation: "Delete merchant conversation",
    TriggerType.AnyCancelMembership: "Any membership cancel",
    TriggerType.CancelMembership: "Cancel Membership",
}


# ─── Catalog ──────────────────────────────────────────────────────────────────


def trigger_id(trigger_type: TriggerType | str) -> str:
    """Normalise a trigger type to its raw string id, so enum members and plain ids compare alike."""
    return trigger_type.value if isinstance(trigger_type, TriggerType) else str(trigger_type)


@dataclass(frozen=True)
class TriggerCatalog:
    """The allow-lists and display names the graph engine consults.

    The module-level ``DEFAULT_CATALOG`` mirrors the funnel builder. Callers
    with a different trigger set pass their own instance; members may be
    ``TriggerType`` values or raw id strings, they are normalised to raw ids.
    """

    linking: frozenset[TriggerType | str] = LINKING_TRIGGER_TYPES
    entry: frozenset[TriggerType | str] = ENTRY_TRIGGER_TYPES
    membership: frozenset[TriggerType | str] = MEMBERSHIP_TRIGGER_TYPES
    display_names: Mapping[TriggerType | str, str] = field(default_factory=lambda: dict(TRIGGER_DISPLAY_NAMES))

    def __post_init__(self) -> None:
        object.__setattr__(self, "linking", frozenset(trigger_id(t) for t in self.linking))
        object.__setattr__(self, "entry", frozenset(trigger_id(t) for t in self.entry))
        object.__setattr__(self, "membership", frozenset(trigger_id(t) for t in self.membership))
        object.__setattr__(
            self,
            "display_names",
            {trigger_id(t): name for t, name in self.display_names.items()},
        )

    def is_linking(self, trigger_type: TriggerType | str | None) -> bool:
        return trigger_type is not None and trigger_id(trigger_type) in self.linking

    def is_entry(self, trigger_type: TriggerType | str | None) -> bool:
        return trigger_type is not None and trigger_id(trigger_type) in self.entry

    def is_membership(self, trigger_type: TriggerType | str | None) -> bool:
        return trigger_type is not None and trigger_id(trigger_type) in self.membership

    def display_name(self, trigger_type: TriggerType | str) -> str:
        """Human-readable trigger name; falls back to the raw trigger id."""
        raw = trigger_id(trigger_type)
        return self.display_names.get(raw, raw)


DEFAULT_CATALOG = TriggerCatalog()
