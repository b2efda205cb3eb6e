"""
Color palettes and closed lookup tables for diagram visuals.

Event-kind icons and descriptions are keyed by ``EventKind``; the tables are
checked for completeness at import time so a new kind cannot ship without
its visuals.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from .models import EdgeKind, EventKind


# ============================================
# Base Palettes
# ============================================

STATUS_COLORS: Mapping[str, str] = MappingProxyType({
    "NEW": "#e0e0e0",
    "SENT_TO_AO": "#90caf9",
    "PROPOSAL_PREPARED": "#ffc107",
    "PROPOSAL_RECEIVED": "#ffca28",
    "VOTING_IN_PROGRESS": "#ba68c8",
    "PROCESSING": "#42a5f5",
    "TALLYING_VOTES": "#9c27b0",
    "COMPLETE": "#66bb6a",
    "MINT_APPROVED": "#4caf50",
    "MINTING": "#26a69a",
    "BURN_APPROVED": "#ff9800",
    "BURNING": "#ef5350",
    "CONNECTED": "#64b5f6",
    "APPROVED": "#ffd54f",
    "STAKING": "#4db6ac",
    "STAKED": "#009688",
    "EARNING": "#81c784",
    "CLAIMED": "#4caf50",
    "UNSTAKING": "#ffb74d",
    "COOLDOWN": "#ffa726",
    "WITHDRAWN": "#ab47bc",
})
DEFAULT_STATUS_COLOR = "#bdbdbd"

JOURNEY_COLORS: Mapping[str, str] = MappingProxyType({
    "event": "#42a5f5",
    "proposal": "#ffca28",
    "voting": "#ab47bc",
    "minting": "#26a69a",
    "burning": "#ef5350",
    "credit": "#5c6bc0",
    "gray": "#9e9e9e",
})

NODE_TYPE_COLORS: Mapping[str, str] = MappingProxyType({
    "event": JOURNEY_COLORS["event"],
    "proposer": JOURNEY_COLORS["proposal"],
    "voter": JOURNEY_COLORS["voting"],
    "token": JOURNEY_COLORS["minting"],
    "recipient": JOURNEY_COLORS["credit"],
    "other": "#e0e0e0",
    "process": JOURNEY_COLORS["proposal"],
})
DEFAULT_NODE_COLOR = "#3b82f6"

FLOW_STEP_COLORS: Mapping[str, str] = MappingProxyType({
    "user_action": "#42a5f5",
    "event_emission": "#29b6f6",
    "event_processing": "#039be5",
    "proposal_preparation": "#ffc107",
    "proposal_received": "#ffb300",
    "voting": "#ab47bc",
    "vote_tallying": "#8e24aa",
    "mint_approval": "#4caf50",
    "minting": "#26a69a",
    "burn_approval": "#ff9800",
    "burning": "#ef5350",
    "notification": "#5c6bc0",
    "default": "#bdbdbd",
})

# Straight journey kinds map onto their own color; routed kinds borrow one.
_EDGE_KIND_JOURNEY = {
    EdgeKind.EVENT: "event",
    EdgeKind.PROPOSAL: "proposal",
    EdgeKind.VOTING: "voting",
    EdgeKind.VALUE: "credit",
    EdgeKind.UPDATE: "voting",
    EdgeKind.RELEASE: "minting",
    EdgeKind.STAKE: "minting",
    EdgeKind.RETURN: "credit",
}


@dataclass(frozen=True)
class Palette:
    """UI colors for one theme mode."""

    mode: str
    background: str
    paper: str
    primary_text: str
    secondary_text: str
    tertiary_text: str
    border: str
    status_badge_text: str
    primary: str
    primary_dark: str
    grid_dot: str


DARK_PALETTE = Palette(
    mode="dark",
    background="#1F2937",
    paper="#23272F",
    primary_text="#F9FAFB",
    secondary_text="#D1D5DB",
    tertiary_text="#A3AED0",
    border="#374151",
    status_badge_text="#1F2937",
    primary="#8A2BE2",
    primary_dark="#6A1EC0",
    grid_dot="#23272F",
)

LIGHT_PALETTE = Palette(
    mode="light",
    background="#F8FAFC",
    paper="#FFFFFF",
    primary_text="#1E293B",
    secondary_text="#64748B",
    tertiary_text="#94A3B8",
    border="#E2E8F0",
    status_badge_text="#1E293B",
    primary="#8A2BE2",
    primary_dark="#6A1EC0",
    grid_dot="#E2E8F0",
)

PALETTES: Mapping[str, Palette] = MappingProxyType({"dark": DARK_PALETTE, "light": LIGHT_PALETTE})


def get_palette(mode: str) -> Palette:
    return PALETTES.get(mode, DARK_PALETTE)


# ============================================
# Event Kinds
# ============================================

@dataclass(frozen=True)
class EventVisual:
    icon: str
    color: str
    description: str


EVENT_VISUALS: Mapping[EventKind, EventVisual] = MappingProxyType({
    EventKind.CONTRACT: EventVisual(
        icon="⚛️",
        color=JOURNEY_COLORS["event"],
        description=(
            "Smart contract interaction on the quantum bridge. These contracts handle "
            "token locking, unlocking, and cross-chain verification."
        ),
    ),
    EventKind.AO: EventVisual(
        icon="\U0001f504",
        color=JOURNEY_COLORS["voting"],
        description=(
            "Autonomous Object operation in the AO network. AO processes handle the "
            "decentralized logic for token minting, burning, and multisig operations."
        ),
    ),
    EventKind.RELAYER: EventVisual(
        icon="⚡",
        color=JOURNEY_COLORS["proposal"],
        description=(
            "Cross-chain message relaying between networks. Relayers ensure secure "
            "communication between Ethereum and Arweave by validating and forwarding "
            "transaction data."
        ),
    ),
    EventKind.SNAPSHOT: EventVisual(
        icon="\U0001f5f3️",
        color=JOURNEY_COLORS["credit"],
        description=(
            "Off-chain Snapshot space. Token holders sign gasless votes that are "
            "tallied against a block-height balance snapshot."
        ),
    ),
})

_missing = set(EventKind) - set(EVENT_VISUALS)
if _missing:
    raise RuntimeError(f"EVENT_VISUALS is missing entries for {sorted(k.value for k in _missing)}")
_missing = set(EdgeKind) - set(_EDGE_KIND_JOURNEY)
if _missing:
    raise RuntimeError(f"Edge kinds without a journey color: {sorted(k.value for k in _missing)}")
del _missing


def event_visual(kind: Optional[EventKind]) -> Optional[EventVisual]:
    if kind is None:
        return None
    return EVENT_VISUALS[kind]


# ============================================
# Statuses
# ============================================

STATUS_DESCRIPTIONS: Mapping[str, str] = MappingProxyType({
    "NEW": "The transaction has been created but not yet processed",
    "SENT_TO_AO": "Transaction has been sent to the Autonomous Object network",
    "PROPOSAL_PREPARED": "AO USDA EventHandler has prepared a proposal for the multisig group",
    "PROPOSAL_RECEIVED": "Multisig group has received the proposal and is ready for voting",
    "VOTING_IN_PROGRESS": "Voting is in progress. Waiting for required number of approvals",
    "TALLYING_VOTES": "Votes are being tallied to determine if quorum is reached",
    "MINT_APPROVED": "Proposal has received enough votes and is approved for minting",
    "MINTING": "USDA tokens are being minted according to the approved proposal",
    "BURN_PROPOSAL_PREPARED": "AO Handler has prepared a burn proposal for the multisig committee",
    "BURN_PROPOSAL_RECEIVED": "Multisig committee has received the burn proposal and is ready for voting",
    "BURN_APPROVED": "Burn proposal has been approved by the multisig committee",
    "BURNING": "USDA tokens are being burned according to the approved proposal",
    "COMPLETE": "Transaction has been fully processed and completed",
})
DEFAULT_STATUS_DESCRIPTION = "Transaction is in progress"


def format_status(status: Optional[str]) -> str:
    """``VOTING_IN_PROGRESS`` -> ``Voting In Progress``."""
    if not status:
        return ""
    return " ".join(word[:1] + word[1:].lower() for word in status.split("_"))


def status_description(status: str, status_tooltips: Optional[Mapping[str, str]] = None) -> str:
    """Scenario-authored tooltips win over the built-in descriptions."""
    if status_tooltips and status in status_tooltips:
        return status_tooltips[status]
    return STATUS_DESCRIPTIONS.get(status, DEFAULT_STATUS_DESCRIPTION)


def status_color(status: Optional[str]) -> str:
    return STATUS_COLORS.get(status or "", DEFAULT_STATUS_COLOR)


def node_color(semantic_type: str) -> str:
    return NODE_TYPE_COLORS.get(semantic_type, DEFAULT_NODE_COLOR)


def edge_color(kind: EdgeKind, authored: Optional[str] = None) -> str:
    """Authored edge color, else the journey color for the edge kind."""
    if authored:
        return authored
    return JOURNEY_COLORS.get(_EDGE_KIND_JOURNEY.get(kind, "gray"), JOURNEY_COLORS["gray"])


def hex_to_rgb(hex_color: str) -> str:
    """``#42a5f5`` -> ``66, 165, 245``."""
    value = hex_color.lstrip("#")
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
    return f"{r}, {g}, {b}"
