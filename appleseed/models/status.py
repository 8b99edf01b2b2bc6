"""
Prospect lifecycle vocabulary and transition rules.

Statuses are stored as plain text columns; every write goes through one of the
check_* functions below so an illegal jump (e.g. confirmed → pending) raises
instead of silently landing in the database.
"""
from enum import Enum


class Tier(str, Enum):
    A = 'A'
    B = 'B'
    C = 'C'
    D = 'D'

    @property
    def rank(self):
        """0 for A (best) through 3 for D."""
        return 'ABCD'.index(self.value)


CONTACTABLE_TIERS = frozenset({Tier.A, Tier.B, Tier.C})


class OutreachStatus(str, Enum):
    PENDING = 'pending'
    PR_OPENED = 'pr_opened'
    PR_MERGED = 'pr_merged'
    PR_CLOSED = 'pr_closed'
    DECLINED = 'declined'


class PayoutStatus(str, Enum):
    PENDING = 'pending'
    SENT = 'sent'
    CONFIRMED = 'confirmed'
    FAILED = 'failed'


class DiscoveryStrategy(str, Enum):
    MCP = 'mcp'
    LANGCHAIN = 'langchain'
    AUTOGPT = 'autogpt'
    CREWAI = 'crewai'
    BITCOIN_AI = 'bitcoin_ai'


OUTREACH_TRANSITIONS = {
    OutreachStatus.PENDING: frozenset({OutreachStatus.PR_OPENED, OutreachStatus.DECLINED}),
    OutreachStatus.PR_OPENED: frozenset({
        OutreachStatus.PR_MERGED, OutreachStatus.PR_CLOSED, OutreachStatus.DECLINED,
    }),
    OutreachStatus.PR_MERGED: frozenset(),
    OutreachStatus.PR_CLOSED: frozenset(),
    OutreachStatus.DECLINED: frozenset(),
}

PAYOUT_TRANSITIONS = {
    PayoutStatus.PENDING: frozenset({PayoutStatus.SENT, PayoutStatus.FAILED}),
    PayoutStatus.SENT: frozenset({PayoutStatus.CONFIRMED, PayoutStatus.FAILED}),
    PayoutStatus.CONFIRMED: frozenset(),
    PayoutStatus.FAILED: frozenset(),
}


class IllegalTransition(Exception):
    """Raised when a lifecycle write would break the state machine."""
    def __init__(self, kind, current, target, reason=None):
        self.kind = kind
        self.current = current
        self.target = target
        self.reason = reason
        msg = f"Illegal {kind} transition {_value(current)} -> {_value(target)}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class ImmutableFieldError(Exception):
    """Raised when a write-once field would be overwritten with a new value."""


def _value(status):
    return getattr(status, 'value', status)


def parse_tier(value):
    """Tier for a stored value, or None when unscored."""
    if value is None:
        return None
    return Tier(_value(value))


def check_outreach_transition(current, target, tier) -> OutreachStatus:
    """Validate current → target for outreach status; returns the target enum."""
    current = OutreachStatus(_value(current))
    target = OutreachStatus(_value(target))
    if target not in OUTREACH_TRANSITIONS[current]:
        raise IllegalTransition('outreach', current, target)
    if parse_tier(tier) not in CONTACTABLE_TIERS:
        raise IllegalTransition('outreach', current, target, f"tier {_value(tier)} is not contactable")
    return target


def check_payout_transition(current, target, address_valid) -> PayoutStatus:
    """Validate current → target for payout status; returns the target enum."""
    current = PayoutStatus(_value(current))
    target = PayoutStatus(_value(target))
    if target not in PAYOUT_TRANSITIONS[current]:
        raise IllegalTransition('payout', current, target)
    if target == PayoutStatus.SENT and not address_valid:
        raise IllegalTransition('payout', current, target, 'address is not verified')
    return target
