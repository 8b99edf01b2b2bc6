"""
Prospect store — persistence for prospects, the daily ledger and the activity log.

ProspectStore wraps one SQLAlchemy session handed in by the caller; every
mutating method commits immediately and rolls back on failure. Lifecycle
writes go through the transition checks in appleseed.models.status.
"""
import logging
from contextlib import contextmanager
from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from appleseed.database import open_session, init_db, utcnow
from appleseed.models.activity_log import ActivityLogEntry
from appleseed.models.daily_limit import DailyLimit
from appleseed.models.prospect import Prospect
from appleseed.models.status import (
    Tier, OutreachStatus, PayoutStatus, ImmutableFieldError,
    check_outreach_transition, check_payout_transition,
)

logger = logging.getLogger('services.store')


class DuplicateProspectError(Exception):
    """Raised when inserting a username that is already stored."""
    def __init__(self, username):
        self.username = username
        super().__init__(f"Prospect '{username}' already exists")


def _value(v):
    return getattr(v, 'value', v)


class ProspectStore:
    """Session-scoped access to the prospects, daily_limits and activity_log tables."""

    def __init__(self, session):
        self.session = session

    # ── Internals ─────────────────────────────────────────────────────

    def _commit(self):
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    @staticmethod
    def _touch(prospect):
        now = utcnow()
        if prospect.updated_at is None or now > prospect.updated_at:
            prospect.updated_at = now

    # ── Prospects ─────────────────────────────────────────────────────

    def add_prospect(self, username, github_id=None, email=None, repos=None,
                     discovered_via=None) -> Prospect:
        """Insert a new prospect. Raises DuplicateProspectError, never upserts."""
        if self.username_exists(username):
            raise DuplicateProspectError(username)
        now = utcnow()
        prospect = Prospect(
            username=username,
            github_id=github_id,
            email=email,
            repos=list(repos or []),
            discovered_via=_value(discovered_via),
            outreach_status=OutreachStatus.PENDING.value,
            payout_status=PayoutStatus.PENDING.value,
            address_valid=False,
            created_at=now,
            updated_at=now,
        )
        self.session.add(prospect)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise DuplicateProspectError(username)
        return prospect

    def get_prospect(self, prospect_id) -> Optional[Prospect]:
        return self.session.get(Prospect, prospect_id)

    def get_prospect_by_username(self, username) -> Optional[Prospect]:
        return self.session.execute(
            select(Prospect).where(Prospect.username == username)
        ).scalar_one_or_none()

    def username_exists(self, username) -> bool:
        return self.session.execute(
            select(Prospect.id).where(Prospect.username == username)
        ).first() is not None

    def list_prospects(self, tier=None, tiers: Iterable = None, outreach_status=None,
                       payout_status=None, pending_qualification=False,
                       address_valid=None, has_address=None, has_pr_url=None,
                       limit=None, offset=0) -> List[Prospect]:
        """Filtered prospects, newest first."""
        stmt = select(Prospect)
        if pending_qualification:
            stmt = stmt.where(Prospect.tier.is_(None))
        if tier is not None:
            stmt = stmt.where(Prospect.tier == _value(tier))
        if tiers is not None:
            stmt = stmt.where(Prospect.tier.in_([_value(t) for t in tiers]))
        if outreach_status is not None:
            stmt = stmt.where(Prospect.outreach_status == _value(outreach_status))
        if payout_status is not None:
            stmt = stmt.where(Prospect.payout_status == _value(payout_status))
        if address_valid is not None:
            stmt = stmt.where(Prospect.address_valid.is_(bool(address_valid)))
        if has_address is not None:
            col = Prospect.stacks_address
            stmt = stmt.where(col.isnot(None) if has_address else col.is_(None))
        if has_pr_url is not None:
            col = Prospect.pr_url
            stmt = stmt.where(col.isnot(None) if has_pr_url else col.is_(None))
        stmt = stmt.order_by(Prospect.created_at.desc(), Prospect.id.desc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.execute(stmt).scalars())

    def update_score(self, prospect, score, tier) -> Prospect:
        prospect.score = int(score)
        prospect.tier = Tier(_value(tier)).value
        self._touch(prospect)
        self._commit()
        return prospect

    def update_repos(self, prospect, repos) -> Prospect:
        prospect.repos = list(repos)
        self._touch(prospect)
        self._commit()
        return prospect

    def mark_pr_opened(self, prospect, target_repo, pr_url, pr_number, opened_at=None) -> Prospect:
        target = check_outreach_transition(
            prospect.outreach_status, OutreachStatus.PR_OPENED, prospect.tier,
        )
        prospect.outreach_status = target.value
        prospect.target_repo = target_repo
        prospect.pr_url = pr_url
        prospect.pr_number = pr_number
        prospect.pr_opened_at = opened_at or utcnow()
        self._touch(prospect)
        self._commit()
        return prospect

    def set_outreach_status(self, prospect, status) -> Prospect:
        target = check_outreach_transition(prospect.outreach_status, status, prospect.tier)
        prospect.outreach_status = target.value
        self._touch(prospect)
        self._commit()
        return prospect

    def record_address(self, prospect, address, valid) -> Prospect:
        """Store a wallet address; verified_at is stamped only for valid ones."""
        prospect.stacks_address = address
        prospect.address_valid = bool(valid)
        if valid:
            prospect.verified_at = utcnow()
        self._touch(prospect)
        self._commit()
        return prospect

    def mark_payout_sent(self, prospect, txid, amount_sats, sent_at=None) -> Prospect:
        target = check_payout_transition(
            prospect.payout_status, PayoutStatus.SENT, prospect.address_valid,
        )
        self._set_amount(prospect, amount_sats)
        prospect.payout_status = target.value
        prospect.payout_txid = txid
        prospect.payout_sent_at = sent_at or utcnow()
        self._touch(prospect)
        self._commit()
        return prospect

    def mark_payout_confirmed(self, prospect, block_height=None) -> Prospect:
        target = check_payout_transition(
            prospect.payout_status, PayoutStatus.CONFIRMED, prospect.address_valid,
        )
        prospect.payout_status = target.value
        if block_height is not None:
            prospect.payout_block_height = block_height
        self._touch(prospect)
        self._commit()
        return prospect

    def mark_payout_failed(self, prospect, amount_sats=None) -> Prospect:
        target = check_payout_transition(
            prospect.payout_status, PayoutStatus.FAILED, prospect.address_valid,
        )
        if amount_sats is not None:
            self._set_amount(prospect, amount_sats)
        prospect.payout_status = target.value
        self._touch(prospect)
        self._commit()
        return prospect

    @staticmethod
    def _set_amount(prospect, amount_sats):
        current = prospect.payout_amount_sats
        if current is not None and current != amount_sats:
            raise ImmutableFieldError(
                f"payout amount for prospect {prospect.id} is already {current} sats"
            )
        prospect.payout_amount_sats = amount_sats

    # ── Daily ledger ──────────────────────────────────────────────────

    @staticmethod
    def _today(today=None) -> date:
        return today or utcnow().date()

    def get_or_create_today(self, today=None) -> DailyLimit:
        """Today's counters row (UTC date), created zeroed on first access."""
        key = self._today(today)
        row = self.session.get(DailyLimit, key)
        if row is None:
            row = DailyLimit(date=key, prs_opened=0, payouts_sent=0)
            self.session.add(row)
            self._commit()
        return row

    def increment_prs(self, today=None) -> DailyLimit:
        row = self.get_or_create_today(today)
        row.prs_opened = (row.prs_opened or 0) + 1
        self._commit()
        return row

    def increment_payouts(self, today=None) -> DailyLimit:
        row = self.get_or_create_today(today)
        row.payouts_sent = (row.payouts_sent or 0) + 1
        self._commit()
        return row

    # ── Activity log ──────────────────────────────────────────────────

    def log_activity(self, action, prospect_id=None, details=None) -> ActivityLogEntry:
        entry = ActivityLogEntry(
            action=action,
            prospect_id=prospect_id,
            details=details or {},
            created_at=utcnow(),
        )
        self.session.add(entry)
        self._commit()
        return entry

    def get_activity_log(self, limit=50, prospect_id=None) -> List[ActivityLogEntry]:
        stmt = select(ActivityLogEntry)
        if prospect_id is not None:
            stmt = stmt.where(ActivityLogEntry.prospect_id == prospect_id)
        stmt = stmt.order_by(ActivityLogEntry.created_at.desc(), ActivityLogEntry.id.desc())
        return list(self.session.execute(stmt.limit(limit)).scalars())

    # ── Stats ─────────────────────────────────────────────────────────

    def _count_by(self, column):
        rows = self.session.execute(
            select(column, func.count(Prospect.id)).group_by(column)
        ).all()
        return {key: count for key, count in rows}

    def get_stats(self, today=None) -> dict:
        """Counts by tier / outreach / payout status, today's ledger and the funnel."""
        total = self.session.execute(select(func.count(Prospect.id))).scalar_one()

        tier_counts = self._count_by(Prospect.tier)
        by_tier = {t.value: tier_counts.get(t.value, 0) for t in Tier}
        by_tier['unqualified'] = tier_counts.get(None, 0)

        outreach_counts = self._count_by(Prospect.outreach_status)
        by_outreach = {s.value: outreach_counts.get(s.value, 0) for s in OutreachStatus}

        payout_counts = self._count_by(Prospect.payout_status)
        by_payout = {s.value: payout_counts.get(s.value, 0) for s in PayoutStatus}

        verified = self.session.execute(
            select(func.count(Prospect.id)).where(Prospect.address_valid.is_(True))
        ).scalar_one()
        contacted = self.session.execute(
            select(func.count(Prospect.id)).where(Prospect.pr_url.isnot(None))
        ).scalar_one()

        key = self._today(today)
        row = self.session.get(DailyLimit, key)
        today_counts = row.to_dict() if row else {
            'date': key.isoformat(), 'prs_opened': 0, 'payouts_sent': 0,
        }

        return {
            'total': total,
            'by_tier': by_tier,
            'by_outreach': by_outreach,
            'by_payout': by_payout,
            'verified': verified,
            'today': today_counts,
            'funnel': {
                'scanned': total,
                'qualified': by_tier['A'] + by_tier['B'] + by_tier['C'],
                'contacted': contacted,
                'verified': verified,
                'paid': by_payout['sent'] + by_payout['confirmed'],
            },
        }


@contextmanager
def open_store(url=None, engine=None, create_schema=False):
    """Yield a ProspectStore over a scoped session; closed on every exit path."""
    with open_session(url=url, engine=engine) as session:
        if create_schema:
            init_db(session.get_bind())
        yield ProspectStore(session)
