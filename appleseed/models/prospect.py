"""
Prospect model — one row per unique GitHub username.

Matched-repository evidence is kept as a JSON list on the row; MatchedRepo is
the typed view of one entry.
"""
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Column, Integer, BigInteger, Boolean, Text, DateTime, JSON, Index, UniqueConstraint,
)

from appleseed.database import Base, utcnow
from appleseed.models.status import OutreachStatus, PayoutStatus


def parse_timestamp(value) -> Optional[datetime]:
    """ISO-8601 string (GitHub style, trailing Z allowed) → naive UTC datetime."""
    if value is None or isinstance(value, datetime):
        return value
    try:
        dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


@dataclass
class MatchedRepo:
    """Evidence for one repository that matched a discovery query."""
    name: str
    full_name: str
    url: str
    stars: int = 0
    description: Optional[str] = None
    language: Optional[str] = None
    last_updated: Optional[str] = None
    matched_query: str = ''

    @classmethod
    def from_dict(cls, data):
        return cls(
            name=data.get('name') or '',
            full_name=data.get('full_name') or '',
            url=data.get('url') or '',
            stars=int(data.get('stars') or 0),
            description=data.get('description'),
            language=data.get('language'),
            last_updated=data.get('last_updated'),
            matched_query=data.get('matched_query') or '',
        )

    def to_dict(self):
        return asdict(self)

    @property
    def updated_at(self) -> Optional[datetime]:
        return parse_timestamp(self.last_updated)

    @property
    def searchable_text(self) -> str:
        """Lower-cased query + name + description, the text scoring looks at."""
        return f"{self.matched_query} {self.name} {self.description or ''}".lower()


class Prospect(Base):
    __tablename__ = 'prospects'

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(Text, nullable=False)
    github_id = Column(BigInteger, nullable=True)
    email = Column(Text, nullable=True)
    repos = Column(JSON, nullable=False, default=list)
    discovered_via = Column(Text, nullable=True)

    # Qualification
    score = Column(Integer, nullable=True)
    tier = Column(Text, nullable=True)

    # Outreach
    outreach_status = Column(Text, nullable=False, default=OutreachStatus.PENDING.value)
    target_repo = Column(Text, nullable=True)
    pr_url = Column(Text, nullable=True)
    pr_number = Column(Integer, nullable=True)
    pr_opened_at = Column(DateTime, nullable=True)

    # Verification
    stacks_address = Column(Text, nullable=True)
    address_valid = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime, nullable=True)

    # Payout
    payout_status = Column(Text, nullable=False, default=PayoutStatus.PENDING.value)
    payout_txid = Column(Text, nullable=True)
    payout_amount_sats = Column(BigInteger, nullable=True)
    payout_sent_at = Column(DateTime, nullable=True)
    payout_block_height = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint('username', name='uq_prospect_username'),
        Index('ix_prospects_tier', 'tier'),
        Index('ix_prospects_outreach_status', 'outreach_status'),
        Index('ix_prospects_payout_status', 'payout_status'),
        Index('ix_prospects_stacks_address', 'stacks_address'),
    )

    def matched_repos(self):
        return [MatchedRepo.from_dict(r) for r in (self.repos or [])]

    def to_dict(self):
        def _iso(dt):
            return dt.isoformat() if dt else None

        return {
            'id': self.id,
            'username': self.username,
            'github_id': self.github_id,
            'email': self.email,
            'repos': list(self.repos or []),
            'discovered_via': self.discovered_via,
            'score': self.score,
            'tier': self.tier,
            'outreach_status': self.outreach_status,
            'target_repo': self.target_repo,
            'pr_url': self.pr_url,
            'pr_number': self.pr_number,
            'pr_opened_at': _iso(self.pr_opened_at),
            'stacks_address': self.stacks_address,
            'address_valid': bool(self.address_valid),
            'verified_at': _iso(self.verified_at),
            'payout_status': self.payout_status,
            'payout_txid': self.payout_txid,
            'payout_amount_sats': self.payout_amount_sats,
            'payout_sent_at': _iso(self.payout_sent_at),
            'payout_block_height': self.payout_block_height,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Prospect {self.id} {self.username} tier={self.tier}>"
