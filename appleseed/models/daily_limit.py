"""
DailyLimit model — per-UTC-date counters for PRs opened and payouts sent.

A new date starts from a fresh zeroed row; counters on an existing row only
ever go up.
"""
from sqlalchemy import Column, Integer, Date

from appleseed.database import Base


class DailyLimit(Base):
    __tablename__ = 'daily_limits'

    date = Column(Date, primary_key=True)
    prs_opened = Column(Integer, nullable=False, default=0)
    payouts_sent = Column(Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            'date': self.date.isoformat() if self.date else None,
            'prs_opened': self.prs_opened or 0,
            'payouts_sent': self.payouts_sent or 0,
        }
