"""
ActivityLogEntry model — append-only audit trail of lifecycle events.

action is a namespaced tag such as 'qualify:scored' or 'airdrop:confirmed'.
"""
from sqlalchemy import Column, Integer, Text, DateTime, JSON, ForeignKey, Index

from appleseed.database import Base, utcnow


class ActivityLogEntry(Base):
    __tablename__ = 'activity_log'

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(Text, nullable=False)
    prospect_id = Column(Integer, ForeignKey('prospects.id'), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index('ix_activity_log_action', 'action'),
        Index('ix_activity_log_prospect_id', 'prospect_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'action': self.action,
            'prospect_id': self.prospect_id,
            'details': self.details or {},
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
