"""Webhook delivery audit model"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from reposync.models.base import Base, utcnow


class WebhookEvent(Base):
    """Audit record of an inbound GitHub webhook delivery"""

    __tablename__ = "webhook_events"
    __table_args__ = (
        # NULL dedup keys (rejected deliveries) are allowed to repeat.
        UniqueConstraint("connection_id", "dedup_key", name="uq_webhook_events_conn_dedup"),
    )

    id = Column(Integer, primary_key=True, index=True)
    connection_id = Column(Integer, ForeignKey("connections.id"), nullable=True, index=True)  # NULL for unknown installations

    event_type = Column(String, nullable=False)
    action = Column(String, nullable=True)
    delivery_id = Column(String, nullable=True)
    dedup_key = Column(String, nullable=True)
    payload = Column(Text, nullable=True)  # Truncated raw body

    processed_at = Column(DateTime, nullable=True)
    error = Column(Text, nullable=True)
    outcome = Column(String, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self):
        return f"<WebhookEvent({self.event_type}.{self.action}, processed={self.processed_at is not None})>"
