"""SQLAlchemy models for the single-record session store."""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, JSON, Index
from database import Base


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Record(Base):
    """A named record inside a container. Saves replace the fields wholesale."""
    __tablename__ = "records"

    container_id = Column(String(255), primary_key=True)
    record_name = Column(String(255), primary_key=True)
    record_type = Column(String(100), nullable=False)
    fields = Column(JSON, nullable=False, default=dict)
    change_tag = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utcnow)
    modified_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_records_container_type", "container_id", "record_type"),
    )


class Subscription(Base):
    """Callback registered for changes to records of a type."""
    __tablename__ = "subscriptions"

    container_id = Column(String(255), primary_key=True)
    subscription_id = Column(String(255), primary_key=True)
    record_type = Column(String(100), nullable=False)
    callback_url = Column(String(1024), nullable=False)
    fires_on = Column(JSON, nullable=False, default=lambda: ["create", "update"])
    created_at = Column(DateTime, default=utcnow)
