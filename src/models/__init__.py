"""SQLAlchemy models and shared value types for the review text collector."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Column, DateTime, String, text
from sqlalchemy.orm import declarative_base

from .retrieval import (  # noqa: F401
    AttemptOutcome,
    AttemptRecord,
    BudgetState,
    ChannelId,
    FailureKind,
    QualityVerdict,
    RetrievalResult,
    RunState,
    SiteHints,
    Target,
    TargetStatus,
    Tier,
)

Base: Any = declarative_base()


class CollectorState(Base):
    """Durable key/value documents (budget ledger, run state, ...)."""

    __tablename__ = "collector_state"

    key = Column(String, primary_key=True)
    value = Column(JSON, nullable=False)
    created_at = Column(
        DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
