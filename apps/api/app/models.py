from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column
from apps.api.app.db import Base

class StoredReview(Base):
    __tablename__ = "reviews"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    platform: Mapped[str] = mapped_column(String(128), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    date: Mapped[str] = mapped_column(String(32), nullable=False)  # YYYY-MM-DD

    sentiment: Mapped[str] = mapped_column(String(16), nullable=False)  # positive/neutral/negative
    entity: Mapped[str] = mapped_column(String(32), nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)

    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("sentiment IN ('positive', 'neutral', 'negative')", name="ck_reviews_sentiment"),
        CheckConstraint("score >= 0 AND score <= 1", name="ck_reviews_score"),
        CheckConstraint("length(content) > 0", name="ck_reviews_content"),
        Index("ix_reviews_date", "date"),
        Index("ix_reviews_sentiment", "sentiment"),
        Index("ix_reviews_entity", "entity"),
        {"sqlite_autoincrement": True},
    )
