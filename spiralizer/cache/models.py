"""Database model for the indexed precomputed spiral store."""

from sqlalchemy import Column, Float, Index, Integer, LargeBinary, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class SpiralCacheRecord(Base):
    """One precomputed spiral, looked up by exact cache key."""

    __tablename__ = "spiral_cache"

    cache_key = Column(Text, primary_key=True)
    angle_start = Column(Float, nullable=False)
    angle_end = Column(Float, nullable=False)
    sample_count = Column(Integer, nullable=False)
    bounded_count = Column(Integer, nullable=False)
    data = Column(LargeBinary, nullable=False)  # pickled CacheEntry

    __table_args__ = (
        Index("idx_params", "angle_start", "angle_end", "sample_count"),
    )
