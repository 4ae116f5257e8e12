"""SQLAlchemy ORM models for the durable plot cache."""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Float, Index, Integer, String, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class PlotCacheRow(Base):
    """One cached plot, keyed by its normalized land number (last write wins)."""

    __tablename__ = "plot_data_cache"
    __table_args__ = (
        CheckConstraint("latitude BETWEEN -90 AND 90", name="valid_lat"),
        CheckConstraint("longitude BETWEEN -180 AND 180", name="valid_lng"),
        Index(
            "idx_plot_cache_needs_revalidation",
            "needs_revalidation",
            postgresql_where=text("needs_revalidation = TRUE"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    land_number = Column(String(100), nullable=False, unique=True)
    area = Column(String(200), nullable=False, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    land_status = Column(String(100))
    property_type = Column(String(100))
    last_certificate_no = Column(String(100))
    data_source = Column(String(50), nullable=False)
    cache_version = Column(Integer, nullable=False, default=1)
    last_verified = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    verification_source = Column(String(50), nullable=False, default="user_search")
    needs_revalidation = Column(Boolean, nullable=False, default=False)
    search_count = Column(Integer, nullable=False, default=0)
    raw_data = Column(JSONB)


class CacheWarmingLog(Base):
    """Last warming run per area — one row per area."""

    __tablename__ = "cache_warming_log"

    area = Column(String(200), primary_key=True)
    warmed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    plots_cached = Column(Integer, nullable=False, default=0)
