"""SQLAlchemy models for the feedrelay store."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from feedrelay.db.base import Base


class ProfileRow(Base):
    """Guild profile with its alert subscribers."""

    __tablename__ = "profiles"

    guild_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    alert: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    prefix: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    locale: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)


class SupporterRow(Base):
    """Subscription owner and the guilds they cover."""

    __tablename__ = "supporters"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    patron: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    webhook: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    max_guilds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_feeds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    guilds: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    expire_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    slow_rate: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class PatronRow(Base):
    """Pledge record mirrored from the patron source."""

    __tablename__ = "patrons"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    pledge: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    pledge_lifetime: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_charge: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    discord: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (Index("ix_patrons_discord", "discord"),)


class GeneralStatRow(Base):
    """Running aggregate for a process-wide counter."""

    __tablename__ = "general_stats"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    data: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
