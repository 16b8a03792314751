from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


UTC_NOW = sa.func.now()


class Base(DeclarativeBase):
    pass


class LocalRecord(Base):
    __tablename__ = "local_records"
    __table_args__ = (Index("ix_local_records_scope", "scope"),)

    # One row per (scope, key); scope is the session the state belongs to.
    scope: Mapped[str] = mapped_column(String(64), primary_key=True)
    key: Mapped[str] = mapped_column(String(32), primary_key=True)
    # JSON array of camelCase entities.
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=UTC_NOW, onupdate=UTC_NOW, nullable=False
    )


class Room(Base):
    __tablename__ = "rooms"

    room_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    # Full {members, bills, updatedAt} document, replaced on every write.
    document: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
