# app/models/contract_log.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import (
    String,
    DateTime,
    Integer,
    ForeignKey,
    Index,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, JSONType


class ContractLogRecord(Base):
    """
    One row per contract address: the current state projection.

    state_json is derived from the action entries; version is bumped on
    every write and checked on update (optimistic concurrency).
    """

    __tablename__ = "contract_logs"

    contract_address: Mapped[str] = mapped_column(String(128), primary_key=True)

    state_json: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class ContractActionEntry(Base):
    """
    Append-only hash-chained action entries.

    entry_hash = SHA256(prev_hash + canonical(payload_json))
    """

    __tablename__ = "contract_action_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    contract_address: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("contract_logs.contract_address", ondelete="CASCADE"),
        nullable=False,
    )

    seq: Mapped[int] = mapped_column(Integer, nullable=False)  # 1..N per contract
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    tx_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    account: Mapped[str] = mapped_column(String(128), nullable=False)

    prev_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    entry_hash: Mapped[str] = mapped_column(String(128), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    payload_json: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("contract_address", "seq", name="uq_contract_action_seq"),
        Index("ix_contract_action_account", "account"),
        Index("ix_contract_action_action", "action"),
    )
