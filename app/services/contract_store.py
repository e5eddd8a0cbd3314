#app/services/contract_store.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import ConcurrentUpdateError
from app.core.hashing import GENESIS_HASH, entry_hash
from app.models.contract_log import ContractActionEntry as ContractActionRow
from app.models.contract_log import ContractLogRecord
from app.schemas.contracts import ContractActionEntry, ContractRecord, ContractState

logger = logging.getLogger(__name__)


def _entry_payload(entry: ContractActionEntry) -> Dict[str, Any]:
    return entry.model_dump(mode="json", exclude_none=True)


@dataclass(frozen=True)
class StoredContract:
    record: ContractRecord
    version: int
    head_seq: int
    head_hash: str


class ContractLogStore:
    """
    Document store for contract logs, keyed by contract address.

    A document is one contract_logs row (state + version) and its
    hash-chained contract_action_entries rows (history). Writes to both
    happen in one transaction.
    """

    # ─────────────────────────────────────────────
    # INTERNAL HELPERS
    # ─────────────────────────────────────────────

    def _get_record(self, db: Session, contract_address: str) -> Optional[ContractLogRecord]:
        return db.execute(
            select(ContractLogRecord).where(ContractLogRecord.contract_address == contract_address)
        ).scalar_one_or_none()

    def _entries(self, db: Session, contract_address: str) -> List[ContractActionRow]:
        return (
            db.execute(
                select(ContractActionRow)
                .where(ContractActionRow.contract_address == contract_address)
                .order_by(ContractActionRow.seq.asc())
            )
            .scalars()
            .all()
        )

    def _to_record(self, row: ContractLogRecord, entries: List[ContractActionRow]) -> ContractRecord:
        return ContractRecord(
            contractAddress=row.contract_address,
            state=ContractState.model_validate(row.state_json or {}),
            history=[ContractActionEntry.model_validate(e.payload_json) for e in entries],
        )

    def _new_row(
        self, contract_address: str, entry: ContractActionEntry, *, seq: int, prev_hash: str
    ) -> ContractActionRow:
        payload = _entry_payload(entry)
        return ContractActionRow(
            contract_address=contract_address,
            seq=seq,
            action=entry.action,
            tx_hash=entry.txHash,
            account=entry.account,
            prev_hash=prev_hash,
            entry_hash=entry_hash(prev_hash, payload),
            payload_json=payload,
        )

    def _replace_state(self, db: Session, contract_address: str, *, state: ContractState, expected_version: int) -> None:
        result = db.execute(
            update(ContractLogRecord)
            .where(
                ContractLogRecord.contract_address == contract_address,
                ContractLogRecord.version == expected_version,
            )
            .values(
                state_json=state.model_dump(mode="json"),
                version=expected_version + 1,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            raise ConcurrentUpdateError(contract_address)

    def _flush(self, db: Session, contract_address: str) -> None:
        self._write(db, contract_address, db.flush)

    def _commit(self, db: Session, contract_address: str) -> None:
        self._write(db, contract_address, db.commit)

    def _write(self, db: Session, contract_address: str, op) -> None:
        try:
            op()
        except IntegrityError:
            # duplicate address or seq: another writer got there first
            db.rollback()
            raise ConcurrentUpdateError(contract_address)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("[contract-store] write failed contract=%s", contract_address)
            raise

    # ─────────────────────────────────────────────
    # READS
    # ─────────────────────────────────────────────

    def get(self, db: Session, contract_address: str) -> Optional[StoredContract]:
        row = self._get_record(db, contract_address)
        if row is None:
            return None

        entries = self._entries(db, contract_address)
        last = entries[-1] if entries else None
        return StoredContract(
            record=self._to_record(row, entries),
            version=row.version,
            head_seq=last.seq if last else 0,
            head_hash=last.entry_hash if last else GENESIS_HASH,
        )

    def list_all(self, db: Session) -> List[ContractRecord]:
        rows = db.execute(
            select(ContractLogRecord).order_by(ContractLogRecord.created_at.asc())
        ).scalars().all()
        return [self._to_record(r, self._entries(db, r.contract_address)) for r in rows]

    # ─────────────────────────────────────────────
    # WRITES
    # ─────────────────────────────────────────────

    def set(self, db: Session, contract_address: str, *, state: ContractState, entry: ContractActionEntry) -> None:
        """
        Create the document with its first history entry.
        """
        db.add(ContractLogRecord(
            contract_address=contract_address,
            state_json=state.model_dump(mode="json"),
            version=1,
        ))
        # parent row first; a concurrent creator fails here on the primary key
        self._flush(db, contract_address)
        db.add(self._new_row(contract_address, entry, seq=1, prev_hash=GENESIS_HASH))
        self._commit(db, contract_address)

    def update(
        self,
        db: Session,
        contract_address: str,
        *,
        state: ContractState,
        entry: ContractActionEntry,
        expected_version: int,
        seq: int,
        prev_hash: str,
    ) -> None:
        """
        Replace state and append one entry, provided nobody wrote since
        expected_version was read.
        """
        self._replace_state(db, contract_address, state=state, expected_version=expected_version)
        db.add(self._new_row(contract_address, entry, seq=seq, prev_hash=prev_hash))
        self._commit(db, contract_address)

    def update_state(
        self,
        db: Session,
        contract_address: str,
        *,
        state: ContractState,
        expected_version: int,
    ) -> None:
        self._replace_state(db, contract_address, state=state, expected_version=expected_version)
        self._commit(db, contract_address)

    # ─────────────────────────────────────────────
    # AUDIT
    # ─────────────────────────────────────────────

    def verify_chain(self, db: Session, contract_address: str) -> Tuple[int, bool]:
        """
        Recomputes the hash chain. Returns (entry count, valid).
        """
        entries = self._entries(db, contract_address)

        prev_hash = GENESIS_HASH
        for expected_seq, e in enumerate(entries, start=1):
            if e.seq != expected_seq or e.prev_hash != prev_hash:
                return len(entries), False
            if e.entry_hash != entry_hash(prev_hash, e.payload_json):
                return len(entries), False
            prev_hash = e.entry_hash

        return len(entries), True
