from __future__ import annotations

import logging
import time
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import ContractNotFoundError, ContractValidationError
from app.schemas.contracts import (
    ContractActionEntry,
    ContractLogRequest,
    ContractRecord,
    ContractState,
    ContractStatePatch,
    ContractStepStatusResponse,
    ContractVerifyResponse,
    OnChainInfo,
    UserContractRecord,
)
from app.services.chain_verifier import ChainVerifier
from app.services.contract_projection import apply_entry, fold_history, needs_role_fallback
from app.services.contract_roles import resolve_roles
from app.services.contract_store import ContractLogStore
from app.services.logistics_membership import MEMBERSHIP_ACTIONS, check_membership, is_member, target_logistic
from app.services.notification_service import (
    NotificationService,
    NotificationType,
    contract_participants,
    notify_users,
    notify_with_admins,
)
from app.services.step_status import compute_step_status

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("contractAddress", "action", "txHash", "account")

# extra keys read as single addresses by the merge step
EXTRA_ADDRESS_FIELDS = ("logistic", "exporter", "importer", "insurance", "inspector")

# order decides the annotation when a user holds several roles
ROLE_LABELS = (
    ("exporter", "Exporter"),
    ("importer", "Importer"),
    ("logistics", "Logistics"),
    ("insurance", "Insurance"),
    ("inspector", "Inspector"),
)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ContractService:
    def __init__(
        self,
        *,
        store: Optional[ContractLogStore] = None,
        notifier: Optional[NotificationService] = None,
        chain_verifier: Optional[ChainVerifier] = None,
        admin_addresses: Optional[Sequence[str]] = None,
    ):
        self.store = store or ContractLogStore()
        self.notifier = notifier or NotificationService()
        self._chain_verifier = chain_verifier
        self.admin_addresses = list(admin_addresses) if admin_addresses is not None else get_settings().admin_addresses

    @property
    def chain_verifier(self) -> ChainVerifier:
        if self._chain_verifier is None:
            self._chain_verifier = ChainVerifier()
        return self._chain_verifier

    # ─────────────────────────────────────────────
    # VALIDATION
    # ─────────────────────────────────────────────

    def _validate(self, req: ContractLogRequest) -> None:
        missing = [f for f in REQUIRED_FIELDS if not getattr(req, f)]
        if missing:
            raise ContractValidationError(
                f"Missing required fields ({', '.join(REQUIRED_FIELDS)}): {', '.join(missing)}"
            )
        extra = req.extra or {}
        if req.action in MEMBERSHIP_ACTIONS and not extra.get("logistic"):
            raise ContractValidationError(f"extra.logistic required for {req.action}")

        for field in EXTRA_ADDRESS_FIELDS:
            value = extra.get(field)
            if value is not None and not isinstance(value, str):
                raise ContractValidationError(f"extra.{field} must be an address string")

        logistics = extra.get("logistics")
        if logistics is not None and not isinstance(logistics, str):
            if not isinstance(logistics, list) or not all(isinstance(v, str) for v in logistics):
                raise ContractValidationError("extra.logistics must be an address or a list of addresses")

    def _to_entry(self, req: ContractLogRequest, on_chain: Optional[OnChainInfo]) -> ContractActionEntry:
        return ContractActionEntry(
            action=req.action,
            txHash=req.txHash,
            account=req.account,
            exporter=req.exporter,
            importer=req.importer,
            logistics=req.logistics,
            insurance=req.insurance,
            inspector=req.inspector,
            requiredAmount=req.requiredAmount,
            extra=req.extra or {},
            timestamp=_now_ms(),
            onChainInfo=on_chain,
        )

    # ─────────────────────────────────────────────
    # WRITE PATH
    # ─────────────────────────────────────────────

    def add_contract_log(self, db: Session, req: ContractLogRequest) -> ContractActionEntry:
        """
        Append one action to the contract's history and merge it into state.

        Flow: validate -> on-chain lookup (optional) -> membership guard ->
        role fallback (only if the entry lacks roles) -> merge -> persist ->
        fan-out. Fan-out runs after commit and never fails the call.
        """
        self._validate(req)

        on_chain = self.chain_verifier.verify_transaction(req.txHash) if req.verifyOnChain else None
        entry = self._to_entry(req, on_chain)
        address = req.contractAddress

        stored = self.store.get(db, address)
        prev_state = stored.record.state if stored else None

        if entry.action in MEMBERSHIP_ACTIONS:
            check_membership(prev_state.logistics if prev_state else [], entry.action, target_logistic(entry))

        fallback = resolve_roles(db, address, store=self.store) if needs_role_fallback(entry) else None
        new_state = apply_entry(prev_state, entry, fallback)

        if stored is None:
            self.store.set(db, address, state=new_state, entry=entry)
        else:
            self.store.update(
                db,
                address,
                state=new_state,
                entry=entry,
                expected_version=stored.version,
                seq=stored.head_seq + 1,
                prev_hash=stored.head_hash,
            )

        logger.info(
            "[contract] logged action=%s contract=%s account=%s stage=%s",
            entry.action, address, entry.account, new_state.currentStage,
        )

        self._fan_out(db, address, entry, new_state)
        return entry

    def _fan_out(self, db: Session, address: str, entry: ContractActionEntry, state: ContractState) -> None:
        title = f"Contract Action: {entry.action}"
        message = f'Contract {address} has a new action "{entry.action}" by {entry.account}.'
        extra = {
            "txHash": entry.txHash,
            "data": {
                "contractAddress": address,
                "action": entry.action,
                "txHash": entry.txHash,
            },
        }

        admins = notify_with_admins(
            db, self.notifier,
            executor=entry.account, admins=self.admin_addresses,
            kind=NotificationType.AGREEMENT, title=title, message=message, extra=extra,
        )
        users = notify_users(
            db, self.notifier,
            executor=entry.account, recipients=contract_participants(state),
            kind=NotificationType.AGREEMENT, title=title, message=message, extra=extra,
        )
        logger.debug("[contract] notified admins=%d participants=%d contract=%s", admins, users, address)

    def update_contract_state(self, db: Session, contract_address: str, patch: ContractStatePatch) -> ContractState:
        """
        State-only update (no history entry). Not reproducible by replay;
        verify_contract reports the resulting drift.
        """
        stored = self.store.get(db, contract_address)
        if stored is None:
            raise ContractNotFoundError(contract_address)

        changes = patch.model_dump(exclude_none=True)
        changes["lastUpdated"] = _now_ms()
        merged = stored.record.state.model_copy(update=changes)

        self.store.update_state(db, contract_address, state=merged, expected_version=stored.version)
        logger.info("[contract] state patched contract=%s fields=%s", contract_address, sorted(changes))
        return merged

    # ─────────────────────────────────────────────
    # READS
    # ─────────────────────────────────────────────

    def get_all_contracts(self, db: Session) -> List[ContractRecord]:
        return self.store.list_all(db)

    def get_contract_by_id(self, db: Session, contract_address: str) -> Optional[ContractRecord]:
        stored = self.store.get(db, contract_address)
        return stored.record if stored else None

    def get_contracts_by_user(self, db: Session, user_address: str) -> List[UserContractRecord]:
        out: List[UserContractRecord] = []
        for record in self.store.list_all(db):
            role = self._role_for(record.state, user_address)
            if role:
                out.append(UserContractRecord(**record.model_dump(), role=role))
        return out

    def _role_for(self, state: ContractState, user_address: str) -> Optional[str]:
        needle = user_address.lower()
        for field, label in ROLE_LABELS:
            value = getattr(state, field)
            if field == "logistics":
                if is_member(value, user_address):
                    return label
            elif value and value.lower() == needle:
                return label
        return None

    def get_contract_step_status(self, db: Session, contract_address: str) -> Optional[ContractStepStatusResponse]:
        stored = self.store.get(db, contract_address)
        if stored is None:
            return None
        return compute_step_status(stored.record.history)

    def rebuild_state(self, db: Session, contract_address: str) -> Optional[ContractState]:
        stored = self.store.get(db, contract_address)
        if stored is None:
            return None
        return fold_history(stored.record.history)

    def verify_contract(self, db: Session, contract_address: str) -> Optional[ContractVerifyResponse]:
        stored = self.store.get(db, contract_address)
        if stored is None:
            return None

        entries, chain_ok = self.store.verify_chain(db, contract_address)
        replayed = fold_history(stored.record.history)
        consistent = replayed is not None and replayed.model_dump() == stored.record.state.model_dump()

        if not (chain_ok and consistent):
            logger.warning(
                "[contract] verify failed contract=%s chain_valid=%s state_consistent=%s",
                contract_address, chain_ok, consistent,
            )

        return ContractVerifyResponse(
            contractAddress=contract_address,
            entries=entries,
            chainValid=chain_ok,
            stateConsistent=consistent,
        )
