# app/services/logistics_membership.py
from __future__ import annotations

from typing import List, Optional, Sequence

from app.core.errors import LogisticAlreadyAddedError, LogisticNotFoundError
from app.schemas.contracts import ContractActionEntry

ADD_LOGISTIC = "addLogistic"
REMOVE_LOGISTIC = "removeLogistic"
MEMBERSHIP_ACTIONS = frozenset({ADD_LOGISTIC, REMOVE_LOGISTIC})


def target_logistic(entry: ContractActionEntry) -> Optional[str]:
    value = (entry.extra or {}).get("logistic")
    return value or None


def is_member(members: Sequence[str], address: str) -> bool:
    needle = address.lower()
    return any(m.lower() == needle for m in members)


def check_membership(members: Sequence[str], action: str, address: str) -> None:
    """
    Precondition for addLogistic / removeLogistic.
    Raises before anything is written; other actions pass through.
    """
    if action == ADD_LOGISTIC and is_member(members, address):
        raise LogisticAlreadyAddedError(address)
    if action == REMOVE_LOGISTIC and not is_member(members, address):
        raise LogisticNotFoundError(address)


def apply_membership(members: Sequence[str], action: str, address: str) -> List[str]:
    # Idempotent: replaying an already-applied add/remove leaves the set unchanged
    current = list(members)
    if action == ADD_LOGISTIC:
        if not is_member(current, address):
            current.append(address)
        return current
    if action == REMOVE_LOGISTIC:
        needle = address.lower()
        return [m for m in current if m.lower() != needle]
    return current
