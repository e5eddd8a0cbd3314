# app/services/contract_roles.py
from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.schemas.contracts import ContractActionEntry, ContractRoles
from app.services.contract_store import ContractLogStore

DEPLOY_ACTION = "deploy"


def roles_from_deploy(entry: ContractActionEntry) -> ContractRoles:
    extra = entry.extra or {}
    if not extra:
        return ContractRoles()
    return ContractRoles(
        exporter=extra.get("exporter") or "",
        importer=extra.get("importer") or "",
        logistics=extra.get("logistics") or "",
    )


def first_deploy(history: Iterable[ContractActionEntry]) -> Optional[ContractActionEntry]:
    for entry in history:
        if entry.action == DEPLOY_ACTION:
            return entry
    return None


def deploy_roles(history: Iterable[ContractActionEntry]) -> ContractRoles:
    """
    Roles declared by the earliest "deploy" entry; all empty when there is
    no deploy entry or it carries no extra payload.
    """
    deploy = first_deploy(history)
    if deploy is None:
        return ContractRoles()
    return roles_from_deploy(deploy)


def resolve_roles(db: Session, contract_address: str, *, store: Optional[ContractLogStore] = None) -> ContractRoles:
    """
    Re-reads the full stored history on every call (no memoisation).
    """
    store = store or ContractLogStore()

    stored = store.get(db, contract_address)
    if stored is None:
        return ContractRoles()
    return deploy_roles(stored.record.history)
