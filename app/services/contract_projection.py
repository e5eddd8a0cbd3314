# app/services/contract_projection.py
from __future__ import annotations

from typing import Any, Iterable, List, Optional

from app.schemas.contracts import ContractActionEntry, ContractRoles, ContractState
from app.services.contract_roles import DEPLOY_ACTION, roles_from_deploy
from app.services.logistics_membership import MEMBERSHIP_ACTIONS, apply_membership, target_logistic

DEFAULT_STAGE = "1"

# Roles resolved against the deploy declaration when missing
FALLBACK_ROLES = ("exporter", "importer", "logistics")


def is_present(value: Any) -> bool:
    return value is not None and value != ""


def first_present(*values: Any) -> Any:
    for v in values:
        if is_present(v):
            return v
    return None


def as_party_set(value: Any) -> Optional[List[str]]:
    """
    Normalise a logistics reference to an ordered, de-duplicated list.
    None / "" mean "not given"; an empty list is a real (empty) set.
    """
    if not is_present(value):
        return None
    if isinstance(value, str):
        return [value]
    out: List[str] = []
    seen = set()
    for v in value:
        if not v:
            continue
        key = str(v).lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(str(v))
    return out


def needs_role_fallback(entry: ContractActionEntry) -> bool:
    return not all(is_present(getattr(entry, f)) for f in FALLBACK_ROLES)


def apply_entry(
    prev: Optional[ContractState],
    entry: ContractActionEntry,
    fallback: Optional[ContractRoles] = None,
) -> ContractState:
    """
    One merge step. Per role field, highest precedence first:
      1. value on entry.extra
      2. value on the entry itself (explicit override from the request)
      3. previous state
      4. deploy-declared fallback
    status is always the entry's action; currentStage follows extra.stage.
    """
    extra = entry.extra or {}
    fb = fallback or ContractRoles()

    exporter = first_present(extra.get("exporter"), entry.exporter, prev.exporter if prev else None, fb.exporter)
    importer = first_present(extra.get("importer"), entry.importer, prev.importer if prev else None, fb.importer)
    insurance = first_present(extra.get("insurance"), entry.insurance, prev.insurance if prev else None)
    inspector = first_present(extra.get("inspector"), entry.inspector, prev.inspector if prev else None)

    override = as_party_set(entry.logistics)
    if entry.action in MEMBERSHIP_ACTIONS and target_logistic(entry):
        override = apply_membership(prev.logistics if prev else [], entry.action, target_logistic(entry))

    logistics = as_party_set(extra.get("logistics"))
    if logistics is None:
        logistics = override
    if logistics is None and prev is not None:
        logistics = list(prev.logistics)
    if logistics is None:
        logistics = as_party_set(fb.logistics) or []

    stage = extra.get("stage")
    if is_present(stage):
        current_stage = str(stage)
    elif prev is not None and prev.currentStage:
        current_stage = prev.currentStage
    else:
        current_stage = DEFAULT_STAGE

    return ContractState(
        exporter=exporter or "",
        importer=importer or "",
        logistics=logistics,
        insurance=insurance,
        inspector=inspector,
        status=entry.action,
        currentStage=current_stage,
        lastUpdated=entry.timestamp,
    )


def fold_history(history: Iterable[ContractActionEntry]) -> Optional[ContractState]:
    """
    Replays history from scratch with the same step the ledger uses on append.
    The fallback for each entry only sees the entries before it.
    """
    state: Optional[ContractState] = None
    deploy: Optional[ContractRoles] = None
    for entry in history:
        fallback = (deploy or ContractRoles()) if needs_role_fallback(entry) else None
        state = apply_entry(state, entry, fallback)
        if deploy is None and entry.action == DEPLOY_ACTION:
            deploy = roles_from_deploy(entry)
    return state
