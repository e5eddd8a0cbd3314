# app/api/v1/contracts.py
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.errors import ConcurrentUpdateError, ContractError
from app.db.session import get_db
from app.schemas.contracts import (
    ContractActionEntry,
    ContractLogRequest,
    ContractRecord,
    ContractStepStatusResponse,
    ContractVerifyResponse,
    UserContractRecord,
)
from app.services.contract_service import ContractService

logger = logging.getLogger(__name__)

# handlers are sync: session and chain lookups block and run in the threadpool
router = APIRouter(prefix="/contract")


def get_contract_service() -> ContractService:
    return ContractService()


@router.post("/log", response_model=ContractActionEntry, status_code=201)
def log_contract_action(
    body: ContractLogRequest,
    db: Session = Depends(get_db),
    svc: ContractService = Depends(get_contract_service),
):
    """
    Append an action to the contract ledger and update its state.
    """
    try:
        return svc.add_contract_log(db, body)
    except ConcurrentUpdateError as e:
        logger.warning("[contract/log] conflict contract=%s", body.contractAddress)
        raise HTTPException(status_code=409, detail=str(e))
    except ContractError as e:
        logger.info("[contract/log] rejected contract=%s action=%s: %s", body.contractAddress, body.action, e)
        raise HTTPException(status_code=400, detail=str(e))


@router.get("", response_model=List[ContractRecord])
def list_contracts(
    db: Session = Depends(get_db),
    svc: ContractService = Depends(get_contract_service),
):
    return svc.get_all_contracts(db)


# declared before /{address} routes
@router.get("/user/{address}", response_model=List[UserContractRecord])
def list_user_contracts(
    address: str,
    db: Session = Depends(get_db),
    svc: ContractService = Depends(get_contract_service),
):
    return svc.get_contracts_by_user(db, address)


@router.get("/{address}", response_model=ContractRecord)
def get_contract(
    address: str,
    db: Session = Depends(get_db),
    svc: ContractService = Depends(get_contract_service),
):
    row = svc.get_contract_by_id(db, address)
    if not row:
        raise HTTPException(status_code=404, detail="Contract not found")
    return row


@router.get("/{address}/step", response_model=ContractStepStatusResponse)
def get_contract_step(
    address: str,
    db: Session = Depends(get_db),
    svc: ContractService = Depends(get_contract_service),
):
    result = svc.get_contract_step_status(db, address)
    if not result:
        raise HTTPException(status_code=404, detail="Contract not found")
    return result


@router.get("/{address}/verify", response_model=ContractVerifyResponse)
def verify_contract(
    address: str,
    db: Session = Depends(get_db),
    svc: ContractService = Depends(get_contract_service),
):
    """
    Recomputes the entry hash chain and replays history against stored state.
    """
    result = svc.verify_contract(db, address)
    if not result:
        raise HTTPException(status_code=404, detail="Contract not found")

    logger.info("[contract/verify] contract=%s chain=%s state=%s", address, result.chainValid, result.stateConsistent)
    return result
