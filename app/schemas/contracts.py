from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


# A party reference may arrive as a single address or a list (legacy scalar logistics)
PartyRef = Union[str, List[str]]


class OnChainInfo(BaseModel):
    status: Union[str, int]
    blockNumber: Optional[int] = None
    confirmations: Optional[int] = None


class ContractActionEntry(BaseModel):
    """
    One immutable workflow transition as stored in history.
    """
    action: str
    txHash: str
    account: str

    exporter: Optional[str] = None
    importer: Optional[str] = None
    logistics: Optional[PartyRef] = None
    insurance: Optional[str] = None
    inspector: Optional[str] = None

    requiredAmount: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None
    timestamp: int = Field(..., description="epoch milliseconds")
    onChainInfo: Optional[OnChainInfo] = None


class ContractState(BaseModel):
    exporter: str = ""
    importer: str = ""
    logistics: List[str] = Field(default_factory=list)
    insurance: Optional[str] = None
    inspector: Optional[str] = None
    status: Optional[str] = None
    currentStage: str = "1"
    lastUpdated: int = 0


class ContractRecord(BaseModel):
    contractAddress: str
    state: ContractState
    history: List[ContractActionEntry] = Field(default_factory=list)


class UserContractRecord(ContractRecord):
    role: str


class ContractRoles(BaseModel):
    exporter: str = ""
    importer: str = ""
    logistics: PartyRef = ""


class ContractLogRequest(BaseModel):
    """
    POST /contract/log body.
    Required fields are checked by the service so that every missing field
    is reported with one client error before the store is touched.
    """
    contractAddress: Optional[str] = None
    action: Optional[str] = None
    txHash: Optional[str] = None
    account: Optional[str] = None

    exporter: Optional[str] = None
    importer: Optional[str] = None
    logistics: Optional[PartyRef] = None
    insurance: Optional[str] = None
    inspector: Optional[str] = None
    requiredAmount: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None
    verifyOnChain: bool = False


class StepStatus(BaseModel):
    deploy: bool = False
    deposit: bool = False
    approveImporter: bool = False
    approveExporter: bool = False
    finalize: bool = False


class ContractStepStatusResponse(BaseModel):
    stepStatus: StepStatus
    lastAction: Optional[ContractActionEntry] = None


class ContractStatePatch(BaseModel):
    exporter: Optional[str] = None
    importer: Optional[str] = None
    logistics: Optional[List[str]] = None
    insurance: Optional[str] = None
    inspector: Optional[str] = None
    status: Optional[str] = None
    currentStage: Optional[str] = None


class ContractVerifyResponse(BaseModel):
    contractAddress: str
    entries: int
    chainValid: bool
    stateConsistent: bool
