from app.schemas.contracts import (
    ContractActionEntry,
    ContractLogRequest,
    ContractRecord,
    ContractRoles,
    ContractState,
    ContractStepStatusResponse,
    OnChainInfo,
    StepStatus,
    UserContractRecord,
)
