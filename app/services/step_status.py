# app/services/step_status.py
from __future__ import annotations

from typing import Dict, Sequence

from app.schemas.contracts import ContractActionEntry, ContractStepStatusResponse, StepStatus

# action name (incl. legacy snake_case aliases) -> step flag
STEP_ALIASES: Dict[str, str] = {
    "deploy": "deploy",
    "deposit": "deposit",
    "approveImporter": "approveImporter",
    "approve_importer": "approveImporter",
    "approveExporter": "approveExporter",
    "approve_exporter": "approveExporter",
    "finalize": "finalize",
}


def compute_step_status(history: Sequence[ContractActionEntry]) -> ContractStepStatusResponse:
    flags = StepStatus()
    for entry in history:
        step = STEP_ALIASES.get(entry.action)
        if step is not None:
            setattr(flags, step, True)

    return ContractStepStatusResponse(
        stepStatus=flags,
        lastAction=history[-1] if history else None,
    )
