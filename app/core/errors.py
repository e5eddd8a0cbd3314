from __future__ import annotations


class ContractError(ValueError):
    """
    Base for contract workflow errors.
    Services raise these; routes translate them to HTTP responses.
    """


class ContractValidationError(ContractError):
    pass


class ContractNotFoundError(ContractError):
    def __init__(self, contract_address: str):
        super().__init__("Contract not found")
        self.contract_address = contract_address


class LogisticAlreadyAddedError(ContractError):
    def __init__(self, address: str):
        super().__init__(f"Logistic {address} already added")
        self.address = address


class LogisticNotFoundError(ContractError):
    def __init__(self, address: str):
        super().__init__(f"Logistic {address} not found")
        self.address = address


class ConcurrentUpdateError(ContractError):
    """
    Another writer changed the contract between read and write.
    Nothing was persisted; the caller may re-submit.
    """

    def __init__(self, contract_address: str):
        super().__init__(f"Contract {contract_address} was modified concurrently; retry the action.")
        self.contract_address = contract_address
