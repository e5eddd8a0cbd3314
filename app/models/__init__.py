from app.models.contract_log import ContractActionEntry, ContractLogRecord
from app.models.notification import Notification

__all__ = ["ContractActionEntry", "ContractLogRecord", "Notification"]
