"""Wallet hub storage layer -- async SQLite database, Pydantic models and the ledger."""

from evm_wallet_hub.storage.database import Database, get_database
from evm_wallet_hub.storage.ledger import OperationLedger
from evm_wallet_hub.storage.models import (
    CustomNetworkRecord,
    MassSendOperation,
    TransferKind,
    TransferRecord,
    TransferStatus,
    WalletRecord,
)

__all__ = [
    "Database",
    "get_database",
    "OperationLedger",
    "CustomNetworkRecord",
    "MassSendOperation",
    "TransferKind",
    "TransferRecord",
    "TransferStatus",
    "WalletRecord",
]
