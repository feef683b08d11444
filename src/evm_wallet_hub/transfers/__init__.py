"""Transfer execution and mass-send orchestration."""

from evm_wallet_hub.transfers.executor import (
    Confirmed,
    Failed,
    TransferExecutor,
    TransferOutcome,
    validate_address,
)
from evm_wallet_hub.transfers.orchestrator import (
    MassSendOrchestrator,
    MassSendSummary,
    WalletResult,
)

__all__ = [
    "Confirmed",
    "Failed",
    "TransferExecutor",
    "TransferOutcome",
    "validate_address",
    "MassSendOrchestrator",
    "MassSendSummary",
    "WalletResult",
]
