"""Pydantic models mapping to the EVM Wallet Hub database tables."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TransferKind(str, Enum):
    SINGLE = "single"
    BATCH_MEMBER = "batch_member"


class TransferStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _new_id() -> str:
    """Generate a short hex ID (12 characters)."""
    return uuid.uuid4().hex[:12]


# ---------------------------------------------------------------------------
# Record models
# ---------------------------------------------------------------------------

class WalletRecord(BaseModel):
    """Maps to the ``wallets`` table.

    ``address`` is derived from the key at import time and never updated.
    """

    id: str = Field(default_factory=_new_id)
    owner_id: str
    display_name: str
    address: str
    encrypted_key: str
    network: str = "sepolia"
    cached_balance: str = "0"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def public_view(self) -> dict:
        """Everything except the ciphertext, for API and CLI output."""
        return self.model_dump(mode="json", exclude={"encrypted_key"})


class CustomNetworkRecord(BaseModel):
    """Maps to the ``custom_networks`` table."""

    id: str = Field(default_factory=_new_id)
    owner_id: str
    name: str
    rpc_url: str
    chain_id: int
    native_symbol: str = "ETH"
    explorer_url: str = ""
    is_testnet: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)


class TransferRecord(BaseModel):
    """Maps to the ``transfers`` table.

    Created PENDING and moved exactly once to CONFIRMED or FAILED.
    """

    id: str = Field(default_factory=_new_id)
    owner_id: str
    kind: TransferKind = TransferKind.SINGLE
    operation_id: Optional[str] = None
    source_wallet_id: Optional[str] = None  # None once the wallet is deleted
    destination_address: str
    amount: str  # stored as string to preserve decimal precision
    network: str
    submitted_hash: Optional[str] = None
    status: TransferStatus = TransferStatus.PENDING
    fee_used: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class MassSendOperation(BaseModel):
    """Maps to the ``mass_send_operations`` table."""

    id: str = Field(default_factory=_new_id)
    owner_id: str
    destination_address: str
    asset_symbol: str = "ETH"
    network: str
    total_amount_sent: str = "0"
    wallets_count: int
    status: TransferStatus = TransferStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
