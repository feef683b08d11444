"""Operation ledger: record-level persistence for wallets, transfers and mass sends.

Every create is an upsert keyed by id and every update touches a single
row, so a batch interrupted halfway leaves a consistent (partial) history.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from evm_wallet_hub.storage.database import Database
from evm_wallet_hub.storage.models import (
    CustomNetworkRecord,
    MassSendOperation,
    TransferRecord,
    WalletRecord,
)

logger = logging.getLogger("evm_wallet_hub.storage.ledger")

_WALLET_COLUMNS = (
    "id", "owner_id", "display_name", "address", "encrypted_key",
    "network", "cached_balance", "created_at", "updated_at",
)
_NETWORK_COLUMNS = (
    "id", "owner_id", "name", "rpc_url", "chain_id", "native_symbol",
    "explorer_url", "is_testnet", "created_at",
)
_TRANSFER_COLUMNS = (
    "id", "owner_id", "kind", "operation_id", "source_wallet_id",
    "destination_address", "amount", "network", "submitted_hash", "status",
    "fee_used", "failure_reason", "created_at", "updated_at",
)
_OPERATION_COLUMNS = (
    "id", "owner_id", "destination_address", "asset_symbol", "network",
    "total_amount_sent", "wallets_count", "status", "created_at", "updated_at",
)


def _to_sql(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    return value


class OperationLedger:
    """Typed persistence operations on top of :class:`Database`."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Generic helpers
    # ------------------------------------------------------------------

    async def _upsert(self, table: str, columns: tuple[str, ...], record: BaseModel) -> None:
        data = record.model_dump()
        placeholders = ", ".join("?" for _ in columns)
        updates = ", ".join(f"{c} = excluded.{c}" for c in columns if c != "id")
        await self.db.execute(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
            f"ON CONFLICT(id) DO UPDATE SET {updates}",
            tuple(_to_sql(data[c]) for c in columns),
        )

    async def _update(
        self, table: str, columns: tuple[str, ...], record_id: str, partial: dict
    ) -> None:
        unknown = set(partial) - set(columns)
        if unknown:
            raise ValueError(f"Unknown {table} columns: {sorted(unknown)}")
        fields = {k: v for k, v in partial.items() if k != "id"}
        if "updated_at" in columns:
            fields.setdefault("updated_at", datetime.utcnow())
        if not fields:
            return
        assignments = ", ".join(f"{k} = ?" for k in fields)
        await self.db.execute(
            f"UPDATE {table} SET {assignments} WHERE id = ?",
            (*(_to_sql(v) for v in fields.values()), record_id),
        )

    # ------------------------------------------------------------------
    # Wallets
    # ------------------------------------------------------------------

    async def create_wallet(self, wallet: WalletRecord) -> WalletRecord:
        await self._upsert("wallets", _WALLET_COLUMNS, wallet)
        logger.info(f"Wallet {wallet.id} ({wallet.address}) stored for owner {wallet.owner_id}")
        return wallet

    async def get_wallet(self, owner_id: str, wallet_id: str) -> Optional[WalletRecord]:
        row = await self.db.fetch_one(
            "SELECT * FROM wallets WHERE id = ? AND owner_id = ?", (wallet_id, owner_id)
        )
        return WalletRecord.model_validate(row) if row else None

    async def list_wallets_for_owner(self, owner_id: str) -> list[WalletRecord]:
        rows = await self.db.fetch_all(
            "SELECT * FROM wallets WHERE owner_id = ? ORDER BY created_at, rowid",
            (owner_id,),
        )
        return [WalletRecord.model_validate(r) for r in rows]

    async def update_wallet_balance(self, wallet_id: str, balance: str) -> None:
        await self._update("wallets", _WALLET_COLUMNS, wallet_id, {"cached_balance": balance})

    async def delete_wallet(self, owner_id: str, wallet_id: str) -> bool:
        """Delete a wallet. Its transfer history survives with a null source."""
        cursor = await self.db.execute(
            "DELETE FROM wallets WHERE id = ? AND owner_id = ?", (wallet_id, owner_id)
        )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Custom networks
    # ------------------------------------------------------------------

    async def create_custom_network(self, network: CustomNetworkRecord) -> CustomNetworkRecord:
        await self._upsert("custom_networks", _NETWORK_COLUMNS, network)
        return network

    async def list_custom_networks(self, owner_id: str | None = None) -> list[CustomNetworkRecord]:
        if owner_id is None:
            rows = await self.db.fetch_all("SELECT * FROM custom_networks ORDER BY created_at")
        else:
            rows = await self.db.fetch_all(
                "SELECT * FROM custom_networks WHERE owner_id = ? ORDER BY created_at",
                (owner_id,),
            )
        return [CustomNetworkRecord.model_validate(r) for r in rows]

    async def get_custom_network(self, owner_id: str, name: str) -> Optional[CustomNetworkRecord]:
        row = await self.db.fetch_one(
            "SELECT * FROM custom_networks WHERE owner_id = ? AND name = ?", (owner_id, name)
        )
        return CustomNetworkRecord.model_validate(row) if row else None

    async def delete_custom_network(self, owner_id: str, name: str) -> bool:
        cursor = await self.db.execute(
            "DELETE FROM custom_networks WHERE name = ? AND owner_id = ?", (name, owner_id)
        )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    async def create_transfer_record(self, record: TransferRecord) -> TransferRecord:
        await self._upsert("transfers", _TRANSFER_COLUMNS, record)
        return record

    async def update_transfer_record(self, record_id: str, partial: dict) -> None:
        await self._update("transfers", _TRANSFER_COLUMNS, record_id, partial)

    async def get_transfer_record(self, record_id: str) -> Optional[TransferRecord]:
        row = await self.db.fetch_one("SELECT * FROM transfers WHERE id = ?", (record_id,))
        return TransferRecord.model_validate(row) if row else None

    async def list_transfers_for_owner(self, owner_id: str) -> list[TransferRecord]:
        rows = await self.db.fetch_all(
            "SELECT * FROM transfers WHERE owner_id = ? ORDER BY created_at DESC, rowid DESC",
            (owner_id,),
        )
        return [TransferRecord.model_validate(r) for r in rows]

    async def list_transfers_for_operation(self, operation_id: str) -> list[TransferRecord]:
        """Members of a mass send, in submission order."""
        rows = await self.db.fetch_all(
            "SELECT * FROM transfers WHERE operation_id = ? ORDER BY rowid",
            (operation_id,),
        )
        return [TransferRecord.model_validate(r) for r in rows]

    # ------------------------------------------------------------------
    # Mass send operations
    # ------------------------------------------------------------------

    async def create_operation(self, operation: MassSendOperation) -> MassSendOperation:
        await self._upsert("mass_send_operations", _OPERATION_COLUMNS, operation)
        return operation

    async def update_operation(self, operation_id: str, partial: dict) -> None:
        await self._update("mass_send_operations", _OPERATION_COLUMNS, operation_id, partial)

    async def get_operation(self, owner_id: str, operation_id: str) -> Optional[MassSendOperation]:
        row = await self.db.fetch_one(
            "SELECT * FROM mass_send_operations WHERE id = ? AND owner_id = ?",
            (operation_id, owner_id),
        )
        return MassSendOperation.model_validate(row) if row else None

    async def list_operations_for_owner(self, owner_id: str) -> list[MassSendOperation]:
        rows = await self.db.fetch_all(
            "SELECT * FROM mass_send_operations WHERE owner_id = ? "
            "ORDER BY created_at DESC, rowid DESC",
            (owner_id,),
        )
        return [MassSendOperation.model_validate(r) for r in rows]
