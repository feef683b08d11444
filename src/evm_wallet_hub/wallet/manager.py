"""High-level wallet manager used by the hub, REST API and CLI."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from evm_wallet_hub.errors import (
    CryptoError,
    InvalidKeyError,
    UnsupportedNetworkError,
    WalletHubError,
    WalletNotFoundError,
)
from evm_wallet_hub.storage.ledger import OperationLedger
from evm_wallet_hub.storage.models import (
    CustomNetworkRecord,
    MassSendOperation,
    TransferKind,
    TransferRecord,
    TransferStatus,
    WalletRecord,
)
from evm_wallet_hub.transfers.executor import (
    Confirmed,
    TransferExecutor,
    describe_error,
    validate_address,
)
from evm_wallet_hub.transfers.orchestrator import MassSendOrchestrator, MassSendSummary
from evm_wallet_hub.wallet.chains import Network, NetworkRegistry
from evm_wallet_hub.wallet.keystore import KeyVault, derive_address, normalize_key
from evm_wallet_hub.wallet.provider import GatewayPool, format_amount

logger = logging.getLogger("evm_wallet_hub.wallet.manager")


def _parse_amount(amount: str) -> Decimal:
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount '{amount}'") from exc
    if not value.is_finite() or value <= 0:
        raise ValueError(f"Amount must be positive, got '{amount}'")
    return value


class WalletManager:
    """Orchestrates vault, gateways, executor and ledger for wallet operations."""

    def __init__(
        self,
        ledger: OperationLedger,
        vault: KeyVault,
        registry: NetworkRegistry,
        gateways: GatewayPool,
        executor: TransferExecutor,
        orchestrator: MassSendOrchestrator,
    ) -> None:
        self.ledger = ledger
        self.vault = vault
        self.registry = registry
        self.gateways = gateways
        self.executor = executor
        self.orchestrator = orchestrator

    # ------------------------------------------------------------------
    # Wallet lifecycle
    # ------------------------------------------------------------------

    async def import_wallet(
        self,
        owner_id: str,
        display_name: str,
        raw_key: str,
        network: str = "sepolia",
    ) -> WalletRecord:
        """Validate, encrypt and store a private key; returns the new wallet.

        Raises ``InvalidKeyError`` for malformed keys and
        ``UnsupportedNetworkError`` for unknown networks.
        """
        if not display_name or not display_name.strip():
            raise ValueError("Wallet name is required")
        clean = normalize_key(raw_key)
        self.registry.resolve(network, owner_id)
        address = derive_address(clean)
        encrypted = self.vault.encrypt(clean)

        balance = "0"
        try:
            gateway = self.gateways.for_network(network, owner_id)
            balance = await asyncio.to_thread(gateway.get_balance, address)
        except WalletHubError as e:
            logger.warning(f"Initial balance lookup for {address} on {network} failed: {e}")

        wallet = WalletRecord(
            owner_id=owner_id,
            display_name=display_name.strip(),
            address=address,
            encrypted_key=encrypted,
            network=network,
            cached_balance=balance,
        )
        return await self.ledger.create_wallet(wallet)

    async def get_wallet(self, owner_id: str, wallet_id: str) -> WalletRecord:
        wallet = await self.ledger.get_wallet(owner_id, wallet_id)
        if wallet is None:
            raise WalletNotFoundError(f"Wallet {wallet_id} not found")
        return wallet

    async def list_wallets(self, owner_id: str, refresh: bool = True) -> list[WalletRecord]:
        """List the owner's wallets, refreshing balances from the chain.

        A failed lookup on one wallet keeps its cached balance.
        """
        wallets = await self.ledger.list_wallets_for_owner(owner_id)
        if not refresh:
            return wallets

        refreshed: list[WalletRecord] = []
        for wallet in wallets:
            try:
                gateway = self.gateways.for_network(wallet.network, owner_id)
                balance = await asyncio.to_thread(gateway.get_balance, wallet.address)
            except WalletHubError as e:
                logger.warning(f"Failed to refresh balance for wallet {wallet.id}: {e}")
                refreshed.append(wallet)
                continue
            await self.ledger.update_wallet_balance(wallet.id, balance)
            refreshed.append(wallet.model_copy(update={"cached_balance": balance}))
        return refreshed

    async def delete_wallet(self, owner_id: str, wallet_id: str) -> None:
        """Remove a wallet. Its transfer history is kept with a null source."""
        if not await self.ledger.delete_wallet(owner_id, wallet_id):
            raise WalletNotFoundError(f"Wallet {wallet_id} not found")
        logger.info(f"Wallet {wallet_id} deleted for owner {owner_id}")

    # ------------------------------------------------------------------
    # Fees and transfers
    # ------------------------------------------------------------------

    async def estimate_fee(
        self, owner_id: str, wallet_id: str, to_address: str, amount: str
    ) -> str:
        wallet = await self.get_wallet(owner_id, wallet_id)
        destination = validate_address(to_address)
        gateway = self.gateways.for_network(wallet.network, owner_id)
        return await asyncio.to_thread(
            gateway.estimate_fee, wallet.address, destination, amount
        )

    async def send(
        self,
        owner_id: str,
        wallet_id: str,
        to_address: str,
        amount: str,
    ) -> TransferRecord:
        """Send *amount* from one wallet and return the settled transfer record.

        Malformed input raises; a failed transfer comes back as a record
        with status ``failed`` and a reason.
        """
        wallet = await self.get_wallet(owner_id, wallet_id)
        destination = validate_address(to_address)
        amount_text = format_amount(_parse_amount(amount))

        record = await self.ledger.create_transfer_record(
            TransferRecord(
                owner_id=owner_id,
                kind=TransferKind.SINGLE,
                source_wallet_id=wallet.id,
                destination_address=destination,
                amount=amount_text,
                network=wallet.network,
            )
        )

        try:
            raw_key = self.vault.decrypt(wallet.encrypted_key)
            if derive_address(raw_key).lower() != wallet.address.lower():
                raise CryptoError("Decrypted key does not match the wallet address")
        except (CryptoError, InvalidKeyError) as e:
            update = {"status": TransferStatus.FAILED, "failure_reason": describe_error(e)}
        else:
            outcome = await self.executor.execute(
                raw_key, destination, amount_text, wallet.network, owner_id=owner_id
            )
            if isinstance(outcome, Confirmed):
                update = {
                    "status": TransferStatus.CONFIRMED,
                    "submitted_hash": outcome.hash,
                    "fee_used": outcome.fee_actual,
                }
            else:
                update = {"status": TransferStatus.FAILED, "failure_reason": outcome.reason}

        await self.ledger.update_transfer_record(record.id, update)
        logger.info(f"Transfer {record.id} from wallet {wallet.id}: {update['status'].value}")
        return record.model_copy(update=update)

    async def mass_send(
        self,
        owner_id: str,
        to_address: str,
        asset_symbol: Optional[str] = None,
        wallet_ids: Optional[Iterable[str]] = None,
    ) -> MassSendSummary:
        return await self.orchestrator.run(
            owner_id, to_address, asset_symbol=asset_symbol, wallet_ids=wallet_ids
        )

    async def list_transfers(self, owner_id: str) -> list[TransferRecord]:
        return await self.ledger.list_transfers_for_owner(owner_id)

    async def get_operation(
        self, owner_id: str, operation_id: str
    ) -> tuple[MassSendOperation, list[TransferRecord]]:
        """Return a mass-send operation with its member transfers."""
        operation = await self.ledger.get_operation(owner_id, operation_id)
        if operation is None:
            raise KeyError(f"Operation {operation_id} not found")
        members = await self.ledger.list_transfers_for_operation(operation_id)
        return operation, members

    # ------------------------------------------------------------------
    # Networks
    # ------------------------------------------------------------------

    async def load_custom_networks(self) -> int:
        """Register every stored custom network. Returns how many were loaded."""
        records = await self.ledger.list_custom_networks()
        for rec in records:
            self.registry.register(_network_from_record(rec), rec.owner_id)
        return len(records)

    async def add_custom_network(
        self,
        owner_id: str,
        name: str,
        rpc_url: str,
        chain_id: int,
        native_symbol: str = "ETH",
        explorer_url: str = "",
        is_testnet: bool = True,
    ) -> CustomNetworkRecord:
        name = name.strip()
        if not name or not rpc_url.strip():
            raise ValueError("Network name and RPC URL are required")
        if name in self.registry:
            raise ValueError(f"'{name}' is already a shared network")
        if await self.ledger.get_custom_network(owner_id, name) is not None:
            raise ValueError(f"Custom network '{name}' already exists")
        record = CustomNetworkRecord(
            owner_id=owner_id,
            name=name,
            rpc_url=rpc_url.strip(),
            chain_id=int(chain_id),
            native_symbol=native_symbol,
            explorer_url=explorer_url,
            is_testnet=is_testnet,
        )
        await self.ledger.create_custom_network(record)
        self.registry.register(_network_from_record(record), owner_id)
        logger.info(f"Custom network '{name}' (chain {chain_id}) added")
        return record

    async def remove_custom_network(self, owner_id: str, name: str) -> None:
        if not await self.ledger.delete_custom_network(owner_id, name):
            raise UnsupportedNetworkError(f"No custom network named '{name}'")
        self.registry.unregister(name, owner_id)

    def list_networks(self, owner_id: str | None = None) -> list[dict]:
        """Shared networks plus the custom networks of *owner_id*."""
        return [
            {
                "name": n.name,
                "chain_id": n.chain_id,
                "native_symbol": n.native_symbol,
                "explorer_url": n.explorer_url,
                "is_testnet": n.is_testnet,
                "custom": self.registry.is_custom(n.name, owner_id),
            }
            for n in self.registry.all(owner_id)
        ]


def _network_from_record(record: CustomNetworkRecord) -> Network:
    return Network(
        name=record.name,
        chain_id=record.chain_id,
        rpc_url=record.rpc_url,
        native_symbol=record.native_symbol,
        explorer_url=record.explorer_url,
        is_testnet=record.is_testnet,
    )
