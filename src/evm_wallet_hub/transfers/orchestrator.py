"""Mass send: sweep many source wallets into one destination.

Wallets are processed strictly one after another. For each wallet the
orchestrator fetches the live balance, estimates the fee, subtracts a
safety reserve, submits the transfer and records the outcome. A problem
with one wallet becomes that wallet's ``failed`` entry and the batch moves
on; once a batch has started it never raises. Only malformed requests
(no wallets, bad destination, wallets on more than one network, an asset
that is not the network's native one) are rejected, and always before any
network call or ledger write.

Wallets whose balance is at or below the dust threshold, or whose balance
cannot cover fee plus reserve, are skipped: they produce no transfer
record and no result entry, and are listed in ``skipped_wallet_ids``.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from evm_wallet_hub.config import MassSendConfig
from evm_wallet_hub.errors import (
    AssetMismatchError,
    CryptoError,
    NoWalletsSelectedError,
    NetworkError,
    WalletHubError,
)
from evm_wallet_hub.storage.ledger import OperationLedger
from evm_wallet_hub.storage.models import (
    MassSendOperation,
    TransferKind,
    TransferRecord,
    TransferStatus,
    WalletRecord,
)
from evm_wallet_hub.transfers.executor import (
    Confirmed,
    GatewaySource,
    TransferExecutor,
    describe_error,
    validate_address,
)
from evm_wallet_hub.wallet.chains import NetworkRegistry
from evm_wallet_hub.wallet.keystore import KeyVault, derive_address
from evm_wallet_hub.wallet.provider import format_amount

logger = logging.getLogger("evm_wallet_hub.transfers.orchestrator")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WalletResult(_CamelModel):
    """One attempted wallet in a mass send."""

    wallet_id: str
    address: str
    outcome: Literal["confirmed", "failed"]
    amount: Optional[str] = None
    hash: Optional[str] = None
    fee: Optional[str] = None
    reason: Optional[str] = None
    transfer_id: Optional[str] = None


class MassSendSummary(_CamelModel):
    """What a mass send returns to its caller."""

    operation_id: str
    status: TransferStatus
    asset_symbol: str
    total_amount: str
    wallets_processed: int
    per_wallet_results: list[WalletResult] = Field(default_factory=list)
    skipped_wallet_ids: list[str] = Field(default_factory=list)

    @property
    def confirmed_count(self) -> int:
        return sum(1 for r in self.per_wallet_results if r.outcome == "confirmed")

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.per_wallet_results if r.outcome == "failed")


def _dedupe(wallet_ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for wallet_id in wallet_ids:
        if wallet_id not in seen:
            seen.add(wallet_id)
            ordered.append(wallet_id)
    return ordered


def _to_decimal(value: str, what: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise NetworkError(f"Unparseable {what} '{value}'") from exc


class MassSendOrchestrator:
    """Runs mass-send operations against injected collaborators.

    Parameters
    ----------
    ledger:
        Where operations, transfer records and wallets live.
    vault:
        Decrypts each wallet's stored key.
    registry:
        Resolves the batch network to check the requested asset.
    gateways:
        Source of per-network gateways for balance and fee lookups.
    executor:
        Submits the individual transfers.
    policy:
        Dust threshold, safety reserve and fallback fee.
    """

    def __init__(
        self,
        ledger: OperationLedger,
        vault: KeyVault,
        registry: NetworkRegistry,
        gateways: GatewaySource,
        executor: TransferExecutor,
        policy: MassSendConfig | None = None,
    ) -> None:
        self.ledger = ledger
        self.vault = vault
        self.registry = registry
        self.gateways = gateways
        self.executor = executor
        policy = policy or MassSendConfig()
        self.dust_threshold = Decimal(policy.dust_threshold)
        self.safety_reserve = Decimal(policy.safety_reserve)

    async def run(
        self,
        owner_id: str,
        destination_address: str,
        asset_symbol: Optional[str] = None,
        wallet_ids: Optional[Iterable[str]] = None,
        abort: Optional[asyncio.Event] = None,
    ) -> MassSendSummary:
        """Execute a mass send.

        ``wallet_ids=None`` selects every wallet of the owner. Ids that do
        not belong to the owner are ignored; duplicates are collapsed.
        All selected wallets must live on one network, and *asset_symbol*
        (default: that network's native symbol) must name its native asset.
        Setting *abort* stops new wallets from being started; transfers
        already submitted are unaffected.

        Raises
        ------
        NoWalletsSelectedError
            Nothing to send from.
        InvalidAddressError
            The destination is malformed.
        AssetMismatchError
            Wallets on several networks, or a non-native *asset_symbol*.
        UnsupportedNetworkError
            The wallets' network is no longer known.
        """
        requested = None if wallet_ids is None else _dedupe(wallet_ids)
        if requested is not None and not requested:
            raise NoWalletsSelectedError("No wallets selected")
        destination = validate_address(destination_address)

        owned = await self.ledger.list_wallets_for_owner(owner_id)
        if requested is None:
            selected = owned
        else:
            by_id = {w.id: w for w in owned}
            selected = [by_id[i] for i in requested if i in by_id]
        if not selected:
            raise NoWalletsSelectedError("No wallets selected")

        networks = sorted({w.network for w in selected})
        if len(networks) > 1:
            raise AssetMismatchError(
                f"Selected wallets span several networks: {', '.join(networks)}"
            )
        network = self.registry.resolve(networks[0], owner_id)
        if asset_symbol is not None and asset_symbol.upper() != network.native_symbol.upper():
            raise AssetMismatchError(
                f"{asset_symbol} is not the native asset of {network.name} "
                f"({network.native_symbol})"
            )
        asset_symbol = network.native_symbol

        operation = await self.ledger.create_operation(
            MassSendOperation(
                owner_id=owner_id,
                destination_address=destination,
                asset_symbol=asset_symbol,
                network=network.name,
                total_amount_sent="0",
                wallets_count=len(selected),
            )
        )
        logger.info(
            f"Mass send {operation.id}: {len(selected)} wallet(s) -> {destination}"
        )

        results: list[WalletResult] = []
        skipped: list[str] = []
        total = Decimal(0)

        for wallet in selected:
            if abort is not None and abort.is_set():
                logger.info(f"Mass send {operation.id}: aborted before wallet {wallet.id}")
                skipped.append(wallet.id)
                continue

            result, amount = await self._process_wallet(operation, wallet, destination)
            if result is None:
                skipped.append(wallet.id)
                continue
            results.append(result)
            if result.outcome == "confirmed":
                total += amount

        status = (
            TransferStatus.CONFIRMED
            if any(r.outcome == "confirmed" for r in results)
            else TransferStatus.FAILED
        )
        total_text = format_amount(total)
        try:
            await self.ledger.update_operation(
                operation.id, {"status": status, "total_amount_sent": total_text}
            )
        except Exception:
            logger.exception(f"Mass send {operation.id}: failed to finalize operation record")

        logger.info(
            f"Mass send {operation.id} finished: {status.value}, total {total_text} "
            f"{asset_symbol}, {len(results)} attempted, {len(skipped)} skipped"
        )
        return MassSendSummary(
            operation_id=operation.id,
            status=status,
            asset_symbol=asset_symbol,
            total_amount=total_text,
            wallets_processed=len(selected),
            per_wallet_results=results,
            skipped_wallet_ids=skipped,
        )

    async def _process_wallet(
        self, operation: MassSendOperation, wallet: WalletRecord, destination: str
    ) -> tuple[Optional[WalletResult], Decimal]:
        """Attempt one wallet. Returns ``(None, 0)`` when the wallet is skipped."""
        record: Optional[TransferRecord] = None
        send_amount = Decimal(0)
        try:
            gateway = self.gateways.for_network(wallet.network, wallet.owner_id)
            balance_text = await asyncio.to_thread(gateway.get_balance, wallet.address)
            balance = _to_decimal(balance_text, "balance")
            await self.ledger.update_wallet_balance(wallet.id, format_amount(balance))

            if balance <= self.dust_threshold:
                logger.info(f"Wallet {wallet.id}: balance {balance_text} is dust, skipping")
                return None, Decimal(0)

            raw_key = self.vault.decrypt(wallet.encrypted_key)
            if derive_address(raw_key).lower() != wallet.address.lower():
                raise CryptoError("Decrypted key does not match the wallet address")

            fee_text = await asyncio.to_thread(
                gateway.estimate_fee, wallet.address, destination, format_amount(balance)
            )
            fee = _to_decimal(fee_text, "fee estimate")
            send_amount = balance - fee - self.safety_reserve
            if send_amount <= 0:
                logger.info(
                    f"Wallet {wallet.id}: balance {balance_text} does not cover fee "
                    f"{fee_text} plus reserve, skipping"
                )
                return None, Decimal(0)

            amount_text = format_amount(send_amount)
            record = await self.ledger.create_transfer_record(
                TransferRecord(
                    owner_id=operation.owner_id,
                    kind=TransferKind.BATCH_MEMBER,
                    operation_id=operation.id,
                    source_wallet_id=wallet.id,
                    destination_address=destination,
                    amount=amount_text,
                    network=wallet.network,
                )
            )

            outcome = await self.executor.execute(
                raw_key, destination, amount_text, wallet.network, owner_id=wallet.owner_id
            )
            if isinstance(outcome, Confirmed):
                # Funds already moved: the wallet stays confirmed even if this write fails.
                try:
                    await self.ledger.update_transfer_record(
                        record.id,
                        {
                            "status": TransferStatus.CONFIRMED,
                            "submitted_hash": outcome.hash,
                            "fee_used": outcome.fee_actual,
                        },
                    )
                except Exception:
                    logger.exception(
                        f"Wallet {wallet.id}: transfer {outcome.hash} confirmed but "
                        f"record {record.id} could not be updated"
                    )
                return WalletResult(
                    wallet_id=wallet.id,
                    address=wallet.address,
                    outcome="confirmed",
                    amount=amount_text,
                    hash=outcome.hash,
                    fee=outcome.fee_actual,
                    transfer_id=record.id,
                ), send_amount

            await self.ledger.update_transfer_record(
                record.id,
                {"status": TransferStatus.FAILED, "failure_reason": outcome.reason},
            )
            logger.warning(f"Wallet {wallet.id}: transfer failed: {outcome.reason}")
            return WalletResult(
                wallet_id=wallet.id,
                address=wallet.address,
                outcome="failed",
                amount=amount_text,
                reason=outcome.reason,
                transfer_id=record.id,
            ), Decimal(0)

        except WalletHubError as e:
            logger.warning(f"Wallet {wallet.id}: {describe_error(e)}")
            reason = describe_error(e)
        except Exception as e:
            logger.exception(f"Wallet {wallet.id}: unexpected error during mass send")
            reason = describe_error(e)

        if record is not None:
            try:
                await self.ledger.update_transfer_record(
                    record.id, {"status": TransferStatus.FAILED, "failure_reason": reason}
                )
            except Exception:
                logger.exception(f"Wallet {wallet.id}: could not mark transfer {record.id} failed")
        return WalletResult(
            wallet_id=wallet.id,
            address=wallet.address,
            outcome="failed",
            amount=format_amount(send_amount) if record is not None else None,
            reason=reason,
            transfer_id=record.id if record is not None else None,
        ), Decimal(0)
