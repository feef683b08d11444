"""Web3 chain gateways for EVM-compatible networks.

One :class:`ChainGateway` wraps one network's RPC endpoint; the
:class:`GatewayPool` hands out cached gateways by network id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware

from evm_wallet_hub.config import GatewayConfig
from evm_wallet_hub.errors import (
    InvalidAddressError,
    NetworkError,
    TransferRejectedError,
    TransferTimeoutError,
)
from evm_wallet_hub.wallet.chains import Network, NetworkRegistry

logger = logging.getLogger("evm_wallet_hub.wallet.provider")

DEFAULT_FALLBACK_FEE = "0.002"

# Substrings of node error messages that mean "the network said no"
# rather than "the network could not be reached".
_REJECTION_HINTS = (
    "insufficient funds",
    "intrinsic gas",
    "invalid",
    "nonce too low",
    "underpriced",
    "exceeds",
    "rejected",
)


@dataclass(frozen=True)
class TransferReceipt:
    """What a gateway reports back for an included transfer."""

    hash: str
    fee_actual: str
    gas_used: int
    gas_price: int


def format_amount(value: Decimal) -> str:
    """Render a decimal without exponent notation or trailing zeros."""
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def format_ether(wei: int) -> str:
    """Render a wei amount in ether without rounding."""
    return format_amount(Decimal(int(wei)) / Decimal(10**18))


def parse_ether(amount: str | Decimal) -> int:
    """Convert a decimal ether amount to wei."""
    try:
        return int(Web3.to_wei(Decimal(str(amount)), "ether"))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise TransferRejectedError(f"Invalid amount '{amount}': {exc}") from exc


def _is_rejection(exc: Exception) -> bool:
    message = str(exc).lower()
    return any(hint in message for hint in _REJECTION_HINTS)


class ChainGateway:
    """Balance, fee and transfer operations against a single network."""

    def __init__(
        self,
        network: Network,
        config: GatewayConfig | None = None,
        fallback_fee: str = DEFAULT_FALLBACK_FEE,
        w3: Web3 | None = None,
    ) -> None:
        self.network = network
        self.config = config or GatewayConfig()
        self.fallback_fee = fallback_fee
        self._w3 = w3

    @property
    def w3(self) -> Web3:
        """Lazily built Web3 instance; POA middleware is injected off mainnet."""
        if self._w3 is None:
            w3 = Web3(
                Web3.HTTPProvider(
                    self.network.rpc_url,
                    request_kwargs={"timeout": self.config.request_timeout},
                )
            )
            if self.network.chain_id != 1:
                w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
            self._w3 = w3
        return self._w3

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_balance(self, address: str) -> str:
        """Latest native balance of *address* as a full-precision decimal string."""
        try:
            checksum = Web3.to_checksum_address(address)
        except ValueError as exc:
            raise InvalidAddressError(f"Invalid address '{address}'") from exc
        try:
            balance_wei = self.w3.eth.get_balance(checksum)
        except (Web3Exception, OSError, ValueError) as exc:
            raise NetworkError(
                f"Failed to get balance on {self.network.name}: {exc}"
            ) from exc
        return format_ether(balance_wei)

    def estimate_fee(self, from_address: str, to_address: str, amount: str) -> str:
        """Estimate the fee for a plain native transfer.

        Never raises: any failure falls back to ``fallback_fee`` so batch
        callers can proceed and decide for themselves.
        """
        try:
            gas_price = self.w3.eth.gas_price
            return format_ether(self.config.gas_limit * gas_price)
        except Exception as e:
            logger.warning(
                f"Fee estimate failed on {self.network.name} for {from_address} "
                f"-> {to_address} ({amount}): {e}; using fallback {self.fallback_fee}"
            )
            return self.fallback_fee

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def submit_transfer(self, raw_key: str, to_address: str, amount: str) -> TransferReceipt:
        """Build, sign and broadcast a native transfer, then wait for inclusion.

        Uses the node's current legacy gas price with a fixed gas limit so
        the fee paid tracks :meth:`estimate_fee`.

        Raises
        ------
        TransferRejectedError
            Invalid destination, insufficient funds, or a reverted receipt.
        TransferTimeoutError
            Not included within ``receipt_timeout`` seconds.
        NetworkError
            The RPC endpoint could not be reached.
        """
        try:
            checksum_to = Web3.to_checksum_address(to_address)
        except ValueError as exc:
            raise TransferRejectedError(f"Invalid destination '{to_address}'") from exc
        value = parse_ether(amount)

        if not raw_key.startswith("0x"):
            raw_key = "0x" + raw_key

        w3 = self.w3
        try:
            account = w3.eth.account.from_key(raw_key)
            nonce = w3.eth.get_transaction_count(account.address, "pending")
            gas_price = w3.eth.gas_price
            tx: dict = {
                "to": checksum_to,
                "value": value,
                "nonce": nonce,
                "chainId": self.network.chain_id,
                "gas": self.config.gas_limit,
                "gasPrice": gas_price,
            }
            signed = w3.eth.account.sign_transaction(tx, raw_key)
            tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
        except OSError as exc:
            raise NetworkError(f"RPC unreachable on {self.network.name}: {exc}") from exc
        except (Web3Exception, ValueError) as exc:
            if _is_rejection(exc):
                raise TransferRejectedError(str(exc)) from exc
            raise NetworkError(f"RPC error on {self.network.name}: {exc}") from exc

        hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"Broadcast {amount} {self.network.native_symbol} to {checksum_to} on {self.network.name}: {hash_hex}")

        try:
            receipt = w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self.config.receipt_timeout,
                poll_latency=self.config.poll_latency,
            )
        except TimeExhausted as exc:
            raise TransferTimeoutError(
                f"Transaction {hash_hex} not included within {self.config.receipt_timeout}s"
            ) from exc
        except (Web3Exception, OSError) as exc:
            raise NetworkError(f"Failed waiting for {hash_hex}: {exc}") from exc

        if receipt.get("status") == 0:
            raise TransferRejectedError(f"Transaction {hash_hex} reverted")

        gas_used = int(receipt.get("gasUsed", self.config.gas_limit))
        effective_price = int(receipt.get("effectiveGasPrice", gas_price))
        return TransferReceipt(
            hash=hash_hex,
            fee_actual=format_ether(gas_used * effective_price),
            gas_used=gas_used,
            gas_price=effective_price,
        )


class GatewayPool:
    """Hands out one cached :class:`ChainGateway` per network id."""

    def __init__(
        self,
        registry: NetworkRegistry,
        config: GatewayConfig | None = None,
        fallback_fee: str = DEFAULT_FALLBACK_FEE,
    ) -> None:
        self.registry = registry
        self.config = config or GatewayConfig()
        self.fallback_fee = fallback_fee
        self._gateways: dict[tuple[str | None, str], ChainGateway] = {}

    def for_network(self, name: str, owner_id: str | None = None) -> ChainGateway:
        """Return the gateway for *name* as seen by *owner_id*.

        Raises ``UnsupportedNetworkError``.
        """
        network = self.registry.resolve(name, owner_id)
        key = (owner_id if self.registry.is_custom(name, owner_id) else None, name)
        gateway = self._gateways.get(key)
        if gateway is None or gateway.network != network:
            gateway = ChainGateway(network, self.config, self.fallback_fee)
            self._gateways[key] = gateway
        return gateway
