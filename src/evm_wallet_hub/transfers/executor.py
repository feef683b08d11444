"""Single-transfer execution with failures folded into a tagged outcome."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Protocol, Union

from web3 import Web3

from evm_wallet_hub.errors import InvalidAddressError, WalletHubError
from evm_wallet_hub.wallet.provider import TransferReceipt

logger = logging.getLogger("evm_wallet_hub.transfers.executor")

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def validate_address(address: str) -> str:
    """Return the checksummed form of *address*.

    Requires the ``0x`` prefix and 40 hex digits; mixed-case input must
    carry a valid EIP-55 checksum.
    """
    if not isinstance(address, str) or not _ADDRESS_RE.match(address.strip()):
        raise InvalidAddressError(f"Invalid address '{address}'")
    address = address.strip()
    digits = address[2:]
    mixed_case = digits != digits.lower() and digits != digits.upper()
    if mixed_case and not Web3.is_checksum_address(address):
        raise InvalidAddressError(f"Address checksum mismatch for '{address}'")
    return Web3.to_checksum_address(address)


def describe_error(exc: BaseException) -> str:
    """Human-readable failure reason prefixed with the error type."""
    return f"{type(exc).__name__}: {exc}"


class Gateway(Protocol):
    def get_balance(self, address: str) -> str: ...

    def estimate_fee(self, from_address: str, to_address: str, amount: str) -> str: ...

    def submit_transfer(self, raw_key: str, to_address: str, amount: str) -> TransferReceipt: ...


class GatewaySource(Protocol):
    def for_network(self, name: str, owner_id: str | None = None) -> Gateway: ...


@dataclass(frozen=True)
class Confirmed:
    hash: str
    fee_actual: str
    confirmed = True


@dataclass(frozen=True)
class Failed:
    reason: str
    confirmed = False


TransferOutcome = Union[Confirmed, Failed]


class TransferExecutor:
    """Submits one transfer and reports ``Confirmed`` or ``Failed``.

    :meth:`execute` never raises for transfer-level problems, so a batch
    caller can move on to the next wallet.
    """

    def __init__(self, gateways: GatewaySource) -> None:
        self.gateways = gateways

    async def execute(
        self,
        raw_key: str,
        to_address: str,
        amount: str,
        network: str,
        owner_id: str | None = None,
    ) -> TransferOutcome:
        """Submit one transfer; *owner_id* scopes custom network lookup."""
        try:
            destination = validate_address(to_address)
        except InvalidAddressError as e:
            # Checked before any gateway call so nothing is signed.
            return Failed(reason=describe_error(e))

        try:
            gateway = self.gateways.for_network(network, owner_id)
            receipt = await asyncio.to_thread(
                gateway.submit_transfer, raw_key, destination, amount
            )
        except WalletHubError as e:
            logger.warning(f"Transfer of {amount} to {destination} on {network} failed: {e}")
            return Failed(reason=describe_error(e))
        except Exception as e:
            logger.exception(f"Unexpected error sending {amount} to {destination} on {network}")
            return Failed(reason=describe_error(e))

        logger.info(f"Transfer {receipt.hash} confirmed on {network} (fee {receipt.fee_actual})")
        return Confirmed(hash=receipt.hash, fee_actual=receipt.fee_actual)
