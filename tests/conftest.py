"""Shared fixtures: an in-memory chain and a hub backed by a temp SQLite file."""

from __future__ import annotations

import itertools
from decimal import Decimal

import pytest

from evm_wallet_hub.config import HubConfig
from evm_wallet_hub.hub import WalletHub
from evm_wallet_hub.wallet.chains import BUILTIN_NETWORKS, NetworkRegistry
from evm_wallet_hub.wallet.keystore import derive_address
from evm_wallet_hub.wallet.provider import TransferReceipt

OWNER = "owner-1"
DESTINATION = "0x" + "ab" * 20

KEY_A = "0x" + "11" * 32
KEY_B = "0x" + "22" * 32
KEY_C = "33" * 32  # no prefix on purpose


class FakeGateway:
    """Scriptable stand-in for :class:`ChainGateway`."""

    def __init__(self, fee: str = "0.002") -> None:
        self.fee = fee
        self.balances: dict[str, str] = {}
        self.balance_errors: dict[str, Exception] = {}
        self.submit_errors: dict[str, Exception] = {}
        self.balance_calls: list[str] = []
        self.fee_calls: list[tuple[str, str, str]] = []
        self.submissions: list[tuple[str, str, str]] = []
        self._hashes = itertools.count(1)

    def set_balance(self, address: str, amount: str) -> None:
        self.balances[address.lower()] = amount

    def fail_submit_from(self, address: str, exc: Exception) -> None:
        self.submit_errors[address.lower()] = exc

    @property
    def call_count(self) -> int:
        return len(self.balance_calls) + len(self.fee_calls) + len(self.submissions)

    def reset_calls(self) -> None:
        self.balance_calls.clear()
        self.fee_calls.clear()
        self.submissions.clear()

    def get_balance(self, address: str) -> str:
        self.balance_calls.append(address)
        exc = self.balance_errors.get(address.lower())
        if exc is not None:
            raise exc
        return self.balances.get(address.lower(), "0")

    def estimate_fee(self, from_address: str, to_address: str, amount: str) -> str:
        self.fee_calls.append((from_address, to_address, amount))
        return self.fee

    def submit_transfer(self, raw_key: str, to_address: str, amount: str) -> TransferReceipt:
        sender = derive_address(raw_key)
        self.submissions.append((sender, to_address, amount))
        exc = self.submit_errors.get(sender.lower())
        if exc is not None:
            raise exc
        current = Decimal(self.balances.get(sender.lower(), "0"))
        self.balances[sender.lower()] = str(current - Decimal(amount) - Decimal("0.000021"))
        return TransferReceipt(
            hash=f"0x{next(self._hashes):064x}",
            fee_actual="0.000021",
            gas_used=21000,
            gas_price=1_000_000_000,
        )


class FakeGatewayPool:
    """Returns the same :class:`FakeGateway` for every known network."""

    def __init__(self, gateway: FakeGateway, registry: NetworkRegistry | None = None) -> None:
        self.gateway = gateway
        self.registry = registry or NetworkRegistry(BUILTIN_NETWORKS)

    def for_network(self, name: str, owner_id: str | None = None) -> FakeGateway:
        self.registry.resolve(name, owner_id)
        return self.gateway


@pytest.fixture
def config() -> HubConfig:
    return HubConfig(encryption_key="unit-test-secret")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def pool(gateway: FakeGateway) -> FakeGatewayPool:
    return FakeGatewayPool(gateway)


@pytest.fixture
async def hub(config, pool, tmp_path):
    hub = await WalletHub.open(config, tmp_path, gateways=pool)
    try:
        yield hub
    finally:
        await hub.shutdown()
