import pytest

from evm_wallet_hub.errors import InvalidAddressError, TransferRejectedError
from evm_wallet_hub.transfers.executor import Confirmed, Failed, TransferExecutor, validate_address
from evm_wallet_hub.wallet.keystore import derive_address

from conftest import DESTINATION, KEY_A


@pytest.fixture
def executor(pool):
    return TransferExecutor(pool)


async def test_confirmed_outcome_carries_hash_and_fee(executor, gateway):
    gateway.set_balance(derive_address(KEY_A), "1")
    outcome = await executor.execute(KEY_A, DESTINATION, "0.5", "sepolia")
    assert isinstance(outcome, Confirmed)
    assert outcome.confirmed
    assert outcome.hash == "0x" + "0" * 63 + "1"
    assert outcome.fee_actual == "0.000021"
    assert gateway.submissions == [(derive_address(KEY_A), validate_address(DESTINATION), "0.5")]


async def test_invalid_destination_fails_without_gateway_calls(executor, gateway):
    outcome = await executor.execute(KEY_A, "0x1234", "0.5", "sepolia")
    assert isinstance(outcome, Failed)
    assert not outcome.confirmed
    assert outcome.reason.startswith("InvalidAddressError")
    assert gateway.call_count == 0


async def test_gateway_rejection_becomes_failed(executor, gateway):
    gateway.fail_submit_from(derive_address(KEY_A), TransferRejectedError("insufficient funds"))
    outcome = await executor.execute(KEY_A, DESTINATION, "0.5", "sepolia")
    assert outcome == Failed(reason="TransferRejectedError: insufficient funds")


async def test_unexpected_error_becomes_failed(executor, gateway):
    gateway.fail_submit_from(derive_address(KEY_A), RuntimeError("boom"))
    outcome = await executor.execute(KEY_A, DESTINATION, "0.5", "sepolia")
    assert outcome == Failed(reason="RuntimeError: boom")


async def test_unknown_network_becomes_failed(executor, gateway):
    outcome = await executor.execute(KEY_A, DESTINATION, "0.5", "atlantis")
    assert isinstance(outcome, Failed)
    assert outcome.reason.startswith("UnsupportedNetworkError")
    assert gateway.submissions == []


@pytest.mark.parametrize(
    "address",
    ["", "ab" * 20, "0x" + "ab" * 19, "0x" + "zz" * 20, "0x52908400098527886e0F7030069857D2E4169EE7"],
)
def test_validate_address_rejects(address):
    with pytest.raises(InvalidAddressError):
        validate_address(address)


def test_validate_address_checksums_lowercase_input():
    assert validate_address("0x52908400098527886e0f7030069857d2e4169ee7") == (
        "0x52908400098527886E0F7030069857D2E4169EE7"
    )


def test_validate_address_accepts_checksummed_and_uppercase_input():
    checksummed = "0x52908400098527886E0F7030069857D2E4169EE7"
    assert validate_address(checksummed) == checksummed
    assert validate_address("0x" + checksummed[2:].upper()) == checksummed
