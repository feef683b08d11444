import pytest

from evm_wallet_hub.errors import (
    InvalidAddressError,
    InvalidKeyError,
    NetworkError,
    UnsupportedNetworkError,
    WalletNotFoundError,
)
from evm_wallet_hub.hub import WalletHub
from evm_wallet_hub.storage.models import TransferKind, TransferStatus
from evm_wallet_hub.wallet.keystore import derive_address

from conftest import DESTINATION, KEY_A, KEY_B, OWNER, FakeGateway, FakeGatewayPool


@pytest.fixture
def manager(hub):
    return hub.wallet_manager


async def test_import_stores_encrypted_key_and_derived_address(hub, manager, gateway):
    gateway.set_balance(derive_address(KEY_A), "1.25")

    wallet = await manager.import_wallet(OWNER, "  Savings ", KEY_A)

    assert wallet.display_name == "Savings"
    assert wallet.address == derive_address(KEY_A)
    assert wallet.cached_balance == "1.25"
    assert KEY_A[2:] not in wallet.encrypted_key
    assert hub.vault.decrypt(wallet.encrypted_key) == KEY_A[2:]
    assert "encrypted_key" not in wallet.public_view()


async def test_import_rejects_bad_key_and_unknown_network(manager):
    with pytest.raises(InvalidKeyError):
        await manager.import_wallet(OWNER, "bad", "0x1234")
    with pytest.raises(UnsupportedNetworkError):
        await manager.import_wallet(OWNER, "lost", KEY_A, network="atlantis")
    assert await manager.list_wallets(OWNER, refresh=False) == []


async def test_import_survives_balance_lookup_failure(manager, gateway):
    gateway.balance_errors[derive_address(KEY_A).lower()] = NetworkError("offline")
    wallet = await manager.import_wallet(OWNER, "offline", KEY_A)
    assert wallet.cached_balance == "0"


async def test_list_wallets_refreshes_and_is_owner_scoped(manager, gateway):
    mine = await manager.import_wallet(OWNER, "mine", KEY_A)
    await manager.import_wallet("someone-else", "theirs", KEY_B)
    gateway.set_balance(mine.address, "3")

    wallets = await manager.list_wallets(OWNER)

    assert [w.id for w in wallets] == [mine.id]
    assert wallets[0].cached_balance == "3"


async def test_get_wallet_of_other_owner_is_not_found(manager):
    theirs = await manager.import_wallet("someone-else", "theirs", KEY_B)
    with pytest.raises(WalletNotFoundError):
        await manager.get_wallet(OWNER, theirs.id)
    with pytest.raises(WalletNotFoundError):
        await manager.delete_wallet(OWNER, theirs.id)


async def test_single_send_records_confirmed_transfer(hub, manager, gateway):
    gateway.set_balance(derive_address(KEY_A), "1")
    wallet = await manager.import_wallet(OWNER, "a", KEY_A)

    record = await manager.send(OWNER, wallet.id, DESTINATION, "0.25")

    assert record.status == TransferStatus.CONFIRMED
    assert record.kind == TransferKind.SINGLE
    assert record.amount == "0.25"
    assert record.submitted_hash
    stored = await hub.ledger.get_transfer_record(record.id)
    assert stored.status == TransferStatus.CONFIRMED
    assert stored.fee_used == "0.000021"
    assert stored.operation_id is None


async def test_single_send_failure_is_recorded(hub, manager, gateway):
    wallet = await manager.import_wallet(OWNER, "a", KEY_A)
    gateway.fail_submit_from(wallet.address, NetworkError("timeout"))

    record = await manager.send(OWNER, wallet.id, DESTINATION, "0.25")

    assert record.status == TransferStatus.FAILED
    assert record.failure_reason == "NetworkError: timeout"
    stored = await hub.ledger.get_transfer_record(record.id)
    assert stored.status == TransferStatus.FAILED


@pytest.mark.parametrize("amount", ["0", "-1", "abc", "NaN"])
async def test_single_send_rejects_bad_amounts(manager, gateway, amount):
    wallet = await manager.import_wallet(OWNER, "a", KEY_A)
    with pytest.raises(ValueError):
        await manager.send(OWNER, wallet.id, DESTINATION, amount)
    assert gateway.submissions == []


async def test_single_send_rejects_bad_destination(manager, gateway):
    wallet = await manager.import_wallet(OWNER, "a", KEY_A)
    with pytest.raises(InvalidAddressError):
        await manager.send(OWNER, wallet.id, "nowhere", "0.1")
    assert await manager.list_transfers(OWNER) == []


async def test_estimate_fee_uses_wallet_network(manager, gateway):
    wallet = await manager.import_wallet(OWNER, "a", KEY_A, network="polygon")
    fee = await manager.estimate_fee(OWNER, wallet.id, DESTINATION, "0.1")
    assert fee == "0.002"
    assert gateway.fee_calls[-1][0] == wallet.address


async def test_deleting_wallet_keeps_history(hub, manager, gateway):
    gateway.set_balance(derive_address(KEY_A), "1")
    wallet = await manager.import_wallet(OWNER, "a", KEY_A)
    summary = await manager.mass_send(OWNER, DESTINATION, wallet_ids=[wallet.id])

    await manager.delete_wallet(OWNER, wallet.id)

    operation, members = await manager.get_operation(OWNER, summary.operation_id)
    assert operation.status == TransferStatus.CONFIRMED
    assert len(members) == 1
    assert members[0].source_wallet_id is None
    assert members[0].submitted_hash == summary.per_wallet_results[0].hash


async def test_get_operation_of_other_owner_is_missing(manager, gateway):
    gateway.set_balance(derive_address(KEY_A), "1")
    wallet = await manager.import_wallet(OWNER, "a", KEY_A)
    summary = await manager.mass_send(OWNER, DESTINATION, wallet_ids=[wallet.id])

    with pytest.raises(KeyError):
        await manager.get_operation("someone-else", summary.operation_id)


async def test_custom_network_lifecycle(hub, manager):
    record = await manager.add_custom_network(
        OWNER, "devnet", "http://127.0.0.1:8545", 31337, native_symbol="DEV"
    )
    assert record.chain_id == 31337
    assert hub.registry.resolve("devnet", OWNER).native_symbol == "DEV"
    listed = {n["name"]: n for n in manager.list_networks(OWNER)}
    assert listed["devnet"]["custom"] is True
    assert listed["sepolia"]["custom"] is False

    wallet = await manager.import_wallet(OWNER, "dev", KEY_A, network="devnet")
    assert wallet.network == "devnet"

    await manager.remove_custom_network(OWNER, "devnet")
    assert "devnet" not in hub.registry.names(OWNER)
    with pytest.raises(UnsupportedNetworkError):
        await manager.remove_custom_network(OWNER, "devnet")


async def test_builtin_network_names_are_reserved(manager):
    with pytest.raises(ValueError):
        await manager.add_custom_network(OWNER, "mainnet", "http://localhost", 1)


async def test_custom_networks_are_private_to_their_owner(hub, manager):
    await manager.add_custom_network("alice", "devnet", "http://alice.example/key", 31337)

    bob_names = {n["name"] for n in manager.list_networks("bob")}
    assert "devnet" not in bob_names
    assert "devnet" in {n["name"] for n in manager.list_networks("alice")}
    with pytest.raises(UnsupportedNetworkError):
        await manager.import_wallet("bob", "sneaky", KEY_B, network="devnet")
    with pytest.raises(UnsupportedNetworkError):
        await manager.remove_custom_network("bob", "devnet")


async def test_same_custom_network_name_for_two_owners(hub, manager):
    await manager.add_custom_network("alice", "devnet", "http://alice:8545", 31337)
    await manager.add_custom_network("bob", "devnet", "http://bob:8545", 1338, native_symbol="DEV")

    assert hub.registry.resolve("devnet", "alice").chain_id == 31337
    assert hub.registry.resolve("devnet", "bob").chain_id == 1338

    wallet = await manager.import_wallet("bob", "dev", KEY_B, network="devnet")
    assert wallet.network == "devnet"


async def test_duplicate_custom_network_is_rejected(manager):
    await manager.add_custom_network(OWNER, "devnet", "http://127.0.0.1:8545", 31337)
    with pytest.raises(ValueError):
        await manager.add_custom_network(OWNER, "devnet", "http://127.0.0.1:9545", 31338)


async def test_reloaded_custom_networks_keep_their_owner(hub, manager, config, tmp_path):
    await manager.add_custom_network("alice", "devnet", "http://alice:8545", 31337)

    other = await WalletHub.open(config, tmp_path, gateways=FakeGatewayPool(FakeGateway()))
    try:
        assert other.registry.resolve("devnet", "alice").chain_id == 31337
        with pytest.raises(UnsupportedNetworkError):
            other.registry.resolve("devnet", "bob")
    finally:
        await other.shutdown()
