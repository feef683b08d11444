import pytest
from fastapi.testclient import TestClient

from evm_wallet_hub.api.server import create_app
from evm_wallet_hub.errors import NetworkError
from evm_wallet_hub.wallet.keystore import derive_address

from conftest import DESTINATION, KEY_A, KEY_B, OWNER

HEADERS = {"X-Owner-Id": OWNER}


@pytest.fixture
def client(config, pool, tmp_path):
    app = create_app(config=config, hub_dir=tmp_path, gateways=pool)
    with TestClient(app) as client:
        yield client


def _import(client, key, name="w"):
    resp = client.post(
        "/api/wallets", json={"name": name, "privateKey": key}, headers=HEADERS
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_import_and_list_wallets_hides_ciphertext(client, gateway):
    gateway.set_balance(derive_address(KEY_A), "0.5")
    created = _import(client, KEY_A, "first")
    assert created["address"] == derive_address(KEY_A)
    assert "encrypted_key" not in created

    listed = client.get("/api/wallets", headers=HEADERS).json()
    assert [w["id"] for w in listed] == [created["id"]]
    assert listed[0]["cached_balance"] == "0.5"

    assert client.get("/api/wallets", headers={"X-Owner-Id": "other"}).json() == []


def test_invalid_key_is_a_bad_request(client):
    resp = client.post("/api/wallets", json={"name": "x", "privateKey": "nope"}, headers=HEADERS)
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidKeyError"


def test_mass_send_endpoint(client, gateway):
    gateway.set_balance(derive_address(KEY_A), "0.5")
    gateway.set_balance(derive_address(KEY_B), "2.0")
    a = _import(client, KEY_A)
    b = _import(client, KEY_B)

    resp = client.post(
        "/api/transactions/mass-send",
        json={"toAddress": DESTINATION, "token": "ETH", "walletIds": [a["id"], b["id"]]},
        headers=HEADERS,
    )

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["status"] == "confirmed"
    assert body["totalAmount"] == "2.494"
    assert [r["amount"] for r in body["perWalletResults"]] == ["0.497", "1.997"]

    detail = client.get(f"/api/transactions/mass-send/{body['operationId']}", headers=HEADERS)
    assert detail.status_code == 200
    assert len(detail.json()["transfers"]) == 2

    history = client.get("/api/transactions", headers=HEADERS).json()
    assert {t["kind"] for t in history} == {"batch_member"}


def test_mass_send_validation_errors(client, gateway):
    a = _import(client, KEY_A)

    bad_dest = client.post(
        "/api/transactions/mass-send",
        json={"destinationAddress": "0x1234", "walletIds": [a["id"]]},
        headers=HEADERS,
    )
    assert bad_dest.status_code == 400
    assert bad_dest.json()["error"] == "InvalidAddressError"

    empty = client.post(
        "/api/transactions/mass-send",
        json={"destinationAddress": DESTINATION, "walletIds": []},
        headers=HEADERS,
    )
    assert empty.status_code == 400
    assert empty.json()["error"] == "NoWalletsSelectedError"


def test_unknown_operation_is_404(client):
    assert client.get("/api/transactions/mass-send/nope", headers=HEADERS).status_code == 404


def test_single_send_success_and_failure(client, gateway):
    gateway.set_balance(derive_address(KEY_A), "1")
    a = _import(client, KEY_A)

    ok = client.post(
        "/api/transactions/send",
        json={"fromWalletId": a["id"], "toAddress": DESTINATION, "amount": "0.1"},
        headers=HEADERS,
    )
    assert ok.status_code == 200
    assert ok.json()["status"] == "confirmed"

    gateway.fail_submit_from(a["address"], NetworkError("down"))
    failed = client.post(
        "/api/transactions/send",
        json={"fromWalletId": a["id"], "toAddress": DESTINATION, "amount": "0.1"},
        headers=HEADERS,
    )
    assert failed.status_code == 400
    assert failed.json()["error"] == "NetworkError: down"


def test_estimate_gas_and_missing_wallet(client):
    a = _import(client, KEY_A)
    resp = client.post(
        "/api/estimate-gas",
        json={"fromWalletId": a["id"], "toAddress": DESTINATION, "amount": "0.1"},
        headers=HEADERS,
    )
    assert resp.json() == {"gasEstimate": "0.002"}

    missing = client.post(
        "/api/estimate-gas",
        json={"fromWalletId": "nope", "toAddress": DESTINATION, "amount": "0.1"},
        headers=HEADERS,
    )
    assert missing.status_code == 404


def test_delete_wallet(client):
    a = _import(client, KEY_A)
    assert client.delete(f"/api/wallets/{a['id']}", headers=HEADERS).status_code == 200
    assert client.delete(f"/api/wallets/{a['id']}", headers=HEADERS).status_code == 404


def test_custom_networks(client):
    resp = client.post(
        "/api/networks",
        json={"name": "devnet", "rpcUrl": "http://127.0.0.1:8545", "chainId": 31337},
        headers=HEADERS,
    )
    assert resp.status_code == 200, resp.text
    names = {n["name"] for n in client.get("/api/networks", headers=HEADERS).json()}
    assert {"devnet", "sepolia", "mainnet"} <= names

    assert client.delete("/api/networks/devnet", headers=HEADERS).status_code == 200
    assert "devnet" not in {n["name"] for n in client.get("/api/networks", headers=HEADERS).json()}

    assert "devnet" not in {
        n["name"] for n in client.get("/api/networks", headers={"X-Owner-Id": "other"}).json()
    }


def test_duplicate_custom_network_is_a_bad_request(client):
    body = {"name": "devnet", "rpcUrl": "http://127.0.0.1:8545", "chainId": 31337}
    assert client.post("/api/networks", json=body, headers=HEADERS).status_code == 200
    again = client.post("/api/networks", json=body, headers=HEADERS)
    assert again.status_code == 400

    other = client.post("/api/networks", json=body, headers={"X-Owner-Id": "other"})
    assert other.status_code == 200


def test_mass_send_across_networks_is_a_bad_request(client, gateway):
    a = _import(client, KEY_A)
    resp = client.post(
        "/api/wallets",
        json={"name": "matic", "privateKey": KEY_B, "network": "polygon"},
        headers=HEADERS,
    )
    assert resp.status_code == 200, resp.text
    b = resp.json()

    mixed = client.post(
        "/api/transactions/mass-send",
        json={"destinationAddress": DESTINATION, "walletIds": [a["id"], b["id"]]},
        headers=HEADERS,
    )
    assert mixed.status_code == 400
    assert mixed.json()["error"] == "AssetMismatchError"
    assert gateway.submissions == []
