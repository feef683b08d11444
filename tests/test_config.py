from evm_wallet_hub.config import HubConfig, get_hub_dir, load_config, save_config


def test_save_and_load_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    save_config(HubConfig(name="Test Hub"), path)
    loaded = load_config(path)
    assert loaded.name == "Test Hub"
    assert loaded.mass_send.dust_threshold == "0.001"
    assert loaded.mass_send.safety_reserve == "0.001"
    assert loaded.mass_send.fallback_fee == "0.002"


def test_env_placeholders_are_expanded(tmp_path, monkeypatch):
    monkeypatch.setenv("WALLET_HUB_ENCRYPTION_KEY", "s3cret")
    monkeypatch.setenv("LOCAL_RPC", "http://127.0.0.1:8545")
    path = tmp_path / "config.yaml"
    path.write_text(
        "encryption_key: ${WALLET_HUB_ENCRYPTION_KEY}\n"
        "networks:\n"
        "  local:\n"
        "    rpc_url: ${LOCAL_RPC}\n"
        "    chain_id: 31337\n",
        encoding="utf-8",
    )
    config = load_config(path)
    assert config.encryption_key == "s3cret"
    assert config.networks["local"].rpc_url == "http://127.0.0.1:8545"


def test_unset_placeholder_is_left_in_place(tmp_path, monkeypatch):
    monkeypatch.delenv("WALLET_HUB_ENCRYPTION_KEY", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text("encryption_key: ${WALLET_HUB_ENCRYPTION_KEY}\n", encoding="utf-8")
    assert load_config(path).encryption_key == "${WALLET_HUB_ENCRYPTION_KEY}"


def test_get_hub_dir(tmp_path):
    hub_dir = get_hub_dir(tmp_path)
    assert hub_dir == tmp_path / ".evm-wallet-hub"
    assert hub_dir.is_dir()
