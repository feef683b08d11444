"""Configuration system for EVM Wallet Hub.

Loads hub config from ``.evm-wallet-hub/config.yaml`` and supports
environment variable expansion so secrets (the key-encryption secret, RPC
URLs carrying API keys) can stay out of the file.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Environment-variable expansion helper
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


def _expand_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with their environment values.

    If the variable is not set the placeholder is left as-is so that
    validation can catch it later.
    """

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))

    return _ENV_VAR_RE.sub(_replace, value)


def _expand_env_recursive(obj: object) -> object:
    """Walk an arbitrary nested structure and expand env vars in strings."""
    if isinstance(obj, str):
        return _expand_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _expand_env_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# Pydantic v2 models
# ---------------------------------------------------------------------------


class NetworkConfig(BaseModel):
    """Per-deployment definition or override of an EVM network."""

    rpc_url: str
    chain_id: int
    native_symbol: str = "ETH"
    explorer_url: str = ""
    is_testnet: bool = False


class MassSendConfig(BaseModel):
    """Amount policy for mass sends. Values are decimal strings in native units."""

    dust_threshold: str = "0.001"
    safety_reserve: str = "0.001"
    fallback_fee: str = "0.002"


class GatewayConfig(BaseModel):
    """RPC behaviour shared by every chain gateway."""

    request_timeout: int = 30       # seconds per HTTP request
    receipt_timeout: int = 120      # seconds to wait for inclusion
    poll_latency: float = 2.0       # seconds between receipt polls
    gas_limit: int = 21000          # plain native transfer


class DashboardConfig(BaseModel):
    """REST backend settings."""

    port: int = 8430
    host: str = "127.0.0.1"


class HubConfig(BaseModel):
    """Root configuration object."""

    name: str = "EVM Wallet Hub"
    owner_id: str = "local"
    encryption_key: str = "${WALLET_HUB_ENCRYPTION_KEY}"
    networks: dict[str, NetworkConfig] = Field(default_factory=dict)
    mass_send: MassSendConfig = Field(default_factory=MassSendConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    dashboard: DashboardConfig = Field(default_factory=DashboardConfig)


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def get_hub_dir(base: Path | None = None, *, create: bool = True) -> Path:
    """Return the ``.evm-wallet-hub/`` directory.

    Parameters
    ----------
    base:
        Parent directory that contains (or will contain) the hub folder.
        Defaults to the current working directory.
    create:
        If *True* (default), create the directory if it doesn't exist.
    """
    if base is None:
        base = Path.cwd()
    hub_dir = base / ".evm-wallet-hub"
    if create:
        hub_dir.mkdir(parents=True, exist_ok=True)
    return hub_dir


def rpc_env_override(network_name: str) -> Optional[str]:
    """Return ``<NETWORK>_RPC_URL`` from the environment, if set."""
    return os.environ.get(f"{network_name.upper()}_RPC_URL") or None


def load_config(path: Path) -> HubConfig:
    """Load and validate a hub configuration from a YAML file.

    Environment variable placeholders (``${VAR}``) are expanded before
    validation.
    """
    raw_text = path.read_text(encoding="utf-8")
    raw_data = yaml.safe_load(raw_text) or {}
    expanded = _expand_env_recursive(raw_data)
    return HubConfig.model_validate(expanded)


def save_config(config: HubConfig, path: Path) -> None:
    """Serialize a :class:`HubConfig` to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="python", exclude_none=True)
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, sort_keys=False)
