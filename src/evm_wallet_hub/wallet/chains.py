"""Network definitions and the injected network registry."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Mapping

from evm_wallet_hub.config import HubConfig, rpc_env_override
from evm_wallet_hub.errors import UnsupportedNetworkError

logger = logging.getLogger("evm_wallet_hub.wallet.chains")


@dataclass(frozen=True)
class Network:
    """An EVM-compatible blockchain network."""

    name: str
    chain_id: int
    rpc_url: str
    native_symbol: str
    explorer_url: str = ""
    is_testnet: bool = False


BUILTIN_NETWORKS: dict[str, Network] = {
    "sepolia": Network(
        name="sepolia",
        chain_id=11155111,
        rpc_url="https://eth-sepolia.g.alchemy.com/v2/demo",
        native_symbol="ETH",
        explorer_url="https://sepolia.etherscan.io",
        is_testnet=True,
    ),
    "goerli": Network(
        name="goerli",
        chain_id=5,
        rpc_url="https://eth-goerli.g.alchemy.com/v2/demo",
        native_symbol="ETH",
        explorer_url="https://goerli.etherscan.io",
        is_testnet=True,
    ),
    "mainnet": Network(
        name="mainnet",
        chain_id=1,
        rpc_url="https://eth-mainnet.g.alchemy.com/v2/demo",
        native_symbol="ETH",
        explorer_url="https://etherscan.io",
    ),
    "polygon_mumbai": Network(
        name="polygon_mumbai",
        chain_id=80001,
        rpc_url="https://rpc-mumbai.maticvigil.com",
        native_symbol="MATIC",
        explorer_url="https://mumbai.polygonscan.com",
        is_testnet=True,
    ),
    "polygon": Network(
        name="polygon",
        chain_id=137,
        rpc_url="https://polygon-rpc.com",
        native_symbol="MATIC",
        explorer_url="https://polygonscan.com",
    ),
    "bsc_testnet": Network(
        name="bsc_testnet",
        chain_id=97,
        rpc_url="https://data-seed-prebsc-1-s1.binance.org:8545",
        native_symbol="tBNB",
        explorer_url="https://testnet.bscscan.com",
        is_testnet=True,
    ),
    "bsc": Network(
        name="bsc",
        chain_id=56,
        rpc_url="https://bsc-dataseed1.binance.org",
        native_symbol="BNB",
        explorer_url="https://bscscan.com",
    ),
    "arbitrum_goerli": Network(
        name="arbitrum_goerli",
        chain_id=421613,
        rpc_url="https://goerli-rollup.arbitrum.io/rpc",
        native_symbol="ETH",
        explorer_url="https://goerli.arbiscan.io",
        is_testnet=True,
    ),
    "arbitrum": Network(
        name="arbitrum",
        chain_id=42161,
        rpc_url="https://arb1.arbitrum.io/rpc",
        native_symbol="ETH",
        explorer_url="https://arbiscan.io",
    ),
    "optimism_goerli": Network(
        name="optimism_goerli",
        chain_id=420,
        rpc_url="https://goerli.optimism.io",
        native_symbol="ETH",
        explorer_url="https://goerli-optimism.etherscan.io",
        is_testnet=True,
    ),
    "optimism": Network(
        name="optimism",
        chain_id=10,
        rpc_url="https://mainnet.optimism.io",
        native_symbol="ETH",
        explorer_url="https://optimistic.etherscan.io",
    ),
    "avalanche_fuji": Network(
        name="avalanche_fuji",
        chain_id=43113,
        rpc_url="https://api.avax-test.network/ext/bc/C/rpc",
        native_symbol="AVAX",
        explorer_url="https://testnet.snowtrace.io",
        is_testnet=True,
    ),
    "avalanche": Network(
        name="avalanche",
        chain_id=43114,
        rpc_url="https://api.avax.network/ext/bc/C/rpc",
        native_symbol="AVAX",
        explorer_url="https://snowtrace.io",
    ),
}


class NetworkRegistry:
    """Resolves network ids to :class:`Network` definitions.

    The registry is built once per hub from an explicit mapping, so tests
    and deployments can swap endpoints without touching module state.
    Shared networks (built-in and config file) are visible to everyone;
    custom networks are registered per owner and only resolve for that
    owner.
    """

    def __init__(self, networks: Mapping[str, Network] | None = None) -> None:
        self._networks: dict[str, Network] = dict(networks or {})
        self._custom: dict[tuple[str, str], Network] = {}

    def resolve(self, name: str, owner_id: str | None = None) -> Network:
        """Get a network by id. Raises ``UnsupportedNetworkError`` if unknown."""
        network = self._networks.get(name)
        if network is None and owner_id is not None:
            network = self._custom.get((owner_id, name))
        if network is None or not network.rpc_url:
            raise UnsupportedNetworkError(
                f"Unknown network '{name}'. Available: {self.names(owner_id)}"
            )
        return network

    def is_custom(self, name: str, owner_id: str | None) -> bool:
        """True when *name* resolves to one of *owner_id*'s custom networks."""
        return name not in self._networks and (owner_id, name) in self._custom

    def register(self, network: Network, owner_id: str | None = None) -> None:
        """Add or replace a network; with *owner_id* it is private to that owner."""
        if owner_id is None:
            self._networks[network.name] = network
        else:
            self._custom[(owner_id, network.name)] = network

    def unregister(self, name: str, owner_id: str | None = None) -> None:
        if owner_id is None:
            self._networks.pop(name, None)
        else:
            self._custom.pop((owner_id, name), None)

    def names(self, owner_id: str | None = None) -> list[str]:
        """Return the ids of all networks visible to *owner_id*."""
        return [n.name for n in self.all(owner_id)]

    def all(self, owner_id: str | None = None) -> Iterable[Network]:
        networks = list(self._networks.values())
        if owner_id is not None:
            networks.extend(
                n for (owner, name), n in self._custom.items()
                if owner == owner_id and name not in self._networks
            )
        return networks

    def __contains__(self, name: object) -> bool:
        return name in self._networks


def build_registry(config: HubConfig) -> NetworkRegistry:
    """Layer built-in networks, config-file networks and env RPC overrides."""
    networks: dict[str, Network] = dict(BUILTIN_NETWORKS)

    for name, net_cfg in config.networks.items():
        networks[name] = Network(
            name=name,
            chain_id=net_cfg.chain_id,
            rpc_url=net_cfg.rpc_url,
            native_symbol=net_cfg.native_symbol,
            explorer_url=net_cfg.explorer_url,
            is_testnet=net_cfg.is_testnet,
        )

    for name, network in list(networks.items()):
        override = rpc_env_override(name)
        if override:
            logger.debug(f"Using RPC override for {name} from environment")
            networks[name] = replace(network, rpc_url=override)

    return NetworkRegistry(networks)
