"""WalletHub - wires configuration, storage and chain access together."""

from __future__ import annotations

import logging
from pathlib import Path

from evm_wallet_hub.config import HubConfig, get_hub_dir, load_config, save_config
from evm_wallet_hub.storage.database import Database, get_database
from evm_wallet_hub.storage.ledger import OperationLedger
from evm_wallet_hub.transfers.executor import TransferExecutor
from evm_wallet_hub.transfers.orchestrator import MassSendOrchestrator
from evm_wallet_hub.wallet.chains import NetworkRegistry, build_registry
from evm_wallet_hub.wallet.keystore import KeyVault
from evm_wallet_hub.wallet.manager import WalletManager
from evm_wallet_hub.wallet.provider import GatewayPool

logger = logging.getLogger("evm_wallet_hub.hub")


class WalletHub:
    """A loaded wallet hub: config, database and the services built on them.

    Collaborators can be swapped after construction (or passed in) so
    tests can substitute fake gateways without touching the network.
    """

    def __init__(
        self,
        config: HubConfig,
        hub_dir: Path,
        db: Database,
        registry: NetworkRegistry | None = None,
        gateways: GatewayPool | None = None,
    ) -> None:
        self.config = config
        self.hub_dir = hub_dir
        self.db = db
        self.ledger = OperationLedger(db)
        self.vault = KeyVault(config.encryption_key)
        self.registry = registry or build_registry(config)
        self.gateways = gateways or GatewayPool(
            self.registry, config.gateway, config.mass_send.fallback_fee
        )
        self.executor = TransferExecutor(self.gateways)
        self.orchestrator = MassSendOrchestrator(
            self.ledger,
            self.vault,
            self.registry,
            self.gateways,
            self.executor,
            config.mass_send,
        )
        self.wallet_manager = WalletManager(
            self.ledger,
            self.vault,
            self.registry,
            self.gateways,
            self.executor,
            self.orchestrator,
        )

    @classmethod
    async def load(cls, base_path: Path | None = None) -> WalletHub:
        """Load an existing hub from a ``.evm-wallet-hub`` directory."""
        hub_dir = get_hub_dir(base_path, create=False)
        config_path = hub_dir / "config.yaml"

        if not config_path.exists():
            raise FileNotFoundError(
                f"No wallet hub found at {hub_dir}. Run 'evm-wallet-hub init' first."
            )

        config = load_config(config_path)
        return await cls.open(config, hub_dir)

    @classmethod
    async def open(
        cls,
        config: HubConfig,
        hub_dir: Path,
        gateways: GatewayPool | None = None,
    ) -> WalletHub:
        """Connect the database for *config* and register stored custom networks."""
        db = get_database(hub_dir)
        await db.connect()
        registry = gateways.registry if gateways is not None else None
        try:
            hub = cls(config=config, hub_dir=hub_dir, db=db, registry=registry, gateways=gateways)
        except Exception:
            await db.close()
            raise
        loaded = await hub.wallet_manager.load_custom_networks()
        if loaded:
            logger.info(f"Registered {loaded} custom network(s)")
        return hub

    @classmethod
    def init(cls, base_path: Path | None = None, name: str = "EVM Wallet Hub") -> Path:
        """Write a default ``config.yaml``; returns its path."""
        hub_dir = get_hub_dir(base_path)
        config_path = hub_dir / "config.yaml"
        if config_path.exists():
            raise FileExistsError(f"Config already exists at {config_path}")
        save_config(HubConfig(name=name), config_path)
        return config_path

    async def shutdown(self) -> None:
        await self.db.close()
