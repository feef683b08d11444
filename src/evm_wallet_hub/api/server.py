"""FastAPI REST backend for EVM Wallet Hub.

Authentication is handled upstream; the caller identity arrives in the
``X-Owner-Id`` header.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from evm_wallet_hub.config import HubConfig
from evm_wallet_hub.errors import (
    AssetMismatchError,
    CryptoError,
    InvalidAddressError,
    InvalidKeyError,
    NetworkError,
    NoWalletsSelectedError,
    TransferRejectedError,
    TransferTimeoutError,
    UnsupportedNetworkError,
    WalletHubError,
    WalletNotFoundError,
)
from evm_wallet_hub.hub import WalletHub
from evm_wallet_hub.wallet.manager import WalletManager
from evm_wallet_hub.wallet.provider import GatewayPool

logger = logging.getLogger("evm_wallet_hub.api")

_STATUS_BY_ERROR: dict[type[WalletHubError], int] = {
    InvalidAddressError: 400,
    NoWalletsSelectedError: 400,
    AssetMismatchError: 400,
    InvalidKeyError: 400,
    UnsupportedNetworkError: 400,
    TransferRejectedError: 400,
    WalletNotFoundError: 404,
    CryptoError: 500,
    NetworkError: 502,
    TransferTimeoutError: 504,
}


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ImportWalletBody(_Body):
    name: str
    private_key: str
    network: str = "sepolia"


class SendBody(_Body):
    from_wallet_id: str
    to_address: str
    amount: str


class MassSendBody(_Body):
    destination_address: str = Field(
        validation_alias=AliasChoices("destinationAddress", "toAddress", "destination_address")
    )
    asset_symbol: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("assetSymbol", "token", "asset_symbol")
    )
    wallet_ids: Optional[list[str]] = None


class EstimateGasBody(_Body):
    from_wallet_id: str
    to_address: str
    amount: str


class CustomNetworkBody(_Body):
    name: str
    rpc_url: str
    chain_id: int
    symbol: str = "ETH"
    explorer_url: str = ""
    is_testnet: bool = True


# ------------------------------------------------------------------
# Dependencies
# ------------------------------------------------------------------


def get_manager(request: Request) -> WalletManager:
    return request.app.state.hub.wallet_manager


def get_owner(x_owner_id: str = Header("local")) -> str:
    return x_owner_id


router = APIRouter(prefix="/api")


# ------------------------------------------------------------------
# Wallets
# ------------------------------------------------------------------


@router.get("/wallets")
async def api_wallets(owner: str = Depends(get_owner), mgr: WalletManager = Depends(get_manager)):
    wallets = await mgr.list_wallets(owner)
    return [w.public_view() for w in wallets]


@router.post("/wallets")
async def api_import_wallet(
    body: ImportWalletBody,
    owner: str = Depends(get_owner),
    mgr: WalletManager = Depends(get_manager),
):
    wallet = await mgr.import_wallet(owner, body.name, body.private_key, body.network)
    return wallet.public_view()


@router.delete("/wallets/{wallet_id}")
async def api_delete_wallet(
    wallet_id: str,
    owner: str = Depends(get_owner),
    mgr: WalletManager = Depends(get_manager),
):
    await mgr.delete_wallet(owner, wallet_id)
    return {"message": "Wallet deleted successfully"}


# ------------------------------------------------------------------
# Transactions
# ------------------------------------------------------------------


@router.get("/transactions")
async def api_transactions(owner: str = Depends(get_owner), mgr: WalletManager = Depends(get_manager)):
    records = await mgr.list_transfers(owner)
    return [r.model_dump(mode="json") for r in records]


@router.post("/transactions/send")
async def api_send(
    body: SendBody,
    owner: str = Depends(get_owner),
    mgr: WalletManager = Depends(get_manager),
):
    record = await mgr.send(owner, body.from_wallet_id, body.to_address, body.amount)
    payload = record.model_dump(mode="json")
    if record.status.value == "failed":
        return JSONResponse(
            status_code=400,
            content={"message": "Transaction failed", "error": record.failure_reason, "transfer": payload},
        )
    return payload


@router.post("/transactions/mass-send")
async def api_mass_send(
    body: MassSendBody,
    owner: str = Depends(get_owner),
    mgr: WalletManager = Depends(get_manager),
):
    summary = await mgr.mass_send(
        owner, body.destination_address, asset_symbol=body.asset_symbol, wallet_ids=body.wallet_ids
    )
    return summary.model_dump(mode="json", by_alias=True)


@router.get("/transactions/mass-send/{operation_id}")
async def api_mass_send_operation(
    operation_id: str,
    owner: str = Depends(get_owner),
    mgr: WalletManager = Depends(get_manager),
):
    try:
        operation, members = await mgr.get_operation(owner, operation_id)
    except KeyError:
        return JSONResponse(status_code=404, content={"message": "Operation not found"})
    return {
        **operation.model_dump(mode="json"),
        "transfers": [m.model_dump(mode="json") for m in members],
    }


@router.post("/estimate-gas")
async def api_estimate_gas(
    body: EstimateGasBody,
    owner: str = Depends(get_owner),
    mgr: WalletManager = Depends(get_manager),
):
    fee = await mgr.estimate_fee(owner, body.from_wallet_id, body.to_address, body.amount)
    return {"gasEstimate": fee}


# ------------------------------------------------------------------
# Networks
# ------------------------------------------------------------------


@router.get("/networks")
async def api_networks(owner: str = Depends(get_owner), mgr: WalletManager = Depends(get_manager)):
    return mgr.list_networks(owner)


@router.post("/networks")
async def api_add_network(
    body: CustomNetworkBody,
    owner: str = Depends(get_owner),
    mgr: WalletManager = Depends(get_manager),
):
    record = await mgr.add_custom_network(
        owner,
        name=body.name,
        rpc_url=body.rpc_url,
        chain_id=body.chain_id,
        native_symbol=body.symbol,
        explorer_url=body.explorer_url,
        is_testnet=body.is_testnet,
    )
    return record.model_dump(mode="json")


@router.delete("/networks/{name}")
async def api_delete_network(
    name: str,
    owner: str = Depends(get_owner),
    mgr: WalletManager = Depends(get_manager),
):
    await mgr.remove_custom_network(owner, name)
    return {"message": "Network deleted successfully"}


# ------------------------------------------------------------------
# App factory
# ------------------------------------------------------------------


def _status_for(exc: WalletHubError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[cls]
    return 500


def create_app(
    base_path: Path | None = None,
    *,
    config: HubConfig | None = None,
    hub_dir: Path | None = None,
    gateways: GatewayPool | None = None,
) -> FastAPI:
    """Build the FastAPI app. The hub is opened on startup and closed on shutdown.

    With *config* and *hub_dir* the hub is opened directly (optionally with
    substitute *gateways*); otherwise it is loaded from *base_path*.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config is not None and hub_dir is not None:
            hub = await WalletHub.open(config, hub_dir, gateways=gateways)
        else:
            hub = await WalletHub.load(base_path)
        app.state.hub = hub
        logger.info(f"API started for '{hub.config.name}'")
        try:
            yield
        finally:
            await hub.shutdown()

    app = FastAPI(title="EVM Wallet Hub", lifespan=lifespan)

    @app.exception_handler(WalletHubError)
    async def _hub_error(request: Request, exc: WalletHubError):
        status = _status_for(exc)
        if status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status, content={"message": str(exc), "error": type(exc).__name__})

    @app.exception_handler(ValueError)
    async def _value_error(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"message": str(exc)})

    app.include_router(router)
    return app


# ------------------------------------------------------------------
# Runner
# ------------------------------------------------------------------


def run_server(host: str = "127.0.0.1", port: int = 8430, base_path: Path | None = None) -> None:
    uvicorn.run(create_app(base_path), host=host, port=port, log_level="info")
