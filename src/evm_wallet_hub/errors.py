"""Exception hierarchy for EVM Wallet Hub.

Request-level errors (``InvalidAddressError``, ``NoWalletsSelectedError``,
``AssetMismatchError``) reject a whole request before anything is touched.
Everything else is a per-wallet condition that the transfer layer folds
into a ``Failed`` outcome.
"""

from __future__ import annotations


class WalletHubError(Exception):
    """Base class for all wallet hub errors."""


class InvalidAddressError(WalletHubError):
    """A destination is not a well-formed ``0x`` + 40 hex account address."""


class NoWalletsSelectedError(WalletHubError):
    """A mass send was requested with no usable source wallets."""


class AssetMismatchError(WalletHubError):
    """A mass send spans several networks or names an asset that is not their native one."""


class WalletNotFoundError(WalletHubError):
    """No wallet with the given id exists for the owner."""


class CryptoError(WalletHubError):
    """Encryption or decryption of key material failed."""


class InvalidKeyError(WalletHubError):
    """A private key is not exactly 32 bytes of hex."""


class NetworkError(WalletHubError):
    """The RPC endpoint could not be reached or returned an error."""


class UnsupportedNetworkError(WalletHubError):
    """No endpoint is configured for the requested network id."""


class TransferRejectedError(WalletHubError):
    """The network refused the transfer (bad destination, insufficient funds, reverted)."""


class TransferTimeoutError(WalletHubError):
    """The transfer was not included within the gateway's deadline."""
