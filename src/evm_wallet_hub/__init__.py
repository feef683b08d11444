"""EVM Wallet Hub - import EVM keys, track balances and mass-send native tokens."""

__version__ = "0.1.0"
