"""EVM wallet primitives for EVM Wallet Hub.

Provides the encrypted key vault, the injected network registry and
per-network chain gateways built on web3.py.
"""
