"""Quota-governed XRP faucet service."""

__version__ = "1.0.0"
