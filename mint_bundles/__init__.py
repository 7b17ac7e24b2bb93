"""Mint Bundle Analyzer – same-slot bundle detection for Solana token mints."""

__version__ = "0.1.0"
