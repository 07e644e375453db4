"""
Blockchain integration module.

This module provides blockchain-related functionality including:
- Supported chains and their confirmation policy
- Deterministic HD wallet derivation
- Address validation
"""

from src.blockchain.chains import CHAIN_CONFIGS, Chain, get_min_confirmations
from src.blockchain.wallet_derivation import (
    GeneratedWallet,
    WalletDerivationError,
    derive_user_seed_phrase,
    generate_wallet,
    validate_address,
)

__all__ = [
    "CHAIN_CONFIGS",
    "Chain",
    "GeneratedWallet",
    "WalletDerivationError",
    "derive_user_seed_phrase",
    "generate_wallet",
    "get_min_confirmations",
    "validate_address",
]
