"""
Supported payment chains and their per-chain constants.
"""

from dataclasses import dataclass
from enum import Enum


class Chain(str, Enum):
    """Cryptocurrency a user can pay with."""

    BITCOIN = "bitcoin"
    SOLANA = "solana"
    USDT_ERC20 = "usdt_erc20"
    USDT_TRC20 = "usdt_trc20"


@dataclass(frozen=True)
class ChainConfig:
    """Static configuration for one chain."""
    min_confirmations: int
    derivation_path: str
    symbol: str
    # CoinGecko asset id used for USD pricing
    price_id: str


CHAIN_CONFIGS: dict[Chain, ChainConfig] = {
    Chain.BITCOIN: ChainConfig(
        min_confirmations=3,
        derivation_path="m/44'/0'/0'/0/0",
        symbol="BTC",
        price_id="bitcoin",
    ),
    Chain.SOLANA: ChainConfig(
        min_confirmations=32,
        derivation_path="m/44'/501'/0'/0'",
        symbol="SOL",
        price_id="solana",
    ),
    Chain.USDT_ERC20: ChainConfig(
        min_confirmations=12,
        derivation_path="m/44'/60'/0'/0/0",
        symbol="USDT",
        price_id="tether",
    ),
    Chain.USDT_TRC20: ChainConfig(
        min_confirmations=19,
        derivation_path="m/44'/195'/0'/0/0",
        symbol="USDT",
        price_id="tether",
    ),
}


def get_chain_config(chain: Chain | str) -> ChainConfig:
    """Look up the configuration for ``chain``; raises ValueError if unsupported."""
    return CHAIN_CONFIGS[Chain(chain)]


def get_min_confirmations(chain: Chain | str) -> int:
    """Minimum confirmations before a transaction on ``chain`` counts as confirmed."""
    return get_chain_config(chain).min_confirmations
