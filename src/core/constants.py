"""
Application-wide default values.

Settings in ``src.core.config`` fall back to these when the matching
environment variable is not set.
"""

from decimal import Decimal

# API server
DEFAULT_APP_PORT = 8000

# Auth
JWT_EXPIRATION_HOURS = 24

# Payments
PAYMENT_EXPIRY_HOURS = 24
PRICE_BUFFER_PERCENT = Decimal("5")
CRYPTO_AMOUNT_QUANTUM = Decimal("0.00000001")
USD_AMOUNT_QUANTUM = Decimal("0.01")

# Subscriptions
DEFAULT_SUBSCRIPTION_DAYS = 30
PLAN_INTERVAL_DAYS = {
    "daily": 1,
    "weekly": 7,
    "monthly": 30,
    "quarterly": 90,
    "yearly": 365,
    "annual": 365,
}

# Blockchain explorers
EXPLORER_TIMEOUT_SECONDS = 10.0
TRANSACTION_MONITOR_INTERVAL_SECONDS = 60
PENDING_TRANSACTION_MAX_AGE_HOURS = 72

# Exchange rates
EXCHANGE_RATE_CACHE_TTL_SECONDS = 60
FALLBACK_USD_PRICES = {
    "bitcoin": Decimal("45000"),
    "solana": Decimal("100"),
    "tether": Decimal("1"),
}
