"""
Business logic services package.

Services are imported on-demand to avoid circular import issues.
Individual services should be imported directly from their modules:
  from src.services.wallet_service import WalletService
  from src.services.crypto_payment_service import CryptoPaymentService
  etc.
"""

__all__ = [
    "BlockchainService",
    "CacheService",
    "CryptoPaymentService",
    "PriceService",
    "SubscriptionService",
    "TransactionMonitor",
    "WalletService",
]
