"""
Ghostli Billing - crypto subscription billing service

Users pay for subscription plans in Bitcoin, Solana or USDT (ERC20/TRC20).
Each user gets a deterministic deposit wallet per chain, payments are quoted
from live exchange rates, and submitted transactions are verified on chain
before the subscription is activated or extended.

Key modules:
    - api: FastAPI routes and endpoints
    - blockchain: Supported chains and HD wallet derivation
    - models: SQLAlchemy database models
    - schemas: Pydantic request/response schemas
    - services: Business logic layer
    - core: Configuration, database, auth and logging setup
"""

__version__ = "0.1.0"
__author__ = "Ghostli Team"
