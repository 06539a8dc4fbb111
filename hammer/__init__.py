"""Storage, schema migrations and queries for digital asset wallets, balances and prices."""

__version__ = "0.1.0"