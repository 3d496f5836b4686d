"""
Tripfolio travel-receipt ledger.

The package keeps receipts, trips and spending categories in local storage, reconciles
receipt sync status once connectivity returns, and answers spending questions through a
pure filter and aggregation layer.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
