"""Wallet services: catalog, balances, transactions, swaps and charts."""

from cypherx.services.balances import BalanceAggregator
from cypherx.services.catalog import TokenCatalog
from cypherx.services.charts import ChartSynthesizer
from cypherx.services.swaps import SwapDraft, SwapEngine
from cypherx.services.transactions import TransactionService

__all__ = [
    "BalanceAggregator",
    "ChartSynthesizer",
    "SwapDraft",
    "SwapEngine",
    "TokenCatalog",
    "TransactionService",
]
