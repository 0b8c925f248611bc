"""HTTP controllers. Thin adapters over ``WalletCore``."""

from cypherx.web.controllers.balances import router as balances_router
from cypherx.web.controllers.charts import router as charts_router
from cypherx.web.controllers.swaps import router as swaps_router
from cypherx.web.controllers.tokens import router as tokens_router
from cypherx.web.controllers.transactions import router as transactions_router
from cypherx.web.controllers.wallet import router as wallet_router

__all__ = [
    "balances_router",
    "charts_router",
    "swaps_router",
    "tokens_router",
    "transactions_router",
    "wallet_router",
]
