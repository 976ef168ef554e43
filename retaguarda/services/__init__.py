"""
Retaguarda Services — Operações do núcleo.

Re-exports:
    from retaguarda.services import OrderService, LabelService, ...
"""

from .inventory import InventoryCountService  # noqa: F401
from .labels import LabelService  # noqa: F401
from .orders import OrderService  # noqa: F401
from .production import ProductionService  # noqa: F401
from .stock import LedgerBalanceProvider, StockService  # noqa: F401
from .transitions import TransitionAuthority  # noqa: F401
