"""
Retaguarda Models — Modelos do núcleo.

Re-exports para imports curtos:
    from retaguarda.models import Order, InventoryLabel, StockMovement, ...
"""

from .catalog import Product  # noqa: F401
from .establishment import Establishment, Membership, Role  # noqa: F401
from .inventory import InventoryCount, InventoryCountItem  # noqa: F401
from .label import InventoryLabel, OrderLabelLink  # noqa: F401
from .order import Order, OrderItem, OrderLineItem, OrderSequence, OrderStatusEvent  # noqa: F401
from .production import ProductionRecord  # noqa: F401
from .stock import DecimalEncoder, Loss, StockMovement  # noqa: F401
