"""
Django Retaguarda — Núcleo de pedidos, etiquetas e estoque para cozinhas de produção.

Uso básico:
    from retaguarda.auth import AuthContext
    from retaguarda.services import OrderService, LabelService, StockService
    from retaguarda.services import InventoryCountService, ProductionService

Cada operação recebe um AuthContext explícito (estabelecimento, papel, usuário).
"""

__title__ = "Django Retaguarda"
__version__ = "0.1.0"
