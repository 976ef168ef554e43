from __future__ import annotations

from django.http import JsonResponse
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    InventoryCountViewSet,
    InventoryLabelViewSet,
    LossViewSet,
    OrderViewSet,
    ProductionItemViewSet,
    StockBalanceViewSet,
    StockMovementViewSet,
    StockTransferViewSet,
)


def health_check(request):
    """
    Healthcheck endpoint para monitoramento.

    Returns:
        200 OK com {"status": "healthy", "version": "X.X.X"}
    """
    from retaguarda import __version__

    return JsonResponse({
        "status": "healthy",
        "version": __version__,
    })


router = DefaultRouter(trailing_slash=False)
router.register("orders", OrderViewSet, basename="orders")
router.register("labels", InventoryLabelViewSet, basename="labels")
router.register("stock/balances", StockBalanceViewSet, basename="stock-balances")
router.register("stock/movements", StockMovementViewSet, basename="stock-movements")
router.register("stock/transfers", StockTransferViewSet, basename="stock-transfers")
router.register("losses", LossViewSet, basename="losses")
router.register("inventory-counts", InventoryCountViewSet, basename="inventory-counts")
router.register("production-items", ProductionItemViewSet, basename="production-items")

urlpatterns = [
    path("health", health_check, name="health-check"),
    path("", include(router.urls)),
]
