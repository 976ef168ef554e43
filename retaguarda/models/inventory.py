from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _


class InventoryCount(models.Model):
    """
    Sessão de contagem física (reconciliação contra o saldo do ledger).
    """

    establishment = models.ForeignKey(
        "retaguarda.Establishment",
        verbose_name=_("estabelecimento"),
        on_delete=models.PROTECT,
        related_name="inventory_counts",
    )
    started_at = models.DateTimeField(_("iniciado em"))
    finished_at = models.DateTimeField(_("finalizado em"), null=True, blank=True)
    items_count = models.PositiveIntegerField(_("itens"), default=0)
    products_count = models.PositiveIntegerField(_("produtos"), default=0)
    notes = models.TextField(_("observações"), blank=True, default="")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name=_("criado por"),
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        app_label = "retaguarda"
        verbose_name = _("inventário")
        verbose_name_plural = _("inventários")
        ordering = ("-started_at", "id")

    def __str__(self) -> str:
        return f"Inventário #{self.pk} ({self.started_at:%d/%m/%Y})"


class InventoryCountItem(models.Model):
    """Um produto + unidade contado na sessão, já consolidado."""

    inventory_count = models.ForeignKey(
        InventoryCount,
        verbose_name=_("inventário"),
        on_delete=models.CASCADE,
        related_name="items",
    )
    product = models.ForeignKey(
        "retaguarda.Product",
        verbose_name=_("produto"),
        on_delete=models.PROTECT,
        related_name="+",
    )
    unit_label = models.CharField(_("unidade"), max_length=30)
    counted_qty = models.DecimalField(_("contado"), max_digits=12, decimal_places=3)
    current_stock_before = models.DecimalField(_("saldo antes"), max_digits=12, decimal_places=3)
    diff_qty = models.DecimalField(_("diferença"), max_digits=12, decimal_places=3)
    movement = models.OneToOneField(
        "retaguarda.StockMovement",
        verbose_name=_("ajuste"),
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="count_item",
    )

    class Meta:
        app_label = "retaguarda"
        verbose_name = _("item de inventário")
        verbose_name_plural = _("itens de inventário")
        ordering = ("id",)
        constraints = [
            models.UniqueConstraint(
                fields=["inventory_count", "product", "unit_label"],
                name="uniq_count_item_product_unit",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.product} {self.counted_qty} {self.unit_label}"
