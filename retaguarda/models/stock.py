from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.db.models import Q, Sum
from django.utils.translation import gettext_lazy as _


class DecimalEncoder(DjangoJSONEncoder):
    """JSON encoder that handles Decimal by converting to string for precision."""

    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        return super().default(obj)


class StockMovementQuerySet(models.QuerySet):
    """
    Saldo é sempre derivado do ledger: soma(IN) - soma(OUT).
    """

    def for_key(self, establishment_id: int, product_id: int, unit_label: str) -> "StockMovementQuerySet":
        return self.filter(
            establishment_id=establishment_id,
            product_id=product_id,
            unit_label=unit_label,
        )

    def balance(self) -> Decimal:
        totals = self.aggregate(
            inbound=Sum("qty", filter=Q(direction=StockMovement.Direction.IN)),
            outbound=Sum("qty", filter=Q(direction=StockMovement.Direction.OUT)),
        )
        return (totals["inbound"] or Decimal("0")) - (totals["outbound"] or Decimal("0"))

    def balances(self) -> list[dict]:
        """Saldo por (product_id, unit_label), ordenado por produto e unidade."""
        rows = (
            self.values("product_id", "product__name", "unit_label")
            .annotate(
                inbound=Sum("qty", filter=Q(direction=StockMovement.Direction.IN)),
                outbound=Sum("qty", filter=Q(direction=StockMovement.Direction.OUT)),
            )
            .order_by("product__name", "product_id", "unit_label")
        )
        return [
            {
                "product_id": row["product_id"],
                "product_name": row["product__name"],
                "unit_label": row["unit_label"],
                "current_stock": (row["inbound"] or Decimal("0")) - (row["outbound"] or Decimal("0")),
            }
            for row in rows
        ]


class StockMovement(models.Model):
    """
    Ledger append-only de movimentações de estoque.

    qty é sempre positiva; o sinal vem de direction. Nenhum saldo é
    armazenado como contador mutável.
    """

    class Direction(models.TextChoices):
        IN = "IN", _("entrada")
        OUT = "OUT", _("saída")

    class MovementType(models.TextChoices):
        LABEL_IN = "LABEL_IN", _("entrada por etiqueta")
        OUT_ORDER = "OUT_ORDER", _("saída para pedido")
        AJUSTE_INVENTARIO = "ajuste_inventario", _("ajuste de inventário")
        PERDA = "perda", _("perda")
        ESTORNO_ETIQUETA = "estorno_etiqueta", _("estorno de etiqueta")
        TRANSFERENCIA = "transferencia", _("transferência entre unidades")

    establishment = models.ForeignKey(
        "retaguarda.Establishment",
        verbose_name=_("estabelecimento"),
        on_delete=models.PROTECT,
        related_name="movements",
    )
    product = models.ForeignKey(
        "retaguarda.Product",
        verbose_name=_("produto"),
        on_delete=models.PROTECT,
        related_name="movements",
    )
    unit_label = models.CharField(_("unidade"), max_length=30)
    qty = models.DecimalField(_("quantidade"), max_digits=12, decimal_places=3)
    direction = models.CharField(_("direção"), max_length=3, choices=Direction.choices)
    movement_type = models.CharField(_("tipo"), max_length=32, choices=MovementType.choices, db_index=True)
    reason = models.CharField(_("motivo"), max_length=60, blank=True, default="")

    label = models.ForeignKey(
        "retaguarda.InventoryLabel",
        verbose_name=_("etiqueta"),
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="movements",
    )
    order = models.ForeignKey(
        "retaguarda.Order",
        verbose_name=_("pedido"),
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="movements",
    )
    inventory_count = models.ForeignKey(
        "retaguarda.InventoryCount",
        verbose_name=_("inventário"),
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="movements",
    )
    details = models.JSONField(_("detalhes"), default=dict, blank=True, encoder=DecimalEncoder)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name=_("registrado por"),
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(_("criado em"), auto_now_add=True, db_index=True)

    objects = StockMovementQuerySet.as_manager()

    class Meta:
        app_label = "retaguarda"
        verbose_name = _("movimentação de estoque")
        verbose_name_plural = _("movimentações de estoque")
        ordering = ("created_at", "id")
        indexes = [
            models.Index(
                fields=["establishment", "product", "unit_label"],
                name="movement_stock_key_idx",
            ),
            models.Index(
                fields=["label", "movement_type"],
                name="movement_label_type_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(qty__gt=0),
                name="stock_movement_qty_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.direction} {self.qty} {self.unit_label} ({self.movement_type})"

    @property
    def signed_qty(self) -> Decimal:
        return self.qty if self.direction == self.Direction.IN else -self.qty


class Loss(models.Model):
    """
    Perda registrada (descarte, vencimento, quebra...). Sempre gera uma saída.
    """

    REASON_OTHER = "Outro"

    establishment = models.ForeignKey(
        "retaguarda.Establishment",
        verbose_name=_("estabelecimento"),
        on_delete=models.PROTECT,
        related_name="losses",
    )
    product = models.ForeignKey(
        "retaguarda.Product",
        verbose_name=_("produto"),
        on_delete=models.PROTECT,
        related_name="losses",
    )
    qty = models.DecimalField(_("quantidade"), max_digits=12, decimal_places=3)
    unit_label = models.CharField(_("unidade"), max_length=30)
    reason = models.CharField(_("motivo"), max_length=60)
    reason_detail = models.TextField(_("detalhe do motivo"), blank=True, default="")
    lot = models.CharField(_("lote"), max_length=64, blank=True, default="")
    label_code = models.CharField(_("código da etiqueta"), max_length=64, blank=True, default="")
    movement = models.OneToOneField(
        StockMovement,
        verbose_name=_("movimentação"),
        on_delete=models.PROTECT,
        related_name="loss",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name=_("registrado por"),
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(_("criado em"), auto_now_add=True)

    class Meta:
        app_label = "retaguarda"
        verbose_name = _("perda")
        verbose_name_plural = _("perdas")
        ordering = ("-created_at", "id")

    def __str__(self) -> str:
        return f"{self.product} -{self.qty} {self.unit_label} ({self.reason})"
