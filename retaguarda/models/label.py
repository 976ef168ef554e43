from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _


class InventoryLabel(models.Model):
    """
    Etiqueta rastreável: uma unidade física de estoque com código único (QR).

    Invariantes (também garantidos por constraints):
    - 0 <= used_qty <= qty
    - status "consumed" se e somente se used_qty == qty
    - enquanto used_qty < qty a etiqueta segue "available" e pode atender
      vários pedidos em chamadas sucessivas

    Etiquetas nunca são apagadas; só mudam de status.
    """

    class Status(models.TextChoices):
        AVAILABLE = "available", _("disponível")
        SEPARATED = "separated", _("separada")
        CONSUMED = "consumed", _("consumida")
        CANCELED = "canceled", _("cancelada")

    class LabelType(models.TextChoices):
        MANIPULACAO = "MANIPULACAO", _("manipulação")
        FABRICANTE = "FABRICANTE", _("fabricante")

    # Valor gravado por versões antigas; tratado como disponível
    LEGACY_AVAILABLE = "disponivel"
    CONSUMABLE_STATUSES = (Status.AVAILABLE, LEGACY_AVAILABLE)

    establishment = models.ForeignKey(
        "retaguarda.Establishment",
        verbose_name=_("estabelecimento"),
        on_delete=models.PROTECT,
        related_name="labels",
    )
    product = models.ForeignKey(
        "retaguarda.Product",
        verbose_name=_("produto"),
        on_delete=models.PROTECT,
        related_name="labels",
    )
    label_code = models.CharField(_("código/lote"), max_length=64)
    label_type = models.CharField(_("tipo"), max_length=16, choices=LabelType.choices, blank=True, default="")

    qty = models.DecimalField(_("quantidade"), max_digits=12, decimal_places=3)
    used_qty = models.DecimalField(_("quantidade usada"), max_digits=12, decimal_places=3, default=Decimal("0"))
    unit_label = models.CharField(_("unidade"), max_length=30)
    status = models.CharField(_("status"), max_length=16, default=Status.AVAILABLE, db_index=True)

    order = models.ForeignKey(
        "retaguarda.Order",
        verbose_name=_("último pedido"),
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="labels",
    )
    separated_at = models.DateTimeField(_("separada em"), null=True, blank=True)
    separated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name=_("separada por"),
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    notes = models.JSONField(_("observações"), null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name=_("criada por"),
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(_("criada em"), auto_now_add=True)

    class Meta:
        app_label = "retaguarda"
        verbose_name = _("etiqueta")
        verbose_name_plural = _("etiquetas")
        ordering = ("-created_at", "id")
        constraints = [
            models.UniqueConstraint(
                fields=["establishment", "label_code"],
                name="uniq_label_establishment_code",
            ),
            models.CheckConstraint(
                condition=models.Q(qty__gt=0),
                name="label_qty_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(used_qty__gte=0) & models.Q(used_qty__lte=models.F("qty")),
                name="label_used_qty_within_qty",
            ),
        ]

    def __str__(self) -> str:
        return self.label_code

    @property
    def available_qty(self) -> Decimal:
        return self.qty - self.used_qty

    @property
    def is_consumable(self) -> bool:
        return self.status in self.CONSUMABLE_STATUSES


class OrderLabelLink(models.Model):
    """
    Consumo de uma etiqueta por um pedido (pedido × etiqueta × quantidade).
    """

    order = models.ForeignKey(
        "retaguarda.Order",
        verbose_name=_("pedido"),
        on_delete=models.CASCADE,
        related_name="label_links",
    )
    order_item = models.ForeignKey(
        "retaguarda.OrderItem",
        verbose_name=_("item do pedido"),
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="label_links",
    )
    label = models.ForeignKey(
        InventoryLabel,
        verbose_name=_("etiqueta"),
        on_delete=models.PROTECT,
        related_name="order_links",
    )
    qty_used = models.DecimalField(_("quantidade usada"), max_digits=12, decimal_places=3)
    unit_label = models.CharField(_("unidade"), max_length=30)
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
        verbose_name = _("etiqueta do pedido")
        verbose_name_plural = _("etiquetas do pedido")
        ordering = ("created_at", "id")
        constraints = [
            models.CheckConstraint(
                condition=models.Q(qty_used__gt=0),
                name="order_label_link_qty_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.label} → {self.order} ({self.qty_used} {self.unit_label})"
