from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _


class ProductionRecord(models.Model):
    """
    Registro de produtividade gravado quando um item de produção termina.
    """

    order_item = models.ForeignKey(
        "retaguarda.OrderItem",
        verbose_name=_("item de produção"),
        on_delete=models.CASCADE,
        related_name="productivity",
    )
    product = models.ForeignKey(
        "retaguarda.Product",
        verbose_name=_("produto"),
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    collaborator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name=_("colaborador"),
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    qty = models.DecimalField(_("quantidade"), max_digits=12, decimal_places=3)
    unit_label = models.CharField(_("unidade"), max_length=30)
    start_at = models.DateTimeField(_("início"), null=True, blank=True)
    end_at = models.DateTimeField(_("fim"))
    duration_minutes = models.PositiveIntegerField(_("duração (min)"), null=True, blank=True)
    created_at = models.DateTimeField(_("criado em"), auto_now_add=True)

    class Meta:
        app_label = "retaguarda"
        verbose_name = _("registro de produtividade")
        verbose_name_plural = _("registros de produtividade")
        ordering = ("-end_at", "id")

    def __str__(self) -> str:
        return f"{self.order_item} ({self.duration_minutes} min)"
