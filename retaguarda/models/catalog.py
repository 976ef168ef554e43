from __future__ import annotations

from django.db import models
from django.utils.translation import gettext_lazy as _


class ProductQuerySet(models.QuerySet):
    def for_establishment(self, establishment_id: int) -> "ProductQuerySet":
        return self.filter(establishment_id=establishment_id)

    def resolve_name(self, name: str) -> "Product | None":
        """Produto por nome exato, sem diferenciar caixa. Empate: o mais antigo."""
        name = " ".join((name or "").split())
        if not name:
            return None
        return self.filter(name__iexact=name).order_by("id").first()


class Product(models.Model):
    """
    Insumo/produto do catálogo.

    O CRUD do catálogo fica fora do núcleo; aqui só o necessário para resolver
    produtos por id ou por nome dentro do estabelecimento.
    """

    establishment = models.ForeignKey(
        "retaguarda.Establishment",
        verbose_name=_("estabelecimento"),
        on_delete=models.PROTECT,
        related_name="products",
    )
    name = models.CharField(_("nome"), max_length=200)
    code = models.CharField(_("código"), max_length=16, blank=True, default="")
    default_unit_label = models.CharField(_("unidade padrão"), max_length=30, blank=True, default="UN")
    is_active = models.BooleanField(_("ativo"), default=True)
    created_at = models.DateTimeField(_("criado em"), auto_now_add=True)

    objects = ProductQuerySet.as_manager()

    class Meta:
        app_label = "retaguarda"
        verbose_name = _("produto")
        verbose_name_plural = _("produtos")
        ordering = ("name", "id")
        constraints = [
            models.UniqueConstraint(
                fields=["establishment", "name"],
                name="uniq_product_establishment_name",
            ),
        ]

    def __str__(self) -> str:
        return self.name
