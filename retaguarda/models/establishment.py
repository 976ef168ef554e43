from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _


class Role(models.TextChoices):
    """Papéis de membership dentro de um estabelecimento."""

    CLIENTE = "cliente", _("cliente")
    OPERACAO = "operacao", _("operação")
    PRODUCAO = "producao", _("produção")
    ESTOQUE = "estoque", _("estoque")
    FISCAL = "fiscal", _("fiscal")
    ADMIN = "admin", _("administrador")
    ENTREGA = "entrega", _("entrega")


class Establishment(models.Model):
    """
    Unidade/tenant. Todos os registros operacionais são particionados por ela.
    """

    name = models.CharField(_("nome"), max_length=128)
    code = models.CharField(
        _("código"),
        max_length=8,
        blank=True,
        default="",
        help_text=_("Sigla usada nos códigos de etiqueta (ex.: IE)"),
    )
    is_active = models.BooleanField(_("ativo"), default=True)
    created_at = models.DateTimeField(_("criado em"), auto_now_add=True)

    class Meta:
        app_label = "retaguarda"
        verbose_name = _("estabelecimento")
        verbose_name_plural = _("estabelecimentos")
        ordering = ("name", "id")

    def __str__(self) -> str:
        return self.name


class Membership(models.Model):
    """
    Vínculo usuário × estabelecimento × papel.

    É a única fonte do AuthContext; ver retaguarda.auth.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name=_("usuário"),
        on_delete=models.CASCADE,
        related_name="retaguarda_memberships",
    )
    establishment = models.ForeignKey(
        Establishment,
        verbose_name=_("estabelecimento"),
        on_delete=models.CASCADE,
        related_name="memberships",
    )
    role = models.CharField(_("papel"), max_length=16, choices=Role.choices, db_index=True)
    is_active = models.BooleanField(_("ativo"), default=True)
    created_at = models.DateTimeField(_("criado em"), auto_now_add=True)

    class Meta:
        app_label = "retaguarda"
        verbose_name = _("vínculo")
        verbose_name_plural = _("vínculos")
        constraints = [
            models.UniqueConstraint(
                fields=["user", "establishment"],
                name="uniq_membership_user_establishment",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user} @ {self.establishment} ({self.role})"
