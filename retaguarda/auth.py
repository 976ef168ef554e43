"""
Retaguarda Auth — Contexto de autorização explícito.

Toda operação recebe um AuthContext (estabelecimento, papel, usuário) produzido
uma única vez a partir do Membership e repassado explicitamente.
"""

from __future__ import annotations

from dataclasses import dataclass

from retaguarda.exceptions import NotFound, PermissionDenied
from retaguarda.models import Membership, Role


@dataclass(frozen=True)
class AuthContext:
    """Ator atual: papel R no estabelecimento E."""

    establishment_id: int
    role: str
    user_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def require_role(self, roles, action: str = "") -> None:
        """
        Raises:
            PermissionDenied: Se o papel do ator não estiver em roles
        """
        if self.role not in roles:
            raise PermissionDenied(
                code="forbidden_role",
                message=f"Papel '{self.role}' não pode executar {action or 'esta operação'}",
                context={"role": self.role, "allowed_roles": [str(r) for r in roles], "action": action},
            )

    @classmethod
    def for_user(cls, user, establishment_id: int | None = None) -> "AuthContext":
        """
        Resolve o contexto a partir do vínculo ativo do usuário.

        Args:
            user: Usuário autenticado
            establishment_id: Estabelecimento desejado; obrigatório quando o
                usuário tem mais de um vínculo ativo

        Raises:
            NotFound: Sem vínculo ativo (no_membership)
            PermissionDenied: Vários vínculos e nenhum estabelecimento escolhido
        """
        if user is None or not getattr(user, "is_authenticated", False):
            raise NotFound(code="no_membership", message="Usuário sem vínculo com estabelecimento")

        memberships = Membership.objects.filter(user=user, is_active=True, establishment__is_active=True)
        if establishment_id is not None:
            memberships = memberships.filter(establishment_id=establishment_id)

        found = list(memberships.order_by("id")[:2])
        if not found:
            raise NotFound(
                code="no_membership",
                message="Usuário sem vínculo com estabelecimento",
                context={"establishment_id": establishment_id},
            )
        if len(found) > 1:
            raise PermissionDenied(
                code="establishment_required",
                message="Usuário tem mais de um estabelecimento; informe qual usar",
            )

        membership = found[0]
        return cls(
            establishment_id=membership.establishment_id,
            role=membership.role,
            user_id=user.pk,
        )
