"""
TransitionAuthority — Autoridade única sobre transições de status do pedido.

A tabela de próximos status que a interface usa é só uma sugestão; toda
transição é revalidada aqui (papel × status atual × status alvo).
"""

from __future__ import annotations

import logging

from retaguarda.conf import get_retaguarda_setting
from retaguarda.exceptions import InvalidTransition, PermissionDenied
from retaguarda.models import Order, Role


logger = logging.getLogger(__name__)

S = Order.Status

ACCEPT_ROLES = frozenset({Role.ADMIN, Role.OPERACAO, Role.PRODUCAO})

ADVANCE_ROLES = {
    S.ACEITOU_PEDIDO: frozenset({Role.ADMIN, Role.OPERACAO, Role.PRODUCAO}),
    S.REABERTO: frozenset({Role.ADMIN, Role.OPERACAO, Role.PRODUCAO}),
    S.EM_PREPARO: frozenset({Role.ADMIN, Role.OPERACAO, Role.PRODUCAO}),
    S.EM_SEPARACAO: frozenset({Role.ADMIN, Role.OPERACAO, Role.PRODUCAO, Role.ESTOQUE}),
    S.EM_FATURAMENTO: frozenset({Role.ADMIN, Role.ESTOQUE, Role.FISCAL}),
    S.EM_TRANSPORTE: frozenset({Role.ADMIN, Role.ENTREGA, Role.FISCAL}),
}

# Todos menos cliente e entrega
CANCEL_ROLES = frozenset({Role.ADMIN, Role.OPERACAO, Role.PRODUCAO, Role.ESTOQUE, Role.FISCAL})

# em_faturamento é o último status cancelável por quem não é admin
STAFF_CANCELABLE = frozenset(
    {S.PEDIDO_CRIADO, S.ACEITOU_PEDIDO, S.REABERTO, S.EM_PREPARO, S.EM_SEPARACAO, S.EM_FATURAMENTO}
)

CLIENT_LABELS = {
    S.ACEITOU_PEDIDO: "Pedido aceito",
    S.EM_PREPARO: "Em preparo",
    S.EM_SEPARACAO: "Em separação",
    S.EM_FATURAMENTO: "Em faturamento",
    S.EM_TRANSPORTE: "Saiu para entrega",
    S.ENTREGUE: "Pedido entregue",
    S.CANCELADO: "Pedido cancelado",
}


class TransitionAuthority:
    """
    Adjacência canônica + matriz de papéis.

    - is_legal: a aresta existe?
    - allowed_roles: quem pode disparar a aresta
    - check: levanta InvalidTransition / PermissionDenied
    """

    @staticmethod
    def is_legal(from_status: str | None, to_status: str) -> bool:
        if from_status is None:
            return to_status == S.PEDIDO_CRIADO
        return to_status in Order.LEGAL_TRANSITIONS.get(from_status, [])

    @staticmethod
    def reopen_roles() -> frozenset:
        return frozenset(get_retaguarda_setting("REOPEN_ROLES") or [])

    @staticmethod
    def allowed_roles(from_status: str, to_status: str) -> frozenset:
        """Papéis que podem disparar from_status → to_status (vazio se ilegal)."""
        if not TransitionAuthority.is_legal(from_status, to_status):
            return frozenset()

        if to_status == S.CANCELADO:
            return CANCEL_ROLES if from_status in STAFF_CANCELABLE else frozenset({Role.ADMIN})

        if from_status == S.CANCELADO:
            return TransitionAuthority.reopen_roles()

        if from_status == S.PEDIDO_CRIADO:
            return ACCEPT_ROLES

        if Order.ADVANCE_FLOW.get(from_status) == to_status:
            return ADVANCE_ROLES.get(from_status, frozenset())

        return frozenset()

    @staticmethod
    def check(from_status: str, to_status: str, role: str) -> None:
        """
        Valida a transição para o papel informado.

        Raises:
            InvalidTransition: Aresta fora da adjacência (terminal_status quando
                o status atual é terminal, invalid_transition caso contrário)
            PermissionDenied: Papel não autorizado para a aresta
        """
        if not TransitionAuthority.is_legal(from_status, to_status):
            code = "terminal_status" if from_status in Order.TERMINAL_STATUSES else "invalid_transition"
            allowed = Order.LEGAL_TRANSITIONS.get(from_status, [])
            raise InvalidTransition(
                code=code,
                message=f"Transição {from_status} → {to_status} não permitida",
                context={
                    "current_status": from_status,
                    "requested_status": to_status,
                    "allowed_transitions": [str(s) for s in allowed],
                },
            )

        roles = TransitionAuthority.allowed_roles(from_status, to_status)
        if role not in roles:
            logger.info("Transition %s -> %s refused for role %s", from_status, to_status, role)
            raise PermissionDenied(
                code="forbidden_role",
                message=f"Papel '{role}' não pode mover o pedido de {from_status} para {to_status}",
                context={
                    "current_status": from_status,
                    "requested_status": to_status,
                    "role": role,
                    "allowed_roles": sorted(str(r) for r in roles),
                },
            )

    @staticmethod
    def advance_target(current_status: str, proposed: str | None = None) -> str:
        """
        Próximo status do avanço monotônico.

        O alvo proposto pelo cliente é aceito apenas se coincidir com a
        adjacência (anti-skip).

        Raises:
            InvalidTransition: Sem próximo status ou alvo proposto divergente
        """
        target = Order.ADVANCE_FLOW.get(current_status)
        if target is None:
            code = "terminal_status" if current_status in Order.TERMINAL_STATUSES else "invalid_transition"
            raise InvalidTransition(
                code=code,
                message=f"Pedido em {current_status} não pode avançar",
                context={"current_status": current_status, "requested_status": proposed},
            )
        if proposed and proposed != target:
            raise InvalidTransition(
                code="invalid_transition",
                message=f"Transição {current_status} → {proposed} não permitida",
                context={
                    "current_status": current_status,
                    "requested_status": proposed,
                    "allowed_transitions": [str(target)],
                },
            )
        return target

    @staticmethod
    def client_label(to_status: str) -> str:
        return CLIENT_LABELS.get(to_status, "")

    @staticmethod
    def illegal_steps(events) -> list:
        """
        Eventos da timeline (em ordem) que quebram o caminho canônico.

        Um passo é ilegal se a aresta não existe ou se não parte do status
        em que o evento anterior deixou o pedido.
        """
        bad = []
        current = None
        for event in events:
            if current is None and event.from_status is not None:
                # Criação direta não gera evento: a timeline parte de pedido_criado
                current = S.PEDIDO_CRIADO
            if event.from_status != current or not TransitionAuthority.is_legal(event.from_status, event.to_status):
                bad.append(event)
            current = event.to_status
        return bad
