"""
ProductionService — Sub-status de produção por item (KDS).

pending → in_progress → done; no_production_needed é definido no aceite
e funciona como terminal já satisfeito.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.db import DatabaseError, transaction
from django.utils import timezone

from retaguarda.auth import AuthContext
from retaguarda.exceptions import NotFound, StateConflict
from retaguarda.models import Membership, Order, OrderItem, ProductionRecord, Role
from retaguarda.results import SideEffect, attempt


logger = logging.getLogger(__name__)

LEADER_ROLES = frozenset({Role.ADMIN, Role.OPERACAO})
FINISH_ROLES = frozenset({Role.ADMIN, Role.OPERACAO, Role.PRODUCAO})

# Itens só se movem enquanto o pedido está nestes status
PRODUCTION_ORDER_STATUSES = frozenset({Order.Status.ACEITOU_PEDIDO, Order.Status.EM_PREPARO})


@dataclass(frozen=True)
class ProductionStep:
    """Resultado de ProductionService.advance."""

    item: OrderItem
    changed: bool
    productivity: SideEffect | None = None


class ProductionService:
    """
    Serviço de produção.

    Métodos:
    - assign: define colaborador (líderes)
    - advance: pending → in_progress → done
    - pending_items: itens que ainda bloqueiam a saída de em_preparo
    - board: itens abertos do estabelecimento (KDS)
    """

    @staticmethod
    def _locked_item(ctx: AuthContext, item_id: int) -> OrderItem:
        item = (
            OrderItem.objects.select_for_update()
            .select_related("order")
            .filter(pk=item_id, order__establishment_id=ctx.establishment_id)
            .first()
        )
        if item is None:
            raise NotFound(code="item_not_found", message="Item de produção não encontrado", context={"item_id": item_id})
        if item.order.status not in PRODUCTION_ORDER_STATUSES:
            raise StateConflict(
                code="invalid_status",
                message=f"Pedido #{item.order.number} não está em produção (status: {item.order.status})",
                context={"current_status": item.order.status},
            )
        return item

    @staticmethod
    def assign(ctx: AuthContext, item_id: int, collaborator_id: int) -> OrderItem:
        """
        Define o colaborador responsável pelo item.

        Raises:
            PermissionDenied: Apenas líderes (admin, operacao)
            NotFound: Item ou colaborador inexistente no estabelecimento
            StateConflict: Pedido fora de produção
        """
        ctx.require_role(LEADER_ROLES, "definir colaborador")

        is_member = (
            Membership.objects.filter(
                user_id=collaborator_id,
                establishment_id=ctx.establishment_id,
                is_active=True,
            )
            .exclude(role=Role.CLIENTE)
            .exists()
        )
        if not is_member:
            raise NotFound(
                code="collaborator_not_found",
                message="Colaborador não encontrado no estabelecimento",
                context={"collaborator_id": collaborator_id},
            )

        with transaction.atomic():
            item = ProductionService._locked_item(ctx, item_id)
            item.production_assigned_to_id = collaborator_id
            item.save(update_fields=["production_assigned_to"])

        logger.info("Production item %s assigned to user %s", item.pk, collaborator_id)
        return item

    @staticmethod
    def advance(ctx: AuthContext, item_id: int) -> ProductionStep:
        """
        Avança o item um passo.

        - pending → in_progress: líderes; exige colaborador definido
        - in_progress → done: líderes ou produção; grava produtividade (best-effort)
        - done / no_production_needed: nada a fazer

        Raises:
            PermissionDenied: Papel não autorizado para o passo
            NotFound: Item inexistente no estabelecimento
            StateConflict: Sem colaborador (collaborator_required) ou pedido fora de produção
        """
        PS = OrderItem.ProductionStatus
        productivity = None

        with transaction.atomic():
            item = ProductionService._locked_item(ctx, item_id)
            now = timezone.now()

            if item.production_status == PS.PENDING:
                ctx.require_role(LEADER_ROLES, "iniciar a produção")
                if not item.production_assigned_to_id:
                    raise StateConflict(
                        code="collaborator_required",
                        message="Defina um colaborador antes de avançar o status",
                        context={"item_id": item.pk},
                    )
                item.production_status = PS.IN_PROGRESS
                item.production_start_at = now
                item.production_end_at = None
                item.save(update_fields=["production_status", "production_start_at", "production_end_at"])

            elif item.production_status == PS.IN_PROGRESS:
                ctx.require_role(FINISH_ROLES, "finalizar a produção")
                item.production_status = PS.DONE
                item.production_end_at = now
                item.save(update_fields=["production_status", "production_end_at"])
                productivity = attempt(
                    "productivity_record",
                    lambda: ProductionService._record_productivity(item),
                    (DatabaseError,),
                ).log_if_failed(logger)

            else:
                return ProductionStep(item=item, changed=False)

        logger.info("Production item %s -> %s", item.pk, item.production_status)
        return ProductionStep(item=item, changed=True, productivity=productivity)

    @staticmethod
    def _record_productivity(item: OrderItem) -> ProductionRecord:
        minutes = None
        if item.production_start_at is not None:
            minutes = max(0, round((item.production_end_at - item.production_start_at).total_seconds() / 60))
        # Savepoint próprio: falha aqui não derruba a transição
        with transaction.atomic():
            return ProductionRecord.objects.create(
                order_item=item,
                product_id=item.product_id,
                collaborator_id=item.production_assigned_to_id,
                qty=item.order_qty,
                unit_label=item.unit_label,
                start_at=item.production_start_at,
                end_at=item.production_end_at,
                duration_minutes=minutes,
            )

    @staticmethod
    def pending_items(order: Order):
        """Itens que ainda não estão done/no_production_needed (sempre relido do banco)."""
        return OrderItem.objects.filter(order_id=order.pk).exclude(production_status__in=OrderItem.FINISHED_STATUSES)

    @staticmethod
    def board(ctx: AuthContext):
        """Itens dos pedidos em produção, por número do pedido."""
        return (
            OrderItem.objects.select_related("order", "production_assigned_to")
            .filter(
                order__establishment_id=ctx.establishment_id,
                order__status__in=PRODUCTION_ORDER_STATUSES,
            )
            .order_by("order__number", "id")
        )
