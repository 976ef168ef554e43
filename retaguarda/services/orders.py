"""
OrderService — Ciclo de vida do pedido.

Toda mudança de status:
1. trava a linha do pedido (select_for_update)
2. revalida papel × status atual × status alvo no TransitionAuthority
3. reconfere as travas de negócio (produção concluída, separação feita)
4. grava o novo status e exatamente um evento na timeline
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from retaguarda.auth import AuthContext
from retaguarda.exceptions import InvalidTransition, NotFound, StateConflict, ValidationError
from retaguarda.models import Order, OrderItem, OrderLineItem, OrderSequence, OrderStatusEvent, Product
from retaguarda.normalize import clean_name, normalize_name, normalize_unit, to_qty
from retaguarda.protocols import BalanceProvider
from retaguarda.services.production import ProductionService
from retaguarda.services.stock import LedgerBalanceProvider
from retaguarda.services.transitions import TransitionAuthority


logger = logging.getLogger(__name__)


def _coerce_line(raw) -> tuple[str, object, str]:
    if isinstance(raw, Mapping):
        return raw.get("product_name", ""), raw.get("qty"), raw.get("unit_label", "")
    if isinstance(raw, OrderLineItem):
        return raw.product_name, raw.qty, raw.unit_label
    product_name, qty, unit = raw
    return product_name, qty, unit


def consolidate_lines(lines: Iterable) -> list[dict]:
    """
    Valida e soma linhas do mesmo produto + unidade.

    Raises:
        ValidationError: missing_product, invalid_qty ou missing_unit, com o
            índice da linha no context
    """
    merged: dict[tuple[str, str], dict] = {}
    for index, raw in enumerate(lines):
        product_name, qty, unit = _coerce_line(raw)
        name = clean_name(product_name)
        if not name:
            raise ValidationError(
                code="missing_product",
                message=f"Linha {index + 1}: produto é obrigatório",
                context={"line": index},
            )
        unit = normalize_unit(unit)
        if not unit:
            raise ValidationError(
                code="missing_unit",
                message=f"Linha {index + 1}: unidade é obrigatória",
                context={"line": index},
            )
        try:
            qty = to_qty(qty)
        except ValidationError as exc:
            exc.context["line"] = index
            exc.message = f"Linha {index + 1}: {exc.message}"
            raise

        key = (normalize_name(name), unit)
        if key in merged:
            merged[key]["qty"] += qty
        else:
            merged[key] = {"product_name": name, "qty": qty, "unit_label": unit}
    return list(merged.values())


class OrderService:
    """
    Serviço de pedidos.

    Métodos:
    - create_order: cria pedido em pedido_criado
    - accept: pedido_criado → aceitou_pedido (gera itens de produção)
    - advance: avanço monotônico revalidado no servidor
    - cancel: cancelamento com motivo
    - reopen: cancelado → aceitou_pedido
    - get_order / list_orders / timeline: leitura
    """

    @staticmethod
    def create_order(ctx: AuthContext, lines: Iterable, notes: str = "") -> Order:
        """
        Cria um pedido com as linhas informadas (consolidadas).

        Raises:
            ValidationError: Sem linhas (empty_order) ou linha inválida
        """
        consolidated = consolidate_lines(lines or [])
        if not consolidated:
            raise ValidationError(code="empty_order", message="Pedido precisa de ao menos um item")

        with transaction.atomic():
            order = Order.objects.create(
                establishment_id=ctx.establishment_id,
                number=OrderSequence.next_value(ctx.establishment_id),
                status=Order.Status.PEDIDO_CRIADO,
                notes=(notes or "").strip(),
                created_by_id=ctx.user_id,
            )
            OrderLineItem.objects.bulk_create(
                [OrderLineItem(order=order, **line) for line in consolidated]
            )

        logger.info("Order #%s created with %d lines", order.number, len(consolidated))
        return order

    @staticmethod
    def _locked_order(ctx: AuthContext, order_id: int) -> Order:
        order = (
            Order.objects.select_for_update()
            .filter(pk=order_id, establishment_id=ctx.establishment_id)
            .first()
        )
        if order is None:
            raise NotFound(code="order_not_found", message="Pedido não encontrado", context={"order_id": order_id})
        return order

    @staticmethod
    def _set_status(ctx: AuthContext, order: Order, to_status: str, note: str = "", client_label: str | None = None,
                    update_fields: list[str] | None = None) -> OrderStatusEvent:
        from_status = order.status
        order.status = to_status
        order.save(update_fields=["status", "updated_at", *(update_fields or [])])
        label = TransitionAuthority.client_label(to_status) if client_label is None else client_label
        event = order.emit_event(
            from_status=from_status,
            to_status=to_status,
            actor_id=ctx.user_id,
            note=note,
            client_label=label,
            visible_to_client=bool(label),
        )
        logger.info("Order #%s: %s -> %s by user %s", order.number, from_status, to_status, ctx.user_id)
        return event

    @staticmethod
    def accept(ctx: AuthContext, order_id: int, balances: BalanceProvider | None = None, note: str = "") -> Order:
        """
        Aceita o pedido e calcula a necessidade de produção.

        Para cada produto + unidade consolidado:
        - saldo >= pedido: no_production_needed, missing_qty = 0
        - saldo < pedido: pending, missing_qty = pedido - saldo

        Args:
            balances: Fonte de saldo; default é o ledger local

        Raises:
            NotFound: Pedido inexistente no estabelecimento
            InvalidTransition: Pedido fora de pedido_criado
            PermissionDenied: Papel fora de admin/operacao/producao
        """
        balances = balances or LedgerBalanceProvider()
        PS = OrderItem.ProductionStatus

        with transaction.atomic():
            order = OrderService._locked_order(ctx, order_id)
            if order.status != Order.Status.PEDIDO_CRIADO:
                raise InvalidTransition(
                    code="terminal_status" if order.status in Order.TERMINAL_STATUSES else "invalid_transition",
                    message=f"Apenas pedidos em pedido_criado podem ser aceitos (atual: {order.status})",
                    context={"current_status": order.status, "requested_status": Order.Status.ACEITOU_PEDIDO},
                )
            TransitionAuthority.check(order.status, Order.Status.ACEITOU_PEDIDO, ctx.role)

            lines = consolidate_lines(order.line_items.all())
            products = Product.objects.for_establishment(ctx.establishment_id)

            items = []
            for line in lines:
                product = products.resolve_name(line["product_name"])
                on_hand = Decimal("0")
                if product is not None:
                    balance = Decimal(str(balances.get_balance(ctx.establishment_id, product.pk, line["unit_label"])))
                    # Saldo negativo não cobre nada
                    on_hand = max(Decimal("0"), balance)
                missing = max(Decimal("0"), line["qty"] - on_hand)
                items.append(
                    OrderItem(
                        order=order,
                        product=product,
                        product_name=product.name if product else line["product_name"],
                        unit_label=line["unit_label"],
                        order_qty=line["qty"],
                        on_hand_qty=on_hand,
                        missing_qty=missing,
                        production_status=PS.PENDING if missing > 0 else PS.NO_PRODUCTION_NEEDED,
                    )
                )

            order.items.all().delete()
            OrderItem.objects.bulk_create(items)

            order.accepted_by_id = ctx.user_id
            order.accepted_at = timezone.now()
            OrderService._set_status(
                ctx,
                order,
                Order.Status.ACEITOU_PEDIDO,
                note=note,
                update_fields=["accepted_by", "accepted_at"],
            )

        return order

    @staticmethod
    def advance(ctx: AuthContext, order_id: int, to_status: str | None = None, note: str = "") -> Order:
        """
        Avança o pedido para o próximo status da adjacência.

        to_status é só a proposta do cliente; o alvo real é recalculado aqui.

        Raises:
            NotFound: Pedido inexistente no estabelecimento
            InvalidTransition: Sem próximo status ou proposta fora da adjacência
            PermissionDenied: Papel não autorizado para o passo
            StateConflict: Itens de produção pendentes (production_pending) ou
                separação sem etiquetas (separation_empty)
        """
        with transaction.atomic():
            order = OrderService._locked_order(ctx, order_id)
            target = TransitionAuthority.advance_target(order.status, to_status)
            TransitionAuthority.check(order.status, target, ctx.role)

            if order.status == Order.Status.EM_PREPARO:
                pending = list(ProductionService.pending_items(order).values_list("product_name", flat=True))
                if pending:
                    raise StateConflict(
                        code="production_pending",
                        message="Ainda existem itens deste pedido em produção. Finalize todos antes de avançar.",
                        context={"pending_items": pending},
                    )

            if order.status == Order.Status.EM_SEPARACAO and not order.label_links.exists():
                raise StateConflict(
                    code="separation_empty",
                    message="Nenhuma etiqueta foi separada para este pedido",
                    context={"order_id": order.pk},
                )

            OrderService._set_status(ctx, order, target, note=(note or "").strip())

        return order

    @staticmethod
    def cancel(ctx: AuthContext, order_id: int, reason: str) -> Order:
        """
        Cancela o pedido. Etiquetas já separadas não são estornadas.

        Raises:
            ValidationError: Motivo vazio (missing_reason)
            NotFound: Pedido inexistente no estabelecimento
            InvalidTransition: Pedido já cancelado
            PermissionDenied: Papel não pode cancelar no status atual
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError(code="missing_reason", message="Informe o motivo do cancelamento")

        with transaction.atomic():
            order = OrderService._locked_order(ctx, order_id)
            TransitionAuthority.check(order.status, Order.Status.CANCELADO, ctx.role)

            order.canceled_by_id = ctx.user_id
            order.canceled_at = timezone.now()
            order.cancel_reason = reason
            OrderService._set_status(
                ctx,
                order,
                Order.Status.CANCELADO,
                note=f"Cancelado: {reason}",
                update_fields=["canceled_by", "canceled_at", "cancel_reason"],
            )

        return order

    @staticmethod
    def reopen(ctx: AuthContext, order_id: int, note: str = "") -> Order:
        """
        Reabre um pedido cancelado (cancelado → aceitou_pedido).

        Quem pode reabrir vem de RETAGUARDA["REOPEN_ROLES"].

        Raises:
            NotFound: Pedido inexistente no estabelecimento
            InvalidTransition: Pedido não está cancelado
            PermissionDenied: Papel fora de REOPEN_ROLES
        """
        note = (note or "").strip()
        with transaction.atomic():
            order = OrderService._locked_order(ctx, order_id)
            if order.status != Order.Status.CANCELADO:
                raise InvalidTransition(
                    code="invalid_transition",
                    message=f"Apenas pedidos cancelados podem ser reabertos (atual: {order.status})",
                    context={"current_status": order.status, "requested_status": Order.Status.ACEITOU_PEDIDO},
                )
            TransitionAuthority.check(order.status, Order.Status.ACEITOU_PEDIDO, ctx.role)

            order.reopened_by_id = ctx.user_id
            order.reopened_at = timezone.now()
            OrderService._set_status(
                ctx,
                order,
                Order.Status.ACEITOU_PEDIDO,
                note=f"Reaberto: {note}" if note else "Reaberto",
                client_label="Pedido reaberto",
                update_fields=["reopened_by", "reopened_at"],
            )

        return order

    @staticmethod
    def get_order(ctx: AuthContext, order_id: int) -> Order:
        order = (
            Order.objects.filter(pk=order_id, establishment_id=ctx.establishment_id)
            .prefetch_related("line_items", "items", "label_links__label")
            .first()
        )
        if order is None:
            raise NotFound(code="order_not_found", message="Pedido não encontrado", context={"order_id": order_id})
        return order

    @staticmethod
    def list_orders(ctx: AuthContext, status: str | Iterable[str] | None = None):
        qs = Order.objects.filter(establishment_id=ctx.establishment_id)
        if isinstance(status, str):
            qs = qs.filter(status=status)
        elif status:
            qs = qs.filter(status__in=list(status))
        return qs.order_by("-created_at", "-id")

    @staticmethod
    def timeline(ctx: AuthContext, order_id: int, visible_only: bool = False) -> list[OrderStatusEvent]:
        """
        Eventos do pedido em ordem cronológica.

        Eventos idênticos (de/para/observação/rótulo) no mesmo segundo são
        exibidos uma única vez (envio duplo).
        """
        if not Order.objects.filter(pk=order_id, establishment_id=ctx.establishment_id).exists():
            raise NotFound(code="order_not_found", message="Pedido não encontrado", context={"order_id": order_id})

        qs = OrderStatusEvent.objects.filter(order_id=order_id).order_by("created_at", "id")
        if visible_only:
            qs = qs.filter(visible_to_client=True)

        seen = set()
        events = []
        for event in qs:
            key = (
                event.from_status,
                event.to_status,
                event.note,
                event.client_label,
                event.created_at.replace(microsecond=0),
            )
            if key in seen:
                continue
            seen.add(key)
            events.append(event)
        return events
