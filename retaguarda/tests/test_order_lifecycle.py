"""
Ciclo de vida do pedido: criação, aceite com cálculo de produção, avanço,
cancelamento, reabertura e timeline.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch

from django.db import DatabaseError
from django.test import override_settings

from retaguarda.exceptions import InvalidTransition, NotFound, PermissionDenied, StateConflict, ValidationError
from retaguarda.models import Establishment, InventoryLabel, Order, OrderItem, OrderStatusEvent, Role
from retaguarda.services import LabelService, OrderService, TransitionAuthority

from .base import RetaguardaTestCase


S = Order.Status
PS = OrderItem.ProductionStatus


class OrderCreationTests(RetaguardaTestCase):
    def test_lines_are_consolidated(self) -> None:
        order = OrderService.create_order(
            self.ctx(Role.CLIENTE),
            [
                {"product_name": "Farinha", "qty": "2", "unit_label": "kg"},
                {"product_name": "  farinha ", "qty": "3", "unit_label": "KG"},
                ("Açúcar", 1, "un"),
            ],
            notes=" entregar cedo ",
        )

        self.assertEqual(order.status, S.PEDIDO_CRIADO)
        self.assertEqual(order.notes, "entregar cedo")
        lines = {(li.product_name, li.unit_label): li.qty for li in order.line_items.all()}
        self.assertEqual(lines, {("Farinha", "KG"): Decimal("5"), ("Açúcar", "UN"): Decimal("1")})
        # Criação direta não gera evento
        self.assertFalse(order.events.exists())

    def test_numbers_are_sequential_per_establishment(self) -> None:
        first = OrderService.create_order(self.ctx(), [("Farinha", 1, "KG")])
        second = OrderService.create_order(self.ctx(), [("Farinha", 1, "KG")])
        other = Establishment.objects.create(name="Filial", code="FI")
        third = OrderService.create_order(self.ctx(Role.ADMIN, other), [("Farinha", 1, "KG")])

        self.assertEqual((first.number, second.number, third.number), (1, 2, 1))

    def test_empty_order(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            OrderService.create_order(self.ctx(), [])
        self.assertEqual(ctx.exception.code, "empty_order")

    def test_invalid_line_reports_index(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            OrderService.create_order(self.ctx(), [("Farinha", 1, "KG"), ("Sal", -2, "KG")])
        self.assertEqual(ctx.exception.code, "invalid_qty")
        self.assertEqual(ctx.exception.context["line"], 1)
        self.assertFalse(Order.objects.exists())

    def test_missing_unit(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            OrderService.create_order(self.ctx(), [("Farinha", 1, "")])
        self.assertEqual(ctx.exception.code, "missing_unit")


class OrderAcceptTests(RetaguardaTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.a = self.product("A")
        self.b = self.product("B")

    def test_acceptance_computes_production_need(self) -> None:
        """Pedido {A: 10, B: 2} com saldo {A: 4, B: 5}."""
        self.stock_in(self.a, 4)
        self.stock_in(self.b, 5)
        order = OrderService.create_order(self.ctx(), [("A", 10, "KG"), ("B", 2, "KG")])

        OrderService.accept(self.ctx(Role.OPERACAO), order.pk)

        order.refresh_from_db()
        self.assertEqual(order.status, S.ACEITOU_PEDIDO)
        self.assertIsNotNone(order.accepted_at)
        items = {i.product_name: i for i in order.items.all()}
        self.assertEqual(len(items), 2)
        self.assertEqual(items["A"].production_status, PS.PENDING)
        self.assertEqual(items["A"].missing_qty, Decimal("6"))
        self.assertEqual(items["A"].on_hand_qty, Decimal("4"))
        self.assertEqual(items["B"].production_status, PS.NO_PRODUCTION_NEEDED)
        self.assertEqual(items["B"].missing_qty, Decimal("0"))
        self.assertEqual(order.events.count(), 1)

    def test_negative_balance_counts_as_zero(self) -> None:
        from retaguarda.services import StockService

        StockService.register_loss(self.ctx(), self.a.pk, 2, "KG", "Vencido", allow_negative=True)
        order = OrderService.create_order(self.ctx(), [("A", 3, "KG")])
        OrderService.accept(self.ctx(), order.pk)

        item = order.items.get()
        self.assertEqual(item.on_hand_qty, Decimal("0"))
        self.assertEqual(item.missing_qty, Decimal("3"))

    def test_unknown_product_needs_production(self) -> None:
        order = OrderService.create_order(self.ctx(), [("Novo Item", 1, "UN")])
        OrderService.accept(self.ctx(), order.pk)

        item = order.items.get()
        self.assertIsNone(item.product)
        self.assertEqual(item.production_status, PS.PENDING)

    def test_custom_balance_provider(self) -> None:
        class FixedBalances:
            def get_balance(self, establishment_id, product_id, unit_label):
                return Decimal("100")

        order = OrderService.create_order(self.ctx(), [("A", 10, "KG")])
        OrderService.accept(self.ctx(), order.pk, balances=FixedBalances())
        self.assertEqual(order.items.get().production_status, PS.NO_PRODUCTION_NEEDED)

    def test_accept_roles(self) -> None:
        order = OrderService.create_order(self.ctx(), [("A", 1, "KG")])
        for role in (Role.ESTOQUE, Role.FISCAL, Role.ENTREGA, Role.CLIENTE):
            with self.subTest(role=role):
                with self.assertRaises(PermissionDenied):
                    OrderService.accept(self.ctx(role), order.pk)
        order.refresh_from_db()
        self.assertEqual(order.status, S.PEDIDO_CRIADO)
        self.assertFalse(order.items.exists())

    def test_accept_twice_fails(self) -> None:
        order = OrderService.create_order(self.ctx(), [("A", 1, "KG")])
        OrderService.accept(self.ctx(), order.pk)
        with self.assertRaises(InvalidTransition):
            OrderService.accept(self.ctx(), order.pk)

    def test_failed_item_creation_keeps_previous_state(self) -> None:
        """Falha ao gravar os itens desfaz a troca de itens e o status."""
        self.stock_in(self.a, 4)
        order = OrderService.create_order(self.ctx(), [("A", 10, "KG")])
        stale = OrderItem.objects.create(order=order, product_name="A", unit_label="KG", order_qty=Decimal("1"))

        with patch.object(OrderItem.objects, "bulk_create", side_effect=DatabaseError("deadlock")):
            with self.assertRaises(DatabaseError):
                OrderService.accept(self.ctx(), order.pk)

        order.refresh_from_db()
        self.assertEqual(order.status, S.PEDIDO_CRIADO)
        self.assertIsNone(order.accepted_at)
        self.assertEqual(list(order.items.values_list("pk", flat=True)), [stale.pk])
        self.assertFalse(order.events.exists())

        OrderService.accept(self.ctx(), order.pk)
        item = order.items.get()
        self.assertNotEqual(item.pk, stale.pk)
        self.assertEqual(item.missing_qty, Decimal("6"))

    def test_accept_other_establishment_is_not_found(self) -> None:
        order = OrderService.create_order(self.ctx(), [("A", 1, "KG")])
        other = Establishment.objects.create(name="Filial", code="FI")
        with self.assertRaises(NotFound):
            OrderService.accept(self.ctx(Role.ADMIN, other), order.pk)


class OrderFlowTests(RetaguardaTestCase):
    """Avanço monotônico com travas de produção e separação."""

    def setUp(self) -> None:
        super().setUp()
        self.flour = self.product("Farinha")
        self.admin = self.ctx()
        self.order = OrderService.create_order(self.admin, [("Farinha", 4, "KG")])
        OrderService.accept(self.admin, self.order.pk)

    def _finish_production(self) -> None:
        OrderItem.objects.filter(order=self.order).update(production_status=PS.DONE)

    def test_production_gate(self) -> None:
        OrderService.advance(self.ctx(Role.PRODUCAO), self.order.pk)
        with self.assertRaises(StateConflict) as ctx:
            OrderService.advance(self.ctx(Role.PRODUCAO), self.order.pk)
        self.assertEqual(ctx.exception.code, "production_pending")
        self.assertEqual(ctx.exception.context["pending_items"], ["Farinha"])

        self._finish_production()
        order = OrderService.advance(self.ctx(Role.PRODUCAO), self.order.pk)
        self.assertEqual(order.status, S.EM_SEPARACAO)

    def test_separation_gate(self) -> None:
        self._finish_production()
        OrderService.advance(self.admin, self.order.pk)
        OrderService.advance(self.admin, self.order.pk)

        with self.assertRaises(StateConflict) as ctx:
            OrderService.advance(self.ctx(Role.ESTOQUE), self.order.pk)
        self.assertEqual(ctx.exception.code, "separation_empty")

        LabelService.create_label(self.admin, self.flour.pk, 4, "KG", "CC-FA-010126-5D")
        LabelService.use_on_order(self.ctx(Role.ESTOQUE), self.order.pk, "CC-FA-010126-5D")
        order = OrderService.advance(self.ctx(Role.ESTOQUE), self.order.pk)
        self.assertEqual(order.status, S.EM_FATURAMENTO)

    def test_full_path_to_delivery(self) -> None:
        self._finish_production()
        OrderService.advance(self.admin, self.order.pk)
        OrderService.advance(self.admin, self.order.pk)
        LabelService.create_label(self.admin, self.flour.pk, 4, "KG", "CC-FA-010126-5D")
        LabelService.use_on_order(self.admin, self.order.pk, "CC-FA-010126-5D")
        OrderService.advance(self.ctx(Role.ESTOQUE), self.order.pk)
        OrderService.advance(self.ctx(Role.FISCAL), self.order.pk)
        order = OrderService.advance(self.ctx(Role.ENTREGA), self.order.pk)

        self.assertEqual(order.status, S.ENTREGUE)
        with self.assertRaises(InvalidTransition) as ctx:
            OrderService.advance(self.admin, self.order.pk)
        self.assertEqual(ctx.exception.code, "terminal_status")

        events = OrderService.timeline(self.admin, self.order.pk)
        self.assertEqual(
            [e.to_status for e in events],
            [S.ACEITOU_PEDIDO, S.EM_PREPARO, S.EM_SEPARACAO, S.EM_FATURAMENTO, S.EM_TRANSPORTE, S.ENTREGUE],
        )
        self.assertEqual(TransitionAuthority.illegal_steps(events), [])

    def test_skip_is_rejected(self) -> None:
        with self.assertRaises(InvalidTransition) as ctx:
            OrderService.advance(self.admin, self.order.pk, to_status=S.EM_SEPARACAO)
        self.assertEqual(ctx.exception.code, "invalid_transition")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, S.ACEITOU_PEDIDO)

    def test_matching_proposal_is_accepted(self) -> None:
        order = OrderService.advance(self.admin, self.order.pk, to_status=S.EM_PREPARO, note=" ok ")
        self.assertEqual(order.status, S.EM_PREPARO)
        self.assertEqual(order.events.order_by("-id").first().note, "ok")

    def test_wrong_role_cannot_advance(self) -> None:
        with self.assertRaises(PermissionDenied) as ctx:
            OrderService.advance(self.ctx(Role.ENTREGA), self.order.pk)
        self.assertEqual(ctx.exception.code, "forbidden_role")


class OrderCancelReopenTests(RetaguardaTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.flour = self.product("Farinha")
        self.order = OrderService.create_order(self.ctx(), [("Farinha", 1, "KG")])

    def _move_to(self, status: str) -> None:
        # Atalho de teste: grava o status passando pela guarda do model
        order = Order.objects.get(pk=self.order.pk)
        path = [S.ACEITOU_PEDIDO, S.EM_PREPARO, S.EM_SEPARACAO, S.EM_FATURAMENTO, S.EM_TRANSPORTE, S.ENTREGUE]
        for step in path:
            order.status = step
            order.save(update_fields=["status"])
            if step == status:
                return

    def test_cancel_requires_reason(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            OrderService.cancel(self.ctx(), self.order.pk, "  ")
        self.assertEqual(ctx.exception.code, "missing_reason")

    def test_cancel_records_reason_and_event(self) -> None:
        order = OrderService.cancel(self.ctx(Role.OPERACAO), self.order.pk, "cliente desistiu")

        self.assertEqual(order.status, S.CANCELADO)
        self.assertEqual(order.cancel_reason, "cliente desistiu")
        self.assertIsNotNone(order.canceled_at)
        event = order.events.get()
        self.assertEqual(event.note, "Cancelado: cliente desistiu")
        self.assertTrue(event.visible_to_client)

    def test_in_transport_only_admin_can_cancel(self) -> None:
        self._move_to(S.EM_TRANSPORTE)
        for role in (Role.OPERACAO, Role.PRODUCAO, Role.ESTOQUE, Role.FISCAL, Role.ENTREGA, Role.CLIENTE):
            with self.subTest(role=role):
                with self.assertRaises(PermissionDenied):
                    OrderService.cancel(self.ctx(role), self.order.pk, "motivo")

        order = OrderService.cancel(self.ctx(Role.ADMIN), self.order.pk, "motivo")
        self.assertEqual(order.status, S.CANCELADO)

    def test_staff_can_cancel_in_billing(self) -> None:
        self._move_to(S.EM_FATURAMENTO)
        order = OrderService.cancel(self.ctx(Role.FISCAL), self.order.pk, "nota recusada")
        self.assertEqual(order.status, S.CANCELADO)

    def test_admin_can_cancel_after_delivery(self) -> None:
        self._move_to(S.ENTREGUE)
        with self.assertRaises(PermissionDenied):
            OrderService.cancel(self.ctx(Role.OPERACAO), self.order.pk, "devolução")
        order = OrderService.cancel(self.ctx(Role.ADMIN), self.order.pk, "devolução")
        self.assertEqual(order.status, S.CANCELADO)

    def test_cancel_twice_is_terminal(self) -> None:
        OrderService.cancel(self.ctx(), self.order.pk, "x")
        with self.assertRaises(InvalidTransition) as ctx:
            OrderService.cancel(self.ctx(), self.order.pk, "y")
        self.assertEqual(ctx.exception.code, "terminal_status")

    def test_cancel_does_not_reverse_labels(self) -> None:
        self._move_to(S.EM_SEPARACAO)
        label = LabelService.create_label(self.ctx(), self.flour.pk, 1, "KG", "CC-FA-010126-5D")
        LabelService.use_on_order(self.ctx(), self.order.pk, "CC-FA-010126-5D")

        OrderService.cancel(self.ctx(), self.order.pk, "x")

        label.refresh_from_db()
        self.assertEqual(label.status, InventoryLabel.Status.CONSUMED)
        self.assertEqual(self.balance(self.flour), Decimal("0"))

    def test_reopen_is_admin_only_by_default(self) -> None:
        OrderService.cancel(self.ctx(), self.order.pk, "x")
        with self.assertRaises(PermissionDenied):
            OrderService.reopen(self.ctx(Role.OPERACAO), self.order.pk)

        order = OrderService.reopen(self.ctx(Role.ADMIN), self.order.pk, note="cliente voltou")
        self.assertEqual(order.status, S.ACEITOU_PEDIDO)
        self.assertIsNotNone(order.reopened_at)
        event = order.events.order_by("-id").first()
        self.assertEqual(event.note, "Reaberto: cliente voltou")
        self.assertEqual(event.client_label, "Pedido reaberto")

    @override_settings(RETAGUARDA={"REOPEN_ROLES": ["admin", "operacao"]})
    def test_reopen_roles_are_configurable(self) -> None:
        OrderService.cancel(self.ctx(), self.order.pk, "x")
        order = OrderService.reopen(self.ctx(Role.OPERACAO), self.order.pk)
        self.assertEqual(order.status, S.ACEITOU_PEDIDO)
        self.assertEqual(order.events.order_by("-id").first().note, "Reaberto")

    def test_reopen_requires_canceled(self) -> None:
        with self.assertRaises(InvalidTransition):
            OrderService.reopen(self.ctx(), self.order.pk)


class OrderTimelineTests(RetaguardaTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.order = OrderService.create_order(self.ctx(), [("Farinha", 1, "KG")])

    def test_duplicate_events_are_suppressed_on_read(self) -> None:
        OrderService.accept(self.ctx(), self.order.pk)
        event = self.order.events.get()
        # Envio duplo: mesmo conteúdo, mesmo segundo
        OrderStatusEvent.objects.filter(pk=event.pk).update(created_at=event.created_at.replace(microsecond=100))
        clone = OrderStatusEvent.objects.create(
            order=self.order,
            from_status=event.from_status,
            to_status=event.to_status,
            note=event.note,
            client_label=event.client_label,
            visible_to_client=event.visible_to_client,
        )
        OrderStatusEvent.objects.filter(pk=clone.pk).update(created_at=event.created_at.replace(microsecond=900))

        self.assertEqual(self.order.events.count(), 2)
        self.assertEqual(len(OrderService.timeline(self.ctx(), self.order.pk)), 1)

    def test_visible_only(self) -> None:
        OrderService.accept(self.ctx(), self.order.pk)
        self.order.emit_event(S.ACEITOU_PEDIDO, S.ACEITOU_PEDIDO, note="interno")

        self.assertEqual(len(OrderService.timeline(self.ctx(), self.order.pk)), 2)
        visible = OrderService.timeline(self.ctx(), self.order.pk, visible_only=True)
        self.assertEqual([e.client_label for e in visible], ["Pedido aceito"])

    def test_model_guard_blocks_illegal_save(self) -> None:
        order = Order.objects.get(pk=self.order.pk)
        order.status = S.ENTREGUE
        with self.assertRaises(InvalidTransition):
            order.save()
