"""
Matriz papel × transição e auditoria de caminho da timeline.
"""

from __future__ import annotations

from types import SimpleNamespace

from django.test import SimpleTestCase, override_settings

from retaguarda.exceptions import InvalidTransition, PermissionDenied
from retaguarda.models import Order, Role
from retaguarda.services import TransitionAuthority


S = Order.Status


def ev(from_status, to_status):
    return SimpleNamespace(from_status=from_status, to_status=to_status)


class AdjacencyTests(SimpleTestCase):
    def test_canonical_edges(self) -> None:
        self.assertTrue(TransitionAuthority.is_legal(S.PEDIDO_CRIADO, S.ACEITOU_PEDIDO))
        self.assertTrue(TransitionAuthority.is_legal(S.EM_TRANSPORTE, S.ENTREGUE))
        self.assertTrue(TransitionAuthority.is_legal(S.ENTREGUE, S.CANCELADO))
        self.assertTrue(TransitionAuthority.is_legal(S.CANCELADO, S.ACEITOU_PEDIDO))
        self.assertTrue(TransitionAuthority.is_legal(S.REABERTO, S.EM_PREPARO))
        self.assertTrue(TransitionAuthority.is_legal(None, S.PEDIDO_CRIADO))

    def test_skips_and_backwards_are_illegal(self) -> None:
        self.assertFalse(TransitionAuthority.is_legal(S.PEDIDO_CRIADO, S.EM_PREPARO))
        self.assertFalse(TransitionAuthority.is_legal(S.EM_SEPARACAO, S.EM_PREPARO))
        self.assertFalse(TransitionAuthority.is_legal(S.CANCELADO, S.CANCELADO))
        self.assertFalse(TransitionAuthority.is_legal(None, S.ACEITOU_PEDIDO))

    def test_advance_target(self) -> None:
        self.assertEqual(TransitionAuthority.advance_target(S.ACEITOU_PEDIDO), S.EM_PREPARO)
        self.assertEqual(TransitionAuthority.advance_target(S.REABERTO, S.EM_PREPARO), S.EM_PREPARO)
        with self.assertRaises(InvalidTransition):
            TransitionAuthority.advance_target(S.ACEITOU_PEDIDO, S.ENTREGUE)
        with self.assertRaises(InvalidTransition) as ctx:
            TransitionAuthority.advance_target(S.CANCELADO)
        self.assertEqual(ctx.exception.code, "terminal_status")
        # pedido_criado sai por aceite, não por avanço
        with self.assertRaises(InvalidTransition) as ctx:
            TransitionAuthority.advance_target(S.PEDIDO_CRIADO)
        self.assertEqual(ctx.exception.code, "invalid_transition")


class RoleMatrixTests(SimpleTestCase):
    def assertAllowed(self, from_status, to_status, allowed) -> None:
        for role in Role.values:
            with self.subTest(from_status=from_status, to_status=to_status, role=role):
                if role in allowed:
                    TransitionAuthority.check(from_status, to_status, role)
                else:
                    with self.assertRaises(PermissionDenied):
                        TransitionAuthority.check(from_status, to_status, role)

    def test_accept(self) -> None:
        self.assertAllowed(S.PEDIDO_CRIADO, S.ACEITOU_PEDIDO, {"admin", "operacao", "producao"})

    def test_advance_steps(self) -> None:
        self.assertAllowed(S.ACEITOU_PEDIDO, S.EM_PREPARO, {"admin", "operacao", "producao"})
        self.assertAllowed(S.EM_PREPARO, S.EM_SEPARACAO, {"admin", "operacao", "producao"})
        self.assertAllowed(S.EM_SEPARACAO, S.EM_FATURAMENTO, {"admin", "operacao", "producao", "estoque"})
        self.assertAllowed(S.EM_FATURAMENTO, S.EM_TRANSPORTE, {"admin", "estoque", "fiscal"})
        self.assertAllowed(S.EM_TRANSPORTE, S.ENTREGUE, {"admin", "entrega", "fiscal"})

    def test_cancel(self) -> None:
        staff = {"admin", "operacao", "producao", "estoque", "fiscal"}
        for status in (S.PEDIDO_CRIADO, S.ACEITOU_PEDIDO, S.EM_PREPARO, S.EM_SEPARACAO, S.EM_FATURAMENTO):
            self.assertAllowed(status, S.CANCELADO, staff)
        self.assertAllowed(S.EM_TRANSPORTE, S.CANCELADO, {"admin"})
        self.assertAllowed(S.ENTREGUE, S.CANCELADO, {"admin"})

    def test_reopen_default_is_admin(self) -> None:
        self.assertAllowed(S.CANCELADO, S.ACEITOU_PEDIDO, {"admin"})

    @override_settings(RETAGUARDA={"REOPEN_ROLES": ["admin", "operacao", "producao"]})
    def test_reopen_configurable(self) -> None:
        self.assertAllowed(S.CANCELADO, S.ACEITOU_PEDIDO, {"admin", "operacao", "producao"})

    def test_illegal_edge_beats_role(self) -> None:
        with self.assertRaises(InvalidTransition) as ctx:
            TransitionAuthority.check(S.ACEITOU_PEDIDO, S.ENTREGUE, Role.ADMIN)
        self.assertEqual(ctx.exception.code, "invalid_transition")
        self.assertEqual(ctx.exception.context["allowed_transitions"], [S.EM_PREPARO, S.CANCELADO])

    def test_client_labels(self) -> None:
        self.assertEqual(TransitionAuthority.client_label(S.EM_TRANSPORTE), "Saiu para entrega")
        self.assertEqual(TransitionAuthority.client_label(S.REABERTO), "")


class TimelineAuditTests(SimpleTestCase):
    def test_canonical_path_is_legal(self) -> None:
        events = [
            ev(S.PEDIDO_CRIADO, S.ACEITOU_PEDIDO),
            ev(S.ACEITOU_PEDIDO, S.EM_PREPARO),
            ev(S.EM_PREPARO, S.CANCELADO),
            ev(S.CANCELADO, S.ACEITOU_PEDIDO),
            ev(S.ACEITOU_PEDIDO, S.EM_PREPARO),
        ]
        self.assertEqual(TransitionAuthority.illegal_steps(events), [])

    def test_creation_event_is_accepted(self) -> None:
        events = [ev(None, S.PEDIDO_CRIADO), ev(S.PEDIDO_CRIADO, S.ACEITOU_PEDIDO)]
        self.assertEqual(TransitionAuthority.illegal_steps(events), [])

    def test_skip_is_flagged(self) -> None:
        skip = ev(S.ACEITOU_PEDIDO, S.EM_SEPARACAO)
        events = [ev(S.PEDIDO_CRIADO, S.ACEITOU_PEDIDO), skip]
        self.assertEqual(TransitionAuthority.illegal_steps(events), [skip])

    def test_broken_chain_is_flagged(self) -> None:
        # Aresta legal, mas não parte do status deixado pelo evento anterior
        detached = ev(S.EM_SEPARACAO, S.EM_FATURAMENTO)
        events = [ev(S.PEDIDO_CRIADO, S.ACEITOU_PEDIDO), detached]
        self.assertEqual(TransitionAuthority.illegal_steps(events), [detached])
