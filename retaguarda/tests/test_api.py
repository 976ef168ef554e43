from __future__ import annotations

import json
from decimal import Decimal

from rest_framework.test import APIClient

from retaguarda.models import Establishment, InventoryLabel, Membership, Order, OrderItem, Role

from .base import RetaguardaTestCase


CODE = "CC-FA-010126-5D"


class ApiTestCase(RetaguardaTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.flour = self.product("Farinha")
        self.client = APIClient()
        self.as_role(Role.ADMIN)

    def as_role(self, role: str):
        user = self.member(role)
        self.client.force_authenticate(user=user)
        return user


class HealthApiTests(ApiTestCase):
    def test_health(self) -> None:
        from retaguarda import __version__

        resp = self.client.get("/api/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "healthy", "version": __version__})


class AuthApiTests(ApiTestCase):
    def test_anonymous_is_rejected(self) -> None:
        self.client.force_authenticate(user=None)
        resp = self.client.get("/api/orders")
        self.assertIn(resp.status_code, (401, 403))

    def test_user_without_membership(self) -> None:
        from django.contrib.auth import get_user_model

        loner = get_user_model().objects.create_user("loner", password="x")
        self.client.force_authenticate(user=loner)
        resp = self.client.get("/api/orders")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data["code"], "no_membership")

    def test_multiple_establishments_require_header(self) -> None:
        user = self.member(Role.ADMIN)
        other = Establishment.objects.create(name="Filial", code="FI")
        Membership.objects.create(user=user, establishment=other, role=Role.ESTOQUE)

        resp = self.client.get("/api/orders")
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.data["code"], "establishment_required")

        resp = self.client.get("/api/orders", HTTP_X_ESTABLISHMENT=str(other.pk))
        self.assertEqual(resp.status_code, 200)

        resp = self.client.get("/api/orders", HTTP_X_ESTABLISHMENT="abc")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], "invalid_establishment")


class OrderApiTests(ApiTestCase):
    def _create(self, lines=None) -> dict:
        lines = lines or [{"product_name": "Farinha", "qty": "4", "unit_label": "kg"}]
        resp = self.client.post("/api/orders", {"lines": lines, "notes": "balcão"}, format="json")
        self.assertEqual(resp.status_code, 201, resp.data)
        return resp.data

    def test_create_and_retrieve(self) -> None:
        data = self._create()
        self.assertEqual(data["status"], "pedido_criado")
        self.assertEqual(data["number"], 1)
        self.assertEqual(data["line_items"][0]["unit_label"], "KG")

        resp = self.client.get(f"/api/orders/{data['id']}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["notes"], "balcão")

    def test_create_empty_order(self) -> None:
        resp = self.client.post("/api/orders", {"lines": []}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], "empty_order")

    def test_list_filter_by_status(self) -> None:
        first = self._create()
        self._create()
        self.client.post(f"/api/orders/{first['id']}/accept", {}, format="json")

        resp = self.client.get("/api/orders", {"status": "aceitou_pedido"})
        self.assertEqual([o["id"] for o in resp.data], [first["id"]])

    def test_accept_and_advance(self) -> None:
        self.stock_in(self.flour, 10)
        order_id = self._create()["id"]

        resp = self.client.post(f"/api/orders/{order_id}/accept", {}, format="json")
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["status"], "aceitou_pedido")
        self.assertEqual(resp.data["items"][0]["production_status"], "no_production_needed")
        self.assertEqual(resp.data["next_status"], "em_preparo")

        resp = self.client.post(f"/api/orders/{order_id}/advance", {"to_status": "em_preparo"}, format="json")
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["status"], "em_preparo")

    def test_advance_skip_is_conflict(self) -> None:
        order_id = self._create()["id"]
        self.client.post(f"/api/orders/{order_id}/accept", {}, format="json")

        resp = self.client.post(f"/api/orders/{order_id}/advance", {"to_status": "entregue"}, format="json")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data["code"], "invalid_transition")

    def test_forbidden_role(self) -> None:
        order_id = self._create()["id"]
        self.as_role(Role.FISCAL)
        resp = self.client.post(f"/api/orders/{order_id}/accept", {}, format="json")
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.data["code"], "forbidden_role")

    def test_cancel_reopen_and_timeline(self) -> None:
        order_id = self._create()["id"]

        resp = self.client.post(f"/api/orders/{order_id}/cancel", {"reason": ""}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], "missing_reason")

        resp = self.client.post(f"/api/orders/{order_id}/cancel", {"reason": "duplicado"}, format="json")
        self.assertEqual(resp.data["status"], "cancelado")

        resp = self.client.post(f"/api/orders/{order_id}/reopen", {"note": "engano"}, format="json")
        self.assertEqual(resp.data["status"], "aceitou_pedido")

        resp = self.client.get(f"/api/orders/{order_id}/timeline")
        self.assertEqual([e["to_status"] for e in resp.data], ["cancelado", "aceitou_pedido"])

    def test_other_establishment_order_is_not_found(self) -> None:
        order_id = self._create()["id"]
        other = Establishment.objects.create(name="Filial", code="FI")
        self.client.force_authenticate(user=self.member(Role.ADMIN, other))

        resp = self.client.get(f"/api/orders/{order_id}")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data["code"], "order_not_found")

    def test_separation(self) -> None:
        order_id = self._create()["id"]
        self.client.post(f"/api/orders/{order_id}/accept", {}, format="json")
        OrderItem.objects.filter(order_id=order_id).update(production_status=OrderItem.ProductionStatus.DONE)
        self.client.post(f"/api/orders/{order_id}/advance", {}, format="json")
        self.client.post(f"/api/orders/{order_id}/advance", {}, format="json")
        self.client.post(
            "/api/labels",
            {"product_id": self.flour.pk, "qty": "10", "unit_label": "KG", "label_code": CODE},
            format="json",
        )

        self.as_role(Role.ESTOQUE)
        qr = json.dumps(json.dumps({"lt": CODE}))
        resp = self.client.post(f"/api/orders/{order_id}/separate", {"qr_text": qr, "qty": "7"}, format="json")
        self.assertEqual(resp.status_code, 201, resp.data)
        self.assertEqual(Decimal(resp.data["remaining_qty"]), Decimal("3"))
        self.assertFalse(resp.data["exhausted"])

        resp = self.client.post(f"/api/orders/{order_id}/separate", {"qr_text": qr, "qty": "5"}, format="json")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data["code"], "insufficient_balance")

        resp = self.client.post(f"/api/orders/{order_id}/separate", {"label_code": CODE}, format="json")
        self.assertEqual(resp.status_code, 201, resp.data)
        self.assertTrue(resp.data["exhausted"])
        self.assertEqual(resp.data["label"]["status"], "consumed")

        resp = self.client.post(f"/api/orders/{order_id}/advance", {}, format="json")
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(Order.objects.get(pk=order_id).status, "em_faturamento")


class LabelApiTests(ApiTestCase):
    def _create_label(self, **overrides):
        payload = {"product_name": "farinha", "qty": "10", "unit_label": "kg", "label_code": CODE}
        payload.update(overrides)
        return self.client.post("/api/labels", payload, format="json")

    def test_create_label_is_idempotent(self) -> None:
        first = self._create_label()
        self.assertEqual(first.status_code, 201, first.data)
        self.assertEqual(first.data["product_name"], "Farinha")
        self.assertEqual(json.loads(first.data["qr_payload"])["lt"], CODE)

        second = self._create_label()
        self.assertEqual(second.data["id"], first.data["id"])

        conflict = self._create_label(qty="3")
        self.assertEqual(conflict.status_code, 409)
        self.assertEqual(conflict.data["code"], "duplicate_label_code")

        balances = self.client.get("/api/stock/balances").data
        self.assertEqual(Decimal(balances[0]["current_stock"]), Decimal("10"))

    def test_preview(self) -> None:
        label_id = self._create_label().data["id"]
        resp = self.client.get("/api/labels/preview", {"code": json.dumps({"lt": CODE})})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["id"], label_id)

        resp = self.client.get("/api/labels/preview", {"code": "{}"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], "invalid_qr")

    def test_revalidate_and_reset(self) -> None:
        label_id = self._create_label(notes={"obs": "x"}).data["id"]

        resp = self.client.patch(f"/api/labels/{label_id}/revalidate", {"notes": None}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertIsNone(resp.data["notes"])

        resp = self.client.post(f"/api/labels/{label_id}/reset", {"note": "teste"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["status"], InventoryLabel.Status.AVAILABLE)

        self.as_role(Role.ESTOQUE)
        resp = self.client.post(f"/api/labels/{label_id}/reset", {}, format="json")
        self.assertEqual(resp.status_code, 403)

    def test_list_filters(self) -> None:
        self._create_label()
        resp = self.client.get("/api/labels", {"status": "available"})
        self.assertEqual(len(resp.data), 1)
        resp = self.client.get("/api/labels", {"status": "consumed"})
        self.assertEqual(resp.data, [])


class StockApiTests(ApiTestCase):
    def test_loss_and_movements(self) -> None:
        self.stock_in(self.flour, 5)

        resp = self.client.post(
            "/api/losses",
            {"product_id": self.flour.pk, "qty": "2", "unit_label": "KG", "reason": "Vencido"},
            format="json",
        )
        self.assertEqual(resp.status_code, 201, resp.data)
        self.assertEqual(resp.data["product_name"], "Farinha")

        resp = self.client.post(
            "/api/losses",
            {"product_id": self.flour.pk, "qty": "20", "unit_label": "KG", "reason": "Vencido"},
            format="json",
        )
        self.assertEqual(resp.status_code, 409)

        resp = self.client.get("/api/stock/movements", {"type": "perda"})
        self.assertEqual(len(resp.data), 1)
        self.assertEqual(resp.data[0]["direction"], "OUT")

        resp = self.client.get("/api/stock/balances", {"product": self.flour.pk})
        self.assertEqual(Decimal(resp.data[0]["current_stock"]), Decimal("3"))

    def test_non_numeric_filters_are_bad_request(self) -> None:
        for url, params in (
            ("/api/stock/balances", {"product": "abc"}),
            ("/api/stock/movements", {"product": "abc"}),
            ("/api/stock/movements", {"label": "x1"}),
            ("/api/stock/movements", {"order": "1.5"}),
            ("/api/labels", {"order": "abc"}),
            ("/api/labels", {"product": "abc"}),
        ):
            with self.subTest(url=url, params=params):
                resp = self.client.get(url, params)
                self.assertEqual(resp.status_code, 400)
                self.assertEqual(resp.data["code"], "invalid_filter")

    def test_inventory_count(self) -> None:
        self.stock_in(self.flour, 10)
        resp = self.client.post(
            "/api/inventory-counts",
            {
                "entries": [
                    {"product": "Farinha", "unit_label": "KG", "qty": "5"},
                    {"product": "farinha", "unit_label": "kg", "qty": "3"},
                    {"product": "Fantasma", "unit_label": "KG", "qty": "1"},
                ]
            },
            format="json",
        )
        self.assertEqual(resp.status_code, 201, resp.data)
        self.assertFalse(resp.data["ok"])
        self.assertTrue(resp.data["summary_ok"])
        statuses = {i["product_name"]: i["status"] for i in resp.data["items"]}
        self.assertEqual(statuses, {"Farinha": "ok", "Fantasma": "not_found"})
        self.assertEqual(self.balance(self.flour), Decimal("8"))

        resp = self.client.get(f"/api/inventory-counts/{resp.data['inventory_count']['id']}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["items_count"], 1)


class TransferApiTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.branch = Establishment.objects.create(name="Filial", code="FI")
        self.branch_flour = self.product("Farinha", establishment=self.branch)
        self.stock_in(self.flour, 5)
        Membership.objects.create(user=self.member(Role.ADMIN), establishment=self.branch, role=Role.ESTOQUE)
        self.origin_header = {"HTTP_X_ESTABLISHMENT": str(self.est.pk)}

    def _post(self, **overrides):
        payload = {"to_establishment_id": self.branch.pk, "product_id": self.flour.pk, "qty": "2", "unit_label": "KG"}
        payload.update(overrides)
        return self.client.post("/api/stock/transfers", payload, format="json", **self.origin_header)

    def test_create_list_and_detail(self) -> None:
        resp = self._post(reason="Reposição")
        self.assertEqual(resp.status_code, 201, resp.data)
        transfer_id = resp.data["transfer_id"]
        self.assertEqual(resp.data["outbound"]["direction"], "OUT")
        self.assertEqual(resp.data["inbound"]["product"], self.branch_flour.pk)
        self.assertEqual(self.balance(self.branch_flour), Decimal("2"))

        resp = self.client.get("/api/stock/transfers", {"direction": "out"}, **self.origin_header)
        self.assertEqual([r["transfer_id"] for r in resp.data], [transfer_id])

        resp = self.client.get(
            "/api/stock/transfers", {"direction": "IN"}, HTTP_X_ESTABLISHMENT=str(self.branch.pk)
        )
        self.assertEqual(len(resp.data), 1)
        self.assertEqual(resp.data[0]["product_name"], "Farinha")

        resp = self.client.get(f"/api/stock/transfers/{transfer_id}", **self.origin_header)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([r["direction"] for r in resp.data["rows"]], ["OUT", "IN"])

        resp = self.client.get(f"/api/stock/transfers/{'f' * 32}", **self.origin_header)
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data["code"], "transfer_not_found")

    def test_errors(self) -> None:
        resp = self._post(to_establishment_id=self.est.pk)
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], "same_establishment")

        resp = self._post(qty="50")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data["code"], "insufficient_balance")

        third = Establishment.objects.create(name="Terceira", code="TE")
        resp = self._post(to_establishment_id=third.pk)
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.data["code"], "no_destination_access")

        resp = self.client.get("/api/stock/transfers", {"direction": "x"}, **self.origin_header)
        self.assertEqual(resp.status_code, 400)


class ProductionApiTests(ApiTestCase):
    def test_assign_and_advance(self) -> None:
        resp = self.client.post(
            "/api/orders", {"lines": [{"product_name": "Farinha", "qty": "2", "unit_label": "KG"}]}, format="json"
        )
        order_id = resp.data["id"]
        self.client.post(f"/api/orders/{order_id}/accept", {}, format="json")
        item_id = OrderItem.objects.get(order_id=order_id).pk
        cook = self.member(Role.PRODUCAO)

        board = self.client.get("/api/production-items").data
        self.assertEqual([i["id"] for i in board], [item_id])

        resp = self.client.post(f"/api/production-items/{item_id}/advance", {}, format="json")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data["code"], "collaborator_required")

        resp = self.client.post(f"/api/production-items/{item_id}/assign", {"collaborator_id": cook.pk}, format="json")
        self.assertEqual(resp.status_code, 200, resp.data)

        resp = self.client.post(f"/api/production-items/{item_id}/advance", {}, format="json")
        self.assertTrue(resp.data["changed"])
        self.assertEqual(resp.data["item"]["production_status"], "in_progress")
