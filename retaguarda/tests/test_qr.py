"""
Extração do código da etiqueta a partir do texto lido no QR.
"""

from __future__ import annotations

import json
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from django.test import SimpleTestCase, override_settings

from retaguarda.exceptions import ValidationError
from retaguarda.services.qr import build_qr_payload, extract_label_code, require_label_code


CODE = "IE-FA-271225-90D"


class ExtractLabelCodeTests(SimpleTestCase):
    def test_raw_code_resolves_to_itself(self) -> None:
        self.assertEqual(extract_label_code(CODE), CODE)

    def test_raw_code_is_stripped(self) -> None:
        self.assertEqual(extract_label_code(f"  {CODE}\n"), CODE)

    def test_json_lt_key(self) -> None:
        self.assertEqual(extract_label_code('{"lt":"IE-FA-271225-90D"}'), CODE)

    def test_double_encoded_json(self) -> None:
        double = json.dumps(json.dumps({"lt": CODE, "q": 2}))
        self.assertTrue(double.startswith('"'))
        self.assertEqual(extract_label_code(double), CODE)

    def test_alternative_keys(self) -> None:
        for key in ("labelCode", "label_code", "code", "lc"):
            with self.subTest(key=key):
                self.assertEqual(extract_label_code(json.dumps({key: CODE})), CODE)

    def test_lt_wins_over_other_keys(self) -> None:
        self.assertEqual(extract_label_code(json.dumps({"code": "OUTRO", "lt": CODE})), CODE)

    def test_json_string_literal(self) -> None:
        self.assertEqual(extract_label_code(json.dumps(CODE)), CODE)

    def test_broken_json_with_lt_fragment(self) -> None:
        self.assertEqual(extract_label_code('{"v":1,"lt":"IE-FA-271225-90D","q":'), CODE)

    def test_lt_fragment_ignores_key_case(self) -> None:
        self.assertEqual(extract_label_code('{"LT":"LOTE-123"}'), "LOTE-123")
        self.assertEqual(extract_label_code('{"Lt": "LOTE-123", "q":'), "LOTE-123")

    def test_code_pattern_inside_free_text(self) -> None:
        self.assertEqual(extract_label_code("Lote: IE-FA-271225-90D / validade 90 dias"), CODE)

    @override_settings(RETAGUARDA={"LABEL_CODE_PATTERN": r"LOT\d{4}"})
    def test_code_pattern_is_configurable(self) -> None:
        text = "etiqueta LOT1234 impressa em " + "x" * 80
        self.assertEqual(extract_label_code(text), "LOT1234")

    def test_json_without_code_is_rejected(self) -> None:
        self.assertIsNone(extract_label_code('{"foo": 1}'))

    def test_long_text_without_code_is_rejected(self) -> None:
        self.assertIsNone(extract_label_code("x" * 65))

    def test_empty(self) -> None:
        self.assertIsNone(extract_label_code(""))
        self.assertIsNone(extract_label_code(None))

    def test_require_label_code_raises_invalid_qr(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            require_label_code('{"foo": 1}')
        self.assertEqual(ctx.exception.code, "invalid_qr")


class BuildQrPayloadTests(SimpleTestCase):
    def test_payload_is_compact_json_and_parseable(self) -> None:
        label = SimpleNamespace(label_code=CODE, product_id=7, qty=Decimal("2.500"), unit_label="KG")
        payload = build_qr_payload(
            label,
            product_name="Farinha",
            storage_location="Câmara 1",
            manufacturing_date=date(2025, 12, 27),
            expiration_date=date(2026, 3, 27),
        )

        self.assertNotIn(" ", payload.replace("Câmara 1", ""))
        data = json.loads(payload)
        self.assertEqual(data["v"], 1)
        self.assertEqual(data["lt"], CODE)
        self.assertEqual(data["pid"], 7)
        self.assertEqual(data["q"], 2.5)
        self.assertEqual(data["u"], "KG")
        self.assertEqual(data["pn"], "Farinha")
        self.assertEqual(data["mfg"], "2025-12-27")
        self.assertEqual(data["exp"], "2026-03-27")
        self.assertEqual(extract_label_code(payload), CODE)

    def test_integral_qty_is_int(self) -> None:
        label = SimpleNamespace(label_code=CODE, product_id=1, qty=Decimal("10.000"), unit_label="UN")
        self.assertEqual(json.loads(build_qr_payload(label, product_name="Ovo"))["q"], 10)
