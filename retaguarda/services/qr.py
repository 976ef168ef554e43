"""
QR — Extração e montagem do payload impresso nas etiquetas.

Cadeia de extração (primeiro que resolver vence):
1. JSON (até duas passadas, para payloads codificados duas vezes)
2. Chaves conhecidas: lt, labelCode, label_code, code, lc
3. Regex "lt":"..." no texto cru
4. Regex do padrão de código de lote (LABEL_CODE_PATTERN)
5. Texto cru, se curto (<= 64) e sem chaves
"""

from __future__ import annotations

import json
import re
from datetime import date
from decimal import Decimal

from retaguarda.conf import get_retaguarda_setting
from retaguarda.exceptions import ValidationError


CODE_KEYS = ("lt", "labelCode", "label_code", "code", "lc")
MAX_RAW_CODE_LENGTH = 64
QR_PAYLOAD_VERSION = 1

_LT_RE = re.compile(r'"lt"\s*:\s*"([^"]+)"', re.I)


def _code_from_mapping(data: dict) -> str | None:
    for key in CODE_KEYS:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _parse_json(text: str, passes: int = 2):
    """Decodifica JSON até `passes` vezes; devolve None se não for JSON."""
    value = text
    for _ in range(passes):
        if not isinstance(value, str):
            break
        try:
            value = json.loads(value)
        except (TypeError, ValueError):
            return None if value is text else value
    return value


def extract_label_code(raw: str | None) -> str | None:
    """
    Extrai o código da etiqueta de um texto lido do QR.

    Examples:
        "IE-FA-271225-90D"                        -> "IE-FA-271225-90D"
        '{"lt":"IE-FA-271225-90D"}'               -> "IE-FA-271225-90D"
        '"{\\"lt\\":\\"IE-FA-271225-90D\\"}"'     -> "IE-FA-271225-90D"

    Returns:
        Código ou None quando nada reconhecível foi encontrado
    """
    text = (raw or "").strip()
    if not text:
        return None

    parsed = _parse_json(text)
    if isinstance(parsed, dict):
        code = _code_from_mapping(parsed)
        if code:
            return code
    elif isinstance(parsed, str) and parsed.strip() and parsed is not text:
        # JSON de uma string simples: "IE-FA-..."
        text = parsed.strip()

    match = _LT_RE.search(text)
    if match:
        return match.group(1).strip()

    pattern = get_retaguarda_setting("LABEL_CODE_PATTERN")
    if pattern:
        match = re.search(pattern, text)
        if match:
            return match.group(0)

    if len(text) <= MAX_RAW_CODE_LENGTH and "{" not in text and "}" not in text:
        return text

    return None


def require_label_code(raw: str | None) -> str:
    """
    Como extract_label_code, mas levanta erro quando não há código.

    Raises:
        ValidationError: invalid_qr
    """
    code = extract_label_code(raw)
    if not code:
        raise ValidationError(
            code="invalid_qr",
            message="QR inválido: não foi possível identificar o código da etiqueta",
            context={"length": len(raw or "")},
        )
    return code


def _iso(value) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def build_qr_payload(
    label,
    product_name: str = "",
    storage_location: str | None = None,
    manufacturing_date=None,
    expiration_date=None,
) -> str:
    """
    JSON gravado dentro do QR; compatível com extract_label_code.

    Formato: {"v":1,"lt":...,"pid":...,"q":...,"u":...,"pn":...,"loc":...,"mfg":...,"exp":...}
    """
    qty = label.qty
    if isinstance(qty, Decimal):
        qty = float(qty) if qty != qty.to_integral_value() else int(qty)
    return json.dumps(
        {
            "v": QR_PAYLOAD_VERSION,
            "lt": label.label_code,
            "pid": label.product_id,
            "q": qty,
            "u": label.unit_label,
            "pn": product_name or getattr(getattr(label, "product", None), "name", ""),
            "loc": storage_location,
            "mfg": _iso(manufacturing_date),
            "exp": _iso(expiration_date),
        },
        ensure_ascii=False,
        separators=(",", ":"),
    )
