"""
Retaguarda IDs — Geração de códigos de etiqueta.
"""

from __future__ import annotations

import unicodedata
from datetime import date

from django.utils import timezone


def _letters(text: str) -> str:
    """Remove acentos e mantém apenas letras A-Z em caixa alta."""
    folded = unicodedata.normalize("NFD", text or "")
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch))
    return "".join(ch for ch in folded.upper() if "A" <= ch <= "Z")


def code_prefix(text: str, size: int = 2) -> str:
    """
    Prefixo de duas letras para compor códigos.

    Exemplos:
        "Farinha de trigo" -> "FA"
        "Ítalo Estação"    -> "IT"
        ""                 -> "XX"
    """
    letters = _letters(text)
    return (letters + "X" * size)[:size]


def build_label_code(
    establishment_code: str,
    product_code: str,
    shelf_life_days: int,
    day: date | None = None,
) -> str:
    """
    Monta o código/lote impresso na etiqueta.

    Formato: EE-PP-DDMMAA-NNND (ex.: IE-FA-271225-90D)

    Args:
        establishment_code: Código (ou nome) do estabelecimento
        product_code: Código (ou nome) do produto
        shelf_life_days: Validade em dias após a manipulação
        day: Data de manipulação (default: hoje, timezone local)
    """
    if shelf_life_days < 0:
        raise ValueError("shelf_life_days deve ser >= 0")
    day = day or timezone.localdate()
    return "-".join(
        [
            code_prefix(establishment_code),
            code_prefix(product_code),
            day.strftime("%d%m%y"),
            f"{shelf_life_days}D",
        ]
    )
