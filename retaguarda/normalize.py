"""
Normalização de unidades, nomes de produto e quantidades.

Quantidades são sempre Decimal com até 3 casas (mesma precisão dos DecimalFields).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .exceptions import ValidationError


QTY_QUANTUM = Decimal("0.001")


def normalize_unit(unit: str | None) -> str:
    """Unidade em caixa alta, sem espaços nas pontas ("kg " -> "KG")."""
    return (unit or "").strip().upper()


def normalize_name(name: str | None) -> str:
    """Chave de comparação de nomes: espaços colapsados + casefold."""
    return " ".join((name or "").split()).casefold()


def clean_name(name: str | None) -> str:
    """Nome para exibição: espaços colapsados, caixa preservada."""
    return " ".join((name or "").split())


def to_qty(value, field: str = "qty", allow_zero: bool = False) -> Decimal:
    """
    Converte valor para Decimal quantizado em 3 casas.

    Raises:
        ValidationError: Se o valor não for numérico, for negativo,
            ou for zero quando allow_zero=False
    """
    try:
        qty = Decimal(str(value)).quantize(QTY_QUANTUM, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(
            code="invalid_qty",
            message=f"Quantidade inválida em '{field}': {value!r}",
            context={"field": field, "value": str(value)},
        )

    if not qty.is_finite() or qty < 0 or (qty == 0 and not allow_zero):
        raise ValidationError(
            code="invalid_qty",
            message=f"Quantidade inválida em '{field}': {value!r}",
            context={"field": field, "value": str(value)},
        )
    return qty
