"""
InventoryCountService — Reconciliação de contagem física contra o ledger.

Fluxo de apply():
1. Normaliza e consolida entradas (mesmo produto + unidade somados)
2. Cria o cabeçalho da contagem
3. Para cada entrada consolidada, numa transação própria:
   - resolve o produto por nome exato (sem caixa)
   - lê o saldo atual e calcula diff = contado - atual
   - grava o item da contagem
   - se diff != 0, grava um ajuste (IN se sobrou, OUT se faltou)
4. Atualiza o resumo do cabeçalho (best-effort)

Falha de um item não desfaz os demais; cada item reporta ok/warning/not_found.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal

from django.db import DatabaseError, transaction
from django.utils import timezone

from retaguarda.auth import AuthContext
from retaguarda.exceptions import RetaguardaError, ValidationError, translate_backend_error
from retaguarda.models import InventoryCount, InventoryCountItem, Product, Role, StockMovement
from retaguarda.normalize import clean_name, normalize_name, normalize_unit, to_qty
from retaguarda.results import SideEffect, attempt
from retaguarda.services.stock import StockService


logger = logging.getLogger(__name__)

COUNT_ROLES = frozenset({Role.ADMIN, Role.OPERACAO, Role.ESTOQUE})

REASON_SURPLUS = "AJUSTE_PARA_MAIS"
REASON_SHORTAGE = "AJUSTE_PARA_MENOS"


@dataclass(frozen=True)
class CountEntry:
    """Uma linha contada: produto (nome), unidade, quantidade."""

    product: str
    unit_label: str
    qty: Decimal


@dataclass
class CountItemResult:
    product_name: str
    unit_label: str
    counted: Decimal
    current: Decimal = Decimal("0")
    diff: Decimal = Decimal("0")
    product_id: int | None = None
    status: str = "ok"  # "ok" | "warning" | "not_found"
    message: str = ""


@dataclass
class InventoryApplyResult:
    inventory_count: InventoryCount
    items: list[CountItemResult] = field(default_factory=list)
    summary: SideEffect | None = None

    @property
    def ok(self) -> bool:
        return all(item.status == "ok" for item in self.items)


def _coerce_entry(raw) -> tuple[str, str, object]:
    if isinstance(raw, CountEntry):
        return raw.product, raw.unit_label, raw.qty
    if isinstance(raw, Mapping):
        return raw.get("product", ""), raw.get("unit_label", ""), raw.get("qty")
    product, unit, qty = raw
    return product, unit, qty


class InventoryCountService:
    """
    Serviço de inventário.

    Métodos:
    - consolidate: normaliza e soma entradas duplicadas
    - apply: aplica uma sessão de contagem
    """

    @staticmethod
    def consolidate(entries: Iterable) -> tuple[list[CountEntry], list[CountItemResult]]:
        """
        Soma entradas do mesmo produto + unidade.

        Returns:
            (entradas consolidadas na ordem da primeira aparição,
             resultados not_found para entradas inválidas)
        """
        merged: dict[tuple[str, str], CountEntry] = {}
        invalid: list[CountItemResult] = []

        for raw in entries:
            product, unit, qty = _coerce_entry(raw)
            name = clean_name(product)
            unit = normalize_unit(unit)
            try:
                counted = to_qty(qty, field="counted", allow_zero=True)
            except ValidationError:
                counted = None

            if not name or not unit or counted is None:
                invalid.append(
                    CountItemResult(
                        product_name=name,
                        unit_label=unit,
                        counted=Decimal("0"),
                        status="not_found",
                        message="Entrada inválida: produto/unidade ausente ou quantidade negativa.",
                    )
                )
                continue

            key = (normalize_name(name), unit)
            if key in merged:
                previous = merged[key]
                merged[key] = CountEntry(product=previous.product, unit_label=unit, qty=previous.qty + counted)
            else:
                merged[key] = CountEntry(product=name, unit_label=unit, qty=counted)

        return list(merged.values()), invalid

    @staticmethod
    def apply(ctx: AuthContext, entries: Iterable, notes: str = "") -> InventoryApplyResult:
        """
        Aplica uma contagem física.

        Args:
            ctx: Ator (admin, operacao ou estoque)
            entries: CountEntry, dicts {product, unit_label, qty} ou tuplas

        Raises:
            PermissionDenied: Papel sem acesso
            ValidationError: Nenhuma entrada (empty_count)
        """
        ctx.require_role(COUNT_ROLES, "aplicar inventário")

        entries = list(entries or [])
        if not entries:
            raise ValidationError(code="empty_count", message="Nenhum item informado na contagem")

        consolidated, invalid = InventoryCountService.consolidate(entries)

        now = timezone.now()
        count = InventoryCount.objects.create(
            establishment_id=ctx.establishment_id,
            started_at=now,
            notes=notes or "Inventário aplicado automaticamente pelo sistema.",
            created_by_id=ctx.user_id,
        )

        results = list(invalid)
        for entry in consolidated:
            results.append(InventoryCountService._apply_entry(ctx, count, entry))

        summary = attempt(
            "inventory_count_summary",
            lambda: InventoryCountService._update_summary(count),
            (DatabaseError,),
        ).log_if_failed(logger)

        logger.info(
            "Inventory count %s applied: %d items (%d not ok)",
            count.pk,
            len(results),
            sum(1 for r in results if r.status != "ok"),
        )
        return InventoryApplyResult(inventory_count=count, items=results, summary=summary)

    @staticmethod
    def _apply_entry(ctx: AuthContext, count: InventoryCount, entry: CountEntry) -> CountItemResult:
        result = CountItemResult(product_name=entry.product, unit_label=entry.unit_label, counted=entry.qty)

        product = Product.objects.for_establishment(ctx.establishment_id).resolve_name(entry.product)
        if product is None:
            result.status = "not_found"
            result.message = "Produto não encontrado no catálogo."
            return result
        result.product_id = product.pk

        try:
            with transaction.atomic():
                Product.objects.select_for_update().filter(pk=product.pk).first()
                current = StockService.balance(ctx.establishment_id, product.pk, entry.unit_label)
                diff = entry.qty - current
                result.current = current
                result.diff = diff

                movement = None
                if diff != 0:
                    movement = StockService.append_movement(
                        ctx.establishment_id,
                        product.pk,
                        entry.unit_label,
                        abs(diff),
                        StockMovement.Direction.IN if diff > 0 else StockMovement.Direction.OUT,
                        StockMovement.MovementType.AJUSTE_INVENTARIO,
                        inventory_count_id=count.pk,
                        reason=REASON_SURPLUS if diff > 0 else REASON_SHORTAGE,
                        details={"system_before": current, "counted": entry.qty, "difference": diff},
                        actor_id=ctx.user_id,
                    )

                InventoryCountItem.objects.create(
                    inventory_count=count,
                    product=product,
                    unit_label=entry.unit_label,
                    counted_qty=entry.qty,
                    current_stock_before=current,
                    diff_qty=diff,
                    movement=movement,
                )
        except (DatabaseError, RetaguardaError) as exc:
            logger.warning("Inventory count %s: item %s failed: %s", count.pk, entry.product, exc)
            result.status = "warning"
            result.message = translate_backend_error(exc)
            return result

        return result

    @staticmethod
    def _update_summary(count: InventoryCount) -> InventoryCount:
        with transaction.atomic():
            items = InventoryCountItem.objects.filter(inventory_count=count)
            count.items_count = items.count()
            count.products_count = items.values("product_id").distinct().count()
            count.finished_at = timezone.now()
            count.save(update_fields=["items_count", "products_count", "finished_at"])
        return count
