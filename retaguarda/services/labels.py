"""
LabelService — Ciclo de vida das etiquetas e protocolo de separação.

Criação:
1. Valida produto, quantidade, unidade e código
2. Insere a etiqueta "available" com used_qty = 0
3. Garante exatamente uma entrada LABEL_IN no ledger (idempotente)

Separação (uso da etiqueta no pedido), tudo numa transação:
1. Resolve a etiqueta pelo código (QR) no estabelecimento; exige status disponível
2. disponível = qty - used_qty; falha se <= 0
3. Quantidade: parcial informada ou todo o saldo; falha se exceder o disponível
4. Vincula a um item de produção do pedido quando possível (não obrigatório)
5. Saída OUT_ORDER no ledger
6. Vínculo pedido × etiqueta × quantidade
7. used_qty += consumido; "consumed" só quando used_qty >= qty
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.utils import timezone

from retaguarda.auth import AuthContext
from retaguarda.exceptions import NotFound, StateConflict, ValidationError, translate_backend_error
from retaguarda.models import InventoryLabel, Order, OrderItem, OrderLabelLink, Product, Role, StockMovement
from retaguarda.normalize import normalize_name, normalize_unit, to_qty
from retaguarda.services.qr import require_label_code
from retaguarda.services.stock import StockService


logger = logging.getLogger(__name__)

LABEL_ROLES = frozenset({Role.ADMIN, Role.OPERACAO, Role.PRODUCAO, Role.ESTOQUE})
SEPARATION_ROLES = LABEL_ROLES
RESET_ROLES = frozenset({Role.ADMIN})


@dataclass(frozen=True)
class LabelUsage:
    """Resultado de uma separação."""

    label: InventoryLabel
    link: OrderLabelLink
    movement: StockMovement
    consumed_qty: Decimal
    remaining_qty: Decimal
    order_item: OrderItem | None = None

    @property
    def exhausted(self) -> bool:
        return self.label.status == InventoryLabel.Status.CONSUMED


class LabelService:
    """
    Serviço de etiquetas.

    Métodos:
    - create_label: cria etiqueta + entrada no ledger
    - ensure_entry_movement: garante uma única LABEL_IN por etiqueta
    - preview: resolve etiqueta a partir do texto do QR, sem consumir
    - use_on_order: separação (consumo parcial ou total)
    - update_notes: correção administrativa não destrutiva
    - reset: correção destrutiva (admin), com estorno no ledger
    """

    @staticmethod
    def resolve_product(ctx: AuthContext, product) -> Product:
        """
        Produto por instância, id ou nome exato (sem caixa) no estabelecimento.

        Raises:
            ValidationError: Produto não informado
            NotFound: Produto inexistente ou de outro estabelecimento
        """
        if product is None or (isinstance(product, str) and not product.strip()):
            raise ValidationError(code="missing_product", message="Produto é obrigatório")

        qs = Product.objects.for_establishment(ctx.establishment_id)
        if isinstance(product, Product):
            found = qs.filter(pk=product.pk).first()
        elif isinstance(product, int):
            found = qs.filter(pk=product).first()
        else:
            found = qs.resolve_name(str(product))

        if found is None:
            raise NotFound(
                code="product_not_found",
                message="Produto não encontrado",
                context={"product": str(product)},
            )
        return found

    @staticmethod
    def create_label(
        ctx: AuthContext,
        product,
        qty,
        unit_label: str,
        label_code: str,
        notes=None,
        label_type: str = "",
    ) -> InventoryLabel:
        """
        Cria uma etiqueta e sua entrada no ledger.

        Repetir a mesma criação (mesmo código, produto, qty e unidade) devolve
        a etiqueta existente sem gerar nova entrada.

        Raises:
            PermissionDenied: Papel sem acesso
            ValidationError: Campo ausente ou inválido
            NotFound: Produto não encontrado
            StateConflict: Código já usado por outra etiqueta (duplicate_label_code)
        """
        ctx.require_role(LABEL_ROLES, "criar etiqueta")

        code = (label_code or "").strip()
        if not code:
            raise ValidationError(code="missing_label_code", message="Código/lote da etiqueta é obrigatório")
        qty = to_qty(qty)
        unit = normalize_unit(unit_label)
        if not unit:
            raise ValidationError(code="missing_unit", message="Unidade é obrigatória")
        label_type = (label_type or "").strip().upper()
        if label_type and label_type not in InventoryLabel.LabelType.values:
            raise ValidationError(
                code="invalid_label_type",
                message=f"Tipo de etiqueta inválido: {label_type}",
                context={"allowed": list(InventoryLabel.LabelType.values)},
            )
        product = LabelService.resolve_product(ctx, product)

        with transaction.atomic():
            existing = (
                InventoryLabel.objects.select_for_update()
                .filter(establishment_id=ctx.establishment_id, label_code=code)
                .first()
            )
            if existing is not None:
                if existing.product_id != product.pk or existing.qty != qty or existing.unit_label != unit:
                    raise StateConflict(
                        code="duplicate_label_code",
                        message=f"Já existe uma etiqueta com o código {code}",
                        context={"label_code": code, "label_id": existing.pk},
                    )
                logger.warning("Label %s creation replayed; returning existing label %s", code, existing.pk)
                label = existing
            else:
                try:
                    with transaction.atomic():
                        label = InventoryLabel.objects.create(
                            establishment_id=ctx.establishment_id,
                            product=product,
                            label_code=code,
                            label_type=label_type,
                            qty=qty,
                            used_qty=Decimal("0"),
                            unit_label=unit,
                            status=InventoryLabel.Status.AVAILABLE,
                            notes=notes,
                            created_by_id=ctx.user_id,
                        )
                except IntegrityError as exc:
                    raise StateConflict(
                        code="duplicate_label_code",
                        message=translate_backend_error(exc),
                        context={"label_code": code},
                    ) from exc
                logger.info("Label %s created (%s %s of %s)", code, qty, unit, product.name)

            LabelService.ensure_entry_movement(label, actor_id=ctx.user_id)

        return label

    @staticmethod
    def ensure_entry_movement(label: InventoryLabel, actor_id: int | None = None) -> tuple[StockMovement, bool]:
        """
        Garante exatamente uma movimentação LABEL_IN para a etiqueta.

        Returns:
            (movimentação, criada_agora)
        """
        with transaction.atomic():
            # Lock da etiqueta serializa chamadas concorrentes
            InventoryLabel.objects.select_for_update().filter(pk=label.pk).first()
            existing = (
                StockMovement.objects.filter(label_id=label.pk, movement_type=StockMovement.MovementType.LABEL_IN)
                .order_by("id")
                .first()
            )
            if existing is not None:
                return existing, False

            movement = StockService.append_movement(
                label.establishment_id,
                label.product_id,
                label.unit_label,
                label.qty,
                StockMovement.Direction.IN,
                StockMovement.MovementType.LABEL_IN,
                label_id=label.pk,
                details={"label_code": label.label_code},
                actor_id=actor_id,
            )
            return movement, True

    @staticmethod
    def get_label(ctx: AuthContext, label_id: int, for_update: bool = False) -> InventoryLabel:
        qs = InventoryLabel.objects.filter(establishment_id=ctx.establishment_id)
        if for_update:
            qs = qs.select_for_update()
        label = qs.filter(pk=label_id).first()
        if label is None:
            raise NotFound(code="label_not_found", message="Etiqueta não encontrada", context={"label_id": label_id})
        return label

    @staticmethod
    def preview(ctx: AuthContext, raw: str) -> InventoryLabel:
        """
        Etiqueta correspondente ao texto do QR, sem alterar nada.

        Raises:
            ValidationError: QR sem código reconhecível
            NotFound: Código inexistente no estabelecimento
        """
        code = require_label_code(raw)
        label = (
            InventoryLabel.objects.select_related("product")
            .filter(establishment_id=ctx.establishment_id, label_code=code)
            .first()
        )
        if label is None:
            raise NotFound(code="label_not_found", message="Etiqueta não encontrada", context={"label_code": code})
        return label

    @staticmethod
    def _match_item(order: Order, label: InventoryLabel, order_item_id: int | None) -> OrderItem | None:
        if order_item_id is not None:
            item = order.items.filter(pk=order_item_id).first()
            if item is None:
                raise NotFound(
                    code="item_not_found",
                    message="Item não pertence ao pedido",
                    context={"order_item_id": order_item_id},
                )
            return item

        items = list(order.items.all())
        by_product = [i for i in items if i.product_id == label.product_id]
        if not by_product:
            wanted = normalize_name(label.product.name)
            by_product = [i for i in items if normalize_name(i.product_name) == wanted]
        same_unit = [i for i in by_product if i.unit_label == label.unit_label]
        candidates = same_unit or by_product
        return candidates[0] if candidates else None

    @staticmethod
    def use_on_order(
        ctx: AuthContext,
        order_id: int,
        qr_text: str | None = None,
        *,
        label_code: str | None = None,
        qty=None,
        order_item_id: int | None = None,
    ) -> LabelUsage:
        """
        Consome (total ou parcialmente) uma etiqueta no pedido.

        Args:
            ctx: Ator
            order_id: Pedido em separação
            qr_text: Texto lido do QR (JSON, JSON duplo ou código cru)
            label_code: Código direto; dispensa qr_text
            qty: Quantidade parcial; default todo o saldo da etiqueta
            order_item_id: Item de produção a vincular (opcional)

        Raises:
            PermissionDenied: Papel sem acesso
            ValidationError: QR inválido ou quantidade inválida
            NotFound: Pedido, etiqueta ou item não encontrados
            StateConflict: Pedido fora de separação, etiqueta indisponível,
                esgotada ou com saldo insuficiente
        """
        ctx.require_role(SEPARATION_ROLES, "separar etiqueta")

        code = (label_code or "").strip() or require_label_code(qr_text)
        requested = to_qty(qty) if qty not in (None, "") else None

        with transaction.atomic():
            order = (
                Order.objects.select_for_update()
                .filter(pk=order_id, establishment_id=ctx.establishment_id)
                .first()
            )
            if order is None:
                raise NotFound(code="order_not_found", message="Pedido não encontrado", context={"order_id": order_id})
            if order.status != Order.Status.EM_SEPARACAO:
                raise StateConflict(
                    code="invalid_status",
                    message=f"Pedido precisa estar em separação (atual: {order.status})",
                    context={"current_status": order.status, "required_status": Order.Status.EM_SEPARACAO},
                )

            label = (
                InventoryLabel.objects.select_for_update()
                .filter(establishment_id=ctx.establishment_id, label_code=code)
                .first()
            )
            if label is None:
                raise NotFound(code="label_not_found", message="Etiqueta não encontrada", context={"label_code": code})
            if not label.is_consumable:
                raise StateConflict(
                    code="label_unavailable",
                    message=f"Etiqueta {code} não está disponível (status: {label.status})",
                    context={"label_code": code, "status": label.status},
                )

            available = label.available_qty
            if available <= 0:
                raise StateConflict(
                    code="label_exhausted",
                    message=f"Etiqueta {code} já foi totalmente utilizada",
                    context={"label_code": code, "qty": str(label.qty), "used_qty": str(label.used_qty)},
                )

            consumed = requested if requested is not None else available
            if consumed > available:
                raise StateConflict(
                    code="insufficient_balance",
                    message=f"Saldo insuficiente na etiqueta: solicitado {consumed}, disponível {available}",
                    context={"label_code": code, "requested": str(consumed), "available": str(available)},
                )

            item = LabelService._match_item(order, label, order_item_id)

            movement = StockService.append_movement(
                ctx.establishment_id,
                label.product_id,
                label.unit_label,
                consumed,
                StockMovement.Direction.OUT,
                StockMovement.MovementType.OUT_ORDER,
                label_id=label.pk,
                order_id=order.pk,
                details={"label_code": code, "order_item_id": item.pk if item else None},
                actor_id=ctx.user_id,
            )
            link = OrderLabelLink.objects.create(
                order=order,
                order_item=item,
                label=label,
                qty_used=consumed,
                unit_label=label.unit_label,
                created_by_id=ctx.user_id,
            )

            label.used_qty = label.used_qty + consumed
            label.order = order
            label.separated_at = timezone.now()
            label.separated_by_id = ctx.user_id
            if label.used_qty >= label.qty:
                label.status = InventoryLabel.Status.CONSUMED
            else:
                label.status = InventoryLabel.Status.AVAILABLE
            label.save(update_fields=["used_qty", "order", "separated_at", "separated_by", "status"])

        logger.info(
            "Label %s used on order %s: %s %s (remaining %s)",
            code,
            order.number,
            consumed,
            label.unit_label,
            label.available_qty,
        )
        return LabelUsage(
            label=label,
            link=link,
            movement=movement,
            consumed_qty=consumed,
            remaining_qty=label.available_qty,
            order_item=item,
        )

    @staticmethod
    def update_notes(ctx: AuthContext, label_id: int, notes=None) -> InventoryLabel:
        """
        Substitui (ou limpa, com None) as observações da etiqueta.

        Não mexe em status, quantidades nem vínculo com pedido.
        """
        ctx.require_role(LABEL_ROLES, "revalidar etiqueta")
        with transaction.atomic():
            label = LabelService.get_label(ctx, label_id, for_update=True)
            label.notes = notes
            label.save(update_fields=["notes"])
        logger.info("Label %s notes %s", label.label_code, "cleared" if notes is None else "updated")
        return label

    @staticmethod
    def reset(ctx: AuthContext, label_id: int, note: str = "") -> InventoryLabel:
        """
        Desfaz a separação: status volta a "available", vínculo com pedido é
        removido e used_qty volta a zero.

        O que havia sido consumido retorna ao ledger como entrada
        "estorno_etiqueta", para que o saldo continue batendo com a etiqueta física.
        Os registros de OrderLabelLink permanecem como histórico.

        Raises:
            PermissionDenied: Apenas admin
            NotFound: Etiqueta não encontrada
        """
        ctx.require_role(RESET_ROLES, "reiniciar etiqueta")
        with transaction.atomic():
            label = LabelService.get_label(ctx, label_id, for_update=True)
            returned = label.used_qty
            if returned > 0:
                StockService.append_movement(
                    label.establishment_id,
                    label.product_id,
                    label.unit_label,
                    returned,
                    StockMovement.Direction.IN,
                    StockMovement.MovementType.ESTORNO_ETIQUETA,
                    label_id=label.pk,
                    order_id=label.order_id,
                    reason="reset",
                    details={"label_code": label.label_code, "previous_status": label.status, "note": note},
                    actor_id=ctx.user_id,
                )

            label.status = InventoryLabel.Status.AVAILABLE
            label.used_qty = Decimal("0")
            label.order = None
            label.separated_at = None
            label.separated_by = None
            label.save(update_fields=["status", "used_qty", "order", "separated_at", "separated_by"])

        logger.info("Label %s reset by user %s (returned %s)", label.label_code, ctx.user_id, returned)
        return label
