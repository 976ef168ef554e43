"""
StockService — Ledger de movimentações e saldo derivado.

O saldo nunca é armazenado: é sempre soma(IN) - soma(OUT) do ledger.
append_movement é o único ponto que grava StockMovement.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal

from django.db import transaction

from retaguarda.auth import AuthContext
from retaguarda.exceptions import NotFound, PermissionDenied, StateConflict, ValidationError
from retaguarda.models import Loss, Membership, Product, Role, StockMovement
from retaguarda.normalize import normalize_unit, to_qty


logger = logging.getLogger(__name__)

LOSS_ROLES = frozenset({Role.ADMIN, Role.OPERACAO, Role.PRODUCAO, Role.ESTOQUE})
TRANSFER_ROLES = frozenset({Role.ADMIN, Role.OPERACAO, Role.ESTOQUE})


@dataclass(frozen=True)
class Transfer:
    """Par de movimentações de uma transferência, visto a partir da origem."""

    transfer_id: str
    outbound: StockMovement
    inbound: StockMovement


class LedgerBalanceProvider:
    """BalanceProvider padrão: soma o ledger local."""

    def get_balance(self, establishment_id: int, product_id: int, unit_label: str) -> Decimal:
        return StockService.balance(establishment_id, product_id, unit_label)


class StockService:
    """
    Serviço de estoque.

    Métodos:
    - balance / balances: saldo derivado do ledger
    - append_movement: grava uma movimentação (append-only)
    - register_loss: perda com saída "perda"
    - transfer / list_transfers / transfer_details: transferência entre unidades
    """

    @staticmethod
    def balance(establishment_id: int, product_id: int, unit_label: str) -> Decimal:
        return StockMovement.objects.for_key(establishment_id, product_id, normalize_unit(unit_label)).balance()

    @staticmethod
    def balances(establishment_id: int, product_id: int | None = None) -> list[dict]:
        qs = StockMovement.objects.filter(establishment_id=establishment_id)
        if product_id is not None:
            qs = qs.filter(product_id=product_id)
        return qs.balances()

    @staticmethod
    def append_movement(
        establishment_id: int,
        product_id: int,
        unit_label: str,
        qty,
        direction: str,
        movement_type: str,
        *,
        label_id: int | None = None,
        order_id: int | None = None,
        inventory_count_id: int | None = None,
        reason: str = "",
        details: dict | None = None,
        actor_id: int | None = None,
    ) -> StockMovement:
        """
        Acrescenta uma movimentação ao ledger.

        Raises:
            ValidationError: qty não positiva, direção/tipo desconhecidos ou unidade vazia
        """
        qty = to_qty(qty)
        unit = normalize_unit(unit_label)
        if not unit:
            raise ValidationError(code="missing_unit", message="Unidade é obrigatória")
        if direction not in StockMovement.Direction.values:
            raise ValidationError(
                code="invalid_direction",
                message=f"Direção inválida: {direction!r}",
                context={"direction": direction},
            )
        if movement_type not in StockMovement.MovementType.values:
            raise ValidationError(
                code="invalid_movement_type",
                message=f"Tipo de movimentação inválido: {movement_type!r}",
                context={"movement_type": movement_type},
            )

        movement = StockMovement.objects.create(
            establishment_id=establishment_id,
            product_id=product_id,
            unit_label=unit,
            qty=qty,
            direction=direction,
            movement_type=movement_type,
            label_id=label_id,
            order_id=order_id,
            inventory_count_id=inventory_count_id,
            reason=reason or "",
            details=details or {},
            created_by_id=actor_id,
        )
        logger.debug(
            "Movement %s %s %s %s (product=%s, type=%s)",
            movement.pk,
            direction,
            qty,
            unit,
            product_id,
            movement_type,
        )
        return movement

    @staticmethod
    def register_loss(
        ctx: AuthContext,
        product_id: int,
        qty,
        unit_label: str,
        reason: str,
        reason_detail: str = "",
        lot: str = "",
        label_code: str = "",
        allow_negative: bool = False,
    ) -> Loss:
        """
        Registra uma perda e a saída correspondente, atomicamente.

        Raises:
            PermissionDenied: Papel sem acesso
            ValidationError: Motivo ausente, "Outro" sem detalhe, qty inválida
            NotFound: Produto fora do estabelecimento
            StateConflict: Saldo ficaria negativo (insufficient_balance)
        """
        ctx.require_role(LOSS_ROLES, "registrar perda")

        reason = (reason or "").strip()
        reason_detail = (reason_detail or "").strip()
        if not reason:
            raise ValidationError(code="missing_reason", message="Informe o motivo da perda")
        if reason == Loss.REASON_OTHER and len(reason_detail) < 3:
            raise ValidationError(
                code="missing_reason",
                message="Motivo 'Outro' exige detalhe com pelo menos 3 caracteres",
                context={"field": "reason_detail"},
            )
        qty = to_qty(qty)
        unit = normalize_unit(unit_label)
        if not unit:
            raise ValidationError(code="missing_unit", message="Unidade é obrigatória")

        product = Product.objects.for_establishment(ctx.establishment_id).filter(pk=product_id).first()
        if product is None:
            raise NotFound(code="product_not_found", message="Produto não encontrado")

        with transaction.atomic():
            # Serializa perdas concorrentes do mesmo produto
            Product.objects.select_for_update().filter(pk=product.pk).first()
            current = StockService.balance(ctx.establishment_id, product.pk, unit)
            if not allow_negative and current < qty:
                raise StateConflict(
                    code="insufficient_balance",
                    message=f"Saldo insuficiente: solicitado {qty}, disponível {current}",
                    context={"requested": str(qty), "available": str(current)},
                )

            movement = StockService.append_movement(
                ctx.establishment_id,
                product.pk,
                unit,
                qty,
                StockMovement.Direction.OUT,
                StockMovement.MovementType.PERDA,
                reason=reason[:60],
                details={"reason_detail": reason_detail, "lot": lot, "label_code": label_code},
                actor_id=ctx.user_id,
            )
            loss = Loss.objects.create(
                establishment_id=ctx.establishment_id,
                product=product,
                qty=qty,
                unit_label=unit,
                reason=reason[:60],
                reason_detail=reason_detail,
                lot=lot or "",
                label_code=label_code or "",
                movement=movement,
                created_by_id=ctx.user_id,
            )

        logger.info("Loss %s registered: %s %s of product %s (%s)", loss.pk, qty, unit, product.pk, reason)
        return loss

    @staticmethod
    def transfer(
        ctx: AuthContext,
        to_establishment_id: int,
        product_id: int,
        qty,
        unit_label: str,
        reason: str = "",
        notes: str = "",
    ) -> Transfer:
        """
        Transfere saldo da unidade atual para outra unidade.

        O produto é mapeado no destino pelo nome. Saída (origem) e entrada
        (destino) são gravadas juntas, com o mesmo transfer_id em details.

        Raises:
            PermissionDenied: Papel sem acesso ou sem vínculo ativo no destino
            ValidationError: Destino igual à origem, qty ou unidade inválidas
            NotFound: Produto fora da origem ou inexistente no destino
            StateConflict: Saldo insuficiente na origem (insufficient_balance)
        """
        ctx.require_role(TRANSFER_ROLES, "transferir estoque")

        if not to_establishment_id:
            raise ValidationError(code="missing_destination", message="Selecione o estabelecimento de destino")
        to_establishment_id = int(to_establishment_id)
        if to_establishment_id == ctx.establishment_id:
            raise ValidationError(
                code="same_establishment",
                message="O destino não pode ser o mesmo que a origem",
                context={"establishment_id": ctx.establishment_id},
            )
        qty = to_qty(qty)
        unit = normalize_unit(unit_label)
        if not unit:
            raise ValidationError(code="missing_unit", message="Unidade é obrigatória")

        has_access = Membership.objects.filter(
            user_id=ctx.user_id,
            establishment_id=to_establishment_id,
            is_active=True,
            establishment__is_active=True,
        ).exists()
        if not has_access:
            raise PermissionDenied(
                code="no_destination_access",
                message="Você não tem acesso ao estabelecimento de destino",
                context={"to_establishment_id": to_establishment_id},
            )

        origin = Product.objects.for_establishment(ctx.establishment_id).filter(pk=product_id).first()
        if origin is None:
            raise NotFound(code="product_not_found", message="Produto não encontrado na origem")

        destination = (
            Product.objects.for_establishment(to_establishment_id).filter(is_active=True).resolve_name(origin.name)
        )
        if destination is None:
            raise NotFound(
                code="destination_product_not_found",
                message=f'O produto "{origin.name}" não existe no destino',
                context={"product_name": origin.name, "to_establishment_id": to_establishment_id},
            )

        transfer_id = uuid.uuid4().hex
        reason = (reason or "").strip()[:60] or StockMovement.MovementType.TRANSFERENCIA.value
        details = {
            "transfer_id": transfer_id,
            "from_establishment_id": ctx.establishment_id,
            "to_establishment_id": to_establishment_id,
            "product_name": origin.name,
            "origin_product_id": origin.pk,
            "destination_product_id": destination.pk,
            "notes": (notes or "").strip(),
        }

        with transaction.atomic():
            # Serializa saídas concorrentes do mesmo produto na origem
            Product.objects.select_for_update().filter(pk=origin.pk).first()
            current = StockService.balance(ctx.establishment_id, origin.pk, unit)
            if current < qty:
                raise StateConflict(
                    code="insufficient_balance",
                    message=f"Estoque insuficiente na origem: solicitado {qty}, disponível {current}",
                    context={"requested": str(qty), "available": str(current)},
                )

            outbound = StockService.append_movement(
                ctx.establishment_id,
                origin.pk,
                unit,
                qty,
                StockMovement.Direction.OUT,
                StockMovement.MovementType.TRANSFERENCIA,
                reason=reason,
                details=details,
                actor_id=ctx.user_id,
            )
            inbound = StockService.append_movement(
                to_establishment_id,
                destination.pk,
                unit,
                qty,
                StockMovement.Direction.IN,
                StockMovement.MovementType.TRANSFERENCIA,
                reason=reason,
                details=details,
                actor_id=ctx.user_id,
            )

        logger.info(
            "Transfer %s: %s %s of %s from establishment %s to %s",
            transfer_id,
            qty,
            unit,
            origin.name,
            ctx.establishment_id,
            to_establishment_id,
        )
        return Transfer(transfer_id=transfer_id, outbound=outbound, inbound=inbound)

    @staticmethod
    def list_transfers(ctx: AuthContext, direction: str | None = None):
        """Lado local das transferências (OUT enviadas, IN recebidas), mais recentes primeiro."""
        qs = StockMovement.objects.select_related("product").filter(
            establishment_id=ctx.establishment_id,
            movement_type=StockMovement.MovementType.TRANSFERENCIA,
        )
        if direction:
            if direction not in StockMovement.Direction.values:
                raise ValidationError(
                    code="invalid_direction",
                    message=f"Direção inválida: {direction!r}",
                    context={"direction": direction},
                )
            qs = qs.filter(direction=direction)
        return qs.order_by("-created_at", "-id")

    @staticmethod
    def transfer_details(ctx: AuthContext, transfer_id: str) -> list[StockMovement]:
        """
        Movimentações de uma transferência, em ordem de gravação.

        Inclui o lado da outra unidade só quando o usuário também tem
        vínculo ativo nela.

        Raises:
            NotFound: Transferência sem movimentação na unidade atual
        """
        transfer_id = (transfer_id or "").strip()
        visible = set(
            Membership.objects.filter(user_id=ctx.user_id, is_active=True).values_list("establishment_id", flat=True)
        )
        visible.add(ctx.establishment_id)

        rows = list(
            StockMovement.objects.select_related("product")
            .filter(
                movement_type=StockMovement.MovementType.TRANSFERENCIA,
                details__transfer_id=transfer_id,
                establishment_id__in=visible,
            )
            .order_by("created_at", "id")
        )
        if not transfer_id or not any(row.establishment_id == ctx.establishment_id for row in rows):
            raise NotFound(
                code="transfer_not_found",
                message="Transferência não encontrada",
                context={"transfer_id": transfer_id},
            )
        return rows
