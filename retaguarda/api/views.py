"""
Retaguarda API Views — ViewSets para a REST API.

As views são finas: montam o AuthContext do usuário, validam o formato do
payload e delegam aos serviços. Exceções de domínio viram respostas HTTP em
retaguarda.api.handlers.exception_handler.

Configuração de Throttling:
    Configure em settings.py:

    REST_FRAMEWORK = {
        'DEFAULT_THROTTLE_RATES': {
            'anon': '100/hour',
            'user': '1000/hour',
            'retaguarda_transition': '120/minute',  # Mudanças de status
            'retaguarda_separation': '300/minute',  # Leituras de QR na separação
        }
    }
"""

from __future__ import annotations

import logging

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle, UserRateThrottle

from retaguarda.auth import AuthContext
from retaguarda.conf import get_retaguarda_setting
from retaguarda.exceptions import ValidationError
from retaguarda.models import InventoryCount, InventoryLabel, Loss, OrderItem, StockMovement
from retaguarda.services import (
    InventoryCountService,
    LabelService,
    OrderService,
    ProductionService,
    StockService,
)

from .handlers import exception_handler
from .serializers import (
    CountItemResultSerializer,
    InventoryApplySerializer,
    InventoryCountSerializer,
    InventoryLabelSerializer,
    LabelCreateSerializer,
    LabelNotesSerializer,
    LabelResetSerializer,
    LossCreateSerializer,
    LossSerializer,
    OrderAdvanceSerializer,
    OrderCancelSerializer,
    OrderCreateSerializer,
    OrderEventSerializer,
    OrderItemSerializer,
    OrderLabelLinkSerializer,
    OrderListSerializer,
    OrderReopenSerializer,
    OrderSerializer,
    ProductionAssignSerializer,
    SeparationSerializer,
    StockBalanceSerializer,
    StockMovementSerializer,
    TransferCreateSerializer,
    TransferMovementSerializer,
)


logger = logging.getLogger(__name__)


class TransitionRateThrottle(UserRateThrottle):
    """
    Throttle para mudanças de status (aceite, avanço, cancelamento, reabertura).

    Configure via 'retaguarda_transition' em DEFAULT_THROTTLE_RATES.
    """

    scope = "retaguarda_transition"


class SeparationRateThrottle(UserRateThrottle):
    """
    Throttle para leituras de QR na separação.

    Configure via 'retaguarda_separation' em DEFAULT_THROTTLE_RATES.
    """

    scope = "retaguarda_separation"


class RetaguardaViewMixin:
    """
    Base das views: permissões configuráveis, throttling e AuthContext.

    O estabelecimento vem do vínculo do usuário; quem tem mais de um
    informa o id no header configurado em RETAGUARDA["ESTABLISHMENT_HEADER"].
    """

    throttle_classes = [AnonRateThrottle, UserRateThrottle]
    lookup_value_regex = r"\d+"

    def get_permissions(self):
        return [permission() for permission in get_retaguarda_setting("DEFAULT_PERMISSION_CLASSES")]

    def get_exception_handler(self):
        return exception_handler

    def get_auth_context(self) -> AuthContext:
        cached = getattr(self.request, "_retaguarda_ctx", None)
        if cached is not None:
            return cached

        raw = self.request.META.get(get_retaguarda_setting("ESTABLISHMENT_HEADER"))
        establishment_id = None
        if raw:
            try:
                establishment_id = int(raw)
            except (TypeError, ValueError):
                raise ValidationError(
                    code="invalid_establishment",
                    message=f"Estabelecimento inválido: {raw!r}",
                )

        ctx = AuthContext.for_user(self.request.user, establishment_id=establishment_id)
        self.request._retaguarda_ctx = ctx
        return ctx

    def get_id_param(self, name: str) -> int | None:
        """
        Filtro numérico da querystring (?product=, ?order=, ?label=).

        Raises:
            ValidationError: Valor não numérico (invalid_filter)
        """
        raw = (self.request.query_params.get(name) or "").strip()
        if not raw:
            return None
        try:
            return int(raw)
        except ValueError:
            raise ValidationError(
                code="invalid_filter",
                message=f"Filtro '{name}' inválido: {raw!r}",
                context={"param": name, "value": raw},
            )


class OrderViewSet(RetaguardaViewMixin, viewsets.GenericViewSet):
    """
    ViewSet para pedidos.

    Endpoints:
        GET  /api/orders                 - Lista pedidos (?status=...)
        POST /api/orders                 - Cria pedido
        GET  /api/orders/{id}            - Detalhes
        POST /api/orders/{id}/accept     - Aceita (gera itens de produção)
        POST /api/orders/{id}/advance    - Avança para o próximo status
        POST /api/orders/{id}/cancel     - Cancela (motivo obrigatório)
        POST /api/orders/{id}/reopen     - Reabre pedido cancelado
        POST /api/orders/{id}/separate   - Usa etiqueta (QR) no pedido
        GET  /api/orders/{id}/timeline   - Timeline (?visible_only=1)
    """

    serializer_class = OrderSerializer

    def get_queryset(self):
        return OrderService.list_orders(self.get_auth_context())

    def list(self, request, *args, **kwargs):
        statuses = request.query_params.getlist("status")
        orders = OrderService.list_orders(self.get_auth_context(), status=statuses or None)
        return Response(OrderListSerializer(orders, many=True).data)

    def retrieve(self, request, pk=None, *args, **kwargs):
        order = OrderService.get_order(self.get_auth_context(), pk)
        return Response(OrderSerializer(order).data)

    def create(self, request, *args, **kwargs):
        s = OrderCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        order = OrderService.create_order(
            self.get_auth_context(),
            s.validated_data["lines"],
            notes=s.validated_data.get("notes", ""),
        )
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    def _order_response(self, pk):
        return Response(OrderSerializer(OrderService.get_order(self.get_auth_context(), pk)).data)

    @action(detail=True, methods=["post"], url_path="accept", throttle_classes=[TransitionRateThrottle])
    def accept(self, request, pk=None):
        OrderService.accept(self.get_auth_context(), pk, note=request.data.get("note", "") or "")
        return self._order_response(pk)

    @action(detail=True, methods=["post"], url_path="advance", throttle_classes=[TransitionRateThrottle])
    def advance(self, request, pk=None):
        s = OrderAdvanceSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        OrderService.advance(
            self.get_auth_context(),
            pk,
            to_status=s.validated_data.get("to_status") or None,
            note=s.validated_data.get("note", ""),
        )
        return self._order_response(pk)

    @action(detail=True, methods=["post"], url_path="cancel", throttle_classes=[TransitionRateThrottle])
    def cancel(self, request, pk=None):
        s = OrderCancelSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        OrderService.cancel(self.get_auth_context(), pk, s.validated_data["reason"])
        return self._order_response(pk)

    @action(detail=True, methods=["post"], url_path="reopen", throttle_classes=[TransitionRateThrottle])
    def reopen(self, request, pk=None):
        s = OrderReopenSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        OrderService.reopen(self.get_auth_context(), pk, note=s.validated_data.get("note", ""))
        return self._order_response(pk)

    @action(detail=True, methods=["post"], url_path="separate", throttle_classes=[SeparationRateThrottle])
    def separate(self, request, pk=None):
        s = SeparationSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data
        usage = LabelService.use_on_order(
            self.get_auth_context(),
            pk,
            data.get("qr_text"),
            label_code=data.get("label_code") or None,
            qty=data.get("qty"),
            order_item_id=data.get("order_item_id"),
        )
        return Response(
            {
                "link": OrderLabelLinkSerializer(usage.link).data,
                "label": InventoryLabelSerializer(usage.label).data,
                "consumed_qty": str(usage.consumed_qty),
                "remaining_qty": str(usage.remaining_qty),
                "exhausted": usage.exhausted,
                "order_item": usage.order_item.pk if usage.order_item else None,
            },
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["get"], url_path="timeline")
    def timeline(self, request, pk=None):
        visible_only = request.query_params.get("visible_only") in ("1", "true", "True")
        events = OrderService.timeline(self.get_auth_context(), pk, visible_only=visible_only)
        return Response(OrderEventSerializer(events, many=True).data)


class InventoryLabelViewSet(RetaguardaViewMixin, mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    ViewSet para etiquetas.

    Endpoints:
        GET   /api/labels                 - Lista (?status=, ?order=, ?product=)
        POST  /api/labels                 - Cria etiqueta + entrada no ledger
        GET   /api/labels/{id}            - Detalhes (inclui payload do QR)
        GET   /api/labels/preview?code=   - Resolve texto de QR sem consumir
        PATCH /api/labels/{id}/revalidate - Substitui/limpa observações
        POST  /api/labels/{id}/reset      - Desfaz separação (admin)

    Etiquetas nunca são apagadas.
    """

    serializer_class = InventoryLabelSerializer

    def get_queryset(self):
        ctx = self.get_auth_context()
        qs = InventoryLabel.objects.select_related("product").filter(establishment_id=ctx.establishment_id)
        status_filter = self.request.query_params.get("status")
        if status_filter:
            qs = qs.filter(status=status_filter)
        order_id = self.get_id_param("order")
        if order_id is not None:
            qs = qs.filter(order_id=order_id)
        product_id = self.get_id_param("product")
        if product_id is not None:
            qs = qs.filter(product_id=product_id)
        return qs.order_by("-created_at", "-id")

    def create(self, request, *args, **kwargs):
        s = LabelCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data
        label = LabelService.create_label(
            self.get_auth_context(),
            s.get_product(),
            data["qty"],
            data["unit_label"],
            data["label_code"],
            notes=data.get("notes"),
            label_type=data.get("label_type", ""),
        )
        return Response(InventoryLabelSerializer(label).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"], url_path="preview")
    def preview(self, request):
        label = LabelService.preview(self.get_auth_context(), request.query_params.get("code", ""))
        return Response(InventoryLabelSerializer(label).data)

    @action(detail=True, methods=["patch"], url_path="revalidate")
    def revalidate(self, request, pk=None):
        s = LabelNotesSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        label = LabelService.update_notes(self.get_auth_context(), int(pk), s.validated_data.get("notes"))
        return Response(InventoryLabelSerializer(label).data)

    @action(detail=True, methods=["post"], url_path="reset")
    def reset(self, request, pk=None):
        s = LabelResetSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        label = LabelService.reset(self.get_auth_context(), int(pk), note=s.validated_data.get("note", ""))
        return Response(InventoryLabelSerializer(label).data)


class StockBalanceViewSet(RetaguardaViewMixin, viewsets.ViewSet):
    """
    GET /api/stock/balances - Saldo por produto + unidade (?product=)
    """

    def list(self, request):
        ctx = self.get_auth_context()
        rows = StockService.balances(ctx.establishment_id, product_id=self.get_id_param("product"))
        return Response(StockBalanceSerializer(rows, many=True).data)


class StockMovementViewSet(RetaguardaViewMixin, mixins.ListModelMixin, viewsets.GenericViewSet):
    """
    GET /api/stock/movements - Ledger (?product=, ?label=, ?order=, ?type=)
    """

    serializer_class = StockMovementSerializer

    def get_queryset(self):
        ctx = self.get_auth_context()
        qs = StockMovement.objects.filter(establishment_id=ctx.establishment_id)
        for param, field in (("product", "product_id"), ("label", "label_id"), ("order", "order_id")):
            value = self.get_id_param(param)
            if value is not None:
                qs = qs.filter(**{field: value})
        movement_type = self.request.query_params.get("type")
        if movement_type:
            qs = qs.filter(movement_type=movement_type)
        return qs.order_by("-created_at", "-id")


class StockTransferViewSet(RetaguardaViewMixin, viewsets.ViewSet):
    """
    ViewSet para transferências entre unidades.

    Endpoints:
        GET  /api/stock/transfers                 - Lado local (?direction=IN|OUT)
        POST /api/stock/transfers                 - Transfere para outra unidade
        GET  /api/stock/transfers/{transfer_id}   - Movimentações da transferência
    """

    lookup_value_regex = r"[0-9a-f]{32}"

    def list(self, request):
        direction = (request.query_params.get("direction") or "").strip().upper()
        if direction == "ALL":
            direction = ""
        rows = StockService.list_transfers(self.get_auth_context(), direction=direction or None)
        return Response(TransferMovementSerializer(rows, many=True).data)

    def retrieve(self, request, pk=None):
        rows = StockService.transfer_details(self.get_auth_context(), pk)
        return Response({"transfer_id": pk, "rows": TransferMovementSerializer(rows, many=True).data})

    def create(self, request):
        s = TransferCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        transfer = StockService.transfer(self.get_auth_context(), **s.validated_data)
        return Response(
            {
                "transfer_id": transfer.transfer_id,
                "outbound": TransferMovementSerializer(transfer.outbound).data,
                "inbound": TransferMovementSerializer(transfer.inbound).data,
            },
            status=status.HTTP_201_CREATED,
        )


class LossViewSet(RetaguardaViewMixin, mixins.ListModelMixin, viewsets.GenericViewSet):
    """
    GET  /api/losses - Lista perdas
    POST /api/losses - Registra perda (saída "perda" no ledger)
    """

    serializer_class = LossSerializer

    def get_queryset(self):
        ctx = self.get_auth_context()
        return Loss.objects.select_related("product").filter(establishment_id=ctx.establishment_id)

    def create(self, request, *args, **kwargs):
        s = LossCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        loss = StockService.register_loss(self.get_auth_context(), **s.validated_data)
        return Response(LossSerializer(loss).data, status=status.HTTP_201_CREATED)


class InventoryCountViewSet(RetaguardaViewMixin, mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    GET  /api/inventory-counts      - Lista sessões de contagem
    GET  /api/inventory-counts/{id} - Detalhes
    POST /api/inventory-counts      - Aplica contagem; resultado por item
    """

    serializer_class = InventoryCountSerializer

    def get_queryset(self):
        ctx = self.get_auth_context()
        return InventoryCount.objects.filter(establishment_id=ctx.establishment_id)

    def create(self, request, *args, **kwargs):
        s = InventoryApplySerializer(data=request.data)
        s.is_valid(raise_exception=True)
        result = InventoryCountService.apply(
            self.get_auth_context(),
            s.validated_data["entries"],
            notes=s.validated_data.get("notes", ""),
        )
        return Response(
            {
                "ok": result.ok,
                "inventory_count": InventoryCountSerializer(result.inventory_count).data,
                "items": CountItemResultSerializer(result.items, many=True).data,
                "summary_ok": bool(result.summary and result.summary.ok),
            },
            status=status.HTTP_201_CREATED,
        )


class ProductionItemViewSet(RetaguardaViewMixin, mixins.ListModelMixin, viewsets.GenericViewSet):
    """
    ViewSet do KDS.

    Endpoints:
        GET  /api/production-items              - Itens de pedidos em produção
        POST /api/production-items/{id}/assign  - Define colaborador (líderes)
        POST /api/production-items/{id}/advance - Avança um passo
    """

    serializer_class = OrderItemSerializer

    def get_queryset(self):
        return ProductionService.board(self.get_auth_context())

    @action(detail=True, methods=["post"], url_path="assign")
    def assign(self, request, pk=None):
        s = ProductionAssignSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        item = ProductionService.assign(self.get_auth_context(), int(pk), s.validated_data["collaborator_id"])
        return Response(OrderItemSerializer(item).data)

    @action(detail=True, methods=["post"], url_path="advance")
    def advance(self, request, pk=None):
        step = ProductionService.advance(self.get_auth_context(), int(pk))
        item = OrderItem.objects.select_related("order").get(pk=step.item.pk)
        return Response({"item": OrderItemSerializer(item).data, "changed": step.changed})
