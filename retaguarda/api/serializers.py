from __future__ import annotations

from rest_framework import serializers

from retaguarda.models import (
    InventoryCount,
    InventoryLabel,
    Loss,
    Order,
    OrderItem,
    OrderLabelLink,
    OrderLineItem,
    OrderStatusEvent,
    StockMovement,
)
from retaguarda.services.qr import build_qr_payload


# =============================================================================
# PEDIDOS
# =============================================================================


class OrderLineItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderLineItem
        fields = ("id", "product_name", "qty", "unit_label")


class OrderItemSerializer(serializers.ModelSerializer):
    order_number = serializers.IntegerField(source="order.number", read_only=True)

    class Meta:
        model = OrderItem
        fields = (
            "id",
            "order",
            "order_number",
            "product",
            "product_name",
            "unit_label",
            "order_qty",
            "on_hand_qty",
            "missing_qty",
            "production_status",
            "production_assigned_to",
            "production_start_at",
            "production_end_at",
        )


class OrderLabelLinkSerializer(serializers.ModelSerializer):
    label_code = serializers.CharField(source="label.label_code", read_only=True)

    class Meta:
        model = OrderLabelLink
        fields = ("id", "label", "label_code", "order_item", "qty_used", "unit_label", "created_at")


class OrderSerializer(serializers.ModelSerializer):
    line_items = OrderLineItemSerializer(many=True, read_only=True)
    items = OrderItemSerializer(many=True, read_only=True)
    label_links = OrderLabelLinkSerializer(many=True, read_only=True)
    next_status = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = (
            "id",
            "number",
            "status",
            "next_status",
            "notes",
            "created_at",
            "updated_at",
            "accepted_by",
            "accepted_at",
            "canceled_by",
            "canceled_at",
            "cancel_reason",
            "reopened_by",
            "reopened_at",
            "line_items",
            "items",
            "label_links",
        )

    def get_next_status(self, obj: Order) -> str | None:
        # Sugestão para a interface; o servidor revalida no avanço
        return obj.next_status()


class OrderListSerializer(serializers.ModelSerializer):
    class Meta:
        model = Order
        fields = ("id", "number", "status", "notes", "created_at", "updated_at")


class OrderEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusEvent
        fields = ("id", "from_status", "to_status", "client_label", "visible_to_client", "note", "actor", "created_at")


class OrderLineInputSerializer(serializers.Serializer):
    product_name = serializers.CharField(allow_blank=True, default="")
    qty = serializers.DecimalField(max_digits=12, decimal_places=3)
    unit_label = serializers.CharField(allow_blank=True, default="")


class OrderCreateSerializer(serializers.Serializer):
    """
    POST /api/orders

    Linhas repetidas (mesmo produto + unidade) são somadas.
    """

    lines = OrderLineInputSerializer(many=True, allow_empty=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class OrderAdvanceSerializer(serializers.Serializer):
    to_status = serializers.ChoiceField(choices=Order.Status.choices, required=False, allow_blank=True)
    note = serializers.CharField(required=False, allow_blank=True, default="")


class OrderCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(allow_blank=True, default="")


class OrderReopenSerializer(serializers.Serializer):
    note = serializers.CharField(required=False, allow_blank=True, default="")


class SeparationSerializer(serializers.Serializer):
    """
    POST /api/orders/{id}/separate

    qr_text aceita JSON, JSON codificado duas vezes ou o código cru.
    """

    qr_text = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    label_code = serializers.CharField(required=False, allow_blank=True)
    qty = serializers.DecimalField(max_digits=12, decimal_places=3, required=False, allow_null=True)
    order_item_id = serializers.IntegerField(required=False, allow_null=True)


# =============================================================================
# ETIQUETAS
# =============================================================================


class InventoryLabelSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)
    available_qty = serializers.DecimalField(max_digits=12, decimal_places=3, read_only=True)
    qr_payload = serializers.SerializerMethodField()

    class Meta:
        model = InventoryLabel
        fields = (
            "id",
            "product",
            "product_name",
            "label_code",
            "label_type",
            "qty",
            "used_qty",
            "available_qty",
            "unit_label",
            "status",
            "order",
            "separated_at",
            "separated_by",
            "notes",
            "qr_payload",
            "created_at",
        )

    def get_qr_payload(self, obj: InventoryLabel) -> str:
        return build_qr_payload(obj, product_name=obj.product.name)


class LabelCreateSerializer(serializers.Serializer):
    """
    POST /api/labels

    Produto por product_id ou por product_name (nome exato, sem caixa).
    """

    product_id = serializers.IntegerField(required=False, allow_null=True)
    product_name = serializers.CharField(required=False, allow_blank=True)
    qty = serializers.DecimalField(max_digits=12, decimal_places=3)
    unit_label = serializers.CharField(allow_blank=True, default="")
    label_code = serializers.CharField(allow_blank=True, default="")
    label_type = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.JSONField(required=False, allow_null=True, default=None)

    def get_product(self):
        data = self.validated_data
        if data.get("product_id") is not None:
            return data["product_id"]
        return data.get("product_name") or None


class LabelNotesSerializer(serializers.Serializer):
    notes = serializers.JSONField(required=False, allow_null=True, default=None)


class LabelResetSerializer(serializers.Serializer):
    note = serializers.CharField(required=False, allow_blank=True, default="")


# =============================================================================
# ESTOQUE
# =============================================================================


class StockBalanceSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    product_name = serializers.CharField()
    unit_label = serializers.CharField()
    current_stock = serializers.DecimalField(max_digits=14, decimal_places=3)


class StockMovementSerializer(serializers.ModelSerializer):
    class Meta:
        model = StockMovement
        fields = (
            "id",
            "product",
            "unit_label",
            "qty",
            "direction",
            "movement_type",
            "reason",
            "label",
            "order",
            "inventory_count",
            "details",
            "created_by",
            "created_at",
        )


class TransferMovementSerializer(serializers.ModelSerializer):
    transfer_id = serializers.SerializerMethodField()
    product_name = serializers.CharField(source="product.name", read_only=True)

    class Meta:
        model = StockMovement
        fields = (
            "id",
            "transfer_id",
            "establishment",
            "product",
            "product_name",
            "unit_label",
            "qty",
            "direction",
            "reason",
            "details",
            "created_by",
            "created_at",
        )

    def get_transfer_id(self, obj) -> str:
        return (obj.details or {}).get("transfer_id", "")


class TransferCreateSerializer(serializers.Serializer):
    to_establishment_id = serializers.IntegerField()
    product_id = serializers.IntegerField()
    qty = serializers.DecimalField(max_digits=12, decimal_places=3)
    unit_label = serializers.CharField(allow_blank=True, default="")
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class LossSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)

    class Meta:
        model = Loss
        fields = (
            "id",
            "product",
            "product_name",
            "qty",
            "unit_label",
            "reason",
            "reason_detail",
            "lot",
            "label_code",
            "movement",
            "created_by",
            "created_at",
        )


class LossCreateSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    qty = serializers.DecimalField(max_digits=12, decimal_places=3)
    unit_label = serializers.CharField(allow_blank=True, default="")
    reason = serializers.CharField(allow_blank=True, default="")
    reason_detail = serializers.CharField(required=False, allow_blank=True, default="")
    lot = serializers.CharField(required=False, allow_blank=True, default="")
    label_code = serializers.CharField(required=False, allow_blank=True, default="")
    allow_negative = serializers.BooleanField(required=False, default=False)


# =============================================================================
# INVENTÁRIO
# =============================================================================


class CountEntryInputSerializer(serializers.Serializer):
    # Entradas inválidas seguem para o serviço e voltam como not_found
    product = serializers.CharField(allow_blank=True, default="")
    unit_label = serializers.CharField(allow_blank=True, default="")
    qty = serializers.CharField(allow_blank=True, default="")


class InventoryApplySerializer(serializers.Serializer):
    entries = CountEntryInputSerializer(many=True, allow_empty=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class CountItemResultSerializer(serializers.Serializer):
    product_name = serializers.CharField()
    unit_label = serializers.CharField()
    counted = serializers.DecimalField(max_digits=14, decimal_places=3)
    current = serializers.DecimalField(max_digits=14, decimal_places=3)
    diff = serializers.DecimalField(max_digits=14, decimal_places=3)
    product_id = serializers.IntegerField(allow_null=True)
    status = serializers.CharField()
    message = serializers.CharField(allow_blank=True)


class InventoryCountSerializer(serializers.ModelSerializer):
    class Meta:
        model = InventoryCount
        fields = ("id", "started_at", "finished_at", "items_count", "products_count", "notes", "created_by")


# =============================================================================
# PRODUÇÃO
# =============================================================================


class ProductionAssignSerializer(serializers.Serializer):
    collaborator_id = serializers.IntegerField()
