from __future__ import annotations

import logging

from django.contrib import admin
from django.http import HttpResponseRedirect
from django.urls import reverse
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.contrib.filters.admin.choice_filters import ChoicesRadioFilter
from unfold.decorators import action, display

from .auth import AuthContext
from .exceptions import RetaguardaError
from .models import (
    Establishment,
    InventoryCount,
    InventoryCountItem,
    InventoryLabel,
    Loss,
    Membership,
    Order,
    OrderItem,
    OrderLabelLink,
    OrderLineItem,
    OrderStatusEvent,
    Product,
    ProductionRecord,
    StockMovement,
)
from .services import LabelService, OrderService


logger = logging.getLogger(__name__)


class ReadOnlyInline(TabularInline):
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False


class AppendOnlyAdminMixin:
    """Ledgers e timelines: só leitura no admin."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


def _admin_context(request, establishment_id: int) -> AuthContext:
    return AuthContext.for_user(request.user, establishment_id=establishment_id)


# =============================================================================
# ESTABELECIMENTO / CATÁLOGO
# =============================================================================


class MembershipInline(TabularInline):
    model = Membership
    extra = 0
    fields = ("user", "role", "is_active")
    autocomplete_fields = ("user",)


@admin.register(Establishment)
class EstablishmentAdmin(ModelAdmin):
    list_display = ("name", "code", "is_active", "created_at")
    list_filter = ("is_active",)
    search_fields = ("name", "code")
    ordering = ("name", "id")
    compressed_fields = True
    inlines = [MembershipInline]


@admin.register(Membership)
class MembershipAdmin(ModelAdmin):
    list_display = ("user", "establishment", "role", "is_active")
    list_filter = ("establishment", ("role", ChoicesRadioFilter), "is_active")
    search_fields = ("user__username", "establishment__name")
    autocomplete_fields = ("user", "establishment")
    list_filter_submit = True


@admin.register(Product)
class ProductAdmin(ModelAdmin):
    list_display = ("name", "code", "default_unit_label", "establishment", "is_active")
    list_filter = ("establishment", "is_active")
    search_fields = ("name", "code")
    ordering = ("name", "id")
    compressed_fields = True


# =============================================================================
# PEDIDOS
# =============================================================================


class OrderLineItemInline(ReadOnlyInline):
    model = OrderLineItem
    fields = ("product_name", "qty", "unit_label")
    readonly_fields = fields


class OrderItemInline(ReadOnlyInline):
    model = OrderItem
    fields = (
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
    readonly_fields = fields


class OrderLabelLinkInline(ReadOnlyInline):
    model = OrderLabelLink
    fields = ("label", "order_item", "qty_used", "unit_label", "created_by", "created_at")
    readonly_fields = fields


class OrderStatusEventInline(ReadOnlyInline):
    model = OrderStatusEvent
    fields = ("from_status", "to_status", "client_label", "note", "actor", "created_at")
    readonly_fields = fields
    ordering = ("created_at", "id")


@admin.register(Order)
class OrderAdmin(ModelAdmin):
    list_display = ("number", "establishment", "status_badge", "created_at", "updated_at")
    list_filter = ("establishment", ("status", ChoicesRadioFilter))
    search_fields = ("=number", "notes", "cancel_reason")
    ordering = ("-created_at", "-id")
    date_hierarchy = "created_at"
    list_filter_submit = True
    list_fullwidth = True
    compressed_fields = True

    inlines = [OrderLineItemInline, OrderItemInline, OrderLabelLinkInline, OrderStatusEventInline]

    actions_detail = ["advance_detail_action"]

    fieldsets = (
        (_("Identidade"), {"fields": ("establishment", "number", "status", "notes"), "classes": ("tab",)}),
        (
            _("Auditoria"),
            {
                "fields": (
                    "created_by",
                    "created_at",
                    "updated_at",
                    "accepted_by",
                    "accepted_at",
                    "canceled_by",
                    "canceled_at",
                    "cancel_reason",
                    "reopened_by",
                    "reopened_at",
                ),
                "classes": ("tab",),
            },
        ),
    )
    # Status só muda pelos serviços (aceite, avanço, cancelamento, reabertura)
    readonly_fields = (
        "establishment",
        "number",
        "status",
        "notes",
        "created_by",
        "created_at",
        "updated_at",
        "accepted_by",
        "accepted_at",
        "canceled_by",
        "canceled_at",
        "cancel_reason",
        "reopened_by",
        "reopened_at",
    )

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @display(
        description=_("status"),
        label={
            "pedido criado": "info",
            "pedido aceito": "info",
            "em preparo": "warning",
            "em separação": "warning",
            "em faturamento": "warning",
            "em transporte": "warning",
            "entregue": "success",
            "cancelado": "danger",
            "reaberto": "info",
        },
    )
    def status_badge(self, obj: Order) -> str:
        return obj.get_status_display()

    @action(description=_("Avançar status"), url_path="advance", icon="arrow_forward")
    def advance_detail_action(self, request, object_id):
        order = self.get_object(request, object_id)
        if order is None:
            self.message_user(request, _("Pedido não encontrado."), level="error")
            return HttpResponseRedirect(reverse("admin:retaguarda_order_changelist"))

        try:
            ctx = _admin_context(request, order.establishment_id)
            if order.status == Order.Status.PEDIDO_CRIADO:
                OrderService.accept(ctx, order.pk)
            else:
                OrderService.advance(ctx, order.pk)
        except RetaguardaError as exc:
            self.message_user(request, exc.message, level="error")
        else:
            self.message_user(request, _("Status atualizado."))

        return HttpResponseRedirect(reverse("admin:retaguarda_order_change", args=[object_id]))


# =============================================================================
# ETIQUETAS / ESTOQUE
# =============================================================================


@admin.register(InventoryLabel)
class InventoryLabelAdmin(ModelAdmin):
    list_display = ("label_code", "product", "qty", "used_qty", "unit_label", "status_badge", "order", "created_at")
    list_filter = ("establishment", "status", "label_type")
    search_fields = ("label_code", "product__name")
    ordering = ("-created_at", "-id")
    date_hierarchy = "created_at"
    list_filter_submit = True
    list_fullwidth = True
    readonly_fields = (
        "establishment",
        "product",
        "label_code",
        "label_type",
        "qty",
        "used_qty",
        "unit_label",
        "status",
        "order",
        "separated_at",
        "separated_by",
        "created_by",
        "created_at",
    )

    actions_detail = ["reset_detail_action"]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @display(
        description=_("status"),
        label={
            "available": "success",
            "disponivel": "success",
            "separated": "warning",
            "consumed": "secondary",
            "canceled": "danger",
        },
    )
    def status_badge(self, obj: InventoryLabel) -> str:
        return obj.status

    @action(description=_("Reiniciar etiqueta"), url_path="reset", icon="restart_alt")
    def reset_detail_action(self, request, object_id):
        label = self.get_object(request, object_id)
        if label is None:
            self.message_user(request, _("Etiqueta não encontrada."), level="error")
            return HttpResponseRedirect(reverse("admin:retaguarda_inventorylabel_changelist"))

        try:
            LabelService.reset(_admin_context(request, label.establishment_id), label.pk, note="admin")
        except RetaguardaError as exc:
            self.message_user(request, exc.message, level="error")
        else:
            self.message_user(request, _("Etiqueta reiniciada."))

        return HttpResponseRedirect(reverse("admin:retaguarda_inventorylabel_change", args=[object_id]))


@admin.register(StockMovement)
class StockMovementAdmin(AppendOnlyAdminMixin, ModelAdmin):
    list_display = ("created_at", "product", "direction_badge", "qty", "unit_label", "movement_type", "reason")
    list_filter = ("establishment", ("direction", ChoicesRadioFilter), "movement_type")
    search_fields = ("product__name", "label__label_code", "reason")
    ordering = ("-created_at", "-id")
    date_hierarchy = "created_at"
    list_filter_submit = True
    list_fullwidth = True

    @display(description=_("direção"), label={"IN": "success", "OUT": "danger"})
    def direction_badge(self, obj: StockMovement) -> str:
        return obj.direction


@admin.register(Loss)
class LossAdmin(AppendOnlyAdminMixin, ModelAdmin):
    list_display = ("created_at", "product", "qty", "unit_label", "reason", "label_code")
    list_filter = ("establishment", "reason")
    search_fields = ("product__name", "label_code", "lot", "reason_detail")
    ordering = ("-created_at", "-id")
    date_hierarchy = "created_at"


class InventoryCountItemInline(ReadOnlyInline):
    model = InventoryCountItem
    fields = ("product", "unit_label", "counted_qty", "current_stock_before", "diff_qty", "movement")
    readonly_fields = fields


@admin.register(InventoryCount)
class InventoryCountAdmin(AppendOnlyAdminMixin, ModelAdmin):
    list_display = ("id", "establishment", "started_at", "finished_at", "items_count", "products_count")
    list_filter = ("establishment",)
    ordering = ("-started_at", "-id")
    inlines = [InventoryCountItemInline]


@admin.register(ProductionRecord)
class ProductionRecordAdmin(AppendOnlyAdminMixin, ModelAdmin):
    list_display = ("end_at", "order_item", "collaborator", "qty", "unit_label", "duration_minutes")
    search_fields = ("order_item__product_name",)
    ordering = ("-end_at", "-id")
    date_hierarchy = "end_at"
