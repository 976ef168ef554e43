from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import retaguarda.models.stock


STATUS_CHOICES = [
    ("pedido_criado", "pedido criado"),
    ("aceitou_pedido", "pedido aceito"),
    ("em_preparo", "em preparo"),
    ("em_separacao", "em separação"),
    ("em_faturamento", "em faturamento"),
    ("em_transporte", "em transporte"),
    ("entregue", "entregue"),
    ("cancelado", "cancelado"),
    ("reaberto", "reaberto"),
]

ROLE_CHOICES = [
    ("cliente", "cliente"),
    ("operacao", "operação"),
    ("producao", "produção"),
    ("estoque", "estoque"),
    ("fiscal", "fiscal"),
    ("admin", "administrador"),
    ("entrega", "entrega"),
]

PRODUCTION_STATUS_CHOICES = [
    ("pending", "pendente"),
    ("in_progress", "em produção"),
    ("done", "pronto"),
    ("no_production_needed", "sem produção"),
]

MOVEMENT_TYPE_CHOICES = [
    ("LABEL_IN", "entrada por etiqueta"),
    ("OUT_ORDER", "saída para pedido"),
    ("ajuste_inventario", "ajuste de inventário"),
    ("perda", "perda"),
    ("estorno_etiqueta", "estorno de etiqueta"),
]


def _id():
    return models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")


def _qty(verbose_name, **kwargs):
    return models.DecimalField(decimal_places=3, max_digits=12, verbose_name=verbose_name, **kwargs)


def _user_fk(verbose_name):
    return models.ForeignKey(
        blank=True,
        null=True,
        on_delete=django.db.models.deletion.SET_NULL,
        related_name="+",
        to=settings.AUTH_USER_MODEL,
        verbose_name=verbose_name,
    )


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Establishment",
            fields=[
                ("id", _id()),
                ("name", models.CharField(max_length=128, verbose_name="nome")),
                (
                    "code",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Sigla usada nos códigos de etiqueta (ex.: IE)",
                        max_length=8,
                        verbose_name="código",
                    ),
                ),
                ("is_active", models.BooleanField(default=True, verbose_name="ativo")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
            ],
            options={
                "verbose_name": "estabelecimento",
                "verbose_name_plural": "estabelecimentos",
                "ordering": ("name", "id"),
            },
        ),
        migrations.CreateModel(
            name="Membership",
            fields=[
                ("id", _id()),
                ("role", models.CharField(choices=ROLE_CHOICES, db_index=True, max_length=16, verbose_name="papel")),
                ("is_active", models.BooleanField(default=True, verbose_name="ativo")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                (
                    "establishment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="memberships",
                        to="retaguarda.establishment",
                        verbose_name="estabelecimento",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="retaguarda_memberships",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="usuário",
                    ),
                ),
            ],
            options={
                "verbose_name": "vínculo",
                "verbose_name_plural": "vínculos",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("user", "establishment"),
                        name="uniq_membership_user_establishment",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", _id()),
                ("name", models.CharField(max_length=200, verbose_name="nome")),
                ("code", models.CharField(blank=True, default="", max_length=16, verbose_name="código")),
                (
                    "default_unit_label",
                    models.CharField(blank=True, default="UN", max_length=30, verbose_name="unidade padrão"),
                ),
                ("is_active", models.BooleanField(default=True, verbose_name="ativo")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                (
                    "establishment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="products",
                        to="retaguarda.establishment",
                        verbose_name="estabelecimento",
                    ),
                ),
            ],
            options={
                "verbose_name": "produto",
                "verbose_name_plural": "produtos",
                "ordering": ("name", "id"),
                "constraints": [
                    models.UniqueConstraint(
                        fields=("establishment", "name"),
                        name="uniq_product_establishment_name",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", _id()),
                ("number", models.PositiveIntegerField(verbose_name="número")),
                (
                    "status",
                    models.CharField(
                        choices=STATUS_CHOICES,
                        db_index=True,
                        default="pedido_criado",
                        max_length=32,
                        verbose_name="status",
                    ),
                ),
                ("notes", models.TextField(blank=True, default="", verbose_name="observações")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="atualizado em")),
                ("accepted_at", models.DateTimeField(blank=True, null=True, verbose_name="aceito em")),
                ("canceled_at", models.DateTimeField(blank=True, null=True, verbose_name="cancelado em")),
                ("cancel_reason", models.TextField(blank=True, default="", verbose_name="motivo do cancelamento")),
                ("reopened_at", models.DateTimeField(blank=True, null=True, verbose_name="reaberto em")),
                ("accepted_by", _user_fk("aceito por")),
                ("canceled_by", _user_fk("cancelado por")),
                ("created_by", _user_fk("criado por")),
                ("reopened_by", _user_fk("reaberto por")),
                (
                    "establishment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="retaguarda.establishment",
                        verbose_name="estabelecimento",
                    ),
                ),
            ],
            options={
                "verbose_name": "pedido",
                "verbose_name_plural": "pedidos",
                "ordering": ("-created_at", "id"),
                "constraints": [
                    models.UniqueConstraint(
                        fields=("establishment", "number"),
                        name="uniq_order_establishment_number",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderSequence",
            fields=[
                ("id", _id()),
                ("last_value", models.PositiveIntegerField(default=0, verbose_name="último valor")),
                (
                    "establishment",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="order_sequence",
                        to="retaguarda.establishment",
                        verbose_name="estabelecimento",
                    ),
                ),
            ],
            options={
                "verbose_name": "sequência de pedidos",
                "verbose_name_plural": "sequências de pedidos",
            },
        ),
        migrations.CreateModel(
            name="OrderLineItem",
            fields=[
                ("id", _id()),
                ("product_name", models.CharField(max_length=200, verbose_name="produto")),
                ("qty", _qty("quantidade")),
                ("unit_label", models.CharField(max_length=30, verbose_name="unidade")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="line_items",
                        to="retaguarda.order",
                        verbose_name="pedido",
                    ),
                ),
            ],
            options={
                "verbose_name": "linha do pedido",
                "verbose_name_plural": "linhas do pedido",
                "ordering": ("id",),
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("qty__gt", 0)),
                        name="order_line_item_qty_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                ("id", _id()),
                ("product_name", models.CharField(max_length=200, verbose_name="produto")),
                ("unit_label", models.CharField(max_length=30, verbose_name="unidade")),
                ("order_qty", _qty("quantidade pedida")),
                ("on_hand_qty", _qty("saldo no aceite", default=0)),
                ("missing_qty", _qty("quantidade faltante", default=0)),
                (
                    "production_status",
                    models.CharField(
                        choices=PRODUCTION_STATUS_CHOICES,
                        db_index=True,
                        default="pending",
                        max_length=32,
                        verbose_name="status de produção",
                    ),
                ),
                ("production_start_at", models.DateTimeField(blank=True, null=True, verbose_name="início da produção")),
                ("production_end_at", models.DateTimeField(blank=True, null=True, verbose_name="fim da produção")),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="retaguarda.order",
                        verbose_name="pedido",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to="retaguarda.product",
                        verbose_name="produto",
                    ),
                ),
                ("production_assigned_to", _user_fk("colaborador")),
            ],
            options={
                "verbose_name": "item de produção",
                "verbose_name_plural": "itens de produção",
                "ordering": ("id",),
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("order_qty__gt", 0)),
                        name="order_item_qty_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("missing_qty__gte", 0)),
                        name="order_item_missing_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderStatusEvent",
            fields=[
                ("id", _id()),
                ("from_status", models.CharField(blank=True, max_length=32, null=True, verbose_name="de")),
                ("to_status", models.CharField(max_length=32, verbose_name="para")),
                (
                    "client_label",
                    models.CharField(blank=True, default="", max_length=128, verbose_name="rótulo ao cliente"),
                ),
                ("visible_to_client", models.BooleanField(default=False, verbose_name="visível ao cliente")),
                ("note", models.TextField(blank=True, default="", verbose_name="observação")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                ("actor", _user_fk("ator")),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="events",
                        to="retaguarda.order",
                        verbose_name="pedido",
                    ),
                ),
            ],
            options={
                "verbose_name": "evento do pedido",
                "verbose_name_plural": "eventos do pedido",
                "ordering": ("created_at", "id"),
            },
        ),
        migrations.CreateModel(
            name="InventoryLabel",
            fields=[
                ("id", _id()),
                ("label_code", models.CharField(max_length=64, verbose_name="código/lote")),
                (
                    "label_type",
                    models.CharField(
                        blank=True,
                        choices=[("MANIPULACAO", "manipulação"), ("FABRICANTE", "fabricante")],
                        default="",
                        max_length=16,
                        verbose_name="tipo",
                    ),
                ),
                ("qty", _qty("quantidade")),
                ("used_qty", _qty("quantidade usada", default=Decimal("0"))),
                ("unit_label", models.CharField(max_length=30, verbose_name="unidade")),
                ("status", models.CharField(db_index=True, default="available", max_length=16, verbose_name="status")),
                ("separated_at", models.DateTimeField(blank=True, null=True, verbose_name="separada em")),
                ("notes", models.JSONField(blank=True, null=True, verbose_name="observações")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criada em")),
                ("created_by", _user_fk("criada por")),
                (
                    "establishment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="labels",
                        to="retaguarda.establishment",
                        verbose_name="estabelecimento",
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="labels",
                        to="retaguarda.order",
                        verbose_name="último pedido",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="labels",
                        to="retaguarda.product",
                        verbose_name="produto",
                    ),
                ),
                ("separated_by", _user_fk("separada por")),
            ],
            options={
                "verbose_name": "etiqueta",
                "verbose_name_plural": "etiquetas",
                "ordering": ("-created_at", "id"),
                "constraints": [
                    models.UniqueConstraint(
                        fields=("establishment", "label_code"),
                        name="uniq_label_establishment_code",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("qty__gt", 0)),
                        name="label_qty_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("used_qty__gte", 0), ("used_qty__lte", models.F("qty"))),
                        name="label_used_qty_within_qty",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderLabelLink",
            fields=[
                ("id", _id()),
                ("qty_used", _qty("quantidade usada")),
                ("unit_label", models.CharField(max_length=30, verbose_name="unidade")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                ("created_by", _user_fk("registrado por")),
                (
                    "label",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="order_links",
                        to="retaguarda.inventorylabel",
                        verbose_name="etiqueta",
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="label_links",
                        to="retaguarda.order",
                        verbose_name="pedido",
                    ),
                ),
                (
                    "order_item",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="label_links",
                        to="retaguarda.orderitem",
                        verbose_name="item do pedido",
                    ),
                ),
            ],
            options={
                "verbose_name": "etiqueta do pedido",
                "verbose_name_plural": "etiquetas do pedido",
                "ordering": ("created_at", "id"),
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("qty_used__gt", 0)),
                        name="order_label_link_qty_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="InventoryCount",
            fields=[
                ("id", _id()),
                ("started_at", models.DateTimeField(verbose_name="iniciado em")),
                ("finished_at", models.DateTimeField(blank=True, null=True, verbose_name="finalizado em")),
                ("items_count", models.PositiveIntegerField(default=0, verbose_name="itens")),
                ("products_count", models.PositiveIntegerField(default=0, verbose_name="produtos")),
                ("notes", models.TextField(blank=True, default="", verbose_name="observações")),
                ("created_by", _user_fk("criado por")),
                (
                    "establishment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="inventory_counts",
                        to="retaguarda.establishment",
                        verbose_name="estabelecimento",
                    ),
                ),
            ],
            options={
                "verbose_name": "inventário",
                "verbose_name_plural": "inventários",
                "ordering": ("-started_at", "id"),
            },
        ),
        migrations.CreateModel(
            name="StockMovement",
            fields=[
                ("id", _id()),
                ("unit_label", models.CharField(max_length=30, verbose_name="unidade")),
                ("qty", _qty("quantidade")),
                (
                    "direction",
                    models.CharField(
                        choices=[("IN", "entrada"), ("OUT", "saída")],
                        max_length=3,
                        verbose_name="direção",
                    ),
                ),
                (
                    "movement_type",
                    models.CharField(
                        choices=MOVEMENT_TYPE_CHOICES,
                        db_index=True,
                        max_length=32,
                        verbose_name="tipo",
                    ),
                ),
                ("reason", models.CharField(blank=True, default="", max_length=60, verbose_name="motivo")),
                (
                    "details",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        encoder=retaguarda.models.stock.DecimalEncoder,
                        verbose_name="detalhes",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="criado em")),
                ("created_by", _user_fk("registrado por")),
                (
                    "establishment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movements",
                        to="retaguarda.establishment",
                        verbose_name="estabelecimento",
                    ),
                ),
                (
                    "inventory_count",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movements",
                        to="retaguarda.inventorycount",
                        verbose_name="inventário",
                    ),
                ),
                (
                    "label",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movements",
                        to="retaguarda.inventorylabel",
                        verbose_name="etiqueta",
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movements",
                        to="retaguarda.order",
                        verbose_name="pedido",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movements",
                        to="retaguarda.product",
                        verbose_name="produto",
                    ),
                ),
            ],
            options={
                "verbose_name": "movimentação de estoque",
                "verbose_name_plural": "movimentações de estoque",
                "ordering": ("created_at", "id"),
                "indexes": [
                    models.Index(
                        fields=["establishment", "product", "unit_label"],
                        name="movement_stock_key_idx",
                    ),
                    models.Index(
                        fields=["label", "movement_type"],
                        name="movement_label_type_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("qty__gt", 0)),
                        name="stock_movement_qty_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="InventoryCountItem",
            fields=[
                ("id", _id()),
                ("unit_label", models.CharField(max_length=30, verbose_name="unidade")),
                ("counted_qty", _qty("contado")),
                ("current_stock_before", _qty("saldo antes")),
                ("diff_qty", _qty("diferença")),
                (
                    "inventory_count",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="retaguarda.inventorycount",
                        verbose_name="inventário",
                    ),
                ),
                (
                    "movement",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="count_item",
                        to="retaguarda.stockmovement",
                        verbose_name="ajuste",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to="retaguarda.product",
                        verbose_name="produto",
                    ),
                ),
            ],
            options={
                "verbose_name": "item de inventário",
                "verbose_name_plural": "itens de inventário",
                "ordering": ("id",),
                "constraints": [
                    models.UniqueConstraint(
                        fields=("inventory_count", "product", "unit_label"),
                        name="uniq_count_item_product_unit",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Loss",
            fields=[
                ("id", _id()),
                ("qty", _qty("quantidade")),
                ("unit_label", models.CharField(max_length=30, verbose_name="unidade")),
                ("reason", models.CharField(max_length=60, verbose_name="motivo")),
                ("reason_detail", models.TextField(blank=True, default="", verbose_name="detalhe do motivo")),
                ("lot", models.CharField(blank=True, default="", max_length=64, verbose_name="lote")),
                (
                    "label_code",
                    models.CharField(blank=True, default="", max_length=64, verbose_name="código da etiqueta"),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                ("created_by", _user_fk("registrado por")),
                (
                    "establishment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="losses",
                        to="retaguarda.establishment",
                        verbose_name="estabelecimento",
                    ),
                ),
                (
                    "movement",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="loss",
                        to="retaguarda.stockmovement",
                        verbose_name="movimentação",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="losses",
                        to="retaguarda.product",
                        verbose_name="produto",
                    ),
                ),
            ],
            options={
                "verbose_name": "perda",
                "verbose_name_plural": "perdas",
                "ordering": ("-created_at", "id"),
            },
        ),
        migrations.CreateModel(
            name="ProductionRecord",
            fields=[
                ("id", _id()),
                ("qty", _qty("quantidade")),
                ("unit_label", models.CharField(max_length=30, verbose_name="unidade")),
                ("start_at", models.DateTimeField(blank=True, null=True, verbose_name="início")),
                ("end_at", models.DateTimeField(verbose_name="fim")),
                ("duration_minutes", models.PositiveIntegerField(blank=True, null=True, verbose_name="duração (min)")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                ("collaborator", _user_fk("colaborador")),
                (
                    "order_item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="productivity",
                        to="retaguarda.orderitem",
                        verbose_name="item de produção",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="retaguarda.product",
                        verbose_name="produto",
                    ),
                ),
            ],
            options={
                "verbose_name": "registro de produtividade",
                "verbose_name_plural": "registros de produtividade",
                "ordering": ("-end_at", "id"),
            },
        ),
    ]
