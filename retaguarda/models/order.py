from __future__ import annotations

from django.conf import settings
from django.db import models, transaction
from django.utils.translation import gettext_lazy as _


class Order(models.Model):
    """
    Pedido de um estabelecimento.

    Status canônicos:
    - pedido_criado: Recebido, aguardando aceite
    - aceitou_pedido: Aceito; itens de produção já calculados
    - em_preparo: Produção em andamento (KDS)
    - em_separacao: Etiquetas sendo lidas e consumidas contra o pedido
    - em_faturamento: Separado, aguardando nota/fiscal
    - em_transporte: Saiu para entrega
    - entregue: Entregue ao destino
    - cancelado: Cancelado (com motivo)
    - reaberto: Valor legado; reabertura grava aceitou_pedido

    Fluxo:
        pedido_criado → aceitou_pedido → em_preparo → em_separacao
        → em_faturamento → em_transporte → entregue
        cancelado alcançável de qualquer status não cancelado;
        cancelado → aceitou_pedido via reabertura.

    O mapa LEGAL_TRANSITIONS é a adjacência completa. Quem pode disparar cada
    aresta (papel × status) fica em retaguarda.services.transitions.
    Pedidos nunca são apagados.
    """

    class Status(models.TextChoices):
        PEDIDO_CRIADO = "pedido_criado", _("pedido criado")
        ACEITOU_PEDIDO = "aceitou_pedido", _("pedido aceito")
        EM_PREPARO = "em_preparo", _("em preparo")
        EM_SEPARACAO = "em_separacao", _("em separação")
        EM_FATURAMENTO = "em_faturamento", _("em faturamento")
        EM_TRANSPORTE = "em_transporte", _("em transporte")
        ENTREGUE = "entregue", _("entregue")
        CANCELADO = "cancelado", _("cancelado")
        REABERTO = "reaberto", _("reaberto")

    # Próximo status no avanço monotônico
    ADVANCE_FLOW = {
        Status.ACEITOU_PEDIDO: Status.EM_PREPARO,
        Status.REABERTO: Status.EM_PREPARO,
        Status.EM_PREPARO: Status.EM_SEPARACAO,
        Status.EM_SEPARACAO: Status.EM_FATURAMENTO,
        Status.EM_FATURAMENTO: Status.EM_TRANSPORTE,
        Status.EM_TRANSPORTE: Status.ENTREGUE,
    }

    LEGAL_TRANSITIONS = {
        Status.PEDIDO_CRIADO: [Status.ACEITOU_PEDIDO, Status.CANCELADO],
        Status.ACEITOU_PEDIDO: [Status.EM_PREPARO, Status.CANCELADO],
        Status.REABERTO: [Status.EM_PREPARO, Status.CANCELADO],
        Status.EM_PREPARO: [Status.EM_SEPARACAO, Status.CANCELADO],
        Status.EM_SEPARACAO: [Status.EM_FATURAMENTO, Status.CANCELADO],
        Status.EM_FATURAMENTO: [Status.EM_TRANSPORTE, Status.CANCELADO],
        Status.EM_TRANSPORTE: [Status.ENTREGUE, Status.CANCELADO],
        Status.ENTREGUE: [Status.CANCELADO],
        Status.CANCELADO: [Status.ACEITOU_PEDIDO],
    }

    TERMINAL_STATUSES = [Status.ENTREGUE, Status.CANCELADO]

    establishment = models.ForeignKey(
        "retaguarda.Establishment",
        verbose_name=_("estabelecimento"),
        on_delete=models.PROTECT,
        related_name="orders",
    )
    number = models.PositiveIntegerField(_("número"))
    status = models.CharField(
        _("status"),
        max_length=32,
        choices=Status.choices,
        default=Status.PEDIDO_CRIADO,
        db_index=True,
    )
    notes = models.TextField(_("observações"), blank=True, default="")

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name=_("criado por"),
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(_("criado em"), auto_now_add=True)
    updated_at = models.DateTimeField(_("atualizado em"), auto_now=True)

    accepted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name=_("aceito por"),
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    accepted_at = models.DateTimeField(_("aceito em"), null=True, blank=True)

    canceled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name=_("cancelado por"),
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    canceled_at = models.DateTimeField(_("cancelado em"), null=True, blank=True)
    cancel_reason = models.TextField(_("motivo do cancelamento"), blank=True, default="")

    reopened_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name=_("reaberto por"),
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    reopened_at = models.DateTimeField(_("reaberto em"), null=True, blank=True)

    class Meta:
        app_label = "retaguarda"
        verbose_name = _("pedido")
        verbose_name_plural = _("pedidos")
        ordering = ("-created_at", "id")
        constraints = [
            models.UniqueConstraint(
                fields=["establishment", "number"],
                name="uniq_order_establishment_number",
            ),
        ]

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._original_status = self.status

    def __str__(self) -> str:
        return f"Pedido #{self.number}"

    # ------------------------------------------------------------------ status

    def next_status(self) -> str | None:
        """Próximo status do avanço monotônico, ou None."""
        return self.ADVANCE_FLOW.get(self.status)

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in self.LEGAL_TRANSITIONS.get(self.status, [])

    def save(self, *args, **kwargs):
        # Impede transições fora da adjacência via save()
        if self.pk and self.status != self._original_status:
            from retaguarda.exceptions import InvalidTransition

            allowed = self.LEGAL_TRANSITIONS.get(self._original_status, [])
            if self.status not in allowed:
                raise InvalidTransition(
                    code="invalid_transition",
                    message=f"Transição {self._original_status} → {self.status} não permitida",
                    context={
                        "current_status": self._original_status,
                        "requested_status": self.status,
                        "allowed_transitions": [str(s) for s in allowed],
                    },
                )

        super().save(*args, **kwargs)
        self._original_status = self.status

    def emit_event(
        self,
        from_status: str | None,
        to_status: str,
        actor_id: int | None = None,
        note: str = "",
        client_label: str = "",
        visible_to_client: bool = False,
    ) -> OrderStatusEvent:
        """
        Registra um evento na timeline do pedido.

        Returns:
            OrderStatusEvent criado
        """
        return OrderStatusEvent.objects.create(
            order=self,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
            note=note,
            client_label=client_label,
            visible_to_client=visible_to_client,
        )


class OrderSequence(models.Model):
    """
    Último número de pedido emitido por estabelecimento.
    """

    establishment = models.OneToOneField(
        "retaguarda.Establishment",
        verbose_name=_("estabelecimento"),
        on_delete=models.CASCADE,
        related_name="order_sequence",
    )
    last_value = models.PositiveIntegerField(_("último valor"), default=0)

    class Meta:
        app_label = "retaguarda"
        verbose_name = _("sequência de pedidos")
        verbose_name_plural = _("sequências de pedidos")

    def __str__(self) -> str:
        return f"{self.establishment_id}:{self.last_value}"

    @classmethod
    def next_value(cls, establishment_id: int) -> int:
        """Próximo número de pedido. Thread-safe via SELECT FOR UPDATE."""
        with transaction.atomic():
            seq, _created = cls.objects.select_for_update().get_or_create(
                establishment_id=establishment_id,
                defaults={"last_value": 0},
            )
            seq.last_value += 1
            seq.save(update_fields=["last_value"])
            return seq.last_value


class OrderLineItem(models.Model):
    """
    Linha pedida em texto livre (ainda não validada contra o catálogo).
    """

    order = models.ForeignKey(Order, verbose_name=_("pedido"), on_delete=models.CASCADE, related_name="line_items")
    product_name = models.CharField(_("produto"), max_length=200)
    qty = models.DecimalField(_("quantidade"), max_digits=12, decimal_places=3)
    unit_label = models.CharField(_("unidade"), max_length=30)
    created_at = models.DateTimeField(_("criado em"), auto_now_add=True)

    class Meta:
        app_label = "retaguarda"
        verbose_name = _("linha do pedido")
        verbose_name_plural = _("linhas do pedido")
        ordering = ("id",)
        constraints = [
            models.CheckConstraint(
                condition=models.Q(qty__gt=0),
                name="order_line_item_qty_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.product_name} x {self.qty} {self.unit_label}"


class OrderItem(models.Model):
    """
    Item de produção derivado no aceite: um por produto + unidade.
    """

    class ProductionStatus(models.TextChoices):
        PENDING = "pending", _("pendente")
        IN_PROGRESS = "in_progress", _("em produção")
        DONE = "done", _("pronto")
        NO_PRODUCTION_NEEDED = "no_production_needed", _("sem produção")

    FINISHED_STATUSES = [ProductionStatus.DONE, ProductionStatus.NO_PRODUCTION_NEEDED]

    order = models.ForeignKey(Order, verbose_name=_("pedido"), on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(
        "retaguarda.Product",
        verbose_name=_("produto"),
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
    )
    product_name = models.CharField(_("produto"), max_length=200)
    unit_label = models.CharField(_("unidade"), max_length=30)
    order_qty = models.DecimalField(_("quantidade pedida"), max_digits=12, decimal_places=3)
    on_hand_qty = models.DecimalField(_("saldo no aceite"), max_digits=12, decimal_places=3, default=0)
    missing_qty = models.DecimalField(_("quantidade faltante"), max_digits=12, decimal_places=3, default=0)

    production_status = models.CharField(
        _("status de produção"),
        max_length=32,
        choices=ProductionStatus.choices,
        default=ProductionStatus.PENDING,
        db_index=True,
    )
    production_assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name=_("colaborador"),
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    production_start_at = models.DateTimeField(_("início da produção"), null=True, blank=True)
    production_end_at = models.DateTimeField(_("fim da produção"), null=True, blank=True)

    class Meta:
        app_label = "retaguarda"
        verbose_name = _("item de produção")
        verbose_name_plural = _("itens de produção")
        ordering = ("id",)
        constraints = [
            models.CheckConstraint(
                condition=models.Q(order_qty__gt=0),
                name="order_item_qty_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(missing_qty__gte=0),
                name="order_item_missing_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.product_name} x {self.order_qty} {self.unit_label}"

    @property
    def is_finished(self) -> bool:
        return self.production_status in self.FINISHED_STATUSES


class OrderStatusEvent(models.Model):
    """
    Timeline append-only do pedido: exatamente um evento por mudança de status.
    """

    order = models.ForeignKey(Order, verbose_name=_("pedido"), on_delete=models.CASCADE, related_name="events")
    from_status = models.CharField(_("de"), max_length=32, null=True, blank=True)
    to_status = models.CharField(_("para"), max_length=32)
    client_label = models.CharField(_("rótulo ao cliente"), max_length=128, blank=True, default="")
    visible_to_client = models.BooleanField(_("visível ao cliente"), default=False)
    note = models.TextField(_("observação"), blank=True, default="")
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        verbose_name=_("ator"),
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(_("criado em"), auto_now_add=True)

    class Meta:
        app_label = "retaguarda"
        verbose_name = _("evento do pedido")
        verbose_name_plural = _("eventos do pedido")
        ordering = ("created_at", "id")

    def __str__(self) -> str:
        return f"{self.from_status} → {self.to_status} @ {self.created_at}"
