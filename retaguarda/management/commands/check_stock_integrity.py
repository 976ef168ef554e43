"""
Management command para auditar a consistência entre etiquetas, ledger e timelines.

Verifica:
- 0 <= used_qty <= qty em toda etiqueta
- status "consumed" se e somente se used_qty >= qty (etiquetas canceladas à parte)
- exatamente uma entrada LABEL_IN por etiqueta
- (opcional) timelines de pedido seguindo a adjacência canônica

Uso:
    python manage.py check_stock_integrity
    python manage.py check_stock_integrity --establishment 3
    python manage.py check_stock_integrity --fix-entries
    python manage.py check_stock_integrity --timelines
"""

from django.core.management.base import BaseCommand, CommandError
from django.db.models import Count, Q

from retaguarda.models import InventoryLabel, Order
from retaguarda.services import LabelService, TransitionAuthority


class Command(BaseCommand):
    help = "Audita etiquetas, entradas LABEL_IN e timelines de pedidos"

    def add_arguments(self, parser):
        parser.add_argument(
            "--establishment",
            type=int,
            default=None,
            help="Restringe a auditoria a um estabelecimento",
        )
        parser.add_argument(
            "--fix-entries",
            action="store_true",
            help="Cria a entrada LABEL_IN das etiquetas que não têm nenhuma",
        )
        parser.add_argument(
            "--timelines",
            action="store_true",
            help="Também valida o caminho de status das timelines",
        )
        parser.add_argument(
            "--fail-on-issues",
            action="store_true",
            help="Sai com erro se encontrar inconsistências",
        )

    def handle(self, *args, **options):
        establishment_id = options["establishment"]
        fix_entries = options["fix_entries"]

        labels = InventoryLabel.objects.select_related("product").order_by("id")
        if establishment_id is not None:
            labels = labels.filter(establishment_id=establishment_id)
        labels = labels.annotate(
            entry_count=Count("movements", filter=Q(movements__movement_type="LABEL_IN")),
        )

        issues = 0
        fixed = 0
        for label in labels:
            if label.used_qty < 0 or label.used_qty > label.qty:
                issues += 1
                self.stdout.write(
                    self.style.ERROR(f"{label.label_code}: used_qty {label.used_qty} fora de [0, {label.qty}]")
                )

            exhausted = label.used_qty >= label.qty
            is_consumed = label.status == InventoryLabel.Status.CONSUMED
            if label.status != InventoryLabel.Status.CANCELED and exhausted != is_consumed:
                issues += 1
                self.stdout.write(
                    self.style.WARNING(
                        f"{label.label_code}: status {label.status} com used_qty {label.used_qty}/{label.qty}"
                    )
                )

            if label.entry_count == 0:
                if fix_entries:
                    _, created = LabelService.ensure_entry_movement(label)
                    if created:
                        fixed += 1
                        self.stdout.write(f"{label.label_code}: entrada LABEL_IN criada")
                else:
                    issues += 1
                    self.stdout.write(self.style.WARNING(f"{label.label_code}: sem entrada LABEL_IN"))
            elif label.entry_count > 1:
                issues += 1
                self.stdout.write(
                    self.style.ERROR(f"{label.label_code}: {label.entry_count} entradas LABEL_IN")
                )

        if options["timelines"]:
            orders = Order.objects.prefetch_related("events").order_by("id")
            if establishment_id is not None:
                orders = orders.filter(establishment_id=establishment_id)
            for order in orders:
                events = sorted(order.events.all(), key=lambda e: (e.created_at, e.pk))
                for event in TransitionAuthority.illegal_steps(events):
                    issues += 1
                    self.stdout.write(
                        self.style.ERROR(
                            f"Pedido #{order.number}: passo ilegal {event.from_status} -> {event.to_status}"
                        )
                    )

        if fixed:
            self.stdout.write(self.style.SUCCESS(f"Entradas criadas: {fixed}"))

        if issues:
            message = f"Inconsistências encontradas: {issues}"
            if options["fail_on_issues"]:
                raise CommandError(message)
            self.stdout.write(self.style.WARNING(message))
            return

        self.stdout.write(self.style.SUCCESS("Nenhuma inconsistência encontrada"))
