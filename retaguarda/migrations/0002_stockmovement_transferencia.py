# Generated manually on 2026-10-19

from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("retaguarda", "0001_initial"),
    ]

    operations = [
        # Novo tipo: transferência entre unidades (par OUT/IN)
        migrations.AlterField(
            model_name="stockmovement",
            name="movement_type",
            field=models.CharField(
                choices=[
                    ("LABEL_IN", "entrada por etiqueta"),
                    ("OUT_ORDER", "saída para pedido"),
                    ("ajuste_inventario", "ajuste de inventário"),
                    ("perda", "perda"),
                    ("estorno_etiqueta", "estorno de etiqueta"),
                    ("transferencia", "transferência entre unidades"),
                ],
                db_index=True,
                max_length=32,
                verbose_name="tipo",
            ),
        ),
    ]
