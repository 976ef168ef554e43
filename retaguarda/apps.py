"""
Django AppConfig para retaguarda.
"""

from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class RetaguardaConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "retaguarda"
    verbose_name = _("Retaguarda")
