from __future__ import annotations

from django.conf import settings
from django.utils.module_loading import import_string


RETAGUARDA_DEFAULTS = {
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.IsAuthenticated"],
    # Política única de reabertura (cancelado -> aceitou_pedido)
    "REOPEN_ROLES": ["admin"],
    # Padrão de código de lote procurado dentro de textos de QR
    "LABEL_CODE_PATTERN": r"[A-Z]{2}-[A-Z]{2}-\d{6}-\d+D",
    # Header HTTP usado para escolher o estabelecimento quando o usuário tem mais de um
    "ESTABLISHMENT_HEADER": "HTTP_X_ESTABLISHMENT",
}

# Settings que são listas de dotted paths (resolvidas via import_string)
IMPORTABLE_SETTINGS = frozenset({"DEFAULT_PERMISSION_CLASSES"})


def get_retaguarda_setting(key: str):
    """Retrieve a Retaguarda setting, falling back to RETAGUARDA_DEFAULTS."""
    user_settings = getattr(settings, "RETAGUARDA", {})
    value = user_settings.get(key, RETAGUARDA_DEFAULTS.get(key))
    if key in IMPORTABLE_SETTINGS and isinstance(value, list):
        return [import_string(cls) if isinstance(cls, str) else cls for cls in value]
    return value
