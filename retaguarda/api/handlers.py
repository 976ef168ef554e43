"""
Tradução das exceções de domínio para respostas HTTP.

Configure em settings.py (as views da Retaguarda já usam por padrão):

    REST_FRAMEWORK = {
        "EXCEPTION_HANDLER": "retaguarda.api.handlers.exception_handler",
    }
"""

from __future__ import annotations

import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from retaguarda.exceptions import (
    NotFound,
    PermissionDenied,
    RetaguardaError,
    StateConflict,
    ValidationError,
    translate_backend_error,
)


logger = logging.getLogger(__name__)

STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (PermissionDenied, status.HTTP_403_FORBIDDEN),
    (StateConflict, status.HTTP_409_CONFLICT),
)


def error_payload(exc: RetaguardaError) -> dict:
    return {"code": exc.code, "message": exc.message, "context": exc.context}


def exception_handler(exc, context):
    """
    RetaguardaError → 400/404/403/409 com {code, message, context}.

    Erros do banco viram 409 com mensagem traduzida; o resto segue o
    handler padrão do DRF.
    """
    if isinstance(exc, RetaguardaError):
        for error_class, http_status in STATUS_BY_ERROR:
            if isinstance(exc, error_class):
                return Response(error_payload(exc), status=http_status)
        return Response(error_payload(exc), status=status.HTTP_400_BAD_REQUEST)

    if isinstance(exc, DatabaseError):
        logger.warning("Database error in %s: %s", context.get("view").__class__.__name__, exc)
        return Response(
            {"code": "backend_error", "message": translate_backend_error(exc), "context": {}},
            status=status.HTTP_409_CONFLICT,
        )

    return drf_exception_handler(exc, context)
