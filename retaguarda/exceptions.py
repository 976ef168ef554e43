"""
Retaguarda Exceptions — Exceções específicas da Retaguarda.

Todas as exceções seguem o padrão:
- code: Código máquina do erro (ex.: "missing_product", "insufficient_balance")
- message: Mensagem legível para humanos
- context: Dados adicionais sobre o erro

Toda exceção de domínio é levantada ANTES de qualquer escrita.
"""

from __future__ import annotations

import re


class RetaguardaError(Exception):
    """
    Classe base para todas as exceções da Retaguarda.

    Attributes:
        code: Código máquina do erro
        message: Mensagem legível para humanos
        context: Dados adicionais sobre o erro
    """

    def __init__(self, code: str = "error", message: str = "", context: dict | None = None):
        self.code = code
        self.message = message
        self.context = context or {}
        super().__init__(message)


class ValidationError(RetaguardaError):
    """
    Campo obrigatório ausente ou inválido.

    Codes: "missing_product", "missing_unit", "invalid_qty", "invalid_qr",
    "missing_reason", "empty_order", "empty_count"
    """


class NotFound(RetaguardaError):
    """
    Registro ausente ou fora do estabelecimento do ator.

    Registros de outro estabelecimento são tratados exatamente como inexistentes.

    Codes: "order_not_found", "label_not_found", "product_not_found",
    "item_not_found", "collaborator_not_found", "no_membership"
    """


class PermissionDenied(RetaguardaError):
    """
    Papel do ator não permite a operação no estado atual.

    Codes: "forbidden_role"
    """


class StateConflict(RetaguardaError):
    """
    Estado atual impede a operação.

    Codes: "invalid_status", "label_unavailable", "label_exhausted",
    "insufficient_balance", "duplicate_label_code", "production_pending",
    "separation_empty", "collaborator_required"
    """


class InvalidTransition(StateConflict):
    """
    Erro de transição de status inválida.

    Raised quando a transição pedida não pertence à adjacência canônica
    (anti-skip) ou parte de um status terminal.

    Codes: "invalid_transition", "terminal_status"
    """


# =============================================================================
# TRADUÇÃO DE ERROS DO BANCO
# =============================================================================

# (padrão, mensagem): vence o primeiro padrão que casar
BACKEND_ERROR_MESSAGES: list[tuple[re.Pattern, str]] = [
    (
        re.compile(r"unique constraint|duplicate key|UNIQUE constraint failed", re.I),
        "Já existe um registro com este código. Verifique o lote/código informado.",
    ),
    (
        re.compile(r"check constraint|CHECK constraint failed", re.I),
        "Operação deixaria quantidades inconsistentes e foi recusada.",
    ),
    (
        re.compile(r"permission denied|row-level security|\brls\b", re.I),
        "Sem permissão para executar esta operação.",
    ),
    (
        re.compile(r"could not obtain lock|deadlock detected|database is locked", re.I),
        "Registro em uso por outra operação. Tente novamente.",
    ),
]


def translate_backend_error(error: Exception | str) -> str:
    """
    Traduz texto de erro do banco para uma mensagem fixa ao usuário.

    Mensagens que não casam com nenhum padrão conhecido são devolvidas como vieram.
    """
    text = str(error)
    for pattern, message in BACKEND_ERROR_MESSAGES:
        if pattern.search(text):
            return message
    return text
