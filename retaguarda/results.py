"""
Resultados explícitos para efeitos colaterais best-effort.

Operações principais nunca engolem falhas. Efeitos colaterais que PODEM falhar
sem derrubar a operação (registro de produtividade, resumo do inventário)
devolvem um SideEffect; quem chama decide se loga e ignora.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SideEffect:
    """Resultado de um efeito colateral best-effort."""

    name: str
    ok: bool
    value: Any = None
    error: str | None = None

    def log_if_failed(self, log: logging.Logger | None = None) -> "SideEffect":
        if not self.ok:
            (log or logger).warning("Side effect %s failed: %s", self.name, self.error)
        return self


def attempt(name: str, fn: Callable[[], Any], errors: tuple[type[BaseException], ...]) -> SideEffect:
    """
    Executa fn e converte as exceções listadas em SideEffect(ok=False).

    Exceções fora de `errors` continuam propagando.
    """
    try:
        return SideEffect(name=name, ok=True, value=fn())
    except errors as exc:
        return SideEffect(name=name, ok=False, error=str(exc))
