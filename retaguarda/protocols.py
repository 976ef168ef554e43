"""
Retaguarda Protocols — Interfaces para colaboradores externos.

O núcleo lê saldo por (estabelecimento, produto, unidade). A implementação
padrão soma o ledger local (retaguarda.services.stock.LedgerBalanceProvider);
testes e integrações podem injetar outra fonte.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol, runtime_checkable


@runtime_checkable
class BalanceProvider(Protocol):
    """
    Protocol para fontes de saldo de estoque.
    """

    def get_balance(self, establishment_id: int, product_id: int, unit_label: str) -> Decimal:
        """
        Saldo atual do produto na unidade informada.

        Args:
            establishment_id: Estabelecimento
            product_id: Produto
            unit_label: Unidade já normalizada (caixa alta)

        Returns:
            Saldo (pode ser negativo se o ledger permitir)
        """
        ...
