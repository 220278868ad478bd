"""
strategy.py - Routing of collateral through an optional external custodian

When a strategy is configured, inbound collateral is handed to it and
outbound collateral is pulled back from it before the vault pays anyone.
Without a strategy the collateral simply stays in the vault's account.

Any strategy failure, or a withdrawal that returns less than requested,
raises StrategyCallFailed so the vault reverts the triggering operation.
"""

from __future__ import annotations
from typing import Optional

from .core import CollateralToken, Strategy, StrategyCallFailed


class CustodyRouter:
    """
    Moves collateral between the vault account and the configured strategy.

    Attributes:
        token: Collateral token.
        vault_account: Account holding collateral not delegated to a strategy.
        strategy: Current custodian, or None.
    """

    def __init__(self, token: CollateralToken, vault_account: str, strategy: Optional[Strategy] = None):
        self.token = token
        self.vault_account = vault_account
        self.strategy = strategy

    @property
    def custodian_account(self) -> str:
        """Account that currently holds delegated collateral."""
        return self.strategy.account if self.strategy is not None else self.vault_account

    def deposit(self, position_id: int, amount: int) -> None:
        """Hand `amount` of collateral, already in the vault account, to the strategy."""
        if self.strategy is None or amount == 0:
            return
        if not self.token.transfer(self.vault_account, self.strategy.account, amount):
            raise StrategyCallFailed(
                f"Could not move {amount} {self.token.symbol} to strategy {self.strategy.account}"
            )
        try:
            self.strategy.deposit(position_id, amount)
        except Exception as exc:
            raise StrategyCallFailed(f"Strategy deposit failed for position {position_id}: {exc}") from exc

    def release(self, position_id: int, amount: int) -> None:
        """Pull `amount` of collateral back from the strategy into the vault account."""
        if self.strategy is None or amount == 0:
            return
        try:
            actual = self.strategy.withdraw(position_id, amount)
        except Exception as exc:
            raise StrategyCallFailed(f"Strategy withdraw failed for position {position_id}: {exc}") from exc
        if actual < amount:
            raise StrategyCallFailed(
                f"Strategy returned {actual} of {amount} requested for position {position_id}"
            )

    def __repr__(self) -> str:
        return f"CustodyRouter(vault={self.vault_account}, strategy={self.strategy!r})"
