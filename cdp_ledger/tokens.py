"""
tokens.py - Token adapters over an AssetBook

Reference implementations of the vault's token collaborators:
- BookCollateralToken: boolean-returning transfer / transfer_from with allowances
- BookLoanToken: mint / burn that raise on failure
- BookReceiptIssuer: one non-transferable receipt unit per position

Each adapter is Revertible by delegating to its book. Receipt holders are
written through the book's journal, so one book savepoint covers every
adapter sharing it. Like AssetBook, these are reference backends; the vault
only depends on the Protocols in core.py.
"""

from __future__ import annotations
from typing import Any, Dict, Optional

from .asset_book import (
    AssetBook, Asset, Move, ExecuteResult, SYSTEM_WALLET, non_transferable_rule,
)


class _BookToken:
    """Shared plumbing: asset lookup, balances, snapshot/restore."""

    def __init__(self, book: AssetBook, symbol: str, name: Optional[str] = None, decimals: int = 18):
        self.book = book
        if symbol not in book.assets:
            book.register_asset(Asset(symbol, name or symbol, decimals))
        self.symbol = symbol

    @property
    def decimals(self) -> int:
        return self.book.get_asset(self.symbol).decimals

    def balance_of(self, account: str) -> int:
        return self.book.get_balance(account, self.symbol)

    def total_supply(self) -> int:
        return self.book.total_supply(self.symbol)

    @property
    def backing(self) -> AssetBook:
        """Shared store; the vault opens one savepoint per book, not per adapter."""
        return self.book

    def snapshot(self) -> Any:
        return self.book.snapshot()

    def restore(self, token: Any) -> None:
        self.book.restore(token)

    def release(self, token: Any) -> None:
        self.book.release(token)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.symbol}, supply={self.total_supply()})"


class BookCollateralToken(_BookToken):
    """
    Collateral asset with ERC-20 style boolean results.

    transfer and transfer_from return False instead of raising when the
    book rejects the move or the allowance is too small.
    """

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        if amount == 0:
            return True
        moves = [Move(amount, self.symbol, sender, to, "transfer")]
        return self.book.execute(moves) is ExecuteResult.APPLIED

    def transfer_from(self, spender: str, from_: str, to: str, amount: int) -> bool:
        if amount == 0:
            return True
        if self.book.allowance(self.symbol, from_, spender) < amount:
            return False
        moves = [Move(amount, self.symbol, from_, to, "transfer_from")]
        if self.book.execute(moves) is not ExecuteResult.APPLIED:
            return False
        self.book.spend_allowance(self.symbol, from_, spender, amount)
        return True

    def approve(self, owner: str, spender: str, amount: int) -> None:
        self.book.approve(self.symbol, owner, spender, amount)

    def allowance(self, owner: str, spender: str) -> int:
        return self.book.allowance(self.symbol, owner, spender)

    def issue(self, to: str, amount: int) -> None:
        """Mint collateral from SYSTEM_WALLET (funding accounts in tests and simulations)."""
        self.book.execute_or_raise([Move(amount, self.symbol, SYSTEM_WALLET, to, "issue")])


class BookLoanToken(_BookToken):
    """Pegged loan asset; mint and burn raise a BookError on failure."""

    def mint(self, to: str, amount: int) -> None:
        self.book.execute_or_raise([Move(amount, self.symbol, SYSTEM_WALLET, to, "mint")])

    def burn(self, from_: str, amount: int) -> None:
        self.book.execute_or_raise([Move(amount, self.symbol, from_, SYSTEM_WALLET, "burn")])

    def transfer(self, sender: str, to: str, amount: int) -> None:
        self.book.execute_or_raise([Move(amount, self.symbol, sender, to, "transfer")])


class BookReceiptIssuer(_BookToken):
    """
    Non-transferable receipts, one unit per position.

    The receipt asset carries non_transferable_rule, so the only legal moves
    are issuance to the owner and redemption back to SYSTEM_WALLET.
    """

    def __init__(self, book: AssetBook, symbol: str = "RCPT", name: str = "Position Receipt"):
        self.book = book
        if symbol not in book.assets:
            book.register_asset(Asset(symbol, name, decimals=0, transfer_rule=non_transferable_rule))
        self.symbol = symbol
        self.holders: Dict[int, str] = {}

    def mint(self, owner: str, position_id: int) -> None:
        """
        Raises:
            ValueError: if the position already has a receipt.
        """
        if position_id in self.holders:
            raise ValueError(f"Position {position_id} already has a receipt")
        self.book.execute_or_raise([Move(1, self.symbol, SYSTEM_WALLET, owner, f"receipt:{position_id}")])
        self.book.journal.set(self.holders, position_id, owner)

    def burn(self, position_id: int) -> None:
        """
        Raises:
            KeyError: if the position has no receipt.
        """
        owner = self.holders[position_id]
        self.book.execute_or_raise([Move(1, self.symbol, owner, SYSTEM_WALLET, f"burn:{position_id}")])
        self.book.journal.pop(self.holders, position_id)

    def holder_of(self, position_id: int) -> Optional[str]:
        return self.holders.get(position_id)
