"""
asset_book.py - In-memory double-entry book for token balances

AssetBook is a reference token backend for tests, simulations and
examples; it is not a token implementation the vault depends on. The vault
only sees the token Protocols in core.py, and the collateral token, loan
token and receipt issuer in tokens.py are thin adapters from those Protocols
to this book.

Key responsibilities:
    - Holds integer balances per wallet and asset
    - Executes batches of moves atomically (all moves succeed or all fail)
    - Issues and redeems through SYSTEM_WALLET, the only wallet allowed to go negative
    - Enforces per-asset transfer rules (e.g. non-transferable receipts)
    - Opens journaled savepoints, so the vault can roll a failed call back
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple, Any

from .core import IntegrationError
from .journal import UndoJournal


# Reserved wallet for issuance and redemption; exempt from balance validation.
SYSTEM_WALLET = "system"


class BookError(IntegrationError):
    """Base exception for asset book errors."""
    pass


class InsufficientFunds(BookError):
    """Raised when a move would drive a non-system wallet below zero."""
    pass


class TransferRuleViolation(BookError):
    """Raised when a move violates the asset's transfer rule."""
    pass


class AssetNotRegistered(BookError):
    pass


class WalletNotRegistered(BookError):
    pass


class ExecuteResult(Enum):
    """
    Outcome of a batch execution attempt.

    APPLIED: All moves were validated and applied.
    REJECTED: Validation failed; nothing was applied.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of an asset between two wallets.

    Attributes:
        amount: Positive integer amount in the asset's native precision.
        asset: Symbol of the asset being transferred.
        source: Wallet debited.
        dest: Wallet credited.
        reason: Short label for the audit log (e.g. "transfer", "mint").
    """
    amount: int
    asset: str
    source: str
    dest: str
    reason: str = "transfer"

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.asset or not self.asset.strip():
            raise ValueError("Move asset cannot be empty")
        if not isinstance(self.amount, int) or isinstance(self.amount, bool):
            raise ValueError(f"Move amount must be int, got {type(self.amount)}")
        if self.amount <= 0:
            raise ValueError(f"Move amount must be positive, got {self.amount}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.amount} {self.asset}: {self.source}→{self.dest})"


# Transfer rules validate moves and raise TransferRuleViolation if invalid.
TransferRule = Callable[['AssetBook', Move], None]


def non_transferable_rule(book: AssetBook, move: Move) -> None:
    """
    Allow only issuance and redemption: one side of every move must be SYSTEM_WALLET.

    Raises:
        TransferRuleViolation: for wallet-to-wallet transfers.
    """
    if move.source != SYSTEM_WALLET and move.dest != SYSTEM_WALLET:
        raise TransferRuleViolation(
            f"{move.asset} is non-transferable: {move.source} → {move.dest}"
        )


@dataclass(frozen=True, slots=True)
class Asset:
    """
    Definition of an asset held in the book.

    Attributes:
        symbol: Short identifier (e.g. "WETH").
        name: Human-readable name.
        decimals: Native precision of amounts.
        transfer_rule: Optional function validating every move of this asset.
    """
    symbol: str
    name: str
    decimals: int = 18
    transfer_rule: Optional[TransferRule] = None


class AssetBook:
    """
    Double-entry book of integer token balances with an audit trail.

    Thread Safety:
        Not thread-safe. Each thread should maintain its own AssetBook.

    Example:
        book = AssetBook("main")
        book.register_asset(Asset("WETH", "Wrapped Ether"))
        book.register_wallet("alice")
        book.execute([Move(10**18, "WETH", SYSTEM_WALLET, "alice", "mint")])
        assert book.get_balance("alice", "WETH") == 10**18
    """

    def __init__(self, name: str, verbose: bool = True):
        """
        Args:
            name: Book identifier
            verbose: Print every applied and rejected batch (default: True)
        """
        self.name = name
        self.verbose = verbose
        self.assets: Dict[str, Asset] = {}
        self.registered_wallets: Set[str] = {SYSTEM_WALLET}
        self.balances: Dict[str, Dict[str, int]] = {SYSTEM_WALLET: defaultdict(int)}
        # (asset, owner, spender) -> remaining allowance
        self.allowances: Dict[Tuple[str, str, str], int] = {}
        self.move_log: List[Tuple[Move, ...]] = []
        self.last_rejection: str = ""
        # records balance and allowance writes while a savepoint is open
        self.journal = UndoJournal()

    # ========================================================================
    # READS
    # ========================================================================

    def get_balance(self, wallet_id: str, asset: str) -> int:
        """
        Raises:
            WalletNotRegistered: If wallet is not registered
            AssetNotRegistered: If asset is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if asset not in self.assets:
            raise AssetNotRegistered(f"Asset {asset} not registered")
        return self.balances[wallet_id].get(asset, 0)

    def get_asset(self, symbol: str) -> Asset:
        if symbol not in self.assets:
            raise AssetNotRegistered(f"Asset {symbol} not registered")
        return self.assets[symbol]

    def is_registered(self, wallet_id: str) -> bool:
        return wallet_id in self.registered_wallets

    def list_wallets(self) -> Set[str]:
        return self.registered_wallets.copy()

    def allowance(self, asset: str, owner: str, spender: str) -> int:
        return self.allowances.get((asset, owner, spender), 0)

    def total_supply(self, asset: str) -> int:
        """
        Amount of an asset held outside SYSTEM_WALLET.

        Equals minus the system wallet's balance, since every move conserves
        the sum over all wallets.
        """
        if asset not in self.assets:
            raise AssetNotRegistered(f"Asset {asset} not registered")
        return sum(
            self.balances[w].get(asset, 0)
            for w in sorted(self.registered_wallets) if w != SYSTEM_WALLET
        )

    def verify_double_entry(self, expected_supplies: Dict[str, int] = None) -> Dict[str, Any]:
        """
        Verify that every asset's balances sum to zero across all wallets
        (SYSTEM_WALLET included) and, optionally, that supplies match.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all conservation laws hold
            - 'supplies': Dict[str, int] - Current supply of each asset
            - 'discrepancies': List[Dict] - Details of any violations

        Example:
            result = book.verify_double_entry()
            assert result['valid'], f"Conservation violated: {result['discrepancies']}"
        """
        supplies = {}
        discrepancies = []
        for asset in self.assets:
            net = sum(self.balances[w].get(asset, 0) for w in self.registered_wallets)
            if net != 0:
                discrepancies.append({'asset': asset, 'expected': 0, 'actual': net, 'error': 'net not zero'})
            supply = self.total_supply(asset)
            supplies[asset] = supply
            if expected_supplies and asset in expected_supplies and expected_supplies[asset] != supply:
                discrepancies.append({
                    'asset': asset,
                    'expected': expected_supplies[asset],
                    'actual': supply,
                    'difference': supply - expected_supplies[asset],
                })
        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Raises:
            ValueError: If wallet is already registered
        """
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(int)
        return wallet_id

    def register_asset(self, asset: Asset) -> None:
        if asset.symbol in self.assets:
            raise ValueError(f"Asset {asset.symbol} already registered")
        self.assets[asset.symbol] = asset
        if self.verbose:
            rule_str = " [non-transferable]" if asset.transfer_rule is non_transferable_rule else ""
            print(f"📝 Registered: {asset.symbol} ({asset.name}) decimals={asset.decimals}{rule_str}")

    def approve(self, asset: str, owner: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Allowance cannot be negative, got {amount}")
        self.journal.set(self.allowances, (asset, owner, spender), amount)

    def spend_allowance(self, asset: str, owner: str, spender: str, amount: int) -> bool:
        """Consume allowance; returns False (and changes nothing) if it is too small."""
        current = self.allowance(asset, owner, spender)
        if current < amount:
            return False
        self.journal.set(self.allowances, (asset, owner, spender), current - amount)
        return True

    # ========================================================================
    # EXECUTION (Mutating)
    # ========================================================================

    def execute(self, moves: Iterable[Move]) -> ExecuteResult:
        """
        Validate and apply a batch of moves atomically.

        Returns:
            ExecuteResult.APPLIED if every move was applied
            ExecuteResult.REJECTED if validation failed (reason in last_rejection)
        """
        batch = tuple(moves)
        if not batch:
            return ExecuteResult.APPLIED

        valid, reason = self._validate(batch)
        if not valid:
            self.last_rejection = reason
            if self.verbose:
                print(f"✗ REJECTED: {reason}")
            return ExecuteResult.REJECTED

        journal = self.journal
        for move in batch:
            source = self.balances[move.source]
            dest = self.balances[move.dest]
            journal.set(source, move.asset, source.get(move.asset, 0) - move.amount)
            journal.set(dest, move.asset, dest.get(move.asset, 0) + move.amount)
        self.move_log.append(batch)

        if self.verbose:
            for move in batch:
                print(f"✓ {move.reason}: {move!r}")
        return ExecuteResult.APPLIED

    def execute_or_raise(self, moves: Iterable[Move]) -> None:
        """
        execute() for callers that treat rejection as an error.

        Raises:
            InsufficientFunds, TransferRuleViolation, AssetNotRegistered or
            WalletNotRegistered, matching the rejection reason.
        """
        batch = tuple(moves)
        if self.execute(batch) is ExecuteResult.REJECTED:
            raise self._rejection_error(batch)

    def _rejection_error(self, batch: Tuple[Move, ...]) -> BookError:
        for move in batch:
            if move.asset not in self.assets:
                return AssetNotRegistered(self.last_rejection)
            if move.source not in self.registered_wallets or move.dest not in self.registered_wallets:
                return WalletNotRegistered(self.last_rejection)
        if "transfer rule" in self.last_rejection:
            return TransferRuleViolation(self.last_rejection)
        return InsufficientFunds(self.last_rejection)

    def _validate(self, batch: Tuple[Move, ...]) -> Tuple[bool, str]:
        """
        Checks performed:
        1. Asset and wallet registration
        2. Transfer rule enforcement
        3. No non-system wallet ends below zero

        Returns:
            Tuple of (success: bool, reason: str)
        """
        for move in batch:
            if move.asset not in self.assets:
                return False, f"asset not registered: {move.asset}"
            if not self.is_registered(move.source):
                return False, f"wallet not registered: {move.source}"
            if not self.is_registered(move.dest):
                return False, f"wallet not registered: {move.dest}"
            rule = self.assets[move.asset].transfer_rule
            if rule:
                try:
                    rule(self, move)
                except TransferRuleViolation as e:
                    return False, f"transfer rule: {e}"

        net: Dict[Tuple[str, str], int] = defaultdict(int)
        for move in batch:
            net[(move.source, move.asset)] -= move.amount
            net[(move.dest, move.asset)] += move.amount

        for (wallet, asset), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            proposed = self.balances[wallet][asset] + delta
            if proposed < 0:
                return False, f"{wallet} {asset}: {proposed} < 0"
        return True, ""

    # ========================================================================
    # SAVEPOINTS
    # ========================================================================

    def snapshot(self) -> BookSavepoint:
        """
        Open a savepoint over balances, allowances and the move log.

        Writes are journaled from here on, so the savepoint itself is O(1).
        Wallet and asset registrations are not covered.
        """
        return BookSavepoint(journal=self.journal.savepoint(), moves=len(self.move_log))

    def restore(self, saved: BookSavepoint) -> None:
        """Undo every balance and allowance change since saved and drop the later batches."""
        self.journal.rewind(saved.journal)
        del self.move_log[saved.moves:]

    def release(self, saved: BookSavepoint) -> None:
        self.journal.release(saved.journal)

    def __repr__(self) -> str:
        return (f"AssetBook({self.name!r}, {len(self.assets)} assets, "
                f"{len(self.registered_wallets)} wallets, {len(self.move_log)} batches)")


@dataclass(frozen=True)
class BookSavepoint:
    """Position in an AssetBook's undo journal and move log."""
    journal: int
    moves: int
