"""
Core types for the CDP lending ledger.

This module provides the foundational data structures and protocols:
1. Constants: fixed-point precisions, the "infinite" health value, role names
2. Protocols: the external collaborators the vault consumes as black boxes
3. Exceptions: VaultError and its five categories
4. Immutable data structures: Position, VaultConfig, VaultEvent, results

Amounts are plain Python ints in each asset's native precision. Nothing in
this module mutates vault state.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields
from datetime import timedelta
from typing import (
    Any, Dict, Mapping, Optional, Protocol, Tuple, runtime_checkable
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Standard fixed-point precision (1.0 == 10**18).
PRECISION = 10**18

# High precision used for the leverage-used ratio (1.0 == 10**27).
HIGH_PRECISION = 10**27

# Health of a position without debt: the largest uint256.
MAX_HEALTH = 2**256 - 1

# Decimals every oracle price is normalised to before valuation.
PRICE_DECIMALS = 18

ADMIN_ROLE = "ADMIN"
LEVERAGE_ROLE = "LEVERAGE"


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceOracle(Protocol):
    """Quotes the latest price of an asset together with its decimals."""

    def latest_price(self, asset: str) -> Tuple[int, int]:
        """Return (price, decimals) for an asset."""
        ...


@runtime_checkable
class TimedPriceOracle(PriceOracle, Protocol):
    """A price oracle that also reports how old its latest quote is."""

    def price_age(self, asset: str) -> timedelta:
        ...


@runtime_checkable
class CollateralToken(Protocol):
    """
    Collateral asset with boolean transfer semantics.

    transfer and transfer_from report failure by returning False; callers
    must check the flag.
    """
    symbol: str
    decimals: int

    def balance_of(self, account: str) -> int:
        ...

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        ...

    def transfer_from(self, spender: str, from_: str, to: str, amount: int) -> bool:
        ...


@runtime_checkable
class LoanToken(Protocol):
    """Pegged loan asset. mint and burn either succeed or raise."""
    symbol: str
    decimals: int

    def mint(self, to: str, amount: int) -> None:
        ...

    def burn(self, from_: str, amount: int) -> None:
        ...


@runtime_checkable
class InterestCollector(Protocol):
    """External accrual bookkeeping, called opportunistically."""

    def collect_interest(self, vault: Any, asset: str, position_id: int, debt_amount: int) -> int:
        """Return the interest accrued on the position since the last call."""
        ...

    def set_last_collection_block(self, vault: Any, position_id: int) -> Any:
        """Register the accrual baseline of a new position, returning its marker."""
        ...


@runtime_checkable
class Strategy(Protocol):
    """External custodian that can earn yield on delegated collateral."""
    account: str

    def deposit(self, position_id: int, amount: int) -> None:
        ...

    def withdraw(self, position_id: int, amount: int) -> int:
        """Return collateral to the vault, returning the amount actually sent."""
        ...


@runtime_checkable
class ReceiptIssuer(Protocol):
    """Issues one non-transferable receipt per position."""

    def mint(self, owner: str, position_id: int) -> None:
        ...

    def burn(self, position_id: int) -> None:
        ...


@runtime_checkable
class Revertible(Protocol):
    """
    State holder that can be rolled back.

    The vault snapshots every collaborator implementing this protocol before
    a mutating call, restores it if the call fails and releases it otherwise.
    Collaborators that share one store expose it as `backing`; the vault then
    opens a single savepoint on that store instead of one per collaborator.
    """

    def snapshot(self) -> Any:
        ...

    def restore(self, token: Any) -> None:
        ...

    def release(self, token: Any) -> None:
        ...


# ============================================================================
# EXCEPTIONS
# ============================================================================

class VaultError(Exception):
    """Base exception for all vault errors."""
    pass


class ValidationError(VaultError):
    """Malformed request: zero amounts, wrong asset, unknown position."""
    pass


class AuthorizationError(VaultError):
    """Caller lacks ownership or the role required by the operation."""
    pass


class EconomicLimitError(VaultError):
    """Business-rule violation: LTV exceeded, not liquidatable, etc."""
    pass


class IntegrationError(VaultError):
    """A collaborator (token, strategy) reported failure."""
    pass


class OracleError(VaultError):
    """The price oracle returned an unusable quote."""
    pass


class InvalidCollateralToken(ValidationError):
    pass


class ZeroCollateralAmount(ValidationError):
    pass


class ZeroLoanAmount(ValidationError):
    pass


class InvalidPosition(ValidationError):
    """Raised when a position id does not refer to a live position."""
    pass


class InvalidLeverage(ValidationError):
    pass


class NoPositionsToLiquidate(ValidationError):
    pass


class InvalidConfiguration(ValidationError):
    pass


class ArithmeticUnderflow(ValidationError):
    """Raised when a balance update would drive an amount below zero."""
    pass


class NotPositionOwner(AuthorizationError):
    pass


class MissingRole(AuthorizationError):
    pass


class ReentrantCall(AuthorizationError):
    """Raised when a mutating call arrives while another one is in flight."""
    pass


class LoanExceedsLTVLimit(EconomicLimitError):
    pass


class MaxDebtReached(EconomicLimitError):
    pass


class InsufficientCollateral(EconomicLimitError):
    pass


class InsufficientCollateralAfterWithdrawal(EconomicLimitError):
    pass


class AmountExceedsLoan(EconomicLimitError):
    pass


class PositionNotLiquidatable(EconomicLimitError):
    pass


class CollateralTransferFailed(IntegrationError):
    pass


class LiquidationFailed(IntegrationError):
    pass


class StrategyCallFailed(IntegrationError):
    pass


class InvalidPrice(OracleError):
    pass


class StalePrice(OracleError):
    pass


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Position:
    """
    Immutable snapshot of one collateral + debt record.

    Every update produces a new instance; PositionLedger is the only place
    that stores them.

    Attributes:
        position_id: Monotonic id, starting at 1.
        owner: Account that opened the position.
        collateral_amount: Collateral held, in the collateral asset's precision.
        debt_amount: Outstanding debt, in the loan asset's precision.
        effective_ltv_ratio: LTV percentage, base LTV or boosted by the fee gate.
        leverage: Multiplier chosen at creation (>= 1).
        interest_opt_out: Whether the position skips interest accrual.
        last_interest_collection_block: Opaque marker from the interest collector.
    """
    position_id: int
    owner: str
    collateral_amount: int
    debt_amount: int
    effective_ltv_ratio: int
    leverage: int = 1
    interest_opt_out: bool = False
    last_interest_collection_block: Any = None

    def __post_init__(self):
        if self.collateral_amount < 0:
            raise ArithmeticUnderflow(f"collateral_amount cannot be negative, got {self.collateral_amount}")
        if self.debt_amount < 0:
            raise ArithmeticUnderflow(f"debt_amount cannot be negative, got {self.debt_amount}")

    @property
    def is_empty(self) -> bool:
        return self.collateral_amount == 0 and self.debt_amount == 0

    def __repr__(self) -> str:
        return (f"Position(#{self.position_id} {self.owner}: "
                f"coll={self.collateral_amount} debt={self.debt_amount} "
                f"ltv={self.effective_ltv_ratio}% lev={self.leverage}x)")


@dataclass(frozen=True, slots=True)
class VaultConfig:
    """
    Immutable risk parameters of a vault.

    Percentages are whole numbers (50 means 50%). Changing a parameter
    produces a new instance through dataclasses.replace, which re-runs the
    validation below.

    Attributes:
        ltv_ratio: Base loan-to-value cap.
        liquidation_threshold: Percentage of the effective LTV that sets the
            liquidation line for health. An unleveraged position's health
            never falls below 100/ltv, so it can only be liquidated when
            threshold * ltv**2 > 10**6 (above 400 at the default 50% LTV).
        liquidator_reward: Share of seized collateral paid to the liquidator.
        penalty_rate: Share of seized collateral paid to the treasury.
        mint_fee_percent: Fee charged on collateral entering through the fee gate.
        max_debt: Optional ceiling on the vault's total debt.
        max_price_age: Optional staleness window for timed oracles.
    """
    ltv_ratio: int = 50
    liquidation_threshold: int = 500
    liquidator_reward: int = 5
    penalty_rate: int = 5
    mint_fee_percent: int = 2
    max_debt: Optional[int] = None
    max_price_age: Optional[timedelta] = None

    def __post_init__(self):
        if not 0 < self.ltv_ratio <= 100:
            raise InvalidConfiguration(f"ltv_ratio must be in (0, 100], got {self.ltv_ratio}")
        if self.liquidation_threshold <= 0:
            raise InvalidConfiguration(
                f"liquidation_threshold must be positive, got {self.liquidation_threshold}"
            )
        if self.liquidator_reward < 0 or self.penalty_rate < 0:
            raise InvalidConfiguration("liquidator_reward and penalty_rate cannot be negative")
        if self.liquidator_reward + self.penalty_rate > 100:
            raise InvalidConfiguration(
                f"liquidator_reward + penalty_rate cannot exceed 100, got "
                f"{self.liquidator_reward + self.penalty_rate}"
            )
        if not 0 <= self.mint_fee_percent < 100:
            raise InvalidConfiguration(
                f"mint_fee_percent must be in [0, 100), got {self.mint_fee_percent}"
            )
        if self.max_debt is not None and self.max_debt < 0:
            raise InvalidConfiguration(f"max_debt cannot be negative, got {self.max_debt}")
        if self.max_price_age is not None and self.max_price_age <= timedelta(0):
            raise InvalidConfiguration("max_price_age must be a positive timedelta")

    @property
    def liquidates_unleveraged(self) -> bool:
        """Whether the liquidation line at the base LTV sits above the unleveraged health floor."""
        return self.liquidation_threshold * self.ltv_ratio ** 2 > 10**6


def load_vault_config(data: Mapping[str, Any]) -> VaultConfig:
    """
    Build a VaultConfig from a plain mapping (e.g. parsed JSON or YAML).

    Unknown keys are rejected. max_price_age may be given in seconds.

    Raises:
        InvalidConfiguration: on unknown keys or out-of-range values.
    """
    known = {f.name for f in fields(VaultConfig)}
    unknown = set(data) - known
    if unknown:
        raise InvalidConfiguration(f"Unknown config keys: {sorted(unknown)}")
    values = dict(data)
    age = values.get('max_price_age')
    if age is not None and not isinstance(age, timedelta):
        values['max_price_age'] = timedelta(seconds=age)
    return VaultConfig(**values)


def to_config_dict(config: VaultConfig) -> Dict[str, Any]:
    """Inverse of load_vault_config; max_price_age is exported in seconds."""
    data = {f.name: getattr(config, f.name) for f in fields(VaultConfig)}
    if config.max_price_age is not None:
        data['max_price_age'] = config.max_price_age.total_seconds()
    return data


@dataclass(frozen=True, slots=True)
class VaultEvent:
    """One entry of the vault's append-only audit log."""
    sequence: int
    name: str
    position_id: Optional[int] = None
    data: Mapping[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        target = f" #{self.position_id}" if self.position_id is not None else ""
        return f"VaultEvent({self.sequence}: {self.name}{target} {dict(self.data)})"


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """Outcome of liquidating a single position."""
    position_id: int
    owner: str
    liquidator: str
    collateral_seized: int
    debt_written_off: int
    reward: int
    penalty: int
    remainder: int


@dataclass(frozen=True, slots=True)
class BatchLiquidationResult:
    """Outcome of batch_liquidate; liquidated lists only the ids actually closed."""
    liquidated: Tuple[LiquidationResult, ...]
    skipped: Tuple[int, ...]

    @property
    def position_ids(self) -> Tuple[int, ...]:
        return tuple(r.position_id for r in self.liquidated)
