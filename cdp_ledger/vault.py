"""
vault.py - CDP vault: the public operation surface

The Vault owns a PositionLedger and wires it to its collaborators: the
collateral and loan tokens, the price oracle, the interest collector, the
receipt issuer and the optional custodian strategy.

Key responsibilities:
    - Validates every request and enforces owner / role permissions
    - Applies the fee gate to collateral inflows
    - Routes collateral through the custodian strategy
    - Computes health from ledger state plus oracle prices on every query
    - Liquidates single positions and batches
    - Records every committed operation in event_log

Execution model:
    Every mutating call runs inside _mutation(), which rejects re-entrant
    mutating calls and opens a savepoint on the ledger and on each distinct
    Revertible store (token adapters sharing one book count once). Savepoints
    are journals of touched entries, so their cost follows the work done, not
    the size of the books. Ledger changes are committed before any external call; if
    anything raises, all snapshotted state is restored, so a call either
    fully commits or leaves no trace. Read-only calls are always allowed,
    including from inside a collaborator mid-operation.
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set

from .core import (
    # Constants
    MAX_HEALTH, ADMIN_ROLE, LEVERAGE_ROLE,
    # Protocols
    PriceOracle, TimedPriceOracle, CollateralToken, LoanToken,
    InterestCollector, Strategy, ReceiptIssuer, Revertible,
    # Types
    Position, VaultConfig, VaultEvent, LiquidationResult, BatchLiquidationResult,
    # Exceptions
    InvalidCollateralToken, ZeroCollateralAmount, ZeroLoanAmount, InvalidLeverage,
    NoPositionsToLiquidate, NotPositionOwner, ReentrantCall,
    LoanExceedsLTVLimit, MaxDebtReached, InsufficientCollateral,
    InsufficientCollateralAfterWithdrawal, AmountExceedsLoan, PositionNotLiquidatable,
    CollateralTransferFailed, LiquidationFailed, InvalidPrice, StalePrice,
)
from .fees import FeeGateResult, calculate_fee_gate
from .health import (
    HealthInputs,
    normalize_price, calculate_value, calculate_max_borrowable,
    calculate_position_health, calculate_is_liquidatable,
    calculate_min_collateral_value, calculate_liquidation_split,
)
from .positions import PositionLedger
from .roles import RoleTable
from .strategy import CustodyRouter


class Vault:
    """
    Collateralized-debt-position vault for one collateral asset and one loan asset.

    Every mutating method takes the calling account as its first argument.

    Example:
        vault = Vault(weth, usdx, oracle, treasury="treasury", admin="gov")
        weth.approve("alice", vault.account, 10 * 10**18)
        pid = vault.open_position("alice", "WETH", 10 * 10**18, 5000 * 10**18)
        vault.get_position_health(pid)
    """

    def __init__(
        self,
        collateral_token: CollateralToken,
        loan_token: LoanToken,
        oracle: PriceOracle,
        treasury: str,
        admin: str,
        config: Optional[VaultConfig] = None,
        strategy: Optional[Strategy] = None,
        interest_collector: Optional[InterestCollector] = None,
        receipts: Optional[ReceiptIssuer] = None,
        account: str = "vault",
        verbose: bool = True,
    ):
        """
        Create a vault.

        Args:
            collateral_token: Asset accepted as collateral
            loan_token: Pegged asset minted against collateral
            oracle: Price source for both assets
            treasury: Account receiving mint fees and liquidation penalties
            admin: Account granted ADMIN_ROLE
            config: Risk parameters (default: VaultConfig())
            strategy: Optional custodian for delegated collateral
            interest_collector: Optional interest accrual collaborator
            receipts: Optional issuer of per-position receipts
            account: Account the vault holds collateral in
            verbose: Print every event as it is recorded (default: True)
        """
        self.collateral_token = collateral_token
        self.loan_token = loan_token
        self.oracle = oracle
        self.treasury = treasury
        self.config = config or VaultConfig()
        self.interest_collector = interest_collector
        self.receipts = receipts
        self.account = account
        self.verbose = verbose

        self.ledger = PositionLedger()
        self.roles = RoleTable()
        self.roles.grant(ADMIN_ROLE, admin)
        self.custody = CustodyRouter(collateral_token, account, strategy)
        self.event_log: List[VaultEvent] = []

        self._do_not_mint: Set[str] = set()
        self._interest_opt_out: Set[str] = set()
        self._in_mutation = False
        self._warn_if_unliquidatable()

    @property
    def collateral_asset(self) -> str:
        return self.collateral_token.symbol

    @property
    def strategy(self) -> Optional[Strategy]:
        return self.custody.strategy

    @property
    def total_debt(self) -> int:
        return self.ledger.total_debt

    # ========================================================================
    # ATOMICITY AND RE-ENTRANCY
    # ========================================================================

    @contextmanager
    def _mutation(self) -> Iterator[None]:
        if self._in_mutation:
            raise ReentrantCall("Vault is already executing a mutating call")
        saved = self._snapshot()
        self._in_mutation = True
        try:
            yield
        except BaseException:
            self._restore(saved)
            raise
        else:
            self._release(saved)
        finally:
            self._in_mutation = False

    def _revertibles(self) -> List[Revertible]:
        """Distinct stores to savepoint; adapters over one book collapse to it."""
        candidates = (
            self.collateral_token, self.loan_token, self.receipts,
            self.custody.strategy, self.interest_collector,
        )
        seen: Set[int] = set()
        found = []
        for obj in candidates:
            if obj is None or not isinstance(obj, Revertible):
                continue
            store = getattr(obj, 'backing', obj)
            if id(store) in seen:
                continue
            seen.add(id(store))
            found.append(store)
        return found

    def _snapshot(self) -> Dict[str, Any]:
        return {
            'ledger': self.ledger.snapshot(),
            'events': len(self.event_log),
            'do_not_mint': set(self._do_not_mint),
            'interest_opt_out': set(self._interest_opt_out),
            'collaborators': [(obj, obj.snapshot()) for obj in self._revertibles()],
        }

    def _restore(self, saved: Dict[str, Any]) -> None:
        for obj, token in reversed(saved['collaborators']):
            obj.restore(token)
        self.ledger.restore(saved['ledger'])
        del self.event_log[saved['events']:]
        self._do_not_mint = saved['do_not_mint']
        self._interest_opt_out = saved['interest_opt_out']

    def _release(self, saved: Dict[str, Any]) -> None:
        for obj, token in reversed(saved['collaborators']):
            obj.release(token)
        self.ledger.release(saved['ledger'])

    def _emit(self, name: str, position_id: Optional[int] = None, **data) -> VaultEvent:
        event = VaultEvent(sequence=len(self.event_log), name=name, position_id=position_id, data=data)
        self.event_log.append(event)
        if self.verbose:
            print(f"✓ {event!r}")
        return event

    # ========================================================================
    # PRICES AND HEALTH (read-only)
    # ========================================================================

    def _price(self, asset: str) -> int:
        """
        Oracle price of asset, normalised to PRICE_DECIMALS.

        Raises:
            InvalidPrice: if the quote is not positive.
            StalePrice: if max_price_age is configured and the quote is older.
        """
        price, decimals = self.oracle.latest_price(asset)
        if price <= 0:
            raise InvalidPrice(f"Oracle returned non-positive price {price} for {asset}")
        max_age = self.config.max_price_age
        if max_age is not None and isinstance(self.oracle, TimedPriceOracle):
            age = self.oracle.price_age(asset)
            if age > max_age:
                raise StalePrice(f"Price for {asset} is {age} old (max {max_age})")
        return normalize_price(price, decimals)

    def _load_health_inputs(self, position: Position) -> HealthInputs:
        return HealthInputs(
            collateral_amount=position.collateral_amount,
            debt_amount=position.debt_amount,
            collateral_price=self._price(self.collateral_asset),
            loan_price=self._price(self.loan_token.symbol),
            collateral_decimals=self.collateral_token.decimals,
            loan_decimals=self.loan_token.decimals,
            effective_ltv=position.effective_ltv_ratio,
            leverage=position.leverage,
        )

    def get_position_health(self, position_id: int) -> int:
        """
        Health of a position in PRECISION fixed point; MAX_HEALTH without debt.

        Raises:
            InvalidPosition: if the position does not exist.
            OracleError: if a price is unusable.
        """
        position = self.ledger.get(position_id)
        if position.debt_amount == 0:
            return MAX_HEALTH
        return calculate_position_health(self._load_health_inputs(position))

    def is_liquidatable(self, position_id: int) -> bool:
        """False for unknown ids and for positions without debt or collateral."""
        if not self.ledger.exists(position_id):
            return False
        position = self.ledger.get(position_id)
        if position.debt_amount == 0 or position.collateral_amount == 0:
            return False
        return calculate_is_liquidatable(
            health=self.get_position_health(position_id),
            collateral=position.collateral_amount,
            debt=position.debt_amount,
            effective_ltv=position.effective_ltv_ratio,
            liquidation_threshold=self.config.liquidation_threshold,
        )

    def _max_borrowable(self, collateral_amount: int, effective_ltv: int) -> int:
        collateral_value = calculate_value(
            collateral_amount, self._price(self.collateral_asset), self.collateral_token.decimals
        )
        return calculate_max_borrowable(
            collateral_value, effective_ltv, self._price(self.loan_token.symbol), self.loan_token.decimals
        )

    def get_max_borrowable(self, position_id: int) -> int:
        """Largest total debt the position's collateral supports at its effective LTV."""
        position = self.ledger.get(position_id)
        return self._max_borrowable(position.collateral_amount, position.effective_ltv_ratio)

    def get_collateral_value(self, position_id: int) -> int:
        position = self.ledger.get(position_id)
        return calculate_value(
            position.collateral_amount, self._price(self.collateral_asset), self.collateral_token.decimals
        )

    def _check_borrow_limit(self, collateral_amount: int, total_debt: int, effective_ltv: int, added_debt: int) -> None:
        """
        Raises:
            LoanExceedsLTVLimit: if total_debt exceeds what the collateral supports.
            MaxDebtReached: if added_debt would push the vault past max_debt.
        """
        if added_debt == 0:
            return
        limit = self._max_borrowable(collateral_amount, effective_ltv)
        if total_debt > limit:
            raise LoanExceedsLTVLimit(f"Debt {total_debt} exceeds LTV limit {limit}")
        max_debt = self.config.max_debt
        if max_debt is not None and self.ledger.total_debt + added_debt > max_debt:
            raise MaxDebtReached(
                f"Vault debt {self.ledger.total_debt} + {added_debt} exceeds ceiling {max_debt}"
            )

    # ========================================================================
    # POSITION LIFECYCLE (Mutating)
    # ========================================================================

    def open_position(
        self,
        owner: str,
        collateral_asset: str,
        collateral_amount: int,
        debt_amount: int = 0,
        leverage: int = 1,
    ) -> int:
        """
        Open a position, pulling collateral from owner and minting debt to owner.

        The owner must have approved the vault account for collateral_amount.

        Returns:
            The new position id.

        Raises:
            InvalidCollateralToken: collateral_asset is not the vault's asset.
            ZeroCollateralAmount: collateral_amount is zero.
            InvalidLeverage: leverage below 1.
            LoanExceedsLTVLimit / MaxDebtReached: debt above the limits.
            CollateralTransferFailed: the collateral pull or fee transfer failed.
        """
        with self._mutation():
            if collateral_asset != self.collateral_asset:
                raise InvalidCollateralToken(
                    f"Expected {self.collateral_asset}, got {collateral_asset}"
                )
            if collateral_amount <= 0:
                raise ZeroCollateralAmount("collateral_amount must be positive")
            if debt_amount < 0:
                raise ZeroLoanAmount("debt_amount cannot be negative")
            if leverage < 1:
                raise InvalidLeverage(f"leverage must be at least 1, got {leverage}")

            base_ltv = self.config.ltv_ratio
            self._check_borrow_limit(collateral_amount, debt_amount, base_ltv, debt_amount)
            gate = self._fee_gate(owner, collateral_amount, base_ltv, has_receipt=False)
            net_amount = gate.net_amount if gate else collateral_amount
            opted_out = owner in self._interest_opt_out

            position_id = self.ledger.create(
                owner,
                collateral=net_amount,
                debt=debt_amount,
                effective_ltv=base_ltv,
                leverage=leverage,
                interest_opt_out=opted_out,
            )
            self._emit(
                "POSITION_OPENED", position_id,
                owner=owner, collateral=net_amount, debt=debt_amount,
                leverage=leverage,
            )
            self._commit_fee_gate(position_id, gate, previous_ltv=base_ltv)

            self._pull_collateral(owner, collateral_amount)
            self._settle_fee_gate(position_id, owner, gate)
            self.custody.deposit(position_id, net_amount)
            if debt_amount:
                self.loan_token.mint(owner, debt_amount)
            if self.interest_collector is not None and not opted_out:
                marker = self.interest_collector.set_last_collection_block(self, position_id)
                self.ledger.set_interest_marker(position_id, marker)
            return position_id

    def add_collateral(self, caller: str, position_id: int, amount: int) -> None:
        """Add collateral to the caller's own position."""
        self._add_collateral(caller, position_id, amount, delegated=False)

    def add_collateral_for(self, caller: str, position_id: int, amount: int) -> None:
        """Add collateral to any position; caller needs LEVERAGE_ROLE and funds the deposit."""
        self._add_collateral(caller, position_id, amount, delegated=True)

    def _add_collateral(self, caller: str, position_id: int, amount: int, delegated: bool) -> None:
        with self._mutation():
            if amount <= 0:
                raise ZeroCollateralAmount("amount must be positive")
            position = self.ledger.get(position_id)
            self._authorize(caller, position, delegated)

            gate = self._fee_gate(
                position.owner, amount, position.effective_ltv_ratio,
                has_receipt=self.ledger.has_receipt(position_id),
            )
            net_amount = gate.net_amount if gate else amount
            self.ledger.add_collateral(position_id, net_amount)
            self._emit("COLLATERAL_ADDED", position_id, caller=caller, amount=net_amount)
            self._commit_fee_gate(position_id, gate, previous_ltv=position.effective_ltv_ratio)

            self._pull_collateral(caller, amount)
            self._settle_fee_gate(position_id, position.owner, gate)
            self.custody.deposit(position_id, net_amount)

    def withdraw_collateral(self, caller: str, position_id: int, amount: int) -> None:
        """
        Return collateral to the owner, keeping the position within its effective LTV.

        Raises:
            ZeroCollateralAmount, InvalidPosition, NotPositionOwner,
            InsufficientCollateral, InsufficientCollateralAfterWithdrawal,
            StrategyCallFailed, CollateralTransferFailed.
        """
        with self._mutation():
            if amount <= 0:
                raise ZeroCollateralAmount("amount must be positive")
            position = self.ledger.get(position_id)
            self._authorize(caller, position, delegated=False)
            if amount > position.collateral_amount:
                raise InsufficientCollateral(
                    f"Position {position_id} holds {position.collateral_amount}, requested {amount}"
                )
            if position.debt_amount > 0:
                inputs = self._load_health_inputs(
                    replace(position, collateral_amount=position.collateral_amount - amount)
                )
                required = calculate_min_collateral_value(inputs.debt_value, position.effective_ltv_ratio)
                if inputs.collateral_value < required:
                    raise InsufficientCollateralAfterWithdrawal(
                        f"Remaining collateral value {inputs.collateral_value} below required {required}"
                    )

            self.ledger.remove_collateral(position_id, amount)
            self._emit("COLLATERAL_WITHDRAWN", position_id, amount=amount)
            had_receipt = self._close_if_empty(position_id)

            self.custody.release(position_id, amount)
            if not self.collateral_token.transfer(self.account, position.owner, amount):
                raise CollateralTransferFailed(f"Could not send {amount} to {position.owner}")
            if had_receipt:
                self.receipts.burn(position_id)

    def borrow(self, caller: str, position_id: int, amount: int) -> None:
        """Mint more of the loan asset against the caller's own position."""
        self._borrow(caller, position_id, amount, delegated=False)

    def borrow_for(self, caller: str, position_id: int, amount: int) -> None:
        """Mint against any position to the caller; caller needs LEVERAGE_ROLE."""
        self._borrow(caller, position_id, amount, delegated=True)

    def _borrow(self, caller: str, position_id: int, amount: int, delegated: bool) -> None:
        with self._mutation():
            if amount <= 0:
                raise ZeroLoanAmount("amount must be positive")
            position = self.ledger.get(position_id)
            self._authorize(caller, position, delegated)
            self._collect_interest(position_id)

            position = self.ledger.get(position_id)
            self._check_borrow_limit(
                position.collateral_amount, position.debt_amount + amount,
                position.effective_ltv_ratio, amount,
            )
            self.ledger.add_debt(position_id, amount)
            self._emit("BORROWED", position_id, caller=caller, amount=amount)
            self.loan_token.mint(caller, amount)

    def repay_debt(self, caller: str, position_id: int, amount: int) -> None:
        """
        Burn loan asset from the owner to reduce the position's debt.

        Raises:
            ZeroLoanAmount, InvalidPosition, NotPositionOwner, AmountExceedsLoan.
        """
        with self._mutation():
            if amount <= 0:
                raise ZeroLoanAmount("amount must be positive")
            position = self.ledger.get(position_id)
            self._authorize(caller, position, delegated=False)
            self._collect_interest(position_id)

            position = self.ledger.get(position_id)
            if amount > position.debt_amount:
                raise AmountExceedsLoan(f"Repay {amount} exceeds debt {position.debt_amount}")
            self.ledger.remove_debt(position_id, amount)
            self._emit("REPAID", position_id, amount=amount)
            had_receipt = self._close_if_empty(position_id)

            self.loan_token.burn(caller, amount)
            if had_receipt:
                self.receipts.burn(position_id)

    def _authorize(self, caller: str, position: Position, delegated: bool) -> None:
        if delegated:
            self.roles.require(LEVERAGE_ROLE, caller)
        elif caller != position.owner:
            raise NotPositionOwner(f"{caller} does not own position {position.position_id}")

    def _pull_collateral(self, from_: str, amount: int) -> None:
        if not self.collateral_token.transfer_from(self.account, from_, self.account, amount):
            raise CollateralTransferFailed(
                f"Could not pull {amount} {self.collateral_asset} from {from_}"
            )

    def _close_if_empty(self, position_id: int) -> bool:
        """Delete the position once both balances are zero; returns whether a receipt must be burned."""
        position = self.ledger.get(position_id)
        if not position.is_empty:
            return False
        had_receipt = self.ledger.delete(position_id)
        self._emit("POSITION_CLOSED", position_id, owner=position.owner)
        return had_receipt and self.receipts is not None

    # ========================================================================
    # FEE & LEVERAGE GATE
    # ========================================================================

    def _fee_gate(self, owner: str, amount: int, current_ltv: int, has_receipt: bool) -> Optional[FeeGateResult]:
        """None when the owner has opted out (set_do_not_mint)."""
        if owner in self._do_not_mint:
            return None
        return calculate_fee_gate(
            amount,
            mint_fee_percent=self.config.mint_fee_percent,
            base_ltv=self.config.ltv_ratio,
            current_effective_ltv=current_ltv,
            has_receipt=has_receipt or self.receipts is None,
        )

    def _commit_fee_gate(self, position_id: int, gate: Optional[FeeGateResult], previous_ltv: int) -> None:
        """Ledger side of the gate: boost and receipt flag. Runs before any transfer."""
        if gate is None:
            return
        if gate.effective_ltv > previous_ltv:
            self.ledger.raise_effective_ltv(position_id, gate.effective_ltv)
            self._emit("LTV_BOOSTED", position_id, old=previous_ltv, new=gate.effective_ltv)
        if gate.mint_receipt:
            self.ledger.mark_receipt(position_id)

    def _settle_fee_gate(self, position_id: int, owner: str, gate: Optional[FeeGateResult]) -> None:
        """Token side of the gate: fee to treasury, receipt to owner."""
        if gate is None:
            return
        if gate.fee:
            if not self.collateral_token.transfer(self.account, self.treasury, gate.fee):
                raise CollateralTransferFailed(f"Could not send mint fee {gate.fee} to treasury")
            self._emit("MINT_FEE_CHARGED", position_id, fee=gate.fee)
        if gate.mint_receipt:
            self.receipts.mint(owner, position_id)
            self._emit("RECEIPT_MINTED", position_id, owner=owner)

    # ========================================================================
    # INTEREST (best-effort sidecar)
    # ========================================================================

    def _collect_interest(self, position_id: int) -> int:
        """
        Ask the interest collector for accrued interest and add it to the debt.

        Collector failures are recorded and reported, never raised: they must
        not block the operation this call is piggybacked on.
        """
        collector = self.interest_collector
        if collector is None:
            return 0
        position = self.ledger.get(position_id)
        if position.interest_opt_out or position.debt_amount == 0:
            return 0
        try:
            accrued = collector.collect_interest(
                self, self.collateral_asset, position_id, position.debt_amount
            )
        except Exception as exc:
            self._emit("INTEREST_COLLECTION_FAILED", position_id, error=repr(exc))
            if self.verbose:
                print(f"⚠️  Interest collection failed for position {position_id}: {exc}")
            return 0
        if accrued > 0:
            self.ledger.add_debt(position_id, accrued)
            self._emit("INTEREST_COLLECTED", position_id, amount=accrued)
            return accrued
        return 0

    def collect_interest(self, position_id: int) -> int:
        """Public poke of the interest sidecar. Returns the interest added (0 on failure)."""
        with self._mutation():
            self.ledger.get(position_id)
            return self._collect_interest(position_id)

    # ========================================================================
    # LIQUIDATION (Mutating)
    # ========================================================================

    def liquidate_position(self, caller: str, position_id: int) -> LiquidationResult:
        """
        Seize an unhealthy position's collateral and write off its debt.

        The seized collateral is split: liquidator_reward% to caller,
        penalty_rate% to the treasury, the remainder back to the owner.
        The debt is only removed from the ledger; no loan asset is burned.

        Raises:
            InvalidPosition: unknown position.
            PositionNotLiquidatable: position is healthy or empty-sided.
            LiquidationFailed: a payout transfer failed (nothing is applied).
        """
        with self._mutation():
            self.ledger.get(position_id)
            if not self.is_liquidatable(position_id):
                raise PositionNotLiquidatable(f"Position {position_id} is not liquidatable")
            self._collect_interest(position_id)
            return self._liquidate(caller, position_id)

    def batch_liquidate(self, caller: str, position_ids: Iterable[int]) -> BatchLiquidationResult:
        """
        Liquidate every listed position that is currently liquidatable.

        Ids that are unknown, healthy or already liquidated earlier in the
        batch are skipped, not raised. Emits one BATCH_LIQUIDATED summary.

        Raises:
            NoPositionsToLiquidate: position_ids is empty.
            LiquidationFailed: a payout transfer failed (the whole batch reverts).
        """
        ids = list(position_ids)
        with self._mutation():
            if not ids:
                raise NoPositionsToLiquidate("No position ids given")
            liquidated: List[LiquidationResult] = []
            skipped: List[int] = []
            for position_id in ids:
                if not self.is_liquidatable(position_id):
                    skipped.append(position_id)
                    continue
                self._collect_interest(position_id)
                liquidated.append(self._liquidate(caller, position_id))

            result = BatchLiquidationResult(liquidated=tuple(liquidated), skipped=tuple(skipped))
            self._emit("BATCH_LIQUIDATED", position_ids=result.position_ids, skipped=result.skipped)
            return result

    def _liquidate(self, caller: str, position_id: int) -> LiquidationResult:
        position = self.ledger.get(position_id)
        split = calculate_liquidation_split(
            position.collateral_amount, self.config.liquidator_reward, self.config.penalty_rate
        )
        had_receipt = self.ledger.has_receipt(position_id) and self.receipts is not None
        self.ledger.seize(position_id)
        result = LiquidationResult(
            position_id=position_id,
            owner=position.owner,
            liquidator=caller,
            collateral_seized=position.collateral_amount,
            debt_written_off=position.debt_amount,
            reward=split.reward,
            penalty=split.penalty,
            remainder=split.remainder,
        )
        self._emit(
            "POSITION_LIQUIDATED", position_id,
            owner=position.owner, liquidator=caller,
            collateral=position.collateral_amount, debt=position.debt_amount,
            reward=split.reward, penalty=split.penalty, remainder=split.remainder,
        )

        self.custody.release(position_id, position.collateral_amount)
        for recipient, amount in (
            (self.treasury, split.penalty),
            (caller, split.reward),
            (position.owner, split.remainder),
        ):
            if not self.collateral_token.transfer(self.account, recipient, amount):
                raise LiquidationFailed(
                    f"Could not pay {amount} {self.collateral_asset} to {recipient} "
                    f"liquidating position {position_id}"
                )
        if had_receipt:
            self.receipts.burn(position_id)
        return result

    # ========================================================================
    # OWNER SETTINGS (Mutating)
    # ========================================================================

    def set_do_not_mint(self, caller: str, flag: bool) -> None:
        """Opt the caller's positions out of (True) or back into (False) the fee gate."""
        with self._mutation():
            if flag:
                self._do_not_mint.add(caller)
            else:
                self._do_not_mint.discard(caller)
            self._emit("CONFIG_CHANGED", owner=caller, do_not_mint=flag)

    def set_interest_opt_out(self, caller: str, flag: bool) -> None:
        """Applies to positions the caller opens afterwards."""
        with self._mutation():
            if flag:
                self._interest_opt_out.add(caller)
            else:
                self._interest_opt_out.discard(caller)
            self._emit("CONFIG_CHANGED", owner=caller, interest_opt_out=flag)

    def is_do_not_mint(self, owner: str) -> bool:
        return owner in self._do_not_mint

    def is_interest_opt_out(self, owner: str) -> bool:
        return owner in self._interest_opt_out

    # ========================================================================
    # ADMIN (Mutating, ADMIN_ROLE)
    # ========================================================================

    def _update_config(self, caller: str, **changes) -> None:
        with self._mutation():
            self.roles.require(ADMIN_ROLE, caller)
            self.config = replace(self.config, **changes)
            self._emit("CONFIG_CHANGED", caller=caller, **changes)
            self._warn_if_unliquidatable()

    def _warn_if_unliquidatable(self) -> None:
        if self.verbose and not self.config.liquidates_unleveraged:
            print(f"⚠️  liquidation_threshold {self.config.liquidation_threshold} at ltv "
                  f"{self.config.ltv_ratio}: unleveraged positions can never be liquidated")

    def set_mint_fee_percent(self, caller: str, percent: int) -> None:
        self._update_config(caller, mint_fee_percent=percent)

    def set_ltv_ratio(self, caller: str, ltv_ratio: int) -> None:
        """Affects new positions and future boosts; stored effective LTVs are kept."""
        self._update_config(caller, ltv_ratio=ltv_ratio)

    def set_liquidation_params(self, caller: str, threshold: int, reward: int, penalty: int) -> None:
        self._update_config(
            caller, liquidation_threshold=threshold, liquidator_reward=reward, penalty_rate=penalty
        )

    def set_max_debt(self, caller: str, max_debt: Optional[int]) -> None:
        self._update_config(caller, max_debt=max_debt)

    def set_treasury(self, caller: str, treasury: str) -> None:
        with self._mutation():
            self.roles.require(ADMIN_ROLE, caller)
            self.treasury = treasury
            self._emit("CONFIG_CHANGED", caller=caller, treasury=treasury)

    def set_strategy(self, caller: str, strategy: Optional[Strategy]) -> None:
        """Collateral already delegated is not migrated; switch strategies before positions are funded."""
        with self._mutation():
            self.roles.require(ADMIN_ROLE, caller)
            self.custody.strategy = strategy
            self._emit("CONFIG_CHANGED", caller=caller, strategy=getattr(strategy, 'account', None))

    def grant_role(self, caller: str, role: str, account: str) -> None:
        with self._mutation():
            self.roles.require(ADMIN_ROLE, caller)
            self.roles.grant(role, account)
            self._emit("ROLE_GRANTED", caller=caller, role=role, account=account)

    def revoke_role(self, caller: str, role: str, account: str) -> None:
        with self._mutation():
            self.roles.require(ADMIN_ROLE, caller)
            self.roles.revoke(role, account)
            self._emit("ROLE_REVOKED", caller=caller, role=role, account=account)

    # ========================================================================
    # VIEWS
    # ========================================================================

    def get_position(self, position_id: int) -> Position:
        return self.ledger.get(position_id)

    def get_positions_by_owner(self, owner: str) -> List[int]:
        """Ids in index order; removals reorder it (swap-with-last)."""
        return self.ledger.positions_of(owner)

    def get_collateral_balance(self, owner: str) -> int:
        return self.ledger.collateral_balance(owner)

    def get_debt_balance(self, owner: str) -> int:
        return self.ledger.debt_balance(owner)

    def has_receipt(self, position_id: int) -> bool:
        return self.ledger.has_receipt(position_id)

    @property
    def position_count(self) -> int:
        return len(self.ledger)

    def verify_aggregates(self) -> Dict[str, Any]:
        return self.ledger.verify_aggregates()

    def events(self, name: Optional[str] = None) -> List[VaultEvent]:
        """Audit log entries, optionally filtered by event name."""
        if name is None:
            return list(self.event_log)
        return [e for e in self.event_log if e.name == name]

    def __repr__(self) -> str:
        return (f"Vault({self.collateral_asset}/{self.loan_token.symbol}, "
                f"{self.position_count} positions, total_debt={self.total_debt})")
