"""
cdp_ledger - Collateralized Debt Position Lending Ledger

Position ledger, health and liquidation engine, fee and leverage gate, and
strategy-delegated custody for a single-collateral CDP vault.

The vault talks to tokens, oracles, the interest collector and strategies only
through the Protocols in core.py. AssetBook and the Book* token adapters are
reference backends for those Protocols, used by the tests, the crash
simulations and the example below; they are not a token implementation.

Usage:
    from cdp_ledger import (
        AssetBook, BookCollateralToken, BookLoanToken, BookReceiptIssuer,
        StaticPriceOracle, Vault, VaultConfig,
    )

    book = AssetBook("main", verbose=False)
    for wallet in ("vault", "treasury", "alice"):
        book.register_wallet(wallet)
    weth = BookCollateralToken(book, "WETH", "Wrapped Ether")
    usdx = BookLoanToken(book, "USDX", "USD Stablecoin")
    oracle = StaticPriceOracle({"WETH": 2000_00000000, "USDX": 1_00000000})

    vault = Vault(weth, usdx, oracle, treasury="treasury", admin="gov",
                  receipts=BookReceiptIssuer(book), verbose=False)

    weth.issue("alice", 10 * 10**18)
    weth.approve("alice", vault.account, 10 * 10**18)
    pid = vault.open_position("alice", "WETH", 10 * 10**18, 5000 * 10**18)
    vault.get_position_health(pid)
"""

# Core types
from .core import (
    PRECISION,
    HIGH_PRECISION,
    MAX_HEALTH,
    PRICE_DECIMALS,
    ADMIN_ROLE,
    LEVERAGE_ROLE,
    PriceOracle,
    TimedPriceOracle,
    CollateralToken,
    LoanToken,
    InterestCollector,
    Strategy,
    ReceiptIssuer,
    Revertible,
    Position,
    VaultConfig,
    VaultEvent,
    LiquidationResult,
    BatchLiquidationResult,
    load_vault_config,
    to_config_dict,
    # Exceptions
    VaultError,
    ValidationError,
    AuthorizationError,
    EconomicLimitError,
    IntegrationError,
    OracleError,
    InvalidCollateralToken,
    ZeroCollateralAmount,
    ZeroLoanAmount,
    InvalidPosition,
    InvalidLeverage,
    NoPositionsToLiquidate,
    InvalidConfiguration,
    ArithmeticUnderflow,
    NotPositionOwner,
    MissingRole,
    ReentrantCall,
    LoanExceedsLTVLimit,
    MaxDebtReached,
    InsufficientCollateral,
    InsufficientCollateralAfterWithdrawal,
    AmountExceedsLoan,
    PositionNotLiquidatable,
    CollateralTransferFailed,
    LiquidationFailed,
    StrategyCallFailed,
    InvalidPrice,
    StalePrice,
)

# Position ledger
from .positions import PositionLedger

# Health and liquidation math
from .health import (
    HealthInputs,
    LiquidationSplit,
    normalize_price,
    calculate_value,
    calculate_max_borrowable,
    calculate_leverage_used,
    calculate_health,
    calculate_position_health,
    calculate_liquidation_limit,
    calculate_is_liquidatable,
    calculate_min_collateral_value,
    calculate_liquidation_split,
)

# Fee and leverage gate
from .fees import (
    FeeGateResult,
    calculate_mint_fee,
    calculate_boosted_ltv,
    calculate_fee_gate,
)

from .journal import UndoJournal
from .roles import RoleTable
from .strategy import CustodyRouter
from .vault import Vault

# Reference collaborators
from .asset_book import (
    AssetBook,
    Asset,
    Move,
    BookSavepoint,
    ExecuteResult,
    SYSTEM_WALLET,
    non_transferable_rule,
    BookError,
    InsufficientFunds,
    TransferRuleViolation,
    AssetNotRegistered,
    WalletNotRegistered,
)
from .tokens import BookCollateralToken, BookLoanToken, BookReceiptIssuer
from .pricing_source import StaticPriceOracle, TimeSeriesPriceOracle

# Stress tooling
from .stress import (
    simulate_price_paths,
    to_oracle_price,
    health_curve,
    find_liquidation_price,
)

__all__ = [
    # Constants
    'PRECISION', 'HIGH_PRECISION', 'MAX_HEALTH', 'PRICE_DECIMALS',
    'ADMIN_ROLE', 'LEVERAGE_ROLE',
    # Protocols
    'PriceOracle', 'TimedPriceOracle', 'CollateralToken', 'LoanToken',
    'InterestCollector', 'Strategy', 'ReceiptIssuer', 'Revertible',
    # Types
    'Position', 'VaultConfig', 'VaultEvent', 'LiquidationResult', 'BatchLiquidationResult',
    'load_vault_config', 'to_config_dict',
    # Exceptions
    'VaultError', 'ValidationError', 'AuthorizationError', 'EconomicLimitError',
    'IntegrationError', 'OracleError',
    'InvalidCollateralToken', 'ZeroCollateralAmount', 'ZeroLoanAmount', 'InvalidPosition',
    'InvalidLeverage', 'NoPositionsToLiquidate', 'InvalidConfiguration', 'ArithmeticUnderflow',
    'NotPositionOwner', 'MissingRole', 'ReentrantCall',
    'LoanExceedsLTVLimit', 'MaxDebtReached', 'InsufficientCollateral',
    'InsufficientCollateralAfterWithdrawal', 'AmountExceedsLoan', 'PositionNotLiquidatable',
    'CollateralTransferFailed', 'LiquidationFailed', 'StrategyCallFailed',
    'InvalidPrice', 'StalePrice',
    # Ledger and engine
    'PositionLedger', 'UndoJournal', 'Vault', 'RoleTable', 'CustodyRouter',
    'HealthInputs', 'LiquidationSplit',
    'normalize_price', 'calculate_value', 'calculate_max_borrowable', 'calculate_leverage_used',
    'calculate_health', 'calculate_position_health', 'calculate_liquidation_limit',
    'calculate_is_liquidatable', 'calculate_min_collateral_value', 'calculate_liquidation_split',
    'FeeGateResult', 'calculate_mint_fee', 'calculate_boosted_ltv', 'calculate_fee_gate',
    # Reference collaborators
    'AssetBook', 'BookSavepoint', 'Asset', 'Move', 'ExecuteResult', 'SYSTEM_WALLET', 'non_transferable_rule',
    'BookError', 'InsufficientFunds', 'TransferRuleViolation', 'AssetNotRegistered',
    'WalletNotRegistered',
    'BookCollateralToken', 'BookLoanToken', 'BookReceiptIssuer',
    'StaticPriceOracle', 'TimeSeriesPriceOracle',
    # Stress
    'simulate_price_paths', 'to_oracle_price', 'health_curve', 'find_liquidation_price',
]

__version__ = '1.0.0'
