"""
Shared constants for the wheel journal projection engine.

This module centralizes configuration values used across multiple modules,
making it easier to tune thresholds and ensure consistency.
"""

# =============================================================================
# Contract Multiplier
# =============================================================================

SHARES_PER_CONTRACT = 100
"""Number of underlying shares controlled by one equity option contract."""


# =============================================================================
# Profit Target Tiers
# =============================================================================

PROFIT_TARGET_TIERS: dict[str, float] = {
    "urgent": 90.0,  # Close now, little premium left
    "info": 75.0,  # Consider closing or holding
    "opportunity": 50.0,  # Standard 50% take-profit
}
"""Percent-of-max-profit thresholds for short option positions."""


# =============================================================================
# Roll Opportunity Window
# =============================================================================

ROLL_DTE_WINDOW: tuple[int, int] = (3, 7)
"""Inclusive DTE range in which a profitable short is a roll candidate."""

ROLL_MIN_PROFIT_PCT = 70.0
"""Minimum percent of max profit captured before suggesting a roll."""


# =============================================================================
# Expiration and Earnings Horizons
# =============================================================================

EXPIRATION_TIERS: dict[str, int] = {
    "urgent": 1,
    "warning": 3,
    "info": 7,
}
"""Upper DTE bound (inclusive) for each expiration warning priority."""

EARNINGS_TIERS: dict[str, int] = {
    "urgent": 1,
    "warning": 3,
    "info": 7,
    "opportunity": 14,  # Planning horizon
}
"""Upper days-to-earnings bound (inclusive) for each earnings alert priority."""


# =============================================================================
# Covered Call Opportunity
# =============================================================================

COVERED_CALL_MIN_SHARES = SHARES_PER_CONTRACT
"""Uncovered shares needed before suggesting covered calls."""
