"""Configuration management for the wheel projection engine.

This module provides configuration loading, validation, and management
for the projection and alerting thresholds, read from a YAML file with
environment variable overrides.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml

from src.constants import (
    COVERED_CALL_MIN_SHARES,
    EARNINGS_TIERS,
    EXPIRATION_TIERS,
    PROFIT_TARGET_TIERS,
    ROLL_DTE_WINDOW,
    ROLL_MIN_PROFIT_PCT,
    SHARES_PER_CONTRACT,
)

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = ["ConfigurationError", "ProjectionConfig", "load_config"]


def _parse_float_list(raw: str) -> list[float]:
    """Parse "90,75,50" into [90.0, 75.0, 50.0]."""
    try:
        return [float(part) for part in raw.split(",") if part.strip()]
    except ValueError as e:
        raise ConfigurationError(f"Invalid numeric list '{raw}': {e}") from e


def _parse_int_list(raw: str) -> list[int]:
    """Parse "1,3,7" into [1, 3, 7]."""
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError as e:
        raise ConfigurationError(f"Invalid integer list '{raw}': {e}") from e


class ProjectionConfig:
    """Configuration for journal projection and alert rules.

    Attributes:
        shares_per_contract: Contract multiplier for premium and coverage math
        profit_target_tiers: Percent-of-max-profit thresholds (urgent, info, opportunity)
        roll_dte_window: Inclusive (min, max) DTE for roll suggestions
        roll_min_profit_pct: Profit captured before suggesting a roll
        expiration_tiers: DTE bounds (urgent, warning, info)
        earnings_tiers: Days-to-earnings bounds (urgent, warning, info, opportunity)
        covered_call_min_shares: Uncovered shares needed for a covered call alert
        disabled_rules: Rule ids that should not run
    """

    def __init__(
        self,
        shares_per_contract: int = SHARES_PER_CONTRACT,
        profit_target_tiers: Optional[list[float]] = None,
        roll_dte_window: Optional[tuple[int, int]] = None,
        roll_min_profit_pct: float = ROLL_MIN_PROFIT_PCT,
        expiration_tiers: Optional[list[int]] = None,
        earnings_tiers: Optional[list[int]] = None,
        covered_call_min_shares: int = COVERED_CALL_MIN_SHARES,
        disabled_rules: Optional[list[str]] = None,
    ):
        """Initialize configuration.

        Args:
            shares_per_contract: Contract multiplier
            profit_target_tiers: [urgent, info, opportunity] percent thresholds
            roll_dte_window: (min_dte, max_dte) for roll suggestions
            roll_min_profit_pct: Minimum profit percent for roll suggestions
            expiration_tiers: [urgent, warning, info] DTE bounds
            earnings_tiers: [urgent, warning, info, opportunity] day bounds
            covered_call_min_shares: Minimum uncovered shares to suggest calls
            disabled_rules: Rule ids to skip

        Example:
            >>> config = ProjectionConfig(
            ...     profit_target_tiers=[80.0, 65.0, 50.0],
            ...     disabled_rules=["roll-opportunity"],
            ... )
        """
        self.shares_per_contract = shares_per_contract
        self.profit_target_tiers = list(
            profit_target_tiers or PROFIT_TARGET_TIERS.values()
        )
        self.roll_dte_window = tuple(roll_dte_window or ROLL_DTE_WINDOW)
        self.roll_min_profit_pct = roll_min_profit_pct
        self.expiration_tiers = list(expiration_tiers or EXPIRATION_TIERS.values())
        self.earnings_tiers = list(earnings_tiers or EARNINGS_TIERS.values())
        self.covered_call_min_shares = covered_call_min_shares
        self.disabled_rules = list(disabled_rules or [])

        self._validate()

    def _validate(self):
        """Validate configuration values.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if self.shares_per_contract <= 0:
            raise ConfigurationError("shares_per_contract must be positive")

        if len(self.profit_target_tiers) != 3:
            raise ConfigurationError(
                "profit_target_tiers must have 3 values (urgent, info, opportunity)"
            )
        if self.profit_target_tiers != sorted(self.profit_target_tiers, reverse=True):
            raise ConfigurationError("profit_target_tiers must be in descending order")
        if any(t <= 0 or t > 100 for t in self.profit_target_tiers):
            raise ConfigurationError("profit_target_tiers must be between 0 and 100")

        if len(self.roll_dte_window) != 2 or self.roll_dte_window[0] > self.roll_dte_window[1]:
            raise ConfigurationError("roll_dte_window must be an ordered (min, max) pair")
        if not 0 < self.roll_min_profit_pct <= 100:
            raise ConfigurationError("roll_min_profit_pct must be between 0 and 100")

        if len(self.expiration_tiers) != 3:
            raise ConfigurationError(
                "expiration_tiers must have 3 values (urgent, warning, info)"
            )
        if self.expiration_tiers != sorted(self.expiration_tiers):
            raise ConfigurationError("expiration_tiers must be in ascending order")

        if len(self.earnings_tiers) != 4:
            raise ConfigurationError(
                "earnings_tiers must have 4 values (urgent, warning, info, opportunity)"
            )
        if self.earnings_tiers != sorted(self.earnings_tiers):
            raise ConfigurationError("earnings_tiers must be in ascending order")

        if self.covered_call_min_shares <= 0:
            raise ConfigurationError("covered_call_min_shares must be positive")

    def is_rule_enabled(self, rule_id: str) -> bool:
        """Check whether a rule id has been switched off."""
        return rule_id not in self.disabled_rules

    @classmethod
    def get_default_config_path(cls) -> Path:
        """Get default configuration file path.

        Returns:
            Path to default config file (~/.wheel_strategy/projection.yaml)
        """
        return Path.home() / ".wheel_strategy" / "projection.yaml"

    @classmethod
    def load_from_file(cls, path: Optional[Path] = None) -> "ProjectionConfig":
        """Load configuration from YAML file.

        Loads configuration from the specified path or the default path.
        If the file doesn't exist, returns default configuration.
        Merges file configuration with environment variable overrides.

        Args:
            path: Optional path to config file

        Returns:
            Configuration instance

        Raises:
            ConfigurationError: If configuration file is invalid
        """
        config_path = path or cls.get_default_config_path()

        config_dict: dict[str, Any] = {}

        if config_path.exists():
            try:
                with open(config_path) as f:
                    file_config = yaml.safe_load(f)
                    if file_config:
                        config_dict = file_config
                logger.debug(f"Loaded configuration from {config_path}")
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    f"Invalid YAML in configuration file: {e}"
                ) from e
            except OSError as e:
                raise ConfigurationError(
                    f"Failed to load configuration file: {e}"
                ) from e
        else:
            logger.debug(f"Configuration file not found at {config_path}, using defaults")

        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration file must contain a mapping")

        return cls.merge_with_defaults(config_dict)

    @classmethod
    def merge_with_defaults(cls, config_dict: dict[str, Any]) -> "ProjectionConfig":
        """Merge configuration dictionary with defaults and environment variables.

        Precedence order (highest to lowest):
        1. Environment variables
        2. Config file values
        3. Default values

        Args:
            config_dict: Configuration dictionary from file

        Returns:
            Configuration instance

        Raises:
            ConfigurationError: If configuration is invalid

        Example:
            >>> config = ProjectionConfig.merge_with_defaults({
            ...     "alerts": {"profit_target_tiers": [80, 65, 50]}
            ... })
        """
        projection_config = config_dict.get("projection", {}) or {}
        alerts_config = config_dict.get("alerts", {}) or {}

        shares_env = os.getenv("WHEEL_SHARES_PER_CONTRACT")
        profit_env = os.getenv("WHEEL_PROFIT_TARGET_TIERS")
        roll_pct_env = os.getenv("WHEEL_ROLL_MIN_PROFIT_PCT")
        roll_window_env = os.getenv("WHEEL_ROLL_DTE_WINDOW")
        expiration_env = os.getenv("WHEEL_EXPIRATION_TIERS")
        earnings_env = os.getenv("WHEEL_EARNINGS_TIERS")
        cc_env = os.getenv("WHEEL_COVERED_CALL_MIN_SHARES")
        disabled_env = os.getenv("WHEEL_DISABLED_RULES")

        try:
            shares_per_contract = int(
                shares_env
                if shares_env is not None
                else projection_config.get("shares_per_contract", SHARES_PER_CONTRACT)
            )
            roll_min_profit_pct = float(
                roll_pct_env
                if roll_pct_env is not None
                else alerts_config.get("roll_min_profit_pct", ROLL_MIN_PROFIT_PCT)
            )
            covered_call_min_shares = int(
                cc_env
                if cc_env is not None
                else alerts_config.get("covered_call_min_shares", COVERED_CALL_MIN_SHARES)
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        profit_target_tiers = (
            _parse_float_list(profit_env)
            if profit_env is not None
            else alerts_config.get("profit_target_tiers")
        )
        roll_dte_window = (
            _parse_int_list(roll_window_env)
            if roll_window_env is not None
            else alerts_config.get("roll_dte_window")
        )
        expiration_tiers = (
            _parse_int_list(expiration_env)
            if expiration_env is not None
            else alerts_config.get("expiration_tiers")
        )
        earnings_tiers = (
            _parse_int_list(earnings_env)
            if earnings_env is not None
            else alerts_config.get("earnings_tiers")
        )
        if disabled_env is not None:
            disabled_rules = [r.strip() for r in disabled_env.split(",") if r.strip()]
        else:
            disabled_rules = alerts_config.get("disabled_rules", [])

        try:
            return cls(
                shares_per_contract=shares_per_contract,
                profit_target_tiers=profit_target_tiers,
                roll_dte_window=tuple(roll_dte_window) if roll_dte_window else None,
                roll_min_profit_pct=roll_min_profit_pct,
                expiration_tiers=expiration_tiers,
                earnings_tiers=earnings_tiers,
                covered_call_min_shares=covered_call_min_shares,
                disabled_rules=disabled_rules,
            )
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def save_to_file(self, path: Optional[Path] = None):
        """Save configuration to YAML file.

        Args:
            path: Optional path to save to

        Raises:
            ConfigurationError: If save fails
        """
        config_path = path or self.get_default_config_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(config_path, "w") as f:
                yaml.dump(self.to_dict(), f, default_flow_style=False)
            logger.info(f"Configuration saved to {config_path}")
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary.

        Returns:
            Configuration as dictionary, in the same layout as the YAML file
        """
        return {
            "projection": {
                "shares_per_contract": self.shares_per_contract,
            },
            "alerts": {
                "profit_target_tiers": list(self.profit_target_tiers),
                "roll_dte_window": list(self.roll_dte_window),
                "roll_min_profit_pct": self.roll_min_profit_pct,
                "expiration_tiers": list(self.expiration_tiers),
                "earnings_tiers": list(self.earnings_tiers),
                "covered_call_min_shares": self.covered_call_min_shares,
                "disabled_rules": list(self.disabled_rules),
            },
        }

    def __repr__(self) -> str:
        return (
            f"ProjectionConfig("
            f"shares_per_contract={self.shares_per_contract}, "
            f"profit_target_tiers={self.profit_target_tiers}, "
            f"roll_dte_window={self.roll_dte_window}, "
            f"roll_min_profit_pct={self.roll_min_profit_pct}, "
            f"expiration_tiers={self.expiration_tiers}, "
            f"earnings_tiers={self.earnings_tiers}, "
            f"covered_call_min_shares={self.covered_call_min_shares}, "
            f"disabled_rules={self.disabled_rules}"
            ")"
        )


def load_config(config_path: Optional[Path] = None) -> ProjectionConfig:
    """Load configuration from file or defaults.

    Convenience function for loading configuration.

    Args:
        config_path: Optional path to config file

    Returns:
        Configuration instance

    Example:
        >>> from src.wheel.config import load_config
        >>> config = load_config()
        >>> print(config.profit_target_tiers)
    """
    return ProjectionConfig.load_from_file(config_path)
