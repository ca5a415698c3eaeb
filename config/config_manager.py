"""
Configuration manager for the nonparametric demand Monte Carlo.

This module provides a centralized configuration management system with a
structured configuration class built on dataclasses. Values come from the
defaults below, an optional JSON file and ``NPDEMAND_*`` environment
variables, in that order.
"""
import json
import os
from typing import List, Optional, Union
from pathlib import Path
from dataclasses import dataclass, asdict, field, fields

from config.default_config import DEFAULT_RESULTS_DIR, DEFAULT_LOG_FILE, DEFAULT_LOG_LEVEL
from model.constants import (
    DEFAULT_NUM_PRODUCTS,
    DEFAULT_NUM_MARKETS,
    DEFAULT_PRICE_COEFFICIENT,
    DEFAULT_XI_STD_DEV,
    DEFAULT_NUM_RUNS,
    DEFAULT_GRID_POINTS,
    DEFAULT_SEED,
    DEFAULT_NUM_FOLDS,
    DEFAULT_NUM_LAMBDA,
    DEFAULT_NUM_BOOTSTRAP,
    DEFAULT_SELECTION_THRESHOLD,
    DEFAULT_POLYNOMIAL_ORDER,
    DEFAULT_IV_ORDER,
    DEFAULT_QUANTILES,
)
from model.exceptions import ConfigurationError
from utils.logging_utils import get_logger

logger = get_logger()


@dataclass
class AppConfig:
    """Unified application configuration parameters."""
    # App settings
    results_dir: str = DEFAULT_RESULTS_DIR
    create_plots: bool = True
    log_level: str = DEFAULT_LOG_LEVEL
    log_to_file: bool = True
    log_file: str = DEFAULT_LOG_FILE
    processes: int = 1

    # Simulation settings
    num_products: int = DEFAULT_NUM_PRODUCTS
    num_markets: int = DEFAULT_NUM_MARKETS
    price_coefficient: float = DEFAULT_PRICE_COEFFICIENT
    xi_std_dev: float = DEFAULT_XI_STD_DEV
    num_runs: int = DEFAULT_NUM_RUNS
    grid_points: int = DEFAULT_GRID_POINTS
    seed: int = DEFAULT_SEED

    # Selection settings
    num_folds: int = DEFAULT_NUM_FOLDS
    num_lambda: int = DEFAULT_NUM_LAMBDA
    impose_strong_hierarchy: bool = False
    num_bootstrap: int = DEFAULT_NUM_BOOTSTRAP
    selection_threshold: float = DEFAULT_SELECTION_THRESHOLD

    # Estimation settings
    polynomial_order: int = DEFAULT_POLYNOMIAL_ORDER
    iv_order: int = DEFAULT_IV_ORDER
    monotonicity_constraint: bool = True

    # Elasticity settings (1-based product indices)
    own_product: int = 1
    cross_product: int = 1
    use_true_shares: bool = False

    # Report settings
    quantiles: List[float] = field(default_factory=lambda: list(DEFAULT_QUANTILES))


class ConfigManager:
    """
    Unified configuration manager with a typed configuration object.
    """

    # Environment variable prefix for overrides
    ENV_PREFIX = "NPDEMAND_"

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to a JSON configuration file.
        """
        self.app_config = AppConfig()

        if config_path:
            self.load_config(config_path)

        self._apply_env_overrides()
        self.validate()

    def load_config(self, config_path: Union[str, Path]) -> None:
        """
        Load configuration from a JSON file.

        Unknown keys are ignored with a warning.

        Args:
            config_path: Path to a JSON configuration file.

        Raises:
            ConfigurationError: If the file exists but is not valid JSON
        """
        config_path = Path(config_path)
        if not config_path.exists():
            logger.warning(f"Configuration file not found: {config_path}")
            return

        try:
            with open(config_path, 'r') as f:
                config_dict = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid configuration file {config_path}", str(e)) from e

        app_fields = {f.name for f in fields(AppConfig)}
        for key, value in config_dict.items():
            if key in app_fields:
                setattr(self.app_config, key, value)
            else:
                logger.warning(f"Ignoring unknown configuration key: {key}")

        logger.info(f"Loaded configuration from {config_path}")

    def _apply_env_overrides(self) -> None:
        """Apply configuration overrides from environment variables."""
        for field_info in fields(AppConfig):
            field_name = field_info.name
            env_name = f"{self.ENV_PREFIX}{field_name.upper()}"
            if env_name not in os.environ:
                continue

            raw_value = os.environ[env_name]
            field_type = type(getattr(self.app_config, field_name))
            try:
                if field_type == bool:
                    value = raw_value.lower() in ('true', 'yes', '1')
                elif field_type == list:
                    value = [float(item) for item in raw_value.split(',')]
                else:
                    value = field_type(raw_value)

                setattr(self.app_config, field_name, value)
                logger.debug(f"Applied env override for {field_name}: {value}")
            except (ValueError, TypeError) as e:
                logger.warning(f"Invalid env value for {field_name}: {str(e)}")

    def save_config(self, filepath: Union[str, Path]) -> None:
        """
        Save the current configuration to a JSON file.

        Args:
            filepath: Path to save the configuration to.
        """
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        with open(filepath, 'w') as f:
            json.dump(asdict(self.app_config), f, indent=4)

        logger.info(f"Saved configuration to {filepath}")

    def validate(self) -> bool:
        """
        Validate the current configuration and fix common issues.

        Returns:
            True once the configuration is valid

        Raises:
            ConfigurationError: For settings that cannot be repaired
        """
        config = self.app_config

        if config.num_products < 1:
            raise ConfigurationError("num_products must be at least 1", {"num_products": config.num_products})
        if config.num_markets < 2:
            raise ConfigurationError("num_markets must be at least 2", {"num_markets": config.num_markets})
        if not all(0 < q < 1 for q in config.quantiles):
            raise ConfigurationError("Quantiles must lie strictly between 0 and 1", {"quantiles": config.quantiles})
        # The reporter reads them as (low, median, high)
        if len(config.quantiles) != 3 or not all(a < b for a, b in zip(config.quantiles, config.quantiles[1:])):
            raise ConfigurationError("Quantiles must be three increasing values", {"quantiles": config.quantiles})
        total_products = 2 * config.num_products
        for name in ("own_product", "cross_product"):
            index = getattr(config, name)
            if not 1 <= index <= total_products:
                raise ConfigurationError(f"{name} must be between 1 and {total_products}", {name: index})

        if config.num_runs < 1:
            logger.warning(f"num_runs too small: {config.num_runs}. Setting to 1.")
            config.num_runs = 1

        if config.grid_points < 1:
            logger.warning(f"grid_points too small: {config.grid_points}. Setting to 1.")
            config.grid_points = 1

        if config.num_folds < 2:
            logger.warning(f"num_folds too small: {config.num_folds}. Setting to 2.")
            config.num_folds = 2

        if config.num_lambda < 1:
            logger.warning(f"num_lambda too small: {config.num_lambda}. Setting to 1.")
            config.num_lambda = 1

        if config.num_bootstrap < 0:
            logger.warning(f"num_bootstrap negative: {config.num_bootstrap}. Setting to 0.")
            config.num_bootstrap = 0

        if not 0 < config.selection_threshold <= 1:
            logger.warning(f"selection_threshold out of range: {config.selection_threshold}. Setting to 0.5.")
            config.selection_threshold = 0.5

        if config.polynomial_order < 1:
            logger.warning(f"polynomial_order too small: {config.polynomial_order}. Setting to 1.")
            config.polynomial_order = 1

        if config.iv_order < 0:
            logger.warning(f"iv_order negative: {config.iv_order}. Setting to 0.")
            config.iv_order = 0

        if config.processes < 1:
            logger.warning(f"processes too small: {config.processes}. Setting to 1.")
            config.processes = 1

        if not config.results_dir:
            logger.warning(f"No results directory specified. Using default '{DEFAULT_RESULTS_DIR}'.")
            config.results_dir = DEFAULT_RESULTS_DIR

        return True
