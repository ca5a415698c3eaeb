"""
Configuration package for the nonparametric demand Monte Carlo.

This package provides configuration management functionality for the
simulation, selection, estimation and reporting settings.
"""

from config.config_manager import AppConfig, ConfigManager

__all__ = ['AppConfig', 'ConfigManager']
