"""
Utility package for the nonparametric demand Monte Carlo.

This package provides logging, error handling, file and serialization
helpers shared by the simulation, model and reporting layers.
"""

from utils.logging_utils import logger, get_logger, LoggingManager
from utils.file_utils import ensure_dir_exists, save_json, load_json, save_table
from utils.serialization import to_serializable
from utils.decorators import log_step, timed, log_errors

__all__ = [
    'logger', 'get_logger', 'LoggingManager', 'ensure_dir_exists',
    'save_json', 'load_json', 'save_table', 'to_serializable',
    'log_step', 'timed', 'log_errors'
]
