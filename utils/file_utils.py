#!/usr/bin/env python3
"""
File helpers for the Monte Carlo results directory.

Everything the reporter writes goes through these functions, so parent
directories are always created and numpy values never reach ``json`` raw.
"""
import json
from pathlib import Path
from typing import Any, Dict, Union

import pandas as pd

from utils.logging_utils import logger
from utils.serialization import to_serializable

PathLike = Union[str, Path]


def ensure_dir_exists(directory: PathLike) -> Path:
    """Create ``directory`` (and its parents) when missing and return it as a Path."""
    path = Path(directory)
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_json(data: Dict[str, Any], filepath: PathLike) -> None:
    """Write a dictionary as indented JSON, converting numpy and pandas values."""
    path = Path(filepath)
    ensure_dir_exists(path.parent)
    with path.open('w') as f:
        json.dump(to_serializable(data), f, indent=2)
    logger.debug(f"Saved JSON data to {path}")


def load_json(filepath: PathLike) -> Dict[str, Any]:
    """
    Read a JSON file written by ``save_json``.

    A missing file gives an empty dictionary and a warning, since summary
    files are optional when re-plotting old results.
    """
    path = Path(filepath)
    if not path.exists():
        logger.warning(f"JSON file not found: {path}")
        return {}
    with path.open('r') as f:
        return json.load(f)


def save_table(frame: pd.DataFrame, filepath: PathLike, index: bool = False) -> None:
    """Write a results table as CSV."""
    path = Path(filepath)
    ensure_dir_exists(path.parent)
    frame.to_csv(path, index=index)
    logger.debug(f"Saved table with {len(frame)} rows to {path}")
