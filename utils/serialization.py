#!/usr/bin/env python3
"""
Conversion of Monte Carlo outputs into JSON-friendly values.

Settings dictionaries hold tuples and numpy scalars, statistics are numpy
floats and buffers are arrays. ``to_serializable`` walks such structures
and returns plain Python objects.
"""
from dataclasses import asdict, is_dataclass
from typing import Any

import numpy as np
import pandas as pd


def to_serializable(obj: Any) -> Any:
    """
    Convert ``obj`` into something ``json.dump`` accepts.

    Non-finite floats become None so the output stays valid JSON. Unknown
    objects fall back to their string form.
    """
    if obj is None or isinstance(obj, (str, bool)):
        return obj
    if isinstance(obj, np.generic):
        return to_serializable(obj.item())
    if isinstance(obj, float):
        return obj if np.isfinite(obj) else None
    if isinstance(obj, int):
        return obj
    if isinstance(obj, dict):
        return {str(key): to_serializable(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple, np.ndarray, pd.Series)):
        return [to_serializable(item) for item in list(obj)]
    if isinstance(obj, pd.DataFrame):
        return {column: to_serializable(obj[column]) for column in obj.columns}
    if is_dataclass(obj) and not isinstance(obj, type):
        return to_serializable(asdict(obj))
    return str(obj)
