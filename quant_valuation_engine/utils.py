from __future__ import annotations

import numpy as np
import pandas as pd
from typing import Iterable, Sequence, Union

from .errors import InvalidDomainInput

ArrayLike = Union[Sequence[float], np.ndarray, pd.Series]


def as_vector(values: ArrayLike, name: str = "values", allow_empty: bool = False) -> np.ndarray:
    """Coerce a 1-D sequence of numbers to a float array."""
    arr = np.asarray(values, dtype=float)
    if arr.ndim != 1:
        raise InvalidDomainInput(f"{name} must be one-dimensional, got shape {arr.shape}")
    if not allow_empty and arr.size == 0:
        raise InvalidDomainInput(f"{name} must not be empty")
    if not np.all(np.isfinite(arr)):
        raise InvalidDomainInput(f"{name} contains NaN or infinite values")
    return arr


def as_square_matrix(values, name: str = "matrix") -> np.ndarray:
    try:
        arr = np.asarray(values, dtype=float)
    except ValueError as exc:
        # ragged nested lists
        raise InvalidDomainInput(f"{name} must be a square matrix") from exc

    if arr.ndim != 2 or arr.shape[0] != arr.shape[1]:
        raise InvalidDomainInput(f"{name} must be a square matrix, got shape {arr.shape}")
    if arr.shape[0] == 0:
        raise InvalidDomainInput(f"{name} must not be empty")
    return arr


def require_positive(**params: float) -> None:
    for name, value in params.items():
        if not value > 0:
            raise InvalidDomainInput(f"{name} must be > 0, got {value!r}")


def require_same_length(*arrays: np.ndarray, names: Iterable[str] = ()) -> None:
    lengths = [len(a) for a in arrays]
    if len(set(lengths)) > 1:
        label = ", ".join(names) if names else "arrays"
        raise InvalidDomainInput(f"Length mismatch between {label}: {lengths}")


def require_open_unit_interval(name: str, value: float) -> None:
    if not 0.0 < value < 1.0:
        raise InvalidDomainInput(f"{name} must lie strictly between 0 and 1, got {value!r}")


def yearfrac(start: pd.Timestamp, end: pd.Timestamp, convention: str = "30/360") -> float:
    """
    Year fraction between two dates under a day count convention.

    Supported:
    - ACT/365, ACT/365F
    - ACT/360
    - 30/360, 30/360US (US bond basis)
    """
    start = pd.Timestamp(start)
    end = pd.Timestamp(end)

    convention = convention.upper().replace(" ", "")
    if end < start:
        raise InvalidDomainInput(f"end < start: {start=} {end=}")

    if convention in ("ACT/365", "ACT/365F"):
        return (end - start).days / 365.0

    if convention == "ACT/360":
        return (end - start).days / 360.0

    if convention in ("30/360", "30/360US"):
        d1 = min(start.day, 30)
        d2 = end.day
        if d2 == 31 and d1 == 30:
            d2 = 30
        return ((end.year - start.year) * 360 + (end.month - start.month) * 30 + (d2 - d1)) / 360.0

    raise InvalidDomainInput(f"Unsupported day count convention: {convention}")
