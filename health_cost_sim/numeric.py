"""Rounding helpers for currency and probability outputs."""

import math

import numpy as np


def round_half_up(value: float, ndigits: int = 0) -> float:
    """
    Round halves away from negative infinity (2.5 -> 3, -2.5 -> -2).

    Python's round() uses banker's rounding, which would make 0.5-dollar
    outputs alternate between neighbours.
    """
    scale = 10 ** ndigits
    return math.floor(value * scale + 0.5) / scale


def round_currency(value: float) -> int:
    """Round a currency amount to a whole unit."""
    return int(round_half_up(value))


def round_currency_array(values: np.ndarray) -> np.ndarray:
    return np.floor(np.asarray(values, dtype=float) + 0.5).astype(np.int64)
