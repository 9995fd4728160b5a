#!/usr/bin/env python3
"""
Stats: value transforms and small table helpers
rm_outlier, global_scale, global_scale_zscore, merge_frames, random_mat, recall_sum
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, NamedTuple, Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


class ScaledValues(NamedTuple):
    y: pd.Series
    reverse: Callable


def rm_outlier(x, usecap: bool = True):
    """
    Tukey-fence outlier handling (1.5 × IQR beyond the quartiles).

    With `usecap`, low outliers become the 5th percentile and high outliers
    the 95th percentile; otherwise they become NaN. Returns the same type as
    the input (Series or ndarray).
    """
    is_series = isinstance(x, pd.Series)
    v = np.asarray(x, dtype=float).copy()
    q1, q3 = np.nanquantile(v, [0.25, 0.75])
    h = 1.5 * (q3 - q1)
    low, high = v < (q1 - h), v > (q3 + h)
    if usecap:
        cap_lo, cap_hi = np.nanquantile(v, [0.05, 0.95])
        v[low] = cap_lo
        v[high] = cap_hi
    else:
        v[low | high] = np.nan
    return pd.Series(v, index=x.index, name=x.name) if is_series else v


def global_scale(x) -> ScaledValues:
    """Min-max scale to [0, 1]; `reverse` maps scaled values back."""
    a, b = np.nanmin(x), np.nanmax(x)

    def reverse(y):
        return y * (b - a) + a

    return ScaledValues((x - a) / (b - a), reverse)


def global_scale_zscore(x) -> ScaledValues:
    """Z-score with the global mean and sample SD; `reverse` maps back."""
    a = np.nanmean(x)
    b = np.nanstd(np.asarray(x, dtype=float), ddof=1)

    def reverse(y):
        return y * b + a

    return ScaledValues((x - a) / b, reverse)


def merge_frames(frames: Iterable[pd.DataFrame], **kwargs) -> Optional[pd.DataFrame]:
    """Left fold of pd.merge over `frames`; kwargs go to every merge."""
    out = None
    for df in frames:
        out = df if out is None else pd.merge(out, df, **kwargs)
    return out


def random_mat(m: int, n: int, seed: Optional[int] = None) -> pd.DataFrame:
    """m × n standard-normal matrix labelled row1.. / col1.."""
    rng = np.random.default_rng(seed)
    return pd.DataFrame(
        rng.standard_normal((m, n)),
        index=[f"row{i}" for i in range(1, m + 1)],
        columns=[f"col{j}" for j in range(1, n + 1)],
    )


def recall_sum(df: pd.DataFrame, thre: float = 0.8) -> pd.DataFrame:
    """
    Count entries with `recall >= thre` per `level`.

    Returns one row per level with num_total, num_highrecall and the
    high-recall fraction rounded to 4 decimals.
    """
    rows = []
    for lev in pd.unique(df["level"].astype(str)):
        sub = df[df["level"].astype(str) == lev]
        total = int(sub.shape[0])
        high = int((sub["recall"] >= thre).sum())
        logger.info(f"{lev}: total={total} high_recall={high} ({round(100 * high / total, 2)}%)")
        rows.append({"level": lev, "num_total": total, "num_highrecall": high})
    res = pd.DataFrame(rows, columns=["level", "num_total", "num_highrecall"])
    res["percentage"] = (res["num_highrecall"] / res["num_total"]).round(4)
    return res


__all__ = [
    "ScaledValues",
    "rm_outlier",
    "global_scale",
    "global_scale_zscore",
    "merge_frames",
    "random_mat",
    "recall_sum",
]
