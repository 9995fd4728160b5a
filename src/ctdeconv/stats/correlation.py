#!/usr/bin/env python3
"""
Stats: pairwise column correlations on a worker pool
cor_col
"""

from __future__ import annotations

import logging
import multiprocessing as mp
import os
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd
from scipy import stats

from ..utils import get_os

logger = logging.getLogger(__name__)

_TESTS = {
    "pearson": stats.pearsonr,
    "spearman": stats.spearmanr,
    "kendall": stats.kendalltau,
}

# set in each worker by _init_worker
_X: Optional[np.ndarray] = None
_METHOD: str = "pearson"


def _init_worker(values: np.ndarray, method: str) -> None:
    global _X, _METHOD
    _X = values
    _METHOD = method


def _cor_test(x: np.ndarray, y: np.ndarray, method: str) -> float:
    """Estimate if significant at 0.05, else NaN. Incomplete pairs are dropped."""
    ok = ~(np.isnan(x) | np.isnan(y))
    if ok.sum() < 3:
        return np.nan
    try:
        est, p = _TESTS[method](x[ok], y[ok])
    except (ValueError, FloatingPointError):
        return np.nan
    if np.isnan(p) or p > 0.05:
        return np.nan
    return float(est)


def _column(i: int) -> List[float]:
    x0 = _X[:, i]
    out = []
    for j in range(_X.shape[1]):
        if j <= i:
            out.append(np.nan)
        else:
            out.append(_cor_test(x0, _X[:, j], _METHOD))
    return out


def cor_col(
    x: pd.DataFrame,
    method: str = "pearson",
    subset: Optional[Iterable[str]] = None,
    ncores: int = 4,
) -> pd.DataFrame:
    """
    Significant pairwise correlations between columns of `x`.

    Parameters
    ----------
    x : DataFrame
        Observations × variables; column names are required.
    method : {"pearson", "spearman", "kendall"}
    subset : iterable of str, optional
        Columns to correlate against every other column (default: all).
    ncores : int
        Upper bound on worker processes; capped at cpu_count - 1. On
        Windows a single worker is used.

    Returns
    -------
    DataFrame with rows = subset followed by the remaining columns and
    columns = subset. Cell (j, i) holds the estimate when j comes after i
    and the test p-value is <= 0.05; every other cell is NaN.
    """
    if not isinstance(x, pd.DataFrame) or x.columns.isnull().any():
        raise ValueError("colnames of x should not be null")
    if method not in _TESTS:
        raise ValueError(f"method must be one of {sorted(_TESTS)}")

    cols = [str(c) for c in x.columns]
    if subset is None:
        subset = cols
    else:
        wanted = set(map(str, subset))
        subset = [c for c in cols if c in wanted]
    all0 = list(subset) + [c for c in cols if c not in set(subset)]

    values = x.set_axis(cols, axis=1)[all0].apply(pd.to_numeric, errors="coerce").to_numpy(dtype=float)

    if get_os() == "windows":
        ncores, ctx = 1, mp.get_context("spawn")
    else:
        ncores, ctx = min(ncores, max((os.cpu_count() or 2) - 1, 1)), mp.get_context("fork")
    ncores = max(int(ncores), 1)

    idx = range(len(subset))
    if ncores == 1:
        _init_worker(values, method)
        columns = [_column(i) for i in idx]
    else:
        logger.info(f"cor_col: {len(subset)} columns on {ncores} workers")
        with ctx.Pool(ncores, initializer=_init_worker, initargs=(values, method)) as pool:
            columns = pool.map(_column, idx)

    return pd.DataFrame(np.array(columns, dtype=float).T.reshape(len(all0), len(subset)),
                        index=all0, columns=list(subset))


__all__ = ["cor_col"]
