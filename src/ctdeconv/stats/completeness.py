#!/usr/bin/env python3
"""
Stats: missingness filters
completeness_filter, rm_batch_rows
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd


def completeness_filter(
    m: pd.DataFrame,
    threshold: float = 50,
    nsams: int = 10,
    use_sams: bool = False,
) -> pd.DataFrame:
    """
    Keep rows with enough observed (non-NaN) values.

    With `use_sams`, a row needs at least `nsams` observed samples; otherwise
    at least `threshold` percent of its columns must be observed.
    """
    observed = m.notna().sum(axis=1)
    if use_sams:
        keep = observed >= nsams
    else:
        keep = observed / m.shape[1] * 100 >= threshold
    return m.loc[keep]


def rm_batch_rows(exp: pd.DataFrame, batch: Sequence) -> pd.DataFrame:
    """Drop rows that have at most one distinct non-NaN value inside any batch."""
    batch = np.asarray(batch)
    if len(batch) != exp.shape[1]:
        raise ValueError("'batch' must have one entry per column of 'exp'.")

    flat = pd.Series(False, index=exp.index)
    for b in pd.unique(batch):
        sub = exp.loc[:, batch == b]
        flat |= sub.nunique(axis=1, dropna=True) <= 1
    return exp.loc[~flat]


__all__ = ["completeness_filter", "rm_batch_rows"]
