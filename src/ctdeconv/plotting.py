#!/usr/bin/env python3
"""
Stacked bar chart of estimated cell fractions, faceted by sample group
barplot_cf
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np
import pandas as pd

# Headless-safe plotting
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns

logger = logging.getLogger(__name__)

DEFAULT_6_COLORS = ["#709770", "#71E945", "#CCE744", "#DCA8A1", "#6BDFDC", "#D4D3D5"]


def _group_levels(group_info: pd.Series) -> list:
    if isinstance(group_info.dtype, pd.CategoricalDtype):
        return list(group_info.cat.categories)
    return list(pd.unique(group_info))


def barplot_cf(
    mat: pd.DataFrame,
    group_info=None,
    ct_col: Optional[Sequence[str]] = None,
    out_path: Optional[str] = None,
):
    """
    Stacked barplot of cell fractions for samples in different groups.

    Parameters
    ----------
    mat : DataFrame
        samples × cell types; sample ids as index, cell types as columns.
    group_info : sequence | Series | Categorical, optional
        Group of each sample. A Series indexed by sample id is matched by
        name; otherwise it follows the row order of `mat`. Categorical
        categories fix the facet order. Samples with a missing group are
        dropped.
    ct_col : sequence of str, optional
        Colors per cell type in column order.
    out_path : str, optional
        Save the figure here (dpi 300).

    Returns
    -------
    matplotlib.figure.Figure
    """
    if not isinstance(mat, pd.DataFrame):
        raise TypeError("mat should be a DataFrame")
    if mat.index.isnull().any() or mat.columns.isnull().any():
        raise ValueError("index or columns of 'mat' should not be null")

    named = isinstance(group_info, pd.Series) and not isinstance(group_info.index, pd.RangeIndex)
    if group_info is not None and len(group_info) != mat.shape[0]:
        raise ValueError("The length of 'group_info' should be the same with the number of samples included in 'mat'")

    mat = mat.apply(pd.to_numeric, errors="coerce")
    if group_info is None:
        groups = pd.Series([""] * mat.shape[0], index=mat.index)
    elif named:
        if group_info.index.duplicated().any():
            raise ValueError("The names of group_info should be unique")
        if set(group_info.index) != set(mat.index):
            raise ValueError("The names of group_info should be the same with sample ids in 'mat'")
        groups = group_info.reindex(mat.index)
    elif isinstance(group_info, (list, tuple, np.ndarray, pd.Series, pd.Categorical)):
        groups = pd.Series(group_info, index=mat.index) if not isinstance(group_info, pd.Series) \
            else pd.Series(group_info.values, index=mat.index)
    else:
        raise TypeError("Parameter 'group_info' should be given as a sequence or Categorical")

    bad = (mat < 0).any(axis=1) | mat.isna().any(axis=1)
    if bad.any():
        logger.warning("Automatically remove samples with NAs or negative numbers!")
        mat = mat.loc[~bad]
        groups = groups.loc[mat.index]

    zero = mat.sum(axis=0) == 0
    if zero.any():
        logger.warning(f"Remove cell types that equal zero across all samples, including: {list(mat.columns[zero])}")
        mat = mat.loc[:, ~zero]

    missing = groups.isna()
    if missing.any():
        mat, groups = mat.loc[~missing], groups.loc[~missing]

    res = mat.div(mat.sum(axis=1), axis=0)
    levels = [lev for lev in _group_levels(groups) if (groups == lev).any()]

    if ct_col is None:
        ct_col = DEFAULT_6_COLORS if res.shape[1] == 6 else sns.color_palette("husl", res.shape[1])
    if len(ct_col) < res.shape[1]:
        raise ValueError("'ct_col' needs one color per cell type")

    widths = [int((groups == lev).sum()) for lev in levels]
    fig, axes = plt.subplots(
        1, max(len(levels), 1),
        figsize=(max(4, 0.35 * res.shape[0] + 2), 5),
        sharey=True,
        gridspec_kw={"width_ratios": widths or [1], "wspace": 0.05},
        squeeze=False,
    )
    for ax, lev in zip(axes[0], levels):
        sub = res.loc[groups[groups == lev].index]
        x = np.arange(sub.shape[0])
        bottom = np.zeros(sub.shape[0])
        for k, ct in enumerate(res.columns):
            ax.bar(x, sub[ct].values, bottom=bottom, width=0.9, color=ct_col[k], label=ct)
            bottom += sub[ct].values
        ax.set_xticks(x)
        ax.set_xticklabels(sub.index, rotation=270, ha="center", va="top")
        ax.set_xlim(-0.5, sub.shape[0] - 0.5)
        ax.set_ylim(0, 1.005)
        ax.set_title(str(lev))
        ax.tick_params(axis="x", length=0)
        for side in ("top", "right"):
            ax.spines[side].set_visible(False)
    axes[0][0].set_ylabel("Fraction")

    handles, labels = axes[0][0].get_legend_handles_labels()
    fig.legend(handles[::-1], labels[::-1], loc="center left", bbox_to_anchor=(1.0, 0.5), frameon=False)

    if out_path:
        fig.savefig(out_path, dpi=300, bbox_inches="tight")
        logger.info(f"Saved cell-fraction barplot to {out_path}")
    return fig


__all__ = ["barplot_cf"]
