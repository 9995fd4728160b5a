#!/usr/bin/env python3
"""
Deconvolution: reference-based proportion estimators
epic, cibersort, quantile_normalize, run_estimator

Both estimators take a ReferenceProfile and a genes × samples mixture and
return a samples × cell-type DataFrame. The ensemble treats them as black
boxes; any callable with the same signature can replace them.
"""

from __future__ import annotations

import logging
import warnings
from typing import Callable, Optional

import numpy as np
import pandas as pd
from scipy.optimize import nnls
from sklearn.svm import NuSVR

from .references import ReferenceProfile

logger = logging.getLogger(__name__)

DEF_NUS = (0.25, 0.5, 0.75)
OTHER_CELLS = "otherCells"


def quantile_normalize(df: pd.DataFrame) -> pd.DataFrame:
    """Column-wise quantile normalization; ties are broken by order of appearance."""
    ranked_mean = pd.DataFrame(
        np.sort(df.values, axis=0), index=range(1, df.shape[0] + 1)
    ).mean(axis=1)
    ranks = df.rank(method="first").astype(int)
    out = pd.DataFrame(
        {c: ranked_mean.loc[ranks[c]].values for c in df.columns}, index=df.index
    )
    return out.astype(float)


def _common_genes(reference: ReferenceProfile, mixture: pd.DataFrame, genes=None):
    genes = reference.sig_genes if genes is None else genes
    present = set(reference.profiles.index) & set(mixture.index.astype(str))
    return [g for g in genes if g in present]


def epic(reference: ReferenceProfile, mixture: pd.DataFrame, scale_exprs: bool = True) -> pd.DataFrame:
    """
    EPIC-style estimate of mRNA proportions.

    Non-negative least squares on the signature genes, solved per sample.
    With `scale_exprs`, mixture and reference are both rescaled to counts
    per million over the genes they share before fitting. The fitted
    fractions are capped to sum at most 1 and the remainder is reported as
    `otherCells`.
    """
    mixture = mixture.copy()
    mixture.index = mixture.index.astype(str)
    genes = _common_genes(reference, mixture)
    if len(genes) < 2:
        raise ValueError(f"[{reference.name}] fewer than 2 signature genes in mixture.")

    ref = reference.profiles
    mix = mixture.fillna(0.0)
    if scale_exprs:
        shared = ref.index.intersection(mix.index)
        mix = mix.loc[shared] / mix.loc[shared].sum(axis=0).replace(0, np.nan) * 1e6
        ref = ref.loc[shared] / ref.loc[shared].sum(axis=0).replace(0, np.nan) * 1e6
        mix = mix.fillna(0.0)
        ref = ref.fillna(0.0)

    A = ref.loc[genes].values.astype(float)
    rows = {}
    for sample in mix.columns:
        b = mix.loc[genes, sample].values.astype(float)
        coef, _ = nnls(A, b)
        total = coef.sum()
        if total > 1:
            coef = coef / total
            total = 1.0
        rows[sample] = np.append(coef, 1.0 - total)

    return pd.DataFrame.from_dict(
        rows, orient="index", columns=list(ref.columns) + [OTHER_CELLS]
    )


def _cibersort_core(X: np.ndarray, y: np.ndarray, nus=DEF_NUS):
    """Fit nu-SVR for each nu and keep the weights with the lowest RMSE."""
    best = None
    for nu in nus:
        model = NuSVR(kernel="linear", nu=nu, C=1.0)
        model.fit(X, y)
        w = np.asarray(model.coef_).ravel().copy()
        w[w < 0] = 0
        if w.sum() > 0:
            w = w / w.sum()
        pred = X @ w
        rmse = float(np.sqrt(np.mean((pred - y) ** 2)))
        if best is None or rmse < best[1]:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", RuntimeWarning)
                corr = float(np.corrcoef(pred, y)[0, 1])
            best = (w, rmse, corr)
    return best


def cibersort(reference: ReferenceProfile, mixture: pd.DataFrame, qn: bool = True,
              antilog: bool = True, nus=DEF_NUS) -> pd.DataFrame:
    """
    CIBERSORT-style estimate of relative cell fractions.

    Parameters
    ----------
    reference : ReferenceProfile
        Signature matrix (e.g. LM6, LM22); all its genes are used.
    mixture : DataFrame
        genes × samples.
    qn : bool
        Quantile-normalize the mixture across samples (microarray data).
    antilog : bool
        Treat the mixture as log2 data and anti-log it when its maximum is
        below 50. Disabled for protein input.

    Returns
    -------
    DataFrame samples × (cell types + Correlation, RMSE); fractions sum to 1.
    """
    mixture = mixture.copy()
    mixture.index = mixture.index.astype(str)
    mix = mixture.fillna(0.0).astype(float)
    if antilog and float(np.nanmax(mix.values)) < 50:
        mix = np.power(2.0, mix)
    if qn:
        mix = quantile_normalize(mix)

    genes = _common_genes(reference, mix, genes=list(reference.profiles.index))
    if len(genes) < 2:
        raise ValueError(f"[{reference.name}] fewer than 2 signature genes in mixture.")

    X = reference.profiles.loc[genes].values.astype(float)
    X = (X - X.mean()) / X.std()

    cell_types = reference.cell_types
    rows = {}
    for sample in mix.columns:
        y = mix.loc[genes, sample].values.astype(float)
        sd = y.std()
        if sd == 0:
            raise ValueError(f"[{reference.name}] sample '{sample}' has constant expression.")
        y = (y - y.mean()) / sd
        w, rmse, corr = _cibersort_core(X, y, nus=nus)
        rows[sample] = list(w) + [corr, rmse]

    return pd.DataFrame.from_dict(rows, orient="index", columns=cell_types + ["Correlation", "RMSE"])


def run_estimator(name: str, fn: Callable[..., Optional[pd.DataFrame]], *args, **kwargs) -> Optional[pd.DataFrame]:
    """Call one estimator; any failure is logged and reported as None."""
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            res = fn(*args, **kwargs)
    except Exception as e:
        logger.warning(f"Estimator '{name}' failed: {e}")
        return None
    if res is None:
        logger.warning(f"Estimator '{name}' returned no result.")
        return None
    res = pd.DataFrame(res)
    res.index = res.index.astype(str)
    res.columns = res.columns.astype(str)
    return res


__all__ = ["epic", "cibersort", "quantile_normalize", "run_estimator", "OTHER_CELLS"]
