#!/usr/bin/env python3
"""
Deconvolution: ensemble averaging across reference-based estimators
ctdeconv_avg, merge_cells, SingleMatrix, PerEstimatorMatrices
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..config import COMBINATIONS, DEF_MIN_MARKER_NUM, EPIC_SCALE_MIN_GENES
from ..io import read_mixture, write_sample_table
from .estimators import cibersort, epic, run_estimator
from .references import (
    CELL_CATEGORIES,
    RENORMALIZE_FACTORS,
    RESERVED_CATEGORY,
    ReferenceSet,
    without_category,
)

logger = logging.getLogger(__name__)


class InputValidationError(ValueError):
    """Bad mixture or output-path argument."""


class NoQualifiedCombinationError(RuntimeError):
    """No estimator both met its marker threshold and produced a result."""

    def __init__(self, marker_counts: Mapping[str, int]):
        self.marker_counts = dict(marker_counts)
        counts = ", ".join(f"{k}={v}" for k, v in self.marker_counts.items())
        super().__init__(
            "There is no combination qualified. Marker genes shared by mixture and "
            f"signatures: {counts}. Lower the minimum marker numbers accordingly."
        )


@dataclass
class SingleMatrix:
    """One genes × samples mixture used by every estimator."""
    matrix: pd.DataFrame


@dataclass
class PerEstimatorMatrices:
    """A separate mixture per estimator id; missing ids are not used."""
    matrices: Dict[str, pd.DataFrame] = field(default_factory=dict)


MixtureInput = Union[SingleMatrix, PerEstimatorMatrices]


def _clamp(df: pd.DataFrame) -> pd.DataFrame:
    out = pd.DataFrame(df).copy()
    out.index = out.index.astype(str)
    out.columns = out.columns.astype(str)
    out = out.apply(pd.to_numeric, errors="coerce")
    return out.clip(lower=0)


def coerce_mixture(mix: Any) -> MixtureInput:
    """Turn the accepted `mix` forms into a tagged mixture input."""
    if isinstance(mix, SingleMatrix):
        return SingleMatrix(_clamp(mix.matrix))
    if isinstance(mix, PerEstimatorMatrices):
        mix = mix.matrices
    if isinstance(mix, Mapping):
        if len(mix) == 0:
            raise InputValidationError("Per-estimator mixture mapping is empty.")
        unknown = set(mix) - set(COMBINATIONS)
        if unknown:
            raise InputValidationError(f"Unknown estimator ids in mixture mapping: {sorted(unknown)}")
        mats = {}
        for k, v in mix.items():
            if not isinstance(v, pd.DataFrame):
                raise InputValidationError(f"Mixture for '{k}' must be a DataFrame.")
            mats[k] = _clamp(v)
        return PerEstimatorMatrices(mats)
    if isinstance(mix, (str, os.PathLike)):
        return SingleMatrix(read_mixture(os.fspath(mix)))
    if isinstance(mix, pd.DataFrame):
        if mix.shape[0] == 0 or mix.shape[1] == 0:
            raise InputValidationError("Mixture matrix is empty.")
        return SingleMatrix(_clamp(mix))
    raise InputValidationError("'mix' needs to be given as a DataFrame or a path to a tab-delimited file.")


def _check_filename(filename: Optional[Sequence[Optional[str]]]) -> Optional[List[Optional[str]]]:
    if filename is None:
        return None
    if isinstance(filename, (str, os.PathLike)) or len(filename) != 2:
        raise InputValidationError("'filename' needs to be given as a sequence of 2 paths or None.")
    return [None if f is None else os.fspath(f) for f in filename]


def _row_normalize(df: pd.DataFrame) -> pd.DataFrame:
    """Divide rows by their sums; zero-sum rows stay zero."""
    sums = df.sum(axis=1)
    out = df.div(sums.where(sums > 0), axis=0)
    return out.fillna(0.0)


def merge_cells(res: pd.DataFrame, categories: Mapping[str, Any] = CELL_CATEGORIES) -> pd.DataFrame:
    """
    Collapse estimator-specific labels into canonical categories.

    Columns whose label belongs to a category are summed; unmatched columns
    (e.g. `otherCells`, `RMSE`) are ignored. Rows are then normalized to sum
    to 1. A category with none of its labels present is 0, and a sample with
    no matched mass at all is a row of zeros.
    """
    cols = {}
    for cat, labels in categories.items():
        members = [c for c in res.columns if c in labels]
        cols[cat] = res[members].sum(axis=1) if members else pd.Series(0.0, index=res.index)
    merged = pd.DataFrame(cols, index=res.index).astype(float)
    return _row_normalize(merged)


def _merge_keep_missing(res: pd.DataFrame, categories: Mapping[str, Any], skip_empty: bool = False) -> pd.DataFrame:
    # samples the estimator did not return stay NaN so averaging skips them
    merged = merge_cells(res, categories)
    missing = res.isna().all(axis=1)
    if skip_empty:
        # no mass on any mapped label: 0/0 in the category shares
        missing |= merged.sum(axis=1) == 0
    merged.loc[missing] = np.nan
    return merged


def _nanmean(frames: List[pd.DataFrame]) -> pd.DataFrame:
    stack = np.stack([f.values for f in frames], axis=2)
    with np.errstate(all="ignore"):
        counts = np.sum(~np.isnan(stack), axis=2)
        mean = np.where(counts > 0, np.nansum(stack, axis=2) / np.maximum(counts, 1), np.nan)
    return pd.DataFrame(mean, index=frames[0].index, columns=frames[0].columns)


def _marker_counts(mixes: Mapping[str, pd.DataFrame], markers: Mapping[str, List[str]]) -> Dict[str, int]:
    return {
        comb: len(set(map(str, mixes[comb].index)) & set(markers[comb])) if comb in mixes else 0
        for comb in COMBINATIONS
    }


def ctdeconv_avg(
    mix: Any,
    references: ReferenceSet,
    bcic_min_marker_num: int = DEF_MIN_MARKER_NUM,
    lm6_min_marker_num: int = DEF_MIN_MARKER_NUM,
    lm22_min_marker_num: int = DEF_MIN_MARKER_NUM,
    rnaseq: bool = False,
    protein: bool = False,
    filename: Optional[Sequence[Optional[str]]] = None,
    estimators: Optional[Mapping[str, Callable[..., pd.DataFrame]]] = None,
    renormalize_factors: Mapping[str, float] = RENORMALIZE_FACTORS,
) -> Dict[str, Any]:
    """
    Average cell-type proportions from EPIC (BRef) and CIBERSORT (LM6, LM22).

    Parameters
    ----------
    mix : DataFrame | str | SingleMatrix | PerEstimatorMatrices | dict
        genes × samples mixture, a path to a tab-delimited mixture, or one
        mixture per estimator id (`epic_bcic`, `cibersort_lm6`,
        `cibersort_lm22`). Negative values are set to 0.
    references : ReferenceSet
        BRef-like EPIC reference, LM6 and LM22 signatures.
    bcic_min_marker_num, lm6_min_marker_num, lm22_min_marker_num : int
        Minimum number of marker genes shared with the mixture for each
        estimator to be used in the average.
    rnaseq : bool
        RNA-seq input; disables quantile normalization in CIBERSORT.
    protein : bool
        Protein input; uses BRef+TRef markers, keeps 6 categories and skips
        the cell-proportion renormalization. Forces `rnaseq=False`.
    filename : (str | None, str | None) | None
        Where to write `prop` and `cellProp` as TSV with a SampleId column.
    estimators : mapping, optional
        Replacement callables keyed by estimator id. EPIC callables receive
        `(reference, mixture, scale_exprs=...)`; CIBERSORT callables receive
        `(reference, mixture, qn=..., antilog=...)`.
    renormalize_factors : mapping
        Per-category divisors turning mRNA into cell proportions.

    Returns
    -------
    dict with keys
        prop        samples × categories mRNA proportions
        cellProp    renormalized cell proportions (None in protein mode)
        mergedProp  per-estimator results mapped to the 6 categories
        rawRes      per-estimator raw results (None when failed)
        usedComb    per-estimator usability flags
    """
    mixture = coerce_mixture(mix)
    filename = _check_filename(filename)
    if protein:
        rnaseq = False

    funcs = {"epic_bcic": epic, "cibersort_lm6": cibersort, "cibersort_lm22": cibersort}
    funcs.update(estimators or {})

    bref = references.bref.with_sig_genes(references.epic_markers(protein))
    markers = {
        "epic_bcic": bref.sig_genes,
        "cibersort_lm6": list(references.lm6.profiles.index),
        "cibersort_lm22": list(references.lm22.profiles.index),
    }
    refs = {"epic_bcic": bref, "cibersort_lm6": references.lm6, "cibersort_lm22": references.lm22}

    if isinstance(mixture, PerEstimatorMatrices):
        mixes = dict(mixture.matrices)
        use = {comb: comb in mixes for comb in COMBINATIONS}
    else:
        mixes = {comb: mixture.matrix for comb in COMBINATIONS}
        min_nums = dict(zip(COMBINATIONS, (bcic_min_marker_num, lm6_min_marker_num, lm22_min_marker_num)))
        counts = _marker_counts(mixes, markers)
        use = {comb: counts[comb] >= min_nums[comb] for comb in COMBINATIONS}

    raw: Dict[str, Optional[pd.DataFrame]] = {}
    for comb in COMBINATIONS:
        if comb not in mixes:
            raw[comb] = None
            continue
        m = mixes[comb]
        if comb == "epic_bcic":
            n_ref = len(set(bref.profiles.index) & set(m.index))
            raw[comb] = run_estimator(comb, funcs[comb], refs[comb], m,
                                      scale_exprs=n_ref >= EPIC_SCALE_MIN_GENES)
        else:
            raw[comb] = run_estimator(comb, funcs[comb], refs[comb], m,
                                      qn=not rnaseq, antilog=not protein)
        logger.info(f"{comb}: {'ok' if raw[comb] is not None else 'failed'}")

    use = {comb: bool(use[comb] and raw[comb] is not None) for comb in COMBINATIONS}
    if not any(use.values()):
        counts = _marker_counts(mixes, markers)
        logger.error("The number of genes included in both mixture and signatures:")
        for comb, n in counts.items():
            logger.error(f"  {comb}: {n}")
        raise NoQualifiedCombinationError(counts)

    samples = next(mixes[c] for c in COMBINATIONS if use[c]).columns
    good = {c: raw[c].reindex(samples) for c in COMBINATIONS if raw[c] is not None}
    merged = {c: _merge_keep_missing(r, CELL_CATEGORIES) for c, r in good.items()}
    used = [c for c in COMBINATIONS if use[c]]

    if protein:
        prop = _nanmean([_merge_keep_missing(good[c], CELL_CATEGORIES, skip_empty=True) for c in used])
    else:
        cats5 = without_category(CELL_CATEGORIES, RESERVED_CATEGORY)
        mean5 = _nanmean([_merge_keep_missing(good[c], cats5, skip_empty=True) for c in used])
        base_id = "cibersort_lm22" if "cibersort_lm22" in merged else next(iter(merged))
        if base_id != "cibersort_lm22":
            logger.warning(f"cibersort_lm22 has no result; {RESERVED_CATEGORY} is taken from {base_id}.")
        prop = merged[base_id].copy()
        reserved = prop[RESERVED_CATEGORY]
        rest = [c for c in prop.columns if c != RESERVED_CATEGORY]
        prop[rest] = mean5[rest].mul(1 - reserved, axis=0)

    if protein:
        cell_prop = None
    else:
        factors = pd.Series({c: float(renormalize_factors[c]) for c in prop.columns})
        cell_prop = _row_normalize(prop.div(factors, axis=1))

    fres = {
        "prop": prop,
        "cellProp": cell_prop,
        "mergedProp": merged,
        "rawRes": raw,
        "usedComb": use,
    }

    if filename is not None:
        for key, fname in zip(("prop", "cellProp"), filename):
            if fname is None:
                continue
            if fres[key] is None:
                logger.warning(f"'{key}' is not available in protein mode; {fname} not written.")
                continue
            write_sample_table(fres[key], fname)
            logger.info(f"Wrote {key} to {fname}")

    return fres


__all__ = [
    "ctdeconv_avg",
    "merge_cells",
    "coerce_mixture",
    "SingleMatrix",
    "PerEstimatorMatrices",
    "MixtureInput",
    "InputValidationError",
    "NoQualifiedCombinationError",
]
