#!/usr/bin/env python3
"""
Gene-symbol standardization against the HGNC nomenclature table
standardized_symbol, gene_id_correct, unify_symbols
"""

from __future__ import annotations

import logging
import os
import re
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from .config import HGNC_FILE_TEMPLATE, HGNC_URL

logger = logging.getLogger(__name__)

APPROVED = "Approved symbol"
PREVIOUS = "Previous symbol"
ALIAS = "Alias symbols"
NOT_FOUND = "not found"

_SPLIT = re.compile(r",\s+")


def default_hgnc_file() -> str:
    """hgnc_symbols_YYYY-MM.txt in the working directory."""
    return HGNC_FILE_TEMPLATE.format(stamp=datetime.now().strftime("%Y-%m"))


def load_hgnc_table(hgnc_file: Optional[str] = None, url: str = HGNC_URL) -> pd.DataFrame:
    """
    Read the cached HGNC table, downloading it once if the file is missing.
    Only rows with Status == "Approved" are returned.
    """
    hgnc_file = hgnc_file or default_hgnc_file()
    if not os.path.exists(hgnc_file):
        logger.info(f"Downloading HGNC symbols to {hgnc_file}")
        raw = pd.read_csv(url, sep="\t", dtype=str, keep_default_na=False)
        raw.to_csv(hgnc_file, sep="\t", index=False)

    hgnc = pd.read_csv(hgnc_file, sep="\t", dtype=str, keep_default_na=False)
    for col in ("Approved symbol", "Status", "Previous symbols", "Alias symbols"):
        if col not in hgnc.columns:
            raise ValueError(f"HGNC table {hgnc_file} is missing column '{col}'")
    return hgnc[hgnc["Status"] == "Approved"].reset_index(drop=True)


def _index_symbols(hgnc: pd.DataFrame, col: str) -> Dict[str, List[str]]:
    """symbol → approved symbols listing it in `col`, in table order."""
    lookup: Dict[str, List[str]] = {}
    for approved, cell in zip(hgnc["Approved symbol"], hgnc[col]):
        if not cell:
            continue
        for sym in _SPLIT.split(cell.strip()):
            hits = lookup.setdefault(sym, [])
            if approved not in hits:
                hits.append(approved)
    return lookup


def standardized_symbol(symbols: Iterable[str], hgnc_file: Optional[str] = None) -> pd.DataFrame:
    """
    Map gene symbols to HGNC approved symbols.

    Lookup order: approved symbol, previous symbol, alias. Several previous
    symbol matches are joined with ",", several alias matches with ";".
    Symbols that match nothing are kept as they are.

    Returns
    -------
    DataFrame with columns original_symbol, Standardized_Symbol, HGNC_status
    """
    symbols = [str(s) for s in symbols]
    hgnc = load_hgnc_table(hgnc_file)
    approved = set(hgnc["Approved symbol"])
    previous = _index_symbols(hgnc, "Previous symbols")
    alias = _index_symbols(hgnc, "Alias symbols")

    std, status = [], []
    for x in symbols:
        if x in approved:
            std.append(x)
            status.append(APPROVED)
        elif x in previous:
            std.append(",".join(previous[x]))
            status.append(PREVIOUS)
        elif x in alias:
            std.append(";".join(alias[x]))
            status.append(ALIAS)
        else:
            std.append(x)
            status.append(NOT_FOUND)

    counts = pd.Series(status).value_counts()
    logger.info(f"No. of input symbols: {len(symbols)}")
    logger.info(f"No. of matched by approved symbols: {counts.get(APPROVED, 0)}")
    logger.info(f"No. of matched by previous symbol: {counts.get(PREVIOUS, 0)}")
    logger.info(f"No. of matched by alias symbol: {counts.get(ALIAS, 0)}")
    logger.info(f"No. of not found: {counts.get(NOT_FOUND, 0)}")

    return pd.DataFrame({
        "original_symbol": symbols,
        "Standardized_Symbol": std,
        "HGNC_status": status,
    })


def unify_symbols(df: pd.DataFrame, id_col: str = "id", split: Sequence[str] = (";", ",")) -> pd.DataFrame:
    """
    Collapse a table keyed by possibly ambiguous gene ids into one row per id.

    Ids holding several symbols keep the first one, blank ids are dropped and
    duplicate ids are averaged. Returns a numeric frame indexed by id.
    """
    ids = df[id_col].astype(str).str.strip()
    if split:
        pattern = "|".join(re.escape(s) for s in split)
        ids = ids.str.split(pattern, regex=True).str[0].str.strip()
    values = df.drop(columns=[id_col]).apply(pd.to_numeric, errors="coerce")
    values.index = ids.values
    values = values[values.index != ""]
    out = values.groupby(level=0, sort=False).mean()
    out.index.name = None
    return out


def gene_id_correct(mat: pd.DataFrame, hgnc_file: Optional[str] = None) -> pd.DataFrame:
    """Standardize the row ids of a genes × samples matrix, merging duplicates."""
    ids = standardized_symbol(mat.index.astype(str), hgnc_file=hgnc_file)["Standardized_Symbol"]
    df = mat.reset_index(drop=True)
    df.insert(0, "id", ids.values)
    return unify_symbols(df, id_col="id", split=(";", ","))


__all__ = [
    "standardized_symbol",
    "load_hgnc_table",
    "default_hgnc_file",
    "unify_symbols",
    "gene_id_correct",
]
