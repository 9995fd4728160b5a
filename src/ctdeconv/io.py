# src/ctdeconv/io.py
"""
Table readers/writers shared by the deconvolution, symbol and plotting helpers.
read_mixture, read_gene_list, load_table_auto, write_sample_table
"""
from __future__ import annotations

import csv
import os
from pathlib import Path
from typing import List, Optional

import pandas as pd


def load_table_auto(path: str, index_col: Optional[int] = None) -> pd.DataFrame:
    """
    Load a delimited table with delimiter detection.

    - .csv → comma
    - .tsv / .txt → tab
    - Other extensions → sniff between [',', '\\t', ';', '|']
    - UTF-8 by default; falls back to latin-1 if needed
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Table not found: {path}")

    ext = p.suffix.lower()
    sep: str
    if ext == ".csv":
        sep = ","
    elif ext in {".tsv", ".txt"}:
        sep = "\t"
    else:
        with p.open("r", encoding="utf-8", errors="ignore", newline="") as f:
            sample = f.read(8192)
        try:
            sep = csv.Sniffer().sniff(sample, delimiters=[",", "\t", ";", "|"]).delimiter
        except csv.Error:
            sep = ","

    try:
        return pd.read_csv(path, sep=sep, index_col=index_col, low_memory=False)
    except UnicodeDecodeError:
        return pd.read_csv(path, sep=sep, index_col=index_col, low_memory=False, encoding="latin-1")


def read_mixture(path: str) -> pd.DataFrame:
    """
    Read a bulk mixture (genes × samples) from a tab-delimited file whose
    first column holds the gene identifiers.

    Values are coerced to numeric (non-numeric → NaN) and negatives are
    clamped to zero. Duplicate gene rows keep the first occurrence.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Mixture file not found: {path}")

    df = pd.read_csv(path, sep="\t", index_col=0)
    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)
    df = df.apply(pd.to_numeric, errors="coerce")
    if df.shape[1] == 0:
        raise ValueError("No sample columns found in mixture file.")
    df = df[~df.index.duplicated(keep="first")]
    return df.clip(lower=0)


def read_gene_list(path: str) -> List[str]:
    """One gene per line (first column if the file is delimited); blanks dropped."""
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Gene list not found: {path}")
    genes = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            tok = line.strip().split("\t")[0].split(",")[0].strip()
            if tok:
                genes.append(tok)
    return list(dict.fromkeys(genes))


def write_sample_table(df: pd.DataFrame, path: str, id_col: str = "SampleId") -> str:
    """
    Write a samples × columns table as TSV with the sample identifiers in a
    leading `id_col` column. No index, no quoting.
    """
    out = pd.DataFrame(df, copy=True)
    out.insert(0, id_col, out.index.astype(str))
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    out.to_csv(path, sep="\t", index=False, quoting=csv.QUOTE_NONE, escapechar="\\")
    return str(path)


__all__ = [
    "load_table_auto",
    "read_mixture",
    "read_gene_list",
    "write_sample_table",
]
