import os
import re

import pandas as pd
import pytest

from ctdeconv.symbols import (
    default_hgnc_file,
    gene_id_correct,
    load_hgnc_table,
    standardized_symbol,
    unify_symbols,
)


@pytest.fixture
def hgnc_file(tmp_path):
    table = pd.DataFrame({
        "Approved symbol": ["TP53", "CD4", "PTPRC", "MARCHF1", "MARCHF2", "SEPTIN1", "SEPTIN2", "OLDGENE"],
        "Status": ["Approved"] * 7 + ["Entry Withdrawn"],
        "Previous symbols": ["", "", "", "MARCH1", "MARCH2", "SEPT", "SEPT, SEPT2", ""],
        "Alias symbols": ["p53, LFS1", "", "CD45, LCA", "RNF171", "RNF172, CD45", "", "", ""],
    })
    p = tmp_path / "hgnc.txt"
    table.to_csv(p, sep="\t", index=False)
    return str(p)


def test_load_hgnc_table_keeps_approved_rows(hgnc_file):
    hgnc = load_hgnc_table(hgnc_file)
    assert "OLDGENE" not in set(hgnc["Approved symbol"])
    assert len(hgnc) == 7


def test_load_hgnc_table_checks_columns(tmp_path):
    p = tmp_path / "bad.txt"
    pd.DataFrame({"Approved symbol": ["A"], "Status": ["Approved"]}).to_csv(p, sep="\t", index=False)
    with pytest.raises(ValueError):
        load_hgnc_table(str(p))


def test_standardized_symbol_lookup_order(hgnc_file):
    out = standardized_symbol(["TP53", "MARCH1", "p53", "CD45", "NOPE"], hgnc_file=hgnc_file)
    assert list(out.columns) == ["original_symbol", "Standardized_Symbol", "HGNC_status"]
    assert out["Standardized_Symbol"].tolist() == ["TP53", "MARCHF1", "TP53", "PTPRC;MARCHF2", "NOPE"]
    assert out["HGNC_status"].tolist() == [
        "Approved symbol", "Previous symbol", "Alias symbols", "Alias symbols", "not found",
    ]


def test_standardized_symbol_joins_previous_matches(hgnc_file):
    out = standardized_symbol(["SEPT", "SEPT2"], hgnc_file=hgnc_file)
    assert out["Standardized_Symbol"].tolist() == ["SEPTIN1,SEPTIN2", "SEPTIN2"]
    assert out["HGNC_status"].tolist() == ["Previous symbol", "Previous symbol"]


def test_load_hgnc_table_downloads_once_and_caches(hgnc_file, tmp_path):
    cache = tmp_path / "hgnc_symbols_2026-10.txt"
    first = load_hgnc_table(str(cache), url=hgnc_file)
    assert cache.exists()

    # the source is gone; the second call must read the cached copy
    os.remove(hgnc_file)
    second = load_hgnc_table(str(cache), url=hgnc_file)
    pd.testing.assert_frame_equal(first, second)


def test_load_hgnc_table_default_cache_name(hgnc_file, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    load_hgnc_table(url=hgnc_file)
    assert (tmp_path / default_hgnc_file()).exists()
    assert re.fullmatch(r"hgnc_symbols_\d{4}-\d{2}\.txt", default_hgnc_file())


def test_unify_symbols_first_symbol_and_mean():
    df = pd.DataFrame({
        "id": ["A;B", "A", "C,D", "", "E"],
        "s1": [1.0, 3.0, 5.0, 7.0, 9.0],
        "s2": [2.0, 4.0, 6.0, 8.0, 10.0],
    })
    out = unify_symbols(df)
    assert list(out.index) == ["A", "C", "E"]
    assert out.loc["A"].tolist() == [2.0, 3.0]


def test_gene_id_correct_merges_renamed_rows(hgnc_file):
    mat = pd.DataFrame({"s1": [1.0, 3.0, 10.0], "s2": [2.0, 6.0, 20.0]}, index=["p53", "TP53", "MARCH2"])
    out = gene_id_correct(mat, hgnc_file=hgnc_file)
    assert list(out.index) == ["TP53", "MARCHF2"]
    assert out.loc["TP53"].tolist() == [2.0, 4.0]
