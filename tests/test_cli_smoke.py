import subprocess

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from ctdeconv.cli import main


def test_cli_help():
    out = subprocess.run(["ctdeconv", "-h"], capture_output=True, text=True)
    assert out.returncode == 0
    assert "usage" in out.stdout.lower()


@pytest.mark.parametrize("command", ["deconv", "symbols", "barplot"])
def test_subcommand_help(command, capsys):
    with pytest.raises(SystemExit) as e:
        main([command, "-h"])
    assert e.value.code == 0
    assert "usage" in capsys.readouterr().out.lower()


def test_deconv_requires_references(tmp_path):
    with pytest.raises(SystemExit) as e:
        main(["deconv", "--mix", str(tmp_path / "mix.txt")])
    assert "--bref is required" in str(e.value.code)


def test_deconv_missing_mixture_exits_cleanly(tmp_path):
    sig = pd.DataFrame({"A": [1.0, 2.0]}, index=["G1", "G2"])
    ref = tmp_path / "ref.txt"
    sig.to_csv(ref, sep="\t")
    with pytest.raises(SystemExit) as e:
        main([
            "deconv", "--mix", str(tmp_path / "nope.txt"),
            "--bref", str(ref), "--lm6", str(ref), "--lm22", str(ref),
            "--out_prop", str(tmp_path / "p.tsv"), "--out_cellprop", str(tmp_path / "c.tsv"),
        ])
    assert str(e.value.code).startswith("[DECONV]")


def test_barplot_command_writes_png(tmp_path):
    rng = np.random.default_rng(0)
    df = pd.DataFrame(rng.uniform(0.1, 1, (4, 3)), index=list("abcd"), columns=["B", "T", "NK"])
    df["group"] = ["x", "x", "y", "y"]
    src = tmp_path / "frac.tsv"
    df.to_csv(src, sep="\t")
    png = tmp_path / "frac.png"
    before = set(plt.get_fignums())
    main(["barplot", "--input", str(src), "--output", str(png), "--group_col", "group"])
    assert png.exists()
    assert set(plt.get_fignums()) == before


def test_symbols_command(tmp_path):
    hgnc = tmp_path / "hgnc.txt"
    pd.DataFrame({
        "Approved symbol": ["PTPRC"],
        "Status": ["Approved"],
        "Previous symbols": [""],
        "Alias symbols": ["CD45, LCA"],
    }).to_csv(hgnc, sep="\t", index=False)
    src = tmp_path / "genes.tsv"
    pd.DataFrame({"gene": ["CD45", "PTPRC", "XYZ"]}).to_csv(src, sep="\t", index=False)
    dst = tmp_path / "out.tsv"
    main(["symbols", "--input", str(src), "--output", str(dst), "--hgnc_file", str(hgnc)])
    out = pd.read_csv(dst, sep="\t")
    assert out["Standardized_Symbol"].tolist() == ["PTPRC", "PTPRC", "XYZ"]
