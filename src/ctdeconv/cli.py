# src/ctdeconv/cli.py
from __future__ import annotations

import argparse
import logging
import sys

from .config import USER_DEFAULTS, resolve_paths
from .utils import timestamped_run_root


def _D(key: str, fallback):
    """pull from USER_DEFAULTS with a safe fallback"""
    return USER_DEFAULTS.get(key, fallback)


def _parse_args(argv=None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        "ctdeconv",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        description="Ensemble cell-type deconvolution (EPIC + CIBERSORT LM6/LM22) and helpers.",
    )
    sub = ap.add_subparsers(dest="command", required=True)

    # ---------- deconv ----------
    d = sub.add_parser("deconv", formatter_class=argparse.ArgumentDefaultsHelpFormatter,
                       help="Average EPIC/CIBERSORT proportions into 6 immune categories.")
    d.add_argument("--mix",            default=_D("mix", ""), help="genes × samples TSV")
    d.add_argument("--bref",           default=_D("bref", ""), help="EPIC-style reference profile TSV")
    d.add_argument("--bref_sig_genes", default=_D("bref_sig_genes", ""), help="BRef marker genes, one per line")
    d.add_argument("--tref_sig_genes", default=_D("tref_sig_genes", ""), help="extra protein-mode markers")
    d.add_argument("--lm6",            default=_D("lm6", ""), help="LM6 signature TSV")
    d.add_argument("--lm22",           default=_D("lm22", ""), help="LM22 signature TSV")
    d.add_argument("--bcic_min_marker_num", default=_D("bcic_min_marker_num", "6"))
    d.add_argument("--lm6_min_marker_num",  default=_D("lm6_min_marker_num", "6"))
    d.add_argument("--lm22_min_marker_num", default=_D("lm22_min_marker_num", "6"))
    d.add_argument("--rnaseq",  action="store_true", help="RNA-seq input (no quantile normalization)")
    d.add_argument("--protein", action="store_true", help="protein input (6 categories, no renormalization)")
    d.add_argument("--out_prop",     default=_D("out_prop", ""))
    d.add_argument("--out_cellprop", default=_D("out_cellprop", ""))

    # ---------- symbols ----------
    s = sub.add_parser("symbols", formatter_class=argparse.ArgumentDefaultsHelpFormatter,
                       help="Standardize gene symbols against HGNC.")
    s.add_argument("--input",      required=True, help="table with a symbol column")
    s.add_argument("--output",     required=True)
    s.add_argument("--symbol_col", default=_D("symbol_col", ""), help="default: first column")
    s.add_argument("--hgnc_file",  default=_D("hgnc_file", ""), help="cached HGNC table")

    # ---------- barplot ----------
    b = sub.add_parser("barplot", formatter_class=argparse.ArgumentDefaultsHelpFormatter,
                       help="Stacked bar chart of cell fractions.")
    b.add_argument("--input",     required=True, help="samples × cell types table")
    b.add_argument("--output",    default=_D("plot_out", "cell_fractions.png"))
    b.add_argument("--group_col", default=_D("group_col", ""), help="column holding sample groups")

    return ap.parse_args(argv)


def main(argv=None) -> None:
    a = _parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    paths = resolve_paths(a)

    # --- lazy imports (clear error if missing) ---
    try:
        from .drivers import run_barplot, run_deconv, run_symbols
    except ImportError as e:
        raise SystemExit("Import error: drivers.py not found or bad.\n" + str(e))

    if a.command == "deconv":
        for key in ("mix", "bref", "lm6", "lm22"):
            if not paths[key]:
                raise SystemExit(f"--{key} is required.")
        out_prop, out_cellprop = paths["out_prop"], paths["out_cellprop"]
        if not (out_prop and out_cellprop):
            rr = timestamped_run_root()
            out_prop = out_prop or f"{rr}/prop.tsv"
            out_cellprop = out_cellprop or f"{rr}/cellProp.tsv"
        try:
            run_deconv(
                mix=paths["mix"],
                bref=paths["bref"],
                bref_sig_genes=paths["bref_sig_genes"],
                tref_sig_genes=paths["tref_sig_genes"],
                lm6=paths["lm6"],
                lm22=paths["lm22"],
                bcic_min_marker_num=a.bcic_min_marker_num,
                lm6_min_marker_num=a.lm6_min_marker_num,
                lm22_min_marker_num=a.lm22_min_marker_num,
                rnaseq=a.rnaseq,
                protein=a.protein,
                out_prop=out_prop,
                out_cellprop=out_cellprop,
            )
        except (ValueError, RuntimeError, FileNotFoundError) as e:
            raise SystemExit(f"[DECONV] {e}")

    elif a.command == "symbols":
        try:
            run_symbols(
                input_path=paths["input"],
                output_path=paths["output"],
                hgnc_file=paths["hgnc_file"],
                symbol_col=a.symbol_col,
            )
        except (ValueError, FileNotFoundError) as e:
            raise SystemExit(f"[SYMBOLS] {e}")

    elif a.command == "barplot":
        try:
            run_barplot(
                input_path=paths["input"],
                output_path=paths["output"],
                group_col=a.group_col,
            )
        except (ValueError, TypeError, FileNotFoundError) as e:
            raise SystemExit(f"[PLOT] {e}")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit(130)
