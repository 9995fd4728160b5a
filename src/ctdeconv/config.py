#!/usr/bin/env python3
"""
ctdeconv.config

Contains:
- USER_DEFAULTS: baseline defaults for CLI & drivers
- fixed constants shared by the deconvolution and symbol helpers
- resolve_paths(args): expand user paths, normalize relative ones
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional


# -------------------------------------------------------------
# Fixed constants
# -------------------------------------------------------------
COMBINATIONS = ("epic_bcic", "cibersort_lm6", "cibersort_lm22")

DEF_MIN_MARKER_NUM = 6

# EPIC rescales expression only when this many reference genes are measured
EPIC_SCALE_MIN_GENES = 2000

HGNC_URL = (
    "https://www.genenames.org/cgi-bin/download/custom?col=gd_app_sym&col=gd_status"
    "&col=gd_prev_sym&col=gd_aliases&col=gd_pub_eg_id&status=Approved"
    "&status=Entry%20Withdrawn&hgnc_dbtag=on&order_by=gd_app_sym_sort"
    "&format=text&submit=submit"
)
HGNC_FILE_TEMPLATE = "hgnc_symbols_{stamp}.txt"


# -------------------------------------------------------------
# Default user-configurable parameters (used by CLI & drivers)
# -------------------------------------------------------------
# Central defaults used by the CLI. Make sure EVERY key the CLI reads exists here.
USER_DEFAULTS = {
    # Inputs
    "mix":   "",
    "bref":  "",
    "bref_sig_genes": "",
    "tref_sig_genes": "",
    "lm6":   "",
    "lm22":  "",

    # Marker thresholds (strings on purpose; drivers normalize)
    "bcic_min_marker_num": str(DEF_MIN_MARKER_NUM),
    "lm6_min_marker_num":  str(DEF_MIN_MARKER_NUM),
    "lm22_min_marker_num": str(DEF_MIN_MARKER_NUM),

    # Outputs
    "out_prop":     "",
    "out_cellprop": "",

    # Symbols
    "hgnc_file": "",
    "symbol_col": "",

    # Plotting
    "group_col": "",
    "plot_out": "cell_fractions.png",
}


# -------------------------------------------------------------
# Helper: normalize and expand paths
# -------------------------------------------------------------
def _expand_path(p: Optional[str]) -> Optional[str]:
    """Expand ~ and make absolute, or None if blank."""
    if p is None:
        return None
    p = str(p).strip()
    if not p:
        return None
    path = Path(p).expanduser()
    return str(path if path.is_absolute() else path.resolve())


def resolve_paths(args: Any) -> Dict[str, Optional[str]]:
    """
    Normalize all input/output paths in a CLI namespace or dict.

    Works with argparse.Namespace or plain dict. Keys that are missing come
    back as None.

    Examples
    --------
    >>> from argparse import Namespace
    >>> ns = Namespace(mix='mix.txt', out_prop='prop.tsv')
    >>> resolve_paths(ns)["mix"]
    '/home/me/project/mix.txt'
    """
    if hasattr(args, "__dict__"):
        items = vars(args)
    elif isinstance(args, dict):
        items = args
    else:
        raise TypeError("resolve_paths() expects dict or argparse.Namespace")

    keys = [
        "mix", "bref", "bref_sig_genes", "tref_sig_genes", "lm6", "lm22",
        "out_prop", "out_cellprop", "hgnc_file", "input", "output", "plot_out",
    ]
    resolved = {}
    for k in keys:
        v = items.get(k)
        resolved[k] = _expand_path(v)
    return resolved


# -------------------------------------------------------------
# Optional: run as script to print defaults
# -------------------------------------------------------------
if __name__ == "__main__":
    import json
    print(json.dumps(USER_DEFAULTS, indent=2))
