#!/usr/bin/env python3
"""
Deconvolution: reference signatures and label taxonomy
ReferenceProfile, ReferenceSet, CELL_CATEGORIES, RENORMALIZE_FACTORS,
load_reference, build_reference_from_adata
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd

from ..io import load_table_auto


def validate_category_map(mapping: Mapping[str, Iterable[str]]) -> Mapping[str, FrozenSet[str]]:
    """
    Freeze a canonical-category → estimator-label table.

    Raises ValueError if a category has no labels or a label is claimed by
    more than one category. Order of categories is preserved.
    """
    seen: Dict[str, str] = {}
    frozen: Dict[str, FrozenSet[str]] = {}
    for cat, labels in mapping.items():
        labels = frozenset(str(x) for x in labels)
        if not labels:
            raise ValueError(f"Category '{cat}' has no labels.")
        for lab in labels:
            if lab in seen:
                raise ValueError(
                    f"Label '{lab}' is mapped to both '{seen[lab]}' and '{cat}'."
                )
            seen[lab] = cat
        frozen[str(cat)] = labels
    return MappingProxyType(frozen)


CELL_CATEGORIES = validate_category_map({
    "B": ["B cells naive", "B cells memory", "Bcells", "B cells"],
    "CD4": [
        "CD4_Tcells", "CD4 T cell", "CD4 T cells", "CD4.T.cells",
        "T cells CD4 naive", "T cells CD4 memory resting",
        "T cells CD4 memory activated",
        "T cells regulatory (Tregs)", "T cells follicular helper",
    ],
    "CD8": ["T cells CD8", "CD8_Tcells", "CD8 T cells", "CD8 T cell", "CD8.T.cells"],
    "NK": ["NKcells", "NK cells", "NK cell", "NK.cells", "NK cells activated"],
    "Mono_Macro": ["Monocytes", "Macrophages M0", "Macrophages M1", "Macrophages M2"],
    "Neutro": ["Neutrophil", "Neutrophils"],
})

# Category whose value is kept from the designated estimator in non-protein mode
RESERVED_CATEGORY = "CD4"

# Empirical mRNA-per-cell divisors turning mRNA proportions into cell proportions
RENORMALIZE_FACTORS = MappingProxyType({
    "B": 0.4016,
    "CD4": 0.3952,
    "CD8": 0.3952,
    "NK": 0.4396,
    "Mono_Macro": 1.4196,
    "Neutro": 0.1300,
})


def without_category(mapping: Mapping[str, FrozenSet[str]], category: str) -> Mapping[str, FrozenSet[str]]:
    """Copy of a category map minus one category."""
    return MappingProxyType({k: v for k, v in mapping.items() if k != category})


@dataclass
class ReferenceProfile:
    """A reference signature: genes × cell types plus the marker genes it relies on."""
    name: str
    profiles: pd.DataFrame
    sig_genes: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.profiles = self.profiles.copy()
        self.profiles.index = self.profiles.index.astype(str)
        self.profiles.columns = self.profiles.columns.astype(str)
        if not self.sig_genes:
            self.sig_genes = list(self.profiles.index)
        self.sig_genes = list(dict.fromkeys(map(str, self.sig_genes)))

    @property
    def cell_types(self) -> List[str]:
        return list(self.profiles.columns)

    def with_sig_genes(self, genes: Iterable[str]) -> "ReferenceProfile":
        return ReferenceProfile(self.name, self.profiles, list(genes))


@dataclass
class ReferenceSet:
    """The three references the ensemble needs, plus extra protein-mode markers."""
    bref: ReferenceProfile
    lm6: ReferenceProfile
    lm22: ReferenceProfile
    tref_sig_genes: List[str] = field(default_factory=list)

    def epic_markers(self, protein: bool = False) -> List[str]:
        genes = list(self.bref.sig_genes)
        if protein:
            genes = list(dict.fromkeys(genes + [str(g) for g in self.tref_sig_genes]))
        return genes


def load_reference(path: str, name: Optional[str] = None,
                   sig_genes: Optional[Iterable[str]] = None) -> ReferenceProfile:
    """
    Read a genes × cell-types signature table (first column = gene ids).

    `sig_genes` defaults to every gene of the table, which is what
    CIBERSORT-style matrices (LM6, LM22) use.
    """
    df = load_table_auto(path, index_col=0)
    df = df.apply(pd.to_numeric, errors="coerce").fillna(0.0)
    df = df[~df.index.duplicated(keep="first")]
    if df.empty:
        raise ValueError(f"Reference table is empty: {path}")
    return ReferenceProfile(
        name=name or str(path),
        profiles=df,
        sig_genes=list(sig_genes) if sig_genes is not None else [],
    )


def build_reference_from_adata(adata, cell_type_key: str, top_n: int = 50,
                               name: str = "custom", min_cells_per_group: int = 10) -> ReferenceProfile:
    """
    Build a reference profile from an annotated single-cell AnnData.

    Profiles are mean normalized expression (counts per 10k) per cell type;
    `sig_genes` are the union of the top Wilcoxon markers per cell type from
    scanpy's rank_genes_groups.
    """
    import scanpy as sc
    from scipy import sparse

    if cell_type_key not in adata.obs.columns:
        raise ValueError(f"adata.obs has no column '{cell_type_key}'")

    counts = adata.obs[cell_type_key].value_counts()
    valid_groups = counts[counts >= min_cells_per_group].index.tolist()
    if len(valid_groups) < 2:
        raise ValueError("Need at least two cell types with enough cells to build a reference.")

    tmp = adata[adata.obs[cell_type_key].isin(valid_groups)].copy()
    tmp.obs[cell_type_key] = tmp.obs[cell_type_key].astype(str).astype("category")
    sc.pp.normalize_total(tmp, target_sum=1e4)

    X = tmp.X.toarray() if sparse.issparse(tmp.X) else np.asarray(tmp.X)
    labels = tmp.obs[cell_type_key].astype(str).values
    profiles = pd.DataFrame(
        {ct: X[labels == ct].mean(axis=0) for ct in sorted(set(labels))},
        index=tmp.var_names.astype(str),
    )

    sc.pp.log1p(tmp)
    sc.tl.rank_genes_groups(tmp, groupby=cell_type_key, method="wilcoxon",
                            n_genes=top_n, use_raw=False)
    names = tmp.uns["rank_genes_groups"]["names"]
    markers: List[str] = []
    for grp in names.dtype.names:
        markers.extend(np.array(names[grp]).astype(str)[:top_n].tolist())

    return ReferenceProfile(name=name, profiles=profiles, sig_genes=markers)


__all__ = [
    "CELL_CATEGORIES",
    "RESERVED_CATEGORY",
    "RENORMALIZE_FACTORS",
    "ReferenceProfile",
    "ReferenceSet",
    "validate_category_map",
    "without_category",
    "load_reference",
    "build_reference_from_adata",
]
