import numpy as np
import pandas as pd
import pytest

from ctdeconv.deconv.references import ReferenceProfile, ReferenceSet

LM22_TYPES = [
    "B cells naive", "B cells memory", "Plasma cells", "T cells CD8",
    "T cells CD4 naive", "T cells CD4 memory resting", "T cells CD4 memory activated",
    "T cells follicular helper", "T cells regulatory (Tregs)", "T cells gamma delta",
    "NK cells resting", "NK cells activated", "Monocytes", "Macrophages M0",
    "Macrophages M1", "Macrophages M2", "Dendritic cells resting",
    "Dendritic cells activated", "Mast cells resting", "Mast cells activated",
    "Eosinophils", "Neutrophils",
]
LM6_TYPES = ["B cells", "CD8 T cells", "CD4 T cells", "NK cells", "Monocytes", "Neutrophils"]
BREF_TYPES = ["Bcells", "CD4_Tcells", "CD8_Tcells", "Monocytes", "Neutrophils", "NKcells"]

SAMPLES = ["s1", "s2", "s3", "s4"]


def make_references(n_genes=100, n_bref_sig=20, seed=0):
    rng = np.random.default_rng(seed)
    genes = [f"G{i}" for i in range(n_genes)]

    def prof(types):
        return pd.DataFrame(rng.exponential(100.0, (n_genes, len(types))), index=genes, columns=types)

    return ReferenceSet(
        bref=ReferenceProfile("BRef", prof(BREF_TYPES), genes[:n_bref_sig]),
        lm6=ReferenceProfile("LM6", prof(LM6_TYPES)),
        lm22=ReferenceProfile("LM22", prof(LM22_TYPES)),
        tref_sig_genes=genes[n_bref_sig:n_bref_sig + 10],
    )


def make_mixture(genes, samples=SAMPLES, seed=1):
    rng = np.random.default_rng(seed)
    return pd.DataFrame(rng.exponential(50.0, (len(genes), len(samples))), index=genes, columns=samples)


def fixed_result(columns, samples=SAMPLES, seed=2):
    rng = np.random.default_rng(seed)
    w = rng.uniform(0.05, 1.0, (len(samples), len(columns)))
    return pd.DataFrame(w / w.sum(axis=1, keepdims=True), index=samples, columns=columns)


class FakeEstimator:
    """Records its calls and returns a fixed result (or raises)."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def __call__(self, reference, mixture, **kwargs):
        self.calls.append((reference, mixture.copy(), kwargs))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def refs():
    return make_references()


@pytest.fixture
def mixture(refs):
    return make_mixture(list(refs.lm22.profiles.index))


@pytest.fixture
def fakes():
    return {
        "epic_bcic": FakeEstimator(fixed_result(BREF_TYPES + ["otherCells"], seed=11)),
        "cibersort_lm6": FakeEstimator(fixed_result(LM6_TYPES, seed=12)),
        "cibersort_lm22": FakeEstimator(fixed_result(LM22_TYPES, seed=13)),
    }
