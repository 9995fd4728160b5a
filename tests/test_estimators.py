import numpy as np
import pandas as pd
import pytest

from ctdeconv.deconv.estimators import OTHER_CELLS, cibersort, epic, quantile_normalize, run_estimator
from ctdeconv.deconv.references import ReferenceProfile, load_reference


def _signature(n_genes=300, types=("A", "B", "C"), seed=0):
    rng = np.random.default_rng(seed)
    genes = [f"G{i}" for i in range(n_genes)]
    return pd.DataFrame(rng.exponential(100.0, (n_genes, len(types))), index=genes, columns=list(types))


def _mix(sig, fractions, seed=1):
    rng = np.random.default_rng(seed)
    fr = np.asarray(fractions, dtype=float)
    m = sig.values @ fr.T
    m = m * rng.lognormal(0, 0.02, m.shape)
    return pd.DataFrame(m, index=sig.index, columns=[f"S{i}" for i in range(fr.shape[0])])


def test_quantile_normalize_gives_identical_distributions():
    df = pd.DataFrame({"a": [5.0, 2.0, 3.0, 4.0], "b": [4.0, 1.0, 4.5, 2.0]})
    out = quantile_normalize(df)
    assert sorted(out["a"]) == sorted(out["b"])
    assert list(out["a"].rank()) == list(df["a"].rank())


def test_cibersort_recovers_fractions():
    sig = _signature()
    truth = np.array([[0.6, 0.3, 0.1], [0.2, 0.2, 0.6]])
    res = cibersort(ReferenceProfile("sig", sig), _mix(sig, truth), qn=False)
    assert list(res.columns) == ["A", "B", "C", "Correlation", "RMSE"]
    frac = res[["A", "B", "C"]]
    assert np.allclose(frac.sum(axis=1), 1.0)
    assert (frac.values >= 0).all()
    assert np.abs(frac.values - truth).max() < 0.1


def test_cibersort_antilog_only_for_small_values():
    sig = _signature()
    mix = np.log2(_mix(sig, [[0.5, 0.3, 0.2]]) + 1)
    res = cibersort(ReferenceProfile("sig", sig), mix, qn=False, antilog=True)
    assert res.loc["S0", "A"] > res.loc["S0", "C"]


def test_cibersort_needs_shared_genes():
    sig = _signature()
    mix = pd.DataFrame({"S0": [1.0, 2.0]}, index=["X1", "X2"])
    with pytest.raises(ValueError):
        cibersort(ReferenceProfile("sig", sig), mix)


def test_epic_reports_other_cells_and_caps_sum():
    sig = _signature()
    truth = np.array([[0.5, 0.3, 0.2], [0.1, 0.1, 0.8]])
    ref = ReferenceProfile("bref", sig, list(sig.index[:100]))
    res = epic(ref, _mix(sig, truth), scale_exprs=False)
    assert list(res.columns) == ["A", "B", "C", OTHER_CELLS]
    assert np.allclose(res.sum(axis=1), 1.0)
    assert (res[["A", "B", "C"]].values >= 0).all()
    assert np.abs(res[["A", "B", "C"]].values - truth).max() < 0.1


def test_epic_with_scaling_keeps_relative_order():
    sig = _signature()
    ref = ReferenceProfile("bref", sig, list(sig.index[:100]))
    res = epic(ref, _mix(sig, [[0.7, 0.2, 0.1]]), scale_exprs=True)
    assert res.loc["S0", "A"] > res.loc["S0", "B"] > res.loc["S0", "C"]


def test_run_estimator_turns_failures_into_none():
    def broken(reference, mixture):
        raise ValueError("singular")

    assert run_estimator("x", broken, None, None) is None
    assert run_estimator("x", lambda r, m: None, None, None) is None
    out = run_estimator("x", lambda r, m: pd.DataFrame({1: [0.5]}, index=[7]), None, None)
    assert list(out.columns) == ["1"] and list(out.index) == ["7"]


def test_load_reference_defaults_markers_to_all_genes(tmp_path):
    sig = _signature(n_genes=10)
    p = tmp_path / "lm6.txt"
    sig.to_csv(p, sep="\t")
    ref = load_reference(str(p), name="LM6")
    assert ref.sig_genes == list(sig.index)
    assert ref.cell_types == ["A", "B", "C"]

    ref2 = load_reference(str(p), sig_genes=["G1", "G2", "G1"])
    assert ref2.sig_genes == ["G1", "G2"]
