import os

import numpy as np
import pandas as pd
import pytest

import titanic_pipeline as tp
import titanic_report as report

Y_TRUE = pd.Series([1, 1, 1, 0, 0, 0, 0, 1])
Y_PRED = np.array([1, 1, 0, 0, 0, 1, 1, 1])
Y_PROB = np.array([0.9, 0.8, 0.7, 0.1, 0.2, 0.3, 0.4, 0.95])
X_DUMMY = pd.DataFrame({"x": range(len(Y_TRUE))})


class FixedModel:
    """Stands in for a fitted workflow with canned predictions."""

    def __init__(self, pred, prob=None):
        self.pred = np.asarray(pred)
        self.prob = np.asarray(prob if prob is not None else pred, dtype=float)

    def predict(self, X):
        return self.pred

    def predict_proba(self, X):
        return np.column_stack([1 - self.prob, self.prob])


@pytest.fixture
def res():
    return report.evaluate_test_split(FixedModel(Y_PRED, Y_PROB), X_DUMMY, Y_TRUE)


def test_confusion_matrix_counts(res):
    assert (res["tp"], res["fn"], res["tn"], res["fp"]) == (3, 1, 2, 2)
    assert res["confusion_matrix"].tolist() == [[2, 2], [1, 3]]
    assert res["confusion_matrix"].sum() == len(Y_TRUE)


def test_test_split_metrics(res):
    assert res["accuracy"] == pytest.approx(5 / 8)
    assert res["recall"] == pytest.approx(3 / 4)
    assert res["precision"] == pytest.approx(3 / 5)
    assert res["specificity"] == pytest.approx(2 / 4)
    assert res["npv"] == pytest.approx(2 / 3)
    assert res["roc_auc"] == pytest.approx(1.0)
    assert res["fpr"][0] == 0 and res["tpr"][-1] == 1


def test_save_test_metrics(tmp_path, res):
    report.save_test_metrics("wf", res, Y_TRUE, Y_PRED, str(tmp_path))
    table = pd.read_csv(tmp_path / "test_metrics.csv")
    assert table.loc[0, "Workflow"] == "wf"
    assert table.loc[0, "NPV"] == pytest.approx(2 / 3)
    assert (tmp_path / "roc_curve.csv").exists()
    assert "Specificity" in (tmp_path / "classification_report.txt").read_text()


def test_mcnemar_detects_disagreement(tmp_path):
    out = report.mcnemar_top2("a", FixedModel(Y_PRED), "b", FixedModel(Y_TRUE),
                              X_DUMMY, Y_TRUE, str(tmp_path))
    assert sorted([out["only_1_correct"], out["only_2_correct"]]) == [0, 3]
    assert out["chi2"] == pytest.approx(4 / 3)
    assert 0.2 < out["p_value"] < 0.3
    assert not out["significant"]
    assert (tmp_path / "mcnemar_test.csv").exists()


def test_mcnemar_test_cells_cover_every_row():
    out = report.mcnemar_test(Y_TRUE, Y_PRED, Y_TRUE)
    assert (out["both_correct"], out["both_wrong"]) == (5, 0)
    assert out["only_1_correct"] + out["only_2_correct"] == 3
    assert out["chi2"] == pytest.approx(4 / 3)
    assert out["p_value"] == pytest.approx(0.2482, abs=1e-3)


def test_mcnemar_identical_predictions(tmp_path):
    out = report.mcnemar_top2("a", FixedModel(Y_PRED), "b", FixedModel(Y_PRED),
                              X_DUMMY, Y_TRUE, str(tmp_path))
    assert out["chi2"] == 0.0 and out["p_value"] == 1.0


def _ranked():
    rows = []
    for i, wf_id in enumerate(["mean_dummy_logistic", "mean_onehot_knn5"]):
        rows.append({"wflow_id": wf_id, "metric": "accuracy", "mean": 0.8,
                     "std_err": 0.01, "n": 10})
        rows.append({"wflow_id": wf_id, "metric": "roc_auc", "mean": 0.85 - i / 10,
                     "std_err": 0.02, "n": 10})
    return tp.rank_workflows(pd.DataFrame(rows))


def test_figures_and_report(tmp_path, res):
    fig_dir = tmp_path / "figures"
    res_dir = tmp_path / "results"
    fig_dir.mkdir(); res_dir.mkdir()
    ranked = _ranked()

    figures = [
        report.plot_workflow_ranking(ranked, str(fig_dir)),
        report.plot_roc("mean_dummy_logistic", res, str(fig_dir)),
        report.plot_confusion("mean_dummy_logistic", res, str(fig_dir)),
    ]
    assert all(os.path.exists(p) for p in figures)

    mcnemar = report.mcnemar_top2("mean_dummy_logistic", FixedModel(Y_PRED),
                                  "mean_onehot_knn5", FixedModel(Y_TRUE),
                                  X_DUMMY, Y_TRUE, str(res_dir))
    path = report.write_report(ranked, "mean_dummy_logistic", res, mcnemar,
                               figures, str(res_dir))
    text = open(path, encoding="utf-8").read()
    assert "Selected workflow: **mean_dummy_logistic**" in text
    assert "Specificity" in text and "NPV" in text
    assert "](../figures/roc_curve_best.png)" in text
    assert "do not differ significantly" in text
