"""
=============================================================================
Titanic Workflow Grid — Test-Split Evaluation & Report

Runs on the selected workflow after it has been refit on the full
training split:
  1. Confusion matrix + accuracy / sensitivity / specificity / PPV / NPV
  2. ROC curve (publication-quality)
  3. CV ranking chart with standard-error bars
  4. McNemar's test between the two best workflows
  5. Markdown report embedding every table and figure
=============================================================================
"""

# ── Imports ─────────────────────────────────────────────────────────────────
import os
import numpy as np
import pandas as pd

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns

from scipy.stats import chi2 as chi2_dist
from mlxtend.evaluate import mcnemar_table

from sklearn.metrics import (
    accuracy_score, precision_score, recall_score, f1_score,
    roc_auc_score, roc_curve, confusion_matrix, classification_report,
)

LABELS = ["Died", "Survived"]
ALPHA  = 0.05


def _section(title):
    print(f"\n{'═'*72}\n  {title}\n{'═'*72}")


# ═══════════════════════════════════════════════════════════════════════════
#  TEST METRICS
# ═══════════════════════════════════════════════════════════════════════════
def evaluate_test_split(fitted, Xte, yte):
    """Score a fitted workflow on the test split (positive class = 1)."""
    yp  = fitted.predict(Xte)
    ypr = fitted.predict_proba(Xte)[:, 1]
    cm  = confusion_matrix(yte, yp, labels=[0, 1])
    TN, FP, FN, TP = cm.ravel()
    fpr, tpr, thr = roc_curve(yte, ypr)

    return {
        "confusion_matrix": cm,
        "tp": int(TP), "fp": int(FP), "fn": int(FN), "tn": int(TN),
        "accuracy":    accuracy_score(yte, yp),
        "recall":      recall_score(yte, yp, zero_division=0),
        "precision":   precision_score(yte, yp, zero_division=0),
        "specificity": TN / (TN + FP),
        "npv":         TN / (TN + FN),
        "f1":          f1_score(yte, yp, zero_division=0),
        "roc_auc":     roc_auc_score(yte, ypr),
        "fpr": fpr, "tpr": tpr, "thresholds": thr,
    }


SUMMARY_KEYS = [
    ("accuracy",    "Accuracy"),
    ("recall",      "Sensitivity (Recall)"),
    ("precision",   "Precision (PPV)"),
    ("specificity", "Specificity"),
    ("npv",         "NPV"),
    ("f1",          "F1-score"),
    ("roc_auc",     "ROC-AUC"),
]


def print_test_metrics(name, res):
    _section("TEST SPLIT : CONFUSION MATRIX + METRICS (best workflow)")
    print(f"\n  Best workflow : {name}")
    print(f"  ┌─────────────────────────────────────────┐")
    for key, label in SUMMARY_KEYS:
        print(f"  │  {label:<21s}: {res[key]:.4f}        │")
    print(f"  │  TP={res['tp']:4d}  FP={res['fp']:4d}  FN={res['fn']:4d}  TN={res['tn']:4d}  │")
    print(f"  └─────────────────────────────────────────┘")


def save_test_metrics(name, res, yte, yp, res_dir):
    """Write the metric table, ROC points and classification report."""
    row = {"Workflow": name, **{label: res[key] for key, label in SUMMARY_KEYS}}
    fp = os.path.join(res_dir, "test_metrics.csv")
    pd.DataFrame([row]).to_csv(fp, index=False)
    print(f"  Saved → {fp}")

    fp = os.path.join(res_dir, "roc_curve.csv")
    pd.DataFrame({"fpr": res["fpr"], "tpr": res["tpr"],
                  "threshold": res["thresholds"]}).to_csv(fp, index=False)
    print(f"  Saved → {fp}")

    rpt = classification_report(yte, yp, labels=[0, 1], target_names=LABELS)
    fp  = os.path.join(res_dir, "classification_report.txt")
    with open(fp, "w") as f:
        f.write(f"Classification Report — {name}\n{'='*50}\n{rpt}\n\n")
        for key, label in SUMMARY_KEYS:
            f.write(f"{label:<21s}: {res[key]:.4f}\n")
    print(f"  Saved → {fp}")


# ═══════════════════════════════════════════════════════════════════════════
#  FIGURES
# ═══════════════════════════════════════════════════════════════════════════
def plot_roc(name, res, fig_dir):
    """ROC curve of the selected workflow on the test split."""
    fig, ax = plt.subplots(figsize=(7, 6))
    ax.plot(res["fpr"], res["tpr"], color="#E63946", lw=2.2,
            label=f"{name} (AUC = {res['roc_auc']:.4f})")
    ax.plot([0, 1], [0, 1], "k--", lw=1, alpha=.5, label="Random (AUC = 0.5000)")
    ax.set_xlabel("False Positive Rate (1 - Specificity)")
    ax.set_ylabel("True Positive Rate (Sensitivity)")
    ax.set_title("ROC Curve — Test Split", fontweight="bold")
    ax.legend(loc="lower right", framealpha=.9)
    ax.set_xlim(-0.01, 1.01); ax.set_ylim(-0.01, 1.01)
    ax.grid(alpha=.25)
    fig.tight_layout()

    p = os.path.join(fig_dir, "roc_curve_best.png")
    fig.savefig(p); plt.close(fig)
    print(f"  Saved → {p}")
    return p


def plot_confusion(name, res, fig_dir):
    """Confusion matrix heatmap; each cell shows its count and row share."""
    cm = res["confusion_matrix"]
    share = cm / cm.sum(axis=1, keepdims=True)
    annot = np.array([[f"{n}\n({s:.1%})" for n, s in zip(counts, shares)]
                      for counts, shares in zip(cm, share)])

    fig, ax = plt.subplots(figsize=(5.5, 5))
    sns.heatmap(share, annot=annot, fmt="", cmap="Blues", vmin=0, vmax=1,
                cbar=False, square=True, xticklabels=LABELS,
                yticklabels=LABELS, ax=ax, annot_kws={"size": 13})
    ax.set_xlabel("Predicted")
    ax.set_ylabel("Actual")
    ax.set_title(f"{name}\nsensitivity {res['recall']:.3f} · "
                 f"specificity {res['specificity']:.3f}", fontweight="bold")
    fig.tight_layout()

    p = os.path.join(fig_dir, "confusion_matrix_best.png")
    fig.savefig(p); plt.close(fig)
    print(f"  Saved → {p}")
    return p


def plot_workflow_ranking(ranked, fig_dir):
    """CV ROC-AUC and accuracy per workflow, +/- one standard error."""
    df = ranked.iloc[::-1]
    y = np.arange(len(df)); h = 0.38

    fig, ax = plt.subplots(figsize=(10, 6))
    ax.barh(y + h/2, df["CV ROC-AUC"], height=h, xerr=df["ROC-AUC SE"],
            label="ROC-AUC", color="#2196F3", alpha=.85, capsize=3)
    ax.barh(y - h/2, df["CV Accuracy"], height=h, xerr=df["Accuracy SE"],
            label="Accuracy", color="#4CAF50", alpha=.85, capsize=3)
    ax.set_yticks(y); ax.set_yticklabels(df["Workflow"])
    ax.set_xlabel("Mean resampled score")
    ax.set_title("Workflow Ranking — Repeated Stratified CV", fontweight="bold")
    ax.legend(loc="lower right")
    ax.set_xlim(0, 1.05); ax.grid(axis="x", alpha=.3)
    fig.tight_layout()

    p = os.path.join(fig_dir, "workflow_ranking.png")
    fig.savefig(p); plt.close(fig)
    print(f"  Saved → {p}")
    return p


# ═══════════════════════════════════════════════════════════════════════════
#  STATISTICAL COMPARISON  (McNemar's test)
# ═══════════════════════════════════════════════════════════════════════════
def mcnemar_test(y_true, y_pred_1, y_pred_2):
    """Continuity-corrected McNemar statistic for two paired predictions.

    Only the discordant cells matter: ``only_1_correct`` and
    ``only_2_correct``. With no discordant pairs the statistic is 0 and
    the p-value 1.
    """
    tb = mcnemar_table(y_target=np.asarray(y_true),
                       y_model1=np.asarray(y_pred_1),
                       y_model2=np.asarray(y_pred_2))
    b, c = int(tb[0, 1]), int(tb[1, 0])
    chi2 = (abs(b - c) - 1) ** 2 / (b + c) if b + c else 0.0
    return {
        "both_correct":   int(tb[0, 0]),
        "only_1_correct": b,
        "only_2_correct": c,
        "both_wrong":     int(tb[1, 1]),
        "chi2":           float(chi2),
        "p_value":        float(chi2_dist.sf(chi2, df=1)) if b + c else 1.0,
    }


def mcnemar_top2(name_1, fitted_1, name_2, fitted_2, Xte, yte, res_dir):
    """Compare the two best workflows' test-split predictions."""
    _section("STATISTICAL COMPARISON (McNemar's Test, top 2 workflows)")

    result = {"workflow_1": name_1, "workflow_2": name_2,
              **mcnemar_test(yte, fitted_1.predict(Xte), fitted_2.predict(Xte))}
    result["significant"] = result["p_value"] < ALPHA

    print("\n", pd.Series(result).to_string())
    fp = os.path.join(res_dir, "mcnemar_test.csv")
    pd.DataFrame([result]).to_csv(fp, index=False)
    print(f"  Saved → {fp}")
    return result


# ═══════════════════════════════════════════════════════════════════════════
#  REPORT DOCUMENT
# ═══════════════════════════════════════════════════════════════════════════
def write_report(ranked, best, res, mcnemar, figures, res_dir):
    """Assemble results/report.md from the tables and saved figures."""
    _section("REPORT")

    cm = pd.DataFrame(res["confusion_matrix"],
                      index=[f"True {l}" for l in LABELS],
                      columns=[f"Pred {l}" for l in LABELS])
    metrics = pd.Series({label: res[key] for key, label in SUMMARY_KEYS},
                        name="value")
    verdict = ("differ significantly" if mcnemar["significant"]
               else "do not differ significantly")

    lines = [
        "# Titanic Survival — Workflow Grid Report",
        "",
        "## Cross-validated ranking",
        "",
        "```",
        ranked.to_string(float_format="{:.4f}".format),
        "```",
        "",
        f"Selected workflow: **{best}**",
        "",
        "## Test split",
        "",
        "```",
        metrics.to_string(float_format="{:.4f}".format),
        "```",
        "",
        "```",
        cm.to_string(),
        "```",
        "",
        "## McNemar's test (top 2)",
        "",
        f"{mcnemar['workflow_1']} vs {mcnemar['workflow_2']}: "
        f"χ² = {mcnemar['chi2']:.4f}, p = {mcnemar['p_value']:.4f} — "
        f"predictions {verdict} at α = {ALPHA}.",
        "",
        "## Figures",
        "",
    ]
    for p in figures:
        rel = os.path.relpath(p, res_dir)
        title = os.path.splitext(os.path.basename(p))[0].replace("_", " ")
        lines.append(f"![{title}]({rel})")
        lines.append("")

    fp = os.path.join(res_dir, "report.md")
    with open(fp, "w", encoding="utf-8") as f:
        f.write("\n".join(lines))
    print(f"  Saved → {fp}")
    return fp
