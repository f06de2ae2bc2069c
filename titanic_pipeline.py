"""
=============================================================================
Titanic Survival — Preprocessing x Model Workflow Grid

Exploratory analysis + model selection over the Kaggle Titanic passengers.
  - 6 recipes  : {mean, median, knn} imputation x {dummy, one-hot} encoding
  - 3 models   : logistic regression, KNN (k=5), KNN (k=10)
  - 9 workflows: each model paired with the recipes of its encoding style
  - 10-fold x 10-repeat stratified CV, ranked by mean ROC-AUC
  - best workflow refit on the training split, scored on the test split

Dataset : data/train.csv  (891 rows)
Target  : Survived (binary 0/1)
=============================================================================
"""

# ── Imports ─────────────────────────────────────────────────────────────────
import warnings
warnings.filterwarnings("ignore")

import argparse
import os
import numpy as np
import pandas as pd

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns

from scipy.stats import sem

from sklearn.base import clone
from sklearn.model_selection import (
    train_test_split, RepeatedStratifiedKFold, cross_validate,
)
from sklearn.pipeline import Pipeline
from sklearn.linear_model import LogisticRegression
from sklearn.neighbors import KNeighborsClassifier

from titanic_recipes import build_recipes, recipe_encoding, CATEGORY_LEVELS
import titanic_report as report

# ── Constants ───────────────────────────────────────────────────────────────
SEED          = 42
TEST_SIZE     = 0.25
N_FOLDS       = 10
N_REPEATS     = 10
N_JOBS        = -1
TARGET        = "Survived"
DATA_PATH     = os.environ.get("TITANIC_DATA", os.path.join("data", "train.csv"))
FIG_DIR       = "figures"
RES_DIR       = "results"

# Identifier / free-text columns
DROP_COLS = ["PassengerId", "Name", "Ticket", "Cabin"]

NUMERIC_FEATURES     = ["Age", "Fare", "SibSp", "Parch"]
CATEGORICAL_FEATURES = list(CATEGORY_LEVELS)
REQUIRED_COLS        = [TARGET] + CATEGORICAL_FEATURES + NUMERIC_FEATURES

# Which encoding style each model family consumes
MODEL_ENCODING = {
    "logistic": "dummy",
    "knn5":     "onehot",
    "knn10":    "onehot",
}

# Publication style
plt.rcParams.update({
    "font.size":       11,
    "axes.titlesize":  13,
    "axes.labelsize":  12,
    "legend.fontsize": 10,
    "figure.dpi":      110,
    "savefig.dpi":     150,
    "savefig.bbox":    "tight",
})


def banner(title):
    print("\n" + "=" * 72)
    print(title)
    print("=" * 72)


# ═══════════════════════════════════════════════════════════════════════════
# STEP 1 — DATA LOADING
# ═══════════════════════════════════════════════════════════════════════════
def load_data(path=DATA_PATH):
    """Read the passenger CSV and check the expected columns exist."""
    banner("STEP 1 : DATA LOADING")

    if not os.path.exists(path):
        raise FileNotFoundError(
            f"Dataset not found at {path}; download train.csv from the Kaggle "
            "Titanic competition and pass --data or set TITANIC_DATA")
    df = pd.read_csv(path)

    missing = [c for c in REQUIRED_COLS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {', '.join(missing)}")

    print(f"  Raw shape   : {df.shape}")
    print(f"  Columns     : {list(df.columns)}")
    na = df.isna().sum()
    print("  Missing values:")
    for col, cnt in na[na > 0].items():
        print(f"    {col:<12s}: {cnt}")
    return df


# ═══════════════════════════════════════════════════════════════════════════
# STEP 2 — CLEANING
# ═══════════════════════════════════════════════════════════════════════════
def clean_data(df):
    """Drop id/free-text columns, cast factors, split off the label."""
    banner("STEP 2 : CLEANING")

    df = df.drop(columns=[c for c in DROP_COLS if c in df.columns])
    print(f"  Dropped id / free-text columns. Remaining: {df.shape[1]}")

    if df[TARGET].isna().any():
        raise ValueError(f"'{TARGET}' has {df[TARGET].isna().sum()} missing labels")

    for col, levels in CATEGORY_LEVELS.items():
        observed = df[col].dropna()
        bad = sorted(set(observed.unique()) - set(levels), key=str)
        if bad:
            raise ValueError(f"Unexpected levels in '{col}': {bad}")
        df[col] = pd.Categorical(df[col], categories=levels)

    X = df.drop(columns=[TARGET])
    y = df[TARGET].astype(int)
    print(f"  Final X     : {X.shape}")
    print(f"  Final y     : {y.shape}")
    show_class_dist(y, "Full dataset")
    return X, y


def show_class_dist(y, label=""):
    """Print class distribution."""
    vc = y.value_counts().sort_index()
    total = len(y)
    print(f"  Class distribution ({label}):")
    for cls, cnt in vc.items():
        print(f"    {cls}: {cnt}  ({cnt/total*100:.1f}%)")


# ═══════════════════════════════════════════════════════════════════════════
# STEP 3 — EXPLORATORY PLOTS
# ═══════════════════════════════════════════════════════════════════════════
def plot_eda(X, y, fig_dir=FIG_DIR):
    """Histogram per numeric feature, bar chart per categorical one."""
    banner("STEP 3 : EXPLORATORY PLOTS")

    df = X.assign(**{TARGET: y.map({0: "No", 1: "Yes"})})
    saved = []

    def _save(fig, name):
        p = os.path.join(fig_dir, name)
        fig.tight_layout()
        fig.savefig(p); plt.close(fig)
        saved.append(p)
        print(f"  Saved → {p}")

    fig, ax = plt.subplots(figsize=(5, 4))
    sns.countplot(data=df, x=TARGET, order=["No", "Yes"],
                  color="#2A9D8F", ax=ax)
    ax.set_title("Survived")
    _save(fig, "eda_survived.png")

    fig, ax = plt.subplots(figsize=(7, 4))
    na = X.isna().sum()
    sns.barplot(x=na.index.tolist(), y=na.values, color="#457B9D", ax=ax)
    ax.set_title("Missing values per column"); ax.set_ylabel("Count")
    _save(fig, "eda_missing.png")

    for col in NUMERIC_FEATURES:
        fig, ax = plt.subplots(figsize=(7, 4))
        sns.histplot(data=df, x=col, hue=TARGET, hue_order=["No", "Yes"],
                     multiple="stack", bins=30, palette="Set2", ax=ax)
        ax.set_title(f"Distribution of {col}")
        _save(fig, f"eda_hist_{col.lower()}.png")

    for col in CATEGORICAL_FEATURES:
        fig, ax = plt.subplots(figsize=(6, 4))
        sns.countplot(data=df, x=col, hue=TARGET, hue_order=["No", "Yes"],
                      palette="Set2", ax=ax)
        ax.set_title(f"{col} by survival")
        _save(fig, f"eda_bar_{col.lower()}.png")

    return saved


# ═══════════════════════════════════════════════════════════════════════════
# STEP 4 — TRAIN-TEST SPLIT + RESAMPLES
# ═══════════════════════════════════════════════════════════════════════════
def split_data(X, y, test_size=TEST_SIZE, seed=SEED):
    """Stratified 75 / 25 split."""
    banner(f"STEP 4 : TRAIN-TEST SPLIT  ({1-test_size:.0%}-{test_size:.0%}, stratified)")
    Xtr, Xte, ytr, yte = train_test_split(
        X, y, test_size=test_size, random_state=seed, stratify=y)
    print(f"  Train : {Xtr.shape[0]}   Test : {Xte.shape[0]}")
    show_class_dist(ytr, "Train")
    show_class_dist(yte, "Test")
    return Xtr, Xte, ytr, yte


def make_resamples(n_folds=N_FOLDS, n_repeats=N_REPEATS, seed=SEED):
    """Repeated stratified k-fold, shared by every workflow."""
    return RepeatedStratifiedKFold(n_splits=n_folds, n_repeats=n_repeats,
                                   random_state=seed)


# ═══════════════════════════════════════════════════════════════════════════
# STEP 5-7 — MODELS + WORKFLOW GRID
# ═══════════════════════════════════════════════════════════════════════════
def get_models():
    """Model specifications in declaration order."""
    return {
        "logistic": LogisticRegression(penalty=None, max_iter=5000),
        "knn5":     KNeighborsClassifier(n_neighbors=5),
        "knn10":    KNeighborsClassifier(n_neighbors=10),
    }


def build_workflows(recipes, models):
    """Pair every model with each recipe of its encoding style.

    Returns an ordered dict ``{"<recipe>_<model>": Pipeline}``; order is
    model-major, then recipe, and doubles as the ranking tie-break.
    """
    workflows = {}
    for model_name, clf in models.items():
        for rec_name, recipe in recipes.items():
            if recipe_encoding(rec_name) != MODEL_ENCODING[model_name]:
                continue
            workflows[f"{rec_name}_{model_name}"] = Pipeline([
                ("recipe", clone(recipe)),
                ("model",  clone(clf)),
            ])
    return workflows


# ═══════════════════════════════════════════════════════════════════════════
# STEP 8 — CROSS-VALIDATE ALL WORKFLOWS
# ═══════════════════════════════════════════════════════════════════════════
def evaluate_workflows(workflows, Xtr, ytr, cv, n_jobs=N_JOBS):
    """Fit every workflow on every fold; return long metric records."""
    n_splits = cv.get_n_splits()
    banner(f"STEP 8 : CROSS-VALIDATION  ({len(workflows)} workflows x {n_splits} resamples)")

    records = []
    for i, (wf_id, wf) in enumerate(workflows.items(), 1):
        cvr = cross_validate(wf, Xtr, ytr, cv=cv,
                             scoring={"accuracy": "accuracy", "roc_auc": "roc_auc"},
                             n_jobs=n_jobs, error_score="raise")
        for metric in ("accuracy", "roc_auc"):
            scores = cvr[f"test_{metric}"]
            records.append({
                "wflow_id": wf_id,
                "metric":   metric,
                "mean":     float(np.mean(scores)),
                "std_err":  float(sem(scores)),
                "n":        len(scores),
            })
        auc = records[-1]["mean"]
        print(f"  [{i}/{len(workflows)}] {wf_id:<24s}  AUC={auc:.4f} ✓")

    return pd.DataFrame(records)


# ═══════════════════════════════════════════════════════════════════════════
# STEP 9 — RANK + SELECT
# ═══════════════════════════════════════════════════════════════════════════
def rank_workflows(metrics):
    """One row per workflow, sorted by mean CV ROC-AUC.

    The sort is stable, so workflows with equal AUC keep their declaration
    order and the first declared one ranks higher.
    """
    auc = (metrics[metrics["metric"] == "roc_auc"]
           .rename(columns={"wflow_id": "Workflow", "mean": "CV ROC-AUC",
                            "std_err": "ROC-AUC SE"})
           .drop(columns="metric"))
    acc = (metrics[metrics["metric"] == "accuracy"]
           .rename(columns={"wflow_id": "Workflow", "mean": "CV Accuracy",
                            "std_err": "Accuracy SE"})
           .drop(columns=["metric", "n"]))
    table = auc.merge(acc, on="Workflow", how="left")
    table = table[["Workflow", "CV ROC-AUC", "ROC-AUC SE",
                   "CV Accuracy", "Accuracy SE", "n"]]

    ranked = (table
              .sort_values("CV ROC-AUC", ascending=False, kind="mergesort")
              .reset_index(drop=True))
    ranked.index = ranked.index + 1
    ranked.index.name = "Rank"
    return ranked


def compare(ranked, res_dir=RES_DIR):
    """Print the ranking table and save it."""
    banner("STEP 9 : WORKFLOW RANKING")

    pd.set_option("display.max_columns", None)
    pd.set_option("display.width", 220)
    pd.set_option("display.float_format", "{:.4f}".format)
    print("\n", ranked.to_string())

    p = os.path.join(res_dir, "workflow_ranking.csv")
    ranked.to_csv(p)
    print(f"\n  Saved → {p}")


def select_best(ranked):
    return ranked.iloc[0]["Workflow"]


# ═══════════════════════════════════════════════════════════════════════════
# STEP 10 — FINAL FIT
# ═══════════════════════════════════════════════════════════════════════════
def fit_final(workflow, Xtr, ytr):
    """Refit a fresh copy of the workflow on the full training split."""
    return clone(workflow).fit(Xtr, ytr)


# ═══════════════════════════════════════════════════════════════════════════
# MAIN
# ═══════════════════════════════════════════════════════════════════════════
def run_pipeline(data_path=DATA_PATH, fig_dir=FIG_DIR, res_dir=RES_DIR,
                 n_folds=N_FOLDS, n_repeats=N_REPEATS, n_jobs=N_JOBS,
                 seed=SEED):
    """Run every stage once, top to bottom. Returns a summary dict."""
    np.random.seed(seed)
    for d in [fig_dir, res_dir]:
        os.makedirs(d, exist_ok=True)

    # 1-2  Load + clean
    raw = load_data(data_path)
    X, y = clean_data(raw)

    # 3  EDA
    eda_figures = plot_eda(X, y, fig_dir)

    # 4  Split
    Xtr, Xte, ytr, yte = split_data(X, y, seed=seed)
    cv = make_resamples(n_folds, n_repeats, seed)

    # 5-7  Recipes, models, grid
    banner("STEP 5-7 : RECIPES x MODELS → WORKFLOWS")
    recipes = build_recipes()
    models = get_models()
    workflows = build_workflows(recipes, models)
    print(f"  Recipes   ({len(recipes)}): {list(recipes)}")
    print(f"  Models    ({len(models)}): {list(models)}")
    print(f"  Workflows ({len(workflows)}): {list(workflows)}")

    # 8  Cross-validate
    metrics = evaluate_workflows(workflows, Xtr, ytr, cv, n_jobs=n_jobs)
    p = os.path.join(res_dir, "workflow_metrics.csv")
    metrics.to_csv(p, index=False)
    print(f"\n  Saved → {p}")

    # 9  Rank + select
    ranked = rank_workflows(metrics)
    compare(ranked, res_dir)
    best_id = select_best(ranked)
    print(f"\n  🏆 Best workflow : {best_id}")
    print(f"  🎯 CV ROC-AUC    : {ranked.iloc[0]['CV ROC-AUC']:.4f}")

    # 10  Refit + test report
    fitted = fit_final(workflows[best_id], Xtr, ytr)
    figures = eda_figures + [report.plot_workflow_ranking(ranked, fig_dir)]
    results = report.evaluate_test_split(fitted, Xte, yte)
    report.print_test_metrics(best_id, results)
    report.save_test_metrics(best_id, results, yte, fitted.predict(Xte), res_dir)
    figures.append(report.plot_roc(best_id, results, fig_dir))
    figures.append(report.plot_confusion(best_id, results, fig_dir))

    runner_up = ranked.iloc[1]["Workflow"]
    fitted_2 = fit_final(workflows[runner_up], Xtr, ytr)
    mcnemar = report.mcnemar_top2(best_id, fitted, runner_up, fitted_2,
                                  Xte, yte, res_dir)

    report_path = report.write_report(ranked, best_id, results, mcnemar,
                                      figures, res_dir)

    # ── Final summary ──────────────────────────────────────────────────
    banner("PIPELINE COMPLETE")
    print(f"  Best workflow : {best_id}")
    print(f"  Test ROC-AUC  : {results['roc_auc']:.4f}")
    print(f"  Figures       : {fig_dir}/")
    print(f"  Results       : {res_dir}/")
    print(f"  Report        : {report_path}")
    print("=" * 72 + "\n")

    return {
        "best": best_id,
        "ranked": ranked,
        "metrics": metrics,
        "test": results,
        "mcnemar": mcnemar,
        "report": report_path,
    }


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Titanic survival: recipe x model workflow grid")
    parser.add_argument("--data", default=DATA_PATH,
                        help=f"Path to the Kaggle train.csv (default: {DATA_PATH})")
    parser.add_argument("--figures", default=FIG_DIR, help="Figure output directory")
    parser.add_argument("--results", default=RES_DIR, help="Result output directory")
    parser.add_argument("--seed", type=int, default=SEED)
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    print("╔════════════════════════════════════════════════════════════════════╗")
    print("║  Titanic Survival — Recipe x Model Workflow Grid                   ║")
    print("║  6 recipes · 3 models · 9 workflows · 10x10 stratified CV          ║")
    print("╚════════════════════════════════════════════════════════════════════╝\n")
    run_pipeline(data_path=args.data, fig_dir=args.figures,
                 res_dir=args.results, seed=args.seed)


if __name__ == "__main__":
    main()
