"""
=============================================================================
Preprocessing recipes for the Titanic workflow grid.

A recipe is a fittable sklearn Pipeline applied in a fixed order:
  1. drop near-zero-variance predictors
  2. drop zero-variance predictors
  3. impute numeric predictors  (mean | median | distance-weighted KNN)
  4. expand categoricals to indicators  (dummy | full one-hot), with
     missing Embarked values as an explicit "unknown" level
  5. drop columns that are exact linear combinations of earlier ones

Everything is learned in fit(); transform() only replays it, so folds and
the test split only ever see parameters from their own training rows.
=============================================================================
"""

# ── Imports ─────────────────────────────────────────────────────────────────
import numpy as np

from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.compose import ColumnTransformer, make_column_selector
from sklearn.impute import SimpleImputer, KNNImputer
from sklearn.preprocessing import OneHotEncoder
from sklearn.pipeline import Pipeline
from sklearn.utils.validation import check_is_fitted

# ── Constants ───────────────────────────────────────────────────────────────
IMPUTERS      = ("mean", "median", "knn")
ENCODINGS     = ("dummy", "onehot")
UNKNOWN_LEVEL = "unknown"
KNN_NEIGHBORS = 5

# Fixed factor levels; anything else is a data error
CATEGORY_LEVELS = {
    "Pclass":   [1, 2, 3],
    "Sex":      ["female", "male"],
    "Embarked": ["C", "Q", "S"],
}
# Factors whose missing values become an explicit level
UNKNOWN_COLUMNS = ("Embarked",)


# ═══════════════════════════════════════════════════════════════════════════
# VARIANCE FILTERS
# ═══════════════════════════════════════════════════════════════════════════
class _ColumnDropper(BaseEstimator, TransformerMixin):
    """Shared transform for filters that learn a list of columns to drop."""

    def transform(self, X):
        check_is_fitted(self, "columns_to_drop_")
        return X.drop(columns=self.columns_to_drop_)

    def get_feature_names_out(self, input_features=None):
        check_is_fitted(self, "columns_to_drop_")
        return np.array([c for c in self.feature_names_in_
                         if c not in self.columns_to_drop_], dtype=object)


class NearZeroVarianceFilter(_ColumnDropper):
    """Drop columns dominated by a single value.

    A column is near-zero-variance when the ratio of its most frequent
    value count to its second most frequent exceeds ``freq_cut`` and the
    share of distinct values (in percent) is at most ``unique_cut``.
    Missing values are ignored when counting.

    Parameters
    ----------
    freq_cut : float, default=95/5
    unique_cut : float, default=10
    """

    def __init__(self, freq_cut=95 / 5, unique_cut=10):
        self.freq_cut = freq_cut
        self.unique_cut = unique_cut

    def fit(self, X, y=None):
        self.feature_names_in_ = np.asarray(X.columns, dtype=object)
        drop = []
        for col in X.columns:
            counts = X[col].value_counts(dropna=True)
            counts = counts[counts > 0]     # unused categorical levels
            if len(counts) < 2:
                continue
            freq_ratio = counts.iloc[0] / counts.iloc[1]
            pct_unique = 100.0 * len(counts) / len(X)
            if freq_ratio > self.freq_cut and pct_unique <= self.unique_cut:
                drop.append(col)
        self.columns_to_drop_ = drop
        return self


class ZeroVarianceFilter(_ColumnDropper):
    """Drop columns holding a single distinct (non-missing) value."""

    def fit(self, X, y=None):
        self.feature_names_in_ = np.asarray(X.columns, dtype=object)
        self.columns_to_drop_ = [c for c in X.columns
                                 if X[c].nunique(dropna=True) <= 1]
        return self


# ═══════════════════════════════════════════════════════════════════════════
# IMPUTATION
# ═══════════════════════════════════════════════════════════════════════════
def build_imputer(strategy):
    """Numeric-column imputer; categorical columns pass through untouched."""
    if strategy == "knn":
        imputer = KNNImputer(n_neighbors=KNN_NEIGHBORS, weights="distance")
    elif strategy in ("mean", "median"):
        imputer = SimpleImputer(strategy=strategy)
    else:
        raise ValueError(f"Unknown imputation strategy: {strategy!r}")
    return ColumnTransformer(
        [("num", imputer, make_column_selector(dtype_include="number"))],
        remainder="passthrough",
        verbose_feature_names_out=False,
    ).set_output(transform="pandas")


# ═══════════════════════════════════════════════════════════════════════════
# ENCODING
# ═══════════════════════════════════════════════════════════════════════════
def build_encoder(encoding="dummy", levels=CATEGORY_LEVELS,
                  fill_unknown=UNKNOWN_COLUMNS):
    """Indicator columns for the fixed-level categoricals.

    ``dummy`` drops the first level of each factor (reference coding for
    the linear model family); ``onehot`` keeps every level. Columns in
    ``fill_unknown`` get their gaps filled with an explicit "unknown"
    level, which is always one of the output indicators. Categories are
    fixed up front, so absent levels still get a column and a level
    outside the fixed set raises ``ValueError``. Numeric columns are
    passed through ahead of the indicators.
    """
    if encoding not in ENCODINGS:
        raise ValueError(f"Unknown encoding style: {encoding!r}")
    drop = "first" if encoding == "dummy" else None

    transformers = [
        ("num", "passthrough", make_column_selector(dtype_include="number")),
    ]
    for col, cats in levels.items():
        cats = list(cats)
        if col in fill_unknown:
            cats = cats + [UNKNOWN_LEVEL]
        ohe = OneHotEncoder(categories=[cats], drop=drop,
                            handle_unknown="error", sparse_output=False)
        if col in fill_unknown:
            ohe = Pipeline([
                ("unknown", SimpleImputer(strategy="constant",
                                          fill_value=UNKNOWN_LEVEL)),
                ("ohe",     ohe),
            ])
        transformers.append((col, ohe, make_column_selector(pattern=f"^{col}$")))

    return ColumnTransformer(
        transformers,
        remainder="passthrough",
        verbose_feature_names_out=False,
    ).set_output(transform="pandas")


# ═══════════════════════════════════════════════════════════════════════════
# LINEAR COMBINATIONS
# ═══════════════════════════════════════════════════════════════════════════
class LinearCombinationFilter(BaseEstimator, TransformerMixin):
    """Drop columns that are constant or linear combinations of kept ones.

    Columns are scanned left to right; a column is kept only when it
    raises the rank of the kept set. Earlier (numeric) columns therefore
    win over later indicator columns.
    """

    def __init__(self, tol=None):
        self.tol = tol

    def fit(self, X, y=None):
        self.feature_names_in_ = np.asarray(X.columns, dtype=object)
        M = X.to_numpy(dtype=float)
        keep = []
        for j in range(M.shape[1]):
            if np.ptp(M[:, j]) == 0:
                continue
            cand = keep + [j]
            if np.linalg.matrix_rank(M[:, cand], tol=self.tol) == len(cand):
                keep.append(j)
        self.columns_to_keep_ = [X.columns[j] for j in keep]
        self.columns_to_drop_ = [c for c in X.columns
                                 if c not in self.columns_to_keep_]
        return self

    def transform(self, X):
        check_is_fitted(self, "columns_to_keep_")
        return X[self.columns_to_keep_]

    def get_feature_names_out(self, input_features=None):
        check_is_fitted(self, "columns_to_keep_")
        return np.asarray(self.columns_to_keep_, dtype=object)


# ═══════════════════════════════════════════════════════════════════════════
# RECIPES
# ═══════════════════════════════════════════════════════════════════════════
def build_recipe(imputer="mean", encoding="dummy"):
    """One preprocessing recipe as an (unfitted) sklearn Pipeline."""
    return Pipeline([
        ("nzv",     NearZeroVarianceFilter()),
        ("zv",      ZeroVarianceFilter()),
        ("impute",  build_imputer(imputer)),
        ("encode",  build_encoder(encoding)),
        ("lincomb", LinearCombinationFilter()),
    ])


def recipe_name(imputer, encoding):
    return f"{imputer}_{encoding}"


def recipe_encoding(name):
    """Encoding style of a recipe name, e.g. 'knn_dummy' -> 'dummy'."""
    return name.rsplit("_", 1)[1]


def build_recipes():
    """The six named recipes: 3 imputation strategies x 2 encoding styles."""
    return {recipe_name(imp, enc): build_recipe(imp, enc)
            for enc in ENCODINGS for imp in IMPUTERS}
