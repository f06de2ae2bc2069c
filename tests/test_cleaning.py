import os
import numpy as np
import pandas as pd
import pytest

import titanic_pipeline as tp


def test_load_data_reads_csv(data_csv, raw_df):
    df = tp.load_data(data_csv)
    assert df.shape == raw_df.shape


def test_load_data_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        tp.load_data(str(tmp_path / "nope.csv"))


def test_load_data_missing_column(tmp_path, raw_df):
    path = tmp_path / "broken.csv"
    raw_df.drop(columns=["Fare"]).to_csv(path, index=False)
    with pytest.raises(ValueError, match="Fare"):
        tp.load_data(str(path))


def test_clean_drops_identifier_columns(clean):
    X, y = clean
    for col in tp.DROP_COLS:
        assert col not in X.columns
    assert tp.TARGET not in X.columns
    assert set(X.columns) == set(tp.NUMERIC_FEATURES + tp.CATEGORICAL_FEATURES)


def test_clean_casts_categories(clean):
    X, y = clean
    for col, levels in tp.CATEGORY_LEVELS.items():
        assert isinstance(X[col].dtype, pd.CategoricalDtype)
        assert list(X[col].cat.categories) == levels
    assert y.dtype == int
    assert set(y.unique()) <= {0, 1}


def test_clean_keeps_missing_values(raw_df, clean):
    X, _ = clean
    assert X["Age"].isna().sum() == raw_df["Age"].isna().sum()
    assert X["Embarked"].isna().sum() == raw_df["Embarked"].isna().sum()


def test_clean_rejects_unexpected_level(raw_df):
    raw_df.loc[0, "Embarked"] = "X"
    with pytest.raises(ValueError, match="Embarked"):
        tp.clean_data(raw_df)


def test_clean_rejects_missing_label(raw_df):
    raw_df["Survived"] = raw_df["Survived"].astype(float)
    raw_df.loc[5, "Survived"] = np.nan
    with pytest.raises(ValueError, match="missing labels"):
        tp.clean_data(raw_df)


def test_plot_eda_writes_one_figure_per_feature(tmp_path, clean):
    X, y = clean
    saved = tp.plot_eda(X, y, str(tmp_path))
    names = {os.path.basename(p) for p in saved}
    for col in tp.NUMERIC_FEATURES:
        assert f"eda_hist_{col.lower()}.png" in names
    for col in tp.CATEGORICAL_FEATURES:
        assert f"eda_bar_{col.lower()}.png" in names
    assert all((tmp_path / n).exists() for n in names)
