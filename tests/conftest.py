import numpy as np
import pandas as pd
import pytest

import titanic_pipeline as tp


def make_passengers(n=400, seed=0):
    """Synthetic Titanic-shaped frame with missing Age / Embarked values."""
    rng = np.random.default_rng(seed)
    pclass = rng.choice([1, 2, 3], n, p=[0.25, 0.2, 0.55])
    sex = rng.choice(["male", "female"], n, p=[0.65, 0.35])
    age = rng.normal(30, 14, n).clip(0.5, 80).round(1)
    sibsp = rng.choice([0, 1, 2, 3], n, p=[0.65, 0.25, 0.07, 0.03])
    parch = rng.choice([0, 1, 2], n, p=[0.72, 0.16, 0.12])
    base_fare = np.select([pclass == 1, pclass == 2], [60.0, 20.0], 7.0)
    fare = (base_fare + rng.exponential(15, n)).round(2)
    embarked = rng.choice(["S", "C", "Q"], n, p=[0.7, 0.2, 0.1]).astype(object)

    logit = (-1.0 + 2.4 * (sex == "female") + 0.9 * (pclass == 1)
             - 0.8 * (pclass == 3) - 0.02 * (age - 30))
    survived = (rng.random(n) < 1 / (1 + np.exp(-logit))).astype(int)

    df = pd.DataFrame({
        "PassengerId": np.arange(1, n + 1),
        "Survived": survived,
        "Pclass": pclass,
        "Name": [f"Passenger {i}, Mr. X" for i in range(n)],
        "Sex": sex,
        "Age": age,
        "SibSp": sibsp,
        "Parch": parch,
        "Ticket": [f"T{i // 2}" for i in range(n)],
        "Fare": fare,
        "Cabin": [f"C{i}" if i % 5 == 0 else np.nan for i in range(n)],
        "Embarked": embarked,
    })
    df.loc[rng.choice(n, int(0.2 * n), replace=False), "Age"] = np.nan
    df.loc[rng.choice(n, 3, replace=False), "Embarked"] = np.nan
    return df


@pytest.fixture
def raw_df():
    return make_passengers()


@pytest.fixture
def clean(raw_df):
    return tp.clean_data(raw_df)


@pytest.fixture
def split(clean):
    X, y = clean
    return tp.split_data(X, y)


@pytest.fixture
def data_csv(tmp_path, raw_df):
    path = tmp_path / "train.csv"
    raw_df.to_csv(path, index=False)
    return str(path)
