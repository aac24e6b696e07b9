"""
Unit tests for data_loader module.

Tests data loading, cleaning, encoding, and splitting functionality.
"""

import pytest
import numpy as np
import pandas as pd
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from loan_default.data_loader import DataLoader
from config import DAYS_EMPLOYED_ANOMALY


class TestDataLoader:
    """Test suite for DataLoader class."""

    @pytest.fixture
    def data_loader(self, tmp_path):
        """Create DataLoader pointing at a file that does not exist."""
        return DataLoader(data_path=tmp_path / "missing.csv")

    @pytest.fixture
    def sample_data(self):
        """Create sample loan application data."""
        np.random.seed(42)
        n = 100
        return pd.DataFrame(
            {
                "SK_ID_CURR": np.arange(1, n + 1),
                "TARGET": np.random.choice([0, 1], n, p=[0.85, 0.15]),
                "AMT_INCOME_TOTAL": np.random.randint(50000, 300000, n).astype(float),
                "AMT_CREDIT": np.random.randint(100000, 900000, n).astype(float),
                "AMT_ANNUITY": np.random.randint(5000, 40000, n).astype(float),
                "DAYS_BIRTH": -np.random.randint(8000, 25000, n),
                "DAYS_EMPLOYED": -np.random.randint(100, 8000, n),
                "OCCUPATION_TYPE": np.random.choice(["Laborers", "Managers"], n),
                "CODE_GENDER": np.random.choice(["F", "M"], n),
            }
        )

    def test_initialization(self, data_loader):
        """Test DataLoader initialization."""
        assert data_loader is not None
        assert data_loader.scaler is not None
        assert isinstance(data_loader.imputation_rules, dict)
        assert data_loader.is_synthetic is False

    def test_invalid_imputation_strategy(self):
        """Test error on an unknown imputation strategy."""
        with pytest.raises(ValueError):
            DataLoader(imputation_rules={"AMT_ANNUITY": {"strategy": "guess"}})

    def test_constant_rule_requires_value(self):
        """Test error on a constant rule without a fill value."""
        with pytest.raises(ValueError):
            DataLoader(imputation_rules={"OCCUPATION_TYPE": {"strategy": "constant"}})

    def test_load_data_synthetic_fallback(self, data_loader):
        """Test data loading falls back to synthetic data."""
        df = data_loader.load_data()
        assert isinstance(df, pd.DataFrame)
        assert len(df) > 0
        assert data_loader.is_synthetic
        assert "TARGET" in df.columns
        assert "SK_ID_CURR" in df.columns
        assert df["SK_ID_CURR"].is_unique

    def test_load_data_from_csv(self, tmp_path, sample_data):
        """Test loading an existing CSV file."""
        path = tmp_path / "applications.csv"
        sample_data.to_csv(path, index=False)

        loader = DataLoader(data_path=path)
        df = loader.load_data()

        assert not loader.is_synthetic
        assert df.shape == sample_data.shape

    def test_clean_data(self, data_loader, sample_data):
        """Test data cleaning removes all missing values."""
        sample_data.loc[0:5, "AMT_ANNUITY"] = np.nan
        sample_data.loc[3:9, "OCCUPATION_TYPE"] = np.nan
        df_clean = data_loader.clean_data(sample_data)

        assert df_clean.isnull().sum().sum() == 0
        assert len(df_clean) == len(sample_data)
        assert df_clean["SK_ID_CURR"].is_unique

    def test_clean_data_applies_column_rules(self, data_loader, sample_data):
        """Test explicit per-column imputation rules."""
        sample_data.loc[0:5, "AMT_ANNUITY"] = np.nan
        sample_data.loc[0:5, "OCCUPATION_TYPE"] = np.nan
        expected_median = sample_data["AMT_ANNUITY"].median()

        df_clean = data_loader.clean_data(sample_data)

        assert (df_clean.loc[0:5, "AMT_ANNUITY"] == expected_median).all()
        assert (df_clean.loc[0:5, "OCCUPATION_TYPE"] == "Unknown").all()

    def test_clean_data_default_rules(self, data_loader, sample_data):
        """Test columns without a rule get median / 'Unknown'."""
        sample_data["EXTRA_NUM"] = np.where(np.arange(100) < 10, np.nan, 5.0)
        sample_data["EXTRA_CAT"] = np.where(np.arange(100) < 10, None, "x")

        df_clean = data_loader.clean_data(sample_data)

        assert (df_clean["EXTRA_NUM"] == 5.0).all()
        assert (df_clean.loc[0:9, "EXTRA_CAT"] == "Unknown").all()

    def test_clean_data_drops_missing_labels(self, data_loader, sample_data):
        """Test the label is never imputed."""
        sample_data["TARGET"] = sample_data["TARGET"].astype(float)
        sample_data.loc[0:4, "TARGET"] = np.nan

        df_clean = data_loader.clean_data(sample_data)

        assert len(df_clean) == len(sample_data) - 5
        assert set(df_clean["TARGET"].unique()).issubset({0, 1})

    def test_clean_data_employment_sentinel(self, data_loader, sample_data):
        """Test the DAYS_EMPLOYED sentinel is flagged and imputed."""
        sample_data.loc[0:9, "DAYS_EMPLOYED"] = DAYS_EMPLOYED_ANOMALY

        df_clean = data_loader.clean_data(sample_data)

        assert df_clean["DAYS_EMPLOYED_ANOM"].sum() == 10
        assert (df_clean["DAYS_EMPLOYED"] != DAYS_EMPLOYED_ANOMALY).all()
        assert (df_clean["DAYS_EMPLOYED"] <= 0).all()

    def test_clean_data_drops_sparse_columns(self, data_loader, sample_data):
        """Test columns mostly missing and without a rule are dropped."""
        sample_data["SPARSE"] = np.where(np.arange(100) < 80, np.nan, 1.0)

        df_clean = data_loader.clean_data(sample_data)

        assert "SPARSE" not in df_clean.columns
        assert "SPARSE" in data_loader.dropped_columns

    def test_clean_data_removes_duplicate_ids(self, data_loader, sample_data):
        """Test duplicate identifiers keep their first row."""
        duplicated = sample_data.copy()
        duplicated.loc[1, "SK_ID_CURR"] = duplicated.loc[0, "SK_ID_CURR"]

        df_clean = data_loader.clean_data(duplicated)

        assert df_clean["SK_ID_CURR"].is_unique
        assert len(df_clean) == len(sample_data) - 1

    def test_clean_data_caps_outliers(self, data_loader, sample_data):
        """Test extreme incomes are capped."""
        sample_data.loc[0, "AMT_INCOME_TOTAL"] = 1e9
        df_clean = data_loader.clean_data(sample_data)
        assert df_clean["AMT_INCOME_TOTAL"].max() < 1e9

    def test_save_clean_data(self, data_loader, sample_data, tmp_path):
        """Test the cleaned table is written to CSV."""
        df_clean = data_loader.clean_data(sample_data)
        path = data_loader.save_clean_data(df_clean, tmp_path / "clean.csv")

        assert path.exists()
        reloaded = pd.read_csv(path)
        assert reloaded.shape == df_clean.shape

    def test_encode_categorical(self, data_loader):
        """Test one-hot encoding with the first level dropped."""
        df = pd.DataFrame({"cat_col": ["A", "B", "A", "C"], "num_col": [1, 2, 3, 4]})
        df_encoded = data_loader.encode_categorical(df, ["cat_col"])

        assert "cat_col" not in df_encoded.columns
        assert "cat_col_A" not in df_encoded.columns
        assert {"cat_col_B", "cat_col_C"} <= set(df_encoded.columns)
        assert df_encoded["cat_col_B"].dtype in [np.int32, np.int64]
        assert data_loader.encoded_columns == ["cat_col_B", "cat_col_C"]

    def test_encode_categorical_detects_columns(self, data_loader, sample_data):
        """Test all non-numeric columns are encoded, never ID or target."""
        df_encoded = data_loader.encode_categorical(sample_data)

        assert "OCCUPATION_TYPE" not in df_encoded.columns
        assert "CODE_GENDER" not in df_encoded.columns
        assert "SK_ID_CURR" in df_encoded.columns
        assert "TARGET" in df_encoded.columns
        assert all(
            pd.api.types.is_numeric_dtype(df_encoded[col]) for col in df_encoded.columns
        )

    def test_prepare_features_target(self, data_loader, sample_data):
        """Test feature and target separation."""
        X, y = data_loader.prepare_features_target(sample_data)

        assert X.shape[0] == sample_data.shape[0]
        # Target moves out, identifier becomes the index
        assert X.shape[1] == sample_data.shape[1] - 2
        assert len(y) == len(sample_data)
        assert "TARGET" not in X.columns
        assert X.index.name == "SK_ID_CURR"

    def test_split_data(self, data_loader, sample_data):
        """Test stratified two-way split."""
        X, y = data_loader.prepare_features_target(sample_data)
        X_train, X_test, y_train, y_test = data_loader.split_data(X, y)

        assert len(X_train) + len(X_test) == len(X)
        assert len(y_train) + len(y_test) == len(y)
        assert len(X_test) == 20
        assert set(X_train.index).isdisjoint(set(X_test.index))
        assert abs(y_train.mean() - y_test.mean()) < 0.05

    def test_split_data_invalid_size(self, data_loader, sample_data):
        """Test error on an invalid test size."""
        X, y = data_loader.prepare_features_target(sample_data)
        with pytest.raises(ValueError):
            data_loader.split_data(X, y, test_size=1.5)

    def test_scale_features(self, data_loader, sample_data):
        """Test feature scaling keeps frame layout."""
        df = data_loader.encode_categorical(sample_data)
        X, y = data_loader.prepare_features_target(df)
        X_train, X_test, y_train, y_test = data_loader.split_data(X, y)
        X_train_scaled, X_test_scaled = data_loader.scale_features(X_train, X_test)

        assert X_train_scaled.shape == X_train.shape
        assert X_test_scaled.shape == X_test.shape
        assert isinstance(X_train_scaled, pd.DataFrame)
        assert list(X_train_scaled.columns) == list(X_train.columns)
        assert X_test_scaled.index.equals(X_test.index)
        assert np.allclose(X_train_scaled["AMT_CREDIT"].mean(), 0, atol=1e-8)

    def test_full_pipeline(self, data_loader):
        """Test complete preprocessing pipeline on synthetic data."""
        X_train, X_test, y_train, y_test = data_loader.get_full_pipeline()

        assert X_train.shape[0] > 0
        assert X_test.shape[0] > 0
        assert len(y_train) == X_train.shape[0]
        assert len(y_test) == X_test.shape[0]
        assert not X_train.isnull().any().any()


class TestDataLoaderEdgeCases:
    """Test edge cases and error handling."""

    def test_missing_target_column(self):
        """Test error when target column is missing."""
        loader = DataLoader()
        df = pd.DataFrame({"feature1": [1, 2, 3]})
        with pytest.raises(ValueError):
            loader.prepare_features_target(df, target_col="NonExistentTarget")

    def test_empty_dataframe(self):
        """Test handling of empty DataFrame."""
        loader = DataLoader()
        df = pd.DataFrame()
        df_clean = loader.clean_data(df)
        assert len(df_clean) == 0

    def test_entirely_missing_ruled_column(self):
        """Test a ruled column with no observed values still gets filled."""
        loader = DataLoader()
        df = pd.DataFrame(
            {
                "SK_ID_CURR": [1, 2, 3, 4],
                "TARGET": [0, 1, 0, 0],
                "AMT_ANNUITY": [np.nan] * 4,
            }
        )
        df_clean = loader.clean_data(df)
        assert (df_clean["AMT_ANNUITY"] == 0).all()
