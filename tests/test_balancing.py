"""
Unit tests for balancing module.

Tests SMOTE-based resampling of the training data and the balanced table.
"""

import pytest
import numpy as np
import pandas as pd
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from loan_default.balancing import ClassBalancer, class_proportions


class TestClassProportions:
    """Test suite for class_proportions."""

    def test_sums_to_one(self):
        """Test proportions sum to 1."""
        y = np.array([0, 0, 0, 1, 1, 0, 0, 1])
        proportions = class_proportions(y)
        assert np.isclose(proportions.sum(), 1.0)
        assert np.isclose(proportions[1], 3 / 8)

    def test_empty_labels(self):
        """Test error on an empty label vector."""
        with pytest.raises(ValueError):
            class_proportions([])


class TestClassBalancer:
    """Test suite for ClassBalancer class."""

    @pytest.fixture
    def imbalanced_data(self):
        """Create an imbalanced training set (~10% minority)."""
        np.random.seed(42)
        n = 400
        y = pd.Series(np.random.choice([0, 1], n, p=[0.9, 0.1]), name="TARGET")
        X = pd.DataFrame(
            np.random.randn(n, 5) + y.values[:, None],
            columns=[f"f{i}" for i in range(5)],
        )
        return X, y

    def test_initialization(self):
        """Test ClassBalancer initialization."""
        balancer = ClassBalancer()
        assert balancer.method == "smote"
        assert balancer.sampling_strategy == 1.0

    def test_invalid_method(self):
        """Test error on an unknown method."""
        with pytest.raises(ValueError):
            ClassBalancer(method="oversample_everything")

    def test_invalid_sampling_strategy(self):
        """Test error on an out-of-range ratio."""
        with pytest.raises(ValueError):
            ClassBalancer(sampling_strategy=1.5)
        with pytest.raises(ValueError):
            ClassBalancer(sampling_strategy=0)

    def test_smote_balances_classes(self, imbalanced_data):
        """Test SMOTE produces equal class counts."""
        X, y = imbalanced_data
        balancer = ClassBalancer(method="smote")

        X_res, y_res = balancer.balance(X, y)

        counts = pd.Series(np.asarray(y_res)).value_counts()
        assert counts[0] == counts[1]
        assert counts[0] == (y == 0).sum()
        assert len(X_res) == len(y_res)

    def test_minority_count_never_decreases(self, imbalanced_data):
        """Test oversampling keeps every original minority sample count."""
        X, y = imbalanced_data
        balancer = ClassBalancer(method="smote", sampling_strategy=0.5)

        _, y_res = balancer.balance(X, y)

        assert (np.asarray(y_res) == 1).sum() >= (y == 1).sum()
        proportions = class_proportions(y_res)
        assert np.isclose(proportions[1] / proportions[0], 0.5, atol=0.01)

    def test_preserves_frame_types(self, imbalanced_data):
        """Test DataFrame/Series in, DataFrame/Series out."""
        X, y = imbalanced_data
        X_res, y_res = ClassBalancer().balance(X, y)

        assert isinstance(X_res, pd.DataFrame)
        assert list(X_res.columns) == list(X.columns)
        assert isinstance(y_res, pd.Series)
        assert y_res.name == "TARGET"

    def test_records_distributions(self, imbalanced_data):
        """Test original and resampled counts are kept."""
        X, y = imbalanced_data
        balancer = ClassBalancer()
        balancer.balance(X, y)

        assert balancer.original_distribution[1] == (y == 1).sum()
        assert balancer.resampled_distribution[0] == balancer.resampled_distribution[1]

    def test_smote_tomek(self, imbalanced_data):
        """Test SMOTE followed by Tomek link removal."""
        X, y = imbalanced_data
        X_res, y_res = ClassBalancer(method="smote_tomek").balance(X, y)

        assert (np.asarray(y_res) == 1).sum() > (y == 1).sum()
        assert len(X_res) == len(y_res)

    def test_undersample(self, imbalanced_data):
        """Test random undersampling shrinks the majority class."""
        X, y = imbalanced_data
        X_res, y_res = ClassBalancer(method="undersample").balance(X, y)

        counts = pd.Series(np.asarray(y_res)).value_counts()
        assert counts[0] == counts[1] == (y == 1).sum()

    def test_none_is_passthrough(self, imbalanced_data):
        """Test method 'none' returns the data unchanged."""
        X, y = imbalanced_data
        X_res, y_res = ClassBalancer(method="none").balance(X, y)

        assert X_res is X
        assert y_res is y

    def test_already_balanced(self):
        """Test data already at the target ratio is returned as is."""
        X = pd.DataFrame({"f0": np.arange(10, dtype=float)})
        y = pd.Series([0, 1] * 5)
        X_res, y_res = ClassBalancer().balance(X, y)
        assert len(X_res) == 10

    def test_small_minority_shrinks_neighbours(self):
        """Test k_neighbors adapts to a minority class smaller than k."""
        np.random.seed(0)
        X = pd.DataFrame(np.random.randn(50, 3), columns=["a", "b", "c"])
        y = pd.Series([1] * 3 + [0] * 47)

        X_res, y_res = ClassBalancer(k_neighbors=5).balance(X, y)

        assert (np.asarray(y_res) == 1).sum() == 47

    def test_single_class_raises(self):
        """Test error when only one class is present."""
        X = pd.DataFrame({"f0": np.arange(10, dtype=float)})
        y = pd.Series([0] * 10)
        with pytest.raises(ValueError):
            ClassBalancer().balance(X, y)

    def test_single_minority_sample_raises(self):
        """Test error when the minority class has one sample."""
        X = pd.DataFrame({"f0": np.arange(10, dtype=float)})
        y = pd.Series([1] + [0] * 9)
        with pytest.raises(ValueError):
            ClassBalancer().balance(X, y)

    def test_fold_sampler(self, imbalanced_data):
        """Test the per-fold sampler is sized for a training fold."""
        _, y = imbalanced_data
        minority = int((y == 1).sum())

        sampler = ClassBalancer(k_neighbors=5).fold_sampler(y, n_splits=5)

        assert sampler.k_neighbors == min(5, minority * 4 // 5 - 1)

    def test_fold_sampler_small_minority(self):
        """Test k_neighbors shrinks to what a fold can hold."""
        y = pd.Series([1] * 6 + [0] * 60)
        sampler = ClassBalancer(k_neighbors=5).fold_sampler(y, n_splits=3)
        assert sampler.k_neighbors == 3

    def test_fold_sampler_not_needed(self, imbalanced_data):
        """Test no sampler for method 'none' or already balanced labels."""
        _, y = imbalanced_data
        assert ClassBalancer(method="none").fold_sampler(y, n_splits=5) is None
        assert ClassBalancer().fold_sampler(pd.Series([0, 1] * 20), n_splits=5) is None

    def test_fold_sampler_too_few_minority(self):
        """Test error when folds cannot hold two minority samples."""
        y = pd.Series([1] * 2 + [0] * 40)
        with pytest.raises(ValueError):
            ClassBalancer().fold_sampler(y, n_splits=5)

    def test_balance_dataframe(self, imbalanced_data):
        """Test balancing a full table drops the identifier."""
        X, y = imbalanced_data
        df = X.copy()
        df["SK_ID_CURR"] = np.arange(len(df))
        df["TARGET"] = y.values

        balanced = ClassBalancer().balance_dataframe(df)

        assert "SK_ID_CURR" not in balanced.columns
        assert balanced.columns[-1] == "TARGET"
        assert balanced["TARGET"].value_counts().nunique() == 1

    def test_balance_dataframe_missing_target(self, imbalanced_data):
        """Test error when the label column is absent."""
        X, _ = imbalanced_data
        with pytest.raises(ValueError):
            ClassBalancer().balance_dataframe(X)

    def test_save_balanced_data(self, imbalanced_data, tmp_path):
        """Test the balanced table is written with the label column."""
        X, y = imbalanced_data
        balancer = ClassBalancer()
        X_res, y_res = balancer.balance(X, y)

        path = balancer.save_balanced_data(X_res, y_res, tmp_path / "balanced.csv")

        saved = pd.read_csv(path)
        assert len(saved) == len(X_res)
        assert list(saved.columns) == list(X.columns) + ["TARGET"]
        assert saved["TARGET"].sum() == (np.asarray(y_res) == 1).sum()
