"""
Unit tests for models module.

Tests model training, prediction, and persistence functionality.
"""

import pytest
import numpy as np
import pandas as pd
from pathlib import Path
import sys
import tempfile

sys.path.insert(0, str(Path(__file__).parent.parent))

from loan_default.balancing import ClassBalancer
from loan_default.models import (
    ElasticNetLogisticModel,
    SVMModel,
    RandomForestModel,
    MajorityBaselineModel,
    ModelTrainer,
    MODEL_REGISTRY,
    create_model,
)


class TestModels:
    """Test suite for individual model classes."""

    @pytest.fixture
    def sample_data(self):
        """Create sample training data."""
        np.random.seed(42)
        X = np.random.randn(200, 10)
        y = np.random.choice([0, 1], 200, p=[0.7, 0.3])
        X[y == 1, :3] += 1.0
        return X, y

    def test_elastic_net_model(self, sample_data):
        """Test elastic-net Logistic Regression model."""
        X, y = sample_data
        model = ElasticNetLogisticModel()

        assert model.model.penalty == "elasticnet"
        assert model.model.solver == "saga"

        model.fit(X, y)
        assert model.is_fitted

        y_pred = model.predict(X)
        assert len(y_pred) == len(y)
        assert set(y_pred).issubset({0, 1})

        y_proba = model.predict_proba(X)
        assert y_proba.shape == (len(X), 2)
        assert np.allclose(y_proba.sum(axis=1), 1.0)

        assert len(model.get_coefficients()) == X.shape[1]

    def test_random_forest_model(self, sample_data):
        """Test Random Forest model."""
        X, y = sample_data
        model = RandomForestModel({"n_estimators": 20, "random_state": 42})

        model.fit(X, y)
        assert model.is_fitted

        importance = model.get_feature_importance()
        assert len(importance) == X.shape[1]
        assert np.all(importance >= 0)
        assert np.isclose(importance.sum(), 1.0)

    def test_svm_model(self, sample_data):
        """Test SVM model."""
        X, y = sample_data
        X_small, y_small = X[:80], y[:80]

        model = SVMModel()
        model.fit(X_small, y_small)
        assert model.is_fitted

        y_pred = model.predict(X_small)
        assert len(y_pred) == len(y_small)

    def test_svm_subsamples_large_training_sets(self, sample_data):
        """Test SVM fits on a subsample above its size limit."""
        X, y = sample_data
        model = SVMModel(max_train_samples=100)
        model.fit(X, y)

        assert model.model.shape_fit_[0] <= 110
        assert len(model.predict(X)) == len(X)

    def test_majority_baseline(self, sample_data):
        """Test the baseline always predicts the majority class."""
        X, y = sample_data
        model = MajorityBaselineModel()
        model.fit(X, y)

        y_pred = model.predict(X)
        assert set(y_pred) == {0}
        proba = model.predict_default_probability(X)
        assert np.all(proba == 0.0)
        assert model.uses_resampled_data is False

    def test_default_probability_range(self, sample_data):
        """Test default probabilities lie in [0, 1]."""
        X, y = sample_data
        model = ElasticNetLogisticModel().fit(X, y)
        proba = model.predict_default_probability(X)

        assert proba.shape == (len(X),)
        assert np.all((proba >= 0) & (proba <= 1))

    def test_get_hyperparameters(self):
        """Test configured hyperparameters are reported."""
        model = ElasticNetLogisticModel(
            {"C": 0.5, "l1_ratio": 0.2, "penalty": "elasticnet", "solver": "saga"}
        )
        params = model.get_hyperparameters()

        assert params["C"] == 0.5
        assert params["l1_ratio"] == 0.2

    def test_set_params(self):
        """Test updating hyperparameters reaches the estimator."""
        model = RandomForestModel()
        model.set_params(class_weight="balanced")

        assert model.params["class_weight"] == "balanced"
        assert model.model.class_weight == "balanced"

    def test_cross_validate(self, sample_data):
        """Test cross-validation reports all metrics."""
        X, y = sample_data
        model = ElasticNetLogisticModel()
        scores = model.cross_validate(X, y, cv=3)

        for metric in ["roc_auc", "accuracy", "precision", "recall"]:
            assert f"{metric}_mean" in scores
            assert f"{metric}_std" in scores
            assert 0 <= scores[f"{metric}_mean"] <= 1

    def test_model_save_load(self, sample_data):
        """Test model saving and loading."""
        X, y = sample_data
        model = ElasticNetLogisticModel()
        model.fit(X, y)

        with tempfile.TemporaryDirectory() as tmpdir:
            filepath = Path(tmpdir) / "test_model.pkl"
            model.save(filepath)
            assert filepath.exists()

            new_model = ElasticNetLogisticModel()
            new_model.load(filepath)
            assert new_model.is_fitted

            y_pred_original = model.predict(X)
            y_pred_loaded = new_model.predict(X)
            assert np.array_equal(y_pred_original, y_pred_loaded)

    def test_model_before_fitting(self, sample_data):
        """Test error when predicting before fitting."""
        X, y = sample_data
        model = ElasticNetLogisticModel()

        with pytest.raises(ValueError):
            model.predict(X)
        with pytest.raises(ValueError):
            model.predict_default_probability(X)

    def test_feature_importance_before_fitting(self):
        """Test error when asking an unfitted forest for importances."""
        with pytest.raises(ValueError):
            RandomForestModel().get_feature_importance()


class TestModelFactory:
    """Test suite for the model registry."""

    def test_create_every_model(self):
        """Test every registered key builds its class."""
        for key, model_class in MODEL_REGISTRY.items():
            model = create_model(key)
            assert isinstance(model, model_class)
            assert model.model_type == key

    def test_unknown_model(self):
        """Test error on an unknown key."""
        with pytest.raises(ValueError):
            create_model("xgboost")


class TestModelTrainer:
    """Test suite for ModelTrainer class."""

    @pytest.fixture
    def sample_data(self):
        """Create sample training data."""
        np.random.seed(42)
        X = pd.DataFrame(np.random.randn(300, 6), columns=[f"f{i}" for i in range(6)])
        y = pd.Series(np.random.choice([0, 1], 300, p=[0.8, 0.2]), name="TARGET")
        X.loc[y == 1, "f0"] += 1.5
        return X, y

    @pytest.fixture
    def fast_models(self):
        """Create a quick-to-train model set."""
        return {
            "Elastic-Net Logistic Regression": ElasticNetLogisticModel(),
            "Random Forest": RandomForestModel({"n_estimators": 20, "random_state": 42}),
            "Majority Baseline": MajorityBaselineModel(),
        }

    def test_initialization(self):
        """Test ModelTrainer initialization."""
        trainer = ModelTrainer()
        assert len(trainer.models) == len(MODEL_REGISTRY)
        assert trainer.balancing_strategy == "smote"
        assert trainer.resamples

    def test_invalid_strategy(self):
        """Test error on an unknown balancing strategy."""
        with pytest.raises(ValueError):
            ModelTrainer(balancing_strategy="oversample")

    def test_class_weight_strategy(self, fast_models):
        """Test class_weight strategy switches on balanced weights."""
        trainer = ModelTrainer(models=fast_models, balancing_strategy="class_weight")

        assert not trainer.resamples
        assert trainer.models["Random Forest"].model.class_weight == "balanced"
        assert (
            trainer.models["Elastic-Net Logistic Regression"].model.class_weight
            == "balanced"
        )

    def test_resample(self, sample_data, fast_models):
        """Test the trainer resamples with its balancer."""
        X, y = sample_data
        trainer = ModelTrainer(models=fast_models, balancer=ClassBalancer())

        X_res, y_res = trainer.resample(X, y)

        assert (y_res == 1).sum() == (y_res == 0).sum()
        assert len(X_res) > len(X)

    def test_train_all_models(self, sample_data, fast_models):
        """Test training all models."""
        X, y = sample_data
        trainer = ModelTrainer(models=fast_models)

        trained_models = trainer.train_all(X, y, perform_cv=False)

        assert len(trained_models) == 3
        for model in trained_models.values():
            assert model.is_fitted

    def test_baseline_trained_on_original_data(self, sample_data, fast_models):
        """Test the baseline sees the natural majority even with SMOTE."""
        X, y = sample_data
        trainer = ModelTrainer(models=fast_models, balancing_strategy="smote")
        trainer.train_all(X, y, perform_cv=False)

        baseline = trainer.trained_models["Majority Baseline"]
        assert set(baseline.predict(X)) == {0}

    def test_train_all_with_cv(self, sample_data):
        """Test cross-validation results are collected."""
        X, y = sample_data
        trainer = ModelTrainer(
            models={"Elastic-Net Logistic Regression": ElasticNetLogisticModel()},
            balancing_strategy="none",
        )
        trainer.train_all(X, y, perform_cv=True, cv=3)

        assert "Elastic-Net Logistic Regression" in trainer.cv_results
        assert "roc_auc_mean" in trainer.cv_results["Elastic-Net Logistic Regression"]

    def test_cv_with_smote_scores_noise_as_chance(self):
        """Test SMOTE inside CV folds gives no lift on label-free features."""
        rng = np.random.RandomState(0)
        X = pd.DataFrame(rng.randn(1500, 8), columns=[f"f{i}" for i in range(8)])
        y = pd.Series((rng.rand(1500) < 0.1).astype(int), name="TARGET")

        trainer = ModelTrainer(
            models={
                "Random Forest": RandomForestModel(
                    {"n_estimators": 50, "random_state": 42}
                )
            },
            balancing_strategy="smote",
        )
        trainer.train_all(X, y, perform_cv=True, cv=3)

        cv_auc = trainer.cv_results["Random Forest"]["roc_auc_mean"]
        assert abs(cv_auc - 0.5) < 0.1

    def test_cv_runs_on_original_rows(self, sample_data):
        """Test CV is not given the resampled training set."""
        X, y = sample_data
        seen = {}

        class RecordingModel(ElasticNetLogisticModel):
            def cross_validate(self, X, y, cv=5, balancer=None):
                seen["n_rows"] = len(X)
                seen["balancer"] = balancer
                return super().cross_validate(X, y, cv=cv, balancer=balancer)

        trainer = ModelTrainer(
            models={"Elastic-Net Logistic Regression": RecordingModel()},
            balancing_strategy="smote",
        )
        trainer.train_all(X, y, perform_cv=True, cv=3)

        assert seen["n_rows"] == len(X)
        assert seen["balancer"] is trainer.balancer

    def test_cv_failure_keeps_trained_model(self, sample_data):
        """Test a cross-validation error does not discard a fitted model."""
        X, y = sample_data

        class NoCVModel(MajorityBaselineModel):
            def cross_validate(self, X, y, cv=5, balancer=None):
                raise RuntimeError("cross-validation unavailable")

        trainer = ModelTrainer(
            models={"Majority Baseline": NoCVModel()}, balancing_strategy="none"
        )
        trained = trainer.train_all(X, y, perform_cv=True, cv=3)

        assert "Majority Baseline" in trained
        assert trained["Majority Baseline"].is_fitted
        assert "Majority Baseline" not in trainer.cv_results

    def test_failing_model_is_skipped(self, sample_data):
        """Test a model that fails to train does not stop the others."""
        X, y = sample_data
        models = {
            "Broken": ElasticNetLogisticModel(
                {"C": -1.0, "penalty": "elasticnet", "solver": "saga", "l1_ratio": 0.5}
            ),
            "Majority Baseline": MajorityBaselineModel(),
        }
        trainer = ModelTrainer(models=models, balancing_strategy="none")
        trained = trainer.train_all(X, y, perform_cv=False)

        assert list(trained) == ["Majority Baseline"]

    def test_get_predictions(self, sample_data, fast_models):
        """Test getting predictions from all models."""
        X, y = sample_data
        trainer = ModelTrainer(models=fast_models, balancing_strategy="none")
        trainer.train_all(X, y, perform_cv=False)

        predictions = trainer.get_predictions(X, return_proba=True)

        assert len(predictions) == 3
        for preds in predictions.values():
            assert len(preds) == len(X)
            assert np.all((preds >= 0) & (preds <= 1))

        labels = trainer.get_predictions(X, return_proba=False)
        for preds in labels.values():
            assert set(preds).issubset({0, 1})

    def test_save_all_models(self, sample_data, fast_models):
        """Test saving all trained models."""
        X, y = sample_data
        trainer = ModelTrainer(models=fast_models, balancing_strategy="none")
        trainer.train_all(X, y, perform_cv=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            output_dir = Path(tmpdir)
            trainer.save_all_models(output_dir)

            saved_files = sorted(p.name for p in output_dir.glob("*.pkl"))
            assert "random_forest_model.pkl" in saved_files
            assert "elastic_net_logistic_regression_model.pkl" in saved_files
            assert len(saved_files) == 3
