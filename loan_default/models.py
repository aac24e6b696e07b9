"""
Machine learning models module for loan default prediction.

This module wraps the classifiers compared in this project (elastic-net
logistic regression, support vector machine, random forest and a
majority-class baseline) behind one interface, and trains them with class
imbalance handling.
"""

from pathlib import Path
from typing import Dict, Any, Optional, Tuple
import numpy as np
from sklearn.linear_model import LogisticRegression
from sklearn.ensemble import RandomForestClassifier
from sklearn.svm import SVC
from sklearn.dummy import DummyClassifier
from sklearn.metrics import make_scorer, precision_score, recall_score
from sklearn.model_selection import StratifiedKFold
from sklearn.model_selection import cross_validate as sklearn_cross_validate
from imblearn.pipeline import Pipeline as ImbPipeline
import sys

sys.path.append(str(Path(__file__).parent.parent))
from loan_default.balancing import ClassBalancer
from loan_default.utils import (
    setup_logging,
    save_pickle,
    load_pickle,
    model_slug,
    stratified_subsample,
)
from config import (
    MODEL_PARAMS,
    RANDOM_STATE,
    CV_FOLDS,
    IMBALANCE_STRATEGY,
    SVM_MAX_TRAIN_SAMPLES,
)

logger = setup_logging(__name__)

IMBALANCE_STRATEGIES = ("smote", "class_weight", "both", "none")


class CreditRiskModel:
    """
    Base class for loan default prediction models.

    Provides common interface and functionality for all model types.
    """

    display_name = "Credit Risk Model"
    supports_class_weight = True
    # Whether the trainer should fit this model on resampled training data
    uses_resampled_data = True

    def __init__(self, model_type: str, params: Optional[Dict[str, Any]] = None):
        """
        Initialize CreditRiskModel.

        Args:
            model_type: Type of model (e.g., 'elastic_net', 'random_forest')
            params: Model hyperparameters (uses defaults if None)
        """
        self.model_type = model_type
        self.params = dict(params) if params else MODEL_PARAMS.get(model_type, {}).copy()
        self.model = None
        self.is_fitted = False
        logger.info(f"Initialized {model_type} model")

    def fit(self, X: np.ndarray, y: np.ndarray) -> "CreditRiskModel":
        """
        Train the model.

        Args:
            X: Training features
            y: Training target

        Returns:
            Self for method chaining
        """
        logger.info(f"Training {self.display_name} model...")
        self.model.fit(X, y)
        self.is_fitted = True
        logger.info(f"{self.display_name} training complete")
        return self

    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        Predict class labels.

        Args:
            X: Features for prediction

        Returns:
            Predicted class labels
        """
        if not self.is_fitted:
            raise ValueError("Model must be fitted before prediction")
        return self.model.predict(X)

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """
        Predict class probabilities.

        Args:
            X: Features for prediction

        Returns:
            Predicted class probabilities
        """
        if not self.is_fitted:
            raise ValueError("Model must be fitted before prediction")
        return self.model.predict_proba(X)

    def predict_default_probability(self, X: np.ndarray) -> np.ndarray:
        """
        Predict the probability of the default class (label 1).

        Args:
            X: Features for prediction

        Returns:
            1-D array of probabilities in [0, 1]
        """
        proba = self.predict_proba(X)
        classes = list(self.model.classes_)
        if 1 not in classes:
            return np.zeros(proba.shape[0])
        return proba[:, classes.index(1)]

    def set_params(self, **params: Any) -> "CreditRiskModel":
        """Update hyperparameters on both the stored params and the estimator."""
        self.params.update(params)
        self.model.set_params(**params)
        return self

    def get_hyperparameters(self) -> Dict[str, Any]:
        """Return the hyperparameters this model was configured with."""
        return dict(self.params)

    def _cv_subset(self, X: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        return X, y

    def cross_validate(
        self,
        X: np.ndarray,
        y: np.ndarray,
        cv: int = CV_FOLDS,
        balancer: Optional[ClassBalancer] = None,
    ) -> Dict[str, float]:
        """
        Perform stratified k-fold cross-validation.

        With a balancer, resampling runs inside each training fold only, so
        validation folds contain original rows and no synthetic neighbours of
        them.

        Args:
            X: Features (not resampled)
            y: Target (not resampled)
            cv: Number of folds
            balancer: Resampler applied within each training fold

        Returns:
            Dictionary with mean and standard deviation of each metric
        """
        logger.info(f"Performing {cv}-fold cross-validation for {self.model_type}")

        X, y = self._cv_subset(X, y)
        cv_strategy = StratifiedKFold(
            n_splits=cv, shuffle=True, random_state=RANDOM_STATE
        )

        estimator = self.model
        sampler = balancer.fold_sampler(y, cv) if balancer is not None else None
        if sampler is not None:
            estimator = ImbPipeline([("balance", sampler), ("model", self.model)])

        scoring = {
            "roc_auc": "roc_auc",
            "accuracy": "accuracy",
            "precision": make_scorer(precision_score, zero_division=0),
            "recall": make_scorer(recall_score, zero_division=0),
        }
        cv_results = sklearn_cross_validate(
            estimator, X, y, cv=cv_strategy, scoring=scoring, n_jobs=-1
        )

        scores = {}
        for metric in scoring:
            metric_scores = cv_results[f"test_{metric}"]
            scores[f"{metric}_mean"] = float(np.mean(metric_scores))
            scores[f"{metric}_std"] = float(np.std(metric_scores))

        logger.info(f"Cross-validation complete. ROC-AUC: {scores['roc_auc_mean']:.4f}")
        return scores

    def save(self, filepath: Path) -> None:
        """
        Save model to file.

        Args:
            filepath: Path to save file
        """
        save_pickle({"model": self.model, "params": self.params}, filepath)
        logger.info(f"Model saved to {filepath}")

    def load(self, filepath: Path) -> None:
        """
        Load model from file.

        Args:
            filepath: Path to model file
        """
        data = load_pickle(filepath)
        self.model = data["model"]
        self.params = data["params"]
        self.is_fitted = True
        logger.info(f"Model loaded from {filepath}")


class ElasticNetLogisticModel(CreditRiskModel):
    """Logistic regression with a mixed L1/L2 (elastic-net) penalty."""

    display_name = "Elastic-Net Logistic Regression"

    def __init__(self, params: Optional[Dict[str, Any]] = None):
        """Initialize elastic-net logistic regression model."""
        super().__init__("elastic_net", params)
        self.model = LogisticRegression(**self.params)

    def fit(self, X: np.ndarray, y: np.ndarray) -> "ElasticNetLogisticModel":
        """Train the model and report how many coefficients the L1 term zeroed."""
        super().fit(X, y)
        n_zero = int(np.sum(self.model.coef_ == 0))
        logger.info(
            f"  {n_zero} of {self.model.coef_.size} coefficients shrunk to zero"
        )
        return self

    def get_coefficients(self) -> np.ndarray:
        """Get fitted coefficients of the default class."""
        if not self.is_fitted:
            raise ValueError("Model must be fitted to get coefficients")
        return self.model.coef_[0]


class SVMModel(CreditRiskModel):
    """
    Support Vector Machine model for loan default prediction.

    Kernel SVM training scales quadratically with the number of samples, so
    training sets above ``max_train_samples`` are reduced to a stratified
    subsample before fitting.
    """

    display_name = "SVM"

    def __init__(
        self,
        params: Optional[Dict[str, Any]] = None,
        max_train_samples: int = SVM_MAX_TRAIN_SAMPLES,
    ):
        """Initialize SVM model."""
        super().__init__("svm", params)
        self.max_train_samples = max_train_samples
        self.model = SVC(**self.params)

    def _cv_subset(self, X: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        return stratified_subsample(X, y, self.max_train_samples)

    def fit(self, X: np.ndarray, y: np.ndarray) -> "SVMModel":
        """Train SVM model, subsampling large training sets."""
        if len(X) > self.max_train_samples:
            X, y = stratified_subsample(X, y, self.max_train_samples)
            logger.info(f"  SVM fitted on a stratified subsample of {len(X)} rows")
        return super().fit(X, y)


class RandomForestModel(CreditRiskModel):
    """Random Forest model for loan default prediction."""

    display_name = "Random Forest"

    def __init__(self, params: Optional[Dict[str, Any]] = None):
        """Initialize Random Forest model."""
        super().__init__("random_forest", params)
        self.model = RandomForestClassifier(**self.params)

    def get_feature_importance(self) -> np.ndarray:
        """Get feature importance scores."""
        if not self.is_fitted:
            raise ValueError("Model must be fitted to get feature importance")
        return self.model.feature_importances_


class MajorityBaselineModel(CreditRiskModel):
    """
    Majority-class baseline.

    Always predicts the most frequent training label. It is fit on the
    original (not resampled) training data so that the majority class is the
    natural one; any useful model has to beat it.
    """

    display_name = "Majority Baseline"
    supports_class_weight = False
    uses_resampled_data = False

    def __init__(self, params: Optional[Dict[str, Any]] = None):
        """Initialize majority-class baseline."""
        super().__init__("majority_baseline", params)
        self.model = DummyClassifier(**self.params)


MODEL_REGISTRY = {
    "elastic_net": ElasticNetLogisticModel,
    "svm": SVMModel,
    "random_forest": RandomForestModel,
    "majority_baseline": MajorityBaselineModel,
}


def create_model(model_key: str, params: Optional[Dict[str, Any]] = None) -> CreditRiskModel:
    """
    Build a model by its configuration key.

    Args:
        model_key: One of MODEL_REGISTRY's keys
        params: Hyperparameters overriding the configured defaults

    Returns:
        Unfitted model instance
    """
    if model_key not in MODEL_REGISTRY:
        raise ValueError(
            f"Unknown model '{model_key}'. Expected one of {list(MODEL_REGISTRY)}"
        )
    return MODEL_REGISTRY[model_key](params)


class ModelTrainer:
    """
    Class for training and managing multiple models with imbalance handling.

    Imbalance strategies:
    - "smote": resample the training data with the configured balancer
    - "class_weight": weight the loss with class_weight="balanced"
    - "both": resample and weight
    - "none": train on the data as given
    """

    def __init__(
        self,
        models: Optional[Dict[str, CreditRiskModel]] = None,
        balancing_strategy: str = IMBALANCE_STRATEGY,
        balancer: Optional[ClassBalancer] = None,
    ):
        """
        Initialize ModelTrainer.

        Args:
            models: Dictionary of models to train, keyed by display name
            balancing_strategy: How to handle class imbalance
            balancer: Resampler used for "smote"/"both" (default ClassBalancer)
        """
        if balancing_strategy not in IMBALANCE_STRATEGIES:
            raise ValueError(
                f"Unknown balancing strategy '{balancing_strategy}'. "
                f"Expected one of {IMBALANCE_STRATEGIES}"
            )

        self.models = models or self._create_default_models()
        self.balancing_strategy = balancing_strategy
        self.balancer = balancer or ClassBalancer()
        self.trained_models = {}
        self.cv_results = {}

        self._configure_class_weights()
        logger.info(
            f"ModelTrainer initialized with {len(self.models)} models, "
            f"balancing strategy: {balancing_strategy}"
        )

    def _create_default_models(self) -> Dict[str, CreditRiskModel]:
        """Create default set of models."""
        models = {}
        for key in MODEL_REGISTRY:
            model = create_model(key)
            models[model.display_name] = model
        return models

    @property
    def resamples(self) -> bool:
        return self.balancing_strategy in ("smote", "both")

    def _configure_class_weights(self) -> None:
        """Switch on balanced class weights when the strategy asks for them."""
        if self.balancing_strategy not in ("class_weight", "both"):
            return

        for name, model in self.models.items():
            if model.supports_class_weight:
                model.set_params(class_weight="balanced")
                logger.debug(f"{name}: class_weight set to 'balanced'")

    def resample(self, X_train: Any, y_train: Any) -> Tuple[Any, Any]:
        """
        Resample the training data if the strategy calls for it.

        Args:
            X_train: Training features
            y_train: Training target

        Returns:
            Tuple of (resampled X, resampled y)
        """
        if not self.resamples:
            return X_train, y_train
        return self.balancer.balance(X_train, y_train)

    def train_all(
        self,
        X_train: Any,
        y_train: Any,
        perform_cv: bool = True,
        cv: int = CV_FOLDS,
        resampled: Optional[Tuple[Any, Any]] = None,
    ) -> Dict[str, CreditRiskModel]:
        """
        Train all models.

        Args:
            X_train: Training features
            y_train: Training target
            perform_cv: Whether to perform cross-validation
            cv: Number of cross-validation folds
            resampled: Already resampled (X, y); resampled here if None

        Returns:
            Dictionary of trained models
        """
        logger.info("=" * 80)
        logger.info("Starting model training pipeline")
        logger.info("=" * 80)

        if resampled is None:
            resampled = self.resample(X_train, y_train)
        X_resampled, y_resampled = resampled

        for name, model in self.models.items():
            logger.info(f"\n{'=' * 60}")
            logger.info(f"Training {name}")
            logger.info(f"{'=' * 60}")

            if model.uses_resampled_data:
                X_fit, y_fit = X_resampled, y_resampled
            else:
                X_fit, y_fit = X_train, y_train

            try:
                model.fit(X_fit, y_fit)
            except Exception as e:
                logger.error(f"Error training {name}: {str(e)}")
                continue

            self.trained_models[name] = model

            if not perform_cv:
                continue

            # CV always sees the original training rows; resampling happens per fold
            fold_balancer = (
                self.balancer if self.resamples and model.uses_resampled_data else None
            )
            try:
                cv_scores = model.cross_validate(
                    X_train, y_train, cv=cv, balancer=fold_balancer
                )
            except Exception as e:
                logger.error(f"Cross-validation failed for {name}: {str(e)}")
                continue

            self.cv_results[name] = cv_scores
            logger.info(f"\nCross-validation results for {name}:")
            for metric in ("roc_auc", "accuracy", "precision", "recall"):
                logger.info(
                    f"  {metric}: {cv_scores[f'{metric}_mean']:.4f} "
                    f"(+/- {cv_scores[f'{metric}_std']:.4f})"
                )

        logger.info("\n" + "=" * 80)
        logger.info(
            f"Model training complete. Trained {len(self.trained_models)} models"
        )
        logger.info("=" * 80)

        return self.trained_models

    def get_predictions(
        self, X: Any, return_proba: bool = True
    ) -> Dict[str, np.ndarray]:
        """
        Get predictions from all trained models.

        Args:
            X: Features for prediction
            return_proba: Whether to return default probabilities or class labels

        Returns:
            Dictionary of predictions for each model
        """
        predictions = {}

        for name, model in self.trained_models.items():
            if return_proba:
                predictions[name] = model.predict_default_probability(X)
            else:
                predictions[name] = model.predict(X)

        return predictions

    def save_all_models(self, output_dir: Path) -> None:
        """
        Save all trained models.

        Args:
            output_dir: Directory to save models
        """
        output_dir.mkdir(parents=True, exist_ok=True)

        for name, model in self.trained_models.items():
            filepath = output_dir / f"{model_slug(name)}_model.pkl"
            model.save(filepath)

        logger.info(f"Saved {len(self.trained_models)} models to {output_dir}")
