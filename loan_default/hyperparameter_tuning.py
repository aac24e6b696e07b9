"""
Hyperparameter tuning module for loan default models.

This module implements automated hyperparameter optimization using
GridSearchCV and RandomizedSearchCV for the tunable model types. The
majority baseline has no hyperparameters worth searching.
"""

from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple
import numpy as np
import pandas as pd
from sklearn.model_selection import GridSearchCV, RandomizedSearchCV, StratifiedKFold
from imblearn.pipeline import Pipeline as ImbPipeline
import sys

sys.path.append(str(Path(__file__).parent.parent))
from loan_default.balancing import ClassBalancer
from loan_default.models import (
    CreditRiskModel,
    IMBALANCE_STRATEGIES,
    MODEL_REGISTRY,
    create_model,
)
from loan_default.utils import (
    setup_logging,
    save_json,
    print_section_header,
    stratified_subsample,
)
from config import RANDOM_STATE, CV_FOLDS, IMBALANCE_STRATEGY

logger = setup_logging(__name__)

# Kernel SVM search is run on a stratified subsample of this size
SVM_TUNING_MAX_SAMPLES = 2000


class HyperparameterTuner:
    """
    Class for automated hyperparameter tuning of ML models.

    Supports both Grid Search and Randomized Search with cross-validation.
    Uses stratified folds to maintain class distribution during tuning and
    optimizes ROC-AUC.

    The searched estimators are configured with the same imbalance handling
    the models will be trained with: balanced class weights for the
    "class_weight" and "both" strategies, and for "smote" and "both" a
    resampler that runs inside each training fold. Data passed to the
    ``tune_*`` methods must therefore be the original, un-resampled rows.
    """

    def __init__(
        self,
        search_method: str = "random",
        cv_folds: int = CV_FOLDS,
        n_iter: int = 20,
        n_jobs: int = -1,
        verbose: int = 0,
        balancing_strategy: str = IMBALANCE_STRATEGY,
        balancer: Optional[ClassBalancer] = None,
    ):
        """
        Initialize HyperparameterTuner.

        Args:
            search_method: 'grid' for GridSearch or 'random' for RandomizedSearch
            cv_folds: Number of cross-validation folds
            n_iter: Number of iterations for RandomizedSearch
            n_jobs: Number of parallel jobs
            verbose: Verbosity level
            balancing_strategy: Imbalance strategy the tuned models will use
            balancer: Resampler for "smote"/"both" (default ClassBalancer)
        """
        if search_method not in ("grid", "random"):
            raise ValueError(
                f"search_method must be 'grid' or 'random', got '{search_method}'"
            )
        if cv_folds < 2:
            raise ValueError(f"cv_folds must be at least 2, got {cv_folds}")
        if balancing_strategy not in IMBALANCE_STRATEGIES:
            raise ValueError(
                f"Unknown balancing strategy '{balancing_strategy}'. "
                f"Expected one of {IMBALANCE_STRATEGIES}"
            )

        self.search_method = search_method
        self.cv_folds = cv_folds
        self.n_iter = n_iter
        self.n_jobs = n_jobs
        self.verbose = verbose
        self.balancing_strategy = balancing_strategy
        self.balancer = balancer or ClassBalancer()
        self.best_params = {}
        self.cv_results = {}

        logger.info(
            f"HyperparameterTuner initialized with {search_method} search, "
            f"balancing strategy: {balancing_strategy}"
        )

    def _base_estimator(self, model_key: str) -> Any:
        """Unfitted estimator for a model key, with the strategy's class weights."""
        model = create_model(model_key)
        weighted = self.balancing_strategy in ("class_weight", "both")
        if weighted and model.supports_class_weight:
            model.set_params(class_weight="balanced")
        return model.model

    def get_param_grid_elastic_net(self) -> Dict[str, list]:
        """Get parameter grid for elastic-net Logistic Regression."""
        return {
            "C": [0.01, 0.1, 1.0, 10.0],
            "l1_ratio": [0.1, 0.3, 0.5, 0.7, 0.9],
        }

    def get_param_grid_random_forest(self) -> Dict[str, list]:
        """Get parameter grid for Random Forest."""
        return {
            "n_estimators": [100, 200, 300],
            "max_depth": [8, 15, 25, None],
            "min_samples_split": [2, 10, 20],
            "min_samples_leaf": [1, 4, 8],
            "max_features": ["sqrt", "log2"],
        }

    def get_param_grid_svm(self) -> Dict[str, list]:
        """Get parameter grid for SVM."""
        return {
            "C": [0.1, 1.0, 10.0],
            "gamma": ["scale", 0.001, 0.01, 0.1],
            "kernel": ["rbf", "linear"],
        }

    def tune_elastic_net(self, X: Any, y: Any) -> Tuple[Any, Dict[str, Any]]:
        """Tune elastic-net Logistic Regression hyperparameters."""
        logger.info("Tuning Elastic-Net Logistic Regression hyperparameters...")

        base_model = self._base_estimator("elastic_net")
        return self._perform_search(
            base_model,
            self.get_param_grid_elastic_net(),
            X,
            y,
            MODEL_REGISTRY["elastic_net"].display_name,
        )

    def tune_random_forest(self, X: Any, y: Any) -> Tuple[Any, Dict[str, Any]]:
        """Tune Random Forest hyperparameters."""
        logger.info("Tuning Random Forest hyperparameters...")

        base_model = self._base_estimator("random_forest")
        return self._perform_search(
            base_model,
            self.get_param_grid_random_forest(),
            X,
            y,
            MODEL_REGISTRY["random_forest"].display_name,
        )

    def tune_svm(self, X: Any, y: Any) -> Tuple[Any, Dict[str, Any]]:
        """
        Tune SVM hyperparameters.

        The search runs on a stratified subsample; the returned estimator is
        fitted on that subsample only.
        """
        logger.info("Tuning SVM hyperparameters...")

        X_sample, y_sample = stratified_subsample(X, y, SVM_TUNING_MAX_SAMPLES)
        if len(X_sample) < len(X):
            logger.info(f"  Stratified subsample: {len(X)} -> {len(X_sample)} samples")

        base_model = self._base_estimator("svm")
        return self._perform_search(
            base_model,
            self.get_param_grid_svm(),
            X_sample,
            y_sample,
            MODEL_REGISTRY["svm"].display_name,
        )

    def _perform_search(
        self,
        base_model: Any,
        param_grid: Dict[str, list],
        X: Any,
        y: Any,
        model_name: str,
    ) -> Tuple[Any, Dict[str, Any]]:
        """
        Perform hyperparameter search.

        Args:
            base_model: Base model instance
            param_grid: Parameter grid to search
            X: Training features
            y: Training target
            model_name: Name of the model

        Returns:
            Tuple of (best model, best parameters)
        """
        cv_strategy = StratifiedKFold(
            n_splits=self.cv_folds,
            shuffle=True,
            random_state=RANDOM_STATE,
        )

        estimator = base_model
        sampler = (
            self.balancer.fold_sampler(y, self.cv_folds)
            if self.balancing_strategy in ("smote", "both")
            else None
        )
        if sampler is not None:
            # Resample inside each training fold; validation folds stay original
            estimator = ImbPipeline([("balance", sampler), ("model", base_model)])
            param_grid = {
                f"model__{name}": values for name, values in param_grid.items()
            }

        if self.search_method == "grid":
            search = GridSearchCV(
                estimator=estimator,
                param_grid=param_grid,
                cv=cv_strategy,
                scoring="roc_auc",
                n_jobs=self.n_jobs,
                verbose=self.verbose,
                return_train_score=True,
            )
        else:
            search = RandomizedSearchCV(
                estimator=estimator,
                param_distributions=param_grid,
                n_iter=self.n_iter,
                cv=cv_strategy,
                scoring="roc_auc",
                n_jobs=self.n_jobs,
                verbose=self.verbose,
                random_state=RANDOM_STATE,
                return_train_score=True,
            )

        logger.info(f"Starting {self.search_method} search for {model_name}...")
        search.fit(X, y)

        best_params = {
            name.replace("model__", "", 1): value
            for name, value in search.best_params_.items()
        }
        best_model = search.best_estimator_
        if sampler is not None:
            best_model = best_model.named_steps["model"]

        self.best_params[model_name] = best_params
        self.cv_results[model_name] = {
            "best_score": search.best_score_,
            "best_params": best_params,
            "cv_results": pd.DataFrame(search.cv_results_),
        }

        logger.info(f"\n{'=' * 70}")
        logger.info(f"Best parameters for {model_name}:")
        for param, value in best_params.items():
            logger.info(f"  {param}: {value}")
        logger.info(f"Best CV ROC-AUC score: {search.best_score_:.4f}")
        logger.info(f"{'=' * 70}\n")

        return best_model, best_params

    def tune_all_models(
        self, X: Any, y: Any, models_to_tune: Optional[List[str]] = None
    ) -> Dict[str, Tuple[Any, Dict[str, Any]]]:
        """
        Tune all models.

        Args:
            X: Training features
            y: Training target
            models_to_tune: Model keys to tune, e.g. ["elastic_net"] (None = all)

        Returns:
            Dictionary mapping model display names to (best_model, best_params)
        """
        print_section_header("HYPERPARAMETER TUNING")

        available_models = {
            "elastic_net": self.tune_elastic_net,
            "random_forest": self.tune_random_forest,
            "svm": self.tune_svm,
        }

        if models_to_tune is None:
            models_to_tune = list(available_models.keys())

        tuned_models = {}

        for model_key in models_to_tune:
            if model_key not in available_models:
                logger.warning(f"No tuning grid for {model_key}, skipping...")
                continue

            model_name = MODEL_REGISTRY[model_key].display_name
            try:
                logger.info(f"\n{'*' * 80}")
                logger.info(f"Tuning {model_name}")
                logger.info(f"{'*' * 80}\n")

                best_model, best_params = available_models[model_key](X, y)
                tuned_models[model_name] = (best_model, best_params)

            except Exception as e:
                logger.error(f"Error tuning {model_name}: {str(e)}")
                continue

        logger.info("\n" + "=" * 80)
        logger.info(f"Hyperparameter tuning complete for {len(tuned_models)} models")
        logger.info("=" * 80)

        return tuned_models

    def get_tuned_models(
        self, model_keys: Optional[List[str]] = None
    ) -> Dict[str, CreditRiskModel]:
        """
        Build unfitted models configured with the best parameters found.

        Models without tuning results keep their configured defaults.

        Args:
            model_keys: Model keys to build (None = every registered model)

        Returns:
            Dictionary of models keyed by display name
        """
        model_keys = model_keys or list(MODEL_REGISTRY)
        models = {}

        for key in model_keys:
            model = create_model(key)
            tuned = self.best_params.get(model.display_name)
            if tuned:
                model.set_params(**tuned)
                logger.info(f"{model.display_name} configured with tuned parameters")
            models[model.display_name] = model

        return models

    def save_results(self, output_path: Path) -> None:
        """
        Save tuning results to file.

        Args:
            output_path: Path to save results
        """
        results_dict = {
            model_name: {
                "best_params": {
                    param: value.item() if isinstance(value, np.generic) else value
                    for param, value in results["best_params"].items()
                },
                "best_score": float(results["best_score"]),
            }
            for model_name, results in self.cv_results.items()
        }

        save_json(results_dict, output_path)
        logger.info(f"Tuning results saved to {output_path}")

    def get_tuning_summary(self) -> pd.DataFrame:
        """
        Get summary of tuning results.

        Returns:
            DataFrame with tuning summary
        """
        summary_data = []

        for model_name, results in self.cv_results.items():
            summary_data.append(
                {
                    "Model": model_name,
                    "Best CV ROC-AUC": results["best_score"],
                    "Best Parameters": str(results["best_params"]),
                }
            )

        if not summary_data:
            return pd.DataFrame(columns=["Model", "Best CV ROC-AUC", "Best Parameters"])

        return pd.DataFrame(summary_data).sort_values(
            "Best CV ROC-AUC", ascending=False
        )
