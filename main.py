#!/usr/bin/env python
"""
Loan Default Risk Modelling Pipeline

This is the main entry point for the loan default project. It cleans the
application table, engineers and encodes features, rebalances the training
data, trains and evaluates the models, and appends their performance to the
cross-run summary.

Methodology:
- Two-way stratified split: train (80%) / test (20%)
- Class rebalancing (SMOTE by default) on the training partition only
- Optional hyperparameter tuning with cross-validation on the training data
- Final evaluation on the held-out test set at its natural class distribution

Usage:
    python main.py                         # Run with default parameters
    python main.py --balancing class_weight
    python main.py --tune --n-iter 30      # Tuning with 30 iterations
    python main.py --help                  # Show all options
"""

import argparse
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import numpy as np
import pandas as pd

sys.path.append(str(Path(__file__).parent))

from config import (
    OUTPUT_DIR,
    MODEL_DIR,
    RESULTS_DIR,
    CLEAN_DATA_FILE,
    BALANCED_DATA_FILE,
    PERFORMANCE_SUMMARY_FILE,
    RANDOM_STATE,
    CV_FOLDS,
    TEST_SIZE,
    IMBALANCE_STRATEGY,
    RESAMPLING_METHOD,
    DECISION_THRESHOLD,
)
from loan_default.data_loader import DataLoader
from loan_default.feature_engineering import FeatureEngineer
from loan_default.balancing import ClassBalancer, RESAMPLING_METHODS
from loan_default.models import (
    ModelTrainer,
    MODEL_REGISTRY,
    IMBALANCE_STRATEGIES,
    create_model,
)
from loan_default.evaluation import ModelEvaluator
from loan_default.hyperparameter_tuning import HyperparameterTuner
from loan_default.results import ResultsTracker
from loan_default.utils import (
    setup_logging,
    save_json,
    print_section_header,
    get_system_info,
)

logger = setup_logging(__name__)


class LoanDefaultPipeline:
    """
    End-to-end pipeline for loan default prediction.

    Stages:
    1. Load and clean the application table (cleaned CSV written)
    2. Feature engineering and one-hot encoding
    3. Stratified train/test split and scaling (fit on train only)
    4. Rebalance the training partition (balanced CSV written)
    5. Optional hyperparameter tuning
    6. Model training with cross-validation
    7. Prediction and evaluation on the test set
    8. Result tables, performance summary, plots and JSON run summary

    Attributes:
        data_loader: DataLoader instance
        feature_engineer: FeatureEngineer instance
        balancer: ClassBalancer instance
        model_trainer: ModelTrainer instance
        evaluator: ModelEvaluator instance
        tracker: ResultsTracker instance
        tuner: HyperparameterTuner instance (optional)
    """

    def __init__(
        self,
        data_path: Optional[Path] = None,
        balancing_strategy: str = IMBALANCE_STRATEGY,
        resampling_method: str = RESAMPLING_METHOD,
        model_keys: Optional[List[str]] = None,
        enable_tuning: bool = False,
        search_method: str = "random",
        tuning_n_iter: int = 20,
        cv_folds: int = CV_FOLDS,
        perform_cv: bool = True,
        make_plots: bool = True,
        sample_size: Optional[int] = None,
        output_dir: Optional[Path] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            data_path: Raw application CSV (config default if None)
            balancing_strategy: "smote", "class_weight", "both" or "none"
            resampling_method: Resampler used when the strategy resamples
            model_keys: Models to train (all registered models if None)
            enable_tuning: Whether to perform hyperparameter tuning
            search_method: "random" or "grid" search for tuning
            tuning_n_iter: Number of iterations for random search
            cv_folds: Number of CV folds for tuning and cross-validation
            perform_cv: Whether to cross-validate each model after fitting
            make_plots: Whether to generate plots
            sample_size: Randomly sample this many applications (all if None)
            output_dir: Root for every output file (config paths if None)
        """
        model_keys = model_keys or list(MODEL_REGISTRY)
        unknown = [key for key in model_keys if key not in MODEL_REGISTRY]
        if unknown:
            raise ValueError(
                f"Unknown models {unknown}. Expected any of {list(MODEL_REGISTRY)}"
            )
        if sample_size is not None and sample_size < 10:
            raise ValueError(f"sample_size must be at least 10, got {sample_size}")

        self.balancing_strategy = balancing_strategy
        self.resampling_method = resampling_method
        self.model_keys = model_keys
        self.enable_tuning = enable_tuning
        self.cv_folds = cv_folds
        self.perform_cv = perform_cv
        self.make_plots = make_plots
        self.sample_size = sample_size

        if output_dir is not None:
            self.output_dir = Path(output_dir)
            self.clean_data_path = self.output_dir / CLEAN_DATA_FILE.name
            self.balanced_data_path = self.output_dir / BALANCED_DATA_FILE.name
            self.results_dir = self.output_dir / "results"
            self.model_dir = self.output_dir / "models"
            self.summary_path = self.output_dir / PERFORMANCE_SUMMARY_FILE.name
        else:
            self.output_dir = OUTPUT_DIR
            self.clean_data_path = CLEAN_DATA_FILE
            self.balanced_data_path = BALANCED_DATA_FILE
            self.results_dir = RESULTS_DIR
            self.model_dir = MODEL_DIR
            self.summary_path = PERFORMANCE_SUMMARY_FILE
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.data_loader = DataLoader(data_path=data_path)
        self.feature_engineer = FeatureEngineer()
        self.balancer = ClassBalancer(method=resampling_method)
        self.model_trainer = ModelTrainer(
            models=self._build_models(model_keys),
            balancing_strategy=balancing_strategy,
            balancer=self.balancer,
        )
        self.evaluator = ModelEvaluator(output_dir=self.output_dir)
        self.tracker = ResultsTracker(
            results_dir=self.results_dir, summary_path=self.summary_path
        )

        if enable_tuning:
            self.tuner = HyperparameterTuner(
                search_method=search_method,
                n_iter=tuning_n_iter,
                cv_folds=cv_folds,
                balancing_strategy=balancing_strategy,
                balancer=self.balancer,
            )
        else:
            self.tuner = None

        # Data containers
        self.X_train = None
        self.X_test = None
        self.y_train = None
        self.y_test = None
        self.X_resampled = None
        self.y_resampled = None
        self.feature_names = None

        # Results
        self.trained_models = {}
        self.predictions = {}
        self.evaluation_results = {}
        self.performance_summary = None
        self.is_synthetic_data = False

        logger.info("=" * 80)
        logger.info("LOAN DEFAULT RISK MODELLING PIPELINE")
        logger.info("=" * 80)
        logger.info(f"Models: {model_keys}")
        logger.info(f"Balancing: {self.balancing_label}")
        logger.info(f"Tuning enabled: {enable_tuning}")

    @staticmethod
    def _build_models(model_keys: List[str]) -> Dict:
        models = {}
        for key in model_keys:
            model = create_model(key)
            models[model.display_name] = model
        return models

    @property
    def balancing_label(self) -> str:
        """Description of the imbalance handling recorded with each result."""
        if self.balancing_strategy in ("smote", "both"):
            return f"{self.balancing_strategy}:{self.resampling_method}"
        return self.balancing_strategy

    def load_and_clean_data(self) -> pd.DataFrame:
        """
        Load the raw table, optionally sample it, clean it and save it.

        Returns:
            Cleaned DataFrame
        """
        print_section_header("DATA LOADING AND CLEANING")

        df = self.data_loader.load_data()
        self.is_synthetic_data = self.data_loader.is_synthetic

        if self.sample_size is not None and len(df) > self.sample_size:
            df = df.sample(n=self.sample_size, random_state=RANDOM_STATE)
            logger.info(f"Sampled {self.sample_size} applications")

        df_clean = self.data_loader.clean_data(df)
        self.data_loader.save_clean_data(df_clean, self.clean_data_path)

        if self.is_synthetic_data:
            logger.warning("\n" + "!" * 80)
            logger.warning(
                "WARNING: Using synthetic data. Results are for demonstration only."
            )
            logger.warning("!" * 80 + "\n")

        return df_clean

    def preprocess_data(self, df_clean: pd.DataFrame) -> None:
        """
        Engineer features, encode, split and scale.

        Args:
            df_clean: Cleaned application table
        """
        print_section_header("PREPROCESSING")

        df_engineered = self.feature_engineer.engineer_all_features(df_clean)
        df_encoded = self.data_loader.encode_categorical(df_engineered)

        X, y = self.data_loader.prepare_features_target(df_encoded)
        self.feature_names = self.data_loader.feature_names

        X_train, X_test, y_train, y_test = self.data_loader.split_data(
            X, y, test_size=TEST_SIZE
        )
        self.X_train, self.X_test = self.data_loader.scale_features(X_train, X_test)
        self.y_train = y_train
        self.y_test = y_test

        logger.info("\nData preprocessing complete:")
        logger.info(f"  Training set: {self.X_train.shape}")
        logger.info(f"  Test set: {self.X_test.shape}")
        logger.info(f"  Features: {len(self.feature_names)}")

    def balance_training_data(self) -> None:
        """Rebalance the training partition and save the balanced table."""
        print_section_header("CLASS BALANCING")

        self.X_resampled, self.y_resampled = self.model_trainer.resample(
            self.X_train, self.y_train
        )

        if self.model_trainer.resamples:
            self.balancer.save_balanced_data(
                self.X_resampled,
                self.y_resampled,
                self.balanced_data_path,
                target_column=self.data_loader.target_column,
            )
        else:
            logger.info(
                f"Balancing strategy '{self.balancing_strategy}' does not resample; "
                "no balanced table written"
            )

    def run_hyperparameter_tuning(self) -> None:
        """
        Run optional hyperparameter tuning.

        Tuning is performed on the original training partition with
        cross-validation; any resampling happens inside each training fold.
        Best parameters are used to rebuild the models.
        """
        if not self.enable_tuning or self.tuner is None:
            logger.info("Hyperparameter tuning disabled, using default parameters.")
            return

        logger.info("This may take a while depending on the dataset size and n_iter.")

        self.tuner.tune_all_models(
            self.X_train,
            self.y_train,
            models_to_tune=self.model_keys,
        )

        self.tuner.save_results(self.output_dir / "tuning_results.json")
        self.tuner.get_tuning_summary().to_csv(
            self.output_dir / "tuning_summary.csv", index=False
        )

        logger.info("Reinitializing models with tuned parameters...")
        self.model_trainer = ModelTrainer(
            models=self.tuner.get_tuned_models(self.model_keys),
            balancing_strategy=self.balancing_strategy,
            balancer=self.balancer,
        )

    def train_models(self) -> None:
        """Train all models on the training set."""
        print_section_header("MODEL TRAINING")

        self.trained_models = self.model_trainer.train_all(
            self.X_train,
            self.y_train,
            perform_cv=self.perform_cv,
            cv=self.cv_folds,
            resampled=(self.X_resampled, self.y_resampled),
        )

        if not self.trained_models:
            raise RuntimeError("No model could be trained")

        logger.info(f"\nTrained {len(self.trained_models)} models successfully")

    def generate_predictions(self) -> Dict[str, Tuple[np.ndarray, np.ndarray]]:
        """
        Generate predictions on the test set.

        Returns:
            Dictionary mapping model names to (y_pred, y_pred_proba)
        """
        print_section_header("GENERATING PREDICTIONS ON TEST SET")

        predictions = {}

        for name, model in self.trained_models.items():
            y_pred_proba = model.predict_default_probability(self.X_test)
            y_pred = (y_pred_proba >= DECISION_THRESHOLD).astype(int)
            predictions[name] = (y_pred, y_pred_proba)

            logger.info(
                f"{name}: {np.sum(y_pred == 1)} default, "
                f"{np.sum(y_pred == 0)} repaid predictions"
            )

        self.predictions = predictions
        return predictions

    def evaluate_models(self) -> None:
        """Evaluate all models on the held-out test set."""
        self.evaluation_results = self.evaluator.evaluate_all_models(
            self.predictions,
            self.y_test.values,
        )
        self.evaluator.generate_comparison_report(self.evaluation_results, save=True)

    def record_results(self) -> pd.DataFrame:
        """
        Write per-model result tables and predictions, then extend the summary.

        Returns:
            The full cross-run performance summary
        """
        print_section_header("RECORDING RESULTS")

        for name, results in self.evaluation_results.items():
            model = self.trained_models[name]
            self.tracker.record(
                name,
                model.get_hyperparameters(),
                results["metrics"],
                self.balancing_label,
            )

            y_pred, y_pred_proba = self.predictions[name]
            self.tracker.save_predictions(
                name, self.X_test.index, self.y_test.values, y_pred, y_pred_proba
            )

        self.performance_summary = self.tracker.append_to_summary()

        ranked = ResultsTracker.rank_models(self.tracker.summary_frame())
        print(
            ranked[["Rank", "Model", "Accuracy", "Precision", "Recall", "AUC"]].to_string(
                index=False, float_format="%.4f"
            )
        )

        return self.performance_summary

    def generate_visualizations(self) -> None:
        """Generate all visualization plots."""
        self.evaluator.create_all_visualizations(
            self.predictions,
            self.y_test.values,
            self.evaluation_results,
            trained_models=self.trained_models,
            feature_names=self.feature_names,
        )

    def save_pipeline_summary(self, elapsed_time: float) -> None:
        """
        Save run summary as JSON and print the headline results.

        Args:
            elapsed_time: Total execution time in seconds
        """
        print_section_header("SAVING PIPELINE SUMMARY")

        summary = {
            "execution_info": {
                "run_id": self.tracker.run_id,
                "timestamp": datetime.now().isoformat(),
                "elapsed_time_seconds": round(elapsed_time, 2),
                "tuning_enabled": self.enable_tuning,
                "balancing": self.balancing_label,
            },
            "data_info": {
                "is_synthetic": self.is_synthetic_data,
                "train_samples": len(self.X_train),
                "resampled_train_samples": len(self.X_resampled),
                "test_samples": len(self.X_test),
                "n_features": len(self.feature_names),
                "dropped_columns": self.data_loader.dropped_columns,
                "engineered_features": self.feature_engineer.get_feature_names(),
                "class_distribution_train": {
                    str(label): int(count)
                    for label, count in self.y_train.value_counts().sort_index().items()
                },
                "class_distribution_resampled": {
                    str(label): int(count)
                    for label, count in pd.Series(np.asarray(self.y_resampled))
                    .value_counts()
                    .sort_index()
                    .items()
                },
            },
            "model_performance": {
                name: {
                    "accuracy": results["metrics"]["accuracy"],
                    "precision": results["metrics"]["precision"],
                    "recall": results["metrics"]["recall"],
                    "roc_auc": results["metrics"]["roc_auc"],
                    "f1_score": results["metrics"]["f1_score"],
                }
                for name, results in self.evaluation_results.items()
            },
            "cross_validation": self.model_trainer.cv_results,
            "system_info": get_system_info(),
        }

        if self.is_synthetic_data:
            summary["WARNING"] = (
                "Results are based on SYNTHETIC data. "
                "Place application_train.csv in data/ for real results."
            )

        save_json(summary, self.output_dir / "pipeline_summary.json")
        logger.info(f"Pipeline summary saved to {self.output_dir / 'pipeline_summary.json'}")

        print("\n" + "=" * 80)
        print("PIPELINE EXECUTION COMPLETE")
        print("=" * 80)
        print(f"\nExecution time: {elapsed_time / 60:.1f} minutes")
        print(f"Balancing: {self.balancing_label}")
        print(
            f"Data source: {'SYNTHETIC (demo only)' if self.is_synthetic_data else 'application table'}"
        )
        print(f"\nResults saved to: {self.output_dir}")
        print("\nKey outputs:")
        print(f"  - {self.clean_data_path.name}: cleaned applications")
        print(f"  - {self.summary_path.name}: performance of every run")
        print("  - results/<model>_results.csv: per-model result tables")
        print("  - pipeline_summary.json: complete execution summary")

        scored = {
            name: results["metrics"]["roc_auc"]
            for name, results in self.evaluation_results.items()
            if not np.isnan(results["metrics"]["roc_auc"])
        }
        if scored:
            best_model = max(scored, key=scored.get)
            print(f"\nBest model by ROC-AUC: {best_model}")
            print(f"  ROC-AUC: {scored[best_model]:.4f}")

        print("=" * 80)

    def run(self) -> pd.DataFrame:
        """
        Execute the full pipeline.

        Returns:
            The cross-run performance summary after this run
        """
        start_time = time.time()

        try:
            df_clean = self.load_and_clean_data()
            self.preprocess_data(df_clean)
            self.balance_training_data()

            if self.enable_tuning:
                self.run_hyperparameter_tuning()

            self.train_models()
            self.generate_predictions()
            self.evaluate_models()
            self.record_results()
            self.model_trainer.save_all_models(self.model_dir)

            if self.make_plots:
                self.generate_visualizations()

            elapsed_time = time.time() - start_time
            self.save_pipeline_summary(elapsed_time)

        except Exception as e:
            logger.error(f"Pipeline failed with error: {str(e)}")
            raise

        return self.performance_summary


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Loan Default Risk Modelling Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                 Run with default parameters
  python main.py --balancing class_weight        Weight classes instead of SMOTE
  python main.py --models elastic_net svm        Train a subset of models
  python main.py --tune --n-iter 30              Tuning with 30 iterations
  python main.py --sample-size 20000 --no-plots  Quick run on a sample

Every run appends one row per model to the performance summary.
        """,
    )

    parser.add_argument(
        "--data", type=Path, default=None, help="Path to the raw application CSV"
    )
    parser.add_argument(
        "--balancing",
        choices=IMBALANCE_STRATEGIES,
        default=IMBALANCE_STRATEGY,
        help=f"Class imbalance strategy (default: {IMBALANCE_STRATEGY})",
    )
    parser.add_argument(
        "--resampling-method",
        choices=RESAMPLING_METHODS,
        default=RESAMPLING_METHOD,
        help=f"Resampler for smote/both strategies (default: {RESAMPLING_METHOD})",
    )
    parser.add_argument(
        "--models",
        nargs="+",
        choices=list(MODEL_REGISTRY),
        default=None,
        help="Models to train (default: all)",
    )
    parser.add_argument(
        "--tune",
        action="store_true",
        help="Enable hyperparameter tuning (slower but may improve results)",
    )
    parser.add_argument(
        "--search",
        choices=("random", "grid"),
        default="random",
        help="Search method for tuning (default: random)",
    )
    parser.add_argument(
        "--n-iter",
        type=int,
        default=20,
        help="Number of iterations for random search tuning (default: 20)",
    )
    parser.add_argument(
        "--cv",
        type=int,
        default=CV_FOLDS,
        help=f"Number of CV folds (default: {CV_FOLDS})",
    )
    parser.add_argument(
        "--no-cv", action="store_true", help="Skip cross-validation after training"
    )
    parser.add_argument(
        "--no-plots", action="store_true", help="Skip generating plots"
    )
    parser.add_argument(
        "--sample-size",
        type=int,
        default=None,
        help="Randomly sample this many applications before cleaning",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory for all outputs (default: project data/ and outputs/)",
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    np.random.seed(RANDOM_STATE)

    pipeline = LoanDefaultPipeline(
        data_path=args.data,
        balancing_strategy=args.balancing,
        resampling_method=args.resampling_method,
        model_keys=args.models,
        enable_tuning=args.tune,
        search_method=args.search,
        tuning_n_iter=args.n_iter,
        cv_folds=args.cv,
        perform_cv=not args.no_cv,
        make_plots=not args.no_plots,
        sample_size=args.sample_size,
        output_dir=args.output_dir,
    )

    pipeline.run()

    return 0


if __name__ == "__main__":
    sys.exit(main())
