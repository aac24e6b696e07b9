"""
Model evaluation module.

This module computes classification metrics on the held-out test set and
produces comparison plots for loan default models.
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple, Any
import numpy as np
import pandas as pd
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns
from sklearn.metrics import (
    roc_auc_score,
    roc_curve,
    precision_recall_curve,
    confusion_matrix,
    classification_report,
    f1_score,
    precision_score,
    recall_score,
    accuracy_score,
)
import sys

sys.path.append(str(Path(__file__).parent.parent))
from loan_default.utils import setup_logging, save_json, print_section_header, model_slug
from config import (
    OUTPUT_DIR,
    FIGURE_SIZE,
    DPI,
    DECISION_THRESHOLD,
    FEATURE_IMPORTANCE_TOP_N,
)

logger = setup_logging(__name__)


def validate_probabilities(y_pred_proba: Any) -> np.ndarray:
    """
    Check that predicted probabilities are finite and lie in [0, 1].

    Args:
        y_pred_proba: Predicted default probabilities

    Returns:
        Probabilities as a float array
    """
    proba = np.asarray(y_pred_proba, dtype=float)
    if np.isnan(proba).any():
        raise ValueError("Predicted probabilities contain NaN values")
    if proba.size and (proba.min() < 0 or proba.max() > 1):
        raise ValueError(
            f"Predicted probabilities must lie in [0, 1], "
            f"got range [{proba.min():.4f}, {proba.max():.4f}]"
        )
    return proba


class ModelEvaluator:
    """
    Class for evaluating loan default models.

    Provides test-set metrics, a comparison report and visualizations.
    """

    def __init__(self, output_dir: Optional[Path] = None):
        """
        Initialize ModelEvaluator.

        Args:
            output_dir: Directory for saving outputs (uses default if None)
        """
        self.output_dir = Path(output_dir) if output_dir else OUTPUT_DIR
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.results = {}
        logger.info(f"ModelEvaluator initialized. Output: {self.output_dir}")

    def calculate_metrics(
        self, y_true: np.ndarray, y_pred: np.ndarray, y_pred_proba: np.ndarray
    ) -> Dict[str, float]:
        """
        Calculate all evaluation metrics.

        Args:
            y_true: True labels
            y_pred: Predicted labels
            y_pred_proba: Predicted default probabilities

        Returns:
            Dictionary of metric scores
        """
        y_true = np.asarray(y_true)
        y_pred = np.asarray(y_pred)
        y_pred_proba = validate_probabilities(y_pred_proba)

        if not len(y_true) == len(y_pred) == len(y_pred_proba):
            raise ValueError(
                "y_true, y_pred and y_pred_proba must have the same length, got "
                f"{len(y_true)}, {len(y_pred)} and {len(y_pred_proba)}"
            )
        if len(y_true) == 0:
            raise ValueError("Cannot evaluate an empty prediction set")

        tn, fp, fn, tp = confusion_matrix(y_true, y_pred, labels=[0, 1]).ravel()

        # Specificity = TN / (TN + FP) = recall for negative class
        recall_negative = tn / (tn + fp) if (tn + fp) > 0 else 0.0

        if len(np.unique(y_true)) < 2:
            logger.warning("Only one class present in y_true; AUC is undefined")
            auc = float("nan")
        else:
            auc = roc_auc_score(y_true, y_pred_proba)

        n_total = len(y_pred)
        n_positive_pred = int(np.sum(y_pred == 1))

        metrics = {
            "accuracy": accuracy_score(y_true, y_pred),
            "precision": precision_score(y_true, y_pred, zero_division=0),
            "recall": recall_score(y_true, y_pred, zero_division=0),
            "roc_auc": auc,
            "f1_score": f1_score(y_true, y_pred, zero_division=0),
            "recall_negative": recall_negative,
            "true_positives": int(tp),
            "true_negatives": int(tn),
            "false_positives": int(fp),
            "false_negatives": int(fn),
            "positive_predictions": n_positive_pred,
            "negative_predictions": n_total - n_positive_pred,
            "positive_prediction_ratio": n_positive_pred / n_total,
        }

        return metrics

    def evaluate_model(
        self,
        model_name: str,
        y_true: np.ndarray,
        y_pred: np.ndarray,
        y_pred_proba: np.ndarray,
    ) -> Dict[str, Any]:
        """
        Evaluate a single model.

        Args:
            model_name: Name of the model
            y_true: True labels
            y_pred: Predicted labels
            y_pred_proba: Predicted default probabilities

        Returns:
            Dictionary with all evaluation results
        """
        logger.info(f"Evaluating {model_name}...")

        metrics = self.calculate_metrics(y_true, y_pred, y_pred_proba)

        class_report = classification_report(
            y_true, y_pred, labels=[0, 1], output_dict=True, zero_division=0
        )
        conf_matrix = confusion_matrix(y_true, y_pred, labels=[0, 1])

        results = {
            "model_name": model_name,
            "metrics": metrics,
            "classification_report": class_report,
            "confusion_matrix": conf_matrix.tolist(),
        }

        self.results[model_name] = results

        logger.info(f"{model_name} evaluation complete:")
        logger.info(f"  ROC-AUC: {metrics['roc_auc']:.4f}")
        logger.info(f"  Precision: {metrics['precision']:.4f}")
        logger.info(f"  Recall: {metrics['recall']:.4f}")
        logger.info(f"  Specificity: {metrics['recall_negative']:.4f}")
        logger.info(f"  F1-Score: {metrics['f1_score']:.4f}")
        logger.info(f"  Accuracy: {metrics['accuracy']:.4f}")
        logger.info(
            f"  Predictions: {metrics['positive_predictions']} default / "
            f"{metrics['negative_predictions']} repaid"
        )

        return results

    def evaluate_all_models(
        self,
        models_predictions: Dict[str, Tuple[np.ndarray, np.ndarray]],
        y_true: np.ndarray,
    ) -> Dict[str, Dict[str, Any]]:
        """
        Evaluate multiple models.

        Args:
            models_predictions: Dict mapping model names to (y_pred, y_pred_proba)
            y_true: True labels

        Returns:
            Dictionary of evaluation results for all models
        """
        print_section_header("MODEL EVALUATION")

        all_results = {}
        for model_name, (y_pred, y_pred_proba) in models_predictions.items():
            all_results[model_name] = self.evaluate_model(
                model_name, y_true, y_pred, y_pred_proba
            )

        return all_results

    def generate_comparison_report(
        self, all_results: Dict[str, Dict[str, Any]], save: bool = True
    ) -> pd.DataFrame:
        """
        Generate comparison report.

        Args:
            all_results: Evaluation results for all models
            save: Whether to save the report

        Returns:
            DataFrame with comparison metrics, best ROC-AUC first
        """
        print_section_header("MODEL COMPARISON REPORT")

        comparison_df = pd.DataFrame(
            [
                {"Model": model_name, **results["metrics"]}
                for model_name, results in all_results.items()
            ]
        )
        comparison_df = comparison_df.sort_values(
            "roc_auc", ascending=False, na_position="last"
        ).reset_index(drop=True)

        print(comparison_df.to_string(index=False, float_format="%.4f"))

        best_model = comparison_df.iloc[0]["Model"]
        best_auc = comparison_df.iloc[0]["roc_auc"]

        print(f"\n{'=' * 80}")
        print(f"BEST PERFORMING MODEL: {best_model}")
        print(f"ROC-AUC Score: {best_auc:.4f}")
        print(f"{'=' * 80}\n")

        if save:
            filepath = self.output_dir / "model_comparison_report.csv"
            comparison_df.to_csv(filepath, index=False)
            logger.info(f"Comparison report saved to {filepath}")

            json_filepath = self.output_dir / "detailed_results.json"
            save_json(all_results, json_filepath)
            logger.info(f"Detailed results saved to {json_filepath}")

        return comparison_df

    def _save_figure(self, filename: str, description: str) -> Path:
        filepath = self.output_dir / filename
        plt.savefig(filepath, dpi=DPI, bbox_inches="tight")
        logger.info(f"{description} saved to {filepath}")
        return filepath

    def plot_roc_curves(
        self,
        models_predictions: Dict[str, Tuple[np.ndarray, np.ndarray]],
        y_true: np.ndarray,
        save: bool = True,
    ) -> None:
        """
        Plot ROC curves for all models.

        Args:
            models_predictions: Dict mapping model names to (y_pred, y_pred_proba)
            y_true: True labels
            save: Whether to save the plot
        """
        if len(np.unique(y_true)) < 2:
            logger.warning("Skipping ROC curves: only one class in y_true")
            return

        plt.figure(figsize=FIGURE_SIZE)

        for model_name, (_, y_pred_proba) in models_predictions.items():
            fpr, tpr, _ = roc_curve(y_true, y_pred_proba)
            auc_score = roc_auc_score(y_true, y_pred_proba)
            plt.plot(
                fpr, tpr, label=f"{model_name} (AUC = {auc_score:.4f})", linewidth=2
            )

        plt.plot([0, 1], [0, 1], "k--", label="Random Classifier", linewidth=2)
        plt.xlim([0.0, 1.0])
        plt.ylim([0.0, 1.05])
        plt.xlabel("False Positive Rate", fontsize=12)
        plt.ylabel("True Positive Rate", fontsize=12)
        plt.title("ROC Curves - Model Comparison", fontsize=14, pad=20)
        plt.legend(loc="lower right", fontsize=10)
        plt.grid(True, alpha=0.3)
        plt.tight_layout()

        if save:
            self._save_figure("roc_curves.png", "ROC curves")

        plt.close()

    def plot_precision_recall_curves(
        self,
        models_predictions: Dict[str, Tuple[np.ndarray, np.ndarray]],
        y_true: np.ndarray,
        save: bool = True,
    ) -> None:
        """
        Plot Precision-Recall curves for all models.

        The dashed line marks the default rate, which is the precision of a
        classifier that flags everyone.
        """
        plt.figure(figsize=FIGURE_SIZE)

        for model_name, (_, y_pred_proba) in models_predictions.items():
            precision, recall, _ = precision_recall_curve(y_true, y_pred_proba)
            plt.plot(recall, precision, label=model_name, linewidth=2)

        default_rate = float(np.mean(np.asarray(y_true) == 1))
        plt.axhline(
            y=default_rate, color="k", linestyle="--", label="Default Rate", linewidth=1
        )

        plt.xlabel("Recall", fontsize=12)
        plt.ylabel("Precision", fontsize=12)
        plt.title("Precision-Recall Curves - Model Comparison", fontsize=14, pad=20)
        plt.legend(loc="best", fontsize=10)
        plt.grid(True, alpha=0.3)
        plt.tight_layout()

        if save:
            self._save_figure("precision_recall_curves.png", "Precision-Recall curves")

        plt.close()

    def plot_confusion_matrices(
        self,
        models_predictions: Dict[str, Tuple[np.ndarray, np.ndarray]],
        y_true: np.ndarray,
        save: bool = True,
    ) -> None:
        """
        Plot confusion matrices for all models.

        Args:
            models_predictions: Dict mapping model names to (y_pred, y_pred_proba)
            y_true: True labels
            save: Whether to save the plot
        """
        n_models = len(models_predictions)
        n_cols = min(2, n_models)
        n_rows = (n_models + n_cols - 1) // n_cols

        fig, axes = plt.subplots(
            n_rows, n_cols, figsize=(6 * n_cols, 5 * n_rows), squeeze=False
        )
        axes = axes.flatten()

        for idx, (model_name, (y_pred, _)) in enumerate(models_predictions.items()):
            cm = confusion_matrix(y_true, y_pred, labels=[0, 1])

            sns.heatmap(
                cm,
                annot=True,
                fmt="d",
                cmap="Blues",
                ax=axes[idx],
                cbar=True,
                square=True,
                xticklabels=["No Default", "Default"],
                yticklabels=["No Default", "Default"],
            )
            axes[idx].set_title(f"{model_name}", fontsize=12, pad=10)
            axes[idx].set_ylabel("True Label", fontsize=10)
            axes[idx].set_xlabel("Predicted Label", fontsize=10)

        for idx in range(n_models, len(axes)):
            axes[idx].axis("off")

        plt.tight_layout()

        if save:
            self._save_figure("confusion_matrices.png", "Confusion matrices")

        plt.close()

    def plot_prediction_distributions(
        self,
        models_predictions: Dict[str, Tuple[np.ndarray, np.ndarray]],
        y_true: np.ndarray,
        save: bool = True,
    ) -> None:
        """
        Plot histograms of predicted default probability for each true class.

        Args:
            models_predictions: Dict mapping model names to (y_pred, y_pred_proba)
            y_true: True labels
            save: Whether to save the plot
        """
        y_true = np.asarray(y_true)
        n_models = len(models_predictions)
        n_cols = min(2, n_models)
        n_rows = (n_models + n_cols - 1) // n_cols

        fig, axes = plt.subplots(
            n_rows, n_cols, figsize=(7 * n_cols, 5 * n_rows), squeeze=False
        )
        axes = axes.flatten()

        for idx, (model_name, (_, y_pred_proba)) in enumerate(
            models_predictions.items()
        ):
            ax = axes[idx]
            y_pred_proba = np.asarray(y_pred_proba)

            ax.hist(
                y_pred_proba[y_true == 0],
                bins=50,
                range=(0, 1),
                alpha=0.6,
                color="green",
                label="No Default (True)",
                edgecolor="black",
                linewidth=0.5,
            )
            ax.hist(
                y_pred_proba[y_true == 1],
                bins=50,
                range=(0, 1),
                alpha=0.6,
                color="red",
                label="Default (True)",
                edgecolor="black",
                linewidth=0.5,
            )
            ax.axvline(
                x=DECISION_THRESHOLD,
                color="black",
                linestyle="--",
                linewidth=2,
                label="Decision Threshold",
            )

            ax.set_xlabel("Predicted Probability of Default", fontsize=11)
            ax.set_ylabel("Frequency", fontsize=11)
            ax.set_title(f"{model_name}", fontsize=13, pad=10)
            ax.legend(loc="upper center", fontsize=9)
            ax.grid(True, alpha=0.3, axis="y")

        for idx in range(n_models, len(axes)):
            axes[idx].axis("off")

        plt.suptitle("Prediction Probability Distributions", fontsize=16, y=1.00)
        plt.tight_layout()

        if save:
            self._save_figure("prediction_distributions.png", "Prediction distributions")

        plt.close()

    def plot_metrics_comparison(
        self, all_results: Dict[str, Dict[str, Any]], save: bool = True
    ) -> None:
        """
        Plot bar chart comparing metrics across models.

        Args:
            all_results: Evaluation results for all models
            save: Whether to save the plot
        """
        metrics_df = pd.DataFrame(
            {model: results["metrics"] for model, results in all_results.items()}
        ).T

        metrics_to_plot = ["accuracy", "precision", "recall", "roc_auc", "f1_score"]
        fig, axes = plt.subplots(2, 3, figsize=(18, 10))
        axes = axes.flatten()

        for idx, metric in enumerate(metrics_to_plot):
            ax = axes[idx]
            metrics_df[metric].astype(float).sort_values(ascending=False).plot(
                kind="bar", ax=ax, color="steelblue", edgecolor="black"
            )
            ax.set_title(metric.upper().replace("_", " "), fontsize=12, pad=10)
            ax.set_ylabel("Score", fontsize=10)
            ax.set_xlabel("Model", fontsize=10)
            ax.set_ylim(0, 1)
            ax.grid(axis="y", alpha=0.3)
            ax.tick_params(axis="x", rotation=45)

        axes[-1].axis("off")
        plt.tight_layout()

        if save:
            self._save_figure("metrics_comparison.png", "Metrics comparison")

        plt.close()

    def plot_feature_importance(
        self,
        importances: np.ndarray,
        feature_names: List[str],
        model_name: str,
        top_n: int = FEATURE_IMPORTANCE_TOP_N,
        save: bool = True,
    ) -> pd.DataFrame:
        """
        Plot the most important features of a tree-based model.

        Args:
            importances: Importance score per feature
            feature_names: Feature names in the same order
            model_name: Name of the model
            top_n: Number of features to show
            save: Whether to save the plot

        Returns:
            DataFrame of features sorted by importance
        """
        if len(importances) != len(feature_names):
            raise ValueError(
                f"Got {len(importances)} importances for {len(feature_names)} features"
            )

        importance_df = (
            pd.DataFrame({"feature": feature_names, "importance": importances})
            .sort_values("importance", ascending=False)
            .reset_index(drop=True)
        )
        top_features = importance_df.head(top_n)

        plt.figure(figsize=(10, max(4, 0.4 * len(top_features))))
        sns.barplot(data=top_features, x="importance", y="feature", color="steelblue")
        plt.title(f"Top {len(top_features)} Features - {model_name}", fontsize=14)
        plt.xlabel("Importance", fontsize=12)
        plt.ylabel("")
        plt.tight_layout()

        if save:
            self._save_figure(
                f"feature_importance_{model_slug(model_name)}.png", "Feature importance"
            )
            importance_df.to_csv(
                self.output_dir / f"feature_importance_{model_slug(model_name)}.csv",
                index=False,
            )

        plt.close()
        return importance_df

    def create_all_visualizations(
        self,
        models_predictions: Dict[str, Tuple[np.ndarray, np.ndarray]],
        y_true: np.ndarray,
        all_results: Dict[str, Dict[str, Any]],
        trained_models: Optional[Dict] = None,
        feature_names: Optional[List[str]] = None,
    ) -> None:
        """
        Create all visualization plots.

        Args:
            models_predictions: Dict mapping model names to predictions
            y_true: True labels
            all_results: Evaluation results for all models
            trained_models: Dictionary of trained models (optional)
            feature_names: List of feature names (optional)
        """
        print_section_header("GENERATING VISUALIZATIONS")

        self.plot_roc_curves(models_predictions, y_true)
        self.plot_precision_recall_curves(models_predictions, y_true)
        self.plot_confusion_matrices(models_predictions, y_true)
        self.plot_metrics_comparison(all_results)
        self.plot_prediction_distributions(models_predictions, y_true)

        if trained_models is not None and feature_names is not None:
            for model_name, model in trained_models.items():
                if hasattr(model, "get_feature_importance"):
                    self.plot_feature_importance(
                        model.get_feature_importance(), feature_names, model_name
                    )

        logger.info("All visualizations generated successfully")
