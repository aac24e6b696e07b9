"""
Result tracking module.

Each run writes one row per model to that model's own result table and
concatenates the run's rows onto a cross-run performance summary, so that
results from different runs (balancing strategies, tuned parameters) can be
compared side by side.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
import numpy as np
import pandas as pd
import sys

sys.path.append(str(Path(__file__).parent.parent))
from loan_default.utils import setup_logging, save_dataframe, model_slug
from config import RESULTS_DIR, PERFORMANCE_SUMMARY_FILE, ID_COLUMN, TARGET_COLUMN

logger = setup_logging(__name__)

SUMMARY_COLUMNS = [
    "Run_ID",
    "Timestamp",
    "Model",
    "Hyperparameters",
    "Balancing",
    "Accuracy",
    "Precision",
    "Recall",
    "AUC",
    "F1",
]

# Evaluation metric keys mapped to summary column names
METRIC_COLUMNS = {
    "accuracy": "Accuracy",
    "precision": "Precision",
    "recall": "Recall",
    "roc_auc": "AUC",
    "f1_score": "F1",
}


def _serialize_hyperparameters(hyperparameters: Dict[str, Any]) -> str:
    return json.dumps(hyperparameters, sort_keys=True, default=str)


class ResultsTracker:
    """
    Collects per-model performance rows for one run and writes them to CSV.

    Files written:
    - ``<results_dir>/<model>_results.csv``: one row per run for that model
    - ``<results_dir>/<model>_predictions.csv``: latest test-set predictions
    - ``summary_path``: every run's rows for every model
    """

    def __init__(
        self,
        results_dir: Optional[Path] = None,
        summary_path: Optional[Path] = None,
        run_id: Optional[str] = None,
    ):
        """
        Initialize ResultsTracker.

        Args:
            results_dir: Directory for per-model tables (uses default if None)
            summary_path: Cross-run summary CSV (uses default if None)
            run_id: Identifier stamped on every row (timestamp if None)
        """
        self.results_dir = Path(results_dir) if results_dir else RESULTS_DIR
        self.summary_path = Path(summary_path) if summary_path else PERFORMANCE_SUMMARY_FILE
        self.run_id = run_id or datetime.now().strftime("%Y%m%d_%H%M%S")
        self.results_dir.mkdir(parents=True, exist_ok=True)
        self.rows: List[Dict[str, Any]] = []

        logger.info(f"ResultsTracker initialized for run {self.run_id}")

    def model_table_path(self, model_name: str) -> Path:
        """Path of a model's own result table."""
        return self.results_dir / f"{model_slug(model_name)}_results.csv"

    def record(
        self,
        model_name: str,
        hyperparameters: Dict[str, Any],
        metrics: Dict[str, float],
        balancing: str,
    ) -> Dict[str, Any]:
        """
        Record one model's test-set performance.

        The row is kept for the run summary and appended to the model's own
        result table (created on first use).

        Args:
            model_name: Display name of the model
            hyperparameters: Parameters the model was fitted with
            metrics: Metrics from ModelEvaluator.calculate_metrics
            balancing: Description of the imbalance handling used

        Returns:
            The recorded row
        """
        missing = [key for key in METRIC_COLUMNS if key not in metrics]
        if missing:
            raise ValueError(f"Metrics for {model_name} are missing {missing}")

        row = {
            "Run_ID": self.run_id,
            "Timestamp": datetime.now().isoformat(timespec="seconds"),
            "Model": model_name,
            "Hyperparameters": _serialize_hyperparameters(hyperparameters),
            "Balancing": balancing,
        }
        for key, column in METRIC_COLUMNS.items():
            row[column] = float(metrics[key])

        self.rows.append(row)

        table_path = self.model_table_path(model_name)
        new_rows = pd.DataFrame([row], columns=SUMMARY_COLUMNS)
        if table_path.exists():
            table = pd.concat([pd.read_csv(table_path), new_rows], ignore_index=True)
        else:
            table = new_rows
        save_dataframe(table, table_path)

        logger.info(
            f"Recorded {model_name}: AUC={row['AUC']:.4f} ({len(table)} runs in {table_path.name})"
        )
        return row

    def save_predictions(
        self,
        model_name: str,
        ids: Iterable,
        y_true: Iterable,
        y_pred: Iterable,
        y_pred_proba: Iterable,
    ) -> Path:
        """
        Write a model's test-set predictions.

        Args:
            model_name: Display name of the model
            ids: Application identifiers of the test rows
            y_true: True labels
            y_pred: Predicted labels
            y_pred_proba: Predicted default probabilities

        Returns:
            Path the predictions were written to
        """
        predictions = pd.DataFrame(
            {
                ID_COLUMN: np.asarray(ids),
                TARGET_COLUMN: np.asarray(y_true),
                "PREDICTED": np.asarray(y_pred),
                "DEFAULT_PROBABILITY": np.asarray(y_pred_proba),
            }
        )
        predictions.insert(0, "Run_ID", self.run_id)

        filepath = self.results_dir / f"{model_slug(model_name)}_predictions.csv"
        save_dataframe(predictions, filepath)
        logger.info(f"Predictions for {model_name} saved to {filepath}")
        return filepath

    def summary_frame(self) -> pd.DataFrame:
        """Rows recorded during this run."""
        return pd.DataFrame(self.rows, columns=SUMMARY_COLUMNS)

    def append_to_summary(self) -> pd.DataFrame:
        """
        Concatenate this run's rows onto the cross-run summary CSV.

        Returns:
            The full summary after appending
        """
        existing = self.load_summary(self.summary_path)
        current = self.summary_frame()

        if current.empty:
            logger.warning("No results recorded in this run; summary left unchanged")
            return existing

        if existing.empty:
            combined = current
        else:
            combined = pd.concat([existing, current], ignore_index=True)
        save_dataframe(combined, self.summary_path)

        logger.info(
            f"Appended {len(current)} rows to {self.summary_path} "
            f"({len(combined)} rows total)"
        )
        return combined

    @staticmethod
    def load_summary(path: Optional[Path] = None) -> pd.DataFrame:
        """
        Load the performance summary.

        Args:
            path: Summary CSV (uses default if None)

        Returns:
            Summary table, empty with the summary columns if the file is absent
        """
        path = Path(path) if path else PERFORMANCE_SUMMARY_FILE
        if not path.exists():
            return pd.DataFrame(columns=SUMMARY_COLUMNS)
        return pd.read_csv(path)

    @staticmethod
    def combine_result_tables(paths: Iterable[Path]) -> pd.DataFrame:
        """
        Concatenate any number of result CSVs into one table.

        Args:
            paths: Result table files

        Returns:
            Rows of all tables in the given order
        """
        tables = [pd.read_csv(path) for path in paths]
        if not tables:
            raise ValueError("No result tables given to combine")
        return pd.concat(tables, ignore_index=True)

    @staticmethod
    def rank_models(summary: pd.DataFrame, metric: str = "AUC") -> pd.DataFrame:
        """
        Rank summary rows by a metric, best first.

        Args:
            summary: Performance summary table
            metric: Column to rank by

        Returns:
            Sorted copy with a 1-based Rank column
        """
        if metric not in summary.columns:
            raise ValueError(
                f"Metric '{metric}' not in summary columns {list(summary.columns)}"
            )

        ranked = summary.sort_values(
            metric, ascending=False, na_position="last"
        ).reset_index(drop=True)
        ranked.insert(0, "Rank", np.arange(1, len(ranked) + 1))
        return ranked
