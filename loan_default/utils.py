"""
Utility functions for the Loan Default Risk project.

This module provides helper functions for logging, file operations,
data-quality checks and common data transformations.
"""

import logging
import json
import pickle
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import numpy as np
import pandas as pd
from config import LOG_LEVEL, LOG_FORMAT, RANDOM_STATE


def setup_logging(name: str, level: str = LOG_LEVEL) -> logging.Logger:
    """
    Set up logging configuration.

    Args:
        name: Logger name
        level: Logging level (default from config)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level))

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(getattr(logging, level))
        formatter = logging.Formatter(LOG_FORMAT)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def save_pickle(obj: Any, filepath: Path) -> None:
    """
    Save object to pickle file.

    Args:
        obj: Object to save
        filepath: Path to save file
    """
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, "wb") as f:
        pickle.dump(obj, f)


def load_pickle(filepath: Path) -> Any:
    """Load object from pickle file."""
    with open(filepath, "rb") as f:
        return pickle.load(f)


def save_json(data: Dict, filepath: Path, indent: int = 2) -> None:
    """
    Save dictionary to JSON file.

    Args:
        data: Dictionary to save
        filepath: Path to save file
        indent: JSON indentation level
    """
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, default=str)


def save_dataframe(df: pd.DataFrame, filepath: Path) -> None:
    """
    Save DataFrame to CSV file.

    Args:
        df: DataFrame to save
        filepath: Path to save file
    """
    filepath.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(filepath, index=False)


def calculate_class_distribution(y: np.ndarray) -> Dict[str, Any]:
    """
    Calculate class distribution statistics.

    Args:
        y: Target labels

    Returns:
        Dictionary with class distribution metrics
    """
    unique, counts = np.unique(np.asarray(y), return_counts=True)
    total = len(y)
    distribution = {
        "total_samples": total,
        "class_counts": dict(zip(unique.tolist(), counts.tolist())),
        "class_percentages": dict(
            zip(unique.tolist(), (counts / total * 100).tolist())
        ),
        "imbalance_ratio": float(counts.max() / counts.min()),
    }
    return distribution


def print_class_distribution(y: np.ndarray, title: str = "Class Distribution") -> None:
    """
    Print formatted class distribution.

    Args:
        y: Target labels
        title: Title for the distribution report
    """
    if len(y) == 0:
        return

    dist = calculate_class_distribution(y)
    print(f"\n{'=' * 50}")
    print(f"{title:^50}")
    print(f"{'=' * 50}")
    print(f"Total Samples: {dist['total_samples']}")
    print("\nClass Breakdown:")
    for cls, count in dist["class_counts"].items():
        pct = dist["class_percentages"][cls]
        print(f"  Class {cls}: {count:,} ({pct:.2f}%)")
    print(f"\nImbalance Ratio: {dist['imbalance_ratio']:.2f}:1")
    print(f"{'=' * 50}\n")


def print_section_header(title: str, width: int = 80) -> None:
    """
    Print formatted section header.

    Args:
        title: Section title
        width: Total width of header
    """
    print(f"\n{'=' * width}")
    print(f"{title:^{width}}")
    print(f"{'=' * width}\n")


def model_slug(model_name: str) -> str:
    """Turn a display name such as 'Random Forest' into 'random_forest'."""
    return model_name.strip().lower().replace("-", "_").replace(" ", "_")


def validate_dataframe(
    df: pd.DataFrame,
    required_columns: Optional[List[str]] = None,
    id_column: Optional[str] = None,
    allow_missing: bool = True,
) -> bool:
    """
    Validate DataFrame structure and content.

    Args:
        df: DataFrame to validate
        required_columns: List of required column names
        id_column: Column whose values must be unique (optional)
        allow_missing: Whether missing values are acceptable

    Returns:
        True if valid, raises ValueError otherwise
    """
    if df is None or df.empty:
        raise ValueError("DataFrame is None or empty")

    if required_columns:
        missing_cols = set(required_columns) - set(df.columns)
        if missing_cols:
            raise ValueError(f"Missing required columns: {missing_cols}")

    if id_column is not None and id_column in df.columns:
        n_duplicate_ids = df[id_column].duplicated().sum()
        if n_duplicate_ids > 0:
            raise ValueError(
                f"Column '{id_column}' has {n_duplicate_ids} duplicate identifiers"
            )

    if not allow_missing:
        missing = df.isnull().sum()
        if missing.sum() > 0:
            raise ValueError(
                f"Missing values found in columns: {missing[missing > 0].index.tolist()}"
            )

    return True


def stratified_subsample(
    X: Any, y: Any, max_samples: int, random_state: int = RANDOM_STATE
) -> Tuple[Any, Any]:
    """
    Create a stratified random subsample of the data.

    Class proportions are preserved and every class keeps at least a handful of
    rows, which matters for the minority class of an imbalanced target.

    Args:
        X: Features (ndarray or DataFrame)
        y: Target (ndarray or Series)
        max_samples: Maximum number of samples

    Returns:
        Tuple of (X_sample, y_sample) of the same types as the inputs
    """
    if len(X) <= max_samples:
        return X, y

    rng = np.random.RandomState(random_state)
    y_values = np.asarray(y)

    sampled_indices = []
    for cls in np.unique(y_values):
        cls_indices = np.where(y_values == cls)[0]
        n_cls_samples = int(max_samples * len(cls_indices) / len(y_values))
        n_cls_samples = max(n_cls_samples, min(10, len(cls_indices)))

        if len(cls_indices) > n_cls_samples:
            sampled = rng.choice(cls_indices, n_cls_samples, replace=False)
        else:
            sampled = cls_indices
        sampled_indices.extend(sampled)

    sampled_indices = np.array(sampled_indices)
    rng.shuffle(sampled_indices)

    if isinstance(X, pd.DataFrame):
        X_sample = X.iloc[sampled_indices]
    else:
        X_sample = X[sampled_indices]

    if isinstance(y, pd.Series):
        y_sample = y.iloc[sampled_indices]
    else:
        y_sample = y_values[sampled_indices]

    return X_sample, y_sample


def get_system_info() -> Dict[str, str]:
    """
    Get system information for reproducibility documentation.

    Returns:
        Dictionary with system information
    """
    import platform
    import sys

    import sklearn
    import imblearn

    return {
        "python_version": sys.version.split()[0],
        "platform": platform.system(),
        "platform_release": platform.release(),
        "pandas_version": pd.__version__,
        "sklearn_version": sklearn.__version__,
        "imblearn_version": imblearn.__version__,
    }
