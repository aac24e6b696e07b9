"""
Class balancing module.

This module rebalances the default/non-default class distribution of the
training partition with imbalanced-learn resamplers (SMOTE by default) and
writes the balanced table to CSV.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import numpy as np
import pandas as pd
from imblearn.over_sampling import SMOTE
from imblearn.combine import SMOTETomek
from imblearn.under_sampling import RandomUnderSampler
import sys

sys.path.append(str(Path(__file__).parent.parent))
from loan_default.utils import setup_logging, save_dataframe
from config import (
    RANDOM_STATE,
    RESAMPLING_METHOD,
    SMOTE_SAMPLING_STRATEGY,
    SMOTE_K_NEIGHBORS,
    BALANCED_DATA_FILE,
    TARGET_COLUMN,
    ID_COLUMN,
)

logger = setup_logging(__name__)

RESAMPLING_METHODS = ("smote", "smote_tomek", "undersample", "none")


def class_proportions(y: Any) -> pd.Series:
    """
    Share of each class in a label vector.

    Args:
        y: Target labels

    Returns:
        Series indexed by class label whose values sum to 1
    """
    y = pd.Series(np.asarray(y))
    if y.empty:
        raise ValueError("Cannot compute class proportions of an empty label vector")
    return y.value_counts(normalize=True).sort_index()


class ClassBalancer:
    """
    Resample a binary classification dataset towards a target class ratio.

    Methods:
    - "smote": synthesise minority samples by interpolating between neighbours
    - "smote_tomek": SMOTE followed by removal of Tomek links
    - "undersample": randomly drop majority samples
    - "none": return the data unchanged
    """

    def __init__(
        self,
        method: str = RESAMPLING_METHOD,
        sampling_strategy: float = SMOTE_SAMPLING_STRATEGY,
        k_neighbors: int = SMOTE_K_NEIGHBORS,
        random_state: int = RANDOM_STATE,
    ):
        """
        Initialize ClassBalancer.

        Args:
            method: Resampling method (see class docstring)
            sampling_strategy: Desired minority/majority ratio after resampling
            k_neighbors: Neighbours used by SMOTE to build synthetic samples
            random_state: Seed for reproducible resampling
        """
        if method not in RESAMPLING_METHODS:
            raise ValueError(
                f"Unknown resampling method '{method}'. "
                f"Expected one of {RESAMPLING_METHODS}"
            )
        if not 0 < sampling_strategy <= 1:
            raise ValueError(
                f"sampling_strategy must be in (0, 1], got {sampling_strategy}"
            )
        if k_neighbors < 1:
            raise ValueError(f"k_neighbors must be positive, got {k_neighbors}")

        self.method = method
        self.sampling_strategy = sampling_strategy
        self.k_neighbors = k_neighbors
        self.random_state = random_state
        self.original_distribution: Dict[Any, int] = {}
        self.resampled_distribution: Dict[Any, int] = {}

        logger.info(
            f"ClassBalancer initialized: method={method}, "
            f"sampling_strategy={sampling_strategy}"
        )

    def _build_sampler(self, minority_count: int):
        """Create the imbalanced-learn sampler for the configured method."""
        k_neighbors = min(self.k_neighbors, minority_count - 1)
        if k_neighbors < self.k_neighbors:
            logger.warning(
                f"Minority class has only {minority_count} samples; "
                f"reducing k_neighbors from {self.k_neighbors} to {k_neighbors}"
            )

        if self.method == "smote":
            return SMOTE(
                sampling_strategy=self.sampling_strategy,
                k_neighbors=k_neighbors,
                random_state=self.random_state,
            )
        if self.method == "smote_tomek":
            return SMOTETomek(
                sampling_strategy=self.sampling_strategy,
                smote=SMOTE(
                    sampling_strategy=self.sampling_strategy,
                    k_neighbors=k_neighbors,
                    random_state=self.random_state,
                ),
                random_state=self.random_state,
            )
        return RandomUnderSampler(
            sampling_strategy=self.sampling_strategy,
            random_state=self.random_state,
        )

    def fold_sampler(self, y: Any, n_splits: int):
        """
        Build a sampler to run inside each training fold of a cross-validation.

        The neighbour count is sized for the smallest minority class a
        stratified training fold of ``y`` can hold.

        Args:
            y: Labels of the data that will be split into folds
            n_splits: Number of folds

        Returns:
            An imbalanced-learn sampler, or None when no resampling is needed
        """
        if self.method == "none":
            return None

        counts = pd.Series(np.asarray(y)).value_counts()
        if len(counts) != 2:
            raise ValueError(
                f"Balancing requires exactly two classes, found {len(counts)}"
            )
        if counts.min() / counts.max() >= self.sampling_strategy:
            return None

        fold_minority = int(counts.min()) * (n_splits - 1) // n_splits
        if fold_minority < 2:
            raise ValueError(
                f"Minority class too small to resample inside {n_splits} folds"
            )
        return self._build_sampler(fold_minority)

    def balance(self, X: Any, y: Any) -> Tuple[Any, Any]:
        """
        Resample features and labels.

        DataFrame and Series inputs come back as DataFrame and Series with the
        same column names; the row index is renumbered because synthetic rows
        have no identity.

        Args:
            X: Feature matrix
            y: Binary labels

        Returns:
            Tuple of (resampled X, resampled y)
        """
        counts = pd.Series(np.asarray(y)).value_counts()
        self.original_distribution = counts.sort_index().to_dict()

        if len(counts) != 2:
            raise ValueError(
                f"Balancing requires exactly two classes, found {len(counts)}: "
                f"{self.original_distribution}"
            )

        if self.method == "none":
            logger.info("Resampling disabled, returning data unchanged")
            self.resampled_distribution = self.original_distribution
            return X, y

        minority_count = int(counts.min())
        if minority_count < 2:
            raise ValueError(
                "The minority class needs at least 2 samples to be resampled"
            )

        current_ratio = counts.min() / counts.max()
        if current_ratio >= self.sampling_strategy:
            logger.info(
                f"Class ratio {current_ratio:.3f} already meets the target "
                f"{self.sampling_strategy:.3f}; no resampling needed"
            )
            self.resampled_distribution = self.original_distribution
            return X, y

        logger.info(f"Applying {self.method} for class imbalance...")
        sampler = self._build_sampler(minority_count)
        X_resampled, y_resampled = sampler.fit_resample(X, y)

        if isinstance(y, pd.Series) and isinstance(y_resampled, pd.Series):
            y_resampled.name = y.name

        self.resampled_distribution = (
            pd.Series(np.asarray(y_resampled)).value_counts().sort_index().to_dict()
        )

        logger.info(
            f"Original shape: {np.shape(X)}, Resampled shape: {np.shape(X_resampled)}"
        )
        logger.info(f"Original class distribution: {self.original_distribution}")
        logger.info(f"Resampled class distribution: {self.resampled_distribution}")

        return X_resampled, y_resampled

    def balance_dataframe(
        self,
        df: pd.DataFrame,
        target_column: str = TARGET_COLUMN,
        id_column: Optional[str] = ID_COLUMN,
    ) -> pd.DataFrame:
        """
        Balance a full table that holds features and the label.

        The identifier column is dropped because synthetic rows have none.
        All feature columns must be numeric (encode categoricals first).

        Args:
            df: Table with features and label
            target_column: Name of the label column
            id_column: Name of the identifier column, if any

        Returns:
            Balanced table with the label as the last column
        """
        if target_column not in df.columns:
            raise ValueError(f"Target column '{target_column}' not found in DataFrame")

        drop_cols = [target_column]
        if id_column is not None and id_column in df.columns:
            drop_cols.append(id_column)

        X = df.drop(columns=drop_cols)
        y = df[target_column]

        X_resampled, y_resampled = self.balance(X, y)

        balanced = pd.DataFrame(X_resampled, columns=X.columns).reset_index(drop=True)
        balanced[target_column] = np.asarray(y_resampled)
        return balanced

    def save_balanced_data(
        self,
        X: Any,
        y: Any,
        filepath: Optional[Path] = None,
        target_column: str = TARGET_COLUMN,
    ) -> Path:
        """
        Write resampled features and labels as one CSV table.

        Args:
            X: Resampled features (DataFrame or array)
            y: Resampled labels
            filepath: Destination (uses config default if None)
            target_column: Column name for the labels

        Returns:
            Path the table was written to
        """
        filepath = Path(filepath) if filepath else BALANCED_DATA_FILE

        df = pd.DataFrame(X).reset_index(drop=True)
        df[target_column] = np.asarray(y)
        save_dataframe(df, filepath)

        logger.info(f"Balanced data ({df.shape[0]} rows) saved to {filepath}")
        return filepath
