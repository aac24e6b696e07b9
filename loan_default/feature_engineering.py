"""
Feature engineering module for loan default prediction.

This module derives affordability ratios, age and employment durations,
external credit score aggregates and household indicators from the cleaned
application table.
"""

from pathlib import Path
from typing import List, Optional
import numpy as np
import pandas as pd
import sys

sys.path.append(str(Path(__file__).parent.parent))
from loan_default.utils import setup_logging
from config import FEATURE_CONFIG

logger = setup_logging(__name__)

DAYS_PER_YEAR = 365.25


def safe_divide(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    """Element-wise division where a zero or missing denominator yields 0."""
    result = numerator / denominator.replace(0, np.nan)
    return result.replace([np.inf, -np.inf], np.nan).fillna(0)


class FeatureEngineer:
    """
    Class for engineering features from loan application data.

    Every step is toggled by the feature configuration and silently skipped
    when the columns it needs are absent, so the engineer can run on partial
    tables.
    """

    def __init__(self, config: Optional[dict] = None):
        """
        Initialize FeatureEngineer.

        Args:
            config: Feature engineering configuration (uses defaults if None)
        """
        self.config = FEATURE_CONFIG if config is None else config
        self.engineered_features = []
        logger.info("FeatureEngineer initialized")

    def _register(self, *names: str) -> None:
        for name in names:
            if name not in self.engineered_features:
                self.engineered_features.append(name)

    def create_credit_ratio_features(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Create affordability ratios from loan amounts and income.

        - CREDIT_INCOME_RATIO: loan amount relative to annual income
        - ANNUITY_INCOME_RATIO: yearly repayment burden relative to income
        - CREDIT_TERM: annuity as a fraction of credit (inverse of loan length)
        - GOODS_CREDIT_RATIO: financed goods price relative to credit

        Args:
            df: Input DataFrame

        Returns:
            DataFrame with new features
        """
        if not self.config.get("credit_ratios", False):
            return df

        df_new = df.copy()

        if "AMT_CREDIT" in df_new.columns and "AMT_INCOME_TOTAL" in df_new.columns:
            df_new["CREDIT_INCOME_RATIO"] = safe_divide(
                df_new["AMT_CREDIT"], df_new["AMT_INCOME_TOTAL"]
            )
            self._register("CREDIT_INCOME_RATIO")

        if "AMT_ANNUITY" in df_new.columns and "AMT_INCOME_TOTAL" in df_new.columns:
            df_new["ANNUITY_INCOME_RATIO"] = safe_divide(
                df_new["AMT_ANNUITY"], df_new["AMT_INCOME_TOTAL"]
            )
            self._register("ANNUITY_INCOME_RATIO")

        if "AMT_ANNUITY" in df_new.columns and "AMT_CREDIT" in df_new.columns:
            df_new["CREDIT_TERM"] = safe_divide(
                df_new["AMT_ANNUITY"], df_new["AMT_CREDIT"]
            )
            self._register("CREDIT_TERM")

        if "AMT_GOODS_PRICE" in df_new.columns and "AMT_CREDIT" in df_new.columns:
            df_new["GOODS_CREDIT_RATIO"] = safe_divide(
                df_new["AMT_GOODS_PRICE"], df_new["AMT_CREDIT"]
            )
            self._register("GOODS_CREDIT_RATIO")

        logger.info("Created credit ratio features")
        return df_new

    def create_age_employment_features(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Convert day offsets into years and relate employment length to age.

        DAYS_BIRTH and DAYS_EMPLOYED are negative offsets from the application
        date.

        Args:
            df: Input DataFrame

        Returns:
            DataFrame with new features
        """
        if not self.config.get("age_employment", False):
            return df

        df_new = df.copy()

        if "DAYS_BIRTH" in df_new.columns:
            df_new["AGE_YEARS"] = -df_new["DAYS_BIRTH"] / DAYS_PER_YEAR

            df_new["AGE_GROUP"] = pd.cut(
                df_new["AGE_YEARS"],
                bins=[0, 25, 35, 45, 55, 65, np.inf],
                labels=["18-25", "26-35", "36-45", "46-55", "56-65", "65+"],
            )
            df_new["AGE_GROUP"] = df_new["AGE_GROUP"].cat.codes

            self._register("AGE_YEARS", "AGE_GROUP")

        if "DAYS_EMPLOYED" in df_new.columns:
            df_new["YEARS_EMPLOYED"] = (-df_new["DAYS_EMPLOYED"] / DAYS_PER_YEAR).clip(
                lower=0
            )
            self._register("YEARS_EMPLOYED")

            if "DAYS_BIRTH" in df_new.columns:
                df_new["EMPLOYED_AGE_RATIO"] = safe_divide(
                    df_new["DAYS_EMPLOYED"], df_new["DAYS_BIRTH"]
                ).clip(lower=0)
                self._register("EMPLOYED_AGE_RATIO")

        logger.info("Created age and employment features")
        return df_new

    def create_external_score_features(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Aggregate the external credit bureau scores that survived cleaning.

        Args:
            df: Input DataFrame

        Returns:
            DataFrame with new features
        """
        if not self.config.get("external_scores", False):
            return df

        df_new = df.copy()
        score_cols = [col for col in df_new.columns if col.startswith("EXT_SOURCE_")]

        if not score_cols:
            return df_new

        scores = df_new[score_cols]
        df_new["EXT_SOURCE_MEAN"] = scores.mean(axis=1)
        df_new["EXT_SOURCE_MIN"] = scores.min(axis=1)
        df_new["EXT_SOURCE_MAX"] = scores.max(axis=1)
        df_new["EXT_SOURCE_PROD"] = scores.prod(axis=1)

        self._register(
            "EXT_SOURCE_MEAN", "EXT_SOURCE_MIN", "EXT_SOURCE_MAX", "EXT_SOURCE_PROD"
        )
        logger.info(f"Created external score aggregates from {score_cols}")
        return df_new

    def create_household_features(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Create features describing the applicant's household.

        Args:
            df: Input DataFrame

        Returns:
            DataFrame with new features
        """
        if not self.config.get("household", False):
            return df

        df_new = df.copy()

        if "CNT_FAM_MEMBERS" in df_new.columns:
            if "AMT_INCOME_TOTAL" in df_new.columns:
                df_new["INCOME_PER_PERSON"] = safe_divide(
                    df_new["AMT_INCOME_TOTAL"], df_new["CNT_FAM_MEMBERS"]
                )
                self._register("INCOME_PER_PERSON")

            if "CNT_CHILDREN" in df_new.columns:
                df_new["CHILDREN_RATIO"] = safe_divide(
                    df_new["CNT_CHILDREN"], df_new["CNT_FAM_MEMBERS"]
                )
                self._register("CHILDREN_RATIO")

        logger.info("Created household features")
        return df_new

    def engineer_all_features(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Apply all feature engineering steps.

        Args:
            df: Input DataFrame

        Returns:
            DataFrame with all engineered features
        """
        logger.info("=" * 80)
        logger.info("Starting feature engineering pipeline")
        logger.info("=" * 80)

        df_engineered = df.copy()

        df_engineered = self.create_credit_ratio_features(df_engineered)
        df_engineered = self.create_age_employment_features(df_engineered)
        df_engineered = self.create_external_score_features(df_engineered)
        df_engineered = self.create_household_features(df_engineered)

        n_new_features = len(self.engineered_features)
        logger.info(f"Created {n_new_features} new engineered features")
        logger.info(f"Engineered features: {self.engineered_features}")
        logger.info(f"Final feature count: {df_engineered.shape[1]}")

        logger.info("=" * 80)
        logger.info("Feature engineering pipeline complete")
        logger.info("=" * 80)

        return df_engineered

    def get_feature_names(self) -> List[str]:
        """
        Get list of engineered feature names.

        Returns:
            List of feature names
        """
        return self.engineered_features.copy()
