"""
Configuration settings for the Loan Default Risk project.

This module contains all configuration parameters, paths, and hyperparameters
used by the cleaning, balancing, training and reporting steps. Values are
documented with the reasoning behind them where the choice is not obvious.
"""

from pathlib import Path
from typing import Dict, Any

# =============================================================================
# PROJECT PATHS
# =============================================================================
PROJECT_ROOT = Path(__file__).parent
DATA_DIR = PROJECT_ROOT / "data"
OUTPUT_DIR = PROJECT_ROOT / "outputs"
RESULTS_DIR = OUTPUT_DIR / "results"
MODEL_DIR = OUTPUT_DIR / "models"

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
RESULTS_DIR.mkdir(parents=True, exist_ok=True)
MODEL_DIR.mkdir(parents=True, exist_ok=True)

# =============================================================================
# DATA SOURCE CONFIGURATION
# =============================================================================
# Loan application table in the layout of Kaggle's "Home Credit Default Risk"
# application_train.csv (one row per application).
# Reference: https://www.kaggle.com/c/home-credit-default-risk
RAW_DATA_FILE = DATA_DIR / "application_train.csv"
CLEAN_DATA_FILE = DATA_DIR / "cleaned_applications.csv"
BALANCED_DATA_FILE = DATA_DIR / "balanced_train.csv"
PERFORMANCE_SUMMARY_FILE = OUTPUT_DIR / "model_performance_summary.csv"

ID_COLUMN = "SK_ID_CURR"
TARGET_COLUMN = "TARGET"

# =============================================================================
# REPRODUCIBILITY
# =============================================================================
RANDOM_STATE = 42

# =============================================================================
# DATA SPLIT CONFIGURATION
# =============================================================================
# Two-way stratified split: train (80%) / test (20%)
# Model selection happens through cross-validation on the training partition,
# so no separate validation partition is carved out.
TEST_SIZE = 0.2

# 5-fold CV is standard for datasets of this size (Kohavi, 1995)
CV_FOLDS = 5

# =============================================================================
# CLEANING CONFIGURATION
# =============================================================================
# Columns missing in more than 60% of rows carry too little signal to impute
# reliably (Home Credit building-information columns are typical offenders).
MISSING_VALUE_THRESHOLD = 0.6

# DAYS_EMPLOYED uses 365243 (~1000 years) as a placeholder for applicants with
# no current employment (mostly pensioners). It is replaced with NaN and
# flagged in DAYS_EMPLOYED_ANOM before imputation.
DAYS_EMPLOYED_ANOMALY = 365243

# Column-wise imputation rules. Supported strategies:
#   "median", "mean", "mode", "zero", "constant" (requires "value")
# Columns without a rule fall back to median (numeric) or "Unknown" (categorical).
# A column with an explicit rule is kept even above MISSING_VALUE_THRESHOLD.
IMPUTATION_RULES: Dict[str, Dict[str, Any]] = {
    # Annuity and goods price are skewed; the median is robust to that
    "AMT_ANNUITY": {"strategy": "median"},
    "AMT_GOODS_PRICE": {"strategy": "median"},
    # Family size is a small integer count; the most common value is sensible
    "CNT_FAM_MEMBERS": {"strategy": "mode"},
    # Car age is missing when the applicant owns no car
    "OWN_CAR_AGE": {"strategy": "zero"},
    # Missing bureau enquiries mean no enquiries were reported
    "AMT_REQ_CREDIT_BUREAU_YEAR": {"strategy": "zero"},
    "OCCUPATION_TYPE": {"strategy": "constant", "value": "Unknown"},
    "NAME_TYPE_SUITE": {"strategy": "constant", "value": "Unaccompanied"},
    "EXT_SOURCE_2": {"strategy": "median"},
    "EXT_SOURCE_3": {"strategy": "median"},
    "DAYS_EMPLOYED": {"strategy": "median"},
}

DEFAULT_CATEGORICAL_FILL = "Unknown"

# Outlier capping (winsorization) with a conservative 3x IQR multiplier.
# Capping preserves rank ordering while limiting extreme incomes/loan sizes.
OUTLIER_COLUMNS = [
    "AMT_INCOME_TOTAL",
    "AMT_CREDIT",
    "AMT_ANNUITY",
    "AMT_GOODS_PRICE",
]
OUTLIER_IQR_MULTIPLIER = 3.0

# =============================================================================
# ENCODING CONFIGURATION
# =============================================================================
# drop_first=True removes one dummy per categorical to avoid perfect
# collinearity in the logistic regression design matrix.
ONE_HOT_DROP_FIRST = True

# =============================================================================
# CLASS IMBALANCE HANDLING
# =============================================================================
# Strategy options: "smote", "class_weight", "both", "none"
# "smote" resamples the training partition; "class_weight" reweights the loss;
# "both" combines them.
IMBALANCE_STRATEGY = "smote"

# Resampler used when the strategy resamples:
# "smote", "smote_tomek", "undersample"
RESAMPLING_METHOD = "smote"

# SMOTE sampling strategy: minority/majority ratio after resampling.
# 1.0 yields equal class counts, which is what the balanced training table
# is expected to contain.
SMOTE_SAMPLING_STRATEGY = 1.0

# Number of nearest neighbours used to interpolate synthetic samples
# Reference: Chawla et al. (2002) - original SMOTE paper uses k=5
SMOTE_K_NEIGHBORS = 5

# =============================================================================
# MODEL HYPERPARAMETERS
# =============================================================================
MODEL_PARAMS: Dict[str, Dict[str, Any]] = {
    "elastic_net": {
        # Elastic-net penalty needs the saga solver
        "penalty": "elasticnet",
        "solver": "saga",
        # l1_ratio: 0.5 weights the L1 (sparsity) and L2 (shrinkage) terms equally
        # Reference: Zou & Hastie (2005) - Regularization via the Elastic Net
        "l1_ratio": 0.5,
        # C: inverse regularization strength
        "C": 1.0,
        # saga converges slowly on unscaled or wide data
        "max_iter": 5000,
        "class_weight": None,
        "random_state": RANDOM_STATE,
    },
    "svm": {
        # RBF kernel: good default for non-linear classification
        "kernel": "rbf",
        "C": 1.0,
        # gamma: 'scale' uses 1 / (n_features * X.var())
        "gamma": "scale",
        "class_weight": None,
        "probability": True,  # Required for predict_proba
        "random_state": RANDOM_STATE,
    },
    "random_forest": {
        # n_estimators: 200 trees provide stable predictions without excessive computation
        # Reference: Breiman (2001) - more trees reduce variance with diminishing returns
        "n_estimators": 200,
        # max_depth: limited to prevent memorising synthetic minority samples
        "max_depth": 15,
        "min_samples_split": 10,
        "min_samples_leaf": 4,
        "class_weight": None,
        "random_state": RANDOM_STATE,
        "n_jobs": -1,
    },
    "majority_baseline": {
        # Always predicts the most frequent class of the training labels
        "strategy": "most_frequent",
        "random_state": RANDOM_STATE,
    },
}

# SVC training time grows quadratically with samples; above this size the SVM
# is fit on a stratified subsample of the (balanced) training data.
SVM_MAX_TRAIN_SAMPLES = 10000

# =============================================================================
# FEATURE ENGINEERING SETTINGS
# =============================================================================
FEATURE_CONFIG = {
    "credit_ratios": True,
    "age_employment": True,
    "external_scores": True,
    "household": True,
}

# =============================================================================
# EVALUATION SETTINGS
# =============================================================================

# Decision threshold applied to predicted default probability
DECISION_THRESHOLD = 0.5

# =============================================================================
# VISUALIZATION SETTINGS
# =============================================================================
FIGURE_SIZE = (12, 8)
DPI = 150
FEATURE_IMPORTANCE_TOP_N = 20

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================
LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
