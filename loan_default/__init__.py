"""Loan default risk modelling package."""

from pathlib import Path
import sys

# Add parent directory to path so the top-level config module resolves
sys.path.append(str(Path(__file__).parent.parent))
