"""Heuristic discovery of the target table and its columns."""

from .resolver import TableResolver
from .classifier import ColumnClassifier

__all__ = ["TableResolver", "ColumnClassifier"]
