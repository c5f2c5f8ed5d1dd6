"""Contribution domain exports."""
from .entity import (
    Contribution,
    ContributionRecur,
    ContributionStatus,
    FinancialTransaction,
)
from .repository import ContributionRecurRepository, ContributionRepository

__all__ = [
    "Contribution",
    "ContributionRecur",
    "ContributionStatus",
    "FinancialTransaction",
    "ContributionRepository",
    "ContributionRecurRepository",
]
