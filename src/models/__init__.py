"""
Data models for the Confidential Investment Club.
"""

from src.models.investment import (
    ClubStatistics,
    InvestmentInput,
    InvestmentRecord,
    UnverifiedAmount,
    VerifiedAmount,
    validate_investment_input,
)

__all__ = [
    "InvestmentRecord",
    "UnverifiedAmount",
    "VerifiedAmount",
    "ClubStatistics",
    "InvestmentInput",
    "validate_investment_input",
]
