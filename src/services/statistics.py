"""
Club Statistics Aggregator.

Pure derivation of club-wide metrics from a record set. No I/O, no caching:
the result depends only on the records passed in.
"""

from __future__ import annotations

from collections.abc import Iterable

from src.models.investment import ClubStatistics, InvestmentRecord


def compute_statistics(records: Iterable[InvestmentRecord]) -> ClubStatistics:
    """
    Derive club statistics from `records`.

    - total_proposals: number of records
    - verified_proposals: records whose amount was verified
    - total_investment: sum of clear amounts of verified records
    - active_members: distinct creators
    - avg_public_signal: mean public signal, 0.0 for no records

    Example:
        >>> compute_statistics([])
        ClubStatistics(total_proposals=0, verified_proposals=0, total_investment=0, active_members=0, avg_public_signal=0.0)
    """
    snapshot = list(records)
    if not snapshot:
        return ClubStatistics()

    verified_amounts = [r.clear_amount for r in snapshot if r.clear_amount is not None]
    return ClubStatistics(
        total_proposals=len(snapshot),
        verified_proposals=len(verified_amounts),
        total_investment=sum(verified_amounts),
        active_members=len({r.creator for r in snapshot}),
        avg_public_signal=sum(r.public_signal for r in snapshot) / len(snapshot),
    )
