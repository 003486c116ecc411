"""
Concentration Analyzer - Distributional risk over participant balances
"""

import math
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from ..config import DELETED_SEED_ACCOUNT
from ..errors import InvalidAmount
from ..state.models import ParticipantStats, ParticipantStatus

SIZE_THRESHOLDS = [
    ("Shrimp", 0, 100),
    ("Fish", 100, 1_000),
    ("Dolphin", 1_000, 10_000),
    ("Shark", 10_000, 100_000),
    ("Whale", 100_000, float("inf")),
]


def _as_array(balances: Iterable[float]) -> np.ndarray:
    values = np.asarray(list(balances), dtype=float)
    if values.size and not np.all(np.isfinite(values)):
        raise InvalidAmount("Balances must be finite")
    if values.size and np.any(values < 0):
        raise InvalidAmount("Balances must be non-negative")
    return values


def herfindahl(balances: Iterable[float]) -> float:
    """
    Herfindahl-Hirschman Index over balances

    Returns:
        Sum of squared percentage shares (0-10000, higher = more concentrated);
        0 when the total is zero
    """
    values = _as_array(balances)
    total = values.sum()

    if total == 0:
        return 0.0

    shares = values / total * 100
    return float(np.sum(shares ** 2))


def gini(balances: Iterable[float]) -> float:
    """
    Gini coefficient over balances

    Returns:
        0 = equal distribution, 1 = maximum concentration; 0 for an empty
        or all-zero list
    """
    values = np.sort(_as_array(balances), kind="stable")
    n = values.size

    if n == 0 or values.sum() == 0:
        return 0.0

    index = np.arange(1, n + 1)
    coefficient = (2 * np.sum(index * values)) / (n * np.sum(values)) - (n + 1) / n
    return float(min(1.0, max(0.0, coefficient)))


def top_share(balances: Iterable[float], n: int) -> float:
    """Percentage of the total held by the n largest balances"""
    values = _as_array(balances)
    total = values.sum()

    if total == 0:
        return 0.0

    top = np.sort(values)[::-1][:n]
    return float(top.sum() / total * 100)


def hhi_label(hhi: float) -> str:
    if hhi > 2500:
        return "Highly concentrated"
    if hhi > 1500:
        return "Moderate"
    return "Competitive"


def gini_label(coefficient: float) -> str:
    if coefficient > 0.6:
        return "High inequality"
    if coefficient > 0.4:
        return "Moderate"
    return "Low inequality"


def size_buckets(balances: Iterable[float]) -> List[Dict]:
    """
    Group balances into size buckets by absolute value

    Returns:
        List of buckets with name, count, volume and percentage of total volume
    """
    values = [abs(float(b)) for b in balances]
    if not all(math.isfinite(v) for v in values):
        raise InvalidAmount("Balances must be finite")
    total_volume = sum(values)

    buckets = []
    for name, lo, hi in SIZE_THRESHOLDS:
        in_bucket = [v for v in values if lo <= v < hi]
        volume = sum(in_bucket)
        buckets.append({
            "name": name,
            "count": len(in_bucket),
            "volume": volume,
            "percentage": volume / total_volume * 100 if total_volume > 0 else 0.0,
        })

    return buckets


class ConcentrationAnalyzer:
    """Concentration and composition metrics for a pool's participants"""

    def __init__(
        self,
        participants: Dict[str, ParticipantStats],
        statuses: Optional[Dict[str, ParticipantStatus]] = None,
        excluded_addresses: Sequence[str] = (DELETED_SEED_ACCOUNT,),
    ):
        """
        Initialize analyzer

        Args:
            participants: Output of replay_events
            statuses: Optional output of classify_participants
            excluded_addresses: Addresses left out of the active supplier and
                borrower rankings (and so out of HHI, Gini and top-N shares)
        """
        self.participants = list(participants.values())
        self.statuses = statuses or {}
        self.excluded_addresses = set(excluded_addresses)

    def _active(self, participant_type: str) -> List[ParticipantStats]:
        active = [
            p for p in self.participants
            if p.participant_type == participant_type
            and p.net_amount > 0
            and p.address not in self.excluded_addresses
        ]
        return sorted(active, key=lambda p: p.net_amount, reverse=True)

    def active_suppliers(self) -> List[ParticipantStats]:
        return self._active("supplier")

    def active_borrowers(self) -> List[ParticipantStats]:
        return self._active("borrower")

    def concentration_metrics(self, top_n: int = 10) -> Dict[str, float]:
        """
        Supply and borrow concentration

        HHI and Gini are computed over suppliers with a positive balance.

        Returns:
            Dict with totals, top-N shares, top-1 balances, HHI and Gini
        """
        suppliers = self.active_suppliers()
        borrowers = self.active_borrowers()
        supply_balances = [p.net_amount for p in suppliers]
        borrow_balances = [p.net_amount for p in borrowers]

        hhi = herfindahl(supply_balances)
        coefficient = gini(supply_balances)

        return {
            "total_active_supply": sum(supply_balances),
            "total_borrow": sum(borrow_balances),
            "top_1_supply": supply_balances[0] if supply_balances else 0.0,
            "top_1_borrow": borrow_balances[0] if borrow_balances else 0.0,
            "supply_top_n_pct": top_share(supply_balances, top_n),
            "borrow_top_n_pct": top_share(borrow_balances, top_n),
            "hhi": hhi,
            "hhi_label": hhi_label(hhi),
            "gini": coefficient,
            "gini_label": gini_label(coefficient),
        }

    def composition_stats(self) -> Dict[str, float]:
        """
        Participant composition

        Returns:
            Dict with unique supplier/borrower counts, new/churned counts and flows
        """
        total_inflow = sum(p.total_inflow for p in self.participants)
        total_outflow = sum(p.total_outflow for p in self.participants)
        count = len(self.participants)

        return {
            "unique_suppliers": sum(1 for p in self.participants if p.participant_type == "supplier"),
            "unique_borrowers": sum(1 for p in self.participants if p.participant_type == "borrower"),
            "total_participants": count,
            "new_wallets": sum(1 for s in self.statuses.values() if s.is_new),
            "churned_wallets": sum(1 for s in self.statuses.values() if s.churned),
            "total_inflow": total_inflow,
            "total_outflow": total_outflow,
            "net_flow": total_inflow - total_outflow,
            "avg_tx_per_wallet": (
                sum(p.transaction_count for p in self.participants) / count if count else 0.0
            ),
        }

    def size_distribution(self) -> List[Dict]:
        return size_buckets(p.net_amount for p in self.participants)
