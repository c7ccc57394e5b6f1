"""
Item exposure control for Computerized Adaptive Testing.

Over-exposure occurs when a small subset of items is administered
disproportionately often, compromising item security and making the test
predictable. Exposure counts are shared by every session of an engine and
persist until explicitly reset, so heavily used items lose ground across
examinees, not just within one test.

Methods (applied to the candidate list before selection):
    none            candidates unchanged
    sympson-hetter  drop items whose exposure rate has reached 0.3 since the
                    last reset
    randomesque     keep the 5 most informative items at ability 0
    progressive     stable sort by ascending exposure count

Exposure rate is defined as:
    rate_i = administrations_i / sessions_started

A rate only rises when the item is administered and decays as new sessions
start. Sympson-Hetter compares against the peak rate, so an item withheld for
reaching the cap is not released by later session starts.

References:
    - Sympson, J.B., & Hetter, R.D. (1985). Controlling item-exposure rates
      in computerized adaptive testing.
    - Kingsbury, G.G., & Zara, A.R. (1989). Procedures for selecting items for
      computerized adaptive tests.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from cat_engine.core.cat.irt import ItemParameters, fisher_information_2pl
from cat_engine.core.config import settings
from libs.domain_types import ExposureControlMethod

logger = logging.getLogger(__name__)

# Sympson-Hetter: items at or above this exposure rate are withheld
SYMPSON_HETTER_MAX_RATE = 0.3

# Randomesque: shortlist size (Kingsbury & Zara, 1989)
RANDOMESQUE_K = 5

# Ability at which randomesque ranks the pool
RANDOMESQUE_REFERENCE_ABILITY = 0.0

# Weighted selection: maximum down-weighting of the most exposed item
EXPOSURE_PENALTY = 0.5

ParameterLookup = Callable[[str], ItemParameters]


class ExposureMonitor:
    """
    Tracks per-item administration counts across all sessions of an engine.

    Thread-safe. Counts and peak rates only ever increase until ``reset``;
    increments are atomic and independent of any session lock.

    Example usage:
        monitor = ExposureMonitor(alert_threshold=0.15)
        monitor.record_session()
        monitor.record_administration("q-17")
        overexposed = monitor.check_and_alert()

    Attributes:
        alert_threshold: Exposure rate above which items are flagged (0.0-1.0).
    """

    def __init__(self, alert_threshold: Optional[float] = None):
        """
        Args:
            alert_threshold: Exposure rate threshold for alerts. Defaults to
                settings.CAT_EXPOSURE_ALERT_THRESHOLD.

        Raises:
            ValueError: If alert_threshold is not in range [0.0, 1.0].
        """
        if alert_threshold is None:
            alert_threshold = settings.CAT_EXPOSURE_ALERT_THRESHOLD
        if not (0.0 <= alert_threshold <= 1.0):
            raise ValueError(
                f"alert_threshold must be in [0.0, 1.0], got {alert_threshold}"
            )

        self._lock = threading.Lock()
        self._item_counts: Dict[str, int] = {}
        self._sessions_started = 0
        # Highest rate each item reached, sampled at each administration
        self._peak_rates: Dict[str, float] = {}
        self.alert_threshold = alert_threshold

    def record_administration(self, item_id: str) -> int:
        """
        Record that an item was administered (scored) in some session.

        Returns:
            The item's new administration count.
        """
        with self._lock:
            count = self._item_counts.get(item_id, 0) + 1
            self._item_counts[item_id] = count
            rate = self._rate_locked(item_id)
            if rate > self._peak_rates.get(item_id, 0.0):
                self._peak_rates[item_id] = rate
            return count

    def record_session(self) -> None:
        """Record that a session was started (the rate denominator)."""
        with self._lock:
            self._sessions_started += 1

    @property
    def sessions_started(self) -> int:
        with self._lock:
            return self._sessions_started

    def get_count(self, item_id: str) -> int:
        with self._lock:
            return self._item_counts.get(item_id, 0)

    def get_counts(self) -> Dict[str, int]:
        """Copy of the full item id -> count map."""
        with self._lock:
            return dict(self._item_counts)

    def _rate_locked(self, item_id: str) -> float:
        if self._sessions_started == 0:
            return 0.0
        return self._item_counts.get(item_id, 0) / self._sessions_started

    def get_exposure_rate(self, item_id: str) -> float:
        """
        Exposure rate of an item, or 0.0 before any session has started.
        """
        with self._lock:
            return self._rate_locked(item_id)

    def get_exposure_rates(self) -> Dict[str, float]:
        """
        Exposure rates of every item administered at least once.
        """
        with self._lock:
            return {item_id: self._rate_locked(item_id) for item_id in self._item_counts}

    def get_peak_exposure_rate(self, item_id: str) -> float:
        """Highest exposure rate the item has reached since the last reset."""
        with self._lock:
            return max(self._peak_rates.get(item_id, 0.0), self._rate_locked(item_id))

    def get_overexposed_items(self) -> List[Tuple[str, float]]:
        """
        Items whose rate exceeds the alert threshold, highest rate first.
        """
        rates = self.get_exposure_rates()
        overexposed = [
            (item_id, rate) for item_id, rate in rates.items() if rate > self.alert_threshold
        ]
        overexposed.sort(key=lambda x: x[1], reverse=True)
        return overexposed

    def check_and_alert(self) -> List[Tuple[str, float]]:
        """
        Check for overexposed items and log warnings.

        Snapshots counts under the lock and logs outside it.

        Returns:
            List of (item_id, exposure_rate) tuples for overexposed items.
        """
        with self._lock:
            if self._sessions_started == 0:
                return []
            total = self._sessions_started
            overexposed = [
                (item_id, count / total, count)
                for item_id, count in self._item_counts.items()
                if count / total > self.alert_threshold
            ]
        overexposed.sort(key=lambda x: x[1], reverse=True)

        if overexposed:
            logger.warning(
                f"Exposure alert: {len(overexposed)} items exceed "
                f"{self.alert_threshold:.1%} threshold"
            )
            for item_id, rate, count in overexposed[:10]:
                logger.warning(
                    f"  Item {item_id}: {rate:.1%} exposure ({count}/{total} sessions)"
                )
            if len(overexposed) > 10:
                logger.warning(f"  ... and {len(overexposed) - 10} more items")

        return [(item_id, rate) for item_id, rate, _ in overexposed]

    def reset(self) -> None:
        """Clear every counter, including the session count and peak rates."""
        with self._lock:
            self._item_counts.clear()
            self._peak_rates.clear()
            self._sessions_started = 0
        logger.info("ExposureMonitor counters reset")


def apply_sympson_hetter(
    candidates: Sequence[str],
    monitor: ExposureMonitor,
    max_rate: float = SYMPSON_HETTER_MAX_RATE,
) -> List[str]:
    """Drop candidates whose exposure rate has reached max_rate since the last reset."""
    eligible = [
        item_id
        for item_id in candidates
        if monitor.get_peak_exposure_rate(item_id) < max_rate
    ]
    withheld = len(candidates) - len(eligible)
    if withheld:
        logger.debug(f"Sympson-Hetter withheld {withheld} of {len(candidates)} items")
    return eligible


def apply_randomesque(
    candidates: Sequence[str],
    get_params: ParameterLookup,
    k: int = RANDOMESQUE_K,
) -> List[str]:
    """
    Shortlist the k candidates with the highest 2PL information at ability 0.

    The ranking is fixed at the reference ability; selection among the
    shortlist then uses the current ability. Ties keep pool order.
    """
    if k <= 0:
        raise ValueError(f"k must be positive, got {k}")
    ranked = sorted(
        candidates,
        key=lambda item_id: fisher_information_2pl(
            RANDOMESQUE_REFERENCE_ABILITY, get_params(item_id)
        ),
        reverse=True,
    )
    return ranked[:k]


def apply_progressive(candidates: Sequence[str], monitor: ExposureMonitor) -> List[str]:
    """Order candidates by ascending exposure count; equal counts keep pool order."""
    counts = monitor.get_counts()
    return sorted(candidates, key=lambda item_id: counts.get(item_id, 0))


def apply_exposure_control(
    candidates: Sequence[str],
    method: Optional[ExposureControlMethod],
    monitor: ExposureMonitor,
    get_params: ParameterLookup,
) -> List[str]:
    """
    Apply the configured exposure control method to a candidate list.

    Args:
        candidates: Remaining item ids, in pool order.
        method: Exposure control method; None or NONE leaves the list as is.
        monitor: Engine-wide exposure counters.
        get_params: Item id -> ItemParameters lookup.

    Returns:
        The filtered and/or reordered candidate list.
    """
    if method == ExposureControlMethod.SYMPSON_HETTER:
        return apply_sympson_hetter(candidates, monitor)
    if method == ExposureControlMethod.RANDOMESQUE:
        return apply_randomesque(candidates, get_params)
    if method == ExposureControlMethod.PROGRESSIVE:
        return apply_progressive(candidates, monitor)
    return list(candidates)


def exposure_adjustment(count: int, max_count: int) -> float:
    """
    Weighted-selection multiplier: 1 - (count / max_count) * 0.5.

    Returns 1.0 when nothing has been administered yet.
    """
    if max_count <= 0:
        return 1.0
    return 1.0 - (count / max_count) * EXPOSURE_PENALTY
