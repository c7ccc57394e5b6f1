"""
In-memory session state for adaptive tests.

A CATSession is created ``active`` and moves once, irreversibly, to
``completed`` (stopping criteria satisfied) or ``terminated`` (explicit abort
or pool exhausted). Histories are append-only: ``ability_history`` starts with
the seed estimate, so it is always one longer than ``administered_items``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from cat_engine.schemas.cat import ContentConstraint
from libs.domain_types import CATSessionStatus


@dataclass(frozen=True)
class AbilityEstimate:
    """One point of a session's ability trajectory."""

    value: float
    standard_error: float
    timestamp: datetime
    items_used: int


@dataclass(frozen=True)
class AdministeredItem:
    """Record of a scored item."""

    item_id: str
    response: Any
    response_time_ms: int
    is_correct: bool
    ability_before: float
    ability_after: float
    information_value: float
    timestamp: datetime


@dataclass
class CATSession:
    """Mutable state of one adaptive test attempt."""

    id: str
    assessment_id: str
    participant_id: str
    attempt: int
    current_ability: float
    ability_history: List[AbilityEstimate]
    administered_items: List[AdministeredItem]
    # Ordered so selection ties break on original pool order
    remaining_pool: List[str]
    sem: float
    reliability: float
    status: CATSessionStatus
    start_time: datetime
    end_time: Optional[datetime] = None
    termination_reason: Optional[str] = None
    # Selected by get_next_item, awaiting process_response
    pending_item_id: Optional[str] = None
    # Level of the confidence interval reported in the result
    confidence_level: float = 0.95
    # Read-only for the life of the session
    content_constraints: Dict[str, ContentConstraint] = field(default_factory=dict)
    item_categories: Dict[str, str] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status == CATSessionStatus.ACTIVE

    @property
    def dedup_key(self) -> Tuple[str, str, int]:
        return (self.assessment_id, self.participant_id, self.attempt)

    def administered_ids(self) -> List[str]:
        return [record.item_id for record in self.administered_items]


@dataclass
class CATResult:
    """Final summary of a finished session."""

    session_id: str
    final_ability: float
    sem: float
    reliability: float
    questions_administered: int
    total_time_ms: int
    termination_reason: Optional[str]
    confidence_interval: Tuple[float, float]
    percentile: float
