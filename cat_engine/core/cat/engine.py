"""
CATEngine: Orchestrator for adaptive test sessions.

Drives the adaptive loop for any number of concurrent sessions:

    start_session -> get_next_item -> [delivery & grading elsewhere]
                  -> process_response -> get_next_item -> ...

until a stopping rule fires (``completed``), the pool runs out or the caller
aborts (``terminated``).

Sessions live in an in-memory registry. Each session has its own re-entrant
lock; the registry lock only guards insert and lookup, so operations on
different sessions never wait for each other. The item parameter store and
the exposure counters are shared by all sessions and guarded by their own
locks.
"""

import copy
import logging
import math
import random
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from cat_engine.core.cat.ability_estimation import Response, estimate_ability
from cat_engine.core.cat.events import CATEvent, EventBus, EventListener
from cat_engine.core.cat.exceptions import (
    DuplicateSessionError,
    InvalidResponseError,
    InvalidSessionError,
)
from cat_engine.core.cat.exposure_control import ExposureMonitor
from cat_engine.core.cat.irt import ItemParameters, information
from cat_engine.core.cat.item_bank import ItemParameterStore, question_category
from cat_engine.core.cat.item_selection import select_next_item
from cat_engine.core.cat.score_conversion import (
    ability_confidence_interval,
    ability_percentile,
)
from cat_engine.core.cat.session import (
    AbilityEstimate,
    AdministeredItem,
    CATResult,
    CATSession,
)
from cat_engine.core.cat.stopping_rules import check_stopping_criteria
from cat_engine.core.datetime_utils import elapsed_ms, utc_now
from cat_engine.core.logging_config import session_id_context
from cat_engine.schemas.cat import CATConfiguration, Question, QuestionResponse
from libs.domain_types import CATEventType, CATSessionStatus, IRTModel, TerminationReason
from libs.observability import observability

logger = logging.getLogger(__name__)

# Seed precision of a new session
INITIAL_SEM = 1.0
INITIAL_RELIABILITY = 0.0


def compute_sem(
    item_params: Sequence[ItemParameters], ability: float, model: IRTModel
) -> float:
    """
    Standard error of measurement: 1 / sqrt(total information).

    Returns 1.0 when the administered items carry no information.
    """
    total_information = sum(information(params, ability, model) for params in item_params)
    if total_information <= 0:
        return 1.0
    return 1.0 / math.sqrt(total_information)


def compute_reliability(sem: float) -> float:
    """reliability = 1 - SEM^2. Not clamped; negative when SEM > 1."""
    return 1.0 - sem * sem


@dataclass
class SessionHandle:
    """A registered session plus the lock serializing operations on it."""

    session: CATSession
    lock: threading.RLock = field(default_factory=threading.RLock)


class SessionRegistry:
    """Thread-safe session map with one session per (assessment, participant, attempt)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: Dict[str, SessionHandle] = {}
        self._keys: Dict[Tuple[str, str, int], str] = {}

    def add(self, session: CATSession) -> SessionHandle:
        """
        Register a new session.

        Raises:
            DuplicateSessionError: If a session exists for the same
                (assessment_id, participant_id, attempt).
        """
        key = session.dedup_key
        with self._lock:
            existing = self._keys.get(key)
            if existing is not None:
                raise DuplicateSessionError(
                    "Session already exists for this assessment attempt",
                    context={
                        "assessment_id": session.assessment_id,
                        "participant_id": session.participant_id,
                        "attempt": session.attempt,
                        "session_id": existing,
                    },
                )
            handle = SessionHandle(session=session)
            self._handles[session.id] = handle
            self._keys[key] = session.id
            return handle

    def get(self, session_id: str) -> Optional[SessionHandle]:
        with self._lock:
            return self._handles.get(session_id)

    def handles(self) -> List[SessionHandle]:
        with self._lock:
            return list(self._handles.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)


class CATEngine:
    """
    Orchestrator for Computerized Adaptive Testing sessions.

    Manages:
    - Session start with default IRT parameters for uncalibrated items
    - Stopping criteria evaluation before each selection
    - Item selection with exposure control and content constraints
    - Response scoring and ability re-estimation
    - Lifecycle events for the orchestration layer
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        exposure_monitor: Optional[ExposureMonitor] = None,
        item_store: Optional[ItemParameterStore] = None,
        event_bus: Optional[EventBus] = None,
    ):
        """
        Args:
            rng: Random source for default discrimination draws and weighted
                selection. Pass a seeded instance for reproducible runs.
            exposure_monitor: Exposure counters; a fresh monitor by default.
            item_store: Item parameter store; a fresh store by default.
            event_bus: Event bus; a fresh bus by default.
        """
        self._rng = rng
        self._sessions = SessionRegistry()
        self.exposure = exposure_monitor or ExposureMonitor()
        self.items = item_store or ItemParameterStore(rng=rng)
        self.events = event_bus or EventBus()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, listener: EventListener) -> None:
        """Register a listener for every lifecycle event of this engine."""
        self.events.subscribe(listener)

    def unsubscribe(self, listener: EventListener) -> bool:
        return self.events.unsubscribe(listener)

    def _publish(
        self,
        event_type: CATEventType,
        session: Optional[CATSession] = None,
        **payload: Any,
    ) -> None:
        snapshot = copy.deepcopy(session) if session is not None else None
        self.events.publish(CATEvent(type=event_type, session=snapshot, payload=payload))

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    @contextmanager
    def _session_scope(self, session_id: str) -> Iterator[CATSession]:
        """
        Lock an active session for one operation.

        Raises:
            InvalidSessionError: If the session is unknown or not active.
        """
        handle = self._sessions.get(session_id)
        if handle is None:
            raise InvalidSessionError(
                "Invalid or inactive CAT session", context={"session_id": session_id}
            )
        token = session_id_context.set(session_id)
        try:
            with handle.lock:
                if not handle.session.is_active:
                    raise InvalidSessionError(
                        "Invalid or inactive CAT session",
                        context={
                            "session_id": session_id,
                            "status": handle.session.status.value,
                        },
                    )
                yield handle.session
        finally:
            session_id_context.reset(token)

    def start_session(
        self,
        assessment_id: str,
        participant_id: str,
        config: CATConfiguration,
        candidate_items: Sequence[Union[Question, Mapping[str, Any]]],
        attempt: int = 1,
    ) -> CATSession:
        """
        Create a new active session over a pool of candidate items.

        Unseen items get default IRT parameters; known items keep theirs.
        Duplicate item ids are dropped, keeping the first occurrence.

        Args:
            assessment_id: Assessment the session belongs to.
            participant_id: Participant taking the test.
            config: Adaptive testing configuration.
            candidate_items: Question bank items eligible for the session.
            attempt: Attempt number; one session per attempt.

        Returns:
            Snapshot of the new session.

        Raises:
            DuplicateSessionError: If the attempt already has a session.
        """
        questions = [
            item if isinstance(item, Question) else Question.model_validate(item)
            for item in candidate_items
        ]

        pool: List[str] = []
        item_categories: Dict[str, str] = {}
        for question in questions:
            if question.id in item_categories:
                continue
            pool.append(question.id)
            item_categories[question.id] = question_category(question)

        self.items.register_questions(questions)

        now = utc_now()
        starting_ability = config.parameters.starting_ability
        session = CATSession(
            id=str(uuid.uuid4()),
            assessment_id=assessment_id,
            participant_id=participant_id,
            attempt=attempt,
            current_ability=starting_ability,
            ability_history=[
                AbilityEstimate(
                    value=starting_ability,
                    standard_error=INITIAL_SEM,
                    timestamp=now,
                    items_used=0,
                )
            ],
            administered_items=[],
            remaining_pool=pool,
            sem=INITIAL_SEM,
            reliability=INITIAL_RELIABILITY,
            status=CATSessionStatus.ACTIVE,
            start_time=now,
            confidence_level=config.stopping_criteria.confidence_interval,
            content_constraints={
                constraint.category: constraint
                for constraint in config.parameters.content_constraints
            },
            item_categories=item_categories,
        )

        handle = self._sessions.add(session)
        self.exposure.record_session()

        token = session_id_context.set(session.id)
        try:
            with handle.lock:
                logger.info(
                    f"CAT session started: assessment={assessment_id}, "
                    f"participant={participant_id}, attempt={attempt}, "
                    f"pool={len(pool)}, theta0={starting_ability:.2f}",
                    extra={"assessment_id": assessment_id},
                )
                self._publish(CATEventType.SESSION_STARTED, session)
                return copy.deepcopy(session)
        finally:
            session_id_context.reset(token)

    def get_next_item(self, session_id: str, config: CATConfiguration) -> Optional[str]:
        """
        Select the next item for a session, or end the session.

        Stopping criteria are checked first; a satisfied criterion completes
        the session. If no item can be selected the session is terminated
        with ``no_items``. Calling again before the pending item is answered
        returns the same item.

        Returns:
            The selected item id, or None when the session has ended.

        Raises:
            InvalidSessionError: If the session is unknown or not active.
        """
        with self._session_scope(session_id) as session:
            elapsed_minutes = elapsed_ms(session.start_time, utc_now()) / 60000.0
            decision = check_stopping_criteria(
                num_items=len(session.administered_items),
                sem=session.sem,
                reliability=session.reliability,
                elapsed_minutes=elapsed_minutes,
                criteria=config.stopping_criteria,
            )
            if decision.should_stop:
                self._finish(session, CATSessionStatus.COMPLETED, decision.reason)
                self._publish(
                    CATEventType.SESSION_COMPLETED, session, reason=decision.reason
                )
                return None

            if session.pending_item_id is not None:
                logger.debug(
                    f"Item {session.pending_item_id} still awaiting a response",
                    extra={"item_id": session.pending_item_id},
                )
                return session.pending_item_id

            with observability.start_span(
                "cat.select_item",
                attributes={
                    "cat.selection_method": config.item_selection.value,
                    "cat.pool_size": len(session.remaining_pool),
                },
            ) as span:
                selected = select_next_item(
                    remaining_pool=session.remaining_pool,
                    ability=session.current_ability,
                    method=config.item_selection,
                    get_params=self.items.require,
                    monitor=self.exposure,
                    administered_ids=session.administered_ids(),
                    item_categories=session.item_categories,
                    constraints=session.content_constraints,
                    exposure_control=config.parameters.exposure_control,
                    rng=self._rng,
                )
                span.set_attribute("cat.item_selected", selected is not None)

            if selected is None:
                reason = TerminationReason.NO_ITEMS.value
                logger.warning(
                    f"CAT session ran out of eligible items after "
                    f"{len(session.administered_items)} responses "
                    f"(remaining pool={len(session.remaining_pool)})"
                )
                self._finish(session, CATSessionStatus.TERMINATED, reason)
                self._publish(CATEventType.SESSION_TERMINATED, session, reason=reason)
                return None

            session.remaining_pool.remove(selected)
            session.pending_item_id = selected
            logger.debug(
                f"Selected item {selected} at theta={session.current_ability:.3f}",
                extra={"item_id": selected},
            )
            self._publish(CATEventType.ITEM_SELECTED, session, item_id=selected)
            return selected

    def process_response(
        self,
        session_id: str,
        item_id: str,
        response: QuestionResponse,
        config: CATConfiguration,
    ) -> AdministeredItem:
        """
        Score a response and re-estimate ability.

        The item must be the session's pending item or still in its remaining
        pool. Item information is evaluated at the new ability with the
        session's IRT model, and SEM/reliability are recomputed over every
        administered item with the current parameters.

        Returns:
            The new AdministeredItem record.

        Raises:
            InvalidSessionError: If the session is unknown or not active.
            InvalidResponseError: If the item was already administered or
                does not belong to the session.
        """
        with self._session_scope(session_id) as session:
            if item_id != session.pending_item_id and item_id not in session.remaining_pool:
                already = item_id in session.administered_ids()
                raise InvalidResponseError(
                    "Item already administered in this session"
                    if already
                    else "Item is not part of this session",
                    context={"session_id": session_id, "item_id": item_id},
                )

            model = config.algorithm
            previous: List[Response] = [
                (self.items.require(record.item_id), record.is_correct)
                for record in session.administered_items
            ]
            item_params = self.items.require(item_id)

            ability_before = session.current_ability
            with observability.start_span(
                "cat.estimate_ability",
                attributes={
                    "cat.estimation_method": config.ability_estimation.value,
                    "cat.items_used": len(previous) + 1,
                },
            ) as span:
                new_ability = estimate_ability(
                    config.ability_estimation,
                    previous,
                    (item_params, response.is_correct),
                    ability_before,
                    model,
                )
                span.set_attribute("cat.ability", new_ability)

            now = utc_now()
            record = AdministeredItem(
                item_id=item_id,
                response=response.response,
                response_time_ms=response.response_time_ms,
                is_correct=response.is_correct,
                ability_before=ability_before,
                ability_after=new_ability,
                information_value=information(item_params, new_ability, model),
                timestamp=now,
            )

            if item_id == session.pending_item_id:
                session.pending_item_id = None
            else:
                session.remaining_pool.remove(item_id)
            session.administered_items.append(record)
            session.current_ability = new_ability

            session.sem = compute_sem(
                [params for params, _ in previous] + [item_params], new_ability, model
            )
            session.reliability = compute_reliability(session.sem)
            session.ability_history.append(
                AbilityEstimate(
                    value=new_ability,
                    standard_error=session.sem,
                    timestamp=now,
                    items_used=len(session.administered_items),
                )
            )

            self.exposure.record_administration(item_id)

            logger.debug(
                f"Response to {item_id} ({'correct' if response.is_correct else 'incorrect'}): "
                f"theta {ability_before:.3f} -> {new_ability:.3f}, SEM={session.sem:.4f}",
                extra={"item_id": item_id},
            )
            self._publish(CATEventType.RESPONSE_PROCESSED, session, item=record)
            return record

    def terminate_session(self, session_id: str, reason: str) -> CATResult:
        """
        Abort an active session.

        Args:
            session_id: Session to terminate.
            reason: Free-form termination reason, recorded as given.

        Returns:
            The final CATResult.

        Raises:
            InvalidSessionError: If the session is unknown or already ended.
        """
        with self._session_scope(session_id) as session:
            self._finish(session, CATSessionStatus.TERMINATED, reason)
            self._publish(CATEventType.SESSION_TERMINATED, session, reason=reason)
            return self._build_result(session)

    def _finish(
        self, session: CATSession, status: CATSessionStatus, reason: Optional[str]
    ) -> None:
        """
        Move an active session to its terminal status. Caller holds the lock.

        An item still awaiting a response goes back to the remaining pool.
        """
        if session.pending_item_id is not None:
            logger.debug(
                f"Returning unanswered item {session.pending_item_id} to the pool",
                extra={"item_id": session.pending_item_id},
            )
            session.remaining_pool.append(session.pending_item_id)
            session.pending_item_id = None
        session.status = status
        session.termination_reason = reason
        session.end_time = utc_now()
        logger.info(
            f"CAT session {status.value}: reason={reason}, "
            f"items={len(session.administered_items)}, "
            f"theta={session.current_ability:.3f}, SEM={session.sem:.4f}",
            extra={"assessment_id": session.assessment_id},
        )
        self.exposure.check_and_alert()

    @staticmethod
    def _build_result(session: CATSession) -> CATResult:
        end_time = session.end_time or utc_now()
        return CATResult(
            session_id=session.id,
            final_ability=session.current_ability,
            sem=session.sem,
            reliability=session.reliability,
            questions_administered=len(session.administered_items),
            total_time_ms=elapsed_ms(session.start_time, end_time),
            termination_reason=session.termination_reason,
            confidence_interval=ability_confidence_interval(
                session.current_ability, session.sem, session.confidence_level
            ),
            percentile=ability_percentile(session.current_ability),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Optional[CATSession]:
        """Snapshot of a session, or None if unknown. Never mutates state."""
        handle = self._sessions.get(session_id)
        if handle is None:
            return None
        with handle.lock:
            return copy.deepcopy(handle.session)

    def _snapshots(self) -> List[CATSession]:
        snapshots = []
        for handle in self._sessions.handles():
            with handle.lock:
                snapshots.append(copy.deepcopy(handle.session))
        return snapshots

    def get_all_sessions(self) -> List[CATSession]:
        return self._snapshots()

    def get_sessions_by_participant(self, participant_id: str) -> List[CATSession]:
        return [s for s in self._snapshots() if s.participant_id == participant_id]

    def get_sessions_by_assessment(self, assessment_id: str) -> List[CATSession]:
        return [s for s in self._snapshots() if s.assessment_id == assessment_id]

    def get_result(self, session_id: str) -> CATResult:
        """
        Result of a completed or terminated session.

        Raises:
            InvalidSessionError: If the session is unknown or still active.
        """
        handle = self._sessions.get(session_id)
        if handle is None:
            raise InvalidSessionError(
                "Unknown CAT session", context={"session_id": session_id}
            )
        with handle.lock:
            if handle.session.is_active:
                raise InvalidSessionError(
                    "CAT session is still active", context={"session_id": session_id}
                )
            return self._build_result(handle.session)

    # ------------------------------------------------------------------
    # Parameter and exposure management
    # ------------------------------------------------------------------

    def update_item_parameters(self, item_id: str, params: ItemParameters) -> None:
        """
        Replace an item's IRT parameters.

        Takes effect for the next probability/information computation in any
        session; past AdministeredItem records are not rewritten.
        """
        self.items.update(item_id, params)
        self._publish(CATEventType.PARAMETERS_UPDATED, item_id=item_id, parameters=params)

    def get_item_parameters(self, item_id: str) -> Optional[ItemParameters]:
        return self.items.get(item_id)

    def get_exposure_rates(self) -> Dict[str, float]:
        """Snapshot of item id -> exposure rate. Never mutates state."""
        return self.exposure.get_exposure_rates()

    def get_exposure_counts(self) -> Dict[str, int]:
        return self.exposure.get_counts()

    def reset_exposure_rates(self) -> None:
        self.exposure.reset()
        self._publish(CATEventType.EXPOSURE_RATES_RESET)
