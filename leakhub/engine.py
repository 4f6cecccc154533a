"""
Consensus evaluation entry point.

evaluate_request() may run any number of times, concurrently, for any
request. Resolution is read-only; the only write is the guarded
LeakStore.apply_verification(), so redundant evaluations collapse into at
most one verification per request.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from .consensus import ConsensusDecision, resolve_consensus
from .logger import StructuredLogger, get_logger
from .storage import LeakStore


class EvaluationOutcome(str, enum.Enum):
    REQUEST_NOT_FOUND = "request_not_found"
    REQUEST_CLOSED = "request_closed"
    NO_DECISION = "no_decision"
    VERIFIED = "verified"
    DISCARDED = "discarded"


@dataclass(frozen=True)
class EvaluationResult:
    request_id: int
    outcome: EvaluationOutcome
    decision: Optional[ConsensusDecision] = None


class ConsensusEngine:
    """Runs consensus for a request and commits the result through the store."""

    def __init__(self, store: LeakStore, logger: Optional[StructuredLogger] = None):
        self.store = store
        self.logger = logger or get_logger()

    def evaluate_request(self, request_id: int) -> EvaluationResult:
        """
        Evaluate one request and verify a leak if its submitters agree.

        Args:
            request_id: Request to evaluate

        Returns:
            EvaluationResult describing what happened

        Raises:
            StorageError: If the database fails; safe to retry the whole call
        """
        self.logger.record_evaluation()

        state = self.store.load_request_state(request_id)
        if state is None:
            self.logger.warning("Request vanished before evaluation", request_id=request_id)
            return EvaluationResult(request_id, EvaluationOutcome.REQUEST_NOT_FOUND)
        if state.closed:
            self.logger.debug("Request already closed", request_id=request_id)
            return EvaluationResult(request_id, EvaluationOutcome.REQUEST_CLOSED)

        leaks = self.store.load_pending_submissions(request_id)
        decision = resolve_consensus(leaks)
        if decision is None:
            self.logger.debug("No consensus yet", request_id=request_id, submissions=len(leaks))
            return EvaluationResult(request_id, EvaluationOutcome.NO_DECISION)

        self.logger.record_decision()
        self.logger.info(
            "Consensus reached",
            request_id=request_id,
            leak_id=decision.leak_id,
            verifier_ids=list(decision.verifier_ids),
        )

        if not self.store.apply_verification(request_id, decision.leak_id, decision.verifier_ids):
            self.logger.record_discard()
            self.logger.info("Decision discarded, request already resolved", request_id=request_id)
            return EvaluationResult(request_id, EvaluationOutcome.DISCARDED, decision)

        self.logger.record_verification()
        return EvaluationResult(request_id, EvaluationOutcome.VERIFIED, decision)
