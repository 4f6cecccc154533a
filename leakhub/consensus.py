"""
Consensus resolution for leak requests.

Responsibilities:
- Group the pending leaks of one request by text similarity.
- Pick the group backed by the most distinct submitters.
- Name the canonical leak and the users who verified it.

Non-Responsibilities:
- No database access.
- No mutation of persistent state.

Grouping compares each leak only against a group's representative text
(its first member), not against every member. A leak close to member #2
but not to member #1 starts its own group.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from .similarity import calculate_similarity

SIMILARITY_THRESHOLD = 0.85
MIN_DISTINCT_SUBMITTERS = 2


@dataclass(frozen=True)
class PendingLeak:
    """Snapshot of one submission as the resolver sees it."""

    leak_id: int
    leak_text: str
    submitted_by: Optional[int]
    is_fully_verified: bool = False


@dataclass
class SimilarityGroup:
    representative_text: str
    leak_ids: List[int] = field(default_factory=list)
    user_ids: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class ConsensusDecision:
    """Which leak to verify, who submitted it and who backed it."""

    leak_id: int
    submitted_by: int
    verifier_ids: Tuple[int, ...]


def group_similar_leaks(
    leaks: Sequence[PendingLeak],
    threshold: float = SIMILARITY_THRESHOLD,
    scorer: Callable[[str, str], float] = calculate_similarity,
) -> List[SimilarityGroup]:
    """
    Greedily assign each leak, in order, to the first group it matches.

    Args:
        leaks: Pending leaks in submission order
        threshold: Minimum score against a group's representative text
        scorer: Pairwise text similarity function

    Returns:
        Groups in creation order
    """
    groups: List[SimilarityGroup] = []

    for leak in leaks:
        matched = False
        for group in groups:
            if scorer(group.representative_text, leak.leak_text) >= threshold:
                # A submitter already in the group adds nothing new
                if leak.submitted_by not in group.user_ids:
                    group.leak_ids.append(leak.leak_id)
                    group.user_ids.append(leak.submitted_by)
                matched = True
                break

        if not matched:
            groups.append(SimilarityGroup(
                representative_text=leak.leak_text,
                leak_ids=[leak.leak_id],
                user_ids=[leak.submitted_by],
            ))

    return groups


def select_consensus_group(groups: Sequence[SimilarityGroup]) -> Optional[SimilarityGroup]:
    """Largest group by distinct submitters; the earliest group wins ties."""
    largest: Optional[SimilarityGroup] = None
    for group in groups:
        if len(group.user_ids) < MIN_DISTINCT_SUBMITTERS:
            continue
        if largest is None or len(group.user_ids) > len(largest.user_ids):
            largest = group
    return largest


def resolve_consensus(
    leaks: Sequence[PendingLeak],
    threshold: float = SIMILARITY_THRESHOLD,
) -> Optional[ConsensusDecision]:
    """
    Decide whether the leaks of a request agree well enough to verify one.

    Leaks without a submitter or already verified are ignored.

    Args:
        leaks: Leaks attached to the request, in submission order
        threshold: Similarity needed to join a group

    Returns:
        ConsensusDecision, or None when there is no consensus
    """
    pending = [
        leak for leak in leaks
        if leak.submitted_by is not None and not leak.is_fully_verified
    ]
    if len(pending) < MIN_DISTINCT_SUBMITTERS:
        return None

    submitters = {leak.submitted_by for leak in pending}
    if len(submitters) < MIN_DISTINCT_SUBMITTERS:
        return None

    winner = select_consensus_group(group_similar_leaks(pending, threshold=threshold))
    if winner is None:
        return None

    canonical_id = winner.leak_ids[0]
    canonical = next((leak for leak in pending if leak.leak_id == canonical_id), None)
    if canonical is None:
        return None

    verifier_ids = tuple(
        user_id for user_id in winner.user_ids if user_id != canonical.submitted_by
    )
    if not verifier_ids:
        return None

    return ConsensusDecision(
        leak_id=canonical.leak_id,
        submitted_by=canonical.submitted_by,
        verifier_ids=verifier_ids,
    )
