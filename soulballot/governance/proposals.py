"""
Governance Proposals

Defines the proposal record, its time-derived lifecycle state, and the
tables a ProposalLedger owns.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, NamedTuple, Optional, Set, Tuple

from ..constants import STATS_PERCENT_SCALE
from ..exceptions import InvalidIdentityError, InvalidSnapshotError
from ..identity import normalize_identity


class ProposalState(IntEnum):
    """Lifecycle stage, evaluated against a clock reading."""
    OPEN = 0        # now < deadline, not executed
    CLOSED = 1      # now >= deadline, not executed
    EXECUTED = 2    # terminal


class ProposalStats(NamedTuple):
    """Vote totals with integer-truncated percentages."""
    total: int
    yes_pct: int
    no_pct: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "yesPct": self.yes_pct,
            "noPct": self.no_pct,
        }


@dataclass
class Proposal:
    """
    A titled, time-boxed yes/no ballot.

    Fields:
        id:           Sequential identifier
        title:        Non-empty title
        description:  Free text
        creator:      Canonical identity of the submitter
        created_at:   Clock reading at creation
        deadline:     created_at + duration, fixed at creation
        yes_votes:    Count of supporting votes
        no_votes:     Count of opposing votes
        executed:     Set once by execute, never cleared
        passed:       Execution result (None until executed)
        executed_at:  Clock reading at execution
    """
    id: int
    title: str
    description: str
    creator: str
    created_at: float
    deadline: float
    yes_votes: int = 0
    no_votes: int = 0
    executed: bool = False
    passed: Optional[bool] = None
    executed_at: Optional[float] = None

    @property
    def total_votes(self) -> int:
        return self.yes_votes + self.no_votes

    def state_at(self, now: float) -> ProposalState:
        if self.executed:
            return ProposalState.EXECUTED
        if now < self.deadline:
            return ProposalState.OPEN
        return ProposalState.CLOSED

    def stats(self) -> ProposalStats:
        total = self.total_votes
        if total == 0:
            return ProposalStats(0, 0, 0)
        return ProposalStats(
            total,
            self.yes_votes * STATS_PERCENT_SCALE // total,
            self.no_votes * STATS_PERCENT_SCALE // total,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "creator": self.creator,
            "createdAt": self.created_at,
            "deadline": self.deadline,
            "yesVotes": self.yes_votes,
            "noVotes": self.no_votes,
            "executed": self.executed,
            "passed": self.passed,
            "executedAt": self.executed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Proposal":
        return cls(
            id=data["id"],
            title=data["title"],
            description=data.get("description", ""),
            creator=data["creator"],
            created_at=data["createdAt"],
            deadline=data["deadline"],
            yes_votes=data.get("yesVotes", 0),
            no_votes=data.get("noVotes", 0),
            executed=data.get("executed", False),
            passed=data.get("passed"),
            executed_at=data.get("executedAt"),
        )

    def __repr__(self) -> str:
        return (
            f"<Proposal #{self.id} '{self.title}' "
            f"yes={self.yes_votes} no={self.no_votes} executed={self.executed}>"
        )


@dataclass
class ProposalStore:
    """
    Ballot tables owned by a single ledger.

    proposals:  proposal id → Proposal
    voted:      {(proposal_id, identity)} that have cast a vote
    """
    proposals: Dict[int, Proposal] = field(default_factory=dict)
    voted: Set[Tuple[int, str]] = field(default_factory=set)

    @property
    def next_id(self) -> int:
        return len(self.proposals)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposals": [p.to_dict() for p in self.proposals.values()],
            "voteRecords": [
                {"proposalId": pid, "identity": who}
                for pid, who in sorted(self.voted)
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProposalStore":
        """Rebuild tables from a snapshot; ids must be exactly 0..n-1."""
        proposals: Dict[int, Proposal] = {}
        for row in data.get("proposals", []):
            try:
                proposal = Proposal.from_dict(row)
                proposal.creator = normalize_identity(proposal.creator)
            except (KeyError, InvalidIdentityError) as e:
                raise InvalidSnapshotError(f"Malformed proposal row {row!r}: {e}") from e
            if proposal.id in proposals:
                raise InvalidSnapshotError(f"Duplicate proposal id #{proposal.id}")
            proposals[proposal.id] = proposal

        if sorted(proposals) != list(range(len(proposals))):
            raise InvalidSnapshotError(
                f"Proposal ids must be contiguous from 0, got {sorted(proposals)}"
            )

        voted = set()
        for v in data.get("voteRecords", []):
            if v["proposalId"] not in proposals:
                raise InvalidSnapshotError(f"Vote record for unknown proposal #{v['proposalId']}")
            try:
                voted.add((v["proposalId"], normalize_identity(v["identity"])))
            except InvalidIdentityError as e:
                raise InvalidSnapshotError(f"Malformed vote record {v!r}: {e}") from e
        return cls(proposals=proposals, voted=voted)
