"""
Credential-Gated Proposal Ledger

Implements:
  - Proposal submission with a fixed deadline
  - One vote per identity and per credential on each proposal
  - Single, irrevocable execution after the deadline (strict majority)
  - Side-effect-free eligibility prediction and vote statistics
"""

import math
import time
from numbers import Real
from typing import Any, Callable, Dict, Optional, Tuple

from ..constants import OK_REASON
from ..exceptions import (
    AlreadyExecutedError,
    CredentialAlreadyUsedError,
    DeadlineNotReachedError,
    DeadlinePassedError,
    DuplicateVoteError,
    EmptyTitleError,
    InvalidSnapshotError,
    NoCredentialError,
    NonPositiveDurationError,
    SoulballotError,
    UnknownProposalError,
)
from ..identity import normalize_identity
from ..logger import get_logger
from .credentials import CredentialCapability
from .events import EventLog, ProposalCreated, ProposalExecuted, VoteCast
from .proposals import Proposal, ProposalState, ProposalStats, ProposalStore

logger = get_logger(__name__)


class ProposalLedger:
    """
    Owns proposals and vote records; consults a credential capability on
    every vote.

    Every mutating operation reads the clock once, runs all of its guards,
    and only then writes. A raised exception therefore leaves the ledger and
    the credential registry exactly as they were.
    """

    def __init__(
        self,
        credentials: CredentialCapability,
        store: Optional[ProposalStore] = None,
        events: Optional[EventLog] = None,
        time_fn: Callable[[], float] = time.time,
    ):
        """
        Args:
            credentials: Query and usage-marking surface of a credential registry
            store:       Proposal tables (a fresh store if omitted)
            events:      Notification sink (a private log if omitted)
            time_fn:     Clock, read once per operation
        """
        self._credentials = credentials
        self._store = store if store is not None else ProposalStore()
        self._events = events if events is not None else EventLog()
        self._time_fn = time_fn

    # ── Lookup ────────────────────────────────────────────────────────

    @property
    def events(self) -> EventLog:
        return self._events

    @property
    def proposal_count(self) -> int:
        return len(self._store.proposals)

    def proposal(self, proposal_id: int) -> Optional[Proposal]:
        return self._store.proposals.get(proposal_id)

    def _get_or_raise(self, proposal_id: int) -> Proposal:
        proposal = self.proposal(proposal_id)
        if proposal is None:
            raise UnknownProposalError(f"proposal #{proposal_id} does not exist")
        return proposal

    def has_voted(self, proposal_id: int, identity: Any) -> bool:
        try:
            voter = normalize_identity(identity)
        except SoulballotError:
            return False
        return (proposal_id, voter) in self._store.voted

    def state_of(self, proposal_id: int) -> ProposalState:
        return self._get_or_raise(proposal_id).state_at(self._time_fn())

    # ── Create ────────────────────────────────────────────────────────

    def create_proposal(
        self,
        creator: Any,
        title: str,
        description: str,
        duration_seconds: float,
    ) -> int:
        """
        Submit a proposal open for *duration_seconds* from now.

        Returns the new proposal id.
        """
        now = self._time_fn()
        creator = normalize_identity(creator)
        if not isinstance(title, str) or not title.strip():
            raise EmptyTitleError("Proposal title cannot be empty")
        if (
            isinstance(duration_seconds, bool)
            or not isinstance(duration_seconds, Real)
            or not math.isfinite(duration_seconds)
            or duration_seconds <= 0
        ):
            raise NonPositiveDurationError(
                f"Duration must be a positive number of seconds, got {duration_seconds!r}"
            )

        pid = self._store.next_id
        if pid in self._store.proposals:
            raise InvalidSnapshotError(
                f"proposal #{pid} already exists; proposal table is not contiguous"
            )
        proposal = Proposal(
            id=pid,
            title=title,
            description="" if description is None else str(description),
            creator=creator,
            created_at=now,
            deadline=now + duration_seconds,
        )
        self._store.proposals[pid] = proposal

        self._events.emit(ProposalCreated(
            proposal_id=pid,
            creator=creator,
            title=title,
            deadline=proposal.deadline,
            timestamp=now,
        ))
        logger.info(f"Created proposal #{pid} ({title}) by {creator}, deadline={proposal.deadline}")
        return pid

    # ── Vote ──────────────────────────────────────────────────────────

    def _check_vote(self, voter: Any, proposal_id: int, now: float) -> Tuple[str, Proposal, int]:
        """Run every vote guard in order; return (voter, proposal, credential id)."""
        voter = normalize_identity(voter)
        proposal = self._get_or_raise(proposal_id)

        if now >= proposal.deadline:
            raise DeadlinePassedError(f"Voting on proposal #{proposal_id} has closed")
        if proposal.executed:
            raise AlreadyExecutedError(f"proposal #{proposal_id} has been executed")
        if (proposal_id, voter) in self._store.voted:
            raise DuplicateVoteError(f"{voter} already voted on proposal #{proposal_id}")

        cred_id = self._credentials.credential_of(voter)
        if cred_id is None:
            raise NoCredentialError(f"{voter} holds no credential")
        if self._credentials.is_used_for(proposal_id, cred_id):
            raise CredentialAlreadyUsedError(
                f"credential #{cred_id} already used on proposal #{proposal_id}"
            )
        return voter, proposal, cred_id

    def vote(self, voter: Any, proposal_id: int, support: bool) -> None:
        """
        Cast *voter*'s single vote on *proposal_id*.

        Raises the first failing guard's exception; on success the credential
        is marked used, the vote record set and one tally incremented.
        """
        now = self._time_fn()
        voter, proposal, cred_id = self._check_vote(voter, proposal_id, now)

        # Only fallible write; nothing in the ledger is touched until it succeeds
        self._credentials.mark_used(voter, proposal_id, cred_id)

        self._store.voted.add((proposal_id, voter))
        if support:
            proposal.yes_votes += 1
        else:
            proposal.no_votes += 1

        self._events.emit(VoteCast(
            proposal_id=proposal_id,
            voter=voter,
            credential_id=cred_id,
            support=bool(support),
            timestamp=now,
        ))
        logger.info(
            f"Vote: {voter} → {'YES' if support else 'NO'} on proposal #{proposal_id} "
            f"(credential #{cred_id})"
        )

    def can_vote(self, proposal_id: int, identity: Any) -> Tuple[bool, str]:
        """Predict the outcome of vote() without mutating anything."""
        try:
            self._check_vote(identity, proposal_id, self._time_fn())
        except SoulballotError as e:
            logger.debug(f"can_vote({proposal_id}, {identity!r}) → {e.code}")
            return False, e.code
        return True, OK_REASON

    # ── Execute ───────────────────────────────────────────────────────

    def execute(self, proposal_id: int, caller: Any = None) -> bool:
        """
        Close out *proposal_id* once its deadline has passed.

        Returns True iff yes_votes > no_votes; a tie does not pass.
        """
        now = self._time_fn()
        if caller is not None:
            caller = normalize_identity(caller)
        proposal = self._get_or_raise(proposal_id)

        if now < proposal.deadline:
            raise DeadlineNotReachedError(
                f"proposal #{proposal_id} is open until {proposal.deadline}"
            )
        if proposal.executed:
            raise AlreadyExecutedError(f"proposal #{proposal_id} has been executed")

        passed = proposal.yes_votes > proposal.no_votes
        proposal.executed = True
        proposal.passed = passed
        proposal.executed_at = now

        self._events.emit(ProposalExecuted(
            proposal_id=proposal_id,
            caller=caller,
            passed=passed,
            yes_votes=proposal.yes_votes,
            no_votes=proposal.no_votes,
            timestamp=now,
        ))
        logger.info(
            f"Executed proposal #{proposal_id}: {'PASSED' if passed else 'REJECTED'} "
            f"(yes={proposal.yes_votes}, no={proposal.no_votes})"
        )
        return passed

    # ── Queries ───────────────────────────────────────────────────────

    def stats(self, proposal_id: int) -> ProposalStats:
        return self._get_or_raise(proposal_id).stats()

    def to_dict(self) -> Dict[str, Any]:
        now = self._time_fn()
        return {
            "proposalCount": self.proposal_count,
            "proposals": {
                pid: {**p.to_dict(), "state": p.state_at(now).name}
                for pid, p in self._store.proposals.items()
            },
        }

    def __repr__(self) -> str:
        return f"<ProposalLedger proposals={self.proposal_count}>"
