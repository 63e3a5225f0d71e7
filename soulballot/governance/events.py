"""
Governance Notifications

Structured records emitted by every mutating operation for external
indexing. Records are observability only; no invariant depends on delivery.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..logger import get_logger

logger = get_logger(__name__)

OUTCOME_OK = "ok"


# ══════════════════════════════════════════════════════════════════════
#  EVENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CredentialIssued:
    """Emitted when a credential is bound to an identity."""
    credential_id: int
    owner: str
    timestamp: float
    outcome: str = OUTCOME_OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "CredentialIssued",
            "credentialId": self.credential_id,
            "owner": self.owner,
            "outcome": self.outcome,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class CredentialUsed:
    """Emitted when a credential is consumed for one proposal."""
    proposal_id: int
    credential_id: int
    caller: str
    timestamp: float
    outcome: str = OUTCOME_OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "CredentialUsed",
            "proposalId": self.proposal_id,
            "credentialId": self.credential_id,
            "caller": self.caller,
            "outcome": self.outcome,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class TransferRejected:
    """Emitted for every attempt to move or delegate a credential."""
    operation: str
    caller: Any
    credential_id: Optional[int]
    timestamp: float
    outcome: str = "NonTransferable"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "TransferRejected",
            "operation": self.operation,
            "caller": self.caller,
            "credentialId": self.credential_id,
            "outcome": self.outcome,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ProposalCreated:
    proposal_id: int
    creator: str
    title: str
    deadline: float
    timestamp: float
    outcome: str = OUTCOME_OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "ProposalCreated",
            "proposalId": self.proposal_id,
            "creator": self.creator,
            "title": self.title,
            "deadline": self.deadline,
            "outcome": self.outcome,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class VoteCast:
    proposal_id: int
    voter: str
    credential_id: int
    support: bool
    timestamp: float
    outcome: str = OUTCOME_OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "VoteCast",
            "proposalId": self.proposal_id,
            "voter": self.voter,
            "credentialId": self.credential_id,
            "support": self.support,
            "outcome": self.outcome,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ProposalExecuted:
    proposal_id: int
    caller: Optional[str]
    passed: bool
    yes_votes: int
    no_votes: int
    timestamp: float
    outcome: str = OUTCOME_OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "ProposalExecuted",
            "proposalId": self.proposal_id,
            "caller": self.caller,
            "passed": self.passed,
            "yesVotes": self.yes_votes,
            "noVotes": self.no_votes,
            "outcome": self.outcome,
            "timestamp": self.timestamp,
        }


# ══════════════════════════════════════════════════════════════════════
#  EVENT LOG
# ══════════════════════════════════════════════════════════════════════

class EventLog:
    """
    Append-only notification sink shared by the registry and the ledger.

    Subscribers are called after a record is stored. A failing subscriber is
    logged and skipped; it never aborts the operation that emitted the record.
    """

    def __init__(self):
        self._events: List[Any] = []
        self._subscribers: List[Callable[[Any], None]] = []

    def subscribe(self, fn: Callable[[Any], None]):
        self._subscribers.append(fn)

    def unsubscribe(self, fn: Callable[[Any], None]):
        if fn in self._subscribers:
            self._subscribers.remove(fn)

    def emit(self, event: Any):
        self._events.append(event)
        for fn in list(self._subscribers):
            try:
                fn(event)
            except Exception:
                logger.exception(
                    f"Notification subscriber {fn!r} failed on {type(event).__name__}"
                )

    @property
    def events(self) -> List[Any]:
        return list(self._events)

    def of_type(self, event_type: type) -> List[Any]:
        return [e for e in self._events if isinstance(e, event_type)]

    def __len__(self) -> int:
        return len(self._events)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventCount": len(self._events),
            "events": [e.to_dict() for e in self._events],
        }

    def __repr__(self) -> str:
        return f"<EventLog events={len(self._events)}>"
