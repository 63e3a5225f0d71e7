"""
Eligibility Credentials

Implements the credential-issuance authority:
  - One credential per identity, ever
  - Sequential ids bounded by a fixed capacity
  - Batch issuance with per-identity results
  - Per-proposal usage marking (consumed once, never reset)
  - Unconditional rejection of every ownership-changing call
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from ..constants import CREDENTIAL_CAPACITY, SOULBALLOT_ADMIN
from ..exceptions import (
    AlreadyIssuedError,
    AlreadyUsedError,
    CapacityExceededError,
    DuplicationError,
    InvalidIdentityError,
    InvalidSnapshotError,
    NonTransferableError,
    UnauthorizedError,
    UnknownCredentialError,
    ValidationError,
)
from ..identity import normalize_identity
from ..logger import get_logger
from .events import CredentialIssued, CredentialUsed, EventLog, TransferRejected

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  RECORDS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Credential:
    """
    A soulbound eligibility credential.

    Fields:
        id:              Sequential identifier assigned at issuance
        owner:           Canonical identity; immutable
        issuance_index:  Position in issuance order (1-based count at issue time)
        issued_at:       Clock reading of the issuing operation
    """
    id: int
    owner: str
    issuance_index: int
    issued_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner": self.owner,
            "issuanceIndex": self.issuance_index,
            "issuedAt": self.issued_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        return cls(
            id=data["id"],
            owner=data["owner"],
            issuance_index=data["issuanceIndex"],
            issued_at=data["issuedAt"],
        )


@dataclass(frozen=True)
class IssueResult:
    """Outcome of one entry in a batch issuance."""
    identity: Any
    credential_id: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity": self.identity,
            "credentialId": self.credential_id,
            "ok": self.ok,
            "error": self.error,
        }


# ══════════════════════════════════════════════════════════════════════
#  STATE
# ══════════════════════════════════════════════════════════════════════

@dataclass
class CredentialStore:
    """
    Credential tables owned by a single registry.

    credentials:  credential id → Credential
    owner_index:  identity → credential id
    used:         {(proposal_id, credential_id)} already consumed
    """
    credentials: Dict[int, Credential] = field(default_factory=dict)
    owner_index: Dict[str, int] = field(default_factory=dict)
    used: Set[Tuple[int, int]] = field(default_factory=set)

    @property
    def issued_count(self) -> int:
        return len(self.credentials)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "credentials": [c.to_dict() for c in self.credentials.values()],
            "ownerIndex": dict(self.owner_index),
            "usage": [
                {"proposalId": pid, "credentialId": cid}
                for pid, cid in sorted(self.used)
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CredentialStore":
        """
        Rebuild tables from a snapshot.

        Raises InvalidSnapshotError unless ids are exactly 0..n-1, every
        owner is a valid identity holding one credential, the owner index (if
        present) agrees with the credential table, and every usage row names
        an existing credential.
        """
        credentials: Dict[int, Credential] = {}
        owner_index: Dict[str, int] = {}
        for row in data.get("credentials", []):
            try:
                cred = Credential.from_dict(row)
                cred = replace(cred, owner=normalize_identity(cred.owner))
            except (KeyError, InvalidIdentityError) as e:
                raise InvalidSnapshotError(f"Malformed credential row {row!r}: {e}") from e
            if cred.id in credentials:
                raise InvalidSnapshotError(f"Duplicate credential id #{cred.id}")
            if cred.owner in owner_index:
                raise InvalidSnapshotError(
                    f"{cred.owner} owns credentials #{owner_index[cred.owner]} and #{cred.id}"
                )
            credentials[cred.id] = cred
            owner_index[cred.owner] = cred.id

        if sorted(credentials) != list(range(len(credentials))):
            raise InvalidSnapshotError(
                f"Credential ids must be contiguous from 0, got {sorted(credentials)}"
            )

        if "ownerIndex" in data:
            try:
                declared = {
                    normalize_identity(owner): cid
                    for owner, cid in data["ownerIndex"].items()
                }
            except InvalidIdentityError as e:
                raise InvalidSnapshotError(f"Malformed owner index: {e}") from e
            if declared != owner_index:
                raise InvalidSnapshotError("Owner index does not match credential table")

        used = {(u["proposalId"], u["credentialId"]) for u in data.get("usage", [])}
        unknown = sorted(cid for _, cid in used if cid not in credentials)
        if unknown:
            raise InvalidSnapshotError(f"Usage rows reference unknown credentials {unknown}")

        return cls(credentials=credentials, owner_index=owner_index, used=used)


# ══════════════════════════════════════════════════════════════════════
#  CAPABILITY
# ══════════════════════════════════════════════════════════════════════

class CredentialCapability(ABC):
    """
    The narrow surface a ballot ledger may use.

    Queries plus the single permitted mutation, usage marking. Nothing here
    can create, move or rebind a credential.
    """

    @abstractmethod
    def holds_credential(self, identity: Any) -> bool:
        ...

    @abstractmethod
    def credential_of(self, identity: Any) -> Optional[int]:
        ...

    @abstractmethod
    def is_used_for(self, proposal_id: int, credential_id: int) -> bool:
        ...

    @abstractmethod
    def mark_used(self, caller: Any, proposal_id: int, credential_id: int) -> None:
        ...


# ══════════════════════════════════════════════════════════════════════
#  REGISTRY
# ══════════════════════════════════════════════════════════════════════

class CredentialRegistry(CredentialCapability):
    """
    Issues and tracks non-transferable eligibility credentials.

    Responsibilities:
        - Bind at most one credential to each identity
        - Cap total issuance at ``capacity``
        - Record per-proposal credential usage
        - Reject every transfer or approval outright
    """

    def __init__(
        self,
        admin: Optional[str] = None,
        capacity: int = CREDENTIAL_CAPACITY,
        store: Optional[CredentialStore] = None,
        events: Optional[EventLog] = None,
        time_fn: Callable[[], float] = time.time,
    ):
        """
        Args:
            admin:     Administrative identity; fixed for the registry's lifetime.
                       Falls back to SOULBALLOT_ADMIN when omitted
            capacity:  Maximum number of credentials ever issued
            store:     Credential tables (a fresh store if omitted)
            events:    Notification sink (a private log if omitted)
            time_fn:   Clock, read once per mutating operation
        """
        if capacity < 0:
            raise ValueError(f"Capacity cannot be negative, got {capacity}")
        if admin is None:
            admin = str(SOULBALLOT_ADMIN)
        self._admin = normalize_identity(admin)
        self._capacity = capacity
        self._store = store if store is not None else CredentialStore()
        self._events = events if events is not None else EventLog()
        self._time_fn = time_fn
        logger.info(f"Credential registry ready: admin={self._admin} capacity={capacity}")

    # ── Read-only views ───────────────────────────────────────────────

    @property
    def admin(self) -> str:
        return self._admin

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def total_issued(self) -> int:
        return self._store.issued_count

    @property
    def events(self) -> EventLog:
        return self._events

    def _canonical_or_none(self, identity: Any) -> Optional[str]:
        try:
            return normalize_identity(identity)
        except InvalidIdentityError:
            return None

    def holds_credential(self, identity: Any) -> bool:
        return self.credential_of(identity) is not None

    def credential_of(self, identity: Any) -> Optional[int]:
        """Credential id owned by *identity*, or None."""
        key = self._canonical_or_none(identity)
        if key is None:
            return None
        return self._store.owner_index.get(key)

    def credential(self, credential_id: int) -> Optional[Credential]:
        return self._store.credentials.get(credential_id)

    def owner_of(self, credential_id: int) -> str:
        cred = self.credential(credential_id)
        if cred is None:
            raise UnknownCredentialError(f"credential #{credential_id} does not exist")
        return cred.owner

    def is_used_for(self, proposal_id: int, credential_id: int) -> bool:
        return (proposal_id, credential_id) in self._store.used

    # ── Issuance ──────────────────────────────────────────────────────

    def _require_admin(self, caller: Any):
        if self._canonical_or_none(caller) != self._admin:
            raise UnauthorizedError(f"{caller!r} is not the registry admin")

    def _issue(self, identity: Any, now: float) -> int:
        owner = normalize_identity(identity)
        if owner in self._store.owner_index:
            raise AlreadyIssuedError(
                f"{owner} already holds credential #{self._store.owner_index[owner]}"
            )
        if self._store.issued_count >= self._capacity:
            raise CapacityExceededError(
                f"Credential capacity {self._capacity} reached"
            )

        cred_id = self._store.issued_count
        if cred_id in self._store.credentials:
            raise InvalidSnapshotError(
                f"credential #{cred_id} already exists; credential table is not contiguous"
            )
        cred = Credential(
            id=cred_id,
            owner=owner,
            issuance_index=cred_id + 1,
            issued_at=now,
        )
        self._store.credentials[cred_id] = cred
        self._store.owner_index[owner] = cred_id

        self._events.emit(CredentialIssued(credential_id=cred_id, owner=owner, timestamp=now))
        logger.info(f"Issued credential #{cred_id} to {owner}")
        return cred_id

    def issue(self, caller: Any, identity: Any) -> int:
        """
        Issue a credential to *identity* (admin only).

        Returns the new credential id.
        """
        now = self._time_fn()
        self._require_admin(caller)
        return self._issue(identity, now)

    def issue_batch(self, caller: Any, identities: Iterable[Any]) -> List[IssueResult]:
        """
        Issue to each identity independently.

        Ineligible entries are reported in their IssueResult and do not stop
        the remaining identities from being processed.
        """
        now = self._time_fn()
        self._require_admin(caller)

        results = []
        for identity in identities:
            try:
                cred_id = self._issue(identity, now)
            except (ValidationError, DuplicationError) as e:
                logger.warning(f"Batch issuance skipped {identity!r}: {e.code}")
                results.append(IssueResult(identity=identity, error=e.code))
            else:
                results.append(IssueResult(identity=identity, credential_id=cred_id))
        return results

    # ── Usage marking ─────────────────────────────────────────────────

    def mark_used(self, caller: Any, proposal_id: int, credential_id: int) -> None:
        """
        Consume *credential_id* for *proposal_id*.

        Only the credential owner or the admin may mark usage. A second call
        with the same arguments raises AlreadyUsedError.
        """
        now = self._time_fn()
        cred = self.credential(credential_id)
        if cred is None:
            raise UnknownCredentialError(f"credential #{credential_id} does not exist")

        acting = self._canonical_or_none(caller)
        if acting is None or acting not in (cred.owner, self._admin):
            raise UnauthorizedError(
                f"{caller!r} may not mark credential #{credential_id} as used"
            )

        key = (proposal_id, credential_id)
        if key in self._store.used:
            raise AlreadyUsedError(
                f"credential #{credential_id} already used for proposal #{proposal_id}"
            )

        self._store.used.add(key)
        self._events.emit(CredentialUsed(
            proposal_id=proposal_id,
            credential_id=credential_id,
            caller=acting,
            timestamp=now,
        ))
        logger.debug(f"credential #{credential_id} used for proposal #{proposal_id}")

    # ── Transfers (always rejected) ───────────────────────────────────

    def _reject_transfer(self, operation: str, caller: Any, credential_id: Optional[int]):
        self._events.emit(TransferRejected(
            operation=operation,
            caller=caller,
            credential_id=credential_id,
            timestamp=self._time_fn(),
        ))
        logger.warning(
            f"NonTransferable: {operation} by {caller!r} "
            f"(credential #{credential_id}) rejected"
        )
        raise NonTransferableError(
            f"Credentials are non-transferable; {operation} is not permitted"
        )

    def transfer(self, caller: Any, recipient: Any, credential_id: int):
        self._reject_transfer("transfer", caller, credential_id)

    def transfer_from(self, caller: Any, owner: Any, recipient: Any, credential_id: int):
        self._reject_transfer("transfer_from", caller, credential_id)

    def approve(self, caller: Any, operator: Any, credential_id: int):
        self._reject_transfer("approve", caller, credential_id)

    def set_approval_for_all(self, caller: Any, operator: Any, approved: bool):
        self._reject_transfer("set_approval_for_all", caller, None)

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "admin": self._admin,
            "capacity": self._capacity,
            "totalIssued": self.total_issued,
            "state": self._store.to_dict(),
        }

    def __repr__(self) -> str:
        return f"<CredentialRegistry issued={self.total_issued}/{self._capacity}>"
