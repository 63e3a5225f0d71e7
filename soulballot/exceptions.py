"""
Soulballot Exceptions

Typed rejections raised by the credential registry and the proposal ledger.
Every concrete exception carries a stable ``code`` that is reported verbatim
to callers (``can_vote`` reasons, ``IssueResult.error``).
"""


class SoulballotError(Exception):
    """Base exception for Soulballot."""
    code = "Error"


# ── Categories ────────────────────────────────────────────────────────

class ValidationError(SoulballotError):
    """Caller supplied invalid input."""


class StateError(SoulballotError):
    """Operation is invalid for the current state."""


class AuthorizationError(SoulballotError):
    """Caller lacks the required standing."""


class DuplicationError(SoulballotError):
    """Operation would issue, use or count something twice."""


# ── Input validation ──────────────────────────────────────────────────

class EmptyTitleError(ValidationError):
    code = "EmptyTitle"


class NonPositiveDurationError(ValidationError):
    code = "NonPositiveDuration"


class InvalidIdentityError(ValidationError):
    code = "InvalidIdentity"


# ── State / sequencing ────────────────────────────────────────────────

class DeadlinePassedError(StateError):
    code = "DeadlinePassed"


class DeadlineNotReachedError(StateError):
    code = "DeadlineNotReached"


class AlreadyExecutedError(StateError):
    code = "AlreadyExecuted"


class UnknownProposalError(StateError):
    code = "UnknownProposal"


class UnknownCredentialError(StateError):
    code = "UnknownCredential"


class InvalidSnapshotError(StateError):
    """Restored or stored tables violate a credential or ballot invariant."""
    code = "InvalidSnapshot"


# ── Authorization / eligibility ───────────────────────────────────────

class UnauthorizedError(AuthorizationError):
    code = "Unauthorized"


class NoCredentialError(AuthorizationError):
    code = "NoCredential"


class NonTransferableError(AuthorizationError):
    """Credentials are bound to their identity for life."""
    code = "NonTransferable"


# ── Duplication ───────────────────────────────────────────────────────

class AlreadyIssuedError(DuplicationError):
    code = "AlreadyIssued"


class AlreadyUsedError(DuplicationError):
    code = "AlreadyUsed"


class DuplicateVoteError(DuplicationError):
    code = "DuplicateVote"


class CredentialAlreadyUsedError(DuplicationError):
    code = "CredentialAlreadyUsed"


class CapacityExceededError(DuplicationError):
    code = "CapacityExceeded"
