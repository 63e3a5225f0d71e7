"""
Soulballot Governance

Provides:
  - Credential / CredentialRegistry / CredentialCapability   (credentials.py)
  - Proposal / ProposalState / ProposalStats                 (proposals.py)
  - ProposalLedger                                           (ledger.py)
  - EventLog and notification records                        (events.py)
"""

from .credentials import (
    Credential,
    CredentialCapability,
    CredentialRegistry,
    CredentialStore,
    IssueResult,
)
from .events import (
    CredentialIssued,
    CredentialUsed,
    EventLog,
    ProposalCreated,
    ProposalExecuted,
    TransferRejected,
    VoteCast,
)
from .ledger import ProposalLedger
from .proposals import (
    Proposal,
    ProposalState,
    ProposalStats,
    ProposalStore,
)

__all__ = [
    # Credentials
    "Credential",
    "CredentialCapability",
    "CredentialRegistry",
    "CredentialStore",
    "IssueResult",
    # Events
    "CredentialIssued",
    "CredentialUsed",
    "EventLog",
    "ProposalCreated",
    "ProposalExecuted",
    "TransferRejected",
    "VoteCast",
    # Ballots
    "Proposal",
    "ProposalLedger",
    "ProposalState",
    "ProposalStats",
    "ProposalStore",
]
