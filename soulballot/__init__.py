"""
Soulballot Package

Sybil-resistant ballots: one soulbound credential per identity, one vote per
credential per proposal. Core imports are lazily loaded; for direct access,
import from submodules:

    from soulballot.governance import CredentialRegistry, ProposalLedger
    from soulballot.exceptions import DuplicateVoteError
"""

# Lazy imports to avoid configuring logging on bare package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'CredentialRegistry':
        from .governance import CredentialRegistry
        return CredentialRegistry
    elif name == 'ProposalLedger':
        from .governance import ProposalLedger
        return ProposalLedger
    elif name == 'SoulballotError':
        from .exceptions import SoulballotError
        return SoulballotError
    raise AttributeError(f"module 'soulballot' has no attribute {name!r}")

__all__ = ['CredentialRegistry', 'ProposalLedger', 'SoulballotError']
