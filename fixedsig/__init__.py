"""
fixedsig — fixed-membership weighted multisig governance

Core imports are lazily loaded so the engine can be used without the node stack.
For direct module access, import from submodules:

    from fixedsig.multisig import VotingEngine, QueryLayer
    from fixedsig.storage import MemoryStore, SQLiteStore
    from fixedsig.exceptions import MultisigError
"""

# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy module loading to keep the node stack optional."""
    if name == 'VotingEngine':
        from .multisig import VotingEngine
        return VotingEngine
    elif name == 'QueryLayer':
        from .multisig import QueryLayer
        return QueryLayer
    elif name == 'MultisigError':
        from .exceptions import MultisigError
        return MultisigError
    raise AttributeError(f"module 'fixedsig' has no attribute {name!r}")

__all__ = ['VotingEngine', 'QueryLayer', 'MultisigError']
