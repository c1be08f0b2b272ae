"""
Civitas Governance Package

Core imports are lazily loaded so that importing a submodule does not pull
in the whole engine. For direct module access, import from submodules:

    from civitas.governance import VotingSessionManager
    from civitas.tokens import GovernanceToken
    from civitas.config import load_config
"""

# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'VotingSessionManager':
        from .governance import VotingSessionManager
        return VotingSessionManager
    elif name == 'GovernanceToken':
        from .tokens import GovernanceToken
        return GovernanceToken
    elif name == 'load_config':
        from .config import load_config
        return load_config
    raise AttributeError(f"module 'civitas' has no attribute {name!r}")

__all__ = ['VotingSessionManager', 'GovernanceToken', 'load_config']
