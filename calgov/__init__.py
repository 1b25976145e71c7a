"""
CAL Governance Package

Core imports are lazily loaded so that importing a submodule does not pull
in the whole contract set. For direct module access, import from submodules:

    from calgov.contracts import Chain, ContractAllowList
    from calgov.governance import CALGovernor, ProposalState
    from calgov.exceptions import Unauthorized
"""

__version__ = "0.1.0"


# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'Chain':
        from .contracts.state import Chain
        return Chain
    elif name == 'CALGovConfig':
        from .config.loader import CALGovConfig
        return CALGovConfig
    elif name == 'deploy_cal_governance':
        from .deploy import deploy_cal_governance
        return deploy_cal_governance
    elif name == 'CALGovError':
        from .exceptions import CALGovError
        return CALGovError
    raise AttributeError(f"module 'calgov' has no attribute {name!r}")

__all__ = ['Chain', 'CALGovConfig', 'deploy_cal_governance', 'CALGovError']
