"""
FastAPI dependencies shared by the routers.
"""

from typing import Optional

from core.database import get_session
from core.exceptions import ConfigurationError
from core.security import CredentialVault
from pipeline.locks import RunLockRegistry

# One registry per process: run exclusion is in-process only
run_locks = RunLockRegistry()

_vault: Optional[CredentialVault] = None


# Routers depend on get_db; tests override it with their own session factory
get_db = get_session


def get_vault() -> CredentialVault:
    """Process-wide credential vault. Raises ConfigurationError without ENCRYPTION_KEY."""
    global _vault
    if _vault is None:
        _vault = CredentialVault.from_settings()
    return _vault


def get_optional_vault() -> Optional[CredentialVault]:
    try:
        return get_vault()
    except ConfigurationError:
        return None


def get_run_locks() -> RunLockRegistry:
    return run_locks
