"""
Core utilities and configuration for the dealer inventory pipeline.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Database connection and session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities
    security: Credential vault for connection passwords

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import PathNotFoundError, CodecError
    from core.logging import setup_logging
    from core.security import CredentialVault

Example:
    # Initialize logging
    setup_logging()

    # Encrypt a connection password before storing it
    vault = CredentialVault.from_settings()
    ciphertext = vault.encrypt("s3cret")
"""
