"""
errors.py — Exception types for the creator sourcing pipeline.

Fatal:
  ConfigError          — bad settings or missing credentials; raised before any seed runs
  AuthError            — Airtable rejected the token; retrying every record is pointless

Recoverable:
  ProducerError        — actor call or dataset read failed; that seed is skipped
  TransientStoreError  — network / 429 / 5xx from Airtable; that record is not synced
  ValidationError      — Airtable rejected the field payload; that record is not synced
"""


class CreatorSourcingError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(CreatorSourcingError):
    pass


class ProducerError(CreatorSourcingError):
    pass


class StoreError(CreatorSourcingError):
    """Base class for Airtable failures. `status` is the HTTP code when known."""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status


class TransientStoreError(StoreError):
    pass


class ValidationError(StoreError):
    pass


class AuthError(StoreError):
    pass
