from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for failures inside a sync pipeline."""


class CompanyNotFoundError(SyncError):
    pass


class CredentialError(SyncError):
    """Token missing or not decryptable for an integration."""


class UpstreamAPIError(SyncError):
    """Non-2xx response or an error payload from an external API."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MetaAdsAPIError(UpstreamAPIError):
    pass


class PipefyAPIError(UpstreamAPIError):
    pass


class WriteBatchError(SyncError):
    """A storage batch failed; remaining batches for the run were skipped."""

    def __init__(self, message: str, batches_written: int = 0) -> None:
        super().__init__(message)
        self.batches_written = batches_written
