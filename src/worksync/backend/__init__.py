"""Backend access layer."""

from worksync.backend.client import BackendClient, BackendError, PullResult

__all__ = ["BackendClient", "BackendError", "PullResult"]
