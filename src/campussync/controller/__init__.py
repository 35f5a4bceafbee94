"""REST controller exports for campussync."""

from __future__ import annotations

from .api_client import AuthFailureHook, CampusApiClient, RetryPolicy

__all__ = ["CampusApiClient", "RetryPolicy", "AuthFailureHook"]
