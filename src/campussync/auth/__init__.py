"""Auth exports for campussync."""

from __future__ import annotations

from .auth_info import ACCESS_TOKEN_ENV, AuthInfo

__all__ = ["AuthInfo", "ACCESS_TOKEN_ENV"]
