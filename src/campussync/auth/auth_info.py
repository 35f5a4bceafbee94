"""Credential information attached to REST requests and realtime joins."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

ACCESS_TOKEN_ENV = "CAMPUSSYNC_ACCESS_TOKEN"


@dataclass(slots=True, frozen=True)
class AuthInfo:
    """
    Authentication information.

    The token is issued elsewhere (login flow and refresh are not handled
    here). It is sent as:
        - `Authorization: <token_type> <access_token>` on REST requests
        - `access_token` in the realtime channel join payload
    """

    access_token: str
    token_type: str = "Bearer"

    def __post_init__(self) -> None:
        if not isinstance(self.access_token, str) or not self.access_token.strip():
            raise ValueError("AuthInfo.access_token must be a non-empty string")
        if not isinstance(self.token_type, str) or not self.token_type.strip():
            raise ValueError("AuthInfo.token_type must be a non-empty string")

    @property
    def authorization_header(self) -> str:
        """Value for the HTTP Authorization header."""
        return f"{self.token_type} {self.access_token}"

    def headers(self) -> dict[str, str]:
        return {"Authorization": self.authorization_header}

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Optional[AuthInfo]:
        """Build AuthInfo from CAMPUSSYNC_ACCESS_TOKEN, or None when unset."""
        env = os.environ if environ is None else environ
        token = env.get(ACCESS_TOKEN_ENV, "").strip()
        if not token:
            return None
        return cls(access_token=token)

    def __repr__(self) -> str:
        return f"AuthInfo(token_type={self.token_type!r}, access_token='***')"
