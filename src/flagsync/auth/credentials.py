"""API credentials for the flag service (bearer token only)."""

from __future__ import annotations

from dataclasses import dataclass

MIN_TOKEN_LENGTH = 10


@dataclass(slots=True, frozen=True)
class ApiCredentials:
    """
    Credentials for the flag service REST API.

    token must be non-empty, at least 10 characters and contain no whitespace.
    project_id must be a non-empty string.
    """

    token: str
    project_id: str

    def __post_init__(self) -> None:
        if not isinstance(self.token, str) or not self.token:
            raise ValueError("API token is required and must be a string")
        if len(self.token) < MIN_TOKEN_LENGTH:
            raise ValueError("API token appears to be invalid (too short)")
        if any(ch.isspace() for ch in self.token):
            raise ValueError("API token contains invalid characters")

        if not isinstance(self.project_id, str) or not self.project_id.strip():
            raise ValueError("project_id must be a non-empty string")

    @property
    def authorization_header(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    def __repr__(self) -> str:
        return f"ApiCredentials(token='***', project_id={self.project_id!r})"
