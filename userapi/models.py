"""Domain models for the user API."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class User:
    """Represents a user record stored in the database."""

    id: int
    name: str
    email: str


__all__ = ["User"]
