from __future__ import annotations

"""
Access policy: verified email → allow/deny against a static allow-list.

The allow-list is loaded once at process start and never mutated. An empty
allow-list is a server misconfiguration (`ConfigError`), never open access.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable
import logging

from nitroshare.core.exceptions import ConfigError, Forbidden
from nitroshare.core.identity import IdentityProfile
from nitroshare.storage.partitions import partition_key

logger = logging.getLogger("nitroshare.access")

__all__ = ["Principal", "AccessPolicy", "normalize_email"]


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True)
class Principal:
    """The sole identity unit: a verified, allow-listed email."""

    email: str

    @property
    def partition_key(self) -> str:
        return partition_key(self.email)


class AccessPolicy:
    def __init__(self, allowed_emails: Iterable[str]) -> None:
        self.allowed: FrozenSet[str] = frozenset(normalize_email(e) for e in allowed_emails if e and e.strip())

    def check(self, email: str) -> Principal:
        """Return the principal for `email` or raise.

        Raises
        ------
        ConfigError
            The allow-list is empty.
        Forbidden
            The email is not a member.
        """
        if not self.allowed:
            logger.error("Access check with an empty allow-list")
            raise ConfigError()

        normalized = normalize_email(email)
        if normalized not in self.allowed:
            logger.warning("Access denied for: %s", normalized)
            raise Forbidden(normalized)

        logger.info("Access granted for: %s", normalized)
        return Principal(email=normalized)

    def authorize(self, profile: IdentityProfile) -> Principal:
        return self.check(profile.email)
