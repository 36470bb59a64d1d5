# nitroshare/core/identity.py
from __future__ import annotations

"""
NitroShare · Identity verification
==================================
Turns an opaque bearer token into a verified profile (at least an email).

Two token shapes are recognized, each handled by a strategy exposing
`async verify(token) -> IdentityProfile`:

- `IdTokenStrategy`     signed identity token (RS256), verified with python-jose
                        against the provider's JWKS and the expected audience.
- `AccessTokenStrategy` plain access token, resolved through the provider's
                        userinfo endpoint.

`IdentityVerifier` tries its strategies in order and returns the first
success. When all of them fail it raises `AuthInvalid` (HTTP 401).

Notes
-----
- The JWKS document is cached in-process (`IDENTITY_JWKS_TTL_SECONDS`) and
  refreshed once when a token carries an unknown `kid` (provider key rotation).
- Strategies accept an optional `httpx` transport so tests can stub the
  provider with `httpx.MockTransport`.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Protocol, Sequence
import logging

import httpx
from fastapi import Request
from jose import ExpiredSignatureError, JWTError, jwt

from nitroshare.core.cache import TTLMap
from nitroshare.core.config import Settings
from nitroshare.core.exceptions import AuthInvalid, Unauthenticated

logger = logging.getLogger("nitroshare.auth")

__all__ = [
    "IdentityProfile",
    "VerificationFailed",
    "VerificationStrategy",
    "IdTokenStrategy",
    "AccessTokenStrategy",
    "IdentityVerifier",
    "get_bearer_token",
]


@dataclass(frozen=True)
class IdentityProfile:
    """Verified identity as reported by the provider."""

    email: str
    name: Optional[str] = None
    picture: Optional[str] = None
    source: str = ""
    claims: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)


class VerificationFailed(Exception):
    """A single strategy rejected the token (the chain moves on)."""


class VerificationStrategy(Protocol):
    name: str

    async def verify(self, token: str) -> IdentityProfile: ...


def _profile_from_claims(claims: Mapping[str, Any], *, source: str) -> IdentityProfile:
    email = claims.get("email")
    if not isinstance(email, str) or not email.strip():
        raise VerificationFailed("no email in profile")
    # Google uses `email_verified` in ID tokens and `verified_email` in userinfo v2.
    for flag in ("email_verified", "verified_email"):
        if claims.get(flag) is False or str(claims.get(flag)).lower() == "false":
            raise VerificationFailed("email not verified by provider")
    return IdentityProfile(
        email=email.strip(),
        name=claims.get("name"),
        picture=claims.get("picture"),
        source=source,
        claims=dict(claims),
    )


# ─────────────────────────────────────────────────────────────
# 🪪 Strategy 1: signed identity token
# ─────────────────────────────────────────────────────────────
class IdTokenStrategy:
    name = "id_token"

    def __init__(
        self,
        *,
        audience: Optional[str],
        issuers: FrozenSet[str],
        jwks_url: str,
        timeout: float = 10.0,
        jwks_ttl_seconds: float = 3600,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.audience = audience
        self.issuers = issuers
        self.jwks_url = jwks_url
        self.timeout = timeout
        self.jwks_ttl_seconds = jwks_ttl_seconds
        self._transport = transport
        self._cache = TTLMap(maxsize=4)

    async def _fetch_jwks(self) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.get(self.jwks_url)
            resp.raise_for_status()
            data = resp.json()
        if not isinstance(data, dict) or not isinstance(data.get("keys"), list):
            raise VerificationFailed("provider returned a malformed key set")
        return data

    async def _get_jwks(self, *, refresh: bool = False) -> Dict[str, Any]:
        cached = None if refresh else self._cache.get(self.jwks_url)
        if cached is not None:
            return cached
        try:
            jwks = await self._fetch_jwks()
        except (httpx.HTTPError, ValueError) as e:
            raise VerificationFailed(f"key set unavailable: {e}") from e
        self._cache.set(self.jwks_url, jwks, self.jwks_ttl_seconds)
        return jwks

    @staticmethod
    def _select_key(jwks: Mapping[str, Any], kid: Optional[str]) -> Optional[Dict[str, Any]]:
        keys: List[Dict[str, Any]] = list(jwks.get("keys", []))
        if kid is None:
            return keys[0] if len(keys) == 1 else None
        for k in keys:
            if k.get("kid") == kid:
                return k
        return None

    async def verify(self, token: str) -> IdentityProfile:
        if not self.audience:
            raise VerificationFailed("no audience configured")
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise VerificationFailed("not a signed token") from e

        kid = header.get("kid")
        key = self._select_key(await self._get_jwks(), kid)
        if key is None:
            key = self._select_key(await self._get_jwks(refresh=True), kid)
        if key is None:
            raise VerificationFailed(f"unknown signing key {kid!r}")

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=[key.get("alg") or "RS256"],
                audience=self.audience,
                options={"verify_at_hash": False},
            )
        except ExpiredSignatureError as e:
            raise VerificationFailed("token expired") from e
        except JWTError as e:
            raise VerificationFailed(f"signature or claims invalid: {e}") from e

        if self.issuers and claims.get("iss") not in self.issuers:
            raise VerificationFailed(f"unexpected issuer {claims.get('iss')!r}")
        return _profile_from_claims(claims, source=self.name)


# ─────────────────────────────────────────────────────────────
# 🔑 Strategy 2: access token → userinfo
# ─────────────────────────────────────────────────────────────
class AccessTokenStrategy:
    name = "access_token"

    def __init__(
        self,
        *,
        userinfo_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.userinfo_url = userinfo_url
        self.timeout = timeout
        self._transport = transport

    async def verify(self, token: str) -> IdentityProfile:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(self.userinfo_url, headers={"Authorization": f"Bearer {token}"})
        except httpx.HTTPError as e:
            raise VerificationFailed(f"userinfo request failed: {e}") from e

        if resp.status_code != 200:
            raise VerificationFailed(f"userinfo rejected token (HTTP {resp.status_code})")
        try:
            data = resp.json()
        except ValueError as e:
            raise VerificationFailed("userinfo returned invalid JSON") from e
        if not isinstance(data, dict):
            raise VerificationFailed("userinfo returned an unexpected payload")
        return _profile_from_claims(data, source=self.name)


# ─────────────────────────────────────────────────────────────
# ⛓️ Ordered chain
# ─────────────────────────────────────────────────────────────
class IdentityVerifier:
    """Ordered chain of verification strategies; first success wins."""

    def __init__(self, strategies: Sequence[VerificationStrategy]) -> None:
        if not strategies:
            raise ValueError("IdentityVerifier needs at least one strategy")
        self.strategies = tuple(strategies)

    @classmethod
    def from_settings(
        cls,
        cfg: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "IdentityVerifier":
        return cls(
            [
                IdTokenStrategy(
                    audience=cfg.GOOGLE_CLIENT_ID,
                    issuers=cfg.identity_issuers,
                    jwks_url=cfg.IDENTITY_JWKS_URL,
                    timeout=cfg.IDENTITY_HTTP_TIMEOUT_SECONDS,
                    jwks_ttl_seconds=cfg.IDENTITY_JWKS_TTL_SECONDS,
                    transport=transport,
                ),
                AccessTokenStrategy(
                    userinfo_url=cfg.IDENTITY_USERINFO_URL,
                    timeout=cfg.IDENTITY_HTTP_TIMEOUT_SECONDS,
                    transport=transport,
                ),
            ]
        )

    async def verify(self, token: str) -> IdentityProfile:
        failures: List[str] = []
        for strategy in self.strategies:
            try:
                profile = await strategy.verify(token)
            except VerificationFailed as e:
                failures.append(f"{strategy.name}: {e}")
                continue
            logger.debug("Token verified via %s for %s", strategy.name, profile.email)
            return profile
        logger.warning("Token verification failed (%s)", "; ".join(failures))
        raise AuthInvalid()


# ─────────────────────────────────────────────────────────────
# 📥 Extract Bearer Token from Authorization Header
# ─────────────────────────────────────────────────────────────
def get_bearer_token(request: Request) -> str:
    """Extract a Bearer token from the `Authorization` header (case-insensitive scheme)."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise Unauthenticated("Missing Authorization header")

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthenticated("Invalid Authorization scheme")

    token = parts[1].strip()
    if not token:
        raise Unauthenticated("Empty token")
    return token
