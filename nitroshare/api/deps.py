from __future__ import annotations

"""
Request dependencies.

Process-wide collaborators (settings, identity verifier, access policy,
ingestor) are built once by `create_app` and kept on `app.state`; these
dependencies hand them to routes. Tests swap them by assigning to `app.state`.

Auth chain: bearer token → `IdentityVerifier` → `AccessPolicy` → `Principal`.
"""

from fastapi import Depends, Request

from nitroshare.core.access import AccessPolicy, Principal
from nitroshare.core.config import Settings
from nitroshare.core.identity import IdentityVerifier, get_bearer_token
from nitroshare.storage.ingest import UploadIngestor

__all__ = [
    "get_settings",
    "get_identity_verifier",
    "get_access_policy",
    "get_ingestor",
    "get_current_principal",
]


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_identity_verifier(request: Request) -> IdentityVerifier:
    return request.app.state.identity_verifier


def get_access_policy(request: Request) -> AccessPolicy:
    return request.app.state.access_policy


def get_ingestor(request: Request) -> UploadIngestor:
    return request.app.state.ingestor


async def get_current_principal(
    request: Request,
    verifier: IdentityVerifier = Depends(get_identity_verifier),
    policy: AccessPolicy = Depends(get_access_policy),
) -> Principal:
    """Authenticate the bearer token and enforce the allow-list.

    Raises
    ------
    Unauthenticated / AuthInvalid
        401 when the header is missing or no strategy accepts the token.
    ConfigError
        500 when the allow-list is empty.
    Forbidden
        403 when the verified email is not allow-listed.
    """
    token = get_bearer_token(request)
    profile = await verifier.verify(token)
    return policy.authorize(profile)
