"""
utils/request_meta.py

Client identity and bearer-token extraction from an inbound request.
"""

from typing import Mapping, Optional

from fastapi import Request

UNKNOWN_CLIENT = "UNKNOWN"


def resolve_client_identity(headers: Mapping[str, str], peer_host: Optional[str]) -> str:
    """
    Identity used for lockout tracking and comment forensics.

    Order: first entry of X-Forwarded-For, then the transport peer address,
    then the literal "UNKNOWN".
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if peer_host:
        return peer_host
    return UNKNOWN_CLIENT


def get_client_identity(request: Request) -> str:
    """FastAPI dependency form of resolve_client_identity."""
    peer = request.client.host if request.client else None
    return resolve_client_identity(request.headers, peer)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Returns the token of a well-formed `Bearer <token>` header, else None."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
