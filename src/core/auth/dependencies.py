from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header

from src.core.auth.jwt import decode_token
from src.core.exceptions import AuthenticationError


@dataclass(frozen=True)
class CallerIdentity:
    """Acting user and the tenant they act for, as asserted by the auth layer."""

    user_id: str
    tenant_id: str


async def get_caller_identity(
    authorization: Annotated[str | None, Header()] = None,
) -> CallerIdentity:
    """
    Dependency to get the caller identity from a JWT bearer token.

    The token is trusted as issued; no user lookup happens here.

    Usage:
        @router.get("/documents")
        async def list_documents(caller: CurrentCaller):
            ...
    """
    if not authorization:
        raise AuthenticationError("Authorization header required")

    if not authorization.startswith("Bearer "):
        raise AuthenticationError("Invalid authorization header format")

    token = authorization.replace("Bearer ", "")

    payload = decode_token(token, token_type="access")
    return CallerIdentity(user_id=str(payload["sub"]), tenant_id=str(payload["tenant_id"]))


CurrentCaller = Annotated[CallerIdentity, Depends(get_caller_identity)]
