from src.core.auth.jwt import create_access_token, decode_token
from src.core.auth.dependencies import CallerIdentity, CurrentCaller, get_caller_identity

__all__ = [
    "create_access_token",
    "decode_token",
    "CallerIdentity",
    "CurrentCaller",
    "get_caller_identity",
]
