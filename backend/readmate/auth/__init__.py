from readmate.auth.token import TokenPayload, create_access_token, decode_token, get_current_user
from readmate.auth.dependencies import CurrentUser, Gateway, Ingestion, Responder, Storage

__all__ = [
    "TokenPayload", "create_access_token", "decode_token", "get_current_user",
    "CurrentUser", "Gateway", "Ingestion", "Responder", "Storage",
]
