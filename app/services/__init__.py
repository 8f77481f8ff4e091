"""Services for business logic."""

from app.services.auth_service import AuthService
from app.services.cookies import CookieCodec
from app.services.rotation import RotationValidator
from app.services.token_issuer import TokenIssuer
from app.services.token_store import TokenStore

__all__ = ["AuthService", "CookieCodec", "RotationValidator", "TokenIssuer", "TokenStore"]
