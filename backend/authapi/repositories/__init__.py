from authapi.repositories.refresh_token import RefreshTokenRepository
from authapi.repositories.user import UserRepository

__all__ = ["RefreshTokenRepository", "UserRepository"]
