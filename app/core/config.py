"""Application configuration settings."""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Auth API"
    debug: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = 3000

    # Database
    database_url: str = "sqlite+aiosqlite:///./auth.db"

    # JWT Authentication
    jwt_secret_key: str = "your-super-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7

    # Revoke every outstanding session of a subject when a replayed
    # refresh token is presented
    revoke_all_on_replay: bool = False

    # Seconds between sweeps of expired refresh token records
    token_purge_interval_seconds: float = 3600.0

    # GitHub OAuth
    github_client_id: str = ""
    github_client_secret: str = ""
    github_token_url: str = "https://github.com/login/oauth/access_token"
    github_user_url: str = "https://api.github.com/user"
    github_timeout_seconds: float = 10.0

    # Redirects (also used as CORS origins)
    allowed_redirects: str = ""
    default_redirect: str = "https://auth-debug.pages.dev"

    # Cookies
    cookie_domain: Optional[str] = None
    access_cookie_name: str = "__Secure-access_token"
    refresh_cookie_name: str = "__Secure-refresh_token"
    access_cookie_path: str = "/"
    refresh_cookie_path: str = "/api/v1/auth/refresh"

    # Security
    allowed_hosts: str = "*"

    @property
    def allowed_hosts_list(self) -> List[str]:
        """Get allowed hosts as a list."""
        return [host.strip() for host in self.allowed_hosts.split(",")]

    @property
    def allowed_redirects_list(self) -> List[str]:
        """Get allowed redirect origins as a list, skipping blanks."""
        return [
            origin.strip()
            for origin in self.allowed_redirects.split(",")
            if origin.strip()
        ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
