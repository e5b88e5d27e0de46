from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import List, Optional
from dotenv import load_dotenv
import os

load_dotenv()

frontend_url = os.getenv("FRONTEND_URL", "http://localhost:5173")

PLACEHOLDER_SECRETS = {"supersecretkey", "superrefreshsecretkey"}


class Settings(BaseSettings):
    # Database
    database_url: str
    database_echo: bool = False

    env: str = "development"

    # JWT Auth
    jwt_secret_key: str = "supersecretkey"
    jwt_refresh_secret_key: str = "superrefreshsecretkey"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 10

    # Email verification / password reset links
    temporary_token_expire_minutes: int = 10
    bcrypt_rounds: int = 12

    # SendGrid configuration
    email_api_key: str = ""
    email_sender: str = ""  # Must be verified in SendGrid
    backend_url: str = "http://localhost:8000"
    forgot_password_redirect_url: str = f"{frontend_url}/reset-password"

    # Cloudinary configuration
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    cloudinary_folder: str = "studyhive"
    max_upload_bytes: int = 5 * 1024 * 1024

    # Rate limiting, skipped entirely without Redis
    redis_url: Optional[str] = None
    global_rate_limit: int = 100
    global_rate_period: int = 15 * 60
    user_rate_limit: int = 20
    user_rate_period: int = 5 * 60
    auth_rate_limit: int = 5
    auth_rate_period: int = 5 * 60
    # Peers allowed to report the client address through X-Forwarded-For
    trusted_proxies: List[str] = []

    # CORS / cookies
    cors_origins: List[str] = ["http://localhost:5173", frontend_url]
    cookie_secure: Optional[bool] = None

    model_config = ConfigDict(extra="allow", env_file=".env")

    @field_validator("bcrypt_rounds")
    def validate_bcrypt_rounds(cls, v):
        if v < 10:
            raise ValueError("bcrypt_rounds must be at least 10")
        return v

    @model_validator(mode="after")
    def validate_production(self):
        if self.env == "production":
            if self.jwt_secret_key in PLACEHOLDER_SECRETS or self.jwt_refresh_secret_key in PLACEHOLDER_SECRETS:
                raise ValueError("JWT secret keys must be set in production")
        if self.cookie_secure is None:
            self.cookie_secure = self.env == "production"
        return self


settings = Settings()
