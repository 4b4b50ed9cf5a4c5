"""
Configuration for the draft versioning HTTP API.

Uses pydantic-settings for environment variable loading. Store and engine
settings live in draftvc.config and are read by ServiceConfig.from_env().
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """HTTP API configuration loaded from environment."""

    host: str = Field(default="0.0.0.0", description="API bind host")
    port: int = Field(default=8000, description="API bind port")

    # CORS settings
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:4200"],
        description="Allowed CORS origins",
    )

    model_config = {"env_prefix": "DRAFTVC_API_"}
