"""Environment-driven settings."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Runtime configuration for the storefront servers."""

    api_url: str = Field(default="http://localhost:3000", description="Remote service base URL")
    timeout: float = Field(default=30.0, description="Transport timeout in seconds")
    session_file: str = Field(default_factory=lambda: str(Path.home() / ".storefront_session.json"))
    local_store_file: str = Field(default_factory=lambda: str(Path.home() / ".storefront_local.json"))

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Recognised variables:
        - STOREFRONT_API_URL
        - STOREFRONT_TIMEOUT
        - STOREFRONT_SESSION_FILE
        - STOREFRONT_LOCAL_STORE_FILE
        """
        env = os.environ if environ is None else environ
        values = {}
        if env.get("STOREFRONT_API_URL"):
            values["api_url"] = env["STOREFRONT_API_URL"]
        if env.get("STOREFRONT_TIMEOUT"):
            values["timeout"] = float(env["STOREFRONT_TIMEOUT"])
        if env.get("STOREFRONT_SESSION_FILE"):
            values["session_file"] = env["STOREFRONT_SESSION_FILE"]
        if env.get("STOREFRONT_LOCAL_STORE_FILE"):
            values["local_store_file"] = env["STOREFRONT_LOCAL_STORE_FILE"]
        return cls(**values)
