"""
Configuration management using Pydantic Settings.
Loads the security policy from environment variables (prefix SECURE_)
with type validation and defaults.
"""

import json
from functools import lru_cache
from typing import Annotated, Dict, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from secure_policy.options import STRICT_DEFAULTS, build_config
from secure_policy.policy import PolicyConfig


class Settings(BaseSettings):
    """
    Environment-driven settings for the secure middleware.
    Every policy field maps 1:1 to a PolicyConfig field.
    """

    model_config = SettingsConfigDict(
        env_prefix="SECURE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # --- Application ---
    APP_NAME: str = "secure-policy"
    APP_ENV: str = Field(default="production")

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    # --- Policy ---
    USE_STRICT_DEFAULTS: bool = False
    ALLOWED_HOSTS: Annotated[List[str], NoDecode] = []
    SSL_REDIRECT: bool = False
    SSL_TEMPORARY_REDIRECT: bool = False
    SSL_HOST: str = ""
    STS_SECONDS: int = Field(default=0, ge=0)
    STS_INCLUDE_SUBDOMAINS: bool = False
    FRAME_DENY: bool = False
    CUSTOM_FRAME_OPTIONS_VALUE: str = ""
    CONTENT_TYPE_NOSNIFF: bool = False
    BROWSER_XSS_FILTER: bool = False
    CONTENT_SECURITY_POLICY: str = ""
    REFERRER_POLICY: str = ""
    FEATURE_POLICY: str = ""
    IE_NO_OPEN: bool = False
    IS_DEVELOPMENT: bool = False
    DONT_REDIRECT_IPV4_HOSTNAMES: bool = False
    SSL_PROXY_HEADERS: Annotated[Dict[str, str], NoDecode] = {}

    @field_validator("ALLOWED_HOSTS", mode="before")
    @classmethod
    def parse_allowed_hosts(cls, v: str | list) -> List[str]:
        if isinstance(v, str):
            return [h.strip() for h in v.split(",") if h.strip()]
        return v

    @field_validator("SSL_PROXY_HEADERS", mode="before")
    @classmethod
    def parse_ssl_proxy_headers(cls, v: str | dict) -> Dict[str, str]:
        if isinstance(v, str):
            try:
                return json.loads(v)
            except ValueError:
                pairs = (p.split("=", 1) for p in v.split(",") if "=" in p)
                return {name.strip(): value.strip() for name, value in pairs}
        return v

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    def to_policy_config(self) -> PolicyConfig:
        """
        Build the PolicyConfig. With USE_STRICT_DEFAULTS the strict preset is
        the base and only explicitly set variables override it.
        """
        policy_fields = {
            name.lower(): getattr(self, name)
            for name in type(self).model_fields
            if name.lower() in PolicyConfig.model_fields
        }
        if not self.USE_STRICT_DEFAULTS:
            return PolicyConfig(**policy_fields)

        base = build_config(*STRICT_DEFAULTS)
        overrides = {
            name.lower(): getattr(self, name)
            for name in self.model_fields_set
            if name.lower() in PolicyConfig.model_fields
        }
        return PolicyConfig(**{**base.model_dump(), **overrides})


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached accessor for application settings."""
    return Settings()
