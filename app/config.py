"""
Configuration module - loads secrets from Google Secret Manager.
Falls back to environment variables for local development.
"""
import os
import logging
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, model_validator

logger = logging.getLogger(__name__)


BRY_EMISSION_BASE_URLS = {
    "prod": "https://mp-universal.bry.com.br",
    "hom": "https://mp-universal.hom.bry.com.br",
}

BRY_AR_BASE_URLS = {
    "prod": "https://ar-universal.bry.com.br",
    "hom": "https://ar-universal.hom.bry.com.br",
}


def get_secret_from_gcp(secret_id: str, project_id: Optional[str] = None) -> Optional[str]:
    """
    Fetch secret from Google Secret Manager.
    Returns None if not available (fallback to env vars).
    """
    project = project_id or os.environ.get("GCP_PROJECT_ID") or os.environ.get("GOOGLE_CLOUD_PROJECT")
    if not project:
        return None

    try:
        from google.cloud import secretmanager

        client = secretmanager.SecretManagerServiceClient()
        name = f"projects/{project}/secrets/{secret_id}/versions/latest"
        response = client.access_secret_version(request={"name": name})
        return response.payload.data.decode("UTF-8")
    except Exception as e:
        logger.debug(f"Could not fetch secret {secret_id} from Secret Manager: {e}")
        return None


class Settings(BaseSettings):
    """Application settings with Secret Manager integration."""

    # GCP
    gcp_project_id: str = Field(default="", alias="GCP_PROJECT_ID")

    # Supabase (service role - webhook calls carry no user JWT)
    supabase_url: str = Field(default="", alias="SUPABASE_URL")
    supabase_service_role_key: str = Field(default="", alias="SUPABASE_SERVICE_ROLE_KEY")

    # Resend (Email)
    resend_api_key: str = Field(default="", alias="RESEND_API_KEY")
    resend_from_email: str = Field(default="noreply@eonsign.com.br", alias="RESEND_FROM_EMAIL")
    resend_from_name: str = Field(default="Eon Sign", alias="RESEND_FROM_NAME")

    # BRy registration authority
    bry_environment: str = Field(default="hom", alias="BRY_ENVIRONMENT")
    bry_ar_client_id: str = Field(default="", alias="BRY_AR_CLIENT_ID")
    bry_ar_client_secret: str = Field(default="", alias="BRY_AR_CLIENT_SECRET")
    bry_timeout_seconds: float = Field(default=30.0, alias="BRY_TIMEOUT_SECONDS")

    # App
    app_url: str = Field(default="https://sign.eongerenciamento.com.br", alias="APP_URL")
    email_assets_url: str = Field(
        default="https://lbyoniuealghclfuahko.supabase.co/storage/v1/object/public/email-assets",
        alias="EMAIL_ASSETS_URL",
    )
    admin_api_secret: str = Field(default="", alias="ADMIN_API_SECRET")

    # Rate limiting (status sync endpoint)
    sync_rate_limit_requests: int = Field(default=30, alias="SYNC_RATE_LIMIT_REQUESTS")
    sync_rate_limit_window_seconds: int = Field(default=60, alias="SYNC_RATE_LIMIT_WINDOW_SECONDS")

    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._load_secrets_from_gcp()

    @field_validator("bry_environment", mode="before")
    @classmethod
    def _normalize_bry_environment(cls, v):
        """Accept 'production'/'homologation' spellings used by older deployments."""
        if not v:
            return "hom"
        v = str(v).strip().lower()
        if v in ("prod", "production"):
            return "prod"
        return "hom"

    def _load_secrets_from_gcp(self):
        """Override settings with values from Secret Manager if available."""
        secret_mappings = {
            "supabase_url": "SUPABASE_URL",
            "supabase_service_role_key": "SUPABASE_SERVICE_ROLE_KEY",
            "resend_api_key": "RESEND_API_KEY",
            "bry_ar_client_id": "BRY_AR_CLIENT_ID",
            "bry_ar_client_secret": "BRY_AR_CLIENT_SECRET",
            "admin_api_secret": "ADMIN_API_SECRET",
        }

        for attr, secret_id in secret_mappings.items():
            secret_value = get_secret_from_gcp(secret_id, self.gcp_project_id)
            if secret_value:
                setattr(self, attr, secret_value)
                logger.info(f"Loaded {secret_id} from Secret Manager")

    @model_validator(mode="after")
    def validate_environment(self) -> "Settings":
        """Warn about risky combinations for the environment."""
        if self.environment == "production":
            if self.bry_environment != "prod":
                logger.warning(
                    "Configuration Warning: ENVIRONMENT is 'production' but BRY_ENVIRONMENT "
                    f"is '{self.bry_environment}'. Emission links will point to homologation."
                )
            if not self.app_url.startswith("https://"):
                logger.warning(
                    f"Configuration Warning: APP_URL ('{self.app_url}') "
                    "does not start with 'https://' in production."
                )
        return self

    def get_bry_ar_base_url(self) -> str:
        """Base URL of the BRy AR API for the configured environment."""
        return BRY_AR_BASE_URLS[self.bry_environment]

    def get_app_url(self) -> str:
        return self.app_url.rstrip("/")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# The BRy webhook caller and browser clients come from arbitrary origins.
CORS_ALLOW_ORIGINS = ["*"]
CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type", "x-admin-secret"]
