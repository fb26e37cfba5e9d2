"""Konfigurationsmodul der Teams Bridge: lädt Lookup-Secrets, Backend-URLs
und die Bot-Identität via Pydantic-Settings."""
import logging
import sys
from typing import Literal, Optional

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

BOTFRAMEWORK_OPENID_CONFIG_URL = "https://login.botframework.com/v1/.well-known/openidconfiguration"


class Settings(BaseSettings):
    """Hält alle Werte, die die Bridge zur Laufzeit benötigt.

    Pflichtfelder haben keinen Default; fehlen sie, schlägt der Start fehl.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    internal_lookup_secret: str = Field(..., alias="INTERNAL_LOOKUP_SECRET")
    tenant_lookup_url: str = Field(..., alias="TEAMS_TENANT_LOOKUP_URL")
    rag_query_url: str = Field(..., alias="RAG_QUERY_URL")
    anon_api_key: str = Field(..., alias="SUPABASE_ANON_KEY")

    feedback_url: Optional[str] = Field(None, alias="FEEDBACK_URL")
    capture_url: Optional[str] = Field(None, alias="CAPTURE_URL")

    # Globale Bot-Identität (eine Multi-Tenant App-Registrierung). Leer lassen,
    # wenn die Credentials pro Tenant aus dem Directory kommen.
    global_bot_app_id: Optional[str] = Field(None, alias="MICROSOFT_APP_ID")
    global_bot_app_password: Optional[str] = Field(None, alias="MICROSOFT_APP_PASSWORD")

    # multi_tenant: Token von botframework.com; single_tenant: Token vom AAD-Tenant der Organisation.
    bot_authority_mode: Literal["multi_tenant", "single_tenant"] = Field(
        "single_tenant", alias="BOT_AUTHORITY_MODE"
    )
    openid_config_url: str = Field(BOTFRAMEWORK_OPENID_CONFIG_URL, alias="BOT_OPENID_CONFIG_URL")
    notify_unconfigured_tenant: bool = Field(False, alias="NOTIFY_UNCONFIGURED_TENANT")

    http_timeout_seconds: float = Field(30.0, alias="HTTP_TIMEOUT_SECONDS")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(None, alias="LOG_FILE")
    service_port: int = Field(3978, alias="SERVICE_PORT")

    @model_validator(mode="after")
    def _check_global_bot(self) -> "Settings":
        if bool(self.global_bot_app_id) != bool(self.global_bot_app_password):
            raise ValueError("MICROSOFT_APP_ID and MICROSOFT_APP_PASSWORD must be set together")
        return self

    @property
    def resolved_feedback_url(self) -> str:
        """Feedback-Endpunkt; ohne explizite URL neben dem RAG-Endpunkt."""
        if self.feedback_url:
            return self.feedback_url
        return self.rag_query_url.replace("/rag-query", "/feedback")


def load_settings() -> Settings:
    """Lädt die Settings oder beendet den Prozess, wenn Pflichtwerte fehlen."""
    try:
        return Settings()
    except ValidationError as exc:
        missing = ", ".join(
            str(err["loc"][0]) if err["loc"] else err["msg"] for err in exc.errors()
        )
        logger.critical(f"Missing or invalid configuration: {missing}")
        sys.exit(1)
