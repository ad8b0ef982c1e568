"""Configuración del módulo de integración con Siigo."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuración completa de la integración con Siigo."""

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    # Credentials
    username: str = ""
    access_key: str = ""
    partner_id: str = "RemesasYMensajes"

    # Endpoints
    auth_url: str = "https://api.siigo.com/auth"
    api_base_url: str = "https://api.siigo.com/v1"

    # Token Settings
    token_max_attempts: int = 3
    token_retry_delay: float = 1.0
    token_expiry_margin: int = 60

    # Pagination Settings
    page_size: int = 100
    request_timeout: float = 45.0
    max_retries_per_page: int = 5
    max_pages: int = 500
    fan_out_max_pages: int = 5
    page_throttle_seconds: float = 0.16

    # Cache Settings
    cache_ttl_seconds: int = 300

    # Document defaults used when mapping form data
    purchase_document_id: int = 1
    invoice_document_id: int = 138531
    invoice_seller_id: int = 35260
    invoice_payment_id: int = 8468
    iva_tax_id: int = 13156

    model_config = SettingsConfigDict(
        env_prefix="SIIGO_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    def missing_credentials(self) -> list[str]:
        missing = []
        if not self.username:
            missing.append("SIIGO_USERNAME")
        if not self.access_key:
            missing.append("SIIGO_ACCESS_KEY")
        return missing


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
