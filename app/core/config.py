from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"
    APP_NAME: str = "maat-client-portal"

    JWT_SECRET: str = "change_me_portal"
    JWT_TTL_MINUTES: int = 240

    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    DATABASE_URL: str
    REDIS_URL: str
    REQUEST_LOCK_TIMEOUT_SECONDS: int = 30

    # PIX provider (Banco Inter, PIX API v2)
    PIX_ENABLED: bool = False
    PIX_PROVIDER_NAME: str = "Banco Inter (PIX)"
    PIX_API_BASE_URL: str = "https://cdpj.partners.bancointer.com.br"
    PIX_TOKEN_PATH: str = "/oauth/v2/token"
    PIX_CHARGE_PATH: str = "/pix/v2/cob"
    PIX_CLIENT_ID: str = ""
    PIX_CLIENT_SECRET: str = ""
    PIX_CERT_PATH: str = "certs/certificado.crt"
    PIX_KEY_PATH: str = "certs/chave.key"
    PIX_KEY: str = ""
    PIX_WRITE_SCOPE: str = "pix.write"
    PIX_READ_SCOPE: str = "pix.read"
    PIX_CHARGE_EXPIRY_SECONDS: int = 3600
    PIX_HTTP_TIMEOUT_SECONDS: float = 15.0
    PIX_WEBHOOK_TOKEN: str = ""
    PIX_RECONCILE_INTERVAL_SECONDS: float = 60.0
    PAYMENT_POLL_INTERVAL_SECONDS: int = 2

    DERIVED_DOCUMENT_CATEGORY: str = "Documentos Solicitados"

    BOOTSTRAP_ENABLED: bool = True
    BOOTSTRAP_ADMIN_EMAIL: str = "admin@maat.com"
    BOOTSTRAP_ADMIN_NAME: str = "Administrador Maat"
    BOOTSTRAP_COMPANY_NAME: str = "Empresa Demo LTDA"
    BOOTSTRAP_COMPANY_CNPJ: str = "00.000.000/0001-00"
    BOOTSTRAP_CLIENT_EMAIL: str = "cliente@demo.com"
    BOOTSTRAP_CLIENT_NAME: str = "Cliente Exemplo"

    # Compose/infra vars that may exist in shared .env
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "maat"

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

settings = Settings()
