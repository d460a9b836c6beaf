from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from decimal import Decimal
from pydantic import field_validator
from app.common.validators import PIX_KEY_TYPES

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'caixa_user'
    POSTGRES_PASSWORD: str = 'caixa_pass'
    POSTGRES_DB: str = 'caixa_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Sobrescribe POSTGRES_* (ej. sqlite:// en tests)

    # Merchant PIX settings (valores por defecto, se pueden sobrescribir vía API)
    PIX_MERCHANT_NAME: str = 'Webyte Desenvolvimentos'
    PIX_MERCHANT_LEGAL_NAME: str = 'Webyte Desenvolvimentos LTDA'
    PIX_MERCHANT_CNPJ: str = '12.345.678/0001-90'
    PIX_MERCHANT_CITY: str = 'Sao Paulo'
    PIX_KEY: str = '+5511984801839'
    PIX_KEY_TYPE: str = 'phone'
    PIX_CHARGE_TTL_HOURS: int = 24
    PIX_DEFAULT_DESCRIPTION: str = 'Teste de 30 Dias - Sistema Movimento de Caixa'

    # Cash flow settings
    CASH_FLOW_STORAGE_KEY: str = 'cashFlowData'
    CASH_FLOW_DRAFT_KEY: str = 'cashFlowDraft'
    CASH_FLOW_OPENING_FLOAT: Decimal = Decimal('400')

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("PIX_KEY_TYPE")
    @classmethod
    def parse_pix_key_type(cls, v: str) -> str:
        if v not in PIX_KEY_TYPES:
            raise ValueError(f"PIX_KEY_TYPE debe ser uno de {PIX_KEY_TYPES}")
        return v

settings = Settings()
