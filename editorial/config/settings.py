from typing import Dict, List, Union
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    NAME: str = "Editorial Workflow Service"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    """Pydantic v2 doesn't support parsing List[str] from a plain comma-separated string by default anymore."""
    ALLOWED_HOSTS: Union[str, List[str]] = "http://localhost:3000"
    LOG_LEVEL: str = "info"
    LOG_CONFIG_PATH: str = "logging_config.json"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./editorial.db"
    DATABASE_ECHO: bool = False
    STORE_TIMEOUT_SECONDS: float = 30.0

    # Plagiarism gate
    PLAGIARISM_AUTO_THRESHOLD: float = 15.0
    PLAGIARISM_ESCALATION_THRESHOLD: float = 40.0
    PLAGIARISM_CATEGORY_OVERRIDES: Dict[str, Dict[str, float]] = {}
    PLAGIARISM_SCAN_REQUIRED: bool = True
    PLAGIARISM_MIN_CONTENT_LENGTH: int = 50
    PLAGIARISM_CORPUS_LIMIT: int = 50

    # Certificate issuer
    CERTIFICATE_ISSUER_URL: str = ""
    CERTIFICATE_ISSUER_TIMEOUT_SECONDS: float = 15.0
    CERTIFICATE_PREFIX: str = "CERT"

    @field_validator("ALLOWED_HOSTS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if not v:
            return []
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        return v

    @field_validator("PLAGIARISM_ESCALATION_THRESHOLD")
    def escalation_above_auto(cls, v: float, info) -> float:
        auto = info.data.get("PLAGIARISM_AUTO_THRESHOLD")
        if auto is not None and v < auto:
            raise ValueError(
                "PLAGIARISM_ESCALATION_THRESHOLD must not be below PLAGIARISM_AUTO_THRESHOLD"
            )
        return v

    @model_validator(mode="after")
    def issuer_fits_in_store_timeout(self) -> "Settings":
        # Publish calls the issuer inside the store unit of work
        if self.CERTIFICATE_ISSUER_TIMEOUT_SECONDS >= self.STORE_TIMEOUT_SECONDS:
            raise ValueError(
                "CERTIFICATE_ISSUER_TIMEOUT_SECONDS must be below STORE_TIMEOUT_SECONDS"
            )
        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


settings = Settings()
