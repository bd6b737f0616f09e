from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    database_url: str = "sqlite:///./pipeline_goals.db"
    sql_echo: bool = False
    log_level: str = "INFO"

    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]

    # Janela do guard de frescor do dashboard (segundos)
    dashboard_cache_ttl_seconds: int = 60

    # Probabilidade por estágio quando a oportunidade não informa probability_percent.
    # Mapeamento único usado tanto pelo kanban quanto pelo dashboard.
    stage_probability_negotiation: float = 50
    stage_probability_formal_agreement: float = 80
    stage_probability_signed_contract: float = 100

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignorar campos extras no .env que não estão definidos
    )


settings = Settings()
