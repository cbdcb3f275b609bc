import logging
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Neo4j holds the Transaction nodes
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = "password123"
    neo4j_database: Optional[str] = None

    # Shared with the auth service that issues customer tokens
    jwt_secret: str = "your-secret-key"

    # Chapa payment gateway
    chapa_secret_key: str = ""
    chapa_public_key: str = ""
    chapa_webhook_secret: str = ""
    chapa_base_url: str = "https://api.chapa.co/v1"
    chapa_callback_url: str = "https://khanut.onrender.com/api/payments/callback"
    chapa_return_url: str = "https://khanut-front-end.vercel.app/payment/success"
    chapa_timeout: float = 30.0

    # None keeps page sizes uncapped
    transactions_max_limit: Optional[int] = None

    cors_origins: list[str] = ["*"]
    host: str = "0.0.0.0"
    port: int = 5000
    log_level: str = "INFO"


def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
