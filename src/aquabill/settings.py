from __future__ import annotations
import logging
from typing import List
from pydantic_settings import BaseSettings
from pydantic import Field
from urllib.parse import quote_plus, urlparse

logger = logging.getLogger("aquabill-api")

class Settings(BaseSettings):
    # Prefer a full DATABASE_URL; or supply PG* parts and we'll build it.
    database_url: str | None = Field(default=None, alias="DATABASE_URL")

    pg_host: str | None = Field(default=None, alias="PGHOST")
    pg_port: int = Field(default=5432, alias="PGPORT")
    pg_user: str | None = Field(default=None, alias="PGUSER")
    pg_password: str | None = Field(default=None, alias="PGPASSWORD")
    pg_db: str | None = Field(default=None, alias="PGDATABASE")

    # Local fallback when neither DATABASE_URL nor PG* parts are configured
    sqlite_path: str = Field(default="./aquabill.db", alias="SQLITE_PATH")

    bill_due_days: int = Field(default=15, alias="BILL_DUE_DAYS")
    allow_origins: str = Field(default="*", alias="ALLOW_ORIGINS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def allowed_origins(self) -> List[str]:
        origins = [o.strip() for o in self.allow_origins.split(",") if o.strip()]
        return origins or ["*"]

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            parsed = urlparse(self.database_url)
            if parsed.scheme.startswith("sqlite"):
                logger.info("DB config source → DATABASE_URL (sqlite)")
                return self.database_url

            logger.info(f"DB target → user={parsed.username} host={parsed.hostname} port={parsed.port} db={parsed.path.lstrip('/')}")
            logger.info("DB config source → DATABASE_URL")

            # Re-encode the password to handle special characters
            if parsed.password:
                encoded_password = quote_plus(parsed.password)
                port = f":{parsed.port}" if parsed.port else ""
                fixed_url = f"{parsed.scheme}://{parsed.username}:{encoded_password}@{parsed.hostname}{port}{parsed.path}"
                if parsed.query:
                    fixed_url = f"{fixed_url}?{parsed.query}"
                return fixed_url

            return self.database_url

        # Build from components if DATABASE_URL not provided
        if self.pg_host and self.pg_user and self.pg_password and self.pg_db:
            logger.info(f"DB target → user={self.pg_user} host={self.pg_host} port={self.pg_port} db={self.pg_db}")
            logger.info("DB config source → PG* environment variables")

            encoded_password = quote_plus(self.pg_password)
            encoded_user = quote_plus(self.pg_user)

            return (
                f"postgresql+psycopg://{encoded_user}:{encoded_password}"
                f"@{self.pg_host}:{self.pg_port}/{self.pg_db}?sslmode=require"
            )

        logger.info("DB config source → local sqlite at %s", self.sqlite_path)
        return f"sqlite:///{self.sqlite_path}"

settings = Settings()
