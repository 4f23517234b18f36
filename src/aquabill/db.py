# src/aquabill/db.py
from __future__ import annotations

import logging
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .settings import settings

logger = logging.getLogger(__name__)


def get_sqlalchemy_url(url: str | None = None) -> str:
    url = url or settings.sqlalchemy_url
    # psycopg3 uses 'postgresql+psycopg' instead of 'postgresql+psycopg2'
    if 'postgresql+psycopg2' in url:
        url = url.replace('postgresql+psycopg2', 'postgresql+psycopg')
    elif url.startswith('postgresql://'):
        url = url.replace('postgresql://', 'postgresql+psycopg://')
    return url


def make_engine(url: str | None = None) -> Engine:
    url = get_sqlalchemy_url(url)
    kwargs: Dict[str, Any] = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_recycle"] = 300
        kwargs["connect_args"] = {
            "options": "-c statement_timeout=30000",  # 30 second timeout
            # Prevent duplicate prepared statement errors across pooled connections
            "prepare_threshold": 0,
        }
    return create_engine(url, **kwargs)


engine = make_engine()

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def init_db(bind: Engine | None = None) -> None:
    # Safe if tables already exist
    from .models import Base

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables ensured on %s", (bind or engine).url.render_as_string(hide_password=True))
