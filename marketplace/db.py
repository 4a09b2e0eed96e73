"""Database engine and session utilities.

Engines and session factories are built explicitly and handed to the
stores; nothing here holds a shared connection at import time.
"""
import os
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

load_dotenv()

DEFAULT_DATABASE_URL = "sqlite:///./marketplace.sqlite"

Base = declarative_base()


def database_url() -> str:
    url = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    # Normalize SQLAlchemy URL scheme (SQLAlchemy 2.x doesn't accept 'postgres://')
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg2://", 1)
    return url


def build_engine(url: str = None) -> Engine:
    url = url or database_url()
    if url.startswith("sqlite"):
        # request handlers and worker threads share the file
        return create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})
    # tuned pool settings for cloud DB
    return create_engine(
        url,
        pool_size=int(os.getenv("DB_POOL_SIZE", 5)),
        max_overflow=int(os.getenv("DB_MAX_OVERFLOW", 10)),
        pool_pre_ping=True
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
