"""Database package — async SQLAlchemy engine, session factory, and models."""
from .engine import get_engine, get_session_factory, init_models, dispose_engine, make_engine
from .base import Base

__all__ = ["get_engine", "get_session_factory", "init_models", "dispose_engine", "make_engine", "Base"]
