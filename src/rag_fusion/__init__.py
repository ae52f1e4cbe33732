"""RAG fusion context builder package."""

from .config import ContextBuilderConfig, RetrievalConfig
from .pipeline import ContextBuilder

__all__ = ["ContextBuilder", "ContextBuilderConfig", "RetrievalConfig"]
