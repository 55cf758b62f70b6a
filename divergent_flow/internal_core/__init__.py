from .config import AppConfig, load_config
from .entity_store import InMemoryEntityStore

__all__ = ["AppConfig", "load_config", "InMemoryEntityStore"]
