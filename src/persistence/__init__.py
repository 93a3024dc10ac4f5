from .facade import PersistenceFacade
from .memory import InMemoryPersistence

__all__ = ["PersistenceFacade", "InMemoryPersistence"]
