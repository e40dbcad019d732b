from .protocol import Storage
from .sqlalchemy import SqlAlchemyStorage, InMemoryStorage

__all__ = ["Storage", "SqlAlchemyStorage", "InMemoryStorage"]
