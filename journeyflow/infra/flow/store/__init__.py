from journeyflow.infra.flow.store.file_storage import FileStorage
from journeyflow.infra.flow.store.keys import DefaultKeyFormatter, KeyFormatter, KeyParts
from journeyflow.infra.flow.store.memory_storage import MemoryStorage
from journeyflow.infra.flow.store.sql_store import SQLStorage

__all__ = [
    "DefaultKeyFormatter",
    "FileStorage",
    "KeyFormatter",
    "KeyParts",
    "MemoryStorage",
    "SQLStorage",
]
