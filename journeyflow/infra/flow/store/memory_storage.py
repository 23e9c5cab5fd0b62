from typing import Dict, List, Optional

from journeyflow.infra.flow.models import StorageAdapter


class MemoryStorage(StorageAdapter):
    """Dict-backed storage. State is lost with the process; meant for tests and previews."""

    def __init__(self):
        self._data: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def list_keys(self, prefix: str) -> List[str]:
        return [key for key in self._data if key.startswith(prefix)]

    def __len__(self) -> int:
        return len(self._data)
