import os
from typing import List, Optional
from urllib.parse import quote, unquote

from journeyflow.infra.flow.models import StorageAdapter

SUFFIX = ".json"


class FileStorage(StorageAdapter):
    """One file per key in a folder. Keys are percent-encoded into file names."""

    def __init__(self, folder="./flows"):
        self.folder = folder
        os.makedirs(folder, exist_ok=True)

    def _path(self, key: str): return os.path.join(self.folder, quote(key, safe="") + SUFFIX)

    def get(self, key: str) -> Optional[bytes]:
        try:
            with open(self._path(key), "rb") as f:
                return f.read()
        except FileNotFoundError:
            return None

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        tmp_path = path + ".tmp"
        with open(tmp_path, "wb") as f:
            f.write(value)
        os.replace(tmp_path, path)

    def remove(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass

    def list_keys(self, prefix: str) -> List[str]:
        keys = [unquote(p[: -len(SUFFIX)]) for p in os.listdir(self.folder) if p.endswith(SUFFIX)]
        return [key for key in keys if key.startswith(prefix)]
