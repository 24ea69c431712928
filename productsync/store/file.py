"""
YAML file store for ProductSync.

Mirrors the registry layout in a plain file so reconciliation can be
rehearsed, or run on hosts without a registry::

    'HKEY_LOCAL_MACHINE\\SOFTWARE\\Classes\\Installer\\Products':
      4F2A...:
        ProductName: Jenkins 2.401.1
        Version: 43057153
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from productsync.errors import NotFound, StoreWriteFailure
from productsync.store import Record
from productsync.store.memory import MemoryStore

logger = logging.getLogger("productsync.store.file")

_MISSING = object()


class FileStore(MemoryStore):
    """Store persisted to a YAML document, rewritten after every field write."""

    def __init__(self, path: Path):
        self.path = Path(path)
        if not self.path.exists():
            raise NotFound(f"Store file {self.path} does not exist")
        try:
            with open(self.path, "r") as f:
                data = yaml.safe_load(f.read())
        except (IOError, yaml.YAMLError) as e:
            raise NotFound(f"Failed to load store file {self.path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise NotFound(f"Store file {self.path} does not hold a mapping")
        super().__init__(data)

    def set_field(self, record: Record, name: str, value: Any) -> None:
        fields = self._fields(record)
        previous = fields.get(name, _MISSING)
        fields[name] = value
        try:
            self._save()
        except (OSError, yaml.YAMLError) as e:
            if previous is _MISSING:
                del fields[name]
            else:
                fields[name] = previous
            raise StoreWriteFailure(record.path, name, value, cause=e) from e
        logger.debug(f"Wrote {record.path}\\{name} = {value!r} to {self.path}")

    def _save(self) -> None:
        """Atomically replace the store file with the current contents."""
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}-", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(self.data, f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
