"""
Windows registry store for ProductSync.

Parent paths are written the way ``regedit`` shows them, e.g.
``HKEY_LOCAL_MACHINE\\SOFTWARE\\Classes\\Installer\\Products``. Integer
fields are stored as ``REG_DWORD`` and strings as ``REG_SZ``.

Writing under ``HKEY_LOCAL_MACHINE`` needs an elevated process; elevation
is left to the caller.
"""

import logging
from typing import Any, List, Optional, Tuple

from productsync.errors import NotFound, ProductSyncError, StoreWriteFailure
from productsync.store import BaseStore, Record

logger = logging.getLogger("productsync.store.registry")

HIVE_ALIASES = {
    "HKEY_LOCAL_MACHINE": "HKEY_LOCAL_MACHINE",
    "HKLM": "HKEY_LOCAL_MACHINE",
    "HKEY_CURRENT_USER": "HKEY_CURRENT_USER",
    "HKCU": "HKEY_CURRENT_USER",
    "HKEY_CLASSES_ROOT": "HKEY_CLASSES_ROOT",
    "HKCR": "HKEY_CLASSES_ROOT",
    "HKEY_USERS": "HKEY_USERS",
    "HKU": "HKEY_USERS",
}


def split_key_path(path: str) -> Tuple[str, str]:
    """
    Split a registry path into its hive name and sub key.

    Args:
        path: Path such as ``HKLM:\\SOFTWARE\\Vendor`` or
            ``HKEY_LOCAL_MACHINE\\SOFTWARE\\Vendor``

    Returns:
        Tuple of (canonical hive name, sub key path)
    """
    head, _, rest = path.replace("/", "\\").partition("\\")
    hive = HIVE_ALIASES.get(head.rstrip(":").upper())
    if hive is None:
        raise NotFound(f"Unknown registry hive in path {path}")
    return hive, rest.strip("\\")


class RegistryStore(BaseStore):
    """Store backed by the Windows registry through the ``winreg`` API."""

    def __init__(self, api: Optional[Any] = None, view_64bit: bool = True):
        """
        Initialize the registry store.

        Args:
            api: Module exposing the ``winreg`` functions; the real
                ``winreg`` module when omitted
            view_64bit: Use the 64-bit registry view from 32-bit processes
        """
        if api is None:
            try:
                import winreg as api
            except ImportError:
                raise ProductSyncError(
                    "The Windows registry is not available on this platform. "
                    "Use --store-file to reconcile a file-backed store instead."
                ) from None
        self.api = api
        self.view_flags = api.KEY_WOW64_64KEY if view_64bit else 0

    def _open(self, path: str, access: int) -> Any:
        hive, sub_key = split_key_path(path)
        return self.api.OpenKey(
            getattr(self.api, hive), sub_key, 0, access | self.view_flags
        )

    def _open_for_read(self, path: str) -> Any:
        try:
            return self._open(path, self.api.KEY_READ)
        except FileNotFoundError:
            raise NotFound(f"Registry key {path} does not exist") from None
        except OSError as e:
            raise ProductSyncError(f"Cannot read registry key {path}: {e}") from e

    def list_children(self, parent: str) -> List[Record]:
        key = self._open_for_read(parent)

        children: List[Record] = []
        with key:
            index = 0
            while True:
                try:
                    name = self.api.EnumKey(key, index)
                except OSError:
                    break
                children.append(Record(parent=parent, name=name))
                index += 1
        logger.debug(f"Found {len(children)} sub keys under {parent}")
        return children

    def get_field(self, record: Record, name: str, default: Any = None) -> Any:
        key = self._open_for_read(record.path)

        with key:
            try:
                value, _ = self.api.QueryValueEx(key, name)
            except FileNotFoundError:
                return default
            except OSError as e:
                raise ProductSyncError(
                    f"Cannot read registry value {record.path}\\{name}: {e}"
                ) from e
        return value

    def set_field(self, record: Record, name: str, value: Any) -> None:
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise StoreWriteFailure(
                record.path,
                name,
                value,
                cause=TypeError(f"Unsupported value type {type(value).__name__}"),
            )
        value_type = self.api.REG_SZ if isinstance(value, str) else self.api.REG_DWORD

        try:
            key = self._open(record.path, self.api.KEY_SET_VALUE)
            with key:
                self.api.SetValueEx(key, name, 0, value_type, value)
        except OSError as e:
            raise StoreWriteFailure(record.path, name, value, cause=e) from e
        logger.debug(f"Set registry value {record.path}\\{name} = {value!r}")
