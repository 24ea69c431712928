"""
Configuration file support for ProductSync.

Loads settings from ``~/.config/productsync/config.yaml`` (or
``$XDG_CONFIG_HOME/productsync/config.yaml``) and exposes them as typed
dataclasses that the CLI can merge with command-line flags.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from productsync import platform
from productsync.reconciler import CATALOG, UNINSTALL, RecordGroup, default_groups

logger = logging.getLogger("productsync.config")


def default_config_path() -> Path:
    """Return the default configuration file path.

    Uses ``$XDG_CONFIG_HOME/productsync/config.yaml`` when set, otherwise
    falls back to ``~/.config/productsync/config.yaml``.
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "productsync" / "config.yaml"
    return Path.home() / ".config" / "productsync" / "config.yaml"


@dataclass
class GroupConfig:
    """Overrides for one record group.

    All fields are optional so that we can distinguish "not set" from the
    platform defaults.
    """

    parent: Optional[str] = None
    match_field: Optional[str] = None
    prefix: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "GroupConfig":
        if not isinstance(data, dict):
            return cls()
        return cls(
            parent=data.get("parent"),
            match_field=data.get("match_field"),
            prefix=data.get("prefix"),
        )

    def apply(self, group: RecordGroup) -> RecordGroup:
        """Return *group* with the configured overrides applied."""
        return RecordGroup(
            label=group.label,
            parent=self.parent or group.parent,
            match_field=self.match_field or group.match_field,
            prefix=self.prefix or group.prefix,
            field_names=dict(group.field_names),
        )


@dataclass
class ProductSyncConfig:
    """Top-level configuration loaded from the YAML file."""

    product_name: str = platform.DEFAULT_PRODUCT_NAME
    archive: Optional[str] = None
    manifest_entry: str = platform.DEFAULT_MANIFEST_ENTRY
    manifest_key: str = platform.DEFAULT_MANIFEST_KEY
    require_unique: bool = False
    store_file: Optional[str] = None
    catalog: GroupConfig = field(default_factory=GroupConfig)
    uninstall: GroupConfig = field(default_factory=GroupConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductSyncConfig":
        """Construct a ``ProductSyncConfig`` from a parsed YAML dictionary."""
        if not isinstance(data, dict):
            return cls()

        require_unique = data.get("require_unique", False)
        if not isinstance(require_unique, bool):
            logger.warning(f"Ignoring non-boolean require_unique: {require_unique}")
            require_unique = False

        archive = data.get("archive")
        store_file = data.get("store_file")
        return cls(
            product_name=data.get("product_name") or platform.DEFAULT_PRODUCT_NAME,
            archive=str(Path(archive).expanduser()) if archive else None,
            manifest_entry=data.get("manifest_entry")
            or platform.DEFAULT_MANIFEST_ENTRY,
            manifest_key=data.get("manifest_key") or platform.DEFAULT_MANIFEST_KEY,
            require_unique=require_unique,
            store_file=str(Path(store_file).expanduser()) if store_file else None,
            catalog=GroupConfig.from_dict(data.get("catalog")),
            uninstall=GroupConfig.from_dict(data.get("uninstall")),
        )

    @classmethod
    def from_file(cls, path: Path) -> "ProductSyncConfig":
        """Read a YAML file and return a ``ProductSyncConfig``.

        Returns an empty default config on any error.
        """
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f.read())
            if data is None:
                return cls()
            return cls.from_dict(data)
        except (IOError, yaml.YAMLError) as e:
            logger.error("Failed to load config from %s: %s", path, e)
            return cls()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "ProductSyncConfig":
        """Main entry point: load config from *config_path* or the default location.

        Returns an empty config if the file does not exist.
        """
        path = config_path or default_config_path()
        if not path.exists():
            return cls()
        return cls.from_file(path)

    def groups(self, product_name: Optional[str] = None) -> List[RecordGroup]:
        """Return the record groups with configured overrides applied."""
        overrides = {CATALOG: self.catalog, UNINSTALL: self.uninstall}
        return [
            overrides[group.label].apply(group)
            for group in default_groups(product_name or self.product_name)
        ]
