"""
Store package for ProductSync.

This module provides the base classes for the key-value stores that hold
installed-product records. Implementations cover the Windows registry, a
YAML file and a plain in-memory mapping.
"""

import abc
from dataclasses import dataclass
from typing import Any, List


@dataclass(frozen=True)
class Record:
    """A key-value record located under a parent path."""

    parent: str
    name: str

    @property
    def path(self) -> str:
        """Full store path of the record."""
        return f"{self.parent}\\{self.name}"


class BaseStore(abc.ABC):
    """Base class for product metadata stores."""

    @abc.abstractmethod
    def list_children(self, parent: str) -> List[Record]:
        """
        List the records directly below *parent*.

        Args:
            parent: Store-specific parent path

        Returns:
            Records in the store's natural listing order

        Raises:
            NotFound: If the parent path does not exist
        """
        pass

    @abc.abstractmethod
    def get_field(self, record: Record, name: str, default: Any = None) -> Any:
        """
        Read one field of a record.

        Args:
            record: Record to read from
            name: Field name
            default: Value returned when the field is absent

        Returns:
            The stored value, or *default*
        """
        pass

    @abc.abstractmethod
    def set_field(self, record: Record, name: str, value: Any) -> None:
        """
        Persist one field of a record.

        Each call is its own unit of work: a failure leaves previously
        written fields in place.

        Raises:
            StoreWriteFailure: If the store rejects the write
        """
        pass
