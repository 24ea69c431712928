"""In-memory store backed by nested dictionaries."""

import copy
import logging
from typing import Any, Dict, List, Optional

from productsync.errors import NotFound
from productsync.store import BaseStore, Record

logger = logging.getLogger("productsync.store.memory")

Tree = Dict[str, Dict[str, Dict[str, Any]]]


class MemoryStore(BaseStore):
    """
    Store holding ``{parent: {child: {field: value}}}`` in memory.

    Children are listed in insertion order.
    """

    def __init__(self, data: Optional[Tree] = None):
        self.data: Tree = copy.deepcopy(data) if data else {}

    def list_children(self, parent: str) -> List[Record]:
        if parent not in self.data:
            raise NotFound(f"Parent path {parent} does not exist")
        return [Record(parent=parent, name=name) for name in self.data[parent]]

    def _fields(self, record: Record) -> Dict[str, Any]:
        try:
            return self.data[record.parent][record.name]
        except KeyError:
            raise NotFound(f"Record {record.path} does not exist") from None

    def get_field(self, record: Record, name: str, default: Any = None) -> Any:
        return self._fields(record).get(name, default)

    def set_field(self, record: Record, name: str, value: Any) -> None:
        self._fields(record)[name] = value
        logger.debug(f"Set {record.path}\\{name} = {value!r}")
