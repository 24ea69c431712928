"""
Record reconciliation for ProductSync.

The installer database keeps two record groups per product: the catalog
entry under ``Installer\\Products`` and the entry under ``Uninstall`` that
"Apps & features" reads. Both must carry the same encoded version. This
module locates the records, computes the desired field values and writes
back only what differs.

No locking is done. A concurrent writer touching the same records between
our read and write can lose its update; runs are expected to come from a
single administrator.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from productsync import platform
from productsync.errors import AmbiguousMatch, NotFound, StoreWriteFailure
from productsync.store import BaseStore, Record
from productsync.version import decode, encode, major_of, minor_of, parse_version

logger = logging.getLogger("productsync.reconciler")

CATALOG = "catalog"
UNINSTALL = "uninstall"

FIELDS = {
    CATALOG: ("Name", "Version"),
    UNINSTALL: (
        "DisplayName",
        "DisplayVersion",
        "Version",
        "VersionMajor",
        "VersionMinor",
    ),
}


@dataclass(frozen=True)
class RecordGroup:
    """Where one record group lives and how its record is recognised."""

    label: str
    parent: str
    match_field: str
    prefix: str
    # Store value name for each logical field, where they differ
    field_names: Dict[str, str] = field(default_factory=dict)

    def store_name(self, logical: str) -> str:
        return self.field_names.get(logical, logical)

    def store_fields(self) -> List[str]:
        """Store value names reconciled for this group."""
        if self.label not in FIELDS:
            raise ValueError(f"Unknown record group {self.label!r}")
        return [self.store_name(logical) for logical in FIELDS[self.label]]


def default_groups(product_name: str) -> List[RecordGroup]:
    """Return the catalog and uninstall groups for *product_name*."""
    return [
        RecordGroup(
            label=CATALOG,
            parent=platform.CATALOG_PARENT,
            match_field="ProductName",
            prefix=product_name,
            field_names={"Name": "ProductName"},
        ),
        RecordGroup(
            label=UNINSTALL,
            parent=platform.UNINSTALL_PARENT,
            match_field="DisplayName",
            prefix=product_name,
        ),
    ]


@dataclass
class SyncResult:
    """Outcome of syncing one record."""

    written: Set[str] = field(default_factory=set)
    failed: Dict[str, StoreWriteFailure] = field(default_factory=dict)


@dataclass
class ReconcileReport:
    """Outcome of a full reconciliation run."""

    display_name: str
    encoded: int
    display_version: str
    records: Dict[str, Record] = field(default_factory=dict)
    changed: Set[Tuple[str, str]] = field(default_factory=set)
    desired: Dict[Tuple[str, str], Any] = field(default_factory=dict)
    pending: Dict[Tuple[str, str], Tuple[Any, Any]] = field(default_factory=dict)
    failed: List[StoreWriteFailure] = field(default_factory=list)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed


def display_name(product_name: str, raw_version: str) -> str:
    """Human readable product name, built from the raw version string."""
    return f"{product_name} {raw_version.strip()}"


def locate(store: BaseStore, group: RecordGroup, unique: bool = False) -> Record:
    """
    Find the record of *group* whose match field starts with its prefix.

    Args:
        store: Store to search
        group: Record group to locate
        unique: Fail when more than one record matches instead of taking
            the first one in listing order

    Returns:
        The matching record

    Raises:
        NotFound: If no record matches
        AmbiguousMatch: If several records match and *unique* is set
    """
    matches = [
        record
        for record in store.list_children(group.parent)
        if str(store.get_field(record, group.match_field, "")).startswith(group.prefix)
    ]
    if not matches:
        raise NotFound(
            f"No {group.label} record under {group.parent} has "
            f"{group.match_field} starting with {group.prefix!r}"
        )
    if len(matches) > 1:
        names = ", ".join(record.name for record in matches)
        if unique:
            raise AmbiguousMatch(
                f"{len(matches)} {group.label} records match {group.prefix!r}: {names}"
            )
        logger.warning(
            f"{len(matches)} {group.label} records match {group.prefix!r}, "
            f"using the first one ({matches[0].name})"
        )
    logger.debug(f"Located {group.label} record {matches[0].path}")
    return matches[0]


def _default_for(value: Any) -> Any:
    return "" if isinstance(value, str) else 0


def plan(
    store: BaseStore, record: Record, desired: Dict[str, Any]
) -> Dict[str, Tuple[Any, Any]]:
    """
    Compare stored values against *desired* without writing anything.

    Absent fields read as 0 for integers and "" for strings.

    Returns:
        Mapping of field name to (current, desired) for fields that differ
    """
    drift: Dict[str, Tuple[Any, Any]] = {}
    for name, value in desired.items():
        current = store.get_field(record, name, _default_for(value))
        if current != value:
            drift[name] = (current, value)
        else:
            logger.debug(f"{record.path}\\{name} already {value!r}, skipping")
    return drift


def sync(store: BaseStore, record: Record, desired: Dict[str, Any]) -> SyncResult:
    """
    Write the fields of *desired* that differ from what is stored.

    Each field is written on its own. A rejected write is recorded and the
    remaining fields are still attempted; nothing is rolled back.

    Returns:
        The fields written and the fields whose write failed
    """
    result = SyncResult()
    for name, (current, value) in plan(store, record, desired).items():
        try:
            store.set_field(record, name, value)
        except StoreWriteFailure as e:
            logger.error(f"Could not update {record.path}\\{name}: {e}")
            result.failed[name] = e
            continue
        logger.info(f"Updated {record.path}\\{name}: {current!r} -> {value!r}")
        result.written.add(name)
    return result


def desired_fields(group: RecordGroup, name: str, encoded: int) -> Dict[str, Any]:
    """
    Build the store field values one group should hold.

    Args:
        group: Record group the values are for
        name: Product display name
        encoded: Encoded version

    Returns:
        Mapping of store value name to desired value
    """
    if group.label == CATALOG:
        logical: Dict[str, Any] = {"Name": name, "Version": encoded}
    elif group.label == UNINSTALL:
        logical = {
            "DisplayName": name,
            "DisplayVersion": decode(encoded),
            "Version": encoded,
            "VersionMajor": major_of(encoded),
            "VersionMinor": minor_of(encoded),
        }
    else:
        raise ValueError(f"Unknown record group {group.label!r}")
    return {group.store_name(key): value for key, value in logical.items()}


def reconcile(
    store: BaseStore,
    raw_version: str,
    product_name: str,
    groups: Optional[Sequence[RecordGroup]] = None,
    unique: bool = False,
    dry_run: bool = False,
) -> ReconcileReport:
    """
    Bring every record group of the product in line with *raw_version*.

    The version is parsed and all groups are located before the first
    write, so an invalid version or a missing record leaves the store
    untouched. Write failures do not stop the run; they are collected on
    the report.

    Args:
        store: Store holding the product records
        raw_version: Version string as discovered, e.g. ``"2.528.3"``
        product_name: Product base name, also the record match prefix
        groups: Record groups to reconcile; catalog and uninstall by default
        unique: Require exactly one matching record per group
        dry_run: Only compute the pending changes

    Returns:
        Report of changed, pending and failed fields
    """
    encoded = encode(parse_version(raw_version))
    name = display_name(product_name, raw_version)
    report = ReconcileReport(
        display_name=name,
        encoded=encoded,
        display_version=decode(encoded),
        dry_run=dry_run,
    )
    logger.info(
        f"Reconciling {name!r}: encoded 0x{encoded:08X} ({report.display_version})"
    )

    if groups is None:
        groups = default_groups(product_name)
    for group in groups:
        report.records[group.label] = locate(store, group, unique=unique)

    for group in groups:
        record = report.records[group.label]
        desired = desired_fields(group, name, encoded)
        for key, value in desired.items():
            report.desired[(group.label, key)] = value

        if dry_run:
            for key, change in plan(store, record, desired).items():
                report.pending[(group.label, key)] = change
            continue

        result = sync(store, record, desired)
        report.changed.update((group.label, key) for key in result.written)
        for failure in result.failed.values():
            failure.group = group.label
            report.failed.append(failure)

    if report.failed:
        logger.error(f"{len(report.failed)} field(s) could not be updated")
    elif not dry_run and not report.changed:
        logger.info("All records already up to date")
    return report
