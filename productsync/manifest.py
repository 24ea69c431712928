"""
Product version discovery for ProductSync.

The installed archive carries its own version in a manifest entry, e.g. the
``Jenkins-Version:`` line of ``META-INF/MANIFEST.MF`` inside ``jenkins.war``.
"""

import fnmatch
import logging
import re
import zipfile
from pathlib import Path

from productsync.errors import NotFound

logger = logging.getLogger(__name__)


def extract_entry(archive_path: Path, entry_glob: str) -> bytes:
    """
    Read the first archive entry whose name matches *entry_glob*.

    Args:
        archive_path: Path to a zip based archive (jar, war, zip)
        entry_glob: fnmatch pattern for the entry name

    Returns:
        The entry contents

    Raises:
        NotFound: If the archive is missing or unreadable, or no entry matches
    """
    logger.info(f"Reading {entry_glob} from {archive_path}")
    try:
        with zipfile.ZipFile(archive_path) as archive:
            for name in archive.namelist():
                if fnmatch.fnmatchcase(name, entry_glob):
                    logger.debug(f"Matched archive entry {name}")
                    return archive.read(name)
    except FileNotFoundError:
        raise NotFound(f"Archive {archive_path} does not exist") from None
    except (zipfile.BadZipFile, OSError) as e:
        raise NotFound(f"Archive {archive_path} is not readable: {e}") from e

    raise NotFound(f"No entry matching {entry_glob} in {archive_path}")


def extract_field(data: bytes, key: str) -> str:
    """
    Return the value of the first ``key: value`` line in a manifest.

    Raises:
        NotFound: If no line carries *key*
    """
    text = data.decode("utf-8", errors="replace")
    match = re.search(rf"^{re.escape(key)}:[ \t]*(.*)$", text, re.MULTILINE)
    if match is None:
        raise NotFound(f"Manifest has no {key} field")
    return match.group(1).strip()


def read_product_version(archive_path: Path, entry_glob: str, key: str) -> str:
    """Read the raw product version string out of an installed archive."""
    version = extract_field(extract_entry(archive_path, entry_glob), key)
    logger.info(f"Found {key}: {version}")
    return version
