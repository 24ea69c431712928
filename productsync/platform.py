"""
Platform defaults for ProductSync.

Centralizes Windows vs other-host differences so the rest of the codebase
can call simple functions instead of scattering ``sys.platform`` checks.
"""

import sys

CATALOG_PARENT = "HKEY_LOCAL_MACHINE\\SOFTWARE\\Classes\\Installer\\Products"
UNINSTALL_PARENT = (
    "HKEY_LOCAL_MACHINE\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Uninstall"
)

DEFAULT_PRODUCT_NAME = "Jenkins"
DEFAULT_MANIFEST_ENTRY = "META-INF/MANIFEST.MF"
DEFAULT_MANIFEST_KEY = "Jenkins-Version"


def is_windows() -> bool:
    """Return True when running on Windows."""
    return sys.platform == "win32"


def default_archive_path() -> str:
    """Return the platform-appropriate default location of the product archive."""
    if is_windows():
        return "C:\\Program Files\\Jenkins\\jenkins.war"
    return "/usr/share/java/jenkins.war"
