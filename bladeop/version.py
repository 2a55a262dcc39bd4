"""Operator version information and feature checks based on it."""

from __future__ import annotations

import re

CRI_VERSION = "1.5.0"
DEFAULT_VERSION = "unknown"
DEFAULT_PRODUCT = "community"
DELIMITER = ","

# Set at build time as "<version><delimiter><product>"; empty means defaults.
COMBINED_VERSION = ""

_INTEGER = re.compile(r"[+-]?[0-9]+")


def parse_combined_version(combined: str, delimiter: str = DELIMITER) -> tuple[str, str]:
    """Split a combined "version,product" string into its two parts.

    Missing parts fall back to the defaults.
    """
    if not combined:
        return DEFAULT_VERSION, DEFAULT_PRODUCT
    fields = combined.split(delimiter)
    version = fields[0]
    product = fields[1] if len(fields) > 1 else DEFAULT_PRODUCT
    return version, product


VERSION, PRODUCT = parse_combined_version(COMBINED_VERSION)


def has_cri_command(version: str | None = None) -> bool:
    """Return whether the given version is at least the one that has CRI commands."""
    if version is None:
        version = VERSION
    parts = version.split(".")
    if len(parts) != 3:
        return False
    for part, cri_part in zip(parts, CRI_VERSION.split(".")):
        if not _INTEGER.fullmatch(part):
            return False
        value = int(part)
        required = int(cri_part)
        if value == required:
            continue
        return value > required
    return True