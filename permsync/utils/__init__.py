"""
permsync.utils - Utility module

Common utilities including field list normalization and path resolution.
"""

from permsync.utils.normalization import (
    FieldListChanges,
    compare_field_lists,
    normalize_fields,
    split_fields,
)
from permsync.utils.paths import DEFAULT_CONFIG_DIR, resolve_config_dir

__all__ = [
    "FieldListChanges",
    "compare_field_lists",
    "normalize_fields",
    "split_fields",
    "resolve_config_dir",
    "DEFAULT_CONFIG_DIR",
]
