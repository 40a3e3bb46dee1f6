"""
permsync - Permission reconciliation between two Directus databases.

Compares the permission rules of a source and a target database and
replays selected differences from one onto the other.
"""

__version__ = "0.1.0"
