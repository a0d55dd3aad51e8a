"""
Utility functions for the wcferry library
"""
import os
import tempfile


def default_cache_dir(name: str = "wcferry") -> str:
    """Staging directory for files handed to the host"""
    return os.path.join(tempfile.gettempdir(), name)


def ensure_dir(path: str) -> str:
    os.makedirs(path, exist_ok=True)
    return path


def sql_quote(value: str) -> str:
    """Quote a value as an SQL string literal"""
    return "'" + value.replace("'", "''") + "'"
