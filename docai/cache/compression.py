"""Key-shortening compression for cached JSON payloads.

Well-known metadata keys are replaced by short aliases at every nesting
level and the result is stored as compact JSON. The transform is only
applied when it is reversible, i.e. when the payload does not already use
one of the short aliases as a key.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)

KEY_ALIASES: Dict[str, str] = {
    "clientName": "c",
    "clientConfidence": "cc",
    "date": "d",
    "dateConfidence": "dc",
    "docType": "dt",
    "docTypeConfidence": "dtc",
    "snippets": "s",
    "source": "src",
    "timestamp": "ts",
    "overallConfidence": "oc",
}
_EXPANSIONS: Dict[str, str] = {short: full for full, short in KEY_ALIASES.items()}


def _rename_keys(value: Any, mapping: Dict[str, str]) -> Any:
    if isinstance(value, dict):
        return {mapping.get(key, key): _rename_keys(item, mapping) for key, item in value.items()}
    if isinstance(value, list):
        return [_rename_keys(item, mapping) for item in value]
    return value


def _uses_alias(value: Any) -> bool:
    if isinstance(value, dict):
        return any(key in _EXPANSIONS or _uses_alias(item) for key, item in value.items())
    if isinstance(value, list):
        return any(_uses_alias(item) for item in value)
    return False


def can_compress(value: Any) -> bool:
    """True when :func:`compress_value` would be exactly reversible."""
    return not _uses_alias(value)


def compress_value(value: Any) -> str:
    """Shorten known keys and serialize as compact JSON.

    Raises:
        TypeError, ValueError: If ``value`` is not JSON serializable
    """
    return json.dumps(_rename_keys(value, KEY_ALIASES), separators=(",", ":"))


def decompress_value(data: str) -> Any:
    """Reverse :func:`compress_value`.

    Returns the stored string unchanged if it cannot be decoded.
    """
    try:
        return _rename_keys(json.loads(data), _EXPANSIONS)
    except (TypeError, ValueError) as e:
        logger.warning(f"Failed to decompress cached value: {e}")
        return data
