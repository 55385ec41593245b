"""Validated lookup of integer hyperparameters from model metadata.

Exported models store their shape hyperparameters as a string-to-string
custom metadata map. Every value the adapter relies on must be present and
a positive integer; anything else is a configuration error for the model.
"""

import logging
from collections.abc import Iterable, Mapping

from lstm_stt.errors import MetadataError

logger = logging.getLogger(__name__)


def read_positive_int(metadata: Mapping[str, str], key: str) -> int:
    """Read one positive integer from a metadata map.

    Args:
        metadata: The model's custom metadata map.
        key: Metadata key to read.

    Returns:
        The parsed value, guaranteed > 0.

    Raises:
        MetadataError: If the key is missing, not an integer, or <= 0.
    """
    if key not in metadata:
        raise MetadataError(key, None, "does not exist in the metadata")

    raw = metadata[key]
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise MetadataError(key, raw, f"expected an integer, got {raw!r}") from None

    if value <= 0:
        raise MetadataError(key, raw, f"invalid value {value}, must be positive")
    return value


def read_hyperparameters(metadata: Mapping[str, str], keys: Iterable[str]) -> dict[str, int]:
    """Read several positive integers, failing on the first bad key."""
    return {key: read_positive_int(metadata, key) for key in keys}


def format_metadata(metadata: Mapping[str, str], title: str) -> str:
    """Render a metadata map for operator inspection."""
    lines = [f"---{title}---"]
    for key in sorted(metadata):
        lines.append(f"{key}={metadata[key]}")
    return "\n".join(lines)


def log_metadata(metadata: Mapping[str, str], title: str) -> None:
    """Dump a metadata map to the package log (debug mode).

    Logged at WARNING so the dump reaches stderr even when the application
    has not configured logging.
    """
    logger.warning("%s", format_metadata(metadata, title))
