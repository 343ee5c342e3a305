import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from pebble.local.errors import IoFailure

log = logging.getLogger(__name__)


def read_json(path: Path) -> Optional[Dict[str, Any]]:
    """
    Reads a JSON object from disk.

    :param path: The file to read.
    :return: The parsed object, or None if the file does not exist.
    :raises ValueError: If the file is not valid JSON or not a JSON object.
    :raises OSError: If the file exists but cannot be read.
    """
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def write_json_atomic(path: Path, data: Dict[str, Any]) -> None:
    """
    Atomically writes a JSON object to disk.

    The content goes to a sibling temp file first, which then replaces the
    target, so readers never observe a half-written file.

    :param path: The destination file.
    :param data: A JSON-serialisable dictionary.
    :raises IoFailure: If the file cannot be written.
    """
    temp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with temp_path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=4, sort_keys=True)
            f.write("\n")
        temp_path.replace(path)
        log.debug(f"Wrote {path}")
    except (IOError, OSError) as e:
        raise IoFailure(f"Failed to write {path}: {e}") from e
    finally:
        temp_path.unlink(missing_ok=True)
