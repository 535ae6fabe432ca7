# pair_index/writer.py
from __future__ import annotations
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import WriteError
from .utils import ensure_dir

def render_json(payload: Dict[str, Any], schema_version: str, generated_at: Optional[str]) -> str:
    """Header fields first, then the payload in the caller's key order."""
    doc: Dict[str, Any] = {"schema_version": schema_version}
    if generated_at is not None:
        doc["generated_at"] = generated_at
    for k, v in payload.items():
        doc[k] = v
    return json.dumps(doc, indent=2, ensure_ascii=False) + "\n"

def prepare_dir(path: Path) -> None:
    """Create an output directory; failures surface as WriteError."""
    try:
        ensure_dir(path)
    except OSError as e:
        raise WriteError(path, str(e)) from e

def write_json(path: Path, payload: Dict[str, Any], schema_version: str,
               generated_at: Optional[str]) -> int:
    """Write one artifact atomically; returns the size in bytes."""
    data = render_json(payload, schema_version, generated_at).encode("utf-8")
    tmp_name = None
    try:
        ensure_dir(path.parent)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise WriteError(path, str(e)) from e
    return len(data)
