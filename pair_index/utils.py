# pair_index/utils.py
from __future__ import annotations
from datetime import datetime, timezone
from pathlib import Path

def log(msg: str) -> None:
    ts = datetime.now().strftime('%H:%M:%S')
    print(f"[{ts}] {msg}", flush=True)

def ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)

def utc_now_iso() -> str:
    # one timestamp per step, shared by every document the step writes
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
