# pair_index/family_stage.py
from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np
from pyroaring import BitMap
from tqdm import tqdm

from .normalize import split_pair_key
from .utils import log
from .writer import prepare_dir, write_json

Marker = Optional[Dict[str, Any]]

def hash_string(s: str) -> int:
    """djb2 over UTF-16 code units, kept to unsigned 32 bit at every step."""
    h = 5381
    for unit in np.frombuffer(s.encode("utf-16-le", "surrogatepass"), dtype="<u2").tolist():
        h = ((h << 5) + h + unit) & 0xFFFFFFFF
    return h

def shard_prefix(key: str) -> str:
    return f"{hash_string(key) >> 24:02x}"

def all_prefixes(n_shards: int = 256) -> List[str]:
    return [f"{i:02x}" for i in range(n_shards)]

def pair_family(index: Dict[str, BitMap], pk: str) -> BitMap:
    """Items holding both traits of the pair."""
    a, b = split_pair_key(pk)
    return index.get(a, BitMap()) & index.get(b, BitMap())

def order_family(ids: Iterable[int], sort_rank: Callable[[int], int]) -> List[int]:
    """Rank ascending (missing rank last via the sentinel), then id ascending."""
    arr = np.fromiter(ids, dtype=np.int64)
    if arr.size == 0:
        return []
    ranks = np.array([sort_rank(int(i)) for i in arr], dtype=np.int64)
    return arr[np.lexsort((arr, ranks))].tolist()

def truncate_family(ids: List[int], cap: int) -> Tuple[List[int], Marker]:
    if len(ids) > cap:
        return ids[:cap], {"truncated": True, "total": len(ids)}
    return ids, None

def build_family_shards(pair_keys: Iterable[str], index: Dict[str, BitMap],
                        sort_rank: Callable[[int], int], cap: int,
                        n_shards: int = 256) -> Dict[str, Dict[str, Any]]:
    """Every pair key placed in its hash shard, with its ordered (capped) family."""
    shards: Dict[str, Dict[str, Any]] = {p: {"pairs": {}, "truncated": {}} for p in all_prefixes(n_shards)}
    for pk in sorted(pair_keys):
        prefix = shard_prefix(pk)
        fam, marker = truncate_family(order_family(pair_family(index, pk), sort_rank), cap)
        shards[prefix]["pairs"][pk] = fam
        if marker is not None:
            shards[prefix]["truncated"][pk] = marker
    return shards

def write_family_shards(out_dir: Path, shards: Dict[str, Dict[str, Any]], schema_version: str,
                        generated_at: str, workers: int) -> List[int]:
    prepare_dir(out_dir)

    def _write(prefix: str) -> int:
        return write_json(out_dir / f"{prefix}.json", shards[prefix], schema_version, generated_at)

    with ThreadPoolExecutor(max_workers=max(1, workers)) as ex:
        sizes = list(tqdm(ex.map(_write, list(shards)), total=len(shards), desc="families"))

    if sizes:
        total = sum(sizes)
        log(f"[families] {len(sizes)} shards: avg {total / len(sizes) / 1024:.1f}KB, "
            f"min {min(sizes) / 1024:.1f}KB, max {max(sizes) / 1024:.1f}KB, total {total / 1024 / 1024:.2f}MB")
    return sizes
