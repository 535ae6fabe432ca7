# pair_index/stats_stage.py
from __future__ import annotations
from typing import Dict, List, Tuple

import numpy as np
import polars as pl
import scipy.sparse as sp

from .normalize import pair_key
from .utils import log

def count_pairs(long: pl.DataFrame) -> Dict[str, int]:
    """Global co-occurrence count of every cross-category trait pair.

    ``long`` holds one (item_id, category, trait_key) row per item trait, with
    sentinel traits already removed. Trait ids follow the sorted trait keys, so
    an upper-triangle cell (row < col) is already in pair-key order.
    """
    if long.is_empty():
        return {}

    uniq_tags = (long
        .select(["trait_key", "category"])
        .unique(subset=["trait_key"])
        .sort("trait_key")
        .with_row_index("tid"))
    uniq_items = (long
        .select("item_id")
        .unique()
        .sort("item_id")
        .with_row_index("rid"))

    rows = (long
        .join(uniq_tags.select(["trait_key", "tid"]), on="trait_key", how="inner")
        .join(uniq_items, on="item_id", how="inner")
        .select(["rid", "tid"]))

    N = int(uniq_items.height)
    T = int(uniq_tags.height)
    r = rows.get_column("rid").to_numpy().astype(np.int64, copy=False)
    c = rows.get_column("tid").to_numpy().astype(np.int64, copy=False)
    data = np.ones_like(r, dtype=np.int32)
    X = sp.csr_matrix((data, (r, c)), shape=(N, T), dtype=np.int32)

    C = (X.T @ X).tocoo()

    cats = uniq_tags.get_column("category").to_list()
    code_of = {name: i for i, name in enumerate(sorted(set(cats)))}
    cat_codes = np.array([code_of[name] for name in cats], dtype=np.int32)
    mask = (C.row < C.col) & (cat_codes[C.row] != cat_codes[C.col])

    keys = uniq_tags.get_column("trait_key").to_list()
    out: List[Tuple[str, int]] = [
        (pair_key(keys[a], keys[b]), int(n))
        for a, b, n in zip(C.row[mask].tolist(), C.col[mask].tolist(), C.data[mask].tolist())
    ]
    out.sort(key=lambda t: t[0])
    log(f"[pairs] {len(out):,} pairs (N={N:,}, T={T:,}, nnz={C.nnz:,})")
    return dict(out)

def filter_pairs(counts: Dict[str, int], ceiling: int) -> Dict[str, int]:
    """Keep pairs seen at most ``ceiling`` times."""
    return {k: n for k, n in counts.items() if n <= ceiling}

def rarest_pairs(counts: Dict[str, int], k: int = 5) -> List[Tuple[str, int]]:
    return sorted(counts.items(), key=lambda t: (t[1], t[0]))[:k]
