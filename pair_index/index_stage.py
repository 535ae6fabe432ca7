# pair_index/index_stage.py
from __future__ import annotations
from typing import Any, Dict, List, Sequence

import polars as pl
from pyroaring import BitMap
from tqdm import tqdm

from .config import Config
from .graphs import build_partner_graph
from .io_stage import STRICT, Item, item_rows, load_items, long_frame
from .normalize import split_trait_key
from .stats_stage import count_pairs, filter_pairs
from .utils import log, utc_now_iso
from .writer import prepare_dir, write_json

def build_inverted_index(long: pl.DataFrame) -> Dict[str, BitMap]:
    """trait_key -> BitMap of item ids, keys in lexicographic order."""
    if long.is_empty():
        return {}
    grouped = long.group_by("trait_key").agg(pl.col("item_id")).sort("trait_key")
    return {key: BitMap(ids) for key, ids in grouped.iter_rows()}

def build_trait_catalog(index: Dict[str, BitMap], categories: Sequence[str]) -> Dict[str, List[Dict[str, Any]]]:
    """Per category: traits rarest first, ties by name."""
    catalog: Dict[str, List[Dict[str, Any]]] = {c: [] for c in categories}
    for key, ids in index.items():
        cat, value = split_trait_key(key)
        if cat in catalog:
            catalog[cat].append({"trait": value, "count": len(ids)})
    for cat in categories:
        catalog[cat].sort(key=lambda e: (e["count"], e["trait"]))
    return catalog

def range_key(start: int, end: int) -> str:
    return f"{start:04d}_{end:04d}"

def build_id_shards(items: Dict[int, Item], categories: Sequence[str],
                    shard_size: int, collection_size: int) -> Dict[str, Dict[str, Any]]:
    """Fixed-size id ranges (1-100, 101-200, ...) -> per-item records."""
    shards: Dict[str, Dict[str, Any]] = {}
    for item_id, row in item_rows(items, categories):
        start = (item_id - 1) // shard_size * shard_size + 1
        end = min(start + shard_size - 1, collection_size)
        key = range_key(start, end)
        if key not in shards:
            shards[key] = {"range": [start, end], "nfts": {}}
        shards[key]["nfts"][str(item_id)] = row
    return {k: shards[k] for k in sorted(shards, key=lambda k: shards[k]["range"][0])}

# ---------- step ----------
def step_combo_index(cfg: Config) -> None:
    log("[combo] building combo explorer index (strict policy)")
    loaded = load_items(cfg, cfg.categories, STRICT)
    items = loaded.items
    long = long_frame(items, cfg.categories, skip_none=False)

    index = build_inverted_index(long)
    log(f"[combo] {len(items):,} items, {len(index):,} unique traits")

    pairs = count_pairs(long)
    filtered = filter_pairs(pairs, cfg.max_pair_count)
    log(f"[combo] pairs total={len(pairs):,} filtered(<={cfg.max_pair_count})={len(filtered):,}")

    partners = build_partner_graph(filtered)
    log(f"[combo] traits with partners: {len(partners):,}")

    catalog = build_trait_catalog(index, cfg.categories)
    log("[combo] traits per category: " + ", ".join(f"{c}:{len(v)}" for c, v in catalog.items()))

    shards = build_id_shards(items, cfg.categories, cfg.id_shard_size, cfg.collection_size)

    generated_at = utc_now_iso()
    out = cfg.combo_dir
    prepare_dir(out)
    schema = cfg.combo_schema

    write_json(out / "inverted_index.json", {
        "categories": list(cfg.categories),
        "traits": {k: list(ids) for k, ids in index.items()},
        "trait_counts": {k: len(ids) for k, ids in index.items()},
    }, schema, generated_at)
    write_json(out / "pair_counts.json", {
        "pairs": {k: {"global": n} for k, n in filtered.items()},
    }, schema, generated_at)
    write_json(out / "partner_index.json", {
        "partners": {k: [{"traitKey": p, "global": n} for p, n in edges] for k, edges in partners.items()},
    }, schema, generated_at)
    write_json(out / "trait_catalog.json", {"categories": catalog}, schema, generated_at)
    for key, shard in tqdm(shards.items(), desc="traits_by_nft"):
        write_json(out / f"traits_by_nft_{key}.json", shard, schema, generated_at)

    log(f"[combo] done: {len(shards)} id-range shards -> {out}")
