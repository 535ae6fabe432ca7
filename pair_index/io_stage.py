# pair_index/io_stage.py
from __future__ import annotations
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import polars as pl

from .config import Config
from .errors import IncompleteRecordWarning, InputReadError
from .normalize import NONE, normalize, trait_key
from .utils import log

STRICT = "strict"
LENIENT = "lenient"

@dataclass
class Item:
    item_id: int
    rank: Optional[int]
    image: Optional[str]
    traits: Dict[str, str]                          # category -> normalized
    raw: Dict[str, str] = field(default_factory=dict)  # category -> original text

@dataclass
class LoadResult:
    items: Dict[int, Item]                 # ascending item_id
    rank_sentinel: int
    skipped: List[IncompleteRecordWarning] = field(default_factory=list)
    report: Dict[str, Any] = field(default_factory=dict)

    def sort_rank(self, item_id: int) -> int:
        rank = self.items[item_id].rank
        return self.rank_sentinel if rank is None else rank

# ---------- readers ----------
def read_json(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise InputReadError(path, str(e)) from e

def _as_int(x: Any) -> Optional[int]:
    if isinstance(x, bool):
        return None
    if isinstance(x, int):
        return x
    if isinstance(x, str) and x.strip().isdigit():
        return int(x)
    return None

def load_rank_map(path: Path) -> Dict[int, Optional[int]]:
    """id -> rank, taken from the first element of each per-item array."""
    data = read_json(path)
    if not isinstance(data, dict):
        raise InputReadError(path, "expected an object keyed by item id")
    out: Dict[int, Optional[int]] = {}
    for key, row in data.items():
        item_id = _as_int(key)
        if item_id is None:
            continue
        out[item_id] = _as_int(row[0]) if isinstance(row, list) and row else None
    return out

def load_metadata(path: Path) -> List[Dict[str, Any]]:
    data = read_json(path)
    if not isinstance(data, list):
        raise InputReadError(path, "expected a list of item records")
    return data

def load_analysis(path: Path) -> Dict[str, Any]:
    """Optional auxiliary per-item analysis; an absent file means no provenance data."""
    if not path.exists():
        log(f"[load] {path.name} not found - provenance flags disabled")
        return {}
    data = read_json(path)
    if not isinstance(data, dict):
        raise InputReadError(path, "expected an object keyed by item id")
    return data

# ---------- record parsing ----------
def _parse_attributes(attributes: Iterable[Any], category_map: Dict[str, str]) -> Dict[str, str]:
    raw: Dict[str, str] = {}
    for attr in attributes:
        if not isinstance(attr, dict):
            continue
        ttype, value = attr.get("trait_type"), attr.get("value")
        if not ttype or not isinstance(value, str) or not value.strip():
            continue
        cat = category_map.get(ttype)
        if cat is not None:
            raw[cat] = value
    return raw

def _effective_sentinel(cfg: Config, ranks: Iterable[Optional[int]]) -> int:
    real = [r for r in ranks if r is not None]
    top = max(real) if real else 0
    if top >= cfg.missing_rank:
        log(f"[load] WARN: rank {top} reaches missing-rank sentinel {cfg.missing_rank}; using {top + 1}")
        return top + 1
    return cfg.missing_rank

def build_items(records: Sequence[Dict[str, Any]], ranks: Dict[int, Optional[int]],
                cfg: Config, categories: Sequence[str], policy: str) -> LoadResult:
    """Merge metadata records and ranks into items under the given missing-data policy."""
    if policy not in (STRICT, LENIENT):
        raise ValueError(f"unknown policy {policy!r}")

    items: Dict[int, Item] = {}
    seen: Set[int] = set()
    skipped: List[IncompleteRecordWarning] = []
    report: Dict[str, Any] = {"traits_normalized": 0, "missing_traits_filled": 0, "examples": []}

    for rec in records:
        item_id = _as_int(rec.get("edition")) if isinstance(rec, dict) else None
        attributes = rec.get("attributes") if isinstance(rec, dict) else None
        if item_id is None or not isinstance(attributes, list):
            log(f"[load] WARN: record without edition/attributes ignored: {str(rec)[:80]}")
            continue
        if item_id in seen:
            log(f"[load] WARN: duplicate record for item #{item_id} ignored")
            continue
        seen.add(item_id)

        raw = _parse_attributes(attributes, cfg.category_map)
        missing = [c for c in categories if c not in raw]
        if missing and policy == STRICT:
            w = IncompleteRecordWarning(item_id, missing)
            log(f"[load] WARN: {w}")
            skipped.append(w)
            continue

        traits: Dict[str, str] = {}
        shown: Dict[str, str] = {}
        changed = False
        for c in categories:
            if c in raw:
                traits[c] = normalize(raw[c])
                shown[c] = raw[c].strip()
                changed = changed or traits[c] != shown[c]
            else:
                traits[c] = shown[c] = NONE
                report["missing_traits_filled"] += 1
        if changed:
            report["traits_normalized"] += 1
            if len(report["examples"]) < 10:
                report["examples"].append({
                    "nftId": item_id,
                    "original": [shown[c] for c in categories],
                    "normalized": [traits[c] for c in categories],
                })

        image = rec.get("image")
        items[item_id] = Item(item_id, ranks.get(item_id), image if isinstance(image, str) else None,
                              traits, shown)

    if policy == LENIENT:
        for item_id in range(1, cfg.collection_size + 1):
            if item_id not in items:
                report["missing_traits_filled"] += 1
                none = {c: NONE for c in categories}
                items[item_id] = Item(item_id, ranks.get(item_id), None, none, dict(none))

    ordered = {k: items[k] for k in sorted(items)}
    sentinel = _effective_sentinel(cfg, (it.rank for it in ordered.values()))
    log(f"[load] {policy}: {len(ordered):,} items, {len(skipped):,} skipped")
    return LoadResult(ordered, sentinel, skipped, report)

def load_items(cfg: Config, categories: Sequence[str], policy: str) -> LoadResult:
    records = load_metadata(cfg.metadata_json)
    log(f"[load] read {cfg.metadata_json.name}: {len(records):,} records")
    ranks = load_rank_map(cfg.rarity_json)
    log(f"[load] read {cfg.rarity_json.name}: {len(ranks):,} ranks")
    return build_items(records, ranks, cfg, categories, policy)

# ---------- long format ----------
def long_frame(items: Dict[int, Item], categories: Sequence[str], skip_none: bool = True) -> pl.DataFrame:
    """(item_id, category, trait_key) rows, one per item and category."""
    ids: List[int] = []
    cats: List[str] = []
    keys: List[str] = []
    for item in items.values():
        for c in categories:
            value = item.traits.get(c, NONE)
            if skip_none and value == NONE:
                continue
            ids.append(item.item_id)
            cats.append(c)
            keys.append(trait_key(c, value))
    return pl.DataFrame(
        {"item_id": ids, "category": cats, "trait_key": keys},
        schema={"item_id": pl.Int64, "category": pl.Utf8, "trait_key": pl.Utf8},
    ).unique(subset=["item_id", "trait_key"], maintain_order=True)

def item_rows(items: Dict[int, Item], categories: Sequence[str]) -> List[Tuple[int, Dict[str, Any]]]:
    """Serializable per-item records in id order."""
    return [(it.item_id, {"rank": it.rank, "image": it.image,
                          "traits": {c: it.traits[c] for c in categories}})
            for it in items.values()]
