# pair_index/groups_stage.py
"""
Rare pairings stage:
- primary groups: one per (category, trait value)
- drilldown groups: one per (category A, category B, joint values), small ones dropped
- per group: in-group pair counts, best example, rarity ordering, top-N cut
- family shards for every global pair (see family_stage)
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from itertools import combinations, permutations
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from pyroaring import BitMap
from tqdm import tqdm

from .config import Config
from .family_stage import build_family_shards, pair_family, truncate_family, write_family_shards
from .index_stage import build_inverted_index
from .io_stage import LENIENT, Item, load_analysis, load_items, long_frame
from .normalize import NONE, normalize, pair_key, split_pair_key, split_trait_key, trait_key
from .stats_stage import count_pairs, rarest_pairs
from .utils import log, utc_now_iso
from .writer import write_json

Groups = Dict[str, Dict[str, List[int]]]
ProvenanceLookup = Set[Tuple[str, str]]

# ----------------------- membership -----------------------

def build_primary_groups(items: Dict[int, Item], categories: Sequence[str]) -> Groups:
    groups: Groups = {c: defaultdict(list) for c in categories}
    for item in items.values():
        for c in categories:
            value = item.traits.get(c, NONE)
            if value != NONE:
                groups[c][value].append(item.item_id)
    return {c: {v: groups[c][v] for v in sorted(groups[c])} for c in categories}

def drilldown_key(cat_a: str, cat_b: str) -> str:
    return f"{cat_a}__{cat_b}"

def build_drilldown_groups(items: Dict[int, Item], categories: Sequence[str], min_size: int) -> Groups:
    """Joint-value groups for every ordered category pair; groups under ``min_size`` are dropped."""
    ordered = list(permutations(categories, 2))
    groups: Dict[str, Dict[str, List[int]]] = {drilldown_key(a, b): defaultdict(list) for a, b in ordered}
    for item in items.values():
        for a, b in ordered:
            va, vb = item.traits.get(a, NONE), item.traits.get(b, NONE)
            if va != NONE and vb != NONE:
                groups[drilldown_key(a, b)][f"{va}::{vb}"].append(item.item_id)
    return {
        key: {sub: ids for sub, ids in sorted(subs.items()) if len(ids) >= min_size}
        for key, subs in groups.items()
    }

def item_pair_table(items: Dict[int, Item], categories: Sequence[str]) -> Dict[int, List[str]]:
    """Each item's cross-category pair keys, sentinel traits skipped."""
    table: Dict[int, List[str]] = {}
    for item in items.values():
        keys = [trait_key(c, item.traits[c]) for c in categories if item.traits.get(c, NONE) != NONE]
        table[item.item_id] = [pair_key(a, b) for a, b in combinations(keys, 2)]
    return table

# ----------------------- provenance -----------------------

def build_provenance_lookup(analysis: Dict[str, Any]) -> ProvenanceLookup:
    """(category label lowercased, normalized trait) for every high-provenance trait."""
    out: ProvenanceLookup = set()
    for rec in analysis.values():
        if not isinstance(rec, dict):
            continue
        for st in rec.get("s_tier_traits") or []:
            if isinstance(st, dict) and st.get("trait") and st.get("category"):
                out.add((str(st["category"]).lower(), normalize(st["trait"])))
    return out

def has_provenance_bonus(pk: str, labels: Dict[str, str], lookup: ProvenanceLookup) -> bool:
    for tk in split_pair_key(pk):
        cat, value = split_trait_key(tk)
        if (labels.get(cat, cat).lower(), value) in lookup:
            return True
    return False

# ----------------------- scoring -----------------------

@dataclass
class ScoredPair:
    pair_key: str
    global_count: int
    in_group_count: int
    best_id: int
    best_rank: int      # sort rank, sentinel when missing
    first_member: int   # first member holding the pair, source of display text

    def sort_key(self) -> Tuple[int, int, int, str]:
        return (self.global_count, self.in_group_count, self.best_rank, self.pair_key)

def score_group(member_ids: Sequence[int], item_pairs: Dict[int, List[str]], global_counts: Dict[str, int],
                sort_rank: Callable[[int], int], top_n: Optional[int]) -> List[ScoredPair]:
    """In-group pairs ordered rarest first; ``top_n`` of None keeps all."""
    in_group: Dict[str, int] = defaultdict(int)
    best: Dict[str, Tuple[int, int]] = {}   # pk -> (rank, id)
    first: Dict[str, int] = {}
    for item_id in sorted(member_ids):
        cand = (sort_rank(item_id), item_id)
        for pk in item_pairs[item_id]:
            in_group[pk] += 1
            if pk not in first:
                first[pk] = item_id
                best[pk] = cand
            elif cand < best[pk]:
                best[pk] = cand

    scored = [
        ScoredPair(pk, global_counts.get(pk, 0), n, best[pk][1], best[pk][0], first[pk])
        for pk, n in in_group.items()
    ]
    scored.sort(key=ScoredPair.sort_key)
    return scored if top_n is None else scored[:top_n]

@dataclass
class PairingContext:
    items: Dict[int, Item]
    categories: Sequence[str]
    labels: Dict[str, str]
    global_counts: Dict[str, int]
    index: Dict[str, BitMap]
    item_pairs: Dict[int, List[str]]
    sort_rank: Callable[[int], int]
    provenance: ProvenanceLookup
    family_cap: int
    top_n: int

def render_entry(sp: ScoredPair, group_label: str, members: BitMap, ctx: PairingContext) -> Dict[str, Any]:
    holder = ctx.items[sp.first_member]
    pairs = []
    for tk in split_pair_key(sp.pair_key):
        cat, value = split_trait_key(tk)
        shown = holder.raw.get(cat, value) if holder.traits.get(cat) == value else value
        pairs.append({"category": ctx.labels.get(cat, cat), "trait": shown})

    family = pair_family(ctx.index, sp.pair_key)
    family_global, marker = truncate_family(list(family), ctx.family_cap)
    entry: Dict[str, Any] = {
        "nftId": sp.best_id,
        "rank": ctx.items[sp.best_id].rank,
        "group_label": group_label,
        "pairs": pairs,
        "pair_key": sp.pair_key,
        "pair_label": f"{pairs[0]['trait']} + {pairs[1]['trait']}",
        "pair_count_global": sp.global_count,
        "pair_count_in_group": sp.in_group_count,
        "provenance_bonus": has_provenance_bonus(sp.pair_key, ctx.labels, ctx.provenance),
        "family_global": family_global,
        "family_in_group": list(family & members),
    }
    if marker is not None:
        entry["family_truncated"] = True
        entry["family_total_global"] = marker["total"]
    return entry

def analyze_group(member_ids: List[int], label: str, ctx: PairingContext) -> Dict[str, Any]:
    scored = score_group(member_ids, ctx.item_pairs, ctx.global_counts, ctx.sort_rank, ctx.top_n)
    members = BitMap(member_ids)
    return {
        "label": label,
        "count": len(member_ids),
        "items": [render_entry(sp, label, members, ctx) for sp in scored],
    }

def build_views(primary: Groups, drilldown: Groups, ctx: PairingContext) -> Dict[str, Any]:
    views: Dict[str, Any] = {"primary": {}, "drilldown": {}}
    for cat, groups in primary.items():
        views["primary"][cat] = {
            value: analyze_group(ids, value, ctx)
            for value, ids in tqdm(groups.items(), desc=f"primary:{cat}", leave=False)
        }
    for dd_key, subgroups in tqdm(drilldown.items(), desc="drilldown"):
        out = {}
        for sub_key, ids in subgroups.items():
            va, _, vb = sub_key.partition("::")
            out[sub_key] = analyze_group(ids, f"{va} + {vb}", ctx)
        views["drilldown"][dd_key] = out
    return views

def find_empty_groups(views: Dict[str, Any]) -> List[str]:
    empty = []
    for view_name in ("primary", "drilldown"):
        for key, groups in views.get(view_name, {}).items():
            for sub_key, group in groups.items():
                if not group.get("items"):
                    empty.append(f"{view_name}.{key}.{sub_key}")
    return empty

# ----------------------- step -----------------------

def unique_traits_per_category(items: Dict[int, Item], categories: Sequence[str]) -> Dict[str, int]:
    return {c: len({it.traits[c] for it in items.values() if it.traits.get(c, NONE) != NONE})
            for c in categories}

def step_rare_pairings(cfg: Config) -> None:
    log("[pairings] building rare pairings index (lenient policy)")
    provenance = build_provenance_lookup(load_analysis(cfg.analysis_json))
    log(f"[pairings] high-provenance traits: {len(provenance):,}")

    cats = cfg.pairing_categories
    loaded = load_items(cfg, cats, LENIENT)
    items = loaded.items
    report = loaded.report
    log(f"[pairings] traits normalized: {report['traits_normalized']:,}; "
        f"missing traits filled: {report['missing_traits_filled']:,}")

    long = long_frame(items, cats, skip_none=True)
    global_counts = count_pairs(long)
    index = build_inverted_index(long)

    primary = build_primary_groups(items, cats)
    drilldown = build_drilldown_groups(items, cats, cfg.drilldown_min_size)
    for c in cats:
        log(f"[pairings]   {c}: {len(primary[c]):,} primary groups")
    log(f"[pairings] drilldown groups kept (>= {cfg.drilldown_min_size} members): "
        f"{sum(len(v) for v in drilldown.values()):,}")

    ctx = PairingContext(
        items=items,
        categories=cats,
        labels=cfg.category_labels,
        global_counts=global_counts,
        index=index,
        item_pairs=item_pair_table(items, cats),
        sort_rank=loaded.sort_rank,
        provenance=provenance,
        family_cap=cfg.family_cap,
        top_n=cfg.max_pairs_per_group,
    )
    views = build_views(primary, drilldown, ctx)

    generated_at = utc_now_iso()
    shards = build_family_shards(global_counts.keys(), index, loaded.sort_rank, cfg.family_cap, cfg.family_shards)
    write_family_shards(cfg.families_dir, shards, cfg.families_schema, generated_at, cfg.workers)

    size = write_json(cfg.rare_pairings_json, {
        "source_files": [cfg.metadata_json.name, cfg.rarity_json.name, cfg.analysis_json.name],
        "input_counts": {
            "total_nfts_processed": len(items),
            "unique_traits_per_category": unique_traits_per_category(items, cats),
            "total_unique_pairKeys": len(global_counts),
        },
        "normalization_report": report,
        "categories": list(cats),
        "views": views,
    }, cfg.pairings_schema, generated_at)
    log(f"[pairings] main index: {size / 1024:.1f}KB -> {cfg.rare_pairings_json}")

    log("[pairings] rarest global pairs:")
    for pk, n in rarest_pairs(global_counts, 5):
        log(f"[pairings]   {pk}: {n}")
    empty = find_empty_groups(views)
    for name in empty:
        log(f"[pairings] WARN: empty items array in {name}")
    if not empty:
        log("[pairings] no empty items arrays found")
    log("[pairings] done")
