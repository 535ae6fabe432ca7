# pair_index/main.py
from __future__ import annotations
import argparse, os
from pathlib import Path
from typing import List, Optional

from .autotest.autotest_index import run_checks
from .config import default_config
from .errors import PairIndexError
from .groups_stage import step_rare_pairings
from .index_stage import step_combo_index
from .utils import log

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Build trait co-occurrence indexes for the collection")
    p.add_argument('--root', type=Path, default=Path('public'), help='Root of the static site data (default: public/)')
    p.add_argument('--metadata', type=Path, default=None, help='Collection metadata JSON (default: root/metadata.json)')
    p.add_argument('--rarity-data', type=Path, default=None, help='Rank mapping JSON (default: root/nftRarityData.json)')
    p.add_argument('--analysis', type=Path, default=None, help='Per-item analysis JSON with s_tier_traits (optional)')
    p.add_argument('--workers', type=int, default=os.cpu_count() or 4)
    p.add_argument('--do', nargs='+', choices=['combo', 'pairings'], default=['combo', 'pairings'],
                   help='Which steps to run')
    p.add_argument('--no-check', dest='check', action='store_false', default=True,
                   help='Skip the end-of-run consistency check')
    # tuning
    p.add_argument('--collection-size', type=int, default=4200)
    p.add_argument('--max-pair-count', type=int, default=25)
    p.add_argument('--id-shard-size', type=int, default=100)
    p.add_argument('--drilldown-min-size', type=int, default=5)
    p.add_argument('--max-pairs-per-group', type=int, default=50)
    p.add_argument('--family-cap', type=int, default=200)
    p.add_argument('--missing-rank', type=int, default=999_999)
    return p.parse_args(argv)

def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    root = args.root.resolve()

    cfg = default_config(root)
    if args.metadata is not None:
        cfg.metadata_json = args.metadata
    if args.rarity_data is not None:
        cfg.rarity_json = args.rarity_data
    if args.analysis is not None:
        cfg.analysis_json = args.analysis
    cfg.workers = args.workers
    cfg.collection_size = args.collection_size
    cfg.max_pair_count = args.max_pair_count
    cfg.id_shard_size = args.id_shard_size
    cfg.drilldown_min_size = args.drilldown_min_size
    cfg.max_pairs_per_group = args.max_pairs_per_group
    cfg.family_cap = args.family_cap
    cfg.missing_rank = args.missing_rank

    log("CONFIG:\n" + cfg.to_json())
    steps = set(args.do)

    try:
        if 'combo' in steps:
            step_combo_index(cfg)

        if 'pairings' in steps:
            step_rare_pairings(cfg)
    except PairIndexError as e:
        log(f"[FATAL] {e}")
        return 1

    if args.check:
        suite = run_checks(cfg, steps)
        print(suite.render())
        p, f, w, s = suite.summary()
        if f:
            log(f"[check] {f} consistency check(s) failed (advisory)")

    log("Done.")
    return 0

if __name__ == '__main__':
    raise SystemExit(main())
