# autotest_index.py
# Purpose: Validate integrity & consistency of the JSON artifacts produced by the pair_index pipeline.
# Outputs: human-readable console report (+ optional txt report).
# Runs advisory at the end of pair_index.main, or standalone:
#   python -m pair_index.autotest.autotest_index --root public

from __future__ import annotations
import argparse
import json
import math
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..config import Config, default_config
from ..family_stage import all_prefixes, shard_prefix
from ..normalize import split_pair_key, split_trait_key

# ---------------------- report ----------------------

STATUSES = ("PASS", "FAIL", "WARN", "SKIP")
RULE = "=" * 78


@dataclass
class CheckResult:
    name: str
    status: str  # one of STATUSES
    details: List[str] = field(default_factory=list)
    duration_s: float = 0.0

    def lines(self) -> List[str]:
        return [f"[{self.status}] {self.name} ({self.duration_s:.2f}s)"] + [f"  - {d}" for d in self.details]


class Suite:
    """Ordered check results over one artifact root."""

    def __init__(self) -> None:
        self.results: List[CheckResult] = []

    def run(self, name: str, fn: Callable[[Config], CheckResult], cfg: Config) -> CheckResult:
        # unreadable or malformed artifacts fail the check instead of aborting the report
        t0 = time.perf_counter()
        try:
            res = fn(cfg)
        except (OSError, ValueError, KeyError, TypeError) as e:
            res = CheckResult(name, "FAIL", [f"{type(e).__name__}: {e}"])
        res.duration_s = time.perf_counter() - t0
        self.results.append(res)
        return res

    def summary(self) -> Tuple[int, int, int, int]:
        """(PASS, FAIL, WARN, SKIP) counts."""
        counts = Counter(r.status for r in self.results)
        p, f, w, s = (counts[st] for st in STATUSES)
        return p, f, w, s

    def render(self) -> str:
        out = [RULE, "pair_index: artifact consistency report", RULE]
        for r in self.results:
            out.extend(r.lines())
        out.append("-" * 78)
        out.append("Summary: " + "  ".join(f"{st}={n}" for st, n in zip(STATUSES, self.summary())))
        return "\n".join(out) + "\n"


def _read(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _cap(problems: List[str], n: int = 8) -> List[str]:
    return problems[:n] + ([f"… {len(problems) - n} more"] if len(problems) > n else [])


def _is_valid_pair_key(pk: str) -> bool:
    a, b = split_pair_key(pk)
    return bool(a and b) and a < b and split_trait_key(a)[0] != split_trait_key(b)[0]


def _strictly_increasing(ids: List[int]) -> bool:
    return all(x < y for x, y in zip(ids, ids[1:]))


# 1) combo index -----------------------------------------------------------------

def check_inverted_index(cfg: Config) -> CheckResult:
    name = "combo: inverted_index.json"
    path = cfg.combo_dir / "inverted_index.json"
    if not path.exists():
        return CheckResult(name, "FAIL", [f"Missing: {path}"])
    doc = _read(path)
    traits, counts = doc.get("traits", {}), doc.get("trait_counts", {})
    problems: List[str] = []
    for key, ids in traits.items():
        if not _strictly_increasing(ids):
            problems.append(f"{key}: ids not sorted/unique")
        if counts.get(key) != len(ids):
            problems.append(f"{key}: trait_count {counts.get(key)} != {len(ids)} ids")
    if list(traits) != sorted(traits):
        problems.append("trait keys not in lexicographic order")
    if problems:
        return CheckResult(name, "FAIL", _cap(problems))
    return CheckResult(name, "PASS", [f"traits={len(traits):,}"])


def check_pair_counts(cfg: Config) -> CheckResult:
    name = "combo: pair_counts.json"
    path = cfg.combo_dir / "pair_counts.json"
    if not path.exists():
        return CheckResult(name, "FAIL", [f"Missing: {path}"])
    pairs = _read(path).get("pairs", {})
    problems = [f"{pk}: malformed pair key" for pk in pairs if not _is_valid_pair_key(pk)]
    problems += [f"{pk}: global {v['global']} > {cfg.max_pair_count}"
                 for pk, v in pairs.items() if v["global"] > cfg.max_pair_count]
    if problems:
        return CheckResult(name, "FAIL", _cap(problems))
    return CheckResult(name, "PASS", [f"pairs={len(pairs):,} (ceiling {cfg.max_pair_count})"])


def check_partner_index(cfg: Config) -> CheckResult:
    name = "combo: partner_index.json"
    path = cfg.combo_dir / "partner_index.json"
    pc_path = cfg.combo_dir / "pair_counts.json"
    if not path.exists():
        return CheckResult(name, "FAIL", [f"Missing: {path}"])
    partners = _read(path).get("partners", {})
    pairs = _read(pc_path).get("pairs", {}) if pc_path.exists() else None
    problems: List[str] = []
    edges = 0
    for key, lst in partners.items():
        order = [(e["global"], e["traitKey"]) for e in lst]
        if order != sorted(order):
            problems.append(f"{key}: partners not sorted by (global, traitKey)")
        edges += len(lst)
        if pairs is not None:
            for e in lst:
                lo, hi = sorted((key, e["traitKey"]))
                pk = f"{lo}||{hi}"
                if pk not in pairs or pairs[pk]["global"] != e["global"]:
                    problems.append(f"{key} -> {e['traitKey']}: not backed by pair_counts")
    if pairs is not None and edges != 2 * len(pairs):
        problems.append(f"edge count {edges} != 2 x {len(pairs)} pairs")
    if problems:
        return CheckResult(name, "FAIL", _cap(problems))
    return CheckResult(name, "PASS", [f"traits={len(partners):,}, edges={edges:,}"])


def check_trait_catalog(cfg: Config) -> CheckResult:
    name = "combo: trait_catalog.json"
    path = cfg.combo_dir / "trait_catalog.json"
    if not path.exists():
        return CheckResult(name, "FAIL", [f"Missing: {path}"])
    catalog = _read(path).get("categories", {})
    problems: List[str] = []
    for cat, lst in catalog.items():
        order = [(e["count"], e["trait"]) for e in lst]
        if order != sorted(order):
            problems.append(f"{cat}: not sorted by (count, trait)")
    missing = [c for c in cfg.categories if c not in catalog]
    if missing:
        problems.append(f"missing categories: {missing}")
    if problems:
        return CheckResult(name, "FAIL", _cap(problems))
    return CheckResult(name, "PASS", [", ".join(f"{c}:{len(v)}" for c, v in catalog.items())])


def check_id_shards(cfg: Config) -> CheckResult:
    name = "combo: traits_by_nft_*.json"
    files = sorted(cfg.combo_dir.glob("traits_by_nft_*.json"))
    if not files:
        return CheckResult(name, "FAIL", [f"No shard files in {cfg.combo_dir}"])
    problems: List[str] = []
    total = 0
    for f in files:
        doc = _read(f)
        start, end = doc["range"]
        for key in doc.get("nfts", {}):
            if not start <= int(key) <= end:
                problems.append(f"{f.name}: item {key} outside {start}-{end}")
        total += len(doc.get("nfts", {}))
    if problems:
        return CheckResult(name, "FAIL", _cap(problems))
    return CheckResult(name, "PASS", [f"files={len(files)}, items={total:,}"])


# 2) rare pairings ----------------------------------------------------------------

def _iter_groups(views: Dict[str, Any]) -> Iterable[Tuple[str, str, str, Dict[str, Any]]]:
    for view_name in ("primary", "drilldown"):
        for key, groups in views.get(view_name, {}).items():
            for sub_key, group in groups.items():
                yield view_name, key, sub_key, group


def check_rare_pairings(cfg: Config) -> CheckResult:
    name = "pairings: rare_pairings_index"
    path = cfg.rare_pairings_json
    if not path.exists():
        return CheckResult(name, "FAIL", [f"Missing: {path}"])
    views = _read(path).get("views", {})
    problems: List[str] = []
    empty: List[str] = []
    n_groups = 0
    for view_name, key, sub_key, group in _iter_groups(views):
        n_groups += 1
        where = f"{view_name}.{key}.{sub_key}"
        items = group.get("items") or []
        if not items:
            empty.append(where)
        if view_name == "drilldown" and group["count"] < cfg.drilldown_min_size:
            problems.append(f"{where}: {group['count']} members < {cfg.drilldown_min_size}")
        if len(items) > cfg.max_pairs_per_group:
            problems.append(f"{where}: {len(items)} entries > {cfg.max_pairs_per_group}")
        order = [(e["pair_count_global"], e["pair_count_in_group"],
                  math.inf if e["rank"] is None else e["rank"], e["pair_key"]) for e in items]
        if order != sorted(order):
            problems.append(f"{where}: entries out of order")
        for e in items:
            if e["pair_count_in_group"] > e["pair_count_global"]:
                problems.append(f"{where}: {e['pair_key']} in-group > global")
    if problems:
        return CheckResult(name, "FAIL", _cap(problems))
    if empty:
        return CheckResult(name, "WARN", _cap([f"empty items array in {w}" for w in empty]))
    return CheckResult(name, "PASS", [f"groups={n_groups:,}", "no empty items arrays"])


def check_family_shards(cfg: Config) -> CheckResult:
    name = "pairings: family shards"
    d = cfg.families_dir
    expected = all_prefixes(cfg.family_shards)
    missing = [p for p in expected if not (d / f"{p}.json").exists()]
    if missing:
        return CheckResult(name, "FAIL", [f"Missing shards: {missing[:8]}"])
    problems: List[str] = []
    n_pairs = 0
    n_trunc = 0
    for prefix in expected:
        doc = _read(d / f"{prefix}.json")
        pairs, truncated = doc.get("pairs", {}), doc.get("truncated", {})
        for pk, ids in pairs.items():
            n_pairs += 1
            if shard_prefix(pk) != prefix:
                problems.append(f"{pk}: in shard {prefix}, hashes to {shard_prefix(pk)}")
            if len(set(ids)) != len(ids):
                problems.append(f"{prefix}/{pk}: duplicate ids")
            marker = truncated.get(pk)
            if marker is not None:
                n_trunc += 1
                if len(ids) != cfg.family_cap or marker.get("total", 0) <= cfg.family_cap:
                    problems.append(f"{prefix}/{pk}: bad truncation marker {marker} (len={len(ids)})")
            elif len(ids) > cfg.family_cap:
                problems.append(f"{prefix}/{pk}: {len(ids)} ids over cap without marker")
    if problems:
        return CheckResult(name, "FAIL", _cap(problems))
    return CheckResult(name, "PASS", [f"shards={len(expected)}, pairs={n_pairs:,}, truncated={n_trunc:,}"])


# ---------------------- entry points --------------------------------------------

COMBO_CHECKS = [
    ("combo: inverted_index.json", check_inverted_index),
    ("combo: pair_counts.json", check_pair_counts),
    ("combo: partner_index.json", check_partner_index),
    ("combo: trait_catalog.json", check_trait_catalog),
    ("combo: traits_by_nft_*.json", check_id_shards),
]
PAIRING_CHECKS = [
    ("pairings: rare_pairings_index", check_rare_pairings),
    ("pairings: family shards", check_family_shards),
]


def run_checks(cfg: Config, steps: Optional[Iterable[str]] = None) -> Suite:
    steps = set(steps or ("combo", "pairings"))
    suite = Suite()
    if "combo" in steps:
        for name, fn in COMBO_CHECKS:
            suite.run(name, fn, cfg)
    if "pairings" in steps:
        for name, fn in PAIRING_CHECKS:
            suite.run(name, fn, cfg)
    return suite


def main() -> int:
    ap = argparse.ArgumentParser(description="pair_index – Consistency check for built artifacts")
    ap.add_argument("--root", type=Path, default=Path("public"), help="Path to data root")
    ap.add_argument("--report", type=Path, default=None, help="Optional path to write a txt report")
    ap.add_argument("--do", nargs="+", choices=["combo", "pairings"], default=["combo", "pairings"])
    args = ap.parse_args()

    suite = run_checks(default_config(args.root.resolve()), args.do)
    report = suite.render()
    print(report)
    if args.report is not None:
        args.report.write_text(report, encoding="utf-8")

    # Exit code: 0 unless any FAIL
    p, f, w, s = suite.summary()
    return 1 if f > 0 else 0


if __name__ == "__main__":
    raise SystemExit(main())
