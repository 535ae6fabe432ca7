import random

from conftest import record
from pair_index.graphs import build_partner_graph
from pair_index.io_stage import STRICT, load_items, long_frame
from pair_index.normalize import split_pair_key
from pair_index.stats_stage import count_pairs, filter_pairs, rarest_pairs

CATS = ("base", "face", "mouth", "head")


def _random_records(n, seed=11):
    rng = random.Random(seed)
    pools = {
        "base": ["Wojak", "Soyjak", "Alien"],
        "face": ["Smile", "Frown", "Wink", "Blank"],
        "mouth": ["Pipe", "Gum"],
        "head": ["Crown", "Cap", "Halo", "Bandana", "Horns"],
    }
    return [record(i, **{c: rng.choice(pools[c]) for c in CATS}) for i in range(1, n + 1)]


def test_scenario_pair_counts(scenario_cfg):
    loaded = load_items(scenario_cfg, scenario_cfg.categories, STRICT)
    counts = count_pairs(long_frame(loaded.items, scenario_cfg.categories))
    assert counts == {"base::Soyjak||head::Crown": 1, "base::Wojak||head::Crown": 2}


def test_pair_counts_match_brute_force(make_cfg):
    recs = _random_records(60)
    cfg = make_cfg(recs, {}, categories=CATS)
    loaded = load_items(cfg, CATS, STRICT)
    counts = count_pairs(long_frame(loaded.items, CATS))

    expected = {}
    for item in loaded.items.values():
        keys = sorted(f"{c}::{item.traits[c]}" for c in CATS)
        for i in range(len(keys)):
            for j in range(i + 1, len(keys)):
                pk = f"{keys[i]}||{keys[j]}"
                expected[pk] = expected.get(pk, 0) + 1
    assert counts == expected
    assert list(counts) == sorted(counts)
    # C(4,2) pairs per item
    assert sum(counts.values()) == 6 * len(loaded.items)


def test_filter_respects_ceiling(make_cfg):
    cfg = make_cfg(_random_records(80), {}, categories=CATS)
    loaded = load_items(cfg, CATS, STRICT)
    counts = count_pairs(long_frame(loaded.items, CATS))
    filtered = filter_pairs(counts, 5)

    assert filtered
    assert all(n <= 5 for n in filtered.values())
    assert {k for k, n in counts.items() if n <= 5} == set(filtered)


def test_count_pairs_empty_frame(make_cfg):
    cfg = make_cfg([], {}, categories=CATS)
    loaded = load_items(cfg, CATS, STRICT)
    assert count_pairs(long_frame(loaded.items, CATS)) == {}


def test_rarest_pairs_ties_by_key():
    counts = {"a::x||b::y": 2, "a::x||b::z": 1, "a::w||b::y": 1}
    assert rarest_pairs(counts, 2) == [("a::w||b::y", 1), ("a::x||b::z", 1)]


def test_partner_graph_bidirectional_and_sorted():
    pairs = {
        "base::Wojak||head::Crown": 3,
        "base::Soyjak||head::Crown": 1,
        "base::Wojak||mouth::Pipe": 1,
    }
    graph = build_partner_graph(pairs)

    assert list(graph) == sorted(graph)
    assert graph["head::Crown"] == [("base::Soyjak", 1), ("base::Wojak", 3)]
    assert graph["base::Wojak"] == [("mouth::Pipe", 1), ("head::Crown", 3)]
    for pk, n in pairs.items():
        a, b = split_pair_key(pk)
        assert (b, n) in graph[a]
        assert (a, n) in graph[b]
