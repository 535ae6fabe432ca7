# pair_index/graphs.py
from __future__ import annotations
from collections import defaultdict
from typing import Dict, List, Tuple

from .normalize import split_pair_key

def build_partner_graph(pairs: Dict[str, int]) -> Dict[str, List[Tuple[str, int]]]:
    """Bidirectional trait -> [(partner, global count)], rarest partner first."""
    edges: Dict[str, List[Tuple[str, int]]] = defaultdict(list)
    for pk, n in pairs.items():
        a, b = split_pair_key(pk)
        edges[a].append((b, n))
        edges[b].append((a, n))
    return {v: sorted(edges[v], key=lambda e: (e[1], e[0])) for v in sorted(edges)}
