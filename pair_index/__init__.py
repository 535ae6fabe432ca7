# pair_index/__init__.py
"""
pair_index: offline pipeline over the collection's item attributes:
normalization, inverted trait index, pair co-occurrence counts, partner graph,
trait catalog, rare-pairing groups and hash-sharded pair families.
"""
from .config import Config, default_config
from .normalize import normalize, trait_key, pair_key
from .index_stage import step_combo_index
from .groups_stage import step_rare_pairings

__all__ = [
    "Config",
    "default_config",
    "normalize",
    "trait_key",
    "pair_key",
    "step_combo_index",
    "step_rare_pairings",
]
