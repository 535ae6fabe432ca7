# pair_index/config.py
from __future__ import annotations
import dataclasses, json, os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Tuple

# metadata trait_type -> internal category
CATEGORY_MAP: Dict[str, str] = {
    "Base": "base",
    "Face": "face",
    "Mouth": "mouth",
    "Face Wear": "facewear",
    "Head": "head",
    "Clothes": "clothes",
    "Background": "background",
}

CATEGORY_LABELS: Dict[str, str] = {
    "base": "Base",
    "face": "Face",
    "mouth": "Mouth",
    "facewear": "Face Wear",
    "head": "Head",
    "clothes": "Clothes",
    "background": "Background",
}

COMBO_CATEGORIES: Tuple[str, ...] = ("base", "face", "mouth", "facewear", "head", "clothes", "background")
PAIRING_CATEGORIES: Tuple[str, ...] = ("base", "clothes", "head", "face", "mouth", "facewear")

@dataclass
class Config:
    # inputs
    root: Path
    metadata_json: Path
    rarity_json: Path
    analysis_json: Path
    # outputs
    combo_dir: Path
    rare_pairings_json: Path
    families_dir: Path

    categories: Tuple[str, ...] = COMBO_CATEGORIES           # strict / combo step
    pairing_categories: Tuple[str, ...] = PAIRING_CATEGORIES  # lenient / pairings step
    category_map: Dict[str, str] = field(default_factory=lambda: dict(CATEGORY_MAP))
    category_labels: Dict[str, str] = field(default_factory=lambda: dict(CATEGORY_LABELS))

    collection_size: int = 4200
    max_pair_count: int = 25         # ceiling for pair_counts / partner index
    id_shard_size: int = 100         # ids per traits_by_nft file
    drilldown_min_size: int = 5
    max_pairs_per_group: int = 50
    family_cap: int = 200
    family_shards: int = 256
    missing_rank: int = 999_999

    combo_schema: str = "1.0"
    pairings_schema: str = "1.3"
    families_schema: str = "1.0"

    # system
    workers: int = os.cpu_count() or 4

    def to_json(self) -> str:
        return json.dumps(dataclasses.asdict(self), indent=2, default=str)

def default_config(root: Path) -> Config:
    """Config with the standard public/ layout under ``root``."""
    return Config(
        root=root,
        metadata_json=root / "metadata.json",
        rarity_json=root / "nftRarityData.json",
        analysis_json=root / "assets" / "BigPulp" / "all_nft_analysis.json",
        combo_dir=root / "assets" / "BigPulp" / "combo_index_v1",
        rare_pairings_json=root / "assets" / "BigPulp" / "rare_pairings_index_v1.json",
        families_dir=root / "assets" / "BigPulp" / "pair_families_v1",
    )
