
from __future__ import annotations

from .metrics import compute_hit_ratio, compute_items_per_s, compute_runtime_s

__all__ = [
    "compute_hit_ratio",
    "compute_items_per_s",
    "compute_runtime_s",
]
