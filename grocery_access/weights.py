"""Queen-contiguity spatial weights over the tract table (row-standardised)."""

from __future__ import annotations

import logging
import warnings
from typing import Any, Dict

import geopandas as gpd
import libpysal as ps
import numpy as np

from .errors import IslandError

log = logging.getLogger(__name__)

logging.getLogger("libpysal").setLevel(logging.ERROR)


def queen_weights(regions: gpd.GeoDataFrame, zero_policy: bool = True) -> ps.weights.W:
    """
    Row-standardised queen weights, one row per region in table order.

    Regions sharing any vertex or edge are neighbours. With `zero_policy`
    an isolated region keeps an all-zero row; without it, islands are fatal.
    """
    regions = regions.reset_index(drop=True)
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", message=".*is an island.*")
        warnings.filterwarnings("ignore", message=".*not fully connected.*")
        W = ps.weights.Queen.from_dataframe(regions, use_index=True, silence_warnings=True)
        W.transform = "R"

    if W.islands:
        if not zero_policy:
            raise IslandError(f"{len(W.islands)} region(s) have no queen neighbour "
                              f"(row(s) {W.islands[:10]}) and the zero policy is off")
        log.info("⚠ %d region(s) have no neighbour; their weight rows are zero", len(W.islands))
    if W.n_components > 1:
        log.info("⚠ Spatial weights have %d disconnected components", W.n_components)
    return W


def row_sums(W: ps.weights.W) -> np.ndarray:
    return np.asarray(W.sparse.sum(axis=1)).ravel()


def describe_weights(W: ps.weights.W) -> Dict[str, Any]:
    cards = np.array(list(W.cardinalities.values()), dtype=float)
    return {
        "n": int(W.n),
        "islands": len(W.islands),
        "components": int(W.n_components),
        "mean_neighbors": float(cards.mean()) if cards.size else 0.0,
        "max_neighbors": int(cards.max()) if cards.size else 0,
    }
