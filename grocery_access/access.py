"""
Store filtering, buffering and tract-level access counts
========================================================

A store counts toward a tract's access when it is open, its name matches
the keyword allowlist, and its one-mile buffer intersects the tract polygon.
Overlapping buffers are counted separately: a tract near three stores scores
3, which keeps the "choice of stores" information a union would lose.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence

import geopandas as gpd
import pandas as pd
from pyproj import CRS

from . import config as cfg
from .errors import JoinKeyMismatchError

log = logging.getLogger(__name__)

UNSERVED_POLICIES = ("fill", "drop")


def is_qualifying(name: Any, status: Any, keywords: Iterable[str], open_status: str = cfg.OPEN_STATUS) -> bool:
    """True when `status` is the open sentinel and `name` contains any keyword."""
    if not isinstance(name, str) or status != open_status:
        return False
    return any(k in name for k in keywords)


def flag_stores(stores: gpd.GeoDataFrame, keywords: Sequence[str],
                open_status: str = cfg.OPEN_STATUS) -> gpd.GeoDataFrame:
    """Copy of every store with a boolean `qualifies` column."""
    keywords = list(keywords)
    flags = [is_qualifying(n, s, keywords, open_status) for n, s in zip(stores["name"], stores["status"])]
    flagged = stores.assign(qualifies=pd.Series(flags, index=stores.index, dtype=bool))

    n_open = int((stores["status"] == open_status).sum())
    log.info("  %d of %d stores are %s; %d match the keyword list",
             n_open, len(stores), open_status, int(flagged["qualifies"].sum()))
    return flagged


def filter_stores(stores: gpd.GeoDataFrame, keywords: Sequence[str],
                  open_status: str = cfg.OPEN_STATUS) -> gpd.GeoDataFrame:
    """Qualifying stores only."""
    flagged = flag_stores(stores, keywords, open_status)
    return flagged[flagged["qualifies"]].drop(columns="qualifies")


def buffer_radius(crs: Any = cfg.WORKING_CRS, miles: float = cfg.BUFFER_MILES) -> float:
    """`miles` statute miles expressed in the linear unit of a projected CRS."""
    crs = CRS.from_user_input(crs)
    if not crs.is_projected:
        raise ValueError(f"Buffering needs a projected CRS, got {crs.to_string()}")
    metres_per_unit = crs.axis_info[0].unit_conversion_factor
    return miles * cfg.METERS_PER_MILE / metres_per_unit


def buffer_stores(stores: gpd.GeoDataFrame, radius: float) -> gpd.GeoDataFrame:
    """One fixed-radius disk per store, carrying the store attributes."""
    if radius <= 0:
        raise ValueError(f"Buffer radius must be positive, got {radius}")
    buffers = stores.copy()
    buffers["geometry"] = stores.geometry.buffer(radius)
    buffers = buffers.set_geometry("geometry")
    buffers["buffer_id"] = range(len(buffers))
    return buffers


def count_buffers(regions: gpd.GeoDataFrame, buffers: gpd.GeoDataFrame) -> pd.Series:
    """
    Number of distinct buffers intersecting each region.

    Regions touched by no buffer are absent from the result; see
    `attach_access` for how they are treated.
    """
    if buffers.empty:
        return pd.Series([], index=pd.Index([], dtype=object, name=cfg.REGION_ID),
                         dtype="int64", name=cfg.ACCESS_COL)
    if buffers.crs != regions.crs:
        raise ValueError(f"CRS mismatch: buffers {buffers.crs} vs regions {regions.crs}")

    joined = gpd.sjoin(buffers[["buffer_id", "geometry"]], regions[[cfg.REGION_ID, "geometry"]],
                       how="inner", predicate="intersects")
    counts = joined.drop_duplicates(subset=["buffer_id", cfg.REGION_ID]).groupby(cfg.REGION_ID).size()
    return counts.rename(cfg.ACCESS_COL).astype("int64")


def attach_access(regions: gpd.GeoDataFrame, counts: pd.Series, unserved: str = cfg.UNSERVED_POLICY
                  ) -> gpd.GeoDataFrame:
    """
    Merge per-region counts onto the region table by id.

    `unserved="fill"` gives regions without any intersecting buffer a count
    of 0; `"drop"` removes them, as an inner merge on the count table would.
    """
    if unserved not in UNSERVED_POLICIES:
        raise ValueError(f"unserved must be one of {UNSERVED_POLICIES}, got {unserved!r}")

    unknown = set(counts.index) - set(regions[cfg.REGION_ID])
    if unknown:
        raise JoinKeyMismatchError(f"{len(unknown)} counted region id(s) not in the region table, "
                                   f"e.g. {sorted(unknown)[0]}")

    out = regions.copy()
    out[cfg.ACCESS_COL] = out[cfg.REGION_ID].map(counts)
    unserved_mask = out[cfg.ACCESS_COL].isna()
    if unserved == "fill":
        out[cfg.ACCESS_COL] = out[cfg.ACCESS_COL].fillna(0).astype("int64")
        log.info("  %d of %d tracts have no store buffer; access set to 0", int(unserved_mask.sum()), len(out))
    else:
        out = out[~unserved_mask].copy()
        out[cfg.ACCESS_COL] = out[cfg.ACCESS_COL].astype("int64")
        log.info("⚠ Dropped %d tracts with no store buffer", int(unserved_mask.sum()))
    return out.reset_index(drop=True)


def merge_demographics(regions: gpd.GeoDataFrame, demographics: pd.DataFrame,
                       column: str = cfg.FRACTION_COL) -> gpd.GeoDataFrame:
    """Left merge of the demographic statistic onto the region table."""
    if regions.empty or demographics.empty:
        raise JoinKeyMismatchError("Cannot merge demographics: one of the tables is empty")
    overlap = set(regions[cfg.REGION_ID]) & set(demographics[cfg.REGION_ID])
    if not overlap:
        raise JoinKeyMismatchError("No tract id in the demographic table matches the tract layer "
                                   f"(e.g. {regions[cfg.REGION_ID].iloc[0]!r} vs "
                                   f"{demographics[cfg.REGION_ID].iloc[0]!r})")

    try:
        out = regions.merge(demographics[[cfg.REGION_ID, column]], on=cfg.REGION_ID, how="left",
                            validate="many_to_one")
    except pd.errors.MergeError as exc:
        raise JoinKeyMismatchError(f"Demographic table repeats tract ids: {exc}") from exc
    unmatched = len(regions) - len(overlap)
    if unmatched:
        log.info("⚠ %d tracts have no demographic record", unmatched)
    return out


def drop_missing(frame: gpd.GeoDataFrame, column: str = cfg.FRACTION_COL) -> gpd.GeoDataFrame:
    """Remove rows with a missing `column`, logging how many and which."""
    missing = frame[column].isna()
    if missing.any():
        ids = frame.loc[missing, cfg.REGION_ID].tolist()
        preview = ", ".join(ids[:10]) + (" …" if len(ids) > 10 else "")
        log.info("⚠ Dropping %d of %d tracts with missing %s: %s",
                 len(ids), len(frame), column, preview)
    return frame[~missing].reset_index(drop=True)
