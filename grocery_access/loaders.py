"""
Data loaders
============

Reads the three inputs of the analysis and brings every layer into the
shared planar CRS:

* tract polygons (GeoJSON / shapefile / GeoPackage)
* grocery-store points (vector file, or CSV with lon/lat or WKT location)
* ACS data-profile percentage per tract (cenpy, or an offline CSV)
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

import geopandas as gpd
import numpy as np
import pandas as pd

from . import config as cfg
from .errors import SourceLoadError

log = logging.getLogger(__name__)


def _require_file(path: str, label: str) -> None:
    if not path or not os.path.exists(path):
        raise SourceLoadError(f"{label} not found at '{path}'")


def _require_columns(df: pd.DataFrame, columns, label: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise SourceLoadError(f"{label} is missing column(s) {missing}; available: {list(df.columns)}")


def to_working_crs(gdf: gpd.GeoDataFrame, crs: Any = cfg.WORKING_CRS) -> gpd.GeoDataFrame:
    """Return a copy of `gdf` in `crs`. Layers without a CRS are taken as WGS84."""
    if gdf.crs is None:
        log.info("⚠ Layer has no CRS; assuming %s", cfg.WGS84)
        gdf = gdf.set_crs(cfg.WGS84)
    if gdf.crs != crs:
        log.info("  Reprojecting %s → %s", gdf.crs.to_string(), crs)
        gdf = gdf.to_crs(crs)
    return gdf


def read_regions(path: str, id_field: str = cfg.TRACT_ID, name_field: Optional[str] = cfg.TRACT_NAME,
                 crs: Any = cfg.WORKING_CRS) -> gpd.GeoDataFrame:
    """Tract polygons as `[region_id, name, geometry]` in the working CRS."""
    _require_file(path, "Tract layer")
    log.info("▸ Reading tracts from %s", os.path.basename(path))
    try:
        gdf = gpd.read_file(path)
    except Exception as exc:
        raise SourceLoadError(f"Could not read tract layer '{path}': {exc}") from exc

    _require_columns(gdf, [id_field], "Tract layer")
    keep = [id_field] + ([name_field] if name_field and name_field in gdf.columns else [])
    gdf = gdf[keep + ["geometry"]].rename(columns={id_field: cfg.REGION_ID, name_field: "name"})
    if "name" not in gdf.columns:
        gdf["name"] = gdf[cfg.REGION_ID]
    gdf[cfg.REGION_ID] = gdf[cfg.REGION_ID].astype(str).str.strip()

    dupes = gdf[cfg.REGION_ID].duplicated()
    if dupes.any():
        raise SourceLoadError(f"Tract layer has {int(dupes.sum())} duplicate ids, e.g. "
                              f"{gdf.loc[dupes, cfg.REGION_ID].iloc[0]}")

    gdf = to_working_crs(gdf, crs).reset_index(drop=True)
    log.info("✓ %d tracts loaded", len(gdf))
    return gdf


def _stores_from_csv(path: str) -> gpd.GeoDataFrame:
    df = pd.read_csv(path)
    if cfg.STORE_LON in df.columns and cfg.STORE_LAT in df.columns:
        lon = pd.to_numeric(df[cfg.STORE_LON], errors="coerce")
        lat = pd.to_numeric(df[cfg.STORE_LAT], errors="coerce")
        located = lon.notna() & lat.notna()
        gdf = gpd.GeoDataFrame(df, geometry=gpd.points_from_xy(lon, lat), crs=cfg.WGS84)
        gdf.loc[~located, "geometry"] = None
        return gdf
    if "Location" in df.columns:
        wkt = df["Location"].astype(object).where(df["Location"].notna(), None)
        return gpd.GeoDataFrame(df.drop(columns="Location"), geometry=gpd.GeoSeries.from_wkt(wkt).values,
                                crs=cfg.WGS84)
    raise SourceLoadError(f"Store table '{path}' has neither "
                          f"{cfg.STORE_LON}/{cfg.STORE_LAT} nor Location columns")


def read_stores(path: str, name_field: str = cfg.STORE_NAME, status_field: str = cfg.STORE_STATUS,
                crs: Any = cfg.WORKING_CRS) -> gpd.GeoDataFrame:
    """Store points as `[name, status, geometry]` in the working CRS."""
    _require_file(path, "Store layer")
    log.info("▸ Reading stores from %s", os.path.basename(path))
    try:
        if path.lower().endswith(".csv"):
            gdf = _stores_from_csv(path)
        else:
            gdf = gpd.read_file(path)
    except SourceLoadError:
        raise
    except Exception as exc:
        raise SourceLoadError(f"Could not read store layer '{path}': {exc}") from exc

    _require_columns(gdf, [name_field, status_field], "Store layer")
    gdf = gdf[[name_field, status_field, "geometry"]].rename(
        columns={name_field: "name", status_field: "status"})

    no_geom = gdf.geometry.isna() | gdf.geometry.is_empty
    if no_geom.any():
        log.info("⚠ Dropping %d stores without a location", int(no_geom.sum()))
        gdf = gdf[~no_geom]

    gdf = to_working_crs(gdf, crs).reset_index(drop=True)
    log.info("✓ %d stores loaded", len(gdf))
    return gdf


def _clean_acs(df: pd.DataFrame, variable: str) -> pd.DataFrame:
    """GEOID + numeric statistic. ACS annotation codes (negative values) become NaN."""
    _require_columns(df, [variable, "state", "county", "tract"], "ACS table")
    out = pd.DataFrame({
        cfg.REGION_ID: (df["state"].astype(str).str.zfill(2)
                        + df["county"].astype(str).str.zfill(3)
                        + df["tract"].astype(str).str.zfill(6)),
        cfg.FRACTION_COL: pd.to_numeric(df[variable], errors="coerce"),
    })
    out.loc[out[cfg.FRACTION_COL] < 0, cfg.FRACTION_COL] = np.nan
    return out.drop_duplicates(subset=cfg.REGION_ID).reset_index(drop=True)


def fetch_demographics(year: int = cfg.ACS_YEAR, state: str = cfg.ACS_STATE, county: str = cfg.ACS_COUNTY,
                       variable: str = cfg.ACS_VARIABLE, connection: Any = None,
                       apikey: Optional[str] = None) -> pd.DataFrame:
    """
    Tract-level ACS data-profile statistic for one state/county and year.

    `connection` is anything with cenpy's `APIConnection.query` signature;
    a live connection is opened when it is omitted.
    """
    log.info("▸ Requesting ACS %s %s for state %s county %s", year, variable, state, county)
    try:
        if connection is None:
            from cenpy.remote import APIConnection
            connection = APIConnection(cfg.acs_product(year))
        raw = connection.query(cols=[variable], geo_unit="tract:*",
                               geo_filter={"state": state, "county": county},
                               apikey=apikey or "")
    except Exception as exc:
        raise SourceLoadError(f"ACS request for {variable} ({year}) failed: {exc}") from exc

    df = _clean_acs(pd.DataFrame(raw), variable)
    log.info("✓ Retrieved %s for %d tracts (%d missing)", variable, len(df),
             int(df[cfg.FRACTION_COL].isna().sum()))
    return df


def read_demographics_csv(path: str, id_field: str = "GEOID",
                          variable: str = cfg.ACS_VARIABLE) -> pd.DataFrame:
    """Offline stand-in for `fetch_demographics`: a CSV keyed by tract GEOID."""
    _require_file(path, "Demographic table")
    try:
        df = pd.read_csv(path, dtype={id_field: str})
    except Exception as exc:
        raise SourceLoadError(f"Could not read demographic table '{path}': {exc}") from exc
    _require_columns(df, [id_field, variable], "Demographic table")

    out = pd.DataFrame({
        cfg.REGION_ID: df[id_field].astype(str).str.strip(),
        cfg.FRACTION_COL: pd.to_numeric(df[variable], errors="coerce"),
    })
    out.loc[out[cfg.FRACTION_COL] < 0, cfg.FRACTION_COL] = np.nan

    dupes = out[cfg.REGION_ID].duplicated()
    if dupes.any():
        raise SourceLoadError(f"Demographic table has {int(dupes.sum())} duplicate ids, e.g. "
                              f"{out.loc[dupes, cfg.REGION_ID].iloc[0]}")
    log.info("✓ Read %s for %d tracts from %s", variable, len(out), os.path.basename(path))
    return out
