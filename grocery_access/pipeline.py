#!/usr/bin/env python
"""
Asian grocery access, Chicago census tracts
===========================================

▸ Load tracts, stores and ACS percent Asian; project to EPSG:3435.
▸ Keep open stores whose name matches the keyword list; buffer by 1 mile.
▸ Count intersecting buffers per tract; merge percent Asian; drop tracts
  without it.
▸ Queen weights (row-standardised); OLS, ML spatial lag, ML spatial error;
  AIC table; Moran's I on access, percent Asian and OLS residuals.
▸ Map + diagnostics PNG, console summary, results CSV.

Usage:
    grocery-access --tracts tracts.geojson --stores stores.csv
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from typing import Any, Dict, List, Optional

from . import access, loaders, models, report, weights
from . import config as cfg
from .errors import GroceryAccessError

log = logging.getLogger(__name__)


def load_demographics(dem: Dict[str, Any], connection: Any = None):
    if dem.get("csv_path"):
        return loaders.read_demographics_csv(dem["csv_path"], variable=dem["variable"])
    return loaders.fetch_demographics(dem["year"], dem["state"], dem["county"], dem["variable"],
                                      connection=connection, apikey=dem.get("apikey"))


def run_analysis(config: Dict[str, Any], connection: Any = None) -> Dict[str, Any]:
    """Run the whole pipeline once. Any failure propagates."""
    t0 = time.time()
    ana, out_cfg = config["analysis"], config["outputs"]
    crs = ana["crs"]
    stamp = report.ts()

    # ── load ----------------------------------------------------------
    regions = loaders.read_regions(config["regions"]["path"], config["regions"]["id_field"],
                                   config["regions"]["name_field"], crs)
    stores = loaders.read_stores(config["stores"]["path"], config["stores"]["name_field"],
                                 config["stores"]["status_field"], crs)
    demographics = load_demographics(config["demographics"], connection)

    # ── filter, buffer, join ------------------------------------------
    log.info("\n▸ Filtering and buffering stores...")
    asian_stores = access.filter_stores(stores, config["stores"]["keywords"], config["stores"]["open_status"])
    radius = access.buffer_radius(crs, ana["buffer_miles"])
    log.info("  Buffer radius: %.1f CRS units (%.2f mi)", radius, ana["buffer_miles"])
    buffers = access.buffer_stores(asian_stores, radius)
    counts = access.count_buffers(regions, buffers)
    tracts = access.attach_access(regions, counts, ana["unserved"])
    tracts = access.merge_demographics(tracts, demographics)
    model_df = access.drop_missing(tracts, cfg.FRACTION_COL)
    if len(model_df) < 3:
        raise GroceryAccessError(f"Only {len(model_df)} tracts left to model")
    if model_df[cfg.ACCESS_COL].nunique() < 2:
        raise GroceryAccessError(
            f"{cfg.ACCESS_COL} is constant ({model_df[cfg.ACCESS_COL].iloc[0]}) across all {len(model_df)} "
            f"tracts; {len(asian_stores)} qualifying store buffers found, nothing to model")

    rows: List[List[Any]] = [
        ["Data", "Stores", None, "loaded", len(stores)],
        ["Data", "Stores", None, "qualifying", len(asian_stores)],
        ["Data", "Tracts", None, "loaded", len(regions)],
        ["Data", "Tracts", None, "modelled", len(model_df)],
        ["Data", "Buffer", None, "radius_crs_units", float(radius)],
    ]
    rows += models.describe(model_df, cfg.ACCESS_COL, cfg.FRACTION_COL)

    # ── spatial structure & models ------------------------------------
    log.info("\n▸ Building queen contiguity weights...")
    W = weights.queen_weights(model_df, zero_policy=ana["zero_policy"])
    w_info = weights.describe_weights(W)
    rows += [["Weights", None, None, k, v] for k, v in w_info.items()]

    log.info("\n▸ Fitting models: %s ~ %s", cfg.ACCESS_COL, cfg.FRACTION_COL)
    ols = models.fit_ols(model_df, cfg.ACCESS_COL, cfg.FRACTION_COL)
    lag = models.fit_spatial_lag(model_df, cfg.ACCESS_COL, cfg.FRACTION_COL, W)
    err = models.fit_spatial_error(model_df, cfg.ACCESS_COL, cfg.FRACTION_COL, W)
    fits = [ols, lag, err]
    aic_table = models.compare_aic(fits)
    for fit in fits:
        rows += fit.to_rows()
    rows += [["AIC_Comparison", r["model"], None, "delta_aic", float(r["delta_aic"])]
             for _, r in aic_table.iterrows()]

    log.info("\n▸ Moran's I...")
    perms, seed = ana["permutations"], ana["seed"]
    morans = [
        models.morans_i(model_df[cfg.ACCESS_COL], W, cfg.ACCESS_COL, perms, seed),
        models.morans_i(model_df[cfg.FRACTION_COL], W, cfg.FRACTION_COL, perms, seed),
        models.morans_i(ols.residuals, W, "ols_residuals", perms, seed),
    ]
    for mi in morans:
        rows += mi.to_rows()

    # ── report --------------------------------------------------------
    out_dir = out_cfg["output_dir"]
    os.makedirs(out_dir, exist_ok=True)
    outputs: Dict[str, str] = {}
    if out_cfg["plots"]:
        outputs["map"] = report.plot_choropleth(
            tracts, cfg.ACCESS_COL, os.path.join(out_dir, out_cfg["map_name"]), stores=asian_stores,
            title=f"Asian grocery stores within {ana['buffer_miles']:g} mi, by census tract")
        outputs["fraction_map"] = report.plot_choropleth(
            tracts, cfg.FRACTION_COL, report.output_path(out_dir, "pct_asian_map", "png", stamp),
            title="Percent Asian alone (ACS)", cmap="magma_r")
        outputs["diagnostics"] = report.plot_diagnostics(
            model_df, cfg.ACCESS_COL, cfg.FRACTION_COL, ols,
            report.output_path(out_dir, "diagnostics", "png", stamp))
    if out_cfg["export_gpkg"]:
        outputs["gpkg"] = report.export_regions(tracts, os.path.join(out_dir, "tract_access.gpkg"))
    outputs["csv"] = report.write_csv(report.output_path(out_dir, "grocery_access_results", "csv", stamp),
                                      report.RESULT_HEADER, rows)

    report.print_summary(fits, aic_table, morans, w_info)
    log.info("\n✓ Finished in %.1f s", time.time() - t0)
    return {
        "tracts": tracts,
        "model_df": model_df,
        "stores": asian_stores,
        "weights": W,
        "fits": fits,
        "aic": aic_table,
        "morans": morans,
        "rows": rows,
        "outputs": outputs,
    }


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Grocery-store access for Asian populations by census tract")
    p.add_argument("--tracts", help=f"tract polygon file (default {cfg.TRACTS_PATH})")
    p.add_argument("--stores", help=f"store point file or CSV (default {cfg.STORES_PATH})")
    p.add_argument("--demographics-csv", help="offline ACS table keyed by GEOID instead of the Census API")
    p.add_argument("--year", type=int, help=f"ACS 5-year vintage (default {cfg.ACS_YEAR})")
    p.add_argument("--state", help=f"state FIPS (default {cfg.ACS_STATE})")
    p.add_argument("--county", help=f"county FIPS (default {cfg.ACS_COUNTY})")
    p.add_argument("--variable", help=f"ACS data-profile variable (default {cfg.ACS_VARIABLE})")
    p.add_argument("--crs", help=f"projected working CRS (default {cfg.WORKING_CRS})")
    p.add_argument("--buffer-miles", type=float, help=f"store buffer radius (default {cfg.BUFFER_MILES})")
    p.add_argument("--keywords-file", help="store-name keywords, one per line")
    p.add_argument("--unserved", choices=access.UNSERVED_POLICIES,
                   help=f"tracts with no buffer: fill with 0 or drop (default {cfg.UNSERVED_POLICY})")
    p.add_argument("--permutations", type=int, help=f"Moran's I permutations (default {cfg.PERMUTATIONS})")
    p.add_argument("--seed", type=int, help="random seed for Moran permutations")
    p.add_argument("--no-zero-policy", action="store_true", help="fail on tracts without neighbours")
    p.add_argument("--output-dir", help=f"output folder (default {cfg.OUTPUT_DIR})")
    p.add_argument("--no-plots", action="store_true", help="skip PNG output")
    p.add_argument("--export-gpkg", action="store_true", help="also write the joined tracts as GeoPackage")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(message)s")
    log.info("✓ Starting grocery access analysis…")
    try:
        run_analysis(cfg.build_config(args))
    except GroceryAccessError as e:
        log.error("✖ %s: %s", type(e).__name__, e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
