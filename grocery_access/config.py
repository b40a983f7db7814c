"""
Analysis constants
==================

Literal settings for the grocery-access run. `default_config()` bundles them
into the nested dict the pipeline consumes; `build_config()` overlays
command-line options on top.
"""

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

# ── paths --------------------------------------------------------------
DATA_DIR    = "data"
TRACTS_PATH = os.path.join(DATA_DIR, "chicago_census_tracts.geojson")
STORES_PATH = os.path.join(DATA_DIR, "grocery_store_status.csv")
OUTPUT_DIR  = "output"
MAP_NAME    = "asian_grocery_access_map.png"

# ── coordinate reference systems --------------------------------------
WGS84       = "EPSG:4326"
WORKING_CRS = "EPSG:3435"   # NAD83 / Illinois East (ftUS)

# ── tract fields -------------------------------------------------------
TRACT_ID   = "geoid10"
TRACT_NAME = "namelsad10"

# ── store fields -------------------------------------------------------
STORE_NAME   = "Store Name"
STORE_STATUS = "New status"
OPEN_STATUS  = "OPEN"
STORE_LON, STORE_LAT = "Longitude", "Latitude"

# Crude cuisine classifier: a store is "Asian" if its name contains any of
# these substrings. Matching is case-sensitive. Bare "India" is left out
# because it also matches "Indiana"; chains are listed by full name.
ASIAN_KEYWORDS: List[str] = [
    "ASIAN", "Asian", "ORIENTAL", "Oriental",
    "CHINA", "China", "CHINESE", "Chinese", "HONG KONG", "Hong Kong",
    "KOREA", "Korea", "H MART", "H Mart", "SEOUL", "Seoul",
    "JAPAN", "Japan", "MITSUWA", "Mitsuwa", "TOKYO", "Tokyo",
    "THAI", "Thai", "VIET", "Viet", "SAIGON", "Saigon",
    "PHILIPPINE", "Philippine", "FILIPINO", "Filipino", "SEAFOOD CITY", "Seafood City",
    "INDIAN GROCER", "Indian Grocer", "PATEL BROTHERS", "Patel Brothers",
    "TAI NAM", "Tai Nam",
]

# ── ACS demographics ---------------------------------------------------
ACS_YEAR     = 2019
ACS_STATE    = "17"    # Illinois
ACS_COUNTY   = "031"   # Cook
ACS_VARIABLE = "DP05_0044PE"   # percent Asian alone (data profile)
API_KEY_ENV  = "CENSUS_API_KEY"

# ── analysis parameters ------------------------------------------------
BUFFER_MILES     = 1.0
METERS_PER_MILE  = 1609.344
PERMUTATIONS     = 999
ZERO_POLICY      = True
UNSERVED_POLICY  = "fill"      # "fill" → 0, "drop" → exclude tract

# ── derived column names ----------------------------------------------
REGION_ID   = "region_id"
ACCESS_COL  = "access_count"
FRACTION_COL = "pct_asian"


def acs_product(year: int) -> str:
    """Census API dataset name for the ACS 5-year data profile."""
    return f"ACSDP5Y{year}"


def read_keywords(path: str) -> List[str]:
    """One keyword per line; blank lines and '#' comments are skipped."""
    with open(path, encoding="utf-8") as f:
        words = [ln.rstrip("\n") for ln in f]
    return [w for w in words if w.strip() and not w.lstrip().startswith("#")]


def default_config() -> Dict[str, Any]:
    return {
        "regions": {
            "path": TRACTS_PATH,
            "id_field": TRACT_ID,
            "name_field": TRACT_NAME,
        },
        "stores": {
            "path": STORES_PATH,
            "name_field": STORE_NAME,
            "status_field": STORE_STATUS,
            "open_status": OPEN_STATUS,
            "keywords": list(ASIAN_KEYWORDS),
        },
        "demographics": {
            "year": ACS_YEAR,
            "state": ACS_STATE,
            "county": ACS_COUNTY,
            "variable": ACS_VARIABLE,
            "csv_path": None,
            "apikey": os.environ.get(API_KEY_ENV),
        },
        "analysis": {
            "crs": WORKING_CRS,
            "buffer_miles": BUFFER_MILES,
            "permutations": PERMUTATIONS,
            "zero_policy": ZERO_POLICY,
            "unserved": UNSERVED_POLICY,
            "seed": None,
        },
        "outputs": {
            "output_dir": OUTPUT_DIR,
            "map_name": MAP_NAME,
            "plots": True,
            "export_gpkg": False,
        },
    }


def build_config(args: Optional[Any] = None) -> Dict[str, Any]:
    """Overlay parsed argparse options (None = keep default) on the defaults."""
    config = default_config()
    if args is None:
        return config

    overrides = {
        ("regions", "path"): getattr(args, "tracts", None),
        ("stores", "path"): getattr(args, "stores", None),
        ("demographics", "year"): getattr(args, "year", None),
        ("demographics", "state"): getattr(args, "state", None),
        ("demographics", "county"): getattr(args, "county", None),
        ("demographics", "variable"): getattr(args, "variable", None),
        ("demographics", "csv_path"): getattr(args, "demographics_csv", None),
        ("analysis", "crs"): getattr(args, "crs", None),
        ("analysis", "buffer_miles"): getattr(args, "buffer_miles", None),
        ("analysis", "permutations"): getattr(args, "permutations", None),
        ("analysis", "unserved"): getattr(args, "unserved", None),
        ("analysis", "seed"): getattr(args, "seed", None),
        ("outputs", "output_dir"): getattr(args, "output_dir", None),
    }
    for (section, key), value in overrides.items():
        if value is not None:
            config[section][key] = value

    if getattr(args, "keywords_file", None):
        config["stores"]["keywords"] = read_keywords(args.keywords_file)
    if getattr(args, "no_zero_policy", False):
        config["analysis"]["zero_policy"] = False
    if getattr(args, "no_plots", False):
        config["outputs"]["plots"] = False
    if getattr(args, "export_gpkg", False):
        config["outputs"]["export_gpkg"] = True
    return config
