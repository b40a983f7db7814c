import os

import numpy as np
import pandas as pd
import pytest

from grocery_access import config as cfg
from grocery_access import pipeline
from grocery_access.errors import GroceryAccessError

from conftest import grid, stores

SIZE = 1000.0


@pytest.fixture
def inputs(tmp_path, rng):
    regions = grid(6, 6).rename(columns={cfg.REGION_ID: "geoid10", "name": "namelsad10"})
    tracts_path = str(tmp_path / "tracts.gpkg")
    regions.to_file(tracts_path, driver="GPKG")

    def centre(i, j):
        return (i + 0.5) * SIZE, (j + 0.5) * SIZE

    s = stores([
        ("H Mart", "OPEN", *centre(0, 0)),
        ("Viet Hoa Plaza", "OPEN", *centre(1, 1)),
        ("GOLDEN ASIAN MARKET", "OPEN", *centre(4, 4)),
        ("Asian Fresh", "OPEN", *centre(5, 2)),
        ("H Mart", "CLOSED", *centre(3, 3)),
        ("Jewel-Osco", "OPEN", *centre(2, 5)),
    ]).rename(columns={"name": "Store Name", "status": "New status"})
    stores_path = str(tmp_path / "stores.gpkg")
    s.to_file(stores_path, driver="GPKG")

    ids = regions["geoid10"].tolist()
    cols = np.array([int(i.split("_")[1]) for i in ids])
    pct = 2.0 + 3.0 * cols + rng.normal(0, 1.5, len(ids))
    pct[7] = -666666666     # ACS "not available"
    dem_path = str(tmp_path / "acs.csv")
    pd.DataFrame({"GEOID": ids, cfg.ACS_VARIABLE: pct}).to_csv(dem_path, index=False)
    return tracts_path, stores_path, dem_path


@pytest.fixture
def config(inputs, tmp_path):
    tracts_path, stores_path, dem_path = inputs
    conf = cfg.default_config()
    conf["regions"]["path"] = tracts_path
    conf["stores"]["path"] = stores_path
    conf["stores"]["keywords"] = ["H Mart", "Viet", "ASIAN", "Asian"]
    conf["demographics"]["csv_path"] = dem_path
    conf["analysis"].update(buffer_miles=0.15, permutations=99, seed=0)
    conf["outputs"]["output_dir"] = str(tmp_path / "out")
    return conf


def test_run_analysis(config):
    result = pipeline.run_analysis(config)
    tracts = result["tracts"].set_index(cfg.REGION_ID)

    # 0.15 mi ≈ 792 ft: each store reaches its own cell and all eight around it
    assert len(result["stores"]) == 4
    assert tracts.loc["r0_0", cfg.ACCESS_COL] == 2      # H Mart + Viet Hoa
    assert tracts.loc["r1_1", cfg.ACCESS_COL] == 2
    assert tracts.loc["r4_4", cfg.ACCESS_COL] == 1
    assert tracts.loc["r0_5", cfg.ACCESS_COL] == 0
    assert len(tracts) == 36

    assert len(result["model_df"]) == 35
    assert result["weights"].n == 35
    assert [f.name for f in result["fits"]] == ["OLS", "SAR_Lag", "SEM_Error"]
    assert set(result["aic"]["model"]) == {"OLS", "SAR_Lag", "SEM_Error"}
    assert [m.column for m in result["morans"]] == [cfg.ACCESS_COL, cfg.FRACTION_COL, "ols_residuals"]

    for key in ("map", "fraction_map", "diagnostics", "csv"):
        assert os.path.exists(result["outputs"][key])
    written = pd.read_csv(result["outputs"]["csv"])
    assert list(written.columns) == ["Metric", "Group", "Sub", "Stat", "Value"]
    assert {"OLS", "SAR_Lag", "SEM_Error", "Moran_I"} <= set(written["Metric"])


def test_run_analysis_drop_unserved(config):
    config["analysis"]["unserved"] = "drop"
    config["outputs"]["plots"] = False
    result = pipeline.run_analysis(config)
    assert (result["tracts"][cfg.ACCESS_COL] > 0).all()
    assert len(result["tracts"]) < 36


def test_run_analysis_without_qualifying_stores(config):
    config["stores"]["keywords"] = ["Mitsuwa"]
    config["outputs"]["plots"] = False
    with pytest.raises(GroceryAccessError, match="0 qualifying store buffers"):
        pipeline.run_analysis(config)


def test_main_success(inputs, tmp_path):
    tracts_path, stores_path, dem_path = inputs
    kw = tmp_path / "keywords.txt"
    kw.write_text("# Asian grocers\nH Mart\nViet\n\nASIAN\n")
    code = pipeline.main(["--tracts", tracts_path, "--stores", stores_path, "--demographics-csv", dem_path,
                          "--keywords-file", str(kw), "--buffer-miles", "0.15", "--permutations", "99",
                          "--seed", "1", "--output-dir", str(tmp_path / "cli"), "--no-plots",
                          "--export-gpkg"])
    assert code == 0
    produced = os.listdir(tmp_path / "cli")
    assert "tract_access.gpkg" in produced
    assert any(f.startswith("grocery_access_results_") for f in produced)


def test_main_missing_input(tmp_path):
    code = pipeline.main(["--tracts", str(tmp_path / "missing.geojson"), "--no-plots",
                          "--output-dir", str(tmp_path)])
    assert code == 1
