import csv

import geopandas as gpd
import numpy as np
import pandas as pd

from grocery_access import config as cfg
from grocery_access import models, report

from conftest import grid, stores


def test_write_csv(tmp_path):
    path = report.write_csv(str(tmp_path / "sub" / "results.csv"), report.RESULT_HEADER,
                            [["OLS", "ModelFit", None, "AIC", 12.5]])
    with open(path, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows[0] == report.RESULT_HEADER
    assert rows[1] == ["OLS", "ModelFit", "", "AIC", "12.5"]


def test_output_path_is_stamped(tmp_path):
    path = report.output_path(str(tmp_path), "diagnostics", "png", "20260101_000000")
    assert path.endswith("diagnostics_20260101_000000.png")


def test_plot_choropleth(tmp_path):
    regions = grid(3, 3).assign(**{cfg.ACCESS_COL: range(9)})
    pts = stores([("H Mart", "OPEN", 1500, 1500)])
    path = report.plot_choropleth(regions, cfg.ACCESS_COL, str(tmp_path / "map.png"), stores=pts)
    with open(path, "rb") as f:
        assert f.read(8) == b"\x89PNG\r\n\x1a\n"


def test_plot_diagnostics(tmp_path):
    x = np.linspace(0, 30, 25)
    frame = pd.DataFrame({cfg.FRACTION_COL: x, cfg.ACCESS_COL: (x // 10).astype(int)})
    ols = models.fit_ols(frame, cfg.ACCESS_COL, cfg.FRACTION_COL)
    path = report.plot_diagnostics(frame, cfg.ACCESS_COL, cfg.FRACTION_COL, ols, str(tmp_path / "diag.png"))
    with open(path, "rb") as f:
        assert f.read(4) == b"\x89PNG"


def test_export_regions(tmp_path):
    path = report.export_regions(grid(2, 2), str(tmp_path / "tracts.gpkg"))
    # overwrite in place
    report.export_regions(grid(2, 2), path)
    assert len(gpd.read_file(path)) == 4
