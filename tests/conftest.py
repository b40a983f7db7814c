import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import Point, box

from grocery_access import config as cfg

CRS = cfg.WORKING_CRS
SIZE = 1000.0


def grid(nx, ny, size=SIZE, crs=CRS):
    """nx × ny square tracts, ids 'r<row>_<col>', row-major order."""
    cells, ids = [], []
    for j in range(ny):
        for i in range(nx):
            cells.append(box(i * size, j * size, (i + 1) * size, (j + 1) * size))
            ids.append(f"r{j}_{i}")
    return gpd.GeoDataFrame({cfg.REGION_ID: ids, "name": ids}, geometry=cells, crs=crs)


def stores(rows, crs=CRS):
    """rows of (name, status, x, y)."""
    df = pd.DataFrame(rows, columns=["name", "status", "x", "y"])
    return gpd.GeoDataFrame(df[["name", "status"]], geometry=[Point(x, y) for x, y in zip(df.x, df.y)],
                            crs=crs)


@pytest.fixture
def row3():
    return grid(3, 1)


@pytest.fixture
def grid3():
    return grid(3, 3)


@pytest.fixture
def keywords():
    return ["ASIAN", "Asian", "H Mart", "Viet"]


@pytest.fixture
def rng():
    return np.random.default_rng(42)
