"""
Report output
=============

Choropleth map, diagnostic plots, console summary and the timestamped
results CSV. Nothing here feeds back into the analysis.
"""

from __future__ import annotations

import csv
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

log = logging.getLogger(__name__)

ts = lambda: datetime.now().strftime("%Y%m%d_%H%M%S")

RESULT_HEADER = ["Metric", "Group", "Sub", "Stat", "Value"]


def write_csv(path: str, header: List[str], rows: List[List[Any]]) -> str:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        csv.writer(f).writerows([header, *rows])
    log.info("✓ Wrote %s", os.path.basename(path))
    return path


def plot_choropleth(regions, column: str, path: str, stores=None,
                    title: Optional[str] = None, cmap: str = "viridis") -> str:
    """Tracts shaded by `column`, optionally with the qualifying stores on top."""
    fig, ax = plt.subplots(figsize=(10, 12))
    regions.plot(column=column, ax=ax, cmap=cmap, legend=True, edgecolor="white", linewidth=0.2,
                 missing_kwds={"color": "lightgrey", "label": "No data"},
                 legend_kwds={"label": column, "shrink": 0.6})
    if stores is not None and len(stores):
        stores.plot(ax=ax, color="#e74c3c", markersize=12, marker="o", label="Asian grocery store")
        ax.legend(loc="lower left")
    ax.set_title(title or f"{column} by census tract")
    ax.set_axis_off()

    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    plt.tight_layout()
    plt.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    log.info("✓ Saved map: %s", os.path.basename(path))
    return path


def plot_diagnostics(frame: pd.DataFrame, y: str, x: str, ols, path: str) -> str:
    """2×2 panel: scatter with OLS line, both distributions, residuals vs fitted."""
    fig, axes = plt.subplots(2, 2, figsize=(14, 11))

    ax1 = axes[0, 0]
    ax1.scatter(frame[x], frame[y], s=14, alpha=0.5, color="#3498db")
    xs = np.linspace(frame[x].min(), frame[x].max(), 100)
    ax1.plot(xs, ols.coefficients["const"] + ols.coefficients[x] * xs, color="#e74c3c", linewidth=2,
             label=f"OLS (R² = {ols.fit:.3f})")
    ax1.set_xlabel(x)
    ax1.set_ylabel(y)
    ax1.set_title(f"{y} vs {x}")
    ax1.legend()
    ax1.grid(True, alpha=0.3)

    sns.histplot(frame[y], ax=axes[0, 1], discrete=True, color="#9b59b6")
    axes[0, 1].set_title(f"Distribution of {y}")

    sns.histplot(frame[x], ax=axes[1, 0], bins=30, color="#2ecc71")
    axes[1, 0].set_title(f"Distribution of {x}")

    ax4 = axes[1, 1]
    fitted = frame[y].to_numpy(dtype=float) - ols.residuals
    ax4.scatter(fitted, ols.residuals, s=14, alpha=0.5, color="#34495e")
    ax4.axhline(0, color="#e74c3c", linestyle="--")
    ax4.set_xlabel("Fitted")
    ax4.set_ylabel("Residual")
    ax4.set_title("OLS residuals vs fitted")
    ax4.grid(True, alpha=0.3)

    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    plt.tight_layout()
    plt.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    log.info("✓ Saved diagnostics plot: %s", os.path.basename(path))
    return path


def print_summary(fits: Sequence, aic_table: pd.DataFrame, morans: Sequence,
                  weights_info: Optional[Dict[str, Any]] = None) -> None:
    log.info("\n%s\nMODEL SUMMARY\n%s", "=" * 60, "=" * 60)
    if weights_info:
        log.info("Weights: n = %(n)d, islands = %(islands)d, components = %(components)d, "
                 "mean neighbours = %(mean_neighbors).2f", weights_info)
    for fit in fits:
        log.info("\n%s (N = %d, %s = %.3f, AIC = %.2f)", fit.name, fit.n, fit.fit_label, fit.fit, fit.aic)
        for term, coef in fit.coefficients.items():
            log.info("  %-12s β = %10.4f   p = %.4f", term, coef, fit.p_values[term])
        if fit.spatial_param:
            log.info("  %-12s   = %10.4f   p = %.4f", fit.spatial_param, fit.spatial_coef, fit.spatial_p)

    log.info("\nAIC comparison (lower is better):")
    for _, row in aic_table.iterrows():
        log.info("  %-10s AIC = %10.2f   ΔAIC = %8.2f", row["model"], row["aic"], row["delta_aic"])

    log.info("\nMoran's I:")
    for mi in morans:
        log.info("  %-20s I = %7.4f   E[I] = %7.4f   p_norm = %.4f   p_sim = %.4f",
                 mi.column, mi.I, mi.expected_I, mi.p_norm, mi.p_sim)


def export_regions(regions, path: str) -> str:
    """Joined tract table as a GeoPackage layer."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    if os.path.exists(path):
        os.remove(path)
    regions.to_file(path, driver="GPKG")
    log.info("✓ Exported %d tracts to %s", len(regions), os.path.basename(path))
    return path


def output_path(output_dir: str, stem: str, ext: str, stamp: Optional[str] = None) -> str:
    return os.path.join(output_dir, f"{stem}_{stamp or ts()}.{ext}")
