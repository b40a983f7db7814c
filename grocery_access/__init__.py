"""
Grocery-store access for Asian immigrant populations in Chicago.

Load tracts, ACS demographics and grocery stores, count one-mile store
buffers per tract, then fit OLS / spatial lag / spatial error models and
Moran's I.
"""

__version__ = "0.1.0"

__all__ = ["config", "errors", "loaders", "access", "weights", "models", "report", "pipeline"]
