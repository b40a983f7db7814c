"""Fatal errors raised by the grocery-access pipeline. None are retried."""


class GroceryAccessError(RuntimeError):
    """Base class for pipeline failures."""


class SourceLoadError(GroceryAccessError):
    """An input file or remote table could not be read."""


class JoinKeyMismatchError(GroceryAccessError):
    """Region identifiers could not be matched during a merge."""


class ModelConvergenceError(GroceryAccessError):
    """An iterative spatial model fit failed."""


class IslandError(GroceryAccessError):
    """Regions without neighbours while the zero policy is disabled."""
