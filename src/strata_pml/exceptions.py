"""Exception types raised by the PML boundary engine.

All fatal conditions derive from :class:`PMLError`. An empty absorbing
layout is not an error: it leaves ``PML.ok`` false.
"""


class PMLError(RuntimeError):
    """Base class for fatal PML errors."""

    pass


class PMLConfigurationError(PMLError, ValueError):
    """Raised for configurations the PML does not support.

    Examples: a spectral layer in 1D, a current that is linear in time
    inside the layer, or an F/G exchange when divergence cleaning was not
    enabled at construction.
    """

    pass


class PMLGeometryError(PMLError):
    """Raised when a box layout is internally inconsistent."""

    pass


class PMLStateError(PMLError):
    """Raised when an operation is used in the wrong lifecycle state."""

    pass


class CheckpointError(PMLError):
    """Raised when a checkpoint does not match the object restoring it."""

    pass
