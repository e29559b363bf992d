"""
exceptions.py — Error types raised by the fuel anomaly engine.
"""


class InvalidParameterError(ValueError):
    """Raised when a caller passes an argument the engine cannot work with.

    Examples: an observation window of zero months, a vessel id that is not
    in the fleet registry, or a negative excess-fuel figure. Raised before
    any output is produced, so callers never see a partial result.
    """
