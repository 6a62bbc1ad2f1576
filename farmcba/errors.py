
class CBAError(Exception):
    """Base class for evaluation engine errors."""


class InputError(CBAError, ValueError):
    """Required input is missing or malformed."""


class MissingControlError(CBAError):
    """No single control treatment could be resolved."""
