"""Error and warning types raised by the fitting engines."""


class PreconditionError(ValueError):
    """Invalid input or configuration detected at call entry."""


class MaxTrialsReachedWarning(UserWarning):
    """MSAC used its whole trial budget without the adaptive bound shrinking."""


class InvalidFeaturesWarning(UserWarning):
    """Non-finite feature rows were dropped before clustering."""
