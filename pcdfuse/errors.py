"""Exception types raised by the fusion core."""


class ValidationError(ValueError):
    """
    Malformed calibration or configuration data.

    Raised while loading a camera's calibration, before any projection is
    attempted for that camera. Fatal for that camera's pipeline.
    """


class ProjectionError(RuntimeError):
    """
    The geometric projection primitive rejected its inputs.

    Fails the whole projection call for one frame. Callers drop the frame
    and continue with the next one.
    """
