"""Exceptions raised by the pillar and target encoders."""


class InvalidInputError(ValueError):
    """Raised when input arrays have the wrong rank, column count or length.

    This is the only failure the encoders raise themselves. It is always raised
    before any tensor is allocated, so a call either returns fully populated
    tensors or raises this error.
    """
