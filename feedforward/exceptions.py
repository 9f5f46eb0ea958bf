"""
exceptions.py
~~~~~~~~~~~~~

Exception types raised by the matrix engine, the network and the loader.
"""

from typing import Optional, Sequence


def _format_shape(shape: Sequence[int]) -> str:
    return 'x'.join(str(size) for size in shape)


class NetworkError(Exception):
    """Base class for all errors raised by this package."""


class IndexOutOfRange(NetworkError, IndexError):
    """Raised when a matrix entry is accessed outside of its shape."""

    def __init__(self, row, col, shape: Sequence[int]):
        self.row = row
        self.col = col
        self.shape = tuple(shape)
        super().__init__(
            f"Index ({row}, {col}) is out of range for a "
            f"{_format_shape(shape)} matrix"
        )


class DimensionMismatch(NetworkError, ValueError):
    """Raised when an operation is applied to incompatibly shaped operands."""

    def __init__(
        self,
        operation: str,
        left: Sequence[int],
        right: Sequence[int]
    ):
        self.operation = operation
        self.left = tuple(left)
        self.right = tuple(right)
        super().__init__(
            f"Cannot {operation} a {_format_shape(left)} matrix "
            f"and a {_format_shape(right)} matrix"
        )


class InvalidWeightsFormat(NetworkError, ValueError):
    """Raised when serialized weights are malformed or have the wrong size."""


class InvalidRecord(NetworkError, ValueError):
    """Raised when a training record cannot be parsed."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        self.line_number = line_number
        if line_number is not None:
            message = f"Line {line_number}: {message}"
        super().__init__(message)
