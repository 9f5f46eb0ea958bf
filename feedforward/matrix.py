"""
matrix.py
~~~~~~~~~

Fixed-shape, value-semantics matrices backed by numpy arrays.

Every arithmetic operation builds a new matrix and leaves its operands
untouched, so intermediate results can be composed freely during
backpropagation. The shape of a matrix never changes after construction
and every binary operation checks that its operands are compatible.
"""

import numbers
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from feedforward.exceptions import DimensionMismatch, IndexOutOfRange

# Value that replaces an exact zero drawn during random initialization
ZERO_WEIGHT_NUDGE = 0.01


def _is_index(value) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


def _check_dimension(name: str, value) -> int:
    if not _is_index(value) or value < 1:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return int(value)


class Matrix:
    """
    A ``rows x cols`` matrix of float64 entries.

    Entries are zero unless given. ``entries`` may be a nested sequence of
    rows or a flat, row-major sequence of ``rows * cols`` values.

    Example:
        >>> a = Matrix(2, 2, [[1, 2], [3, 4]])
        >>> (a @ a.transpose())[0, 1]
        11.0
    """

    __slots__ = ('_rows', '_cols', '_data')

    # Make numpy scalars defer to Matrix.__rmul__ instead of broadcasting
    __array_ufunc__ = None

    def __init__(self, rows: int, cols: int, entries=None):
        rows = _check_dimension('rows', rows)
        cols = _check_dimension('cols', cols)

        if entries is None:
            data = np.zeros((rows, cols), dtype=np.float64)
        else:
            data = np.array(entries, dtype=np.float64)
            if data.ndim == 1 and data.size == rows * cols:
                data = data.reshape(rows, cols)
            if data.shape != (rows, cols):
                raise DimensionMismatch(
                    'build', (rows, cols), data.shape
                )

        self._rows = rows
        self._cols = cols
        self._data = data

    @classmethod
    def _wrap(cls, data: np.ndarray) -> 'Matrix':
        """Adopt a freshly computed 2-D array without copying it."""
        matrix = cls.__new__(cls)
        matrix._rows, matrix._cols = data.shape
        matrix._data = data
        return matrix

    @classmethod
    def zeros(cls, rows: int, cols: int) -> 'Matrix':
        return cls(rows, cols)

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[float]]) -> 'Matrix':
        """Build a matrix from a non-empty list of equally long rows."""
        if not rows or not rows[0]:
            raise ValueError("from_rows needs at least one non-empty row")
        width = len(rows[0])
        for row in rows:
            if len(row) != width:
                raise DimensionMismatch(
                    'build rows of', (1, width), (1, len(row))
                )
        return cls(len(rows), width, rows)

    @classmethod
    def from_numpy(cls, array: np.ndarray) -> 'Matrix':
        array = np.asarray(array, dtype=np.float64)
        if array.ndim != 2:
            raise ValueError(
                f"Expected a 2-D array, got {array.ndim} dimension(s)"
            )
        return cls(array.shape[0], array.shape[1], array)

    # ------------------------------------------------------------------
    # Shape and element access
    # ------------------------------------------------------------------

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    @property
    def shape(self) -> Tuple[int, int]:
        return (self._rows, self._cols)

    def _check_index(self, key) -> Tuple[int, int]:
        try:
            row, col = key
        except (TypeError, ValueError):
            raise TypeError(
                f"Matrix indices must be a (row, col) pair, got {key!r}"
            ) from None

        in_range = (
            _is_index(row) and 0 <= row < self._rows
            and _is_index(col) and 0 <= col < self._cols
        )
        if not in_range:
            raise IndexOutOfRange(row, col, self.shape)
        return int(row), int(col)

    def get(self, row: int, col: int) -> float:
        """
        Return the entry at ``row``, ``col``.

        Raises:
            IndexOutOfRange: If either index lies outside the shape
        """
        row, col = self._check_index((row, col))
        return float(self._data[row, col])

    def set(self, row: int, col: int, value: float) -> None:
        """
        Assign a single entry.

        Only meant for filling a matrix that was just constructed; the
        arithmetic operations never call it.
        """
        row, col = self._check_index((row, col))
        self._data[row, col] = float(value)

    def __getitem__(self, key) -> float:
        row, col = self._check_index(key)
        return float(self._data[row, col])

    def __setitem__(self, key, value: float) -> None:
        row, col = self._check_index(key)
        self._data[row, col] = float(value)

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def transpose(self) -> 'Matrix':
        """Return the ``cols x rows`` transpose of this matrix."""
        return Matrix._wrap(self._data.T.copy())

    @property
    def T(self) -> 'Matrix':
        return self.transpose()

    def hadamard(self, other: 'Matrix') -> 'Matrix':
        return hadamard(self, other)

    def map(self, func: Callable[[np.ndarray], np.ndarray]) -> 'Matrix':
        """
        Apply an elementwise function and return the result as a new matrix.

        ``func`` receives a copy of the entries as a 2-D numpy array and
        must return an array of the same shape.
        """
        result = np.asarray(func(self._data.copy()), dtype=np.float64)
        if result.shape != self.shape:
            raise DimensionMismatch('map', self.shape, result.shape)
        return Matrix._wrap(result)

    def __sub__(self, other):
        if not isinstance(other, Matrix):
            return NotImplemented
        return subtract(self, other)

    def __matmul__(self, other):
        if not isinstance(other, Matrix):
            return NotImplemented
        return multiply(self, other)

    def __mul__(self, scalar):
        if not isinstance(scalar, numbers.Real):
            return NotImplemented
        return scale(scalar, self)

    __rmul__ = __mul__

    def __neg__(self) -> 'Matrix':
        return negate(self)

    # ------------------------------------------------------------------
    # Comparison and conversion
    # ------------------------------------------------------------------

    def __eq__(self, other) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return (
            self.shape == other.shape
            and bool(np.array_equal(self._data, other._data))
        )

    __hash__ = None

    def allclose(self, other: 'Matrix', rtol: float = 1e-9,
                 atol: float = 1e-12) -> bool:
        """Entrywise equality within floating point tolerance."""
        _require_same_shape('compare', self, other)
        return bool(np.allclose(self._data, other._data, rtol=rtol, atol=atol))

    def argmax(self) -> int:
        """
        Index of the largest entry of a column vector.

        The scan keeps the first maximum, so ties resolve to the lowest index.
        """
        if self._cols != 1:
            raise DimensionMismatch('take argmax of', self.shape, (self._rows, 1))
        return int(np.argmax(self._data[:, 0]))

    def entries(self) -> Iterable[float]:
        """Iterate over the entries in row-major order."""
        for value in self._data.flat:
            yield float(value)

    def to_list(self) -> List[List[float]]:
        return self._data.tolist()

    def to_numpy(self) -> np.ndarray:
        """Return a copy of the entries as a numpy array."""
        return self._data.copy()

    def __repr__(self) -> str:
        return f"Matrix({self._rows}, {self._cols}, {self._data.tolist()!r})"


def column_vector(values: Sequence[float]) -> Matrix:
    """Build an ``N x 1`` matrix from ``N`` values."""
    values = np.asarray(values, dtype=np.float64).reshape(-1)
    if values.size == 0:
        raise ValueError("A column vector needs at least one value")
    return Matrix(values.size, 1, values)


def is_column_vector(matrix: Matrix, size: int) -> bool:
    return isinstance(matrix, Matrix) and matrix.shape == (size, 1)


def _require_same_shape(operation: str, a: Matrix, b: Matrix) -> None:
    if a.shape != b.shape:
        raise DimensionMismatch(operation, a.shape, b.shape)


def subtract(a: Matrix, b: Matrix) -> Matrix:
    """Elementwise ``a - b`` of two equally shaped matrices."""
    _require_same_shape('subtract', a, b)
    return Matrix._wrap(a._data - b._data)


def hadamard(a: Matrix, b: Matrix) -> Matrix:
    """Elementwise (Hadamard) product of two equally shaped matrices."""
    _require_same_shape('take the Hadamard product of', a, b)
    return Matrix._wrap(a._data * b._data)


def scale(scalar: float, a: Matrix) -> Matrix:
    if not isinstance(scalar, numbers.Real):
        raise TypeError(f"Scalar must be a real number, got {scalar!r}")
    return Matrix._wrap(float(scalar) * a._data)


def multiply(a: Matrix, b: Matrix) -> Matrix:
    """
    Matrix product of an ``N x K`` and a ``K x M`` matrix.

    Raises:
        DimensionMismatch: If ``a.cols != b.rows``
    """
    if a.cols != b.rows:
        raise DimensionMismatch('multiply', a.shape, b.shape)
    return Matrix._wrap(a._data @ b._data)


def negate(a: Matrix) -> Matrix:
    return scale(-1, a)


def random_matrix(
    rows: int,
    cols: int,
    rng: Optional[np.random.Generator] = None
) -> Matrix:
    """
    Build a matrix of independent uniform draws over [-1, 1].

    Any entry that lands exactly on zero is replaced by ``ZERO_WEIGHT_NUDGE``
    so that no connection starts with a dead weight.

    Args:
        rows: Number of rows
        cols: Number of columns
        rng: Optional numpy Generator, for reproducible draws

    Returns:
        Matrix: The random matrix
    """
    rows = _check_dimension('rows', rows)
    cols = _check_dimension('cols', cols)
    if rng is None:
        rng = np.random.default_rng()

    data = rng.uniform(-1.0, 1.0, size=(rows, cols))
    data[data == 0.0] = ZERO_WEIGHT_NUDGE
    return Matrix._wrap(data)
