"""
test_matrix.py
~~~~~~~~~~~~~~

Unit tests for the fixed-shape matrix engine.
"""

import numpy as np
import pytest

from feedforward.exceptions import DimensionMismatch, IndexOutOfRange
from feedforward.matrix import (
    ZERO_WEIGHT_NUDGE,
    Matrix,
    column_vector,
    hadamard,
    multiply,
    negate,
    random_matrix,
    scale,
    subtract,
)


@pytest.fixture
def a():
    return Matrix(2, 3, [[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])


@pytest.fixture
def b():
    return Matrix(2, 3, [[0.5, -1.0, 2.0], [3.0, 0.25, -4.0]])


@pytest.fixture
def c():
    return Matrix(2, 3, [[7.0, 0.0, -2.0], [1.5, 2.5, 3.5]])


@pytest.mark.unit
class TestConstruction:
    """Test building matrices."""

    def test_new_matrix_is_zero(self):
        """Test that a matrix without entries is zero-initialized."""
        m = Matrix(3, 2)
        assert m.shape == (3, 2)
        assert all(value == 0.0 for value in m.entries())

    def test_flat_entries_are_row_major(self):
        """Test that flat entries fill the matrix row by row."""
        m = Matrix(2, 2, [1, 2, 3, 4])
        assert m[0, 1] == 2.0
        assert m[1, 0] == 3.0

    def test_wrong_entry_count_rejected(self):
        """Test that entries must match the declared shape."""
        with pytest.raises(DimensionMismatch):
            Matrix(2, 2, [1, 2, 3])

    @pytest.mark.parametrize("rows,cols", [(0, 1), (1, 0), (-1, 2), (1.5, 2)])
    def test_invalid_dimensions_rejected(self, rows, cols):
        """Test that dimensions must be positive integers."""
        with pytest.raises(ValueError):
            Matrix(rows, cols)

    def test_from_rows_rejects_ragged_rows(self):
        """Test that from_rows requires equally long rows."""
        with pytest.raises(DimensionMismatch):
            Matrix.from_rows([[1, 2], [3]])

    def test_column_vector(self):
        """Test that column_vector builds an N x 1 matrix."""
        v = column_vector([0.1, 0.2, 0.3])
        assert v.shape == (3, 1)
        assert v[2, 0] == 0.3

    def test_entries_are_copied(self):
        """Test that a matrix does not alias the array it was built from."""
        source = np.ones((2, 2))
        m = Matrix.from_numpy(source)
        source[0, 0] = 5.0
        assert m[0, 0] == 1.0

        exported = m.to_numpy()
        exported[1, 1] = 9.0
        assert m[1, 1] == 1.0


@pytest.mark.unit
class TestElementAccess:
    """Test indexed access and its bounds checks."""

    def test_get_and_set(self):
        """Test that set entries can be read back."""
        m = Matrix(2, 2)
        m[1, 0] = 4.5
        assert m[1, 0] == 4.5
        assert m.get(1, 0) == 4.5

    @pytest.mark.parametrize("row,col", [(2, 0), (0, 3), (-1, 0), (0, -1), (5, 5)])
    def test_out_of_range_access(self, a, row, col):
        """Test that access outside the shape raises IndexOutOfRange."""
        with pytest.raises(IndexOutOfRange):
            a[row, col]
        with pytest.raises(IndexOutOfRange):
            a.get(row, col)

    def test_out_of_range_assignment(self, a):
        """Test that assignment outside the shape raises IndexOutOfRange."""
        with pytest.raises(IndexOutOfRange):
            a[2, 0] = 1.0

    def test_out_of_range_is_an_index_error(self, a):
        """Test that IndexOutOfRange can be caught as IndexError."""
        with pytest.raises(IndexError):
            a[0, 3]


@pytest.mark.unit
class TestArithmetic:
    """Test the arithmetic operations and their shape rules."""

    @pytest.mark.parametrize("n,k,m", [(1, 1, 1), (2, 3, 4), (5, 1, 2), (3, 7, 1)])
    def test_multiply_shape(self, n, k, m):
        """Test that an N x K times K x M product is N x M."""
        result = multiply(random_matrix(n, k), random_matrix(k, m))
        assert result.shape == (n, m)

    def test_multiply_values(self):
        """Test the product against a hand computed result."""
        left = Matrix(2, 2, [[1, 2], [3, 4]])
        right = Matrix(2, 1, [[5], [6]])
        assert (left @ right) == Matrix(2, 1, [[17], [39]])

    @pytest.mark.parametrize("left,right", [((2, 3), (2, 3)), ((1, 2), (3, 1)), ((4, 4), (3, 4))])
    def test_multiply_dimension_mismatch(self, left, right):
        """Test that incompatible products raise DimensionMismatch."""
        with pytest.raises(DimensionMismatch):
            multiply(Matrix(*left), Matrix(*right))

    def test_transpose_shape_and_values(self, a):
        """Test that transpose swaps rows and columns."""
        t = a.transpose()
        assert t.shape == (3, 2)
        for i in range(2):
            for j in range(3):
                assert t[j, i] == a[i, j]

    def test_transpose_involution(self):
        """Test that transposing twice gives back the same matrix."""
        for rows, cols in [(1, 1), (2, 5), (7, 3)]:
            m = random_matrix(rows, cols)
            assert m.transpose().transpose() == m

    def test_subtract_self_is_zero(self, a):
        """Test that A - A is the zero matrix of A's shape."""
        assert subtract(a, a) == Matrix(2, 3)

    def test_subtract_values(self, a, b):
        """Test elementwise subtraction."""
        assert (a - b) == Matrix(2, 3, [[0.5, 3.0, 1.0], [1.0, 4.75, 10.0]])

    def test_hadamard_commutative(self, a, b):
        """Test that the Hadamard product is commutative."""
        assert hadamard(a, b) == hadamard(b, a)

    def test_hadamard_distributes_over_subtract(self, a, b, c):
        """Test that A o (B - C) == A o B - A o C."""
        left = hadamard(a, subtract(b, c))
        right = subtract(hadamard(a, b), hadamard(a, c))
        assert left.allclose(right)

    @pytest.mark.parametrize("operation", [subtract, hadamard])
    def test_elementwise_dimension_mismatch(self, a, operation):
        """Test that elementwise operations require equal shapes."""
        with pytest.raises(DimensionMismatch):
            operation(a, a.transpose())

    def test_scale(self, a):
        """Test scalar multiplication, including operator forms."""
        expected = Matrix(2, 3, [[2, 4, 6], [8, 10, 12]])
        assert scale(2, a) == expected
        assert 2 * a == expected
        assert a * 2 == expected
        assert np.float64(2.0) * a == expected

    def test_negate(self, a):
        """Test that negation equals scaling by -1."""
        assert negate(a) == scale(-1, a)
        assert -a == scale(-1, a)

    def test_matrix_times_matrix_is_not_scaling(self, a):
        """Test that * between two matrices is rejected."""
        with pytest.raises(TypeError):
            a * a

    def test_operands_are_not_mutated(self, a, b):
        """Test that every operation leaves its operands untouched."""
        a_before = a.to_numpy()
        b_before = b.to_numpy()

        subtract(a, b)
        hadamard(a, b)
        scale(3.0, a)
        negate(a)
        multiply(a, b.transpose())
        a.transpose()

        assert np.array_equal(a.to_numpy(), a_before)
        assert np.array_equal(b.to_numpy(), b_before)

    def test_result_does_not_alias_operand(self, a):
        """Test that changing a result does not change the operand."""
        t = a.transpose()
        t[0, 0] = 100.0
        assert a[0, 0] == 1.0


@pytest.mark.unit
class TestRandomMatrix:
    """Test random weight initialization."""

    def test_entries_in_range_and_non_zero(self):
        """Test many draws: every entry lies in [-1, 1] and is never zero."""
        rng = np.random.default_rng(1234)
        for _ in range(200):
            m = random_matrix(10, 10, rng)
            values = m.to_numpy()
            assert np.all(values >= -1.0)
            assert np.all(values <= 1.0)
            assert np.all(values != 0.0)

    def test_distribution_is_roughly_uniform(self):
        """Test that the draws spread over the whole interval."""
        values = random_matrix(200, 200, np.random.default_rng(7)).to_numpy()
        assert abs(values.mean()) < 0.02
        assert values.min() < -0.99
        assert values.max() > 0.99
        assert (values < 0).mean() == pytest.approx(0.5, abs=0.02)

    def test_exact_zero_is_nudged(self):
        """Test that an exact zero draw becomes the nudge value."""
        class ZeroGenerator:
            def uniform(self, low, high, size):
                return np.zeros(size)

        m = random_matrix(2, 3, ZeroGenerator())
        assert all(value == ZERO_WEIGHT_NUDGE for value in m.entries())

    def test_seeded_draws_are_reproducible(self):
        """Test that the same seed yields the same matrix."""
        first = random_matrix(4, 4, np.random.default_rng(99))
        second = random_matrix(4, 4, np.random.default_rng(99))
        assert first == second


@pytest.mark.unit
class TestComparisonAndConversion:
    """Test equality, argmax and conversions."""

    def test_equality_requires_same_shape(self):
        """Test that matrices of different shapes are never equal."""
        assert Matrix(1, 2) != Matrix(2, 1)

    def test_argmax_first_maximum_wins(self):
        """Test that ties resolve to the lowest index."""
        assert column_vector([0.2, 0.9, 0.9, 0.1]).argmax() == 1

    def test_argmax_requires_column_vector(self, a):
        """Test that argmax is only defined for column vectors."""
        with pytest.raises(DimensionMismatch):
            a.argmax()

    def test_to_list(self, a):
        """Test conversion to nested lists."""
        assert a.to_list() == [[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]]

    def test_map_keeps_shape(self, a):
        """Test that map applies the function to every entry."""
        doubled = a.map(lambda values: values * 2)
        assert doubled == scale(2, a)

    def test_map_rejects_shape_change(self, a):
        """Test that map refuses functions that change the shape."""
        with pytest.raises(DimensionMismatch):
            a.map(lambda values: values.reshape(-1))
