"""Dense linear algebra over single-precision values.

Every routine computes in float32 and returns a new array or number rather
than overwriting its inputs. Fixed-point values are handled by converting to
float, computing, and truncating the result back with :func:`quantize`.
"""

from __future__ import annotations

import enum
from typing import Any

import numpy as np

__all__ = [
    "Transpose",
    "quantize",
    "gemm",
    "gemv",
    "axpy",
    "axpby",
    "scal",
    "scale",
    "asum",
    "dot",
    "strided_dot",
]

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


class Transpose(enum.IntEnum):
    """How a matrix operand is read: as stored, or transposed."""

    NO_TRANS = 111
    TRANS = 112
    CONJ_TRANS = 113

    @property
    def transposed(self) -> bool:
        return self is not Transpose.NO_TRANS


def quantize(values: Any, frac_bits: int = 20) -> np.ndarray:
    """Round values toward zero onto a signed 32-bit fixed-point grid.

    The grid step is ``2 ** -frac_bits``; values beyond the 32-bit range are
    clamped to its ends.
    """
    if frac_bits < 0:
        raise ValueError("frac_bits must not be negative")
    step = 2.0**frac_bits
    raw = np.trunc(np.asarray(values, dtype=np.float64) * step)
    return np.clip(raw, _INT32_MIN, _INT32_MAX) / step


def _vector(values: Any, name: str) -> np.ndarray:
    return np.asarray(values, dtype=np.float32).ravel()


def _matrix(values: Any, rows: int, cols: int, name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float32)
    if arr.size != rows * cols:
        raise ValueError(f"{name} holds {arr.size} values, expected {rows} x {cols}")
    return arr.reshape(rows, cols)


def _operand(values: Any, trans: Transpose, rows: int, cols: int, name: str) -> np.ndarray:
    """Return op(X) shaped rows x cols from row-major storage."""
    if trans.transposed:
        return _matrix(values, cols, rows, name).T
    return _matrix(values, rows, cols, name)


def gemm(
    trans_a: Transpose | int,
    trans_b: Transpose | int,
    m: int,
    n: int,
    k: int,
    alpha: float,
    a: Any,
    b: Any,
    beta: float,
    c: Any = None,
) -> np.ndarray:
    """Return ``alpha * op(A) @ op(B) + beta * C`` as an m x n array.

    ``C`` is only read when ``beta`` is non-zero and may then be omitted.
    """
    if min(m, n, k) < 0:
        raise ValueError("matrix dimensions must not be negative")
    op_a = _operand(a, Transpose(trans_a), m, k, "A")
    op_b = _operand(b, Transpose(trans_b), k, n, "B")
    result = np.float32(alpha) * (op_a @ op_b)
    if beta != 0:
        if c is None:
            raise ValueError("C is required when beta is non-zero")
        result = result + np.float32(beta) * _matrix(c, m, n, "C")
    return result.astype(np.float32)


def gemv(
    trans_a: Transpose | int,
    m: int,
    n: int,
    alpha: float,
    a: Any,
    x: Any,
    beta: float,
    y: Any = None,
) -> np.ndarray:
    """Return ``alpha * op(A) @ x + beta * y`` for an m x n matrix ``A``."""
    trans = Transpose(trans_a)
    matrix = _matrix(a, m, n, "A")
    if trans.transposed:
        matrix = matrix.T
    x_len, y_len = matrix.shape[1], matrix.shape[0]
    vec = _vector(x, "x")
    if vec.size != x_len:
        raise ValueError(f"x holds {vec.size} values, expected {x_len}")
    result = np.float32(alpha) * (matrix @ vec)
    if beta != 0:
        if y is None:
            raise ValueError("y is required when beta is non-zero")
        y_vec = _vector(y, "y")
        if y_vec.size != y_len:
            raise ValueError(f"y holds {y_vec.size} values, expected {y_len}")
        result = result + np.float32(beta) * y_vec
    return result.astype(np.float32)


def _same_length(x: np.ndarray, y: np.ndarray) -> None:
    if x.size != y.size:
        raise ValueError(f"vectors differ in length: {x.size} and {y.size}")


def axpy(alpha: float, x: Any, y: Any) -> np.ndarray:
    """Return ``alpha * x + y``."""
    xv, yv = _vector(x, "x"), _vector(y, "y")
    _same_length(xv, yv)
    return (np.float32(alpha) * xv + yv).astype(np.float32)


def axpby(alpha: float, x: Any, beta: float, y: Any) -> np.ndarray:
    """Return ``alpha * x + beta * y``."""
    xv, yv = _vector(x, "x"), _vector(y, "y")
    _same_length(xv, yv)
    return (np.float32(beta) * yv + np.float32(alpha) * xv).astype(np.float32)


def scal(alpha: float, x: Any) -> np.ndarray:
    """Return ``alpha * x``."""
    return (np.float32(alpha) * _vector(x, "x")).astype(np.float32)


def scale(alpha: float, x: Any) -> np.ndarray:
    """Return a scaled copy of ``x``; the input is left untouched."""
    return scal(alpha, np.array(x, dtype=np.float32, copy=True))


def asum(x: Any) -> float:
    """Return the sum of the absolute values of ``x``."""
    return float(np.sum(np.abs(_vector(x, "x")), dtype=np.float32))


def dot(x: Any, y: Any) -> float:
    """Return the inner product of two equally long vectors."""
    xv, yv = _vector(x, "x"), _vector(y, "y")
    _same_length(xv, yv)
    return float(np.dot(xv, yv))


def _strided(values: np.ndarray, n: int, inc: int, name: str) -> np.ndarray:
    if inc == 0:
        if values.size == 0:
            raise ValueError(f"{name} is empty")
        return np.full(n, values[0], dtype=np.float32)
    span = (n - 1) * abs(inc) + 1
    if values.size < span:
        raise ValueError(f"{name} holds {values.size} values, stride needs {span}")
    picked = values[:span:abs(inc)]
    return picked[::-1] if inc < 0 else picked


def strided_dot(n: int, x: Any, incx: int, y: Any, incy: int) -> float:
    """Return the inner product of ``n`` elements taken with the given strides.

    A negative stride walks its vector from the far end, as BLAS does.
    """
    if n <= 0:
        return 0.0
    xs = _strided(_vector(x, "x"), n, incx, "x")
    ys = _strided(_vector(y, "y"), n, incy, "y")
    return float(np.dot(xs, ys))