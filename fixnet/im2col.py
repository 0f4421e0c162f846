"""Rearranging image patches into columns and back.

``im2col`` lays out every receptive field of a convolution as one column so
that the convolution becomes a matrix product; ``col2im`` scatters columns
back onto the image, summing where fields overlap. Positions that fall into
the padding read as zero and are dropped when scattering back.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Any

import numpy as np

__all__ = ["im2col", "col2im", "im2col_nd", "col2im_nd"]


def _output_size(size: int, kernel: int, pad: int, stride: int, dilation: int) -> int:
    span = size + 2 * pad - (dilation * (kernel - 1) + 1)
    out = int(span / stride) + 1  # truncates toward zero
    if out < 0:
        raise ValueError("kernel does not fit the padded input")
    return out


def _check_geometry(
    height: int,
    width: int,
    kernel_h: int,
    kernel_w: int,
    pad_h: int,
    pad_w: int,
    stride_h: int,
    stride_w: int,
    dilation_h: int,
    dilation_w: int,
) -> None:
    if height <= 0 or width <= 0:
        raise ValueError("image height and width must be positive")
    if kernel_h <= 0 or kernel_w <= 0:
        raise ValueError("kernel size must be positive")
    if pad_h < 0 or pad_w < 0:
        raise ValueError("padding must not be negative")
    if stride_h <= 0 or stride_w <= 0:
        raise ValueError("stride must be positive")
    if dilation_h <= 0 or dilation_w <= 0:
        raise ValueError("dilation must be positive")


def _positions(
    size: int, kernel: int, pad: int, stride: int, dilation: int, out: int
) -> tuple[np.ndarray, np.ndarray]:
    """Return clipped source indices (kernel x out) and which are inside the image."""
    coords = (
        -pad
        + np.arange(kernel)[:, np.newaxis] * dilation
        + np.arange(out)[np.newaxis, :] * stride
    )
    valid = (coords >= 0) & (coords < size)
    return np.clip(coords, 0, size - 1), valid


def _plan_2d(
    height: int,
    width: int,
    kernel_h: int,
    kernel_w: int,
    pad_h: int,
    pad_w: int,
    stride_h: int,
    stride_w: int,
    dilation_h: int,
    dilation_w: int,
) -> tuple[np.ndarray, np.ndarray, np.ndarray, int, int]:
    _check_geometry(
        height, width, kernel_h, kernel_w, pad_h, pad_w, stride_h, stride_w, dilation_h, dilation_w
    )
    out_h = _output_size(height, kernel_h, pad_h, stride_h, dilation_h)
    out_w = _output_size(width, kernel_w, pad_w, stride_w, dilation_w)
    rows, valid_r = _positions(height, kernel_h, pad_h, stride_h, dilation_h, out_h)
    cols, valid_c = _positions(width, kernel_w, pad_w, stride_w, dilation_w, out_w)
    # Shapes broadcast to (kernel_h, kernel_w, out_h, out_w).
    row_idx = rows[:, np.newaxis, :, np.newaxis]
    col_idx = cols[np.newaxis, :, np.newaxis, :]
    mask = valid_r[:, np.newaxis, :, np.newaxis] & valid_c[np.newaxis, :, np.newaxis, :]
    row_idx, col_idx, mask = np.broadcast_arrays(row_idx, col_idx, mask)
    return row_idx, col_idx, mask, out_h, out_w


def im2col(
    data_im: Any,
    channels: int,
    height: int,
    width: int,
    kernel_h: int,
    kernel_w: int,
    pad_h: int,
    pad_w: int,
    stride_h: int,
    stride_w: int,
    dilation_h: int,
    dilation_w: int,
) -> np.ndarray:
    """Return columns shaped (channels * kernel_h * kernel_w, out_h * out_w)."""
    image = np.asarray(data_im)
    if image.size != channels * height * width:
        raise ValueError(f"image holds {image.size} values, expected {channels} x {height} x {width}")
    row_idx, col_idx, mask, out_h, out_w = _plan_2d(
        height, width, kernel_h, kernel_w, pad_h, pad_w, stride_h, stride_w, dilation_h, dilation_w
    )
    image = image.reshape(channels, height, width)
    gathered = image[:, row_idx, col_idx]
    columns = np.where(mask, gathered, np.zeros((), dtype=image.dtype)).astype(image.dtype)
    return columns.reshape(channels * kernel_h * kernel_w, out_h * out_w)


def col2im(
    data_col: Any,
    channels: int,
    height: int,
    width: int,
    kernel_h: int,
    kernel_w: int,
    pad_h: int,
    pad_w: int,
    stride_h: int,
    stride_w: int,
    dilation_h: int,
    dilation_w: int,
) -> np.ndarray:
    """Sum columns back into an image shaped (channels, height, width)."""
    row_idx, col_idx, mask, out_h, out_w = _plan_2d(
        height, width, kernel_h, kernel_w, pad_h, pad_w, stride_h, stride_w, dilation_h, dilation_w
    )
    columns = np.asarray(data_col)
    expected = channels * kernel_h * kernel_w * out_h * out_w
    if columns.size != expected:
        raise ValueError(f"columns hold {columns.size} values, expected {expected}")
    columns = columns.reshape(channels, kernel_h, kernel_w, out_h, out_w)
    image = np.zeros((channels, height, width), dtype=columns.dtype)
    values = np.where(mask, columns, np.zeros((), dtype=columns.dtype))
    np.add.at(image, (slice(None), row_idx, col_idx), values)
    return image


def _nd_plan(
    im_shape: Sequence[int],
    col_shape: Sequence[int],
    kernel_shape: Sequence[int],
    pad: Sequence[int],
    stride: Sequence[int],
    dilation: Sequence[int],
) -> tuple[tuple[int, ...], tuple[int, ...], tuple[int, ...], int]:
    im = tuple(int(v) for v in im_shape)
    col = tuple(int(v) for v in col_shape)
    axes = len(im) - 1
    if axes < 1:
        raise ValueError("image shape needs a channel axis and at least one spatial axis")
    if len(col) != axes + 1:
        raise ValueError("column shape must have as many axes as the image shape")
    for name, values in (("kernel_shape", kernel_shape), ("pad", pad), ("stride", stride), ("dilation", dilation)):
        if len(values) != axes:
            raise ValueError(f"{name} must give one value per spatial axis")
    if any(v <= 0 for v in im[1:]):
        raise ValueError("spatial image sizes must be positive")
    if any(v < 0 for v in col) or im[0] < 0:
        raise ValueError("shapes must not be negative")
    if any(v <= 0 for v in kernel_shape):
        raise ValueError("kernel sizes must be positive")
    kernel_size = math.prod(int(v) for v in kernel_shape)
    if col[0] > im[0] * kernel_size:
        raise ValueError("column channels exceed image channels times kernel size")
    return im, col, tuple(int(v) for v in kernel_shape), kernel_size


def _nd_fields(
    im: tuple[int, ...],
    col: tuple[int, ...],
    kernel_shape: tuple[int, ...],
    kernel_size: int,
    pad: Sequence[int],
    stride: Sequence[int],
    dilation: Sequence[int],
):
    """Yield (column channel, image channel, clipped indices, validity mask)."""
    grid = np.indices(col[1:])
    spatial = im[1:]
    for c_col in range(col[0]):
        channel, kernel_index = divmod(c_col, kernel_size)
        offsets = np.unravel_index(kernel_index, kernel_shape)
        coords = [
            grid[axis] * int(stride[axis]) - int(pad[axis]) + int(offsets[axis]) * int(dilation[axis])
            for axis in range(len(spatial))
        ]
        valid = np.ones(col[1:], dtype=bool)
        for axis, coord in enumerate(coords):
            valid &= (coord >= 0) & (coord < spatial[axis])
        clipped = tuple(np.clip(coord, 0, spatial[axis] - 1) for axis, coord in enumerate(coords))
        yield c_col, channel, clipped, valid


def im2col_nd(
    data_im: Any,
    im_shape: Sequence[int],
    col_shape: Sequence[int],
    kernel_shape: Sequence[int],
    pad: Sequence[int],
    stride: Sequence[int],
    dilation: Sequence[int],
) -> np.ndarray:
    """Return columns shaped ``col_shape`` for an image of any spatial rank.

    ``im_shape`` is (channels, *spatial) and ``col_shape`` is
    (channels * kernel size, *output spatial).
    """
    im, col, kernel, kernel_size = _nd_plan(im_shape, col_shape, kernel_shape, pad, stride, dilation)
    image = np.asarray(data_im)
    if image.size != math.prod(im):
        raise ValueError(f"image holds {image.size} values, expected shape {im}")
    image = image.reshape(im)
    columns = np.zeros(col, dtype=image.dtype)
    for c_col, channel, clipped, valid in _nd_fields(im, col, kernel, kernel_size, pad, stride, dilation):
        columns[c_col] = np.where(valid, image[channel][clipped], 0)
    return columns


def col2im_nd(
    data_col: Any,
    im_shape: Sequence[int],
    col_shape: Sequence[int],
    kernel_shape: Sequence[int],
    pad: Sequence[int],
    stride: Sequence[int],
    dilation: Sequence[int],
) -> np.ndarray:
    """Sum columns shaped ``col_shape`` back into an image shaped ``im_shape``."""
    im, col, kernel, kernel_size = _nd_plan(im_shape, col_shape, kernel_shape, pad, stride, dilation)
    columns = np.asarray(data_col)
    if columns.size != math.prod(col):
        raise ValueError(f"columns hold {columns.size} values, expected shape {col}")
    columns = columns.reshape(col)
    image = np.zeros(im, dtype=columns.dtype)
    for c_col, channel, clipped, valid in _nd_fields(im, col, kernel, kernel_size, pad, stride, dilation):
        np.add.at(image[channel], clipped, np.where(valid, columns[c_col], 0))
    return image