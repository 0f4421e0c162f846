"""Network description parsing and upgrading, split insertion, im2col and BLAS-style math."""

__version__ = "0.1.0"