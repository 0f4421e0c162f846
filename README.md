# fixnet

Building blocks for working with trained neural-network descriptions and the
numeric routines behind them. Each part can be used on its own:

- `fixnet.prototxt` parses and writes network and solver descriptions in the
  protocol buffer text format (`parse`, `dumps`, `read_text_file`). Messages
  are plain dictionaries in which every field maps to a list of its values.
- `fixnet.upgrade_proto` brings old network and solver descriptions up to the
  current layout. The individual steps live in `fixnet.upgrade_v0`,
  `fixnet.upgrade_v0_layer`, `fixnet.upgrade_v1` and `fixnet.upgrade_net`.
- `fixnet.insert_splits` adds `Split` layers wherever one blob feeds several
  consumers.
- `fixnet.im2col` unrolls image patches into columns and back, in 2-D
  (`im2col`, `col2im`) and for any number of spatial axes (`im2col_nd`,
  `col2im_nd`).
- `fixnet.blas` provides single-precision matrix and vector routines (`gemm`,
  `gemv`, `axpy`, `axpby`, `scal`, `scale`, `asum`, `dot`, `strided_dot`) and
  `quantize`, which rounds values toward zero onto a signed 32-bit fixed-point
  grid.

## Installation

Install from a checkout with pip; the only runtime dependency is numpy. The
`test` extra adds pytest.

## Reading and upgrading a network description

```python
from fixnet.upgrade_proto import read_net_params_from_text_file, net_needs_upgrade
from fixnet.insert_splits import insert_splits

net = read_net_params_from_text_file("deploy.prototxt")
assert not net_needs_upgrade(net)
net = insert_splits(net)
```

`read_net_params_from_text_file` parses the file and applies every upgrade the
description needs: V0 layers (with padding layers folded into the convolution
or pooling layers that read them), V1 `layers` blocks, old data-transformation
fields, `input` fields and old batch-norm parameters. Solver files are handled
the same way by `read_solver_params_from_text_file`, which replaces the old
`solver_type` enum with the `type` string.

The upgrade functions return new dictionaries and leave their arguments
untouched; `upgrade_net_as_needed` and `upgrade_solver_as_needed` return the
upgraded message together with a flag telling whether nothing was lost.
`fixnet.prototxt.dumps` writes a message back as text.

Parse errors raise `fixnet.prototxt.ProtoTextError`; descriptions that cannot
be upgraded raise `fixnet.upgrade_v0_layer.UpgradeError`, and a bottom blob
that no earlier layer produces raises `fixnet.insert_splits.UnknownBlobError`.

## Math routines

```python
import numpy as np
from fixnet.blas import Transpose, gemm, quantize

a = np.arange(6, dtype=np.float32).reshape(2, 3)
b = np.ones((3, 2), dtype=np.float32)
c = gemm(Transpose.NO_TRANS, Transpose.NO_TRANS, 2, 2, 3, 1.0, a, b, 0.0)

q = quantize(c, 17)   # round toward zero onto a grid with 17 fractional bits
```

Every routine computes in float32 and returns a new array or number.

## What the package does not do

It does not run a network: there are no layers, no forward pass, no image
loading or preprocessing and no classifier. It has no command-line program.
Descriptions are read only from the text format; binary files such as trained
weights or mean files are not read.

## Running the tests

Install with the `test` extra and run pytest from the project root.