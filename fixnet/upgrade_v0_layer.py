"""Upgrading single layers from the V0 layer definition to V1.

Layers are message dictionaries as produced by :mod:`fixnet.prototxt`: each
field maps to a list of values. A V0 layer connection holds ``bottom`` and
``top`` blob names and a nested ``layer`` message with the old parameters.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

__all__ = ["UpgradeError", "upgrade_v0_layer_parameter", "upgrade_v0_layer_type"]

log = logging.getLogger(__name__)


class UpgradeError(ValueError):
    """Raised when a definition cannot be upgraded at all."""


_V0_TO_V1_TYPE = {
    "accuracy": "ACCURACY",
    "bnll": "BNLL",
    "concat": "CONCAT",
    "conv": "CONVOLUTION",
    "data": "DATA",
    "dropout": "DROPOUT",
    "euclidean_loss": "EUCLIDEAN_LOSS",
    "flatten": "FLATTEN",
    "hdf5_data": "HDF5_DATA",
    "hdf5_output": "HDF5_OUTPUT",
    "im2col": "IM2COL",
    "images": "IMAGE_DATA",
    "infogain_loss": "INFOGAIN_LOSS",
    "innerproduct": "INNER_PRODUCT",
    "lrn": "LRN",
    "multinomial_logistic_loss": "MULTINOMIAL_LOGISTIC_LOSS",
    "pool": "POOLING",
    "relu": "RELU",
    "sigmoid": "SIGMOID",
    "softmax": "SOFTMAX",
    "softmax_loss": "SOFTMAX_LOSS",
    "split": "SPLIT",
    "tanh": "TANH",
    "window_data": "WINDOW_DATA",
}

_POOL_METHODS = {"MAX": "MAX", "AVE": "AVE", "STOCHASTIC": "STOCHASTIC", 0: "MAX", 1: "AVE", 2: "STOCHASTIC"}

_SET, _ADD = "set", "add"
_ANY = None  # the parameter applies whatever the layer type

# (V0 field, name used in messages, {layer type: (V1 message, V1 field, op)})
_RULES: list[tuple[str, str, dict[str | None, tuple[str, str, str]]]] = [
    ("num_output", "num_output", {
        "conv": ("convolution_param", "num_output", _SET),
        "innerproduct": ("inner_product_param", "num_output", _SET),
    }),
    ("biasterm", "biasterm", {
        "conv": ("convolution_param", "bias_term", _SET),
        "innerproduct": ("inner_product_param", "bias_term", _SET),
    }),
    ("weight_filler", "weight_filler", {
        "conv": ("convolution_param", "weight_filler", _SET),
        "innerproduct": ("inner_product_param", "weight_filler", _SET),
    }),
    ("bias_filler", "bias_filler", {
        "conv": ("convolution_param", "bias_filler", _SET),
        "innerproduct": ("inner_product_param", "bias_filler", _SET),
    }),
    ("pad", "pad", {
        "conv": ("convolution_param", "pad", _ADD),
        "pool": ("pooling_param", "pad", _SET),
    }),
    ("kernelsize", "kernelsize", {
        "conv": ("convolution_param", "kernel_size", _ADD),
        "pool": ("pooling_param", "kernel_size", _SET),
    }),
    ("group", "group", {"conv": ("convolution_param", "group", _SET)}),
    ("stride", "stride", {
        "conv": ("convolution_param", "stride", _ADD),
        "pool": ("pooling_param", "stride", _SET),
    }),
    ("pool", "pool", {"pool": ("pooling_param", "pool", _SET)}),
    ("dropout_ratio", "dropout_ratio", {"dropout": ("dropout_param", "dropout_ratio", _SET)}),
    ("local_size", "local_size", {"lrn": ("lrn_param", "local_size", _SET)}),
    ("alpha", "alpha", {"lrn": ("lrn_param", "alpha", _SET)}),
    ("beta", "beta", {"lrn": ("lrn_param", "beta", _SET)}),
    ("k", "k", {"lrn": ("lrn_param", "k", _SET)}),
    ("source", "source", {
        "data": ("data_param", "source", _SET),
        "hdf5_data": ("hdf5_data_param", "source", _SET),
        "images": ("image_data_param", "source", _SET),
        "window_data": ("window_data_param", "source", _SET),
        "infogain_loss": ("infogain_loss_param", "source", _SET),
    }),
    ("scale", "scale", {_ANY: ("transform_param", "scale", _SET)}),
    ("meanfile", "meanfile", {_ANY: ("transform_param", "mean_file", _SET)}),
    ("batchsize", "batchsize", {
        "data": ("data_param", "batch_size", _SET),
        "hdf5_data": ("hdf5_data_param", "batch_size", _SET),
        "images": ("image_data_param", "batch_size", _SET),
        "window_data": ("window_data_param", "batch_size", _SET),
    }),
    ("cropsize", "cropsize", {_ANY: ("transform_param", "crop_size", _SET)}),
    ("mirror", "mirror", {_ANY: ("transform_param", "mirror", _SET)}),
    ("rand_skip", "rand_skip", {
        "data": ("data_param", "rand_skip", _SET),
        "images": ("image_data_param", "rand_skip", _SET),
    }),
    ("shuffle_images", "shuffle", {"images": ("image_data_param", "shuffle", _SET)}),
    ("new_height", "new_height", {"images": ("image_data_param", "new_height", _SET)}),
    ("new_width", "new_width", {"images": ("image_data_param", "new_width", _SET)}),
    ("concat_dim", "concat_dim", {"concat": ("concat_param", "concat_dim", _SET)}),
    ("det_fg_threshold", "det_fg_threshold", {"window_data": ("window_data_param", "fg_threshold", _SET)}),
    ("det_bg_threshold", "det_bg_threshold", {"window_data": ("window_data_param", "bg_threshold", _SET)}),
    ("det_fg_fraction", "det_fg_fraction", {"window_data": ("window_data_param", "fg_fraction", _SET)}),
    ("det_context_pad", "det_context_pad", {"window_data": ("window_data_param", "context_pad", _SET)}),
    ("det_crop_mode", "det_crop_mode", {"window_data": ("window_data_param", "crop_mode", _SET)}),
    ("hdf5_output_param", "hdf5_output_param", {
        "hdf5_output": ("hdf5_output_param", "", _SET),
    }),
]


def upgrade_v0_layer_type(type_name: str) -> str:
    """Return the V1 layer type enum name for a V0 type string."""
    try:
        return _V0_TO_V1_TYPE[type_name]
    except KeyError:
        raise UpgradeError(f"Unknown layer name: {type_name}") from None


def _last(message: Mapping[str, Any], field: str) -> Any:
    return message[field][-1]


def _has(message: Mapping[str, Any], field: str) -> bool:
    return bool(message.get(field))


def _submessage(layer: dict[str, list[Any]], name: str) -> dict[str, list[Any]]:
    return layer.setdefault(name, [{}])[0]


def upgrade_v0_layer_parameter(layer: Mapping[str, Any]) -> tuple[dict[str, list[Any]], bool]:
    """Upgrade one V0 layer connection to a V1 layer.

    Returns the new layer and whether every old parameter found a place in
    it; parameters that do not fit the layer type are logged and dropped.
    """
    upgraded: dict[str, list[Any]] = {}
    compatible = True
    if _has(layer, "bottom"):
        upgraded["bottom"] = list(layer["bottom"])
    if _has(layer, "top"):
        upgraded["top"] = list(layer["top"])
    if not _has(layer, "layer"):
        return upgraded, compatible

    old = _last(layer, "layer")
    if _has(old, "name"):
        upgraded["name"] = [_last(old, "name")]
    layer_type = _last(old, "type") if _has(old, "type") else ""
    if _has(old, "type"):
        upgraded["type"] = [upgrade_v0_layer_type(layer_type)]
    for field in ("blobs", "blobs_lr", "weight_decay"):
        if _has(old, field):
            upgraded[field] = copy.deepcopy(list(old[field]))

    for v0_field, shown_name, targets in _RULES:
        if not _has(old, v0_field):
            continue
        target = targets.get(layer_type, targets.get(_ANY))
        if target is None:
            log.error("Unknown parameter %s for layer type %s", shown_name, layer_type)
            compatible = False
            continue
        value = copy.deepcopy(_last(old, v0_field))
        if v0_field == "pool":
            method = _POOL_METHODS.get(value)
            if method is None:
                log.error("Unknown pool method %s", value)
                compatible = False
                continue
            value = method
        message_name, field, op = target
        if not field:
            upgraded[message_name] = [value]
            continue
        sub = _submessage(upgraded, message_name)
        if op == _ADD:
            sub.setdefault(field, []).append(value)
        else:
            sub[field] = [value]
    return upgraded, compatible