"""Upgrading nets from V1 layer definitions (``layers``) to the current form.

Nets and layers are message dictionaries as produced by
:mod:`fixnet.prototxt`. V1 layers name their type with an enum such as
``CONVOLUTION``; current layers, listed under ``layer``, use a string such as
``"Convolution"``.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

from fixnet.upgrade_v0_layer import UpgradeError

__all__ = [
    "net_needs_v1_to_v2_upgrade",
    "upgrade_v1_net",
    "upgrade_v1_layer_parameter",
    "upgrade_v1_layer_type",
]

log = logging.getLogger(__name__)

_V1_TO_V2_TYPE = {
    "NONE": "",
    "ABSVAL": "AbsVal",
    "ACCURACY": "Accuracy",
    "ARGMAX": "ArgMax",
    "BNLL": "BNLL",
    "CONCAT": "Concat",
    "CONTRASTIVE_LOSS": "ContrastiveLoss",
    "CONVOLUTION": "Convolution",
    "DECONVOLUTION": "Deconvolution",
    "DATA": "Data",
    "DROPOUT": "Dropout",
    "DUMMY_DATA": "DummyData",
    "EUCLIDEAN_LOSS": "EuclideanLoss",
    "ELTWISE": "Eltwise",
    "EXP": "Exp",
    "FLATTEN": "Flatten",
    "HDF5_DATA": "HDF5Data",
    "HDF5_OUTPUT": "HDF5Output",
    "HINGE_LOSS": "HingeLoss",
    "IM2COL": "Im2col",
    "IMAGE_DATA": "ImageData",
    "INFOGAIN_LOSS": "InfogainLoss",
    "INNER_PRODUCT": "InnerProduct",
    "LRN": "LRN",
    "MEMORY_DATA": "MemoryData",
    "MULTINOMIAL_LOGISTIC_LOSS": "MultinomialLogisticLoss",
    "MVN": "MVN",
    "POOLING": "Pooling",
    "POWER": "Power",
    "RELU": "ReLU",
    "SIGMOID": "Sigmoid",
    "SIGMOID_CROSS_ENTROPY_LOSS": "SigmoidCrossEntropyLoss",
    "SILENCE": "Silence",
    "SOFTMAX": "Softmax",
    "SOFTMAX_LOSS": "SoftmaxWithLoss",
    "SPLIT": "Split",
    "SLICE": "Slice",
    "TANH": "TanH",
    "WINDOW_DATA": "WindowData",
    "THRESHOLD": "Threshold",
}

_SHARE_MODES = {"STRICT": "STRICT", "PERMISSIVE": "PERMISSIVE"}

_COPIED_PARAMS = (
    "accuracy_param",
    "argmax_param",
    "concat_param",
    "contrastive_loss_param",
    "convolution_param",
    "data_param",
    "dropout_param",
    "dummy_data_param",
    "eltwise_param",
    "exp_param",
    "hdf5_data_param",
    "hdf5_output_param",
    "hinge_loss_param",
    "image_data_param",
    "infogain_loss_param",
    "inner_product_param",
    "lrn_param",
    "memory_data_param",
    "mvn_param",
    "pooling_param",
    "power_param",
    "relu_param",
    "sigmoid_param",
    "softmax_param",
    "slice_param",
    "tanh_param",
    "threshold_param",
    "window_data_param",
    "transform_param",
    "loss_param",
)

# (V1 repeated field, ParamSpec field it fills)
_PARAM_SPEC_FIELDS = (
    ("param", "name"),
    ("blob_share_mode", "share_mode"),
    ("blobs_lr", "lr_mult"),
    ("weight_decay", "decay_mult"),
)


def net_needs_v1_to_v2_upgrade(net: Mapping[str, Any]) -> bool:
    """Return whether the net still lists V1 ``layers``."""
    return bool(net.get("layers"))


def upgrade_v1_layer_type(type_name: str) -> str:
    """Return the layer type string for a V1 layer type enum name."""
    try:
        return _V1_TO_V2_TYPE[type_name]
    except (KeyError, TypeError):
        raise UpgradeError(f"Unknown V1LayerParameter layer type: {type_name}") from None


def _share_mode(value: Any) -> str:
    try:
        return _SHARE_MODES[value]
    except (KeyError, TypeError):
        raise UpgradeError(f"Unknown blob_share_mode: {value}") from None


def upgrade_v1_layer_parameter(layer: Mapping[str, Any]) -> tuple[dict[str, list[Any]], bool]:
    """Upgrade one V1 layer.

    Returns the new layer and whether it upgraded fully; a leftover V0
    ``layer`` message is logged and ignored.
    """
    upgraded: dict[str, list[Any]] = {}
    compatible = True
    for field in ("bottom", "top"):
        if layer.get(field):
            upgraded[field] = list(layer[field])
    if layer.get("name"):
        upgraded["name"] = [layer["name"][-1]]
    for field in ("include", "exclude"):
        if layer.get(field):
            upgraded[field] = copy.deepcopy(list(layer[field]))
    if layer.get("type"):
        upgraded["type"] = [upgrade_v1_layer_type(layer["type"][-1])]
    if layer.get("blobs"):
        upgraded["blobs"] = copy.deepcopy(list(layer["blobs"]))

    specs: list[dict[str, list[Any]]] = []
    for v1_field, spec_field in _PARAM_SPEC_FIELDS:
        for i, value in enumerate(layer.get(v1_field) or []):
            while len(specs) <= i:
                specs.append({})
            if v1_field == "blob_share_mode":
                value = _share_mode(value)
            specs[i][spec_field] = [value]
    if specs:
        upgraded["param"] = specs

    if layer.get("loss_weight"):
        upgraded["loss_weight"] = list(layer["loss_weight"])
    for field in _COPIED_PARAMS:
        if layer.get(field):
            upgraded[field] = [copy.deepcopy(layer[field][-1])]
    if layer.get("layer"):
        log.error("Input NetParameter has V0 layer -- ignoring.")
        compatible = False
    return upgraded, compatible


def upgrade_v1_net(net: Mapping[str, Any]) -> tuple[dict[str, list[Any]], bool]:
    """Upgrade a net with V1 ``layers`` to one with ``layer`` entries.

    Returns the new net and whether every layer upgraded fully. A net that
    holds both ``layer`` and ``layers`` is refused.
    """
    if net.get("layer"):
        raise UpgradeError(
            "Refusing to upgrade inconsistent NetParameter input; "
            "the definition includes both 'layer' and 'layers' fields. "
            "The current format defines 'layer' fields with string type like "
            "layer { type: 'Layer' ... } and not layers { type: LAYER ... }. "
            "Manually switch the definition to 'layer' format to continue."
        )
    upgraded = {
        name: copy.deepcopy(value) for name, value in net.items() if name not in ("layers", "layer")
    }
    compatible = True
    new_layers = []
    for index, layer in enumerate(net.get("layers") or []):
        new_layer, ok = upgrade_v1_layer_parameter(layer)
        if not ok:
            log.error("Upgrade of input layer %d failed.", index)
            compatible = False
        new_layers.append(new_layer)
    if new_layers:
        upgraded["layer"] = new_layers
    return upgraded, compatible