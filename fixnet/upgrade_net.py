"""Upgrading deprecated net fields that live outside individual layers.

Nets are message dictionaries as produced by :mod:`fixnet.prototxt`. This
covers old data transformation fields on V1 data layers, the old ``input``
fields of a net, and BatchNorm layers that still declare three parameters.
Every upgrade returns a new net and leaves its argument untouched.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from fixnet.upgrade_v0_layer import UpgradeError

__all__ = [
    "net_needs_data_upgrade",
    "upgrade_net_data_transformation",
    "net_needs_input_upgrade",
    "upgrade_net_input",
    "net_needs_batch_norm_upgrade",
    "upgrade_net_batch_norm",
]

_DATA_PARAMS = {
    "DATA": "data_param",
    "IMAGE_DATA": "image_data_param",
    "WINDOW_DATA": "window_data_param",
}
_TRANSFORM_FIELDS = ("scale", "mean_file", "crop_size", "mirror")
_INPUT_FIELDS = ("input", "input_shape", "input_dim")


def _last(message: Mapping[str, Any], field: str, default: Any = None) -> Any:
    values = message.get(field)
    return values[-1] if values else default


def _submessage(message: dict[str, list[Any]], field: str) -> dict[str, list[Any]]:
    if not message.get(field):
        message[field] = [{}]
    return message[field][-1]


def net_needs_data_upgrade(net: Mapping[str, Any]) -> bool:
    """Return whether a V1 data layer still holds transformation fields."""
    for layer in net.get("layers") or []:
        param_name = _DATA_PARAMS.get(_last(layer, "type"))
        if param_name is None:
            continue
        params = _last(layer, param_name, {})
        if any(params.get(field) for field in _TRANSFORM_FIELDS):
            return True
    return False


def upgrade_net_data_transformation(net: Mapping[str, Any]) -> dict[str, list[Any]]:
    """Move transformation fields of V1 data layers into ``transform_param``."""
    upgraded = copy.deepcopy(dict(net))
    for layer in upgraded.get("layers") or []:
        param_name = _DATA_PARAMS.get(_last(layer, "type"))
        if param_name is None:
            continue
        params = _submessage(layer, param_name)
        transform = _submessage(layer, "transform_param")
        for field in _TRANSFORM_FIELDS:
            if params.get(field):
                transform[field] = [params[field][-1]]
                del params[field]
    return upgraded


def net_needs_input_upgrade(net: Mapping[str, Any]) -> bool:
    """Return whether the net still declares ``input`` fields."""
    return bool(net.get("input"))


def upgrade_net_input(net: Mapping[str, Any]) -> dict[str, list[Any]]:
    """Turn the net's ``input`` fields into an Input layer placed first.

    A net whose inputs carry neither shapes nor dimensions only loses the
    fields, as a legacy trained model does.
    """
    upgraded = copy.deepcopy(dict(net))
    inputs = list(upgraded.get("input") or [])
    shapes = list(upgraded.get("input_shape") or [])
    dims = list(upgraded.get("input_dim") or [])
    if shapes or dims:
        shape_list: list[dict[str, list[Any]]] = []
        for i, blob in enumerate(inputs):
            if shapes:
                if i >= len(shapes):
                    raise UpgradeError(f"no input_shape given for input {blob}")
                shape_list.append(copy.deepcopy(shapes[i]))
            else:
                chunk = dims[4 * i : 4 * i + 4]
                if len(chunk) != 4:
                    raise UpgradeError(f"input_dim lacks four dimensions for input {blob}")
                shape_list.append({"dim": list(chunk)})
        input_layer: dict[str, list[Any]] = {"name": ["input"], "type": ["Input"]}
        if inputs:
            input_layer["top"] = inputs
        input_layer["input_param"] = [{"shape": shape_list} if shape_list else {}]
        upgraded["layer"] = [input_layer, *(upgraded.get("layer") or [])]
    for field in _INPUT_FIELDS:
        upgraded.pop(field, None)
    return upgraded


def _is_old_batch_norm(layer: Mapping[str, Any]) -> bool:
    return _last(layer, "type") == "BatchNorm" and len(layer.get("param") or []) == 3


def net_needs_batch_norm_upgrade(net: Mapping[str, Any]) -> bool:
    """Return whether a BatchNorm layer declares the three old parameters."""
    return any(_is_old_batch_norm(layer) for layer in net.get("layer") or [])


def upgrade_net_batch_norm(net: Mapping[str, Any]) -> dict[str, list[Any]]:
    """Drop the three parameter specs of old-style BatchNorm layers."""
    upgraded = copy.deepcopy(dict(net))
    for layer in upgraded.get("layer") or []:
        if _is_old_batch_norm(layer):
            del layer["param"]
    return upgraded