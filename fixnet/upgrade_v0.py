"""Upgrading whole nets from the V0 layer definition to V1.

Nets are message dictionaries as produced by :mod:`fixnet.prototxt`. A V0
net lists its layers under ``layers``, each with a nested ``layer`` message.
Padding layers of V0 nets are folded into the convolution or pooling layers
that read from them.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from fixnet.upgrade_v0_layer import UpgradeError, upgrade_v0_layer_parameter

__all__ = ["net_needs_v0_to_v1_upgrade", "upgrade_v0_net", "upgrade_v0_padding_layers"]


def _layers(net: Mapping[str, Any]) -> list[dict[str, list[Any]]]:
    return list(net.get("layers") or [])


def _inner(connection: Mapping[str, Any]) -> dict[str, list[Any]]:
    inner = connection.get("layer")
    return inner[-1] if inner else {}


def _inner_type(connection: Mapping[str, Any]) -> str:
    types = _inner(connection).get("type")
    return types[-1] if types else ""


def net_needs_v0_to_v1_upgrade(net: Mapping[str, Any]) -> bool:
    """Return whether any layer still carries a V0 ``layer`` message."""
    return any(connection.get("layer") for connection in _layers(net))


def upgrade_v0_padding_layers(net: Mapping[str, Any]) -> dict[str, list[Any]]:
    """Return a copy of the net with padding layers folded into their readers."""
    layers = _layers(net)
    upgraded = {name: copy.deepcopy(value) for name, value in net.items() if name != "layers"}
    kept: list[dict[str, list[Any]]] = []
    last_top: dict[str, int] = {blob: -1 for blob in net.get("input") or []}

    for index, connection in enumerate(layers):
        layer_type = _inner_type(connection)
        if layer_type != "padding":
            kept.append(copy.deepcopy(connection))
        bottoms = list(connection.get("bottom") or [])
        for j, blob in enumerate(bottoms):
            if blob not in last_top:
                raise UpgradeError(f"Unknown blob input {blob} to layer {j}")
            top_idx = last_top[blob]
            if top_idx == -1:
                continue
            source = layers[top_idx]
            if _inner_type(source) != "padding":
                continue
            if layer_type not in ("conv", "pool"):
                raise UpgradeError(
                    "Padding layer input to non-convolutional / non-pooling layer type "
                    f"{layer_type}"
                )
            if len(bottoms) != 1:
                raise UpgradeError("Conv Layer takes a single blob as input.")
            source_bottoms = list(source.get("bottom") or [])
            if len(source_bottoms) != 1:
                raise UpgradeError("Padding Layer takes a single blob as input.")
            if len(source.get("top") or []) != 1:
                raise UpgradeError("Padding Layer produces a single blob as output.")
            pads = _inner(source).get("pad")
            pad = pads[-1] if pads else 0
            target = kept[-1]
            target.setdefault("layer", [{}])[-1]["pad"] = [pad]
            target["bottom"][j] = source_bottoms[0]
        for blob in connection.get("top") or []:
            last_top[blob] = index

    if kept:
        upgraded["layers"] = kept
    return upgraded


def upgrade_v0_net(net: Mapping[str, Any]) -> tuple[dict[str, list[Any]], bool]:
    """Upgrade a V0 net to V1.

    Returns the new net and whether every layer upgraded without losing a
    parameter.
    """
    padded = upgrade_v0_padding_layers(net)
    upgraded: dict[str, list[Any]] = {}
    compatible = True
    if padded.get("name"):
        upgraded["name"] = [padded["name"][-1]]
    new_layers = []
    for connection in _layers(padded):
        layer, ok = upgrade_v0_layer_parameter(connection)
        compatible &= ok
        new_layers.append(layer)
    if new_layers:
        upgraded["layers"] = new_layers
    for field in ("input", "input_dim"):
        if padded.get(field):
            upgraded[field] = list(padded[field])
    if padded.get("force_backward"):
        upgraded["force_backward"] = [padded["force_backward"][-1]]
    return upgraded, compatible