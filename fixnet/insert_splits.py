"""Inserting Split layers for blobs that feed more than one consumer.

Nets are message dictionaries as produced by :mod:`fixnet.prototxt`, with
layers listed under ``layer``. A top blob read by several layers, or read
once and also used as a weighted loss, is routed through a Split layer so
that every consumer gets a blob of its own.
"""

from __future__ import annotations

import copy
from collections import defaultdict
from collections.abc import Mapping
from typing import Any

__all__ = [
    "UnknownBlobError",
    "insert_splits",
    "configure_split_layer",
    "split_layer_name",
    "split_blob_name",
]


class UnknownBlobError(ValueError):
    """Raised when a layer reads a blob that no earlier layer produced."""


def split_layer_name(layer_name: str, blob_name: str, blob_idx: int) -> str:
    """Return the name of the Split layer for a layer's top blob."""
    return f"{blob_name}_{layer_name}_{blob_idx}_split"


def split_blob_name(layer_name: str, blob_name: str, blob_idx: int, split_idx: int) -> str:
    """Return the name of one output of a Split layer."""
    return f"{blob_name}_{layer_name}_{blob_idx}_split_{split_idx}"


def configure_split_layer(
    layer_name: str, blob_name: str, blob_idx: int, split_count: int, loss_weight: float
) -> dict[str, list[Any]]:
    """Return a Split layer fanning one blob out to ``split_count`` tops.

    With a non-zero ``loss_weight`` the first top carries the weight and the
    others carry zero.
    """
    layer: dict[str, list[Any]] = {
        "name": [split_layer_name(layer_name, blob_name, blob_idx)],
        "type": ["Split"],
        "bottom": [blob_name],
        "top": [split_blob_name(layer_name, blob_name, blob_idx, k) for k in range(split_count)],
    }
    if loss_weight:
        layer["loss_weight"] = [loss_weight] + [0] * (split_count - 1)
    return layer


def _name(layer: Mapping[str, Any]) -> str:
    names = layer.get("name")
    return names[-1] if names else ""


def insert_splits(net: Mapping[str, Any]) -> dict[str, list[Any]]:
    """Return a copy of the net with Split layers for shared blobs."""
    layers = list(net.get("layer") or [])
    last_top: dict[str, tuple[int, int]] = {}
    source_of_bottom: dict[tuple[int, int], tuple[int, int]] = {}
    consumer_count: dict[tuple[int, int], int] = defaultdict(int)
    loss_weights: dict[tuple[int, int], float] = {}
    next_split: dict[tuple[int, int], int] = defaultdict(int)
    layer_names = [_name(layer) for layer in layers]

    for i, layer in enumerate(layers):
        for j, blob in enumerate(layer.get("bottom") or []):
            if blob not in last_top:
                raise UnknownBlobError(
                    f"Unknown bottom blob '{blob}' (layer '{layer_names[i]}', bottom index {j})"
                )
            top_idx = last_top[blob]
            source_of_bottom[(i, j)] = top_idx
            consumer_count[top_idx] += 1
        tops = list(layer.get("top") or [])
        for j, blob in enumerate(tops):
            last_top[blob] = (i, j)
        weights = list(layer.get("loss_weight") or [])
        for j, weight in enumerate(weights[: len(tops)]):
            top_idx = last_top[tops[j]]
            loss_weights[top_idx] = weight
            if weight:
                consumer_count[top_idx] += 1

    result = {name: copy.deepcopy(value) for name, value in net.items() if name != "layer"}
    new_layers: list[dict[str, list[Any]]] = []
    for i, original in enumerate(layers):
        layer = copy.deepcopy(dict(original))
        new_layers.append(layer)
        bottoms = layer.get("bottom") or []
        for j, blob in enumerate(bottoms):
            top_idx = source_of_bottom[(i, j)]
            if consumer_count[top_idx] > 1:
                bottoms[j] = split_blob_name(
                    layer_names[top_idx[0]], blob, top_idx[1], next_split[top_idx]
                )
                next_split[top_idx] += 1
        for j, blob in enumerate(layer.get("top") or []):
            top_idx = (i, j)
            count = consumer_count[top_idx]
            if count <= 1:
                continue
            weight = loss_weights.get(top_idx, 0)
            new_layers.append(configure_split_layer(layer_names[i], blob, j, count, weight))
            if weight:
                layer.pop("loss_weight", None)
                next_split[top_idx] += 1
    if new_layers:
        result["layer"] = new_layers
    return result