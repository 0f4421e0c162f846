"""Bringing net and solver definitions up to the current format.

Definitions are message dictionaries as produced by :mod:`fixnet.prototxt`.
Upgrades return new dictionaries together with a flag telling whether the
upgrade went through without losing anything.
"""

from __future__ import annotations

import copy
import logging
import os
from collections.abc import Mapping
from typing import Any

from fixnet.prototxt import read_text_file
from fixnet.upgrade_net import (
    net_needs_batch_norm_upgrade,
    net_needs_data_upgrade,
    net_needs_input_upgrade,
    upgrade_net_batch_norm,
    upgrade_net_data_transformation,
    upgrade_net_input,
)
from fixnet.upgrade_v0 import net_needs_v0_to_v1_upgrade, upgrade_v0_net
from fixnet.upgrade_v0_layer import UpgradeError
from fixnet.upgrade_v1 import net_needs_v1_to_v2_upgrade, upgrade_v1_net

__all__ = [
    "net_needs_upgrade",
    "upgrade_net_as_needed",
    "read_net_params_from_text_file",
    "solver_needs_type_upgrade",
    "upgrade_solver_type",
    "upgrade_solver_as_needed",
    "read_solver_params_from_text_file",
]

log = logging.getLogger(__name__)

_SOLVER_TYPES = {
    "SGD": "SGD",
    "NESTEROV": "Nesterov",
    "ADAGRAD": "AdaGrad",
    "RMSPROP": "RMSProp",
    "ADADELTA": "AdaDelta",
    "ADAM": "Adam",
}


def net_needs_upgrade(net: Mapping[str, Any]) -> bool:
    """Return whether the net uses any deprecated form."""
    return (
        net_needs_v0_to_v1_upgrade(net)
        or net_needs_v1_to_v2_upgrade(net)
        or net_needs_data_upgrade(net)
        or net_needs_input_upgrade(net)
        or net_needs_batch_norm_upgrade(net)
    )


def upgrade_net_as_needed(param_file: str, net: Mapping[str, Any]) -> tuple[dict[str, list[Any]], bool]:
    """Apply every upgrade the net needs, in order.

    Returns the upgraded net and whether all upgrades were lossless;
    ``param_file`` names the source in log messages.
    """
    success = True
    current = copy.deepcopy(dict(net))
    if net_needs_v0_to_v1_upgrade(current):
        log.info(
            "Attempting to upgrade input file specified using deprecated V0LayerParameter: %s",
            param_file,
        )
        current, ok = upgrade_v0_net(current)
        if not ok:
            success = False
            log.error(
                "Warning: had one or more problems upgrading V0NetParameter to "
                "NetParameter (see above); continuing anyway."
            )
        else:
            log.info("Successfully upgraded file specified using deprecated V0LayerParameter")
        log.warning("Note that V0NetParameter support is deprecated; upgrade the definition.")
    if net_needs_data_upgrade(current):
        log.info(
            "Attempting to upgrade input file specified using deprecated "
            "transformation parameters: %s",
            param_file,
        )
        current = upgrade_net_data_transformation(current)
        log.info("Successfully upgraded file specified using deprecated data transformation parameters.")
        log.warning("Only transform_param messages will be supported for transformation fields.")
    if net_needs_v1_to_v2_upgrade(current):
        log.info(
            "Attempting to upgrade input file specified using deprecated V1LayerParameter: %s",
            param_file,
        )
        current, ok = upgrade_v1_net(current)
        if not ok:
            success = False
            log.error(
                "Warning: had one or more problems upgrading V1LayerParameter "
                "(see above); continuing anyway."
            )
        else:
            log.info("Successfully upgraded file specified using deprecated V1LayerParameter")
    if net_needs_input_upgrade(current):
        log.info(
            "Attempting to upgrade input file specified using deprecated input fields: %s",
            param_file,
        )
        current = upgrade_net_input(current)
        log.info("Successfully upgraded file specified using deprecated input fields.")
        log.warning("Only input layers, not input fields, will be supported.")
    if net_needs_batch_norm_upgrade(current):
        log.info(
            "Attempting to upgrade batch norm layers using deprecated params: %s", param_file
        )
        current = upgrade_net_batch_norm(current)
        log.info("Successfully upgraded batch norm layers using deprecated params.")
    return current, success


def read_net_params_from_text_file(path: str | os.PathLike[str]) -> dict[str, list[Any]]:
    """Read a net definition in text format and upgrade it as needed."""
    net = read_text_file(path)
    upgraded, _ = upgrade_net_as_needed(os.fspath(path), net)
    return upgraded


def solver_needs_type_upgrade(solver: Mapping[str, Any]) -> bool:
    """Return whether the solver still names its type with the old enum."""
    return bool(solver.get("solver_type"))


def upgrade_solver_type(solver: Mapping[str, Any]) -> tuple[dict[str, list[Any]], bool]:
    """Replace the old ``solver_type`` enum with the ``type`` string.

    Returns the new solver and whether anything was upgraded. A solver that
    sets both fields is refused.
    """
    if solver.get("solver_type") and solver.get("type"):
        raise UpgradeError(
            "Failed to upgrade solver: old solver_type field (enum) and new type "
            "field (string) cannot be both specified in solver proto text."
        )
    upgraded = copy.deepcopy(dict(solver))
    if not upgraded.get("solver_type"):
        log.error("Warning: solver type already up to date.")
        return upgraded, False
    old_type = upgraded.pop("solver_type")[-1]
    try:
        upgraded["type"] = [_SOLVER_TYPES[old_type]]
    except (KeyError, TypeError):
        raise UpgradeError(f"Unknown SolverParameter solver_type: {old_type}") from None
    return upgraded, True


def upgrade_solver_as_needed(param_file: str, solver: Mapping[str, Any]) -> tuple[dict[str, list[Any]], bool]:
    """Apply the solver upgrades that are needed; returns the solver and success."""
    current = copy.deepcopy(dict(solver))
    success = True
    if solver_needs_type_upgrade(current):
        log.info(
            "Attempting to upgrade input file specified using deprecated "
            "'solver_type' field (enum)': %s",
            param_file,
        )
        current, ok = upgrade_solver_type(current)
        if not ok:
            success = False
            log.error("Warning: had one or more problems upgrading SolverType (see above).")
        else:
            log.info(
                "Successfully upgraded file specified using deprecated "
                "'solver_type' field (enum) to 'type' field (string)."
            )
            log.warning("Only the 'type' field (string) will be supported for a solver's type.")
    return current, success


def read_solver_params_from_text_file(path: str | os.PathLike[str]) -> dict[str, list[Any]]:
    """Read a solver definition in text format and upgrade it as needed."""
    solver = read_text_file(path)
    upgraded, _ = upgrade_solver_as_needed(os.fspath(path), solver)
    return upgraded