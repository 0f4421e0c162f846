import copy

import pytest

from fixnet.upgrade_net import (
    net_needs_batch_norm_upgrade,
    net_needs_data_upgrade,
    net_needs_input_upgrade,
    upgrade_net_batch_norm,
    upgrade_net_data_transformation,
    upgrade_net_input,
)
from fixnet.upgrade_v0_layer import UpgradeError


def _data_net():
    return {
        "name": ["net"],
        "layers": [
            {
                "name": ["data"],
                "type": ["DATA"],
                "data_param": [{"source": ["db"], "scale": [0.5], "mirror": [False]}],
            },
            {"name": ["ip"], "type": ["INNER_PRODUCT"]},
        ],
    }


def test_data_upgrade_is_needed_for_transform_fields():
    assert net_needs_data_upgrade(_data_net()) is True


def test_data_upgrade_not_needed_for_other_types():
    net = {"layers": [{"type": ["CONVOLUTION"], "data_param": [{"scale": [0.5]}]}]}
    assert net_needs_data_upgrade(net) is False


def test_data_upgrade_not_needed_without_transform_fields():
    net = {"layers": [{"type": ["IMAGE_DATA"], "image_data_param": [{"source": ["list"]}]}]}
    assert net_needs_data_upgrade(net) is False


def test_data_transformation_moves_fields():
    net = _data_net()
    original = copy.deepcopy(net)
    upgraded = upgrade_net_data_transformation(net)
    layer = upgraded["layers"][0]
    assert layer["transform_param"] == [{"scale": [0.5], "mirror": [False]}]
    assert layer["data_param"] == [{"source": ["db"]}]
    assert upgraded["layers"][1] == original["layers"][1]
    assert net == original
    assert net_needs_data_upgrade(upgraded) is False


def test_window_data_mean_file_moves():
    net = {"layers": [{"type": ["WINDOW_DATA"], "window_data_param": [{"mean_file": ["m.bin"], "crop_size": [10]}]}]}
    upgraded = upgrade_net_data_transformation(net)
    assert upgraded["layers"][0]["transform_param"] == [{"mean_file": ["m.bin"], "crop_size": [10]}]


def test_input_upgrade_needed():
    assert net_needs_input_upgrade({"input": ["data"]}) is True
    assert net_needs_input_upgrade({"layer": [{"name": ["a"]}]}) is False


def test_input_dims_become_input_layer():
    conv = {"name": ["conv1"], "type": ["Convolution"], "bottom": ["data"], "top": ["conv1"]}
    net = {"input": ["data"], "input_dim": [1, 3, 227, 227], "layer": [conv]}
    upgraded = upgrade_net_input(net)
    first = upgraded["layer"][0]
    assert first["name"] == ["input"]
    assert first["type"] == ["Input"]
    assert first["top"] == ["data"]
    assert first["input_param"] == [{"shape": [{"dim": [1, 3, 227, 227]}]}]
    assert upgraded["layer"][1] == conv
    assert not any(key in upgraded for key in ("input", "input_dim", "input_shape"))
    assert net_needs_input_upgrade(upgraded) is False


def test_input_shapes_are_copied():
    shapes = [{"dim": [1, 1, 8, 8]}, {"dim": [1, 2]}]
    net = {"input": ["a", "b"], "input_shape": shapes}
    upgraded = upgrade_net_input(net)
    assert upgraded["layer"][0]["top"] == ["a", "b"]
    assert upgraded["layer"][0]["input_param"] == [{"shape": shapes}]


def test_input_without_shape_is_only_stripped():
    net = {"input": ["data"], "layer": [{"name": ["ip"]}]}
    upgraded = upgrade_net_input(net)
    assert upgraded == {"layer": [{"name": ["ip"]}]}


def test_input_with_too_few_dims_raises():
    with pytest.raises(UpgradeError):
        upgrade_net_input({"input": ["a", "b"], "input_dim": [1, 3, 4, 4]})


def test_batch_norm_upgrade():
    bn = {"name": ["bn"], "type": ["BatchNorm"], "param": [{"lr_mult": [0]}] * 3}
    other = {"name": ["s"], "type": ["Scale"], "param": [{}, {}, {}]}
    net = {"layer": [bn, other]}
    assert net_needs_batch_norm_upgrade(net) is True
    upgraded = upgrade_net_batch_norm(net)
    assert "param" not in upgraded["layer"][0]
    assert upgraded["layer"][1] == other
    assert len(net["layer"][0]["param"]) == 3
    assert net_needs_batch_norm_upgrade(upgraded) is False


def test_batch_norm_with_other_param_count_is_left():
    net = {"layer": [{"type": ["BatchNorm"], "param": [{}]}]}
    assert net_needs_batch_norm_upgrade(net) is False
    assert upgrade_net_batch_norm(net) == net