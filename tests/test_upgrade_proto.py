import copy

import pytest

from fixnet.prototxt import ProtoTextError
from fixnet.upgrade_proto import (
    net_needs_upgrade,
    read_net_params_from_text_file,
    read_solver_params_from_text_file,
    solver_needs_type_upgrade,
    upgrade_net_as_needed,
    upgrade_solver_as_needed,
    upgrade_solver_type,
)
from fixnet.upgrade_v0_layer import UpgradeError


def _v0_net(extra=None):
    inner = {"name": ["conv1"], "type": ["conv"], "num_output": [96]}
    inner.update(extra or {})
    return {
        "name": ["v0"],
        "input": ["data"],
        "input_dim": [1, 3, 4, 4],
        "layers": [{"layer": [inner], "bottom": ["data"], "top": ["conv1"]}],
    }


def test_modern_net_needs_no_upgrade():
    net = {"layer": [{"name": ["ip"], "type": ["InnerProduct"]}]}
    assert net_needs_upgrade(net) is False
    upgraded, ok = upgrade_net_as_needed("net.prototxt", net)
    assert ok is True
    assert upgraded == net


def test_v1_net_is_upgraded():
    net = {"name": ["n"], "layers": [{"name": ["ip"], "type": ["INNER_PRODUCT"], "bottom": ["x"], "top": ["y"]}]}
    assert net_needs_upgrade(net) is True
    upgraded, ok = upgrade_net_as_needed("net.prototxt", net)
    assert ok is True
    assert "layers" not in upgraded
    assert upgraded["layer"] == [{"bottom": ["x"], "top": ["y"], "name": ["ip"], "type": ["InnerProduct"]}]
    assert upgraded["name"] == ["n"]


def test_v0_net_goes_through_every_step():
    net = _v0_net()
    original = copy.deepcopy(net)
    upgraded, ok = upgrade_net_as_needed("old.prototxt", net)
    assert ok is True
    assert net == original
    input_layer, conv = upgraded["layer"]
    assert input_layer["type"] == ["Input"]
    assert input_layer["top"] == ["data"]
    assert input_layer["input_param"] == [{"shape": [{"dim": [1, 3, 4, 4]}]}]
    assert conv["type"] == ["Convolution"]
    assert conv["convolution_param"] == [{"num_output": [96]}]
    assert conv["bottom"] == ["data"]
    assert net_needs_upgrade(upgraded) is False


def test_v0_net_with_misplaced_param_reports_failure():
    upgraded, ok = upgrade_net_as_needed("old.prototxt", _v0_net({"dropout_ratio": [0.5]}))
    assert ok is False
    assert upgraded["layer"][1]["type"] == ["Convolution"]


def test_solver_type_upgrade():
    solver = {"solver_type": ["ADAM"], "base_lr": [0.01]}
    assert solver_needs_type_upgrade(solver) is True
    upgraded, ok = upgrade_solver_type(solver)
    assert ok is True
    assert upgraded == {"base_lr": [0.01], "type": ["Adam"]}
    assert solver_needs_type_upgrade(upgraded) is False


@pytest.mark.parametrize(
    "old, new",
    [("SGD", "SGD"), ("NESTEROV", "Nesterov"), ("ADAGRAD", "AdaGrad"), ("RMSPROP", "RMSProp"), ("ADADELTA", "AdaDelta")],
)
def test_solver_type_names(old, new):
    upgraded, _ = upgrade_solver_type({"solver_type": [old]})
    assert upgraded["type"] == [new]


def test_solver_with_both_fields_is_refused():
    with pytest.raises(UpgradeError):
        upgrade_solver_type({"solver_type": ["SGD"], "type": ["SGD"]})


def test_unknown_solver_type_raises():
    with pytest.raises(UpgradeError):
        upgrade_solver_type({"solver_type": ["BOGUS"]})


def test_up_to_date_solver_reports_nothing_done():
    solver = {"type": ["Adam"]}
    upgraded, ok = upgrade_solver_type(solver)
    assert ok is False
    assert upgraded == solver


def test_upgrade_solver_as_needed():
    solver = {"type": ["SGD"]}
    assert upgrade_solver_as_needed("solver.prototxt", solver) == (solver, True)
    upgraded, ok = upgrade_solver_as_needed("solver.prototxt", {"solver_type": ["NESTEROV"]})
    assert ok is True
    assert upgraded == {"type": ["Nesterov"]}


def test_read_net_params_from_text_file(tmp_path):
    path = tmp_path / "net.prototxt"
    path.write_text('name: "n"\nlayers {\n  name: "ip"\n  type: INNER_PRODUCT\n}\n')
    net = read_net_params_from_text_file(path)
    assert net["name"] == ["n"]
    assert net["layer"] == [{"name": ["ip"], "type": ["InnerProduct"]}]


def test_read_net_params_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_net_params_from_text_file(tmp_path / "absent.prototxt")


def test_read_net_params_bad_syntax(tmp_path):
    path = tmp_path / "bad.prototxt"
    path.write_text("layers {\n  name: \"ip\"\n")
    with pytest.raises(ProtoTextError):
        read_net_params_from_text_file(path)


def test_read_solver_params_from_text_file(tmp_path):
    path = tmp_path / "solver.prototxt"
    path.write_text("solver_type: RMSPROP\nbase_lr: 0.01\n")
    solver = read_solver_params_from_text_file(path)
    assert solver == {"base_lr": [0.01], "type": ["RMSProp"]}