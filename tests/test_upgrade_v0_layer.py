import pytest

from fixnet.prototxt import parse
from fixnet.upgrade_v0_layer import (
    UpgradeError,
    upgrade_v0_layer_parameter,
    upgrade_v0_layer_type,
)

CONV = """
bottom: "data"
top: "conv1"
layer {
  name: "conv1"
  type: "conv"
  num_output: 96
  kernelsize: 11
  stride: 4
  pad: 2
  group: 2
  biasterm: false
  weight_filler { type: "gaussian" std: 0.01 }
  blobs_lr: 1
  blobs_lr: 2
  weight_decay: 1
}
"""


@pytest.mark.parametrize(
    "old, new",
    [
        ("conv", "CONVOLUTION"),
        ("innerproduct", "INNER_PRODUCT"),
        ("images", "IMAGE_DATA"),
        ("pool", "POOLING"),
        ("softmax_loss", "SOFTMAX_LOSS"),
        ("window_data", "WINDOW_DATA"),
    ],
)
def test_layer_type_names(old, new):
    assert upgrade_v0_layer_type(old) == new


def test_unknown_layer_type_raises():
    with pytest.raises(UpgradeError):
        upgrade_v0_layer_type("padding")


def test_conv_layer_upgrade():
    layer, ok = upgrade_v0_layer_parameter(parse(CONV))
    assert ok is True
    assert layer["bottom"] == ["data"]
    assert layer["top"] == ["conv1"]
    assert layer["name"] == ["conv1"]
    assert layer["type"] == ["CONVOLUTION"]
    conv = layer["convolution_param"][0]
    assert conv["num_output"] == [96]
    assert conv["kernel_size"] == [11]
    assert conv["stride"] == [4]
    assert conv["pad"] == [2]
    assert conv["group"] == [2]
    assert conv["bias_term"] == [False]
    assert conv["weight_filler"] == [{"type": ["gaussian"], "std": [0.01]}]
    assert layer["blobs_lr"] == [1, 2]
    assert layer["weight_decay"] == [1]


def test_input_is_not_modified():
    source = parse(CONV)
    snapshot = parse(CONV)
    layer, _ = upgrade_v0_layer_parameter(source)
    layer["convolution_param"][0]["weight_filler"][0]["std"] = [1.0]
    assert source == snapshot


def test_pool_layer_upgrade():
    text = 'layer { name: "pool1" type: "pool" pool: AVE kernelsize: 3 stride: 2 pad: 1 }'
    layer, ok = upgrade_v0_layer_parameter(parse(text))
    assert ok is True
    assert layer["pooling_param"] == [
        {"pad": [1], "kernel_size": [3], "stride": [2], "pool": ["AVE"]}
    ]


def test_unknown_pool_method_is_incompatible():
    layer, ok = upgrade_v0_layer_parameter(parse('layer { type: "pool" pool: MEDIAN }'))
    assert ok is False
    assert "pooling_param" not in layer


def test_parameter_for_wrong_type_is_dropped():
    layer, ok = upgrade_v0_layer_parameter(parse('layer { type: "relu" num_output: 10 }'))
    assert ok is False
    assert layer["type"] == ["RELU"]
    assert "convolution_param" not in layer


def test_data_layer_transform_fields():
    text = """
    top: "data"
    layer {
      type: "data" source: "train_db" batchsize: 64
      scale: 0.5 meanfile: "mean.binaryproto" cropsize: 227 mirror: true rand_skip: 3
    }
    """
    layer, ok = upgrade_v0_layer_parameter(parse(text))
    assert ok is True
    assert layer["data_param"] == [{"source": ["train_db"], "batch_size": [64], "rand_skip": [3]}]
    assert layer["transform_param"] == [
        {"scale": [0.5], "mean_file": ["mean.binaryproto"], "crop_size": [227], "mirror": [True]}
    ]


def test_images_shuffle_and_size():
    text = 'layer { type: "images" shuffle_images: true new_height: 8 new_width: 9 }'
    layer, ok = upgrade_v0_layer_parameter(parse(text))
    assert ok is True
    assert layer["image_data_param"] == [{"shuffle": [True], "new_height": [8], "new_width": [9]}]


def test_window_data_detection_fields():
    text = 'layer { type: "window_data" det_fg_threshold: 0.5 det_crop_mode: "square" }'
    layer, ok = upgrade_v0_layer_parameter(parse(text))
    assert ok is True
    assert layer["window_data_param"] == [{"fg_threshold": [0.5], "crop_mode": ["square"]}]


def test_hdf5_output_param_is_copied():
    text = 'layer { type: "hdf5_output" hdf5_output_param { file_name: "out.h5" } }'
    layer, ok = upgrade_v0_layer_parameter(parse(text))
    assert ok is True
    assert layer["hdf5_output_param"] == [{"file_name": ["out.h5"]}]


def test_connection_without_layer_keeps_blobs():
    layer, ok = upgrade_v0_layer_parameter(parse('bottom: "a" top: "b"'))
    assert ok is True
    assert layer == {"bottom": ["a"], "top": ["b"]}


def test_unknown_type_in_layer_raises():
    with pytest.raises(UpgradeError):
        upgrade_v0_layer_parameter(parse('layer { type: "mystery" }'))