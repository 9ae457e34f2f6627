import numpy as np
import pytest
from onnx import TensorProto, helper

from conftest import make_conv_chain_model, make_conv_integer_model
from onnx2cgen.codegen import (
    CodegenOptions,
    ErrorKind,
    lower_onnx_to_program,
    write_c_source,
)
from onnx2cgen.codegen.c_writer import write_c_file
from onnx2cgen.utils.logging import set_log_level


@pytest.fixture(autouse=True)
def _quiet_logs():
    set_log_level("error")
    yield
    set_log_level("debug")


def _chain_model():
    w1 = np.full((1, 1, 3, 3), 0.5, dtype=np.float32)
    w2 = np.ones((1, 1, 3, 3), dtype=np.float32)
    b2 = np.array([0.25], dtype=np.float32)
    return make_conv_chain_model(w1, w2, b2)


def test_lower_conv_integer_model() -> None:
    result = lower_onnx_to_program(make_conv_integer_model(), "model_a")
    assert result.ok
    program = result.program
    assert program.name == "model_a"
    assert program.inputs == ["x"]
    assert program.outputs == ["y"]
    assert [node.op_type for node in program.nodes] == ["ConvInteger"]
    assert program.tensors["w"].is_const
    assert program.tensors["x_zero_point"].shape == []
    assert program.tensors["y"].c_type == "int32_t"


def test_lower_keeps_quantized_output_type() -> None:
    result = lower_onnx_to_program(
        make_conv_integer_model(),
        options=CodegenOptions(quantize=True),
    )
    assert result.program.tensors["y"].c_type == "int8_t"


def test_lower_stops_at_first_failure() -> None:
    result = lower_onnx_to_program(make_conv_integer_model(attrs={"group": 1, "dilations": [2, 2]}))
    assert not result.ok
    assert result.program is None
    assert result.error.reason_code == ErrorKind.UNSUPPORTED_DILATION


def test_lower_five_dimensional_model() -> None:
    model = make_conv_integer_model(
        x_shape=(1, 1, 3, 3, 3),
        w=np.ones((1, 1, 3, 3, 3), dtype=np.int8),
    )
    result = lower_onnx_to_program(model)
    assert result.error.reason_code == ErrorKind.UNSUPPORTED_RANK


def test_lower_weight_zero_point_model() -> None:
    result = lower_onnx_to_program(make_conv_integer_model(x_zero_point=None, w_zero_point=0))
    assert result.error.reason_code == ErrorKind.UNSUPPORTED_WEIGHT_ZERO_POINT


def test_lower_rejects_dynamic_input_shape() -> None:
    result = lower_onnx_to_program(make_conv_integer_model(x_shape=("N", 1, 5, 5)))
    assert result.error.reason_code == ErrorKind.INVALID_SHAPE
    assert result.error.node_op == "Input"


def test_lower_rejects_unsupported_operator() -> None:
    x = helper.make_tensor_value_info("x", TensorProto.FLOAT, [1, 3])
    y = helper.make_tensor_value_info("y", TensorProto.FLOAT, [1, 3])
    node = helper.make_node("Relu", ["x"], ["y"], name="relu")
    graph = helper.make_graph([node], "relu_graph", [x], [y])
    model = helper.make_model(graph, opset_imports=[helper.make_operatorsetid("", 13)])
    result = lower_onnx_to_program(model)
    assert result.error.reason_code == ErrorKind.UNSUPPORTED_OPERATOR


def test_write_c_source_structure() -> None:
    result = lower_onnx_to_program(make_conv_integer_model(), "model_a")
    c_source = write_c_source(result.program, generator="onnx2cgen test")
    assert c_source.startswith("/*\n * This file is computer generated by onnx2cgen test.\n")
    assert "#include <stdint.h>\n" in c_source
    assert "#include <string.h>\n" in c_source
    assert "static const int8_t tensor_w[1][1][3][3] = {" in c_source
    assert "static const int8_t tensor_x_zero_point[1] = {1};" in c_source
    assert (
        "static void node_conv_integer( const int8_t x[1][1][5][5], const int8_t w[1][1][3][3], "
        "const int8_t x_zero_point[1], int32_t y[1][1][3][3] )"
    ) in c_source
    assert "void entry( const int8_t tensor_x[1][1][5][5], int32_t tensor_y[1][1][3][3] )" in c_source
    assert "\tnode_conv_integer( tensor_x, tensor_w, tensor_x_zero_point, tensor_y );\n" in c_source
    # graph inputs and outputs are entry() parameters, not globals
    assert "static int8_t tensor_x" not in c_source
    assert "static int32_t tensor_y" not in c_source


def test_write_c_source_prints_with_lowering_options() -> None:
    result = lower_onnx_to_program(make_conv_integer_model(), options=CodegenOptions(quantize=True))
    assert result.program.options.quantize
    c_source = write_c_source(result.program)
    assert "int8_t y[1][1][3][3] )" in c_source
    assert "int32_t cell = 0;" in c_source
    assert "cell += ((int32_t)x[b][c][ii0][ii1] - (int32_t)x_zero_point[0]) * w_;" in c_source
    assert "int32_t tmp = cell / 144;" in c_source
    assert "y[b][m][o0][o1] = 0;" not in c_source


def test_write_c_file_prints_with_lowering_options(tmp_path) -> None:
    result = lower_onnx_to_program(make_conv_integer_model(), options=CodegenOptions(quantize=True))
    path = tmp_path / "quantized.c"
    c_source = write_c_file(result.program, str(path))
    assert "int32_t tmp = cell / 144;" in c_source
    assert path.read_text() == c_source


def test_write_c_source_unquantized_program() -> None:
    result = lower_onnx_to_program(make_conv_integer_model())
    assert not result.program.options.quantize
    c_source = write_c_source(result.program)
    assert "int32_t y[1][1][3][3] )" in c_source
    assert "y[b][m][o0][o1] = 0;" in c_source
    assert "int32_t cell" not in c_source


def test_write_c_source_chain_declares_intermediate() -> None:
    result = lower_onnx_to_program(_chain_model())
    assert result.ok
    c_source = write_c_source(result.program)
    assert "static float tensor_mid[1][1][6][6];" in c_source
    assert "static const float tensor_b2[1] = {0.25f};" in c_source
    assert "static void node_conv_first(" in c_source
    assert "static void node_conv_second(" in c_source
    first_call = c_source.index("\tnode_conv_first( tensor_x, tensor_w1, tensor_mid );")
    second_call = c_source.index("\tnode_conv_second( tensor_mid, tensor_w2, tensor_b2, tensor_y );")
    assert first_call < second_call
    assert "void entry( const float tensor_x[1][1][6][6], float tensor_y[1][1][2][2] )" in c_source


def test_write_c_source_deduplicates_c_names() -> None:
    model = _chain_model()
    for node in model.graph.node:
        node.name = "conv"
    result = lower_onnx_to_program(model)
    c_source = write_c_source(result.program)
    assert "static void node_conv(" in c_source
    assert "static void node_conv_1(" in c_source


def test_write_c_file(tmp_path) -> None:
    result = lower_onnx_to_program(make_conv_integer_model())
    path = tmp_path / "model.c"
    c_source = write_c_file(result.program, str(path))
    assert path.read_text() == c_source
