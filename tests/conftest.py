import os
import shutil
import subprocess
from typing import List, Optional, Sequence, Tuple

import numpy as np
import onnx
import pytest
from onnx import TensorProto, helper, numpy_helper

from onnx2cgen.utils.common_functions import format_c_array_initializer

C_COMPILER = shutil.which("cc") or shutil.which("gcc") or shutil.which("clang")

requires_c_compiler = pytest.mark.skipif(C_COMPILER is None, reason="requires a C compiler")


def make_conv_integer_model(
    *,
    x_shape: Sequence[int] = (1, 1, 5, 5),
    w: Optional[np.ndarray] = None,
    x_zero_point: Optional[int] = 1,
    w_zero_point: Optional[int] = None,
    attrs: Optional[dict] = None,
    y_shape: Optional[Sequence[int]] = None,
) -> onnx.ModelProto:
    w = np.ones((1, 1, 3, 3), dtype=np.int8) if w is None else w
    x_vi = helper.make_tensor_value_info("x", TensorProto.INT8, list(x_shape))
    y_vi = helper.make_tensor_value_info("y", TensorProto.INT32, None if y_shape is None else list(y_shape))
    initializers = [numpy_helper.from_array(w, name="w")]
    node_inputs = ["x", "w"]
    if x_zero_point is not None or w_zero_point is not None:
        if x_zero_point is not None:
            initializers.append(
                numpy_helper.from_array(np.array(x_zero_point, dtype=np.int8), name="x_zero_point")
            )
            node_inputs.append("x_zero_point")
        else:
            node_inputs.append("")
    if w_zero_point is not None:
        initializers.append(
            numpy_helper.from_array(np.array(w_zero_point, dtype=np.int8), name="w_zero_point")
        )
        node_inputs.append("w_zero_point")
    node = helper.make_node(
        "ConvInteger",
        node_inputs,
        ["y"],
        name="conv_integer",
        **(attrs or {}),
    )
    graph = helper.make_graph([node], "conv_integer_graph", [x_vi], [y_vi], initializer=initializers)
    return helper.make_model(graph, opset_imports=[helper.make_operatorsetid("", 13)])


def make_conv_chain_model(
    w1: np.ndarray,
    w2: np.ndarray,
    b2: np.ndarray,
) -> onnx.ModelProto:
    """x -> Conv(pads=1) -> mid -> Conv(bias, dilations=2) -> y"""
    x_vi = helper.make_tensor_value_info("x", TensorProto.FLOAT, [1, 1, 6, 6])
    y_vi = helper.make_tensor_value_info("y", TensorProto.FLOAT, None)
    nodes = [
        helper.make_node("Conv", ["x", "w1"], ["mid"], name="conv/first", pads=[1, 1, 1, 1]),
        helper.make_node("Conv", ["mid", "w2", "b2"], ["y"], name="conv/second", dilations=[2, 2]),
    ]
    graph = helper.make_graph(
        nodes,
        "conv_chain_graph",
        [x_vi],
        [y_vi],
        initializer=[
            numpy_helper.from_array(w1, name="w1"),
            numpy_helper.from_array(w2, name="w2"),
            numpy_helper.from_array(b2, name="b2"),
        ],
    )
    return helper.make_model(graph, opset_imports=[helper.make_operatorsetid("", 13)])


def reference_conv(
    x: np.ndarray,
    w: np.ndarray,
    *,
    x_zero: int = 0,
    bias: Optional[np.ndarray] = None,
    strides: Sequence[int] = (1, 1),
    pads: Sequence[int] = (0, 0, 0, 0),
    dilations: Sequence[int] = (1, 1),
) -> np.ndarray:
    """Direct convolution that skips padded positions"""
    batch, in_channels, in_h, in_w = x.shape
    out_channels, _, k_h, k_w = w.shape
    out_h = (in_h + pads[0] + pads[2] - ((k_h - 1) * dilations[0] + 1)) // strides[0] + 1
    out_w = (in_w + pads[1] + pads[3] - ((k_w - 1) * dilations[1] + 1)) // strides[1] + 1
    acc_dtype = np.float64 if np.issubdtype(x.dtype, np.floating) else np.int64
    y = np.zeros((batch, out_channels, out_h, out_w), dtype=acc_dtype)
    for b in range(batch):
        for m in range(out_channels):
            for o0 in range(out_h):
                for o1 in range(out_w):
                    acc = bias[m] if bias is not None else 0
                    for c in range(in_channels):
                        for k0 in range(k_h):
                            for k1 in range(k_w):
                                ii0 = o0 * strides[0] - pads[0] + k0 * dilations[0]
                                ii1 = o1 * strides[1] - pads[1] + k1 * dilations[1]
                                if ii0 < 0 or ii0 >= in_h or ii1 < 0 or ii1 >= in_w:
                                    continue
                                acc += (acc_dtype(x[b, c, ii0, ii1]) - x_zero) * acc_dtype(w[m, c, k0, k1])
                    y[b, m, o0, o1] = acc
    return y


def quantize_reference(acc: np.ndarray, kernel_shape: Sequence[int]) -> np.ndarray:
    divisor = int(kernel_shape[0]) * int(kernel_shape[1]) * 16
    scaled = np.fix(acc.astype(np.float64) / divisor)
    return np.clip(scaled, -127, 127).astype(np.int8)


def compile_and_run(
    workdir: str,
    c_source: str,
    inputs: List[Tuple[str, np.ndarray]],
    outputs: List[Tuple[str, Sequence[int], np.dtype]],
) -> List[np.ndarray]:
    """Build the generated source with a small driver calling entry() and read the outputs back.

    inputs: (c_type, values) in entry() parameter order
    outputs: (c_type, shape, numpy dtype) in entry() parameter order
    """
    model_c = os.path.join(workdir, "model.c")
    with open(model_c, "w") as f:
        f.write(c_source)

    lines = ['#include "model.c"', "#include <stdio.h>", ""]
    args = []
    for idx, (c_type, values) in enumerate(inputs):
        dims = "".join(f"[{d}]" for d in values.shape)
        lines.append(f"static const {c_type} in{idx}{dims} = {format_c_array_initializer(values, c_type)};")
        args.append(f"in{idx}")
    for idx, (c_type, shape, _) in enumerate(outputs):
        dims = "".join(f"[{d}]" for d in shape)
        lines.append(f"static {c_type} out{idx}{dims};")
        args.append(f"out{idx}")
    lines.append("")
    lines.append("int main(void)")
    lines.append("{")
    lines.append(f"\tentry( {', '.join(args)} );")
    for idx, (c_type, shape, _) in enumerate(outputs):
        size = int(np.prod(shape))
        lines.append(f"\tfor( int i=0; i<{size}; i++ ) printf(\"%.17g\\n\", (double)(({c_type} *)out{idx})[i]);")
    lines.append("\treturn 0;")
    lines.append("}")

    main_c = os.path.join(workdir, "main.c")
    with open(main_c, "w") as f:
        f.write("\n".join(lines) + "\n")

    exe = os.path.join(workdir, "model_test")
    subprocess.run(
        [C_COMPILER, "-o", exe, main_c, "-lm"],
        check=True,
        capture_output=True,
        cwd=workdir,
    )
    run = subprocess.run([exe], check=True, capture_output=True, text=True)
    values = [float(v) for v in run.stdout.split()]

    results = []
    offset = 0
    for _, shape, np_dtype in outputs:
        size = int(np.prod(shape))
        results.append(np.asarray(values[offset:offset + size]).reshape(shape).astype(np_dtype))
        offset += size
    return results
