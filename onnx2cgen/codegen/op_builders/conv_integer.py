"""ConvInteger

Integer version of the convolution filter. Data and weights are
quantized with an offset, the zero points are given as optional
3rd and 4th inputs.

With quantization enabled the 32 bit accumulator is scaled down and
saturated into an int8 output. This does not follow the ONNX definition
of ConvInteger (int32 output) and is kept as is on purpose.
"""
from __future__ import annotations

from typing import Any, List

from onnx import TensorProto

from onnx2cgen.codegen.errors import ErrorKind
from onnx2cgen.codegen.ir import ConvParams, TensorIR, ZeroPoints
from onnx2cgen.codegen.op_builders.shared import SpatialFilter
from onnx2cgen.utils.logging import *

QUANTIZE_SCALE_FACTOR: int = 16
QUANTIZE_CLAMP_MAX: int = 127
QUANTIZE_CLAMP_MIN: int = -127


def quantize_divisor(kernel_shape) -> int:
    # only valid for 2D filters
    return int(kernel_shape[0]) * int(kernel_shape[1]) * QUANTIZE_SCALE_FACTOR


class ConvInteger(SpatialFilter):
    op_type = "ConvInteger"
    allow_dilations = False

    def __init__(self, graph_node):
        super().__init__(graph_node)
        self.zero_points: ZeroPoints = ZeroPoints()

    def resolve(self, ctx: Any) -> None:
        x = self.register_input(ctx, 0, "x")
        w = self.register_input(ctx, 1, "w")
        self.params = self.resolve_params(ctx, x, w)
        self.zero_points = self.resolve_zero_points(ctx, self.params)
        self.register_output(ctx, self.select_output(ctx, self.params), "y")

    def resolve_zero_points(self, ctx: Any, params: ConvParams) -> ZeroPoints:
        if self.input_is_present(3):
            self.fail(
                ErrorKind.UNSUPPORTED_WEIGHT_ZERO_POINT,
                "ConvInteger with w_zero_point is not implemented.",
            )
        if self.input_is_present(2):
            self.register_input(ctx, 2, "x_zero_point")
            return ZeroPoints(data="x_zero_point[0]", has_data_zero_point=True)
        return ZeroPoints(data="0", has_data_zero_point=False)

    def select_output(self, ctx: Any, params: ConvParams) -> TensorIR:
        output_dtype = TensorProto.INT8 if ctx.options.quantize else TensorProto.INT32
        graph_output = self.graph_node.outputs[0]
        if ctx.options.quantize:
            warn(
                f'ConvInteger output {graph_output.name} is generated as int8 because quantization is enabled. ' +
                f'ONNX defines the output as int32.'
            )
        return TensorIR(
            name=graph_output.name,
            dtype=output_dtype,
            shape=list(params.output_shape),
        )

    def header_info_lines(self, ctx: Any) -> List[str]:
        lines = [f"x_zero_point: {self.zero_points.data}"]
        if ctx.options.quantize:
            lines.append(
                f"quantized output: cell / {quantize_divisor(self.params.kernel_shape)} " +
                f"clamped to [{QUANTIZE_CLAMP_MIN}, {QUANTIZE_CLAMP_MAX}]"
            )
        return lines

    def print_output_cell_init(self, ctx: Any, y_idx: str) -> str:
        if ctx.options.quantize:
            return "int32_t cell = 0;"
        return f"y{y_idx} = 0;"

    def print_output_cell_calc(self, ctx: Any, x_idx: str, w_idx: str, y_idx: str) -> str:
        x_zero = f"(int32_t){self.zero_points.data}" if self.zero_points.has_data_zero_point else "0"
        dest = "cell" if ctx.options.quantize else f"y{y_idx}"
        return (
            f"int32_t w_ = w{w_idx};\n"
            f"{dest} += ((int32_t)x{x_idx} - {x_zero}) * w_;"
        )

    def print_output_cell_finalize(self, ctx: Any, y_idx: str) -> str:
        if not ctx.options.quantize:
            return ""
        divisor = quantize_divisor(self.params.kernel_shape)
        return (
            f"int32_t tmp = cell / {divisor};\n"
            f"tmp = tmp > {QUANTIZE_CLAMP_MAX} ? {QUANTIZE_CLAMP_MAX} : tmp;\n"
            f"tmp = tmp < {QUANTIZE_CLAMP_MIN} ? {QUANTIZE_CLAMP_MIN} : tmp;\n"
            f"y{y_idx} = (int8_t)tmp;"
        )
