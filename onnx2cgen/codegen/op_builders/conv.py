from __future__ import annotations

from typing import Any

from onnx import TensorProto

from onnx2cgen.codegen.errors import ErrorKind
from onnx2cgen.codegen.ir import TensorIR
from onnx2cgen.codegen.op_builders.shared import SpatialFilter


class Conv(SpatialFilter):
    op_type = "Conv"
    allow_dilations = True

    def __init__(self, graph_node):
        super().__init__(graph_node)
        self.has_bias = False

    def resolve(self, ctx: Any) -> None:
        x = self.register_input(ctx, 0, "x")
        w = self.register_input(ctx, 1, "w")
        if x.dtype not in [TensorProto.FLOAT, TensorProto.DOUBLE]:
            self.fail(
                ErrorKind.UNSUPPORTED_DTYPE,
                f"Conv is implemented for floating point data only. c_type={x.c_type}",
            )
        self.params = self.resolve_params(ctx, x, w)
        if self.input_is_present(2):
            bias = self.register_input(ctx, 2, "B")
            if bias.rank != 1 or bias.shape[0] != self.params.out_channels:
                self.fail(
                    ErrorKind.INVALID_SHAPE,
                    f"Conv bias must be a 1D tensor with {self.params.out_channels} elements. shape={bias.shape}",
                )
            self.has_bias = True
        self.register_output(
            ctx,
            TensorIR(
                name=self.graph_node.outputs[0].name,
                dtype=x.dtype,
                shape=list(self.params.output_shape),
            ),
            "y",
        )

    def print_output_cell_init(self, ctx: Any, y_idx: str) -> str:
        if self.has_bias:
            return f"y{y_idx} = B[m];"
        return f"y{y_idx} = 0;"

    def print_output_cell_calc(self, ctx: Any, x_idx: str, w_idx: str, y_idx: str) -> str:
        return f"y{y_idx} += x{x_idx} * w{w_idx};"
