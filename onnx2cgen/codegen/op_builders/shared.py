from __future__ import annotations

from functools import partial
from typing import IO, Any, Callable, List, Optional

import onnx_graphsurgeon as gs

from onnx2cgen.codegen.errors import ErrorKind, NodeValidationError
from onnx2cgen.codegen.ir import ConvParams, NodeIR, TensorIR
from onnx2cgen.utils.common_functions import (
    calc_output_spatial_shape,
    calc_pads_conv,
    decode_attr_string,
    get_attr_ints,
)

INDT = "\t"

# Index expressions handed to the cell callbacks by the loop driver
X_IDX = "[b][c][ii0][ii1]"
W_IDX = "[m][c][k0][k1]"
Y_IDX = "[b][m][o0][o1]"


def _emit(lines: List[str], level: int, text: str) -> None:
    for line in text.splitlines():
        lines.append(INDT * level + line if line else "")


def _needs_bound_check(
    *,
    in_size: int,
    out_size: int,
    kernel: int,
    stride: int,
    dilation: int,
    pad_begin: int,
) -> bool:
    if pad_begin > 0:
        return True
    last_input_index = (out_size - 1) * stride - pad_begin + (kernel - 1) * dilation
    return last_input_index >= in_size


def print_loop_with_padding_checks(
    params: ConvParams,
    *,
    init: Callable[[str], str],
    calc: Callable[[str, str, str], str],
    finalize: Callable[[str], str],
) -> str:
    """Generate the loop nest shared by all 2D spatial filters.

    Parameters
    ----------
    params: ConvParams
        Resolved geometry of the filter.

    init: Callable[[str], str]
        Called with the output cell index, returns the code run once per
        output cell before any kernel position is visited.

    calc: Callable[[str, str, str], str]
        Called with the data, weight and output cell indices, returns the
        code run once per kernel position that falls inside the unpadded input.

    finalize: Callable[[str], str]
        Called with the output cell index, returns the code run once per
        output cell after the last kernel position.

    Returns
    ----------
    body: str
        C statements, indented for a function body.
    """
    batch = params.batch
    in_channels = params.in_channels
    in_h, in_w = params.in_spatial_shape
    out_channels = params.out_channels
    out_h, out_w = params.out_spatial_shape
    k_h, k_w = params.kernel_shape
    s_h, s_w = params.strides
    d_h, d_w = params.dilations
    pad_t, pad_l = params.pads_begin

    lines: List[str] = []
    _emit(lines, 1, "/* Loop over batches and output channels */")
    _emit(lines, 1, f"for( int32_t b=0; b<{batch}; b++ ) {{")
    _emit(lines, 1, f"for( int32_t m=0; m<{out_channels}; m++ ) {{")
    _emit(lines, 1, "/* Loop over output positions, i0 and i1 follow the input position of the window */")
    _emit(lines, 1, f"for( int32_t o0=0, i0={-pad_t}; o0<{out_h}; o0++, i0+={s_h} ) {{")
    _emit(lines, 1, f"for( int32_t o1=0, i1={-pad_l}; o1<{out_w}; o1++, i1+={s_w} ) {{")
    _emit(lines, 2, init(Y_IDX))
    _emit(lines, 2, f"for( int32_t c=0; c<{in_channels}; c++ ) {{")
    _emit(lines, 2, f"for( int32_t k0=0; k0<{k_h}; k0++ ) {{")
    _emit(lines, 2, f"for( int32_t k1=0; k1<{k_w}; k1++ ) {{")
    for axis, (in_size, out_size, kernel, stride, dilation, pad_begin) in enumerate(
        [
            (in_h, out_h, k_h, s_h, d_h, pad_t),
            (in_w, out_w, k_w, s_w, d_w, pad_l),
        ]
    ):
        offset = f"k{axis}" if dilation == 1 else f"k{axis}*{dilation}"
        _emit(lines, 3, f"int32_t ii{axis} = i{axis} + {offset};")
        if _needs_bound_check(
            in_size=in_size,
            out_size=out_size,
            kernel=kernel,
            stride=stride,
            dilation=dilation,
            pad_begin=pad_begin,
        ):
            _emit(lines, 3, f"if( ii{axis} < 0 || ii{axis} >= {in_size} ) continue;")
    _emit(lines, 3, calc(X_IDX, W_IDX, Y_IDX))
    _emit(lines, 2, "} /* k1 */")
    _emit(lines, 2, "} /* k0 */")
    _emit(lines, 2, "} /* c */")
    _emit(lines, 2, finalize(Y_IDX))
    _emit(lines, 1, "} /* o1 */")
    _emit(lines, 1, "} /* o0 */")
    _emit(lines, 1, "} /* m */")
    _emit(lines, 1, "} /* b */")
    return "\n".join(lines) + "\n"


class SpatialFilter:
    """Common part of the 2D convolution-like operators.

    Subclasses implement resolve() and the three output cell callbacks.
    """
    op_type: str = ""
    allow_dilations: bool = True

    def __init__(self, graph_node: gs.Node):
        self.graph_node = graph_node
        self.node_ir = NodeIR(
            name=graph_node.name if graph_node.name else graph_node.op,
            op_type=graph_node.op,
            attrs=dict(graph_node.attrs),
        )
        self.params: Optional[ConvParams] = None

    @property
    def name(self) -> str:
        return self.node_ir.name

    @property
    def outputs(self):
        return self.node_ir.outputs

    def fail(self, reason_code: ErrorKind, message: str):
        raise NodeValidationError(
            reason_code=reason_code,
            message=message,
            node_name=self.name,
            node_op=self.op_type or self.graph_node.op,
        )

    def input_is_present(self, index: int) -> bool:
        if index >= len(self.graph_node.inputs):
            return False
        return self.graph_node.inputs[index].name != ""

    def register_input(self, ctx: Any, index: int, local_name: str) -> TensorIR:
        graph_tensor = self.graph_node.inputs[index]
        try:
            tensor = ctx.ensure_tensor(graph_tensor)
        except (KeyError, ValueError) as ex:
            self.fail(ErrorKind.UNKNOWN_TENSOR, f"{local_name} input cannot be resolved: {ex}")
        self.node_ir.inputs[local_name] = tensor
        return tensor

    def register_output(self, ctx: Any, tensor: TensorIR, local_name: str) -> TensorIR:
        ctx.add_output_tensor(tensor)
        self.node_ir.outputs[local_name] = tensor
        return tensor

    def resolve_params(self, ctx: Any, x: TensorIR, w: TensorIR) -> ConvParams:
        if x.rank != 4:
            self.fail(
                ErrorKind.UNSUPPORTED_RANK,
                f"{self.op_type} is implemented for 2D images only. data rank={x.rank} shape={x.shape}",
            )
        if w.rank != 4:
            self.fail(
                ErrorKind.UNSUPPORTED_RANK,
                f"{self.op_type} weight rank must be 4. weight shape={w.shape}",
            )
        spatial_size = x.rank - 2
        strides = self.resolve_strides(spatial_size)
        dilations = self.resolve_dilations(spatial_size)
        kernel_shape = self.resolve_kernel_shape(w)
        pads = self.resolve_pads(x, kernel_shape, strides, dilations)

        group = int(self.graph_node.attrs.get("group", 1))
        if group != 1:
            self.fail(
                ErrorKind.UNSUPPORTED_GROUPING,
                f"{self.op_type} with group other than 1 is not implemented. group={group}",
            )
        if int(w.shape[1]) != int(x.shape[1]):
            self.fail(
                ErrorKind.INVALID_SHAPE,
                f"{self.op_type} weight input channels do not match data channels. "
                f"data shape={x.shape} weight shape={w.shape}",
            )

        output_spatial_shape = calc_output_spatial_shape(
            in_spatial_shape=x.shape[2:],
            kernel_shape=kernel_shape,
            strides=strides,
            dilations=dilations,
            pads=pads,
        )
        if any(d <= 0 for d in output_spatial_shape):
            self.fail(
                ErrorKind.INVALID_SHAPE,
                f"Resolved output spatial shape is empty. output_spatial_shape={output_spatial_shape} "
                f"input_shape={x.shape} kernel_shape={kernel_shape} pads={pads}",
            )
        return ConvParams(
            input_shape=tuple(int(d) for d in x.shape),
            kernel_shape=tuple(kernel_shape),
            strides=tuple(strides),
            dilations=tuple(dilations),
            pads=tuple(pads),
            group=group,
            output_shape=(int(x.shape[0]), int(w.shape[0]), *output_spatial_shape),
        )

    def resolve_strides(self, spatial_size: int) -> List[int]:
        strides = get_attr_ints(graph_node=self.graph_node, attr_name="strides", default=[1] * spatial_size)
        if len(strides) != spatial_size or any(s <= 0 for s in strides):
            self.fail(ErrorKind.UNSUPPORTED_ATTRIBUTE, f"Invalid strides: {strides}")
        return strides

    def resolve_dilations(self, spatial_size: int) -> List[int]:
        dilations = get_attr_ints(graph_node=self.graph_node, attr_name="dilations", default=[1] * spatial_size)
        if len(dilations) != spatial_size or any(d <= 0 for d in dilations):
            self.fail(ErrorKind.UNSUPPORTED_ATTRIBUTE, f"Invalid dilations: {dilations}")
        if not self.allow_dilations and any(d != 1 for d in dilations):
            self.fail(
                ErrorKind.UNSUPPORTED_DILATION,
                f"{self.op_type} with dilations other than 1 is not implemented. dilations={dilations}",
            )
        return dilations

    def resolve_kernel_shape(self, w: TensorIR) -> List[int]:
        kernel_shape = get_attr_ints(graph_node=self.graph_node, attr_name="kernel_shape")
        if kernel_shape is None:
            return [int(d) for d in w.shape[2:]]
        if len(kernel_shape) != 2 or any(k <= 0 for k in kernel_shape):
            self.fail(ErrorKind.UNSUPPORTED_ATTRIBUTE, f"Invalid kernel_shape: {kernel_shape}")
        if list(kernel_shape) != [int(d) for d in w.shape[2:]]:
            self.fail(
                ErrorKind.UNSUPPORTED_ATTRIBUTE,
                f"kernel_shape must match the weight spatial dims. "
                f"kernel_shape={kernel_shape} weight shape={w.shape}",
            )
        return kernel_shape

    def resolve_pads(
        self,
        x: TensorIR,
        kernel_shape: List[int],
        strides: List[int],
        dilations: List[int],
    ) -> List[int]:
        auto_pad = decode_attr_string(self.graph_node.attrs.get("auto_pad", "NOTSET"))
        try:
            pads = calc_pads_conv(
                auto_pad=auto_pad,
                explicit_pads=get_attr_ints(graph_node=self.graph_node, attr_name="pads"),
                in_spatial_shape=x.shape[2:],
                kernel_shape=kernel_shape,
                strides=strides,
                dilations=dilations,
            )
        except ValueError as ex:
            self.fail(ErrorKind.UNSUPPORTED_ATTRIBUTE, str(ex))
        if any(p < 0 for p in pads):
            self.fail(ErrorKind.UNSUPPORTED_ATTRIBUTE, f"Negative pads are not supported. pads={pads}")
        return pads

    def resolve(self, ctx: Any) -> None:
        raise NotImplementedError

    def print_output_cell_init(self, ctx: Any, y_idx: str) -> str:
        return ""

    def print_output_cell_calc(self, ctx: Any, x_idx: str, w_idx: str, y_idx: str) -> str:
        return ""

    def print_output_cell_finalize(self, ctx: Any, y_idx: str) -> str:
        return ""

    def header_info_lines(self, ctx: Any) -> List[str]:
        return []

    def print_header_info_comment(self, ctx: Any, dst: IO[str]) -> None:
        dst.write(f"{INDT}/*\n")
        dst.write(f"{INDT} * Operand:           {self.op_type}\n")
        dst.write(f"{INDT} * Name in ONNX file: {self.graph_node.name}\n")
        if self.params is not None:
            dst.write(f"{INDT} * kernel_shape: {list(self.params.kernel_shape)}\n")
            dst.write(f"{INDT} * strides:      {list(self.params.strides)}\n")
            dst.write(f"{INDT} * dilations:    {list(self.params.dilations)}\n")
            dst.write(f"{INDT} * pads:         {list(self.params.pads)}\n")
        for line in self.header_info_lines(ctx):
            dst.write(f"{INDT} * {line}\n")
        dst.write(f"{INDT} */\n")

    def print(self, ctx: Any, dst: IO[str]) -> None:
        if self.params is None:
            raise RuntimeError(f"resolve() must run before print(). node={self.name}")
        self.print_header_info_comment(ctx, dst)
        dst.write(
            print_loop_with_padding_checks(
                self.params,
                init=partial(self.print_output_cell_init, ctx),
                calc=partial(self.print_output_cell_calc, ctx),
                finalize=partial(self.print_output_cell_finalize, ctx),
            )
        )
