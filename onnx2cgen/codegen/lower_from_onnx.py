from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np
import onnx
import onnx_graphsurgeon as gs

from onnx2cgen.codegen.dispatcher import resolve_node
from onnx2cgen.codegen.errors import ErrorKind, NodeValidationError
from onnx2cgen.codegen.ir import CodegenOptions, ProgramIR, TensorIR
from onnx2cgen.utils.enums import NUMPY_DTYPES_TO_ONNX_DTYPES
from onnx2cgen.utils.logging import *


@dataclass
class LoweringResult:
    program: Optional[ProgramIR] = None
    error: Optional[NodeValidationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _graph_has_missing_shape_info(onnx_graph: onnx.ModelProto) -> bool:
    value_infos = (
        list(onnx_graph.graph.input)
        + list(onnx_graph.graph.value_info)
        + list(onnx_graph.graph.output)
    )
    for vi in value_infos:
        if not vi.type.HasField("tensor_type"):
            continue
        if not vi.type.tensor_type.HasField("shape"):
            return True
    return False


def _infer_shapes_with_fallback(onnx_graph: onnx.ModelProto) -> onnx.ModelProto:
    try:
        inferred_graph = onnx.shape_inference.infer_shapes(onnx_graph)
    except Exception as ex:
        warn(f'ONNX shape inference failed, the shapes stored in the model are used. {ex}')
        return onnx_graph
    if _graph_has_missing_shape_info(inferred_graph):
        warn('Some tensors have no shape information after shape inference.')
    return inferred_graph


def _onnx_dtype_of(dtype: Any) -> int:
    """gs tensors carry a numpy dtype, or an ONNX enum when numpy has no equivalent"""
    if dtype is None:
        raise ValueError("dtype is unknown")
    if isinstance(dtype, (int, np.integer)) and not isinstance(dtype, bool):
        return int(dtype)
    np_dtype = np.dtype(dtype)
    if np_dtype not in NUMPY_DTYPES_TO_ONNX_DTYPES:
        raise ValueError(f"dtype {np_dtype} has no C equivalent")
    return NUMPY_DTYPES_TO_ONNX_DTYPES[np_dtype]


def _static_shape_of(shape: Any, name: str) -> List[int]:
    if shape is None:
        raise ValueError(f"shape of {name} is unknown")
    static_shape = []
    for dim in shape:
        if not isinstance(dim, (int, np.integer)) or int(dim) < 0:
            raise ValueError(f"shape of {name} is dynamic: {list(shape)}")
        static_shape.append(int(dim))
    return static_shape


class CodegenContext:
    def __init__(
        self,
        program_ir: ProgramIR,
        options: Optional[CodegenOptions] = None,
        graph_output_names: Optional[List[str]] = None,
    ):
        self.program_ir = program_ir
        if options is not None:
            self.program_ir.options = options
        self.graph_output_names = set(graph_output_names) if graph_output_names is not None else set()

    @property
    def options(self) -> CodegenOptions:
        return self.program_ir.options

    def get_tensor(self, name: str) -> TensorIR:
        if name not in self.program_ir.tensors:
            raise KeyError(f"tensor {name} is not registered")
        return self.program_ir.tensors[name]

    def add_input_tensor(self, graph_tensor: gs.Variable) -> TensorIR:
        tensor = TensorIR(
            name=graph_tensor.name,
            dtype=_onnx_dtype_of(graph_tensor.dtype),
            shape=_static_shape_of(graph_tensor.shape, graph_tensor.name),
            is_graph_input=True,
            is_graph_output=graph_tensor.name in self.graph_output_names,
        )
        self.program_ir.tensors[tensor.name] = tensor
        self.program_ir.inputs.append(tensor.name)
        return tensor

    def ensure_tensor(self, graph_tensor: gs.Tensor) -> TensorIR:
        """Registry lookup. Constants are added on first use, variables
        must have been produced by a graph input or an earlier node."""
        name = graph_tensor.name
        if name == "":
            raise ValueError("Tensor name must not be empty.")
        if name in self.program_ir.tensors:
            return self.program_ir.tensors[name]
        if not isinstance(graph_tensor, gs.Constant):
            raise KeyError(f"tensor {name} is neither a graph input, an initializer nor a node output")

        values = graph_tensor.values
        if hasattr(values, "load"):
            values = values.load()
        data = np.asarray(values)
        tensor = TensorIR(
            name=name,
            dtype=_onnx_dtype_of(data.dtype),
            shape=list(data.shape),
            data=data,
        )
        self.program_ir.tensors[name] = tensor
        return tensor

    def add_output_tensor(self, tensor: TensorIR) -> TensorIR:
        existing = self.program_ir.tensors.get(tensor.name, None)
        if existing is not None and existing is not tensor:
            raise ValueError(f"tensor {tensor.name} is produced more than once")
        tensor.is_graph_output = tensor.name in self.graph_output_names
        self.program_ir.tensors[tensor.name] = tensor
        return tensor

    def add_node(self, node: Any) -> None:
        self.program_ir.nodes.append(node)


def lower_onnx_to_program(
    onnx_graph: onnx.ModelProto,
    output_file_name: str = "model",
    options: Optional[CodegenOptions] = None,
) -> LoweringResult:
    """Resolve every node of an ONNX model into the program IR.

    Parameters
    ----------
    onnx_graph: onnx.ModelProto
        Model to compile. All tensor shapes must be static.

    output_file_name: str
        Program name, shown in the banner of the generated file.

    options: CodegenOptions
        Code generation options. Defaults to CodegenOptions().

    Returns
    ----------
    result: LoweringResult
        program is set when every node was resolved.\n
        error holds the first failure otherwise.
    """
    options = options if options is not None else CodegenOptions()
    onnx_graph = _infer_shapes_with_fallback(onnx_graph)
    graph = gs.import_onnx(onnx_graph)
    graph.toposort()

    graph_output_names = [graph_output.name for graph_output in graph.outputs]
    program_ir = ProgramIR(
        name=output_file_name,
        description=f"onnx2cgen: {onnx_graph.producer_name}" if onnx_graph.producer_name else "onnx2cgen",
        options=options,
    )
    ctx = CodegenContext(
        program_ir=program_ir,
        graph_output_names=graph_output_names,
    )

    # Inputs
    for graph_input in graph.inputs:
        if isinstance(graph_input, gs.Constant):
            continue
        try:
            ctx.add_input_tensor(graph_input)
        except ValueError as ex:
            return LoweringResult(
                error=NodeValidationError(
                    reason_code=ErrorKind.INVALID_SHAPE,
                    message=str(ex),
                    node_name=graph_input.name,
                    node_op="Input",
                )
            )

    # Nodes
    for graph_node in graph.nodes:
        resolution = resolve_node(graph_node, ctx)
        if not resolution.ok:
            return LoweringResult(error=resolution.error)
        ctx.add_node(resolution.node)

    # Outputs
    for output_name in graph_output_names:
        if output_name not in program_ir.tensors:
            return LoweringResult(
                error=NodeValidationError(
                    reason_code=ErrorKind.UNKNOWN_TENSOR,
                    message=f"graph output {output_name} is not produced by any node",
                    node_name=output_name,
                    node_op="Output",
                )
            )
        program_ir.tensors[output_name].is_graph_output = True
        program_ir.outputs.append(output_name)

    info(
        f'{Color.GREEN}INFO:{Color.RESET} lowering complete. ' +
        f'nodes: {len(program_ir.nodes)} tensors: {len(program_ir.tensors)}'
    )
    return LoweringResult(program=program_ir)
