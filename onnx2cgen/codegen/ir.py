from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from onnx2cgen.utils.common_functions import cify_name
from onnx2cgen.utils.enums import ONNX_DTYPES_TO_C_TYPES


@dataclass
class TensorIR:
    name: str
    dtype: int
    shape: List[int]
    data: Optional[np.ndarray] = None
    is_graph_input: bool = False
    is_graph_output: bool = False

    @property
    def is_const(self) -> bool:
        return self.data is not None

    @property
    def c_name(self) -> str:
        return f"tensor_{cify_name(self.name)}"

    @property
    def c_type(self) -> str:
        if self.dtype not in ONNX_DTYPES_TO_C_TYPES:
            raise NotImplementedError(f"Unsupported ONNX dtype for C output: dtype={self.dtype} tensor={self.name}")
        return ONNX_DTYPES_TO_C_TYPES[self.dtype]

    @property
    def rank(self) -> int:
        return len(self.shape)

    def dims_str(self) -> str:
        if len(self.shape) == 0:
            return "[1]"
        return "".join(f"[{int(d)}]" for d in self.shape)

    def c_declaration(self, name: str, is_const: bool = False) -> str:
        prefix = "const " if is_const else ""
        return f"{prefix}{self.c_type} {name}{self.dims_str()}"


@dataclass(frozen=True)
class ConvParams:
    input_shape: Tuple[int, int, int, int]
    kernel_shape: Tuple[int, int]
    strides: Tuple[int, int]
    dilations: Tuple[int, int]
    pads: Tuple[int, int, int, int]
    group: int
    output_shape: Tuple[int, int, int, int]

    @property
    def batch(self) -> int:
        return self.input_shape[0]

    @property
    def in_channels(self) -> int:
        return self.input_shape[1]

    @property
    def out_channels(self) -> int:
        return self.output_shape[1]

    @property
    def in_spatial_shape(self) -> Tuple[int, int]:
        return (self.input_shape[2], self.input_shape[3])

    @property
    def out_spatial_shape(self) -> Tuple[int, int]:
        return (self.output_shape[2], self.output_shape[3])

    @property
    def pads_begin(self) -> Tuple[int, int]:
        return (self.pads[0], self.pads[1])


@dataclass(frozen=True)
class ZeroPoints:
    # C expression subtracted from the data values, "0" when there is no x_zero_point
    data: str = "0"
    has_data_zero_point: bool = False


@dataclass
class NodeIR:
    name: str
    op_type: str
    inputs: Dict[str, TensorIR] = field(default_factory=dict)
    outputs: Dict[str, TensorIR] = field(default_factory=dict)
    attrs: Dict[str, Any] = field(default_factory=dict)

    @property
    def c_name(self) -> str:
        return f"node_{cify_name(self.name)}"

    def bindings(self) -> List[Tuple[str, TensorIR, bool]]:
        """(local name, tensor, is_input) in function parameter order"""
        bound = [(local_name, tensor, True) for local_name, tensor in self.inputs.items()]
        bound += [(local_name, tensor, False) for local_name, tensor in self.outputs.items()]
        return bound


@dataclass(frozen=True)
class CodegenOptions:
    quantize: bool = False


@dataclass
class ProgramIR:
    name: str
    description: str = "onnx2cgen"
    tensors: Dict[str, TensorIR] = field(default_factory=dict)
    nodes: List[Any] = field(default_factory=list)
    inputs: List[str] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)
    # nodes are resolved and printed with the same options
    options: CodegenOptions = field(default_factory=CodegenOptions)
