from onnx2cgen.codegen.op_builders.shared import (
    SpatialFilter,
    print_loop_with_padding_checks,
)
from onnx2cgen.codegen.op_builders.conv import (
    Conv,
)
from onnx2cgen.codegen.op_builders.conv_integer import (
    ConvInteger,
)

__all__ = [
    "SpatialFilter",
    "print_loop_with_padding_checks",
    "Conv",
    "ConvInteger",
]
