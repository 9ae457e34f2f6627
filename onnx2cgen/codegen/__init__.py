from onnx2cgen.codegen.errors import (
    ErrorKind,
    NodeValidationError,
)
from onnx2cgen.codegen.lower_from_onnx import (
    CodegenContext,
    CodegenOptions,
    LoweringResult,
    lower_onnx_to_program,
)
from onnx2cgen.codegen.c_writer import (
    write_c_file,
    write_c_source,
)

__all__ = [
    "ErrorKind",
    "NodeValidationError",
    "CodegenContext",
    "CodegenOptions",
    "LoweringResult",
    "lower_onnx_to_program",
    "write_c_file",
    "write_c_source",
]
