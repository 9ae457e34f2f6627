from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

from onnx2cgen.codegen.errors import ErrorKind, NodeValidationError
from onnx2cgen.codegen.op_builders import Conv, ConvInteger, SpatialFilter

__all__ = [
    "ErrorKind",
    "NodeValidationError",
    "ValidationSpec",
    "DispatchEntry",
    "get_dispatch_registry",
    "get_dispatch_entry",
    "get_supported_onnx_ops",
    "resolve_node_dispatch",
]


@dataclass(frozen=True)
class ValidationSpec:
    min_inputs: int = 0
    max_inputs: Optional[int] = None
    min_outputs: int = 1
    max_outputs: Optional[int] = 1


@dataclass(frozen=True)
class DispatchEntry:
    onnx_op: str
    variant: Type[SpatialFilter]
    validation: ValidationSpec = field(default_factory=ValidationSpec)


def _validate_counts(node: Any, spec: ValidationSpec) -> None:
    input_count = len(node.inputs)
    output_count = len(node.outputs)
    if input_count < int(spec.min_inputs):
        raise NodeValidationError(
            reason_code=ErrorKind.INVALID_INPUT_COUNT,
            message=f"input_count={input_count} is smaller than min_inputs={spec.min_inputs}",
            node_name=node.name,
            node_op=node.op,
        )
    if spec.max_inputs is not None and input_count > int(spec.max_inputs):
        raise NodeValidationError(
            reason_code=ErrorKind.INVALID_INPUT_COUNT,
            message=f"input_count={input_count} exceeds max_inputs={spec.max_inputs}",
            node_name=node.name,
            node_op=node.op,
        )
    if output_count < int(spec.min_outputs):
        raise NodeValidationError(
            reason_code=ErrorKind.INVALID_INPUT_COUNT,
            message=f"output_count={output_count} is smaller than min_outputs={spec.min_outputs}",
            node_name=node.name,
            node_op=node.op,
        )
    if spec.max_outputs is not None and output_count > int(spec.max_outputs):
        raise NodeValidationError(
            reason_code=ErrorKind.INVALID_INPUT_COUNT,
            message=f"output_count={output_count} exceeds max_outputs={spec.max_outputs}",
            node_name=node.name,
            node_op=node.op,
        )


_DISPATCH_REGISTRY: Dict[str, DispatchEntry] = {
    "Conv": DispatchEntry(
        onnx_op="Conv",
        variant=Conv,
        validation=ValidationSpec(min_inputs=2, max_inputs=3, min_outputs=1, max_outputs=1),
    ),
    # x_zero_point and w_zero_point are optional. A w_zero_point is
    # accepted here so that it is reported with its own reason code.
    "ConvInteger": DispatchEntry(
        onnx_op="ConvInteger",
        variant=ConvInteger,
        validation=ValidationSpec(min_inputs=2, max_inputs=4, min_outputs=1, max_outputs=1),
    ),
}


def get_dispatch_registry() -> Dict[str, DispatchEntry]:
    return dict(_DISPATCH_REGISTRY)


def get_dispatch_entry(onnx_op: str) -> Optional[DispatchEntry]:
    return _DISPATCH_REGISTRY.get(str(onnx_op))


def get_supported_onnx_ops() -> List[str]:
    return sorted(_DISPATCH_REGISTRY.keys())


def resolve_node_dispatch(node: Any) -> DispatchEntry:
    entry = get_dispatch_entry(node.op)
    if entry is None:
        raise NodeValidationError(
            reason_code=ErrorKind.UNSUPPORTED_OPERATOR,
            message=f"ONNX op is not supported by onnx2cgen: {node.op}. supported={get_supported_onnx_ops()}",
            node_name=node.name,
            node_op=node.op,
        )
    _validate_counts(node, entry.validation)
    return entry
