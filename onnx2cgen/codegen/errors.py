from __future__ import annotations

from enum import Enum
from typing import Any, Dict


class ErrorKind(str, Enum):
    UNSUPPORTED_RANK = "unsupported_rank"
    UNSUPPORTED_GROUPING = "unsupported_grouping"
    UNSUPPORTED_DILATION = "unsupported_dilation"
    UNSUPPORTED_WEIGHT_ZERO_POINT = "unsupported_weight_zero_point"
    UNSUPPORTED_OPERATOR = "unsupported_operator"
    UNSUPPORTED_ATTRIBUTE = "unsupported_attribute"
    UNSUPPORTED_DTYPE = "unsupported_dtype"
    INVALID_INPUT_COUNT = "invalid_input_count"
    INVALID_SHAPE = "invalid_shape"
    UNKNOWN_TENSOR = "unknown_tensor"

    def __str__(self) -> str:
        return self.value


class NodeValidationError(ValueError):
    def __init__(
        self,
        *,
        reason_code: ErrorKind,
        message: str,
        node_name: str,
        node_op: str,
    ) -> None:
        super().__init__(message)
        self.reason_code = ErrorKind(reason_code)
        self.node_name = str(node_name)
        self.node_op = str(node_op)
        self.message = str(message)

    def __str__(self) -> str:
        return f"{self.node_op} ({self.node_name}): [{self.reason_code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_name": self.node_name,
            "onnx_op": self.node_op,
            "reason_code": str(self.reason_code),
            "message": self.message,
        }
