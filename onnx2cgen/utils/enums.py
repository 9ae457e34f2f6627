import numpy as np
from onnx import TensorProto

ONNX_DTYPES_TO_C_TYPES = {
    TensorProto.FLOAT: 'float',
    TensorProto.DOUBLE: 'double',

    TensorProto.UINT8: 'uint8_t',
    TensorProto.UINT16: 'uint16_t',
    TensorProto.UINT32: 'uint32_t',
    TensorProto.UINT64: 'uint64_t',

    TensorProto.INT8: 'int8_t',
    TensorProto.INT16: 'int16_t',
    TensorProto.INT32: 'int32_t',
    TensorProto.INT64: 'int64_t',

    TensorProto.BOOL: 'bool',

    # TensorProto.FLOAT16
    # TensorProto.BFLOAT16
    # TensorProto.STRING
}

NUMPY_DTYPES_TO_ONNX_DTYPES = {
    np.dtype('float32'): TensorProto.FLOAT,
    np.dtype('float64'): TensorProto.DOUBLE,

    np.dtype('uint8'): TensorProto.UINT8,
    np.dtype('uint16'): TensorProto.UINT16,
    np.dtype('uint32'): TensorProto.UINT32,
    np.dtype('uint64'): TensorProto.UINT64,

    np.dtype('int8'): TensorProto.INT8,
    np.dtype('int16'): TensorProto.INT16,
    np.dtype('int32'): TensorProto.INT32,
    np.dtype('int64'): TensorProto.INT64,

    np.dtype('bool_'): TensorProto.BOOL,
}

ONNX_DTYPES_TO_NUMPY_DTYPES = {
    onnx_dtype: np_dtype for np_dtype, onnx_dtype in NUMPY_DTYPES_TO_ONNX_DTYPES.items()
}
