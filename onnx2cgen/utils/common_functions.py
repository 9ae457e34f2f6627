import re
import math
import traceback
from functools import wraps
from typing import Any, List, Optional

import numpy as np
import onnx_graphsurgeon as gs

from onnx2cgen.utils.logging import *

AUTO_PAD_MODES = ['NOTSET', 'SAME_UPPER', 'SAME_LOWER', 'VALID']


def print_node_info(func):
    @wraps(func)
    def print_wrapper_func(*args, **kwargs):
        graph_node: gs.Node = kwargs.get('graph_node', None)
        ctx = kwargs.get('ctx', None)
        if graph_node is not None:
            info('')
            info(
                f'{Color.GREEN}INFO:{Color.RESET} {Color.MAGENTA}onnx_op_type{Color.RESET}: '+
                f'{graph_node.op} {Color.MAGENTA}onnx_op_name{Color.RESET}: {graph_node.name}')
            for idx, graph_node_input in enumerate(graph_node.inputs):
                info(
                    f'{Color.GREEN}INFO:{Color.RESET} '+
                    f'{Color.CYAN} input_name.{idx+1}{Color.RESET}: {graph_node_input.name} '+
                    f'{Color.CYAN}shape{Color.RESET}: {graph_node_input.shape} '+
                    f'{Color.CYAN}dtype{Color.RESET}: {graph_node_input.dtype}'
                )
        try:
            result = func(*args, **kwargs)
        except Exception:
            debug(traceback.format_exc())
            if graph_node is not None:
                error(f'onnx_op_name: {graph_node.name} onnx_op_type: {graph_node.op}')
            raise

        if graph_node is not None and ctx is not None:
            for local_name, tensor in getattr(result, 'outputs', {}).items():
                info(
                    f'{Color.GREEN}INFO:{Color.RESET} '+
                    f'{Color.BLUE} output.{local_name}{Color.RESET}: {tensor.name} '+
                    f'{Color.BLUE}shape{Color.RESET}: {tensor.shape} '+
                    f'{Color.BLUE}c_type{Color.RESET}: {tensor.c_type}'
                )
        return result
    return print_wrapper_func


def cify_name(name: str) -> str:
    """Turn an ONNX tensor or node name into something usable as a C identifier.

    Parameters
    ----------
    name: str
        ONNX name. May contain '/', ':', '.', '-' and other characters
        that are illegal in C identifiers.

    Returns
    ----------
    c_name: str
        Name containing only [A-Za-z0-9_]
    """
    c_name = re.sub(r'[^A-Za-z0-9_]', '_', str(name))
    if c_name == '':
        c_name = 'anonymous'
    return c_name


def decode_attr_string(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return value.decode('utf-8')
    return str(value)


def get_attr_ints(
    *,
    graph_node: gs.Node,
    attr_name: str,
    default: Optional[List[int]] = None,
) -> Optional[List[int]]:
    value = graph_node.attrs.get(attr_name, None)
    if value is None:
        return None if default is None else [int(v) for v in default]
    if isinstance(value, np.ndarray):
        value = value.tolist()
    if isinstance(value, (list, tuple)):
        return [int(v) for v in value]
    return [int(value)]


def _calc_pads_same(
    *,
    in_spatial_shape: List[int],
    kernel_shape: List[int],
    strides: List[int],
    dilations: List[int],
    padding: str,
) -> List[int]:
    """Calculates the SAME paddings that need to be added to the input.

    Parameters
    ----------
    in_spatial_shape:
        input spatial shape

    kernel_shape:
        the size of the kernel along each axis

    strides:
        stride along each spatial axis

    dilations:
        dilations value along each spatial axis

    padding:
        padding to calculate: SAME_UPPER or SAME_LOWER

    Returns
    ----------
    pads:
        b1, b2, ..., bn, e1, e2, ..., en\n
        where b1, b2, ..., bn define pads at the begging of axis
        and e1, e2, ..., en define pads at the end of axis
    """
    spatial_size = len(kernel_shape)
    pads = [0] * (spatial_size * 2)
    for i in range(spatial_size):
        in_size = in_spatial_shape[i]
        filter_size = (kernel_shape[i] - 1) * dilations[i] + 1

        out_size = int(math.ceil(in_size / strides[i]))
        pad_along_axis = max((out_size - 1) * strides[i] + filter_size - in_size, 0)
        if padding.upper() == 'SAME_LOWER':
            pad_begin = int(math.ceil(pad_along_axis / 2))
        else:
            pad_begin = int(math.floor(pad_along_axis / 2))
        pad_end = pad_along_axis - pad_begin

        pads[i] = pad_begin
        pads[i + spatial_size] = pad_end
    return pads


def calc_pads_conv(
    *,
    auto_pad: str,
    explicit_pads: Optional[List[int]],
    in_spatial_shape: List[int],
    kernel_shape: List[int],
    strides: List[int],
    dilations: List[int],
) -> List[int]:
    """Resolve the ONNX padding of a convolution-like node.

    auto_pad NOTSET uses the explicit pads (zeros when absent),
    VALID means no padding, SAME_UPPER / SAME_LOWER put the odd
    padding element at the end / the beginning of each axis.

    Returns
    ----------
    pads: List[int]
        ONNX ordered pads [x1_begin, x2_begin, ..., x1_end, x2_end, ...]
    """
    spatial_size = len(kernel_shape)
    auto_pad = decode_attr_string(auto_pad).upper()
    if auto_pad not in AUTO_PAD_MODES:
        raise ValueError(f'Invalid auto_pad attribute: {auto_pad}')

    if auto_pad == 'NOTSET':
        if explicit_pads is None:
            return [0, 0] * spatial_size
        if len(explicit_pads) != spatial_size * 2:
            raise ValueError(
                f'pads must have {spatial_size * 2} values. pads: {explicit_pads}'
            )
        return [int(v) for v in explicit_pads]
    elif auto_pad == 'VALID':
        return [0, 0] * spatial_size
    return _calc_pads_same(
        in_spatial_shape=in_spatial_shape,
        kernel_shape=kernel_shape,
        strides=strides,
        dilations=dilations,
        padding=auto_pad,
    )


def calc_output_spatial_shape(
    *,
    in_spatial_shape: List[int],
    kernel_shape: List[int],
    strides: List[int],
    dilations: List[int],
    pads: List[int],
) -> List[int]:
    spatial_size = len(kernel_shape)
    output_spatial_shape = []
    for i in range(spatial_size):
        filter_size = (kernel_shape[i] - 1) * dilations[i] + 1
        padded = in_spatial_shape[i] + pads[i] + pads[i + spatial_size]
        output_spatial_shape.append((padded - filter_size) // strides[i] + 1)
    return output_spatial_shape


def format_c_literal(value: Any, c_type: str) -> str:
    if c_type in ['float', 'double']:
        literal = repr(float(value))
        if literal in ['inf', '-inf', 'nan']:
            literal = {'inf': 'INFINITY', '-inf': '-INFINITY', 'nan': 'NAN'}[literal]
        elif c_type == 'float':
            literal += 'f'
        return literal
    if c_type == 'bool':
        return 'true' if bool(value) else 'false'
    return str(int(value))


def format_c_array_initializer(values: np.ndarray, c_type: str, indent: str = '') -> str:
    """Nested brace initializer that matches a C array declared with values.shape"""
    values = np.asarray(values)
    if values.ndim == 0:
        return format_c_literal(values.item(), c_type)
    if values.ndim == 1:
        return '{' + ', '.join(format_c_literal(v, c_type) for v in values.tolist()) + '}'
    inner = [
        format_c_array_initializer(sub, c_type, indent + '  ') for sub in values
    ]
    return '{\n' + ',\n'.join(indent + '  ' + s for s in inner) + '\n' + indent + '}'
