from __future__ import annotations

import io
from typing import IO, Dict, List, Optional

import numpy as np

from onnx2cgen.codegen.dispatcher import print_node
from onnx2cgen.codegen.ir import ProgramIR, TensorIR
from onnx2cgen.codegen.lower_from_onnx import CodegenContext
from onnx2cgen.utils.common_functions import format_c_array_initializer
from onnx2cgen.utils.enums import ONNX_DTYPES_TO_NUMPY_DTYPES
from onnx2cgen.utils.logging import *

INCLUDES = [
    "<float.h>",
    "<math.h>",
    "<stdbool.h>",
    "<stdint.h>",
    "<string.h>",
]


def _unique_c_names(candidates: Dict[str, str]) -> Dict[str, str]:
    """Map each key to its candidate identifier, suffixing collisions with _<n>"""
    used: Dict[str, int] = {}
    unique: Dict[str, str] = {}
    for key, candidate in candidates.items():
        c_name = candidate
        while c_name in used:
            used[candidate] += 1
            c_name = f"{candidate}_{used[candidate]}"
        used.setdefault(c_name, 0)
        unique[key] = c_name
    return unique


def _write_banner(program_ir: ProgramIR, generator: str, dst: IO[str]) -> None:
    dst.write("/*\n")
    dst.write(f" * This file is computer generated by {generator}.\n")
    dst.write(f" * Program: {program_ir.name}\n")
    dst.write(f" * {program_ir.description}\n")
    dst.write(" */\n")
    for include in INCLUDES:
        dst.write(f"#include {include}\n")
    dst.write("\n")


def _initializer_values(tensor: TensorIR) -> np.ndarray:
    data = np.asarray(tensor.data)
    if data.ndim == 0:
        # scalars are declared as [1]
        data = data.reshape([1])
    np_dtype = ONNX_DTYPES_TO_NUMPY_DTYPES.get(tensor.dtype, None)
    if np_dtype is not None:
        data = data.astype(np_dtype)
    return data


def _write_tensors(
    program_ir: ProgramIR,
    tensor_c_names: Dict[str, str],
    dst: IO[str],
) -> None:
    initializers = [t for t in program_ir.tensors.values() if t.is_const]
    intermediates = [
        t for t in program_ir.tensors.values()
        if not t.is_const and not t.is_graph_input and not t.is_graph_output
    ]
    if initializers:
        dst.write("/* Initializers */\n")
    for tensor in initializers:
        declaration = tensor.c_declaration(tensor_c_names[tensor.name], is_const=True)
        values = format_c_array_initializer(_initializer_values(tensor), tensor.c_type)
        dst.write(f"static {declaration} = {values};\n")
    if initializers:
        dst.write("\n")

    if intermediates:
        dst.write("/* Intermediate tensors */\n")
    for tensor in intermediates:
        dst.write(f"static {tensor.c_declaration(tensor_c_names[tensor.name])};\n")
    if intermediates:
        dst.write("\n")


def _write_node_function(node, c_name: str, ctx: CodegenContext, dst: IO[str]) -> None:
    params = [
        tensor.c_declaration(local_name, is_const=is_input)
        for local_name, tensor, is_input in node.node_ir.bindings()
    ]
    dst.write(f"static void {c_name}( {', '.join(params)} )\n")
    dst.write("{\n")
    print_node(node, ctx, dst)
    dst.write("}\n\n")


def _write_entry(
    program_ir: ProgramIR,
    node_c_names: List[str],
    tensor_c_names: Dict[str, str],
    dst: IO[str],
) -> None:
    params = []
    for name in program_ir.inputs:
        tensor = program_ir.tensors[name]
        params.append(tensor.c_declaration(tensor_c_names[name], is_const=True))
    for name in program_ir.outputs:
        if name in program_ir.inputs:
            continue
        tensor = program_ir.tensors[name]
        params.append(tensor.c_declaration(tensor_c_names[name]))
    dst.write(f"void entry( {', '.join(params)} )\n")
    dst.write("{\n")
    for node, c_name in zip(program_ir.nodes, node_c_names):
        args = [tensor_c_names[tensor.name] for _, tensor, _ in node.node_ir.bindings()]
        dst.write(f"\t{c_name}( {', '.join(args)} );\n")
    dst.write("}\n")


def write_c_source(
    program_ir: ProgramIR,
    dst: Optional[IO[str]] = None,
    generator: str = "onnx2cgen",
) -> str:
    """Print the whole program as one C translation unit.

    Parameters
    ----------
    program_ir: ProgramIR
        Program returned by lower_onnx_to_program(). Every node must be resolved.\n
        Nodes are printed with program_ir.options, the options they were resolved with.

    dst: IO[str]
        Stream to print to. When omitted the source is collected in memory.

    generator: str
        Tool name and version written in the banner.

    Returns
    ----------
    c_source: str
        The generated source. Empty when dst is given.
    """
    ctx = CodegenContext(program_ir=program_ir)
    buffer = dst if dst is not None else io.StringIO()

    tensor_c_names = _unique_c_names(
        {name: tensor.c_name for name, tensor in program_ir.tensors.items()}
    )
    node_c_names = list(
        _unique_c_names(
            {idx: node.node_ir.c_name for idx, node in enumerate(program_ir.nodes)}
        ).values()
    )

    _write_banner(program_ir, generator, buffer)
    _write_tensors(program_ir, tensor_c_names, buffer)
    for node, c_name in zip(program_ir.nodes, node_c_names):
        _write_node_function(node, c_name, ctx, buffer)
    _write_entry(program_ir, node_c_names, tensor_c_names, buffer)

    info(
        f'{Color.GREEN}INFO:{Color.RESET} C source generated. ' +
        f'functions: {len(node_c_names) + 1}'
    )
    return buffer.getvalue() if dst is None else ""


def write_c_file(
    program_ir: ProgramIR,
    output_c_file_path: str,
    generator: str = "onnx2cgen",
) -> str:
    c_source = write_c_source(program_ir, generator=generator)
    with open(output_c_file_path, "w") as f:
        f.write(c_source)
    return c_source
