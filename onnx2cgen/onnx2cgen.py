#! /usr/bin/env python

import os
import re
__path__ = (os.path.dirname(__file__), )
with open(os.path.join(__path__[0], '__init__.py')) as f:
    init_text = f.read()
    __version__ = re.search(r'__version__\s*=\s*[\'\"](.+?)[\'\"]', init_text).group(1)
import sys
import onnx
from typing import Optional
from argparse import ArgumentParser

from onnx2cgen.codegen.c_writer import write_c_source
from onnx2cgen.codegen.lower_from_onnx import (
    CodegenOptions,
    lower_onnx_to_program,
)
from onnx2cgen.utils.logging import *

TRUE_ENV_VALUES = ['1', 'true', 'yes', 'on']


def _quantize_from_env() -> bool:
    return os.environ.get('ONNX2CGEN_QUANTIZE', '0').strip().lower() in TRUE_ENV_VALUES


def convert(
    input_onnx_file_path: Optional[str] = '',
    onnx_graph: Optional[onnx.ModelProto] = None,
    output_c_file_path: Optional[str] = '',
    quantize: Optional[bool] = None,
    disable_file_save: Optional[bool] = False,
    non_verbose: Optional[bool] = False,
    verbosity: Optional[str] = 'debug',
) -> str:
    """Convert ONNX to a C source file.

    Parameters
    ----------
    input_onnx_file_path: Optional[str]
        Input onnx file path.\n
        Either input_onnx_file_path or onnx_graph must be specified.

    onnx_graph: Optional[onnx.ModelProto]
        onnx.ModelProto.\n
        Either input_onnx_file_path or onnx_graph must be specified.\n
        onnx_graph If specified, ignore input_onnx_file_path and process onnx_graph.

    output_c_file_path: Optional[str]
        Output C file path.\n
        Default: input file name with the extension replaced by ".c",\n
        "model.c" when only onnx_graph is given.

    quantize: Optional[bool]
        Generate int8 outputs for ConvInteger.\n
        The accumulator is divided by kernel_h * kernel_w * 16 and clamped to [-127, 127].\n
        Default: the ONNX2CGEN_QUANTIZE environment variable, False when unset.

    disable_file_save: Optional[bool]
        Does not write the C file. The generated source is only returned.

    non_verbose: Optional[bool]
        Shorthand to specify a verbosity of "error".\n
        Default: False

    verbosity: Optional[str]
        Change the level of information printed.\n
        Values are "debug", "info", "warn", and "error".\n
        Default: "debug" (for backwards compatability)

    Returns
    ----------
    c_source: str
        Generated C source
    """
    set_log_level('error' if non_verbose else verbosity)

    # Either designation required
    if not input_onnx_file_path and not onnx_graph:
        error(
            f'One of input_onnx_file_path or onnx_graph must be specified.'
        )
        sys.exit(1)

    # Input file existence check
    if not onnx_graph and not os.path.exists(input_onnx_file_path):
        error(
            f'The specified *.onnx file does not exist. ' +
            f'input_onnx_file_path: {input_onnx_file_path}'
        )
        sys.exit(1)

    if quantize is None:
        quantize = _quantize_from_env()

    # Output file name
    output_file_name = 'model'
    if input_onnx_file_path:
        output_file_name = os.path.splitext(
            os.path.basename(input_onnx_file_path)
        )[0]
    if not output_c_file_path:
        output_dir = os.path.dirname(input_onnx_file_path) if input_onnx_file_path and not onnx_graph else ''
        output_c_file_path = os.path.join(output_dir, f'{output_file_name}.c')

    if not onnx_graph:
        onnx_graph = onnx.load(input_onnx_file_path)

    result = lower_onnx_to_program(
        onnx_graph=onnx_graph,
        output_file_name=output_file_name,
        options=CodegenOptions(quantize=bool(quantize)),
    )
    if not result.ok:
        error(
            f'Code generation failed. {result.error}'
        )
        sys.exit(1)

    c_source = write_c_source(
        result.program,
        generator=f'onnx2cgen {__version__}',
    )

    if not disable_file_save:
        with open(output_c_file_path, 'w') as f:
            f.write(c_source)
        info(Color.GREEN(f'C source output complete!') + f' {output_c_file_path}')

    return c_source


def main():
    parser = ArgumentParser()
    iV_group = parser.add_mutually_exclusive_group(required=True)
    iV_group.add_argument(
        '-i',
        '--input_onnx_file_path',
        type=str,
        help='Input onnx file path.'
    )
    iV_group.add_argument(
        '-V',
        '--version',
        action='store_true',
        help='Show version and exit.'
    )
    parser.add_argument(
        '-o',
        '--output_c_file_path',
        type=str,
        help=\
            'Output C file path. \n' +
            'Default: input file name with the extension replaced by ".c"'
    )
    parser.add_argument(
        '-q',
        '--quantize',
        action='store_true',
        help=\
            'Generate int8 outputs for ConvInteger. \n' +
            'The accumulator is divided by kernel_h * kernel_w * 16 and clamped to [-127, 127]. \n' +
            'Can also be enabled with the ONNX2CGEN_QUANTIZE=1 environment variable.'
    )
    parser.add_argument(
        '-n',
        '--non_verbose',
        action='store_true',
        help=\
            'Shorthand to specify a verbosity of "error".'
    )
    parser.add_argument(
        '-v',
        '--verbosity',
        type=str,
        choices=['debug', 'info', 'warn', 'error'],
        default='debug',
        help=\
            'Change the level of information printed. ' +
            'Default: "debug" (for backwards compatability)'
    )
    args = parser.parse_args()

    # Print version
    if args.version:
        print(__version__)
        sys.exit(0)

    # Convert
    convert(
        input_onnx_file_path=args.input_onnx_file_path,
        output_c_file_path=args.output_c_file_path,
        quantize=True if args.quantize else None,
        non_verbose=args.non_verbose,
        verbosity=args.verbosity,
    )


if __name__ == '__main__':
    main()
