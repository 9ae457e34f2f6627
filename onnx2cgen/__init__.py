from onnx2cgen.onnx2cgen import convert, main

__version__ = '1.0.0'
