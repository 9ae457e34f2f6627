
from setuptools import setup, find_packages
from os import path
import re

package_name="onnx2cgen"
root_dir = path.abspath(path.dirname(__file__))

with open(path.join(root_dir, "README.md")) as f:
    long_description = f.read()

with open(path.join(root_dir, package_name, '__init__.py')) as f:
    init_text = f.read()
    version = re.search(r'__version__\s*=\s*[\'\"](.+?)[\'\"]', init_text).group(1)

setup(
    name=package_name,
    version=version,
    description=\
        "Generate dependency free C source from ONNX convolution models. "+
        "Supports Conv and ConvInteger with an optional int8 quantized output.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="MIT License",
    packages=find_packages(exclude=["tests", "tests.*"]),
    platforms=["linux", "unix"],
    python_requires=">=3.8",
    install_requires=[
        "numpy",
        "onnx",
        "onnx_graphsurgeon",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        'console_scripts': [
            "onnx2cgen=onnx2cgen:main"
        ]
    }
)
