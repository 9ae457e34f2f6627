from __future__ import annotations

import io
from dataclasses import dataclass
from typing import IO, Any, Optional

import onnx_graphsurgeon as gs

from onnx2cgen.codegen.errors import NodeValidationError
from onnx2cgen.codegen.op_builders import SpatialFilter
from onnx2cgen.codegen.op_registry import DispatchEntry, resolve_node_dispatch
from onnx2cgen.utils.common_functions import print_node_info


@dataclass(frozen=True)
class DispatchResolution:
    entry: Optional[DispatchEntry] = None
    node: Optional[SpatialFilter] = None
    error: Optional[NodeValidationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@print_node_info
def _resolve_variant(
    *,
    graph_node: gs.Node,
    ctx: Any,
    entry: DispatchEntry,
) -> SpatialFilter:
    node = entry.variant(graph_node)
    node.resolve(ctx)
    return node


def resolve_node(graph_node: gs.Node, ctx: Any) -> DispatchResolution:
    """Resolve one graph node into its operator variant.

    Parameters
    ----------
    graph_node: gs.Node
        graph_surgeon Node

    ctx: CodegenContext
        Tensor registry and code generation options

    Returns
    ----------
    resolution: DispatchResolution
        Either the resolved node or the error that stops the compilation.
    """
    try:
        entry = resolve_node_dispatch(graph_node)
        node = _resolve_variant(
            graph_node=graph_node,
            ctx=ctx,
            entry=entry,
        )
    except NodeValidationError as ex:
        return DispatchResolution(error=ex)
    return DispatchResolution(entry=entry, node=node)


def print_node(node: SpatialFilter, ctx: Any, dst: Optional[IO[str]] = None) -> str:
    buffer = dst if dst is not None else io.StringIO()
    node.print(ctx, buffer)
    return buffer.getvalue() if dst is None else ""
