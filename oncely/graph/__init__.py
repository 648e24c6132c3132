"""
Graph — request-scoped computation graphs over nodnod.

    from oncely import graph as G

    @G.node
    class EnsureNode:
        @classmethod
        async def __compose__(cls, spec_node: SpecNode) -> EnsureNode:
            ...

    node = await G.run(FinalResultNode).inject(spec)
"""

from nodnod import scalar_node as node

from oncely.graph._run import Run, run

__all__ = (
    "node",
    "run",
    "Run",
)
