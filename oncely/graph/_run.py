"""
Graph runner: resolve one target node against request-scoped values.

    node = await run(FinalResultNode).inject(spec)

nodnod discovers every node the target depends on. Each run builds its own
agent and scope, so concurrent requests never see each other's nodes.
"""

from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass
from typing import Any, cast

from nodnod import EventLoopAgent, Node, Scope, Value


@dataclass(frozen=True, slots=True)
class Run[T]:
    """Awaitable resolution of `target`; build it up with inject()."""

    target: type[T]
    values: tuple[Value, ...] = ()

    def inject(self, value: object, *, as_type: type[Any] | None = None) -> Run[T]:
        """Provide a value, keyed by its runtime type unless as_type is given."""
        key = as_type if as_type is not None else type(value)
        return Run(self.target, (*self.values, Value(key, value)))

    def __await__(self) -> Generator[Any, None, T]:
        return self._resolve().__await__()

    async def _resolve(self) -> T:
        agent = EventLoopAgent.build({cast(type[Node[Any, Any]], self.target)})
        scope = Scope(detail=f"run:{self.target.__name__}")

        async with scope:
            for value in self.values:
                scope.push(value)
            await agent.run(scope, {})

            resolved = scope.get(self.target)
            if resolved is None:
                raise LookupError(f"{self.target.__name__} was not resolved")
            return cast(T, resolved.value)


def run[T](target: type[T]) -> Run[T]:
    return Run(target)


__all__ = ("Run", "run")
