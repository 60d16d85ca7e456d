"""Scenario and task definition dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from rampforge.dsl.http_client import HttpClient


class AsyncScenarioMethod(Protocol):
    """Protocol for async scenario methods (tasks, setup, teardown).

    Matches unbound async methods with signature ``(self, client) -> None``.
    """

    @property
    def __name__(self) -> str:
        """Function name."""
        ...

    async def __call__(self, instance: object, client: object) -> None:
        """Call the method."""
        ...


@dataclass
class TaskDefinition:
    """One task of a scenario.

    Attributes:
        name: Human-readable name for this task.
        func: The unbound async method implementing this task.
        weight: Relative weight for weighted-random task selection.
    """

    name: str
    func: AsyncScenarioMethod
    weight: int = 1


@dataclass
class ScenarioDefinition:
    """Everything a virtual user needs to run a scripted request loop.

    Created by the ``@scenario`` class decorator, or by
    :func:`definition_from_function` for module-level entry functions.

    Attributes:
        name: Human-readable name for this scenario.
        cls: Class instantiated once per virtual user.
        base_url: Prefix for relative request paths.
        default_headers: Headers applied to every request.
        tasks: Weighted tasks; one is picked per iteration.
        setup_func: Optional coroutine run once per virtual user before
            its first iteration.
        teardown_func: Optional coroutine run once per virtual user when it
            exits, including after cancellation.
        think_time: Random pause range (min, max) in seconds between
            iterations.
    """

    name: str
    cls: type
    base_url: str = ""
    default_headers: dict[str, str] = field(default_factory=dict)
    tasks: list[TaskDefinition] = field(default_factory=list)
    setup_func: AsyncScenarioMethod | None = None
    teardown_func: AsyncScenarioMethod | None = None
    think_time: tuple[float, float] = (0.5, 1.5)

    @property
    def class_name(self) -> str:
        return self.cls.__name__


class _FunctionEntry:
    """Per-user instance placeholder for function-based scenarios."""


def definition_from_function(
    func: Callable[[HttpClient], Awaitable[None]],
) -> ScenarioDefinition:
    """Wrap a module-level ``async def fn(client)`` as a one-task scenario.

    The function runs back to back with no think time; it is expected to
    pause on its own (``await asyncio.sleep(1)``) if it wants to.

    Args:
        func: Coroutine function taking the virtual user's ``HttpClient``.

    Returns:
        A scenario definition named after the function.
    """

    async def _call(_instance: object, client: HttpClient) -> None:
        await func(client)

    _call.__name__ = func.__name__
    return ScenarioDefinition(
        name=func.__name__,
        cls=_FunctionEntry,
        tasks=[TaskDefinition(name=func.__name__, func=_call, weight=1)],  # type: ignore[arg-type]
        think_time=(0.0, 0.0),
    )
