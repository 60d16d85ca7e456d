"""Decorators for defining class-based scenarios in a load script."""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING

from rampforge._internal.errors import ScenarioError
from rampforge.dsl.scenario import (
    AsyncScenarioMethod,
    ScenarioDefinition,
    TaskDefinition,
)

if TYPE_CHECKING:
    from collections.abc import Callable

# Marker attribute names set on decorated methods.
_TASK_MARKER = "_rampforge_task"
_TASK_WEIGHT = "_rampforge_task_weight"
_TASK_NAME = "_rampforge_task_name"
_SETUP_MARKER = "_rampforge_setup"
_TEARDOWN_MARKER = "_rampforge_teardown"


def _require_coroutine(cls: type, attr_name: str, attr: object, role: str) -> None:
    if not inspect.iscoroutinefunction(attr):
        msg = f"{role} method {cls.__name__}.{attr_name} must be an async function"
        raise ScenarioError(msg)


def _validate_think_time(think_time: tuple[float, float]) -> None:
    low, high = think_time
    if low < 0 or high < low:
        msg = f"think_time must be (min, max) with 0 <= min <= max, got {think_time!r}"
        raise ScenarioError(msg)


def scenario(
    *,
    name: str | None = None,
    base_url: str = "",
    default_headers: dict[str, str] | None = None,
    think_time: tuple[float, float] = (0.5, 1.5),
) -> Callable[[type], ScenarioDefinition]:
    """Turn a class into a :class:`ScenarioDefinition`.

    The class is scanned for ``@task``, ``@setup`` and ``@teardown``
    methods.  The decorated name in the script module then refers to the
    definition, which the loader picks up and a ``ScenarioConfig.exec``
    can reference by *name* or by class name.

    Args:
        name: Scenario name.  Defaults to the class name.
        base_url: Prefix for relative request paths.
        default_headers: Headers applied to every request.
        think_time: Random pause range (min, max) in seconds between
            iterations.

    Returns:
        A class decorator producing a ScenarioDefinition.

    Raises:
        ScenarioError: If the class has no ``@task`` methods, a hook is not
            a coroutine function, a hook is declared twice, or *think_time*
            is not a valid range.
    """
    _validate_think_time(think_time)

    def decorator(cls: type) -> ScenarioDefinition:
        tasks: list[TaskDefinition] = []
        setup_func: AsyncScenarioMethod | None = None
        teardown_func: AsyncScenarioMethod | None = None

        for attr_name, attr in inspect.getmembers(cls, callable):
            if attr_name.startswith("__"):
                continue

            if getattr(attr, _TASK_MARKER, False):
                _require_coroutine(cls, attr_name, attr, "Task")
                tasks.append(
                    TaskDefinition(
                        name=getattr(attr, _TASK_NAME, attr_name),
                        func=attr,
                        weight=getattr(attr, _TASK_WEIGHT, 1),
                    )
                )

            if getattr(attr, _SETUP_MARKER, False):
                _require_coroutine(cls, attr_name, attr, "Setup")
                if setup_func is not None:
                    msg = f"Scenario {cls.__name__} has multiple @setup methods"
                    raise ScenarioError(msg)
                setup_func = attr

            if getattr(attr, _TEARDOWN_MARKER, False):
                _require_coroutine(cls, attr_name, attr, "Teardown")
                if teardown_func is not None:
                    msg = f"Scenario {cls.__name__} has multiple @teardown methods"
                    raise ScenarioError(msg)
                teardown_func = attr

        if not tasks:
            msg = f"Scenario {cls.__name__} has no @task methods. At least one @task is required."
            raise ScenarioError(msg)

        return ScenarioDefinition(
            name=name or cls.__name__,
            cls=cls,
            base_url=base_url,
            default_headers=dict(default_headers or {}),
            tasks=tasks,
            setup_func=setup_func,
            teardown_func=teardown_func,
            think_time=think_time,
        )

    return decorator


def task(
    *,
    weight: int = 1,
    name: str | None = None,
) -> Callable[[AsyncScenarioMethod], AsyncScenarioMethod]:
    """Mark a method as a scenario task.

    Each iteration of a virtual user runs one task, picked at random in
    proportion to *weight*.

    Args:
        weight: Relative selection weight. Must be >= 1.
        name: Task name for logs.  Defaults to the method name.

    Returns:
        A method decorator that tags the method with task metadata.

    Raises:
        ScenarioError: If weight is less than 1.
    """
    if weight < 1:
        msg = f"Task weight must be >= 1, got {weight}"
        raise ScenarioError(msg)

    def decorator(func: AsyncScenarioMethod) -> AsyncScenarioMethod:
        setattr(func, _TASK_MARKER, True)
        setattr(func, _TASK_WEIGHT, weight)
        setattr(func, _TASK_NAME, name or func.__name__)
        return func

    return decorator


def setup(func: AsyncScenarioMethod) -> AsyncScenarioMethod:
    """Mark a method as the per-user setup hook (runs before the first iteration)."""
    setattr(func, _SETUP_MARKER, True)
    return func


def teardown(func: AsyncScenarioMethod) -> AsyncScenarioMethod:
    """Mark a method as the per-user teardown hook (runs when the user exits)."""
    setattr(func, _TEARDOWN_MARKER, True)
    return func
