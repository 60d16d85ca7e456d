"""Load script loading via importlib."""

from __future__ import annotations

import importlib.util
import inspect
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from rampforge._internal.errors import ConfigError, ScenarioError
from rampforge._internal.logging import get_logger
from rampforge.dsl.options import Options
from rampforge.dsl.scenario import ScenarioDefinition, definition_from_function

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import ModuleType

    from rampforge.dsl.http_client import HttpClient

logger = get_logger("dsl.loader")

# Entry point used when a scenario names no ``exec``.
DEFAULT_ENTRY = "default"


@dataclass
class LoadedScript:
    """Everything a load script declares.

    Attributes:
        path: Script file the declarations came from.
        options: The module-level ``options``, or None if the script has none.
        definitions: ``@scenario`` classes, by scenario name.
        functions: Module-level ``async def`` entry points, by name.
    """

    path: Path
    options: Options | None = None
    definitions: dict[str, ScenarioDefinition] = field(default_factory=dict)
    functions: dict[str, Callable[[HttpClient], Awaitable[None]]] = field(default_factory=dict)

    def resolve(self, exec_name: str | None = None) -> ScenarioDefinition:
        """Return the scenario definition a ``ScenarioConfig.exec`` refers to.

        Lookup order: a ``@scenario`` by name, then by class name, then a
        module-level coroutine function.  With no *exec_name*, the script's
        only ``@scenario`` is used, else a function called ``default``.

        Raises:
            ScenarioError: If nothing matches.
        """
        if exec_name is None:
            if len(self.definitions) == 1:
                return next(iter(self.definitions.values()))
            if DEFAULT_ENTRY in self.functions:
                return definition_from_function(self.functions[DEFAULT_ENTRY])
            if self.definitions:
                names = ", ".join(sorted(self.definitions))
                msg = (
                    f"{self.path} defines several scenarios ({names}); "
                    "set exec on each scenario config to pick one"
                )
            else:
                msg = (
                    f"{self.path} has no @scenario class and no "
                    f"'async def {DEFAULT_ENTRY}(client)' entry point"
                )
            raise ScenarioError(msg)

        definition = self.definitions.get(exec_name)
        if definition is not None:
            return definition
        for definition in self.definitions.values():
            if definition.class_name == exec_name:
                return definition
        func = self.functions.get(exec_name)
        if func is not None:
            return definition_from_function(func)

        msg = f"exec {exec_name!r} does not name a @scenario or an async function in {self.path}"
        raise ScenarioError(msg)


def _import_module(path: Path) -> ModuleType:
    if not path.exists():
        msg = f"Script file not found: {path}"
        raise ScenarioError(msg)

    if path.suffix != ".py":
        msg = f"Script file must be a .py file, got: {path}"
        raise ScenarioError(msg)

    module_name = f"rampforge_script_{path.stem}"

    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        msg = f"Could not create module spec for: {path}"
        raise ScenarioError(msg)

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module

    try:
        spec.loader.exec_module(module)
    except (ConfigError, ScenarioError):
        sys.modules.pop(module_name, None)
        raise
    except Exception as exc:
        sys.modules.pop(module_name, None)
        msg = f"Failed to import script {path}: {exc}"
        raise ScenarioError(msg) from exc

    return module


def load_script(file_path: str | Path) -> LoadedScript:
    """Import a load script and collect its declarations.

    Args:
        file_path: Path to the Python script.

    Returns:
        The script's options, ``@scenario`` definitions and entry functions.

    Raises:
        ScenarioError: If the file is missing, fails to import, declares two
            scenarios with the same name, or has no entry point at all.
        ConfigError: If ``options`` is invalid.
    """
    path = Path(file_path)
    module = _import_module(path)
    script = LoadedScript(path=path)

    for attr_name, obj in vars(module).items():
        if isinstance(obj, ScenarioDefinition):
            if obj.name in script.definitions:
                msg = f"Duplicate scenario name {obj.name!r} in {path}"
                raise ScenarioError(msg)
            script.definitions[obj.name] = obj
        elif (
            inspect.iscoroutinefunction(obj)
            and getattr(obj, "__module__", None) == module.__name__
            and not attr_name.startswith("_")
        ):
            script.functions[attr_name] = obj

    options = vars(module).get("options")
    if isinstance(options, dict):
        try:
            options = Options(**options)
        except TypeError as exc:
            msg = f"Invalid options in {path}: {exc}"
            raise ConfigError(msg) from None
    elif options is not None and not isinstance(options, Options):
        msg = f"'options' in {path} must be an Options instance or a dict"
        raise ConfigError(msg)
    script.options = options

    if not script.definitions and not script.functions:
        sys.modules.pop(module.__name__, None)
        msg = (
            f"No @scenario class or async entry function found in {path}. "
            "Decorate a class with @scenario or define 'async def default(client)'."
        )
        raise ScenarioError(msg)

    logger.debug(
        "Loaded %s: %d scenario class(es), %d entry function(s), options=%s",
        path,
        len(script.definitions),
        len(script.functions),
        "yes" if options is not None else "no",
    )
    return script

