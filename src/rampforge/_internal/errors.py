"""Custom exception hierarchy for RampForge."""

from __future__ import annotations


class RampForgeError(Exception):
    """Base exception for all RampForge errors.

    Catch this to handle any RampForge-specific failure with a single
    except clause.
    """


class ScenarioError(RampForgeError):
    """Raised when a load script or scenario definition is invalid.

    Examples:
        - A class decorated with @scenario has no @task methods.
        - A scenario's ``exec`` entry cannot be resolved in the script.
        - A script file cannot be loaded or parsed.
    """


class ConfigError(RampForgeError):
    """Raised when configuration is invalid or missing.

    Raised at startup, before any traffic is generated.

    Examples:
        - A stage has a negative target or a non-positive duration.
        - A threshold expression cannot be parsed.
        - An environment variable has an invalid value.
    """


class EngineError(RampForgeError):
    """Raised when a load test run fails for reasons other than configuration."""
