"""Environment handling for archive runs.

Secrets such as the database password usually live outside the config
file. They arrive either through a ``.env`` file loaded with python-dotenv
before the run, or as ``${VAR}`` placeholders inside config values::

    connection:
      password: ${ARCHIVER_DB_PASSWORD}

A placeholder whose variable is not set is a configuration error. It is
never passed on as literal text.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from dotenv import load_dotenv

from archiver.errors import ConfigValidationError

__all__ = ["expand_placeholders", "expand_section", "load_env_file"]

PLACEHOLDER_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def load_env_file(
    path: Optional[Union[str, Path]] = None,
    *,
    override: bool = False,
) -> bool:
    """Load ``ARCHIVER_*`` and other variables from a .env file.

    Variables already present in the environment win unless ``override``
    is set. Returns True if a file was found and loaded.
    """
    return load_dotenv(dotenv_path=path, override=override)


def expand_placeholders(value: str, field: str) -> str:
    """Replace every ``${VAR}`` in ``value`` with its environment value.

    Raises:
        ConfigValidationError: a referenced variable is not set
    """

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in os.environ:
            raise ConfigValidationError(
                f"Environment variable {name} referenced by {field} is not set",
                field=field,
                value=match.group(0),
            )
        return os.environ[name]

    return PLACEHOLDER_PATTERN.sub(replace, value)


def expand_section(section: str, values: Mapping[str, Any]) -> Dict[str, Any]:
    """Expand placeholders in the string values of one config section."""
    return {
        key: expand_placeholders(value, f"{section}.{key}") if isinstance(value, str) else value
        for key, value in values.items()
    }
