r"""Environment-driven settings for the transformer.

Settings are read from ``FNAOP_*`` environment variables each time
:func:`get_settings` is called; nothing is cached, so tests and the CLI can
change the environment between calls.

Variables:
    FNAOP_LOG_LEVEL: Level used by :func:`configure_logging` (default WARNING).
    FNAOP_INTERNAL_PREFIX: Prefix of synthesized identifiers (default ``_fnaop_``).
    FNAOP_DIRECTIVES: Comma-separated decorator names that mark a declaration
        for the source-to-source host (default ``aspect,fnaop.aspect``).
    FNAOP_DISABLE: When truthy, ``@aspect`` returns functions unchanged.
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

from .utils import is_dotted_name

logger = logging.getLogger(__name__)

__all__ = ["Settings", "get_settings", "configure_logging"]

_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Validated transformer settings.

    Attributes:
        log_level: Logging level name.
        internal_prefix: Prefix for identifiers the synthesizer introduces.
        directive_names: Decorator spellings recognized by ``weave_source``.
        disable: Skip weaving in the definition-time host.
    """

    model_config = ConfigDict(frozen=True)

    log_level: str = "WARNING"
    internal_prefix: str = "_fnaop_"
    directive_names: Tuple[str, ...] = ("aspect", "fnaop.aspect")
    disable: bool = False

    @field_validator("log_level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {value!r}")
        return level

    @field_validator("internal_prefix")
    @classmethod
    def _check_prefix(cls, value: str) -> str:
        if not value.isidentifier() or not value.startswith("_"):
            raise ValueError(
                f"internal prefix must be an identifier starting with '_', got {value!r}"
            )
        if value.startswith("__"):
            raise ValueError("internal prefix must not start with '__' (name mangling)")
        return value

    @field_validator("directive_names")
    @classmethod
    def _check_directives(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        if not value:
            raise ValueError("at least one directive name is required")
        bad = [name for name in value if not is_dotted_name(name)]
        if bad:
            raise ValueError(f"directive names must be dotted identifiers: {bad}")
        return value


def get_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from the environment.

    Args:
        environ: Mapping to read from; defaults to ``os.environ``.

    Returns:
        The validated settings.

    Raises:
        pydantic.ValidationError: If a variable holds an invalid value.
    """
    if environ is None:
        environ = os.environ
    values = {}
    if "FNAOP_LOG_LEVEL" in environ:
        values["log_level"] = environ["FNAOP_LOG_LEVEL"]
    if "FNAOP_INTERNAL_PREFIX" in environ:
        values["internal_prefix"] = environ["FNAOP_INTERNAL_PREFIX"]
    if "FNAOP_DIRECTIVES" in environ:
        values["directive_names"] = tuple(
            name.strip() for name in environ["FNAOP_DIRECTIVES"].split(",") if name.strip()
        )
    if "FNAOP_DISABLE" in environ:
        values["disable"] = environ["FNAOP_DISABLE"].strip().lower() in _TRUTHY
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Settings overrides from environment: %r", values)
    return Settings(**values)


def configure_logging(level: Optional[str] = None) -> None:
    """Install the package log format on the root logger.

    Args:
        level: Level name; defaults to ``FNAOP_LOG_LEVEL``.
    """
    if level is None:
        level = get_settings().log_level
    logging.basicConfig(
        level=level.upper(),
        format="[%(asctime)s] [%(levelname)-5s] [%(name)s:%(lineno)d] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
