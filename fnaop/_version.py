"""Version and environment information for fnaop.

Usage:
    from fnaop import __version__, get_version_info

    print(__version__)  # "0.1.0"
    info = get_version_info()

CLI Usage:
    python -m fnaop --version
    python -m fnaop info
"""

from __future__ import annotations

import platform
import sys
from importlib import metadata
from typing import Any, Dict, Optional

VERSION_MAJOR = 0
VERSION_MINOR = 1
VERSION_PATCH = 0
VERSION_SUFFIX = ""  # e.g., "alpha", "beta", "rc1"

__version__ = f"{VERSION_MAJOR}.{VERSION_MINOR}.{VERSION_PATCH}{'-' + VERSION_SUFFIX if VERSION_SUFFIX else ''}"

# distribution names of the runtime dependencies
DEPENDENCIES = ("libcst", "pydantic", "typing_extensions")


def get_python_info() -> Dict[str, str]:
    """Python version, implementation, and executable."""
    return {
        "version": platform.python_version(),
        "implementation": platform.python_implementation(),
        "executable": sys.executable,
    }


def get_platform_info() -> Dict[str, str]:
    """OS name, release, and machine."""
    return {
        "system": platform.system(),
        "release": platform.release(),
        "machine": platform.machine(),
    }


def _distribution_version(name: str) -> Optional[str]:
    try:
        return metadata.version(name)
    except metadata.PackageNotFoundError:
        return None


def get_dependency_versions() -> Dict[str, Optional[str]]:
    """Installed versions of the runtime dependencies (None if missing)."""
    return {name: _distribution_version(name) for name in DEPENDENCIES}


def get_version_info() -> Dict[str, Any]:
    """Version, Python, platform, and dependency information.

    Example:
        >>> info = get_version_info()
        >>> info["fnaop"]
        '0.1.0'
    """
    return {
        "fnaop": __version__,
        "python": get_python_info(),
        "platform": get_platform_info(),
        "dependencies": get_dependency_versions(),
    }


def format_version_info(info: Optional[Dict[str, Any]] = None) -> str:
    """Format version info as aligned ``label : value`` lines for bug reports."""
    if info is None:
        info = get_version_info()

    sections = [
        ("Python", [(k.capitalize(), v) for k, v in info["python"].items()]),
        ("Platform", [(k.capitalize(), v) for k, v in info["platform"].items()]),
        (
            "Dependencies",
            [(k, v or "not installed") for k, v in info["dependencies"].items()],
        ),
    ]
    width = max(len(label) for _, rows in sections for label, _ in rows)

    lines = [f"fnaop: {info['fnaop']}"]
    for title, rows in sections:
        lines.append("")
        lines.append(f"{title}:")
        lines.extend(f"  {label:>{width}} : {value}" for label, value in rows)
    return "\n".join(lines)


def print_version_info() -> None:
    """Print :func:`format_version_info` to stdout."""
    print(format_version_info())
