"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import textwrap
from typing import Any, Callable, Dict, List

import libcst as cst
import pytest

from fnaop import Directive, HookRef, parse_directive

# =============================================================================
# Fixtures: Source Helpers
# =============================================================================


@pytest.fixture
def parse_def() -> Callable[[str], cst.FunctionDef]:
    """Parse a source snippet and return its first function declaration."""

    def _parse(source: str) -> cst.FunctionDef:
        module = cst.parse_module(textwrap.dedent(source))
        node = module.body[0]
        assert isinstance(node, cst.FunctionDef)
        return node

    return _parse


@pytest.fixture
def code_for() -> Callable[[cst.CSTNode], str]:
    """Render a node back to source text."""

    def _code(node: cst.CSTNode) -> str:
        return cst.Module(body=()).code_for_node(node)

    return _code


@pytest.fixture
def both_hooks() -> Directive:
    return parse_directive([("before", "before_fn"), ("after", "after_fn")])


@pytest.fixture
def before_only() -> Directive:
    return Directive(before=HookRef(path="before_fn"))


@pytest.fixture
def after_only() -> Directive:
    return Directive(after=HookRef(path="after_fn"))


# =============================================================================
# Fixtures: Executing Woven Source
# =============================================================================


@pytest.fixture
def recorder() -> Dict[str, Any]:
    """Namespace whose hooks append ``(slot, args, kwargs)`` to ``calls``."""
    calls: List[Any] = []

    def before_fn(*args, **kwargs):
        calls.append(("before", args, kwargs))
        return "before-return"

    def after_fn(*args, **kwargs):
        calls.append(("after", args, kwargs))
        return "after-return"

    return {"calls": calls, "before_fn": before_fn, "after_fn": after_fn}


@pytest.fixture
def run_source(recorder) -> Callable[[str], Dict[str, Any]]:
    """Execute module source in a fresh namespace seeded with the recorder."""

    def _run(source: str) -> Dict[str, Any]:
        namespace = dict(recorder)
        exec(compile(source, "<woven>", "exec"), namespace)
        return namespace

    return _run
