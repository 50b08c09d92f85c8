r"""Definition-time weaving: the ``@aspect`` decorator.

Python runs decorators once, when the ``def`` statement executes, which is
the point where this host processes a declaration. The decorator reads the
function's source, runs the weaving pipeline, and compiles a new function
whose code object has the original parameter list. The synthesized body
calls the hooks and the original, already compiled function, so closures,
zero-argument ``super()`` and tracebacks into the original body are
untouched.

Example:
    >>> def log_call(x):
    ...     print("calling with", x)
    >>> @aspect(before="log_call")
    ... def double(x: int) -> int:
    ...     return 2 * x
"""

from __future__ import annotations

import builtins
import functools
import inspect
import linecache
import logging
import types
from typing import Any, Callable, Dict, Optional, TypeVar

import libcst as cst
from typing_extensions import ParamSpec

from .config import get_settings
from .directive import Directive, parse_directive
from .naming import DEFAULT_PREFIX
from .synthesizer import strip_header
from .transformer import WovenDeclaration, weave_declaration
from .utils import AspectError, UnsupportedDeclarationShape, get_func_name

logger = logging.getLogger(__name__)

__all__ = ["aspect", "weave_function"]

P = ParamSpec("P")
R = TypeVar("R")


def _reject_non_function(func: Any) -> None:
    if inspect.isfunction(func):
        return
    suggestions = ["Apply @aspect to a function defined with 'def' or 'async def'"]
    if isinstance(func, (classmethod, staticmethod, property)):
        suggestions = [
            f"Place @aspect below @{type(func).__name__} so it receives the plain function"
        ]
    raise UnsupportedDeclarationShape(
        f"{func!r} is not a function with a body",
        suggestions,
        {"declaration": getattr(func, "__qualname__", type(func).__name__)},
    )


def _parse_declaration(func: Callable[..., Any], context: Dict[str, Any]) -> cst.FunctionDef:
    try:
        source = inspect.getsource(func)
    except (OSError, TypeError) as exc:
        raise UnsupportedDeclarationShape(
            f"Source of {get_func_name(func, qualname=True)} is not available",
            ["Define the function in a module file, not in an interactive session"],
            context,
        ) from exc

    indented = source[:1].isspace()
    if indented:
        # methods and nested functions keep their indentation
        source = "if True:\n" + source
    try:
        module = cst.parse_module(source)
    except cst.ParserSyntaxError as exc:
        raise UnsupportedDeclarationShape(
            f"Source of {get_func_name(func, qualname=True)} could not be parsed",
            ["Apply @aspect to a 'def' statement"],
            context,
        ) from exc

    statement = module.body[0] if module.body else None
    if indented and isinstance(statement, cst.If):
        statement = statement.body.body[0] if statement.body.body else None
    if (
        not isinstance(statement, cst.FunctionDef)
        or statement.name.value != func.__code__.co_name
    ):
        if getattr(func, "__wrapped__", None) is not None:
            # inspect.getsource followed __wrapped__ to another function
            raise UnsupportedDeclarationShape(
                f"{get_func_name(func, qualname=True)} wraps another function; "
                "@aspect must sit directly above 'def'",
                ["Move @aspect below every decorator that wraps the function"],
                context,
            )
        raise UnsupportedDeclarationShape(
            f"{get_func_name(func, qualname=True)} is not declared with a 'def' statement",
            ["Lambdas and generated functions cannot be woven"],
            context,
        )
    return statement


def _global_lookup(namespace: Dict[str, Any]) -> Callable[[str], Any]:
    """Resolve a name in ``namespace``, then its builtins, when called."""

    def lookup(name: str) -> Any:
        if name in namespace:
            return namespace[name]
        builtin_names = namespace.get("__builtins__", builtins)
        if isinstance(builtin_names, types.ModuleType):
            builtin_names = vars(builtin_names)
        if name in builtin_names:
            return builtin_names[name]
        raise NameError(f"name {name!r} is not defined")

    return lookup


def _compile(
    func: Callable[..., Any], woven: WovenDeclaration, cells: Dict[str, Any]
) -> types.FunctionType:
    """Compile the synthesized declaration into a function over ``func``'s globals.

    The declaration is nested in a factory whose parameters are the names in
    ``cells``, which turns them into closure variables of the result.
    """
    names = woven.names
    factory = cst.FunctionDef(
        name=cst.Name(names.factory),
        params=cst.Parameters(params=[cst.Param(name=cst.Name(n)) for n in cells]),
        body=cst.IndentedBlock(
            body=[
                strip_header(woven.node),
                cst.SimpleStatementLine(
                    body=[cst.Return(value=cst.Name(woven.model.name))]
                ),
            ]
        ),
    )
    source = cst.Module(body=[factory]).code
    filename = f"<fnaop:{func.__module__}.{func.__qualname__}>"
    linecache.cache[filename] = (len(source), None, source.splitlines(True), filename)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Compiling %s:\n%s", filename, source)

    module_code = compile(source, filename, "exec", dont_inherit=True)
    factory_code = _find_code(module_code, names.factory)
    code = _find_code(factory_code, woven.model.name)

    closure = tuple(types.CellType(cells[name]) for name in code.co_freevars)
    return types.FunctionType(code, func.__globals__, func.__name__, None, closure)


def _find_code(parent: types.CodeType, name: str) -> types.CodeType:
    for const in parent.co_consts:
        if isinstance(const, types.CodeType) and const.co_name == name:
            return const
    raise LookupError(f"no code object named {name!r} in {parent.co_name!r}")


def _copy_metadata(woven: types.FunctionType, func: types.FunctionType) -> None:
    functools.update_wrapper(woven, func)
    woven.__defaults__ = func.__defaults__
    woven.__kwdefaults__ = (
        dict(func.__kwdefaults__) if func.__kwdefaults__ is not None else None
    )
    woven.__annotations__ = dict(func.__annotations__)
    if hasattr(func, "__type_params__"):
        woven.__type_params__ = func.__type_params__


def weave_function(
    func: Callable[P, R], directive: Directive, prefix: str = DEFAULT_PREFIX
) -> Callable[P, R]:
    """Weave ``directive`` into an already defined function.

    Args:
        func: A plain Python function whose source is available.
        directive: The hooks to wire in.
        prefix: Internal identifier prefix.

    Returns:
        A new function with the same signature and metadata.

    Raises:
        UnsupportedDeclarationShape: If ``func`` is not a ``def`` function
            with retrievable source, or is an async generator.
    """
    _reject_non_function(func)
    code = func.__code__
    context = {
        "declaration": func.__qualname__,
        "filename": code.co_filename,
        "line": code.co_firstlineno,
    }
    declaration = _parse_declaration(func, context)
    try:
        woven = weave_declaration(
            directive, declaration, inline=False, prefix=prefix, context=context
        )
    except AspectError as exc:
        raise exc.with_context(**context) from exc.__cause__

    cells: Dict[str, Any] = {
        woven.names.original: func,
        woven.names.lookup: _global_lookup(func.__globals__),
    }
    for slot, ref in directive.hooks():
        if ref.target is not None:
            cells[woven.names.hooks[slot]] = ref.target

    result = _compile(func, woven, cells)
    _copy_metadata(result, func)
    logger.debug("Wove %s.%s", func.__module__, func.__qualname__)
    return result


def aspect(
    *args: Any,
    before: Optional[Any] = None,
    after: Optional[Any] = None,
    **options: Any,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Wrap a function with a before hook and/or an after hook.

    Args:
        before: Hook called with the function's arguments before the body.
            A dotted name resolved in the function's module when called,
            or a callable.
        after: Hook called after the body with the same arguments plus, when
            the function has a non-``None`` return annotation, the body's
            result. Its own return value is ignored.

    Returns:
        A decorator producing the woven function.

    Raises:
        MissingHooks: If neither hook is given.
        UnrecognizedOption: For positional arguments or unknown keywords.
        InvalidHookReference: If a hook is neither a dotted name nor callable.
    """
    pairs = [(None, value) for value in args]
    pairs += [("before", before), ("after", after)]
    pairs += list(options.items())
    directive = parse_directive(pairs)
    settings = get_settings()

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        if settings.disable:
            logger.debug("Weaving disabled, returning %r unchanged", func)
            return func
        return weave_function(func, directive, prefix=settings.internal_prefix)

    return decorator
