r"""Signature analysis of annotated function declarations.

:func:`analyze` decomposes a ``libcst.FunctionDef`` into a
:class:`SignatureModel`: name, visibility, type parameters, the ordered
parameter list, the return annotation, the body, and whether the function
suspends (``async def``) or yields. Parameter order and type-parameter order
are kept exactly as written, because the regenerated header must match what
existing callers expect.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple

import libcst as cst

from .directive import decorator_name
from .utils import UnsupportedDeclarationShape

logger = logging.getLogger(__name__)

__all__ = ["Param", "SignatureModel", "analyze", "is_unit_annotation"]

ParamKind = inspect._ParameterKind

_OVERLOAD_NAMES = {"overload", "typing.overload", "typing_extensions.overload"}


@dataclass(frozen=True)
class Param:
    """One declared parameter.

    Attributes:
        name: The bound name.
        kind: The :class:`inspect.Parameter` kind of the parameter.
        annotation: The annotation node, if any.
        default: The default-value expression, if any.
        node: The original ``libcst.Param``.
    """

    name: str
    kind: ParamKind
    annotation: Optional[cst.Annotation]
    default: Optional[cst.BaseExpression]
    node: cst.Param

    @property
    def is_positional(self) -> bool:
        return self.kind in (
            ParamKind.POSITIONAL_ONLY,
            ParamKind.POSITIONAL_OR_KEYWORD,
            ParamKind.VAR_POSITIONAL,
        )

    def forward(self) -> cst.Arg:
        """Argument expression that re-passes this parameter unchanged."""
        value = cst.Name(self.name)
        if self.kind is ParamKind.VAR_POSITIONAL:
            return cst.Arg(value=value, star="*")
        if self.kind is ParamKind.VAR_KEYWORD:
            return cst.Arg(value=value, star="**")
        if self.kind is ParamKind.KEYWORD_ONLY:
            return cst.Arg(
                value=value,
                keyword=cst.Name(self.name),
                equal=cst.AssignEqual(
                    whitespace_before=cst.SimpleWhitespace(""),
                    whitespace_after=cst.SimpleWhitespace(""),
                ),
            )
        return cst.Arg(value=value)


@dataclass(frozen=True)
class SignatureModel:
    """Normalized view of one function declaration.

    The model is immutable and belongs to a single declaration.
    """

    name: str
    visibility: str
    generic_params: Tuple[Any, ...]
    params: Tuple[Param, ...]
    return_type: Optional[cst.Annotation]
    body: cst.BaseSuite
    is_async: bool
    is_generator: bool
    decorators: Tuple[cst.Decorator, ...]
    docstring: Optional[cst.SimpleStatementLine]
    reserved_names: FrozenSet[str]
    node: cst.FunctionDef = field(repr=False)

    @property
    def has_return_value(self) -> bool:
        """True when a non-``None`` return annotation is declared."""
        return self.return_type is not None and not is_unit_annotation(
            self.return_type
        )

    def forwarding_args(self) -> List[cst.Arg]:
        """Arguments re-passing every parameter, in declared order."""
        return [param.forward() for param in self.params]


def is_unit_annotation(annotation: cst.Annotation) -> bool:
    """True for ``-> None`` and ``-> "None"``."""
    expression = annotation.annotation
    if isinstance(expression, cst.Name):
        return expression.value == "None"
    if isinstance(expression, cst.SimpleString):
        return expression.evaluated_value == "None"
    return False


class _NameCollector(cst.CSTVisitor):
    def __init__(self) -> None:
        self.names: Set[str] = set()

    def visit_Name(self, node: cst.Name) -> None:
        self.names.add(node.value)


class _YieldFinder(cst.CSTVisitor):
    """Find ``yield`` in the function's own scope, skipping nested scopes."""

    def __init__(self) -> None:
        self.found = False

    def visit_Yield(self, node: cst.Yield) -> None:
        self.found = True

    def visit_FunctionDef(self, node: cst.FunctionDef) -> bool:
        return False

    def visit_Lambda(self, node: cst.Lambda) -> bool:
        return False

    def visit_ClassDef(self, node: cst.ClassDef) -> bool:
        return False


def _visibility(name: str) -> str:
    if name.startswith("__") and name.endswith("__"):
        return "public"
    if name.startswith("__"):
        return "mangled"
    if name.startswith("_"):
        return "private"
    return "public"


def _docstring(body: cst.BaseSuite) -> Optional[cst.SimpleStatementLine]:
    if not isinstance(body, cst.IndentedBlock) or not body.body:
        return None
    first = body.body[0]
    if (
        isinstance(first, cst.SimpleStatementLine)
        and len(first.body) == 1
        and isinstance(first.body[0], cst.Expr)
        and isinstance(first.body[0].value, (cst.SimpleString, cst.ConcatenatedString))
    ):
        return first
    return None


def _params(parameters: cst.Parameters) -> Tuple[Param, ...]:
    ordered: List[Tuple[cst.Param, ParamKind]] = []
    ordered.extend((p, ParamKind.POSITIONAL_ONLY) for p in parameters.posonly_params)
    ordered.extend((p, ParamKind.POSITIONAL_OR_KEYWORD) for p in parameters.params)
    if isinstance(parameters.star_arg, cst.Param):
        ordered.append((parameters.star_arg, ParamKind.VAR_POSITIONAL))
    ordered.extend((p, ParamKind.KEYWORD_ONLY) for p in parameters.kwonly_params)
    if parameters.star_kwarg is not None:
        ordered.append((parameters.star_kwarg, ParamKind.VAR_KEYWORD))
    return tuple(
        Param(
            name=node.name.value,
            kind=kind,
            annotation=node.annotation,
            default=node.default,
            node=node,
        )
        for node, kind in ordered
    )


def analyze(
    declaration: cst.CSTNode, context: Optional[Dict[str, Any]] = None
) -> SignatureModel:
    """Build the :class:`SignatureModel` of a function declaration.

    Args:
        declaration: The declaration node; must be a ``libcst.FunctionDef``.
        context: Extra error context (file name, location).

    Returns:
        The signature model.

    Raises:
        UnsupportedDeclarationShape: For anything other than a function with
            a body: classes, statements, ``@overload`` stubs, and async
            generators.
    """
    context = dict(context or {})
    if not isinstance(declaration, cst.FunctionDef):
        raise UnsupportedDeclarationShape(
            f"Only function declarations can be wrapped, got {type(declaration).__name__}",
            ["Apply the directive to a 'def' or 'async def' statement"],
            context,
        )

    name = declaration.name.value
    context.setdefault("declaration", name)
    decorators = tuple(declaration.decorators)

    if any(decorator_name(d) in _OVERLOAD_NAMES for d in decorators):
        raise UnsupportedDeclarationShape(
            f"'{name}' is an @overload declaration without an implementation body",
            ["Apply the directive to the implementation, not the overload stubs"],
            context,
        )

    finder = _YieldFinder()
    declaration.body.visit(finder)
    is_async = declaration.asynchronous is not None
    if is_async and finder.found:
        raise UnsupportedDeclarationShape(
            f"'{name}' is an async generator, which cannot delegate with 'yield from'",
            ["Wrap a coroutine or a plain generator instead"],
            context,
        )

    collector = _NameCollector()
    declaration.visit(collector)

    model = SignatureModel(
        name=name,
        visibility=_visibility(name),
        generic_params=tuple(_type_params(declaration)),
        params=_params(declaration.params),
        return_type=declaration.returns,
        body=declaration.body,
        is_async=is_async,
        is_generator=finder.found,
        decorators=decorators,
        docstring=_docstring(declaration.body),
        reserved_names=frozenset(collector.names),
        node=declaration,
    )
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Analyzed %s: %d param(s), %d type param(s), returns=%s, async=%s, generator=%s",
            name,
            len(model.params),
            len(model.generic_params),
            model.has_return_value,
            model.is_async,
            model.is_generator,
        )
    return model


def _type_params(declaration: cst.FunctionDef) -> Tuple[Any, ...]:
    # PEP 695 type parameters; older libcst releases have no such field
    type_parameters = getattr(declaration, "type_parameters", None)
    if type_parameters is None:
        return ()
    return tuple(type_parameters.params)
