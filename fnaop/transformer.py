r"""The weaving pipeline and the source-to-source host.

:func:`transform` runs the straight-line pipeline for one declaration:

    Directive + FunctionDef -> analyze -> allocate names -> bind -> synthesize

:func:`weave_source` applies it to every function of a module that carries a
directive decorator (``@aspect(...)`` by default) and returns the new module
text. Modules without directives come back unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import libcst as cst
from libcst.metadata import MetadataWrapper, PositionProvider

from .binder import CallPlan, bind
from .config import get_settings
from .directive import Directive, decorator_name, directive_from_decorator
from .naming import DEFAULT_PREFIX, InternalNames, allocate_names
from .signature import SignatureModel, analyze
from .synthesizer import synthesize
from .utils import AspectError, UnsupportedDeclarationShape

logger = logging.getLogger(__name__)

__all__ = ["WovenDeclaration", "weave_declaration", "transform", "weave_source"]


@dataclass(frozen=True)
class WovenDeclaration:
    """Everything the pipeline produced for one declaration."""

    node: cst.FunctionDef
    model: SignatureModel
    names: InternalNames
    before: Optional[CallPlan]
    after: Optional[CallPlan]


def weave_declaration(
    directive: Directive,
    declaration: cst.CSTNode,
    inline: bool = True,
    prefix: str = DEFAULT_PREFIX,
    context: Optional[Dict[str, Any]] = None,
) -> WovenDeclaration:
    """Run analyze, name allocation, binding and synthesis for one declaration."""
    model = analyze(declaration, context)
    names = allocate_names(model, directive, prefix)
    # only the definition-time host binds names.lookup
    before, after = bind(directive, model, names, resolve_shadowed=not inline)
    node = synthesize(model, before, after, names, inline=inline)
    return WovenDeclaration(node, model, names, before, after)


def transform(
    directive: Directive,
    declaration: cst.CSTNode,
    prefix: str = DEFAULT_PREFIX,
    directive_names: Optional[Iterable[str]] = None,
) -> cst.FunctionDef:
    """Pure ``(Directive, FunctionDef) -> FunctionDef`` transformation.

    The original body is carried inline, so the result is self-contained
    source. Decorators spelling a directive (``directive_names``, by default
    the ``FNAOP_DIRECTIVES`` setting) are dropped from the result so it is
    not woven again when executed.
    """
    if isinstance(declaration, cst.FunctionDef) and declaration.decorators:
        if directive_names is None:
            directive_names = get_settings().directive_names
        _, kept = _split_directives(declaration.decorators, directive_names)
        declaration = declaration.with_changes(decorators=kept)
    return weave_declaration(directive, declaration, inline=True, prefix=prefix).node


def _split_directives(
    decorators: Sequence[cst.Decorator], directive_names: Iterable[str]
) -> Tuple[List[int], List[cst.Decorator]]:
    wanted = set(directive_names)
    positions = [i for i, d in enumerate(decorators) if decorator_name(d) in wanted]
    kept = [d for i, d in enumerate(decorators) if i not in positions]
    return positions, kept


class _AspectWeaver(cst.CSTTransformer):
    METADATA_DEPENDENCIES = (PositionProvider,)

    def __init__(
        self, directive_names: Iterable[str], prefix: str, filename: Optional[str]
    ) -> None:
        super().__init__()
        self.directive_names = tuple(directive_names)
        self.prefix = prefix
        self.filename = filename
        self.scope: List[str] = []
        self.woven = 0

    def _context(self, node: cst.CSTNode) -> Dict[str, Any]:
        position = self.get_metadata(PositionProvider, node).start
        context: Dict[str, Any] = {
            "declaration": ".".join(self.scope),
            "line": position.line,
            "column": position.column + 1,
        }
        if self.filename is not None:
            context["filename"] = self.filename
        return context

    def visit_ClassDef(self, node: cst.ClassDef) -> None:
        self.scope.append(node.name.value)

    def leave_ClassDef(
        self, original_node: cst.ClassDef, updated_node: cst.ClassDef
    ) -> cst.ClassDef:
        self.scope.pop()
        return updated_node

    def visit_FunctionDef(self, node: cst.FunctionDef) -> None:
        self.scope.append(node.name.value)

    def leave_FunctionDef(
        self, original_node: cst.FunctionDef, updated_node: cst.FunctionDef
    ) -> cst.FunctionDef:
        try:
            return self._weave(original_node, updated_node)
        finally:
            self.scope.pop()

    def _weave(
        self, original_node: cst.FunctionDef, updated_node: cst.FunctionDef
    ) -> cst.FunctionDef:
        positions, kept = _split_directives(
            original_node.decorators, self.directive_names
        )
        if not positions:
            return updated_node

        innermost = len(original_node.decorators) - len(positions)
        if positions != list(range(innermost, len(original_node.decorators))):
            raise UnsupportedDeclarationShape(
                "Directive decorators must sit directly above 'def'",
                ["Move @aspect(...) below every other decorator"],
                self._context(original_node.decorators[positions[0]]),
            )

        # the innermost directive wraps the original body first
        node = updated_node.with_changes(decorators=kept)
        for index in reversed(positions):
            decorator = original_node.decorators[index]
            context = self._context(decorator)
            try:
                directive = directive_from_decorator(decorator, context)
                node = weave_declaration(
                    directive, node, inline=True, prefix=self.prefix, context=context
                ).node
            except AspectError as exc:
                raise exc.with_context(**context) from exc.__cause__
        self.woven += 1
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Wove %s with %d directive(s)", ".".join(self.scope), len(positions)
            )
        return node


def weave_source(
    source: str,
    directive_names: Optional[Iterable[str]] = None,
    prefix: Optional[str] = None,
    filename: Optional[str] = None,
) -> str:
    """Rewrite every directive-annotated function of a module.

    Args:
        source: Module source text.
        directive_names: Decorator spellings marking a directive; defaults to
            the ``FNAOP_DIRECTIVES`` setting.
        prefix: Internal identifier prefix; defaults to ``FNAOP_INTERNAL_PREFIX``.
        filename: Shown in error locations.

    Returns:
        The transformed module source.

    Raises:
        AspectError: On the first invalid directive or declaration, with the
            line and column of the offending node in its context.
    """
    if directive_names is None or prefix is None:
        settings = get_settings()
        if directive_names is None:
            directive_names = settings.directive_names
        if prefix is None:
            prefix = settings.internal_prefix

    try:
        module = cst.parse_module(source)
    except cst.ParserSyntaxError as exc:
        context: Dict[str, Any] = {"line": exc.raw_line, "column": exc.raw_column + 1}
        if filename is not None:
            context["filename"] = filename
        raise UnsupportedDeclarationShape(
            f"Source could not be parsed: {exc.message}",
            ["Fix the syntax error before weaving"],
            context,
        ) from exc

    weaver = _AspectWeaver(directive_names, prefix, filename)
    result = MetadataWrapper(module).visit(weaver)
    logger.info(
        "%s: wove %d declaration(s)", filename or "<source>", weaver.woven
    )
    return result.code
