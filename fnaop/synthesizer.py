r"""Code synthesis of the woven declaration.

The synthesized ``def`` reuses the original header node for node (decorators,
``async``, name, type parameters, parameters, return annotation); only the
body is new:

.. code-block:: python

    def say_hello(x: int) -> int:
        def _fnaop_body(x):
            ...original body...
        before_fn(x)
        _fnaop_result = _fnaop_body(x)
        after_fn(x, _fnaop_result)
        return _fnaop_result

With ``inline=False`` no inner function is emitted and the body call targets
``names.original``, a binding the host supplies for the already compiled
function. Coroutines are awaited and generators delegated to with
``yield from``, so hooks run before the first suspension and after the last.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import libcst as cst

from .binder import CallPlan
from .naming import InternalNames
from .signature import SignatureModel

logger = logging.getLogger(__name__)

__all__ = ["synthesize", "bare_parameters", "strip_header"]


def _bare_param(param: cst.Param) -> cst.Param:
    return param.with_changes(
        annotation=None, default=None, equal=cst.MaybeSentinel.DEFAULT
    )


def _placeholder_param(param: cst.Param) -> cst.Param:
    if param.default is None:
        return param.with_changes(annotation=None)
    return param.with_changes(annotation=None, default=cst.Name("None"))


def _map_parameters(parameters: cst.Parameters, fn) -> cst.Parameters:
    star_arg = parameters.star_arg
    return parameters.with_changes(
        posonly_params=[fn(p) for p in parameters.posonly_params],
        params=[fn(p) for p in parameters.params],
        star_arg=fn(star_arg) if isinstance(star_arg, cst.Param) else star_arg,
        kwonly_params=[fn(p) for p in parameters.kwonly_params],
        star_kwarg=(
            fn(parameters.star_kwarg) if parameters.star_kwarg is not None else None
        ),
    )


def bare_parameters(parameters: cst.Parameters) -> cst.Parameters:
    """Same names and kinds, without annotations or defaults."""
    return _map_parameters(parameters, _bare_param)


def strip_header(declaration: cst.FunctionDef) -> cst.FunctionDef:
    """Drop decorators, annotations, type parameters, and default expressions.

    Defaults become ``None`` placeholders so the parameter kinds stay valid;
    hosts that compile the result restore the real values on the function
    object.
    """
    changes = dict(
        decorators=(),
        returns=None,
        params=_map_parameters(declaration.params, _placeholder_param),
    )
    if getattr(declaration, "type_parameters", None) is not None:
        changes["type_parameters"] = None
    return declaration.with_changes(**changes)


def _inner_def(model: SignatureModel, names: InternalNames) -> cst.FunctionDef:
    body = model.body
    if isinstance(body, cst.IndentedBlock):
        body = body.with_changes(header=cst.TrailingWhitespace())
    return cst.FunctionDef(
        name=cst.Name(names.body),
        params=bare_parameters(model.node.params),
        body=body,
        asynchronous=cst.Asynchronous() if model.is_async else None,
    )


def _body_value(model: SignatureModel, callee: str) -> cst.BaseExpression:
    call = cst.Call(func=cst.Name(callee), args=model.forwarding_args())
    if model.is_async:
        return cst.Await(expression=call)
    if model.is_generator:
        return cst.Yield(value=cst.From(item=call))
    return call


def synthesize(
    model: SignatureModel,
    before: Optional[CallPlan],
    after: Optional[CallPlan],
    names: InternalNames,
    inline: bool = True,
) -> cst.FunctionDef:
    """Assemble the woven declaration.

    Args:
        model: Signature of the original declaration.
        before: Plan for the before hook, if any.
        after: Plan for the after hook, if any.
        names: Internal identifiers for this declaration.
        inline: Carry the original body in an inner function. When False the
            body call targets ``names.original`` instead.

    Returns:
        The new ``FunctionDef``; its header equals the original header.
    """
    statements: List[cst.BaseStatement] = []
    if model.docstring is not None:
        statements.append(model.docstring)
    if inline:
        statements.append(_inner_def(model, names))
    if before is not None:
        statements.append(before.to_statement())
    callee = names.body if inline else names.original
    statements.append(
        cst.SimpleStatementLine(
            body=[
                cst.Assign(
                    targets=[cst.AssignTarget(target=cst.Name(names.result))],
                    value=_body_value(model, callee),
                )
            ]
        )
    )
    if after is not None:
        statements.append(after.to_statement())
    statements.append(
        cst.SimpleStatementLine(body=[cst.Return(value=cst.Name(names.result))])
    )

    header = (
        model.body.header
        if isinstance(model.body, cst.IndentedBlock)
        else cst.TrailingWhitespace()
    )
    woven = model.node.with_changes(
        decorators=model.decorators,
        body=cst.IndentedBlock(body=statements, header=header),
    )
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Synthesized %s:\n%s", model.name, cst.Module(body=()).code_for_node(woven)
        )
    return woven
