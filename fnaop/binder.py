r"""Hook invocation binding.

Decides, per hook slot, the exact call to synthesize:

* the before hook receives every parameter, forwarded in declared order;
* the after hook receives the same arguments plus, when the declaration has
  a non-``None`` return annotation, the value produced by the original body
  as one extra positional argument. It goes after the forwarded positional
  arguments (after ``*args`` when present) and before keyword arguments.

Hook return values are never used: the caller always receives the value of
the original body.

A hook path whose first name is also a parameter would resolve to the
argument instead of the module-level hook. With ``resolve_shadowed`` the call
goes through ``names.lookup``, which reads the declaring module's globals at
call time; otherwise :class:`ShadowedHookReference` is raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import libcst as cst

from .directive import Directive, HookRef
from .naming import InternalNames
from .signature import SignatureModel
from .utils import ShadowedHookReference

logger = logging.getLogger(__name__)

__all__ = ["CallPlan", "bind"]


@dataclass(frozen=True)
class CallPlan:
    """The call synthesized for one hook slot."""

    slot: str
    hook: HookRef
    target: cst.BaseExpression
    args: Tuple[cst.Arg, ...]

    def to_call(self) -> cst.Call:
        return cst.Call(func=self.target, args=self.args)

    def to_statement(self) -> cst.SimpleStatementLine:
        """The call as a statement whose value is discarded."""
        return cst.SimpleStatementLine(body=[cst.Expr(value=self.to_call())])


def _target(
    slot: str,
    hook: HookRef,
    model: SignatureModel,
    names: InternalNames,
    resolve_shadowed: bool,
) -> cst.BaseExpression:
    if hook.target is not None:
        return cst.Name(names.hooks[slot])
    if not any(param.name == hook.head for param in model.params):
        return cst.parse_expression(hook.path)
    if not resolve_shadowed:
        raise ShadowedHookReference(
            f"Parameter '{hook.head}' hides the hook '{hook.path}'",
            [
                f"Rename the parameter '{hook.head}'",
                "Import the hook under another name and reference that",
            ],
            {"declaration": model.name, "option": slot},
        )
    rest = hook.path[len(hook.head):]
    return cst.parse_expression(f"{names.lookup}({hook.head!r}){rest}")


def _after_args(model: SignatureModel, names: InternalNames) -> List[cst.Arg]:
    args = model.forwarding_args()
    if not model.has_return_value:
        return args
    position = 0
    for index, param in enumerate(model.params):
        if param.is_positional:
            position = index + 1
    args.insert(position, cst.Arg(value=cst.Name(names.result)))
    return args


def bind(
    directive: Directive,
    model: SignatureModel,
    names: InternalNames,
    resolve_shadowed: bool = False,
) -> Tuple[Optional[CallPlan], Optional[CallPlan]]:
    """Produce the before and after call plans for a declaration.

    Args:
        directive: The hooks to call.
        model: Signature of the declaration.
        names: Internal identifiers for the declaration.
        resolve_shadowed: Route hook paths hidden by a parameter through
            ``names.lookup`` instead of rejecting them.

    Returns:
        ``(before_plan, after_plan)``; a plan is ``None`` when its hook is absent.
    """
    before_plan = after_plan = None
    if directive.before is not None:
        before_plan = CallPlan(
            slot="before",
            hook=directive.before,
            target=_target("before", directive.before, model, names, resolve_shadowed),
            args=tuple(model.forwarding_args()),
        )
    if directive.after is not None:
        after_plan = CallPlan(
            slot="after",
            hook=directive.after,
            target=_target("after", directive.after, model, names, resolve_shadowed),
            args=tuple(_after_args(model, names)),
        )
    if logger.isEnabledFor(logging.DEBUG):
        for plan in (before_plan, after_plan):
            if plan is not None:
                logger.debug(
                    "Bound %s hook of %s: %s",
                    plan.slot,
                    model.name,
                    cst.Module(body=()).code_for_node(plan.to_call()),
                )
    return before_plan, after_plan
