from ._version import __version__
from .decorator import aspect, weave_function
from .binder import CallPlan, bind
from .directive import Directive, HookRef, parse_directive
from .signature import Param, SignatureModel, analyze
from .synthesizer import synthesize
from .transformer import transform, weave_source
from .utils import (
    AspectError,
    DeclarationError,
    DirectiveError,
    DuplicateKey,
    GenericParameterConflict,
    InvalidHookReference,
    MissingHooks,
    ShadowedHookReference,
    UnrecognizedOption,
    UnsupportedDeclarationShape,
)

__all__ = [
    "aspect",
    "weave_function",
    "weave_source",
    "transform",
    "analyze",
    "bind",
    "synthesize",
    "parse_directive",
    "Directive",
    "HookRef",
    "Param",
    "SignatureModel",
    "CallPlan",
    "AspectError",
    "DirectiveError",
    "DeclarationError",
    "MissingHooks",
    "DuplicateKey",
    "UnrecognizedOption",
    "InvalidHookReference",
    "UnsupportedDeclarationShape",
    "GenericParameterConflict",
    "ShadowedHookReference",
    "__version__",
]
