"""
Bytecode patching framework.

This package locates instructions and methods by their structure, and edits methods in place.

Key components:
- instruction, composite_impl, composite: matchers for instructions and sequences of instructions
- fingerprint: first-match search within a method body, and method selection among classes
- applier: insertion of instructions and replacement of access flags
- patch: patch definitions and the runner that applies them
"""

from .applier import add_instructions, insert_at, set_access_flags
from .errors import MissingBodyError, OutOfBoundsError, PatchError, PatternNotFoundError
from .fingerprint import Found, InstructionFingerprint, MethodFingerprint, MethodMatch, find
from .patch import (
    BytecodePatch,
    PatchContext,
    PatchReport,
    PatchResult,
    PatchRunner,
    PatchStatus,
    bytecode_patch,
)

__all__ = (
    'BytecodePatch',
    'Found',
    'InstructionFingerprint',
    'MethodFingerprint',
    'MethodMatch',
    'MissingBodyError',
    'OutOfBoundsError',
    'PatchContext',
    'PatchError',
    'PatchReport',
    'PatchResult',
    'PatchRunner',
    'PatchStatus',
    'PatternNotFoundError',
    'add_instructions',
    'bytecode_patch',
    'find',
    'insert_at',
    'set_access_flags',
)
