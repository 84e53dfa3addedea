"""
Edit methods in place: insert instructions into a body, and replace access flags.

Registers are never renumbered. Only the positions of the instructions after the insertion point change,
so that any index computed before an insertion must be computed again afterwards.
"""

from __future__ import annotations

import logging
import typing

import typeguard

from dexpatch.patch.errors import MissingBodyError, OutOfBoundsError
from dexpatch.tools.dex.decode import Assembler
from dexpatch.tools.dex.instruction import Instruction
from dexpatch.tools.dex.method import AccessFlags, Method, MethodImplementation

def require_implementation(method: Method) -> MethodImplementation:
    """
    :raises MissingBodyError: If `method` has no implementation.
    """
    if method.implementation is None:
        raise MissingBodyError(method)
    return method.implementation

@typeguard.typechecked
def insert_at(method: Method, index: int, instructions: typing.Sequence[Instruction]) -> None:
    """
    Insert `instructions` into the body of `method`, so that the first of them ends up at `index`.

    Instructions previously at `index` or after are shifted by ``len(instructions)``.
    Inserting at ``len(body)`` appends.

    :raises MissingBodyError: If `method` has no implementation. The method is left untouched.
    :raises OutOfBoundsError: If `index` is not within ``[0, len(body)]``. The method is left untouched.
    """
    implementation = require_implementation(method)

    length = len(implementation.instructions)
    if not 0 <= index <= length:
        raise OutOfBoundsError(method, index, length)

    implementation.instructions.splice(index, instructions)

    logging.info(f'Inserted {len(instructions)} instruction(s) at index {index} of {method.reference}.')

def add_instructions(method: Method, index: int, smali: str) -> None:
    """
    Assemble `smali` with the register layout of `method`, so that ``pN`` registers refer to its parameters, and insert it at `index`.

    The text is assembled completely before anything is inserted.
    """
    require_implementation(method)
    insert_at(method, index, Assembler.for_method(method).assemble(smali))

@typeguard.typechecked
def set_access_flags(method: Method, flags: AccessFlags | int) -> None:
    """
    Replace the access flags of `method` with `flags`.

    No check is made that the combination of flags makes sense.
    """
    previous = method.access_flags
    method.access_flags = AccessFlags(flags)
    logging.info(f'Access flags of {method.reference} set from {previous.to_smali() or "none"!r} to {method.access_flags.to_smali() or "none"!r}.')
