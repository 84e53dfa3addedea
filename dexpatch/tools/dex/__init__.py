"""
Dalvik bytecode, as read from and written to ``smali``.

.. doctest::

    >>> from dexpatch.tools.dex import Decoder
    >>> decoder = Decoder(code='''
    ... .method public static twice(I)I
    ...     .registers 2
    ...     mul-int/lit8 v0, p0, 0x2
    ...     return v0
    ... .end method
    ... ''', defining_class='Lcom/example/Math;')
    >>> [str(x) for x in decoder.methods[0].implementation.instructions]
    ['mul-int/lit8 v0, v1, 0x2', 'return v0']
"""

from .decode import Assembler, Decoder
from .instruction import Instruction, InstructionSequence
from .method import AccessFlags, ClassDef, Method, MethodImplementation
from .opcode import Format, Opcode, ReferenceType
from .reference import (
    FieldReference,
    MethodReference,
    RawReference,
    Reference,
    StringReference,
    TypeReference,
)

__all__ = (
    'AccessFlags',
    'Assembler',
    'ClassDef',
    'Decoder',
    'FieldReference',
    'Format',
    'Instruction',
    'InstructionSequence',
    'Method',
    'MethodImplementation',
    'MethodReference',
    'Opcode',
    'RawReference',
    'Reference',
    'ReferenceType',
    'StringReference',
    'TypeReference',
)
