"""
Decoded Dalvik instructions and the ordered sequence that a method implementation owns.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import typing

import rich.table

from dexpatch.tools.dex.opcode import Format, Opcode, ReferenceType
from dexpatch.tools.dex.reference import (
    FieldReference,
    MethodReference,
    RawReference,
    Reference,
    StringReference,
    TypeReference,
)
from dexpatch.utils import rich_helpers

REFERENCE_CLASSES: typing.Final[dict[ReferenceType, tuple[type, ...]]] = {
    ReferenceType.STRING: (StringReference,),
    ReferenceType.TYPE: (TypeReference,),
    ReferenceType.FIELD: (FieldReference,),
    ReferenceType.METHOD: (MethodReference,),
    ReferenceType.CALL_SITE: (RawReference,),
    ReferenceType.METHOD_PROTO: (RawReference,),
    ReferenceType.METHOD_HANDLE: (RawReference,),
}

def format_register(register: int) -> str:
    return f'v{register}'

def format_literal(literal: int) -> str:
    return f'-{hex(-literal)}' if literal < 0 else hex(literal)

@dataclasses.dataclass(frozen=True, slots=True)
class Instruction: # pylint: disable=too-many-instance-attributes
    """
    One Dalvik instruction.

    Registers use the absolute ``v`` numbering of the method frame.
    For register ranges (*e.g.* ``invoke-static/range {v0 .. v2}``), :py:attr:`registers` holds every register of the range.

    :py:attr:`labels` are the labels that point at this instruction. They move with it when instructions are inserted before it.

    >>> from dexpatch.tools.dex.instruction import Instruction
    >>> from dexpatch.tools.dex.opcode import Opcode
    >>> Instruction(opcode=Opcode.MOVE_RESULT_OBJECT, registers=(3,)).to_smali()
    'move-result-object v3'
    """
    opcode: Opcode
    registers: tuple[int, ...] = ()
    reference: Reference | None = None
    literal: int | None = None
    target: str | None = None
    labels: tuple[str, ...] = ()
    payload: tuple[str, ...] = ()
    proto: str | None = None

    def __post_init__(self) -> None:
        fmt = self.opcode.format

        if any(register < 0 for register in self.registers):
            raise ValueError(f'Negative register in {self.registers} for {self.opcode}.')

        if (count := fmt.register_count) is not None and len(self.registers) != count:
            raise ValueError(f'{self.opcode} takes {count} register(s), got {len(self.registers)}.')

        if fmt.is_range and self.registers and self.registers != tuple(range(self.registers[0], self.registers[0] + len(self.registers))):
            raise ValueError(f'Registers {self.registers} of {self.opcode} are not a contiguous range.')

        if (rtype := self.opcode.reference_type) is not None:
            if not isinstance(self.reference, REFERENCE_CLASSES[rtype]):
                raise ValueError(f'{self.opcode} expects a {rtype} reference, got {self.reference!r}.')
        elif self.reference is not None:
            raise ValueError(f'{self.opcode} takes no reference.')

        if fmt.has_literal != (self.literal is not None):
            raise ValueError(f'Literal {self.literal!r} does not fit {self.opcode}.')

        if fmt.has_target != (self.target is not None):
            raise ValueError(f'Target {self.target!r} does not fit {self.opcode}.')

    @property
    def register_a(self) -> int:
        """
        The first register operand, *e.g.* the destination of ``move-result-object``.
        """
        match self.opcode.format:
            case Format.F10x | Format.F10t | Format.F20t | Format.F30t | Format.PAYLOAD:
                raise TypeError(f'{self.opcode} has no register operand.')
            case Format.F35c | Format.F3rc | Format.F45cc | Format.F4rcc:
                if not self.registers:
                    raise TypeError(f'{self.to_smali()!r} has an empty register list.')
                return self.registers[0]
            case _:
                return self.registers[0]

    @property
    def register_b(self) -> int:
        match self.opcode.format:
            case Format.F12x | Format.F22b | Format.F22c | Format.F22s | Format.F22t | Format.F22x | Format.F32x | Format.F23x:
                return self.registers[1]
            case Format.F35c | Format.F3rc | Format.F45cc | Format.F4rcc if len(self.registers) > 1:
                return self.registers[1]
            case _:
                raise TypeError(f'{self.opcode} has no second register operand.')

    @property
    def method_reference(self) -> MethodReference | None:
        return self.reference if isinstance(self.reference, MethodReference) else None

    @property
    def field_reference(self) -> FieldReference | None:
        return self.reference if isinstance(self.reference, FieldReference) else None

    def with_labels(self, labels: typing.Iterable[str]) -> Instruction:
        return dataclasses.replace(self, labels=tuple(labels))

    def operands(self) -> list[str]:
        """
        Operands as written in ``smali``.
        """
        operands: list[str] = []

        fmt = self.opcode.format
        if fmt.register_count is None:
            if fmt.is_range and self.registers:
                operands.append(f'{{{format_register(self.registers[0])} .. {format_register(self.registers[-1])}}}')
            else:
                operands.append('{' + ', '.join(format_register(r) for r in self.registers) + '}')
        else:
            operands.extend(format_register(r) for r in self.registers)

        if self.reference is not None:
            operands.append(str(self.reference))
        if self.proto is not None:
            operands.append(self.proto)
        if self.literal is not None:
            operands.append(format_literal(self.literal) + ('L' if self.opcode.value.startswith('const-wide') else ''))
        if self.target is not None:
            operands.append(f':{self.target}')
        return operands

    def to_smali(self) -> str:
        if self.opcode.is_payload:
            return '\n'.join(self.payload)
        if not (operands := self.operands()):
            return self.opcode.value
        return f'{self.opcode.value} {", ".join(operands)}'

    def __str__(self) -> str:
        return self.to_smali()

class InstructionSequence(collections.abc.Sequence, rich_helpers.TableMixin): # type: ignore[type-arg]
    """
    Ordered instructions of a method implementation.

    Inserting shifts every following instruction. Indices computed before an insertion are stale afterwards.
    """
    __slots__ = ('_instructions',)

    def __init__(self, instructions: typing.Iterable[Instruction] = ()) -> None:
        self._instructions: list[Instruction] = list(instructions)

    @typing.overload
    def __getitem__(self, index: int) -> Instruction: ...

    @typing.overload
    def __getitem__(self, index: slice) -> list[Instruction]: ...

    def __getitem__(self, index: int | slice) -> Instruction | list[Instruction]:
        return self._instructions[index]

    def __len__(self) -> int:
        return len(self._instructions)

    def get(self, index: int) -> Instruction | None:
        """
        Return the instruction at `index`, or :py:obj:`None` if `index` is out of bounds (negative indices included).
        """
        if 0 <= index < len(self._instructions):
            return self._instructions[index]
        return None

    def splice(self, index: int, block: typing.Sequence[Instruction]) -> None:
        """
        Insert `block` so that its first instruction ends up at `index`.
        """
        if not 0 <= index <= len(self._instructions):
            raise IndexError(index)
        self._instructions[index:index] = block

    def to_table(self) -> rich.table.Table:
        rt = rich.table.Table()
        rt.add_column('Index', justify='right')
        rt.add_column('Labels')
        rt.add_column('Instruction', overflow='fold')
        for index, instruction in enumerate(self._instructions):
            rt.add_row(str(index), ' '.join(f':{label}' for label in instruction.labels), rich_helpers.verbatim(instruction.to_smali()))
        return rt

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self._instructions!r})'
