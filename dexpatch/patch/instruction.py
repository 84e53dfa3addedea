"""
Matchers for a single :py:class:`dexpatch.tools.dex.instruction.Instruction`.

Matchers look at the structure of an instruction (its opcode, referenced symbol, operands)
rather than at its position, so that they keep working when unrelated instructions are
added to a method from one release of the target application to the next.

.. doctest::

    >>> from dexpatch.patch.instruction import OpcodeMatcher
    >>> from dexpatch.tools.dex import Instruction, Opcode
    >>> OpcodeMatcher(Opcode.MOVE_RESULT, Opcode.MOVE_RESULT_OBJECT).match(Instruction(opcode=Opcode.MOVE_RESULT_OBJECT, registers=(3,))).instruction.register_a
    3
"""

from __future__ import annotations

import abc
import dataclasses
import sys
import typing

import mypy_extensions
import regex

from dexpatch.tools.dex.instruction import Instruction
from dexpatch.tools.dex.opcode import Opcode

if sys.version_info >= (3, 12):
    from typing import override
else:
    from typing_extensions import override

Captures: typing.TypeAlias = dict[str, typing.Any]
"""Operand values captured by a matcher, by capture group name."""

@mypy_extensions.mypyc_attr(native_class=True)
@dataclasses.dataclass(frozen=True, slots=True)
class InstructionMatch:
    """
    A matched instruction, with the operand values captured along the way.
    """
    instruction: Instruction
    captured: Captures = dataclasses.field(default_factory=dict)

    @property
    def opcode(self) -> Opcode:
        return self.instruction.opcode

    def capture(self, **values: typing.Any) -> InstructionMatch:
        """
        Return a copy with `values` added to :py:attr:`captured`.
        """
        return InstructionMatch(instruction=self.instruction, captured={**self.captured, **values})

@mypy_extensions.mypyc_attr(allow_interpreted_subclasses=True)
class InstructionMatcher(abc.ABC):
    """
    Abstract base class for instruction matchers.
    """
    @abc.abstractmethod
    def match(self, inst: Instruction) -> InstructionMatch | None:
        """
        Check if the instruction matches.
        """

    def __call__(self, inst: Instruction) -> InstructionMatch | None:
        """
        Allow the matcher to be called as a function.
        """
        return self.match(inst)

class AnyMatcher(InstructionMatcher):
    """
    Match any instruction.
    """
    @override
    def match(self, inst: Instruction) -> InstructionMatch | None:
        return InstructionMatch(instruction=inst)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}()'

@mypy_extensions.mypyc_attr(allow_interpreted_subclasses=True)
class OpcodeMatcher(InstructionMatcher):
    """
    Match any of the :py:attr:`opcodes`.

    .. note::

        It is not decorated with :py:func:`dataclasses.dataclass` because of https://github.com/mypyc/mypyc/issues/1061.
    """
    __slots__ = ('opcodes',)

    def __init__(self, *opcodes: Opcode) -> None:
        if not opcodes:
            raise ValueError('At least one opcode is required.')
        self.opcodes: typing.Final[frozenset[Opcode]] = frozenset(opcodes)

    @override
    def match(self, inst: Instruction) -> InstructionMatch | None:
        return InstructionMatch(instruction=inst) if inst.opcode in self.opcodes else None

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({", ".join(sorted(opcode.value for opcode in self.opcodes))})'

@mypy_extensions.mypyc_attr(allow_interpreted_subclasses=True)
class PatternMatcher(InstructionMatcher):
    """
    Regex-based (or pattern) matching on the ``smali`` text of the instruction.

    Named groups that took part in the match are captured.

    >>> from dexpatch.patch.instruction import PatternMatcher
    >>> from dexpatch.tools.dex import Assembler
    >>> inst = Assembler().parse_instruction('iget-object v0, v1, Lcom/example/State;->player:Lcom/example/Player;')
    >>> PatternMatcher(r'iget-object v(?P<register>\\d+), .*->player:').match(inst).captured
    {'register': '0'}

    .. note::

        It is not decorated with :py:func:`dataclasses.dataclass` because of https://github.com/mypyc/mypyc/issues/1061.
    """
    __slots__ = ('pattern',)

    def __init__(self, pattern: str | regex.Pattern[str]) -> None:
        self.pattern: typing.Final[regex.Pattern[str]] = pattern if isinstance(pattern, regex.Pattern) else regex.compile(pattern)

    @override
    @typing.final
    def match(self, inst: Instruction) -> InstructionMatch | None:
        if (matched := self.pattern.match(inst.to_smali())) is not None:
            return InstructionMatch(
                instruction=inst,
                captured={key: value for key, value in matched.groupdict().items() if value is not None},
            )
        return None

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}(pattern={self.pattern})'
