"""
Thin user-facing factories for the matchers in :py:mod:`dexpatch.patch.composite_impl`.

The call-then-capture-result fingerprint of a getter reads::

    >>> from dexpatch.patch.composite import opcode_is
    >>> from dexpatch.tools.dex import Assembler, Opcode
    >>> matcher = opcode_is(Opcode.INVOKE_VIRTUAL).with_method_reference(name='getPlayer', parameters=()).followed_by(
    ...     opcode_is(Opcode.MOVE_RESULT_OBJECT).capture_register('register'),
    ... )
    >>> matcher(Assembler().assemble('''
    ...     invoke-virtual {v1}, Lcom/example/State;->getPlayer()Lcom/example/Player;
    ...     move-result-object v4
    ... '''))
    {'register': 4}
"""
from __future__ import annotations

import sys
import typing

from dexpatch.patch import composite_impl, instruction
from dexpatch.tools.dex.instruction import Instruction
from dexpatch.tools.dex.opcode import Opcode

if sys.version_info >= (3, 12):
    from typing import override
else:
    from typing_extensions import override

class Fluentizer(instruction.InstructionMatcher):
    """
    .. note::

        It is not decorated with :py:func:`dataclasses.dataclass` because of https://github.com/mypyc/mypyc/issues/1061.
    """
    __slots__ = ('matcher',)

    def __init__(self, matcher : instruction.InstructionMatcher) -> None:
        self.matcher : typing.Final[instruction.InstructionMatcher] = matcher

    def times(self, num : int) -> composite_impl.InSequenceAtMatcher | composite_impl.OrderedInSequenceMatcher:
        """
        Match :py:attr:`matcher` `num` times (consecutively).
        """
        if num < 1:
            raise ValueError(f'Cannot match {num} times.')
        if num == 1:
            return composite_impl.InSequenceAtMatcher(matcher = self.matcher)
        return composite_impl.OrderedInSequenceMatcher(matchers = (self.matcher,) * num)

    def one_or_more_times(self) -> composite_impl.OneOrMoreInSequenceMatcher:
        """
        Match :py:attr:`matcher` one or more times (consecutively).
        """
        return composite_impl.OneOrMoreInSequenceMatcher(matcher = self.matcher)

    def zero_or_more_times(self) -> composite_impl.ZeroOrMoreInSequenceMatcher:
        """
        Match :py:attr:`matcher` zero or more times (consecutively).
        """
        return composite_impl.ZeroOrMoreInSequenceMatcher(matcher = self.matcher)

    def with_method_reference(self, *,
        name : str | None = None,
        defining_class : str | None = None,
        parameters : typing.Iterable[str] | None = None,
        return_type : str | None = None,
    ) -> Fluentizer:
        """
        >>> from dexpatch.patch.composite import opcode_is
        >>> from dexpatch.tools.dex import Assembler, Opcode
        >>> matcher = opcode_is(Opcode.INVOKE_STATIC).with_method_reference(name='valueOf', return_type='Ljava/lang/Integer;')
        >>> matcher.match(Assembler().parse_instruction('invoke-static {v0}, Ljava/lang/Integer;->valueOf(I)Ljava/lang/Integer;')) is not None
        True
        >>> matcher.match(Assembler().parse_instruction('invoke-static {v0}, Ljava/lang/Long;->valueOf(J)Ljava/lang/Long;')) is None
        True
        """
        return Fluentizer(matcher = composite_impl.ReferenceValidator(
            self.matcher,
            name = name, defining_class = defining_class, parameters = parameters, return_type = return_type,
        ))

    def with_field_reference(self, *,
        name : str | None = None,
        defining_class : str | None = None,
        type : str | None = None, # pylint: disable=redefined-builtin
    ) -> Fluentizer:
        return Fluentizer(matcher = composite_impl.ReferenceValidator(
            self.matcher,
            name = name, defining_class = defining_class, type = type,
        ))

    def with_string(self, string : str) -> Fluentizer:
        return Fluentizer(matcher = composite_impl.ReferenceValidator(self.matcher, string = string))

    def with_type(self, descriptor : str) -> Fluentizer:
        return Fluentizer(matcher = composite_impl.ReferenceValidator(self.matcher, type = descriptor))

    def with_register(self, register : int, index : int = 0) -> Fluentizer:
        return Fluentizer(matcher = composite_impl.RegisterValidator(self.matcher, index = index, register = register))

    def capture_register(self, name : str, index : int = 0) -> Fluentizer:
        """
        Capture the register at `index` under `name`.
        """
        return Fluentizer(matcher = composite_impl.RegisterValidator(self.matcher, index = index, capture = name))

    def with_literal(self, literal : int) -> Fluentizer:
        return Fluentizer(matcher = composite_impl.LiteralValidator(self.matcher, literal = literal))

    def followed_by(self, then : instruction.InstructionMatcher, lookahead : int = 1) -> composite_impl.LookaheadMatcher:
        """
        Match :py:attr:`matcher`, and `then` on the instruction `lookahead` positions later.
        """
        return composite_impl.LookaheadMatcher(first = self.matcher, then = then, lookahead = lookahead)

    @override
    @typing.final
    def match(self, inst : Instruction) -> instruction.InstructionMatch | None:
        return self.matcher.match(inst)

    def __repr__(self) -> str:
        return repr(self.matcher)

def instruction_is(matcher : instruction.InstructionMatcher) -> Fluentizer:
    """
    Match the current instruction with `matcher`.
    """
    return Fluentizer(matcher)

def opcode_is(*opcodes : Opcode) -> Fluentizer:
    """
    Match the current instruction if its opcode is one of `opcodes`.

    >>> from dexpatch.patch.composite import opcode_is
    >>> from dexpatch.tools.dex import Instruction, Opcode
    >>> opcode_is(Opcode.RETURN_VOID).one_or_more_times().match((Instruction(opcode=Opcode.RETURN_VOID),)) is not None
    True
    """
    return Fluentizer(instruction.OpcodeMatcher(*opcodes))

def instructions_are(*matchers : instruction.InstructionMatcher | composite_impl.SequenceMatcher) -> composite_impl.OrderedInSequenceMatcher:
    """
    Match a sequence of instructions against `matchers`.
    """
    return composite_impl.OrderedInSequenceMatcher(matchers = matchers)

def instructions_contain(matcher : instruction.InstructionMatcher | composite_impl.SequenceMatcher) -> composite_impl.InSequenceMatcher:
    """
    Check that a sequence of instructions contains at least one instruction matching `matcher`.

    .. note::

        Stops on the first match.

    >>> from dexpatch.patch.composite import instructions_are, instructions_contain, opcode_is
    >>> from dexpatch.tools.dex import Assembler, Opcode
    >>> matcher = instructions_contain(instructions_are(
    ...     opcode_is(Opcode.CONST_4),
    ...     opcode_is(Opcode.RETURN),
    ... ))
    >>> [x.opcode.value for x in matcher.match(Assembler().assemble('''
    ...     nop
    ...     const/4 v0, 0x1
    ...     return v0
    ... '''))]
    ['const/4', 'return']
    >>> matcher.index
    1
    """
    return composite_impl.InSequenceMatcher(matcher)

def any_of(*matchers : instruction.InstructionMatcher | composite_impl.SequenceMatcher) -> composite_impl.AnyOfMatcher:
    """
    Match a sequence of instructions against any of the `matchers`.

    .. note::

        Returns the first match.
    """
    return composite_impl.AnyOfMatcher(*matchers)
