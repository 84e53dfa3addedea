"""
Ensure that the distributed package supports user extensions.

``mypyc`` compilation can inadvertently seal classes, preventing inheritance.
This module verifies that :py:mod:`dexpatch` extension points (*e.g.*,
:py:class:`dexpatch.patch.instruction.InstructionMatcher`) remain
subclassable after compilation, so that patches can bring their own matchers.
"""

import inspect
import logging
import sys
import typing

import pytest
import regex

from dexpatch.patch.composite   import instruction_is
from dexpatch.patch.instruction import AnyMatcher, InstructionMatch, InstructionMatcher, PatternMatcher
from dexpatch.tools.dex         import Instruction, Opcode

if sys.version_info >= (3, 12):
    from typing import override
else:
    from typing_extensions import override

class NewInstructionMatcher(InstructionMatcher):
    """
    Faking a matcher for some unforeseen use case.
    """
    @override
    def match(self, inst: Instruction) -> InstructionMatch | None:
        if (matched := regex.match(r'(?P<mnemonic>[a-z]+)', inst.to_smali())) is not None:
            return InstructionMatch(instruction = inst, captured = matched.groupdict())
        return None

class NewPatternMatcher(PatternMatcher):
    """
    Faking a matcher for some unforeseen use case.
    """
    def __init__(self):
        super().__init__(pattern = r'(?P<mnemonic>nop|return-void|move-result-object).*')

class CannotBeExtended(AnyMatcher):
    """
    :py:class:`dexpatch.patch.instruction.AnyMatcher` was not marked as extensible.
    """

class TestInspect:
    """
    Use :py:mod:`inspect` to retrieve the provenance of objects.
    """
    def test_Instruction(self) -> None:
        logging.info(inspect.getfile(Instruction))

    def test_InstructionMatcher(self) -> None:
        logging.info(inspect.getfile(InstructionMatch))
        logging.info(inspect.getfile(InstructionMatcher))

class TestInstructionMatching:
    """
    Match instructions with :py:class:`NewInstructionMatcher` and :py:class:`NewPatternMatcher`.
    """
    INSTRUCTIONS: typing.Final[tuple[Instruction, ...]] = (
        Instruction(opcode = Opcode.NOP),
        Instruction(opcode = Opcode.MOVE_RESULT_OBJECT, registers = (3,)),
        Instruction(opcode = Opcode.RETURN_VOID),
    )

    def test_NewInstructionMatcher(self) -> None:
        result = instruction_is(matcher = NewInstructionMatcher()).times(3).match(instructions = self.INSTRUCTIONS)

        assert result is not None

        assert len(result) == 3
        assert [x.captured['mnemonic'] for x in result] == ['nop', 'move', 'return']

    def test_NewPatternMatcher(self) -> None:
        result = instruction_is(matcher = NewPatternMatcher()).times(3).match(instructions = self.INSTRUCTIONS)

        assert result is not None

        assert len(result) == 3

class TestCannotBeExtended:
    @pytest.mark.skipif(inspect.getfile(AnyMatcher).endswith('.py'), reason = 'dexpatch is not compiled with mypyc')
    def test(self) -> None:
        with pytest.raises(TypeError, match = 'interpreted classes cannot inherit from compiled'):
            CannotBeExtended()
