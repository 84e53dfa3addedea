import pytest

from dexpatch.patch.composite import any_of, instruction_is, instructions_are, instructions_contain, opcode_is
from dexpatch.patch.composite_impl import InSequenceAtMatcher, LookaheadMatcher, OrderedInSequenceMatcher
from dexpatch.patch.instruction import PatternMatcher
from dexpatch.tools.dex import Assembler, Opcode

INSTRUCTIONS = Assembler().assemble('''
    const-string v0, "ad_break"
    invoke-static {v0}, Lcom/example/Log;->d(Ljava/lang/String;)V
    iget-object v1, v2, Lcom/example/State;->machine:Lcom/example/StateMachine;
    invoke-virtual {v2}, Lcom/example/State;->getPrimaryPlayer()Lcom/example/Player;
    move-result-object v3
    const/4 v4, 0x0
    return-void
''')

class TestFluentizer:
    """
    Tests for :py:class:`dexpatch.patch.composite.Fluentizer`.
    """
    def test_times(self) -> None:
        assert isinstance(opcode_is(Opcode.NOP).times(1), InSequenceAtMatcher)
        assert isinstance(opcode_is(Opcode.NOP).times(2), OrderedInSequenceMatcher)
        with pytest.raises(ValueError, match='Cannot match 0 times'):
            opcode_is(Opcode.NOP).times(0)

    def test_with_method_reference(self) -> None:
        matcher = opcode_is(Opcode.INVOKE_VIRTUAL, Opcode.INVOKE_STATIC).with_method_reference(name='getPrimaryPlayer')
        assert [x.instruction for x in instructions_contain(matcher).assert_matches(INSTRUCTIONS)] == [INSTRUCTIONS[3]]

    def test_with_field_reference(self) -> None:
        matcher = opcode_is(Opcode.IGET_OBJECT).with_field_reference(defining_class='Lcom/example/State;', name='machine')
        assert matcher.match(INSTRUCTIONS[2]) is not None
        assert opcode_is(Opcode.IGET_OBJECT).with_field_reference(type='Lcom/example/Player;').match(INSTRUCTIONS[2]) is None

    def test_with_string_and_literal(self) -> None:
        assert opcode_is(Opcode.CONST_STRING).with_string('ad_break').match(INSTRUCTIONS[0]) is not None
        assert opcode_is(Opcode.CONST_STRING).with_string('content').match(INSTRUCTIONS[0]) is None
        assert opcode_is(Opcode.CONST_4).with_literal(0).with_register(4).match(INSTRUCTIONS[5]) is not None

    def test_with_type(self) -> None:
        assembler = Assembler()
        matcher = opcode_is(Opcode.CHECK_CAST, Opcode.NEW_INSTANCE).with_type('Lcom/amazon/avod/media/ads/internal/state/AdBreakTrigger;')
        assert matcher.match(assembler.parse_instruction('check-cast v1, Lcom/amazon/avod/media/ads/internal/state/AdBreakTrigger;')) is not None
        assert matcher.match(assembler.parse_instruction('check-cast v1, Lcom/amazon/avod/fsm/Trigger;')) is None
        assert matcher.match(INSTRUCTIONS[2]) is None

    def test_chained_captures(self) -> None:
        matcher = opcode_is(Opcode.IGET_OBJECT).capture_register('destination').capture_register('object', index=1)
        matched = matcher.match(INSTRUCTIONS[2])
        assert matched is not None
        assert matched.captured == {'destination': 1, 'object': 2}

    def test_followed_by(self) -> None:
        matcher = opcode_is(Opcode.INVOKE_VIRTUAL).followed_by(opcode_is(Opcode.MOVE_RESULT_OBJECT).capture_register('register'))
        assert isinstance(matcher, LookaheadMatcher)
        assert matcher.lookahead == 1
        assert matcher(INSTRUCTIONS[3:5]) == {'register': 3}

    def test_instruction_is(self) -> None:
        matcher = instruction_is(PatternMatcher(r'const/4 v(?P<register>\d+), 0x0')).one_or_more_times()
        matched = matcher.assert_matches(INSTRUCTIONS[5:])
        assert len(matched) == 1 and matched[0].captured == {'register': '4'}

    def test_zero_or_more_times(self) -> None:
        matcher = instructions_are(
            opcode_is(Opcode.MOVE_RESULT_OBJECT),
            opcode_is(Opcode.NOP).zero_or_more_times(),
            opcode_is(Opcode.CONST_4),
        )
        assert len(matcher.assert_matches(INSTRUCTIONS[4:])) == 2

class TestFactories:
    def test_instructions_contain(self) -> None:
        matcher = instructions_contain(instructions_are(
            opcode_is(Opcode.INVOKE_VIRTUAL),
            opcode_is(Opcode.MOVE_RESULT_OBJECT),
        ))
        matcher.assert_matches(INSTRUCTIONS)
        assert matcher.index == 3

    def test_any_of(self) -> None:
        matcher = any_of(opcode_is(Opcode.RETURN_VOID), opcode_is(Opcode.CONST_STRING))
        assert matcher.assert_matches(INSTRUCTIONS)[0].instruction is INSTRUCTIONS[0]
        assert matcher.matched == 1

