import logging
import random
import typing

import pytest

from dexpatch.patch.composite import opcode_is
from dexpatch.patch.errors import MissingBodyError, PatternNotFoundError
from dexpatch.patch.fingerprint import Found, InstructionFingerprint, MethodFingerprint, find
from dexpatch.tools.dex import (
    AccessFlags,
    Assembler,
    ClassDef,
    Decoder,
    Instruction,
    InstructionSequence,
    Method,
    MethodImplementation,
    Opcode,
)

VIDEO_PLAYER: typing.Final[str] = 'Lcom/amazon/avod/media/playback/VideoPlayer;'

def five_instructions() -> Method:
    """
    A method whose primary player is obtained at index 2, into ``v3``.
    """
    return Method(
        defining_class='Lcom/example/State;',
        name='enter',
        parameters=(),
        return_type='V',
        access_flags=AccessFlags.PUBLIC,
        implementation=MethodImplementation(registers=5, instructions=InstructionSequence(Assembler().assemble(f'''
            const/4 v0, 0x0
            check-cast v4, Lcom/example/State;
            invoke-virtual {{v4}}, Lcom/example/State;->getPrimaryPlayer(){VIDEO_PLAYER}
            move-result-object v3
            return-void
        '''))),
    )

def primary_player(window: typing.Sequence[Instruction]) -> dict[str, int] | None:
    """
    The predicate written by hand rather than with matchers.
    """
    invoke, move = window
    if invoke.opcode is not Opcode.INVOKE_VIRTUAL or invoke.method_reference is None:
        return None
    if invoke.method_reference.name != 'getPrimaryPlayer' or invoke.method_reference.return_type != VIDEO_PLAYER:
        return None
    if move.opcode is not Opcode.MOVE_RESULT_OBJECT:
        return None
    return {'register': move.register_a}

PRIMARY_PLAYER_MATCHER = opcode_is(Opcode.INVOKE_VIRTUAL).with_method_reference(
    name='getPrimaryPlayer', return_type=VIDEO_PLAYER,
).followed_by(opcode_is(Opcode.MOVE_RESULT_OBJECT).capture_register('register'))

class TestFind:
    """
    Tests for :py:func:`dexpatch.patch.fingerprint.find`.
    """
    @pytest.mark.parametrize('predicate', [primary_player, PRIMARY_PLAYER_MATCHER])
    def test_scenario(self, predicate) -> None:
        instructions = five_instructions().implementation.instructions
        assert find(instructions, predicate, lookahead=1) == Found(index=2, captures={'register': 3})

    def test_lookahead_from_predicate(self) -> None:
        """
        A :py:class:`dexpatch.patch.composite_impl.LookaheadMatcher` carries its own lookahead.
        """
        assert find(five_instructions().implementation.instructions, PRIMARY_PLAYER_MATCHER) == Found(index=2, captures={'register': 3})

    def test_no_match(self) -> None:
        instructions = five_instructions().implementation.instructions
        assert find(instructions, lambda window: window[0].opcode is Opcode.THROW) is None
        assert find((), primary_player, lookahead=1) is None

    def test_booleans(self) -> None:
        """
        :py:obj:`True` means a match without captures, :py:obj:`False` no match.
        """
        instructions = five_instructions().implementation.instructions
        assert find(instructions, lambda window: window[0].opcode is Opcode.RETURN_VOID) == Found(index=4, captures={})

    def test_instruction_matcher(self) -> None:
        """
        A single-instruction matcher is applied to the first instruction of each window.
        """
        instructions = five_instructions().implementation.instructions
        assert find(instructions, opcode_is(Opcode.RETURN_VOID)) == Found(index=4, captures={})
        assert find(instructions, opcode_is(Opcode.MOVE_RESULT_OBJECT).capture_register('register')) == Found(index=3, captures={'register': 3})
        assert find(instructions, opcode_is(Opcode.RETURN_VOID), lookahead=1) is None

        fingerprint = InstructionFingerprint(name='returnFingerprint', predicate=opcode_is(Opcode.RETURN_VOID))
        assert fingerprint.locate(five_instructions()).index == 4

    def test_negative_lookahead(self) -> None:
        with pytest.raises(ValueError, match='cannot be negative'):
            find((), primary_player, lookahead=-1)

    def test_does_not_mutate(self) -> None:
        method = five_instructions()
        before = list(method.implementation.instructions)
        find(method.implementation.instructions, primary_player, lookahead=1)
        assert list(method.implementation.instructions) == before

    @pytest.mark.parametrize('seed', range(10))
    def test_windows_and_first_match(self, seed: int) -> None:
        """
        On random sequences, every window is in bounds and the returned position is the first one that satisfies the predicate.
        """
        rng = random.Random(seed)
        pool = (
            Instruction(opcode=Opcode.NOP),
            Instruction(opcode=Opcode.RETURN_VOID),
            Instruction(opcode=Opcode.MOVE_RESULT_OBJECT, registers=(1,)),
        )
        instructions = tuple(rng.choice(pool) for _ in range(rng.randint(0, 12)))
        lookahead = rng.randint(0, 3)

        windows: list[tuple[Instruction, ...]] = []

        def predicate(window: typing.Sequence[Instruction]) -> bool:
            windows.append(tuple(window))
            return window[0].opcode is Opcode.RETURN_VOID and window[-1].opcode is Opcode.MOVE_RESULT_OBJECT

        found = find(instructions, predicate, lookahead=lookahead)

        assert all(len(window) == lookahead + 1 for window in windows)
        assert len(windows) <= max(0, len(instructions) - lookahead)

        expected = next((
            index for index in range(len(instructions) - lookahead)
            if instructions[index].opcode is Opcode.RETURN_VOID and instructions[index + lookahead].opcode is Opcode.MOVE_RESULT_OBJECT
        ), None)
        assert (found.index if found is not None else None) == expected

class TestInstructionFingerprint:
    """
    Tests for :py:class:`dexpatch.patch.fingerprint.InstructionFingerprint`.
    """
    FINGERPRINT: typing.Final[InstructionFingerprint] = InstructionFingerprint(name='getPrimaryPlayerFingerprint', predicate=PRIMARY_PLAYER_MATCHER)

    def test_locate(self, caplog) -> None:
        with caplog.at_level(logging.DEBUG):
            found = self.FINGERPRINT.locate(five_instructions())
        assert found == Found(index=2, captures={'register': 3})
        assert 'getPrimaryPlayerFingerprint matched at index 2' in caplog.text

    def test_not_found(self) -> None:
        method = five_instructions()
        method.implementation.instructions.splice(3, [Instruction(opcode=Opcode.NOP)])
        with pytest.raises(PatternNotFoundError, match=r'getPrimaryPlayerFingerprint did not match in Lcom/example/State;->enter\(\)V'):
            self.FINGERPRINT.locate(method)

    def test_missing_body(self) -> None:
        method = Method(defining_class='Lcom/example/State;', name='enter', parameters=(), return_type='V', access_flags=AccessFlags.ABSTRACT)
        with pytest.raises(MissingBodyError, match=r'Missing implementation for Lcom/example/State;->enter\(\)V'):
            self.FINGERPRINT.locate(method)

class TestMethodFingerprint:
    """
    Tests for :py:class:`dexpatch.patch.fingerprint.MethodFingerprint`.
    """
    def test_signature(self, state_base: ClassDef) -> None:
        do_trigger, enter = state_base.methods

        assert MethodFingerprint(name='f', method_name='doTrigger').match(state_base, do_trigger) is not None
        assert MethodFingerprint(name='f', return_type='V', parameters=('Lcom/amazon/avod/fsm/',)).match(state_base, do_trigger) is not None
        assert MethodFingerprint(name='f', parameters=()).match(state_base, do_trigger) is None
        assert MethodFingerprint(name='f', parameters=('I',)).match(state_base, do_trigger) is None
        assert MethodFingerprint(name='f', defining_class='Lcom/amazon/avod/fsm/State;').match(state_base, do_trigger) is None

    def test_access_flags_are_exact(self, state_base: ClassDef) -> None:
        enter = state_base.methods[1]
        assert MethodFingerprint(name='f', access_flags=AccessFlags.PUBLIC | AccessFlags.ABSTRACT).match(state_base, enter) is not None
        assert MethodFingerprint(name='f', access_flags=AccessFlags.PUBLIC).match(state_base, enter) is None

    def test_opcodes(self, state_base: ClassDef) -> None:
        do_trigger = state_base.methods[0]

        matched = MethodFingerprint(name='f', opcodes=(Opcode.INVOKE_INTERFACE, Opcode.RETURN_VOID)).match(state_base, do_trigger)
        assert matched is not None
        assert matched.pattern_index == 1

        assert MethodFingerprint(name='f', opcodes=(None, Opcode.RETURN_VOID)).match(state_base, do_trigger).pattern_index == 1
        assert MethodFingerprint(name='f', opcodes=(Opcode.RETURN_VOID, None)).match(state_base, do_trigger) is None

    def test_body_required(self, state_base: ClassDef) -> None:
        """
        A method without a body only matches when no criterion looks at the body.
        """
        enter = state_base.methods[1]
        assert MethodFingerprint(name='f', method_name='enter').match(state_base, enter) is not None
        assert MethodFingerprint(name='f', method_name='enter', opcodes=(None,)).match(state_base, enter) is None
        assert MethodFingerprint(name='f', method_name='enter', strings=()).match(state_base, enter) is None

    def test_strings_and_custom(self) -> None:
        (method,) = Decoder(code='''
.method public describe()Ljava/lang/String;
    .registers 2
    const-string v0, "ad_break"
    return-object v0
.end method
''', defining_class='Lcom/example/Ad;').methods
        classdef = ClassDef(type='Lcom/example/Ad;', methods=[method])
        assert MethodFingerprint(name='f', strings=('ad_break',)).match(classdef, method) is not None
        assert MethodFingerprint(name='f', strings=('ad_break', 'content')).match(classdef, method) is None
        assert MethodFingerprint(name='f', custom=lambda m, c: c.type.endswith('/Ad;')).match(classdef, method) is not None
        assert MethodFingerprint(name='f', custom=lambda m, c: m.is_static).match(classdef, method) is None

    def test_resolve(self, primevideo_classes: list[ClassDef], caplog) -> None:
        """
        The first match in declaration order wins.
        """
        with caplog.at_level(logging.DEBUG):
            matched = MethodFingerprint(name='anyEnter', method_name='enter').resolve(primevideo_classes)
        assert matched.classdef.type == 'Lcom/amazon/avod/fsm/StateBase;'
        assert 'anyEnter resolved to Lcom/amazon/avod/fsm/StateBase;->enter' in caplog.text

    def test_resolve_not_found(self, primevideo_classes: list[ClassDef]) -> None:
        with pytest.raises(PatternNotFoundError, match='Fingerprint exitFingerprint did not match.'):
            MethodFingerprint(name='exitFingerprint', method_name='exit').resolve(primevideo_classes)
