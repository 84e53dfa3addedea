import pytest

from dexpatch.tools.dex.instruction import Instruction, InstructionSequence
from dexpatch.tools.dex.opcode import Opcode
from dexpatch.tools.dex.reference import MethodReference, StringReference, TypeReference
from dexpatch.utils import rich_helpers

GET_PLAYER = MethodReference.parse('Lcom/example/State;->getPrimaryPlayer()Lcom/example/Player;')

class TestInstruction:
    """
    Tests for :py:class:`dexpatch.tools.dex.instruction.Instruction`.
    """
    def test_invoke(self) -> None:
        inst = Instruction(opcode=Opcode.INVOKE_VIRTUAL, registers=(1,), reference=GET_PLAYER)
        assert inst.method_reference == GET_PLAYER
        assert inst.field_reference is None
        assert inst.register_a == 1
        assert inst.to_smali() == 'invoke-virtual {v1}, Lcom/example/State;->getPrimaryPlayer()Lcom/example/Player;'

    def test_range(self) -> None:
        inst = Instruction(opcode=Opcode.INVOKE_STATIC_RANGE, registers=(2, 3, 4), reference=MethodReference.parse('La;->f(IJ)V'))
        assert inst.to_smali() == 'invoke-static/range {v2 .. v4}, La;->f(IJ)V'
        assert inst.register_b == 3

        with pytest.raises(ValueError, match='not a contiguous range'):
            Instruction(opcode=Opcode.INVOKE_STATIC_RANGE, registers=(2, 4), reference=MethodReference.parse('La;->f(II)V'))

    def test_literals(self) -> None:
        assert Instruction(opcode=Opcode.CONST_4, registers=(0,), literal=-1).to_smali() == 'const/4 v0, -0x1'
        assert Instruction(opcode=Opcode.CONST_WIDE, registers=(2,), literal=0x100000000).to_smali() == 'const-wide v2, 0x100000000L'

    def test_target_and_labels(self) -> None:
        inst = Instruction(opcode=Opcode.IF_EQZ, registers=(3,), target='cond_0')
        assert inst.to_smali() == 'if-eqz v3, :cond_0'
        assert inst.register_a == 3
        assert inst.with_labels(('start',)).labels == ('start',)
        assert inst.labels == ()

    def test_two_registers(self) -> None:
        inst = Instruction(opcode=Opcode.CHECK_CAST, registers=(5,), reference=TypeReference(descriptor='La;'))
        assert inst.register_a == 5
        with pytest.raises(TypeError, match='no second register'):
            _ = inst.register_b

    def test_no_register(self) -> None:
        with pytest.raises(TypeError, match='no register operand'):
            _ = Instruction(opcode=Opcode.RETURN_VOID).register_a

    @pytest.mark.parametrize(('kwargs', 'message'), [
        ({'opcode': Opcode.MOVE_RESULT_OBJECT}, 'takes 1 register'),
        ({'opcode': Opcode.MOVE_RESULT_OBJECT, 'registers': (-1,)}, 'Negative register'),
        ({'opcode': Opcode.CONST_STRING, 'registers': (0,), 'reference': TypeReference(descriptor='La;')}, 'expects a string reference'),
        ({'opcode': Opcode.RETURN_VOID, 'reference': StringReference(value='a')}, 'takes no reference'),
        ({'opcode': Opcode.CONST_4, 'registers': (0,)}, 'does not fit'),
        ({'opcode': Opcode.GOTO}, 'does not fit'),
    ])
    def test_invalid(self, kwargs, message: str) -> None:
        with pytest.raises(ValueError, match=message):
            Instruction(**kwargs)

    def test_frozen(self) -> None:
        inst = Instruction(opcode=Opcode.NOP)
        with pytest.raises(AttributeError):
            inst.opcode = Opcode.RETURN_VOID # type: ignore[misc]

class TestInstructionSequence:
    """
    Tests for :py:class:`dexpatch.tools.dex.instruction.InstructionSequence`.
    """
    INSTRUCTIONS = (
        Instruction(opcode=Opcode.NOP),
        Instruction(opcode=Opcode.CONST_4, registers=(0,), literal=1),
        Instruction(opcode=Opcode.RETURN, registers=(0,), labels=('end',)),
    )

    def test_sequence(self) -> None:
        sequence = InstructionSequence(self.INSTRUCTIONS)
        assert len(sequence) == 3
        assert sequence[1] is self.INSTRUCTIONS[1]
        assert sequence[1:] == list(self.INSTRUCTIONS[1:])
        assert list(sequence) == list(self.INSTRUCTIONS)

    def test_get(self) -> None:
        sequence = InstructionSequence(self.INSTRUCTIONS)
        assert sequence.get(2) is self.INSTRUCTIONS[2]
        assert sequence.get(3) is None
        assert sequence.get(-1) is None

    def test_splice(self) -> None:
        sequence = InstructionSequence(self.INSTRUCTIONS)
        block = [Instruction(opcode=Opcode.NOP), Instruction(opcode=Opcode.RETURN_VOID)]

        sequence.splice(1, block)

        assert len(sequence) == 5
        assert sequence[0] is self.INSTRUCTIONS[0]
        assert sequence[1:3] == block
        assert sequence[3:] == list(self.INSTRUCTIONS[1:])

        sequence.splice(len(sequence), block)
        assert len(sequence) == 7

        with pytest.raises(IndexError):
            sequence.splice(8, block)
        with pytest.raises(IndexError):
            sequence.splice(-1, block)

    def test_labels_move_with_their_instruction(self) -> None:
        sequence = InstructionSequence(self.INSTRUCTIONS)
        sequence.splice(2, [Instruction(opcode=Opcode.NOP)])
        assert sequence[3].labels == ('end',)
        assert sequence[2].labels == ()

    def test_to_table(self) -> None:
        rendered = rich_helpers.to_string(InstructionSequence(self.INSTRUCTIONS).to_table())
        assert 'const/4 v0, 0x1' in rendered
        assert ':end' in rendered
        assert str(InstructionSequence(self.INSTRUCTIONS)) == rendered
