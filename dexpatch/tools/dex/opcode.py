"""
The Dalvik instruction-set vocabulary.

Each :py:class:`Opcode` is spelled as in ``smali`` and knows its :py:class:`Format`,
*i.e.* how its operands are laid out, as well as the kind of reference it carries, if any.

>>> from dexpatch.tools.dex.opcode import Opcode
>>> Opcode('invoke-virtual/range').format
<Format.F3rc: '3rc'>
>>> Opcode.MOVE_RESULT_OBJECT.reference_type is None
True

References:

* https://source.android.com/docs/core/runtime/dalvik-bytecode
* https://source.android.com/docs/core/runtime/instruction-formats
"""

import sys
import typing

if sys.version_info >= (3, 11):
    from enum import StrEnum
else:
    from backports.strenum.strenum import StrEnum

class Format(StrEnum):
    """
    Instruction format, named after the Dalvik format identifiers.
    """
    F10x = '10x'
    F10t = '10t'
    F20t = '20t'
    F30t = '30t'
    F11x = '11x'
    F11n = '11n'
    F12x = '12x'
    F21c = '21c'
    F21h = '21h'
    F21s = '21s'
    F21t = '21t'
    F22b = '22b'
    F22c = '22c'
    F22s = '22s'
    F22t = '22t'
    F22x = '22x'
    F23x = '23x'
    F31c = '31c'
    F31i = '31i'
    F31t = '31t'
    F32x = '32x'
    F35c = '35c'
    F3rc = '3rc'
    F45cc = '45cc'
    F4rcc = '4rcc'
    F51l = '51l'
    PAYLOAD = 'payload'

    @property
    def register_count(self) -> int | None:
        """
        Number of register operands, or :py:obj:`None` for formats taking a register list or range.
        """
        match self:
            case Format.F10x | Format.F10t | Format.F20t | Format.F30t | Format.PAYLOAD:
                return 0
            case Format.F11x | Format.F11n | Format.F21c | Format.F21h | Format.F21s | Format.F21t | Format.F31c | Format.F31i | Format.F31t | Format.F51l:
                return 1
            case Format.F12x | Format.F22b | Format.F22c | Format.F22s | Format.F22t | Format.F22x | Format.F32x:
                return 2
            case Format.F23x:
                return 3
            case Format.F35c | Format.F3rc | Format.F45cc | Format.F4rcc:
                return None

    @property
    def is_range(self) -> bool:
        return self in (Format.F3rc, Format.F4rcc)

    @property
    def has_literal(self) -> bool:
        return self in (Format.F11n, Format.F21h, Format.F21s, Format.F22b, Format.F22s, Format.F31i, Format.F51l)

    @property
    def has_target(self) -> bool:
        return self in (Format.F10t, Format.F20t, Format.F30t, Format.F21t, Format.F22t, Format.F31t)

class ReferenceType(StrEnum):
    """
    Kind of item referenced by an instruction.
    """
    STRING = 'string'
    TYPE = 'type'
    FIELD = 'field'
    METHOD = 'method'
    CALL_SITE = 'call_site'
    METHOD_PROTO = 'method_proto'
    METHOD_HANDLE = 'method_handle'

class Opcode(StrEnum):
    """
    Dalvik opcodes.
    """
    NOP = 'nop'
    MOVE = 'move'
    MOVE_FROM16 = 'move/from16'
    MOVE_16 = 'move/16'
    MOVE_WIDE = 'move-wide'
    MOVE_WIDE_FROM16 = 'move-wide/from16'
    MOVE_WIDE_16 = 'move-wide/16'
    MOVE_OBJECT = 'move-object'
    MOVE_OBJECT_FROM16 = 'move-object/from16'
    MOVE_OBJECT_16 = 'move-object/16'
    MOVE_RESULT = 'move-result'
    MOVE_RESULT_WIDE = 'move-result-wide'
    MOVE_RESULT_OBJECT = 'move-result-object'
    MOVE_EXCEPTION = 'move-exception'
    RETURN_VOID = 'return-void'
    RETURN = 'return'
    RETURN_WIDE = 'return-wide'
    RETURN_OBJECT = 'return-object'
    CONST_4 = 'const/4'
    CONST_16 = 'const/16'
    CONST = 'const'
    CONST_HIGH16 = 'const/high16'
    CONST_WIDE_16 = 'const-wide/16'
    CONST_WIDE_32 = 'const-wide/32'
    CONST_WIDE = 'const-wide'
    CONST_WIDE_HIGH16 = 'const-wide/high16'
    CONST_STRING = 'const-string'
    CONST_STRING_JUMBO = 'const-string/jumbo'
    CONST_CLASS = 'const-class'
    MONITOR_ENTER = 'monitor-enter'
    MONITOR_EXIT = 'monitor-exit'
    CHECK_CAST = 'check-cast'
    INSTANCE_OF = 'instance-of'
    ARRAY_LENGTH = 'array-length'
    NEW_INSTANCE = 'new-instance'
    NEW_ARRAY = 'new-array'
    FILLED_NEW_ARRAY = 'filled-new-array'
    FILLED_NEW_ARRAY_RANGE = 'filled-new-array/range'
    FILL_ARRAY_DATA = 'fill-array-data'
    THROW = 'throw'
    GOTO = 'goto'
    GOTO_16 = 'goto/16'
    GOTO_32 = 'goto/32'
    PACKED_SWITCH = 'packed-switch'
    SPARSE_SWITCH = 'sparse-switch'
    CMPL_FLOAT = 'cmpl-float'
    CMPG_FLOAT = 'cmpg-float'
    CMPL_DOUBLE = 'cmpl-double'
    CMPG_DOUBLE = 'cmpg-double'
    CMP_LONG = 'cmp-long'
    IF_EQ = 'if-eq'
    IF_NE = 'if-ne'
    IF_LT = 'if-lt'
    IF_GE = 'if-ge'
    IF_GT = 'if-gt'
    IF_LE = 'if-le'
    IF_EQZ = 'if-eqz'
    IF_NEZ = 'if-nez'
    IF_LTZ = 'if-ltz'
    IF_GEZ = 'if-gez'
    IF_GTZ = 'if-gtz'
    IF_LEZ = 'if-lez'
    AGET = 'aget'
    AGET_WIDE = 'aget-wide'
    AGET_OBJECT = 'aget-object'
    AGET_BOOLEAN = 'aget-boolean'
    AGET_BYTE = 'aget-byte'
    AGET_CHAR = 'aget-char'
    AGET_SHORT = 'aget-short'
    APUT = 'aput'
    APUT_WIDE = 'aput-wide'
    APUT_OBJECT = 'aput-object'
    APUT_BOOLEAN = 'aput-boolean'
    APUT_BYTE = 'aput-byte'
    APUT_CHAR = 'aput-char'
    APUT_SHORT = 'aput-short'
    IGET = 'iget'
    IGET_WIDE = 'iget-wide'
    IGET_OBJECT = 'iget-object'
    IGET_BOOLEAN = 'iget-boolean'
    IGET_BYTE = 'iget-byte'
    IGET_CHAR = 'iget-char'
    IGET_SHORT = 'iget-short'
    IPUT = 'iput'
    IPUT_WIDE = 'iput-wide'
    IPUT_OBJECT = 'iput-object'
    IPUT_BOOLEAN = 'iput-boolean'
    IPUT_BYTE = 'iput-byte'
    IPUT_CHAR = 'iput-char'
    IPUT_SHORT = 'iput-short'
    SGET = 'sget'
    SGET_WIDE = 'sget-wide'
    SGET_OBJECT = 'sget-object'
    SGET_BOOLEAN = 'sget-boolean'
    SGET_BYTE = 'sget-byte'
    SGET_CHAR = 'sget-char'
    SGET_SHORT = 'sget-short'
    SPUT = 'sput'
    SPUT_WIDE = 'sput-wide'
    SPUT_OBJECT = 'sput-object'
    SPUT_BOOLEAN = 'sput-boolean'
    SPUT_BYTE = 'sput-byte'
    SPUT_CHAR = 'sput-char'
    SPUT_SHORT = 'sput-short'
    INVOKE_VIRTUAL = 'invoke-virtual'
    INVOKE_SUPER = 'invoke-super'
    INVOKE_DIRECT = 'invoke-direct'
    INVOKE_STATIC = 'invoke-static'
    INVOKE_INTERFACE = 'invoke-interface'
    INVOKE_VIRTUAL_RANGE = 'invoke-virtual/range'
    INVOKE_SUPER_RANGE = 'invoke-super/range'
    INVOKE_DIRECT_RANGE = 'invoke-direct/range'
    INVOKE_STATIC_RANGE = 'invoke-static/range'
    INVOKE_INTERFACE_RANGE = 'invoke-interface/range'
    NEG_INT = 'neg-int'
    NOT_INT = 'not-int'
    NEG_LONG = 'neg-long'
    NOT_LONG = 'not-long'
    NEG_FLOAT = 'neg-float'
    NEG_DOUBLE = 'neg-double'
    INT_TO_LONG = 'int-to-long'
    INT_TO_FLOAT = 'int-to-float'
    INT_TO_DOUBLE = 'int-to-double'
    LONG_TO_INT = 'long-to-int'
    LONG_TO_FLOAT = 'long-to-float'
    LONG_TO_DOUBLE = 'long-to-double'
    FLOAT_TO_INT = 'float-to-int'
    FLOAT_TO_LONG = 'float-to-long'
    FLOAT_TO_DOUBLE = 'float-to-double'
    DOUBLE_TO_INT = 'double-to-int'
    DOUBLE_TO_LONG = 'double-to-long'
    DOUBLE_TO_FLOAT = 'double-to-float'
    INT_TO_BYTE = 'int-to-byte'
    INT_TO_CHAR = 'int-to-char'
    INT_TO_SHORT = 'int-to-short'
    ADD_INT = 'add-int'
    SUB_INT = 'sub-int'
    MUL_INT = 'mul-int'
    DIV_INT = 'div-int'
    REM_INT = 'rem-int'
    AND_INT = 'and-int'
    OR_INT = 'or-int'
    XOR_INT = 'xor-int'
    SHL_INT = 'shl-int'
    SHR_INT = 'shr-int'
    USHR_INT = 'ushr-int'
    ADD_LONG = 'add-long'
    SUB_LONG = 'sub-long'
    MUL_LONG = 'mul-long'
    DIV_LONG = 'div-long'
    REM_LONG = 'rem-long'
    AND_LONG = 'and-long'
    OR_LONG = 'or-long'
    XOR_LONG = 'xor-long'
    SHL_LONG = 'shl-long'
    SHR_LONG = 'shr-long'
    USHR_LONG = 'ushr-long'
    ADD_FLOAT = 'add-float'
    SUB_FLOAT = 'sub-float'
    MUL_FLOAT = 'mul-float'
    DIV_FLOAT = 'div-float'
    REM_FLOAT = 'rem-float'
    ADD_DOUBLE = 'add-double'
    SUB_DOUBLE = 'sub-double'
    MUL_DOUBLE = 'mul-double'
    DIV_DOUBLE = 'div-double'
    REM_DOUBLE = 'rem-double'
    ADD_INT_2ADDR = 'add-int/2addr'
    SUB_INT_2ADDR = 'sub-int/2addr'
    MUL_INT_2ADDR = 'mul-int/2addr'
    DIV_INT_2ADDR = 'div-int/2addr'
    REM_INT_2ADDR = 'rem-int/2addr'
    AND_INT_2ADDR = 'and-int/2addr'
    OR_INT_2ADDR = 'or-int/2addr'
    XOR_INT_2ADDR = 'xor-int/2addr'
    SHL_INT_2ADDR = 'shl-int/2addr'
    SHR_INT_2ADDR = 'shr-int/2addr'
    USHR_INT_2ADDR = 'ushr-int/2addr'
    ADD_LONG_2ADDR = 'add-long/2addr'
    SUB_LONG_2ADDR = 'sub-long/2addr'
    MUL_LONG_2ADDR = 'mul-long/2addr'
    DIV_LONG_2ADDR = 'div-long/2addr'
    REM_LONG_2ADDR = 'rem-long/2addr'
    AND_LONG_2ADDR = 'and-long/2addr'
    OR_LONG_2ADDR = 'or-long/2addr'
    XOR_LONG_2ADDR = 'xor-long/2addr'
    SHL_LONG_2ADDR = 'shl-long/2addr'
    SHR_LONG_2ADDR = 'shr-long/2addr'
    USHR_LONG_2ADDR = 'ushr-long/2addr'
    ADD_FLOAT_2ADDR = 'add-float/2addr'
    SUB_FLOAT_2ADDR = 'sub-float/2addr'
    MUL_FLOAT_2ADDR = 'mul-float/2addr'
    DIV_FLOAT_2ADDR = 'div-float/2addr'
    REM_FLOAT_2ADDR = 'rem-float/2addr'
    ADD_DOUBLE_2ADDR = 'add-double/2addr'
    SUB_DOUBLE_2ADDR = 'sub-double/2addr'
    MUL_DOUBLE_2ADDR = 'mul-double/2addr'
    DIV_DOUBLE_2ADDR = 'div-double/2addr'
    REM_DOUBLE_2ADDR = 'rem-double/2addr'
    ADD_INT_LIT16 = 'add-int/lit16'
    RSUB_INT = 'rsub-int'
    MUL_INT_LIT16 = 'mul-int/lit16'
    DIV_INT_LIT16 = 'div-int/lit16'
    REM_INT_LIT16 = 'rem-int/lit16'
    AND_INT_LIT16 = 'and-int/lit16'
    OR_INT_LIT16 = 'or-int/lit16'
    XOR_INT_LIT16 = 'xor-int/lit16'
    ADD_INT_LIT8 = 'add-int/lit8'
    RSUB_INT_LIT8 = 'rsub-int/lit8'
    MUL_INT_LIT8 = 'mul-int/lit8'
    DIV_INT_LIT8 = 'div-int/lit8'
    REM_INT_LIT8 = 'rem-int/lit8'
    AND_INT_LIT8 = 'and-int/lit8'
    OR_INT_LIT8 = 'or-int/lit8'
    XOR_INT_LIT8 = 'xor-int/lit8'
    SHL_INT_LIT8 = 'shl-int/lit8'
    SHR_INT_LIT8 = 'shr-int/lit8'
    USHR_INT_LIT8 = 'ushr-int/lit8'
    INVOKE_POLYMORPHIC = 'invoke-polymorphic'
    INVOKE_POLYMORPHIC_RANGE = 'invoke-polymorphic/range'
    INVOKE_CUSTOM = 'invoke-custom'
    INVOKE_CUSTOM_RANGE = 'invoke-custom/range'
    CONST_METHOD_HANDLE = 'const-method-handle'
    CONST_METHOD_TYPE = 'const-method-type'
    PACKED_SWITCH_PAYLOAD = 'packed-switch-payload'
    SPARSE_SWITCH_PAYLOAD = 'sparse-switch-payload'
    ARRAY_PAYLOAD = 'array-payload'

    @property
    def format(self) -> Format:
        return _DETAILS[self][0]

    @property
    def reference_type(self) -> ReferenceType | None:
        return _DETAILS[self][1]

    @property
    def is_invoke(self) -> bool:
        return self.value.startswith('invoke-')

    @property
    def is_payload(self) -> bool:
        return self.format is Format.PAYLOAD

    @property
    def sets_result(self) -> bool:
        """
        Whether the result of this instruction may be consumed by a following ``move-result*``.
        """
        return self.is_invoke or self in (Opcode.FILLED_NEW_ARRAY, Opcode.FILLED_NEW_ARRAY_RANGE)

    @property
    def can_continue(self) -> bool:
        """
        Whether execution may fall through to the next instruction.
        """
        return not (
            self.value.startswith(('return', 'goto'))
            or self is Opcode.THROW
            or self.is_payload
        )

def _ops(*names: str) -> tuple[Opcode, ...]:
    return tuple(Opcode(name) for name in names)

def _typed(*prefixes: str, suffixes: typing.Iterable[str] = ('', '-wide', '-object', '-boolean', '-byte', '-char', '-short')) -> tuple[Opcode, ...]:
    return tuple(Opcode(f'{prefix}{suffix}') for prefix in prefixes for suffix in suffixes)

_ARITHMETIC: typing.Final[tuple[str, ...]] = tuple(
    f'{op}-{kind}'
    for kind, ops in (
        ('int',    ('add', 'sub', 'mul', 'div', 'rem', 'and', 'or', 'xor', 'shl', 'shr', 'ushr')),
        ('long',   ('add', 'sub', 'mul', 'div', 'rem', 'and', 'or', 'xor', 'shl', 'shr', 'ushr')),
        ('float',  ('add', 'sub', 'mul', 'div', 'rem')),
        ('double', ('add', 'sub', 'mul', 'div', 'rem')),
    )
    for op in ops
)

_GROUPS: typing.Final[tuple[tuple[Format, ReferenceType | None, tuple[Opcode, ...]], ...]] = (
    (Format.F10x, None, _ops('nop', 'return-void')),
    (Format.F12x, None, _ops('move', 'move-wide', 'move-object', 'array-length')),
    (Format.F22x, None, _ops('move/from16', 'move-wide/from16', 'move-object/from16')),
    (Format.F32x, None, _ops('move/16', 'move-wide/16', 'move-object/16')),
    (Format.F11x, None, _ops(
        'move-result', 'move-result-wide', 'move-result-object', 'move-exception',
        'return', 'return-wide', 'return-object',
        'monitor-enter', 'monitor-exit', 'throw',
    )),
    (Format.F11n, None, _ops('const/4')),
    (Format.F21s, None, _ops('const/16', 'const-wide/16')),
    (Format.F31i, None, _ops('const', 'const-wide/32')),
    (Format.F21h, None, _ops('const/high16', 'const-wide/high16')),
    (Format.F51l, None, _ops('const-wide')),
    (Format.F21c, ReferenceType.STRING, _ops('const-string')),
    (Format.F31c, ReferenceType.STRING, _ops('const-string/jumbo')),
    (Format.F21c, ReferenceType.TYPE, _ops('const-class', 'check-cast', 'new-instance')),
    (Format.F22c, ReferenceType.TYPE, _ops('instance-of', 'new-array')),
    (Format.F35c, ReferenceType.TYPE, _ops('filled-new-array')),
    (Format.F3rc, ReferenceType.TYPE, _ops('filled-new-array/range')),
    (Format.F31t, None, _ops('fill-array-data', 'packed-switch', 'sparse-switch')),
    (Format.F10t, None, _ops('goto')),
    (Format.F20t, None, _ops('goto/16')),
    (Format.F30t, None, _ops('goto/32')),
    (Format.F23x, None, _ops('cmpl-float', 'cmpg-float', 'cmpl-double', 'cmpg-double', 'cmp-long')),
    (Format.F22t, None, _ops('if-eq', 'if-ne', 'if-lt', 'if-ge', 'if-gt', 'if-le')),
    (Format.F21t, None, _ops('if-eqz', 'if-nez', 'if-ltz', 'if-gez', 'if-gtz', 'if-lez')),
    (Format.F23x, None, _typed('aget', 'aput')),
    (Format.F22c, ReferenceType.FIELD, _typed('iget', 'iput')),
    (Format.F21c, ReferenceType.FIELD, _typed('sget', 'sput')),
    (Format.F35c, ReferenceType.METHOD, _ops('invoke-virtual', 'invoke-super', 'invoke-direct', 'invoke-static', 'invoke-interface')),
    (Format.F3rc, ReferenceType.METHOD, _ops(
        'invoke-virtual/range', 'invoke-super/range', 'invoke-direct/range', 'invoke-static/range', 'invoke-interface/range',
    )),
    (Format.F12x, None, _ops(
        'neg-int', 'not-int', 'neg-long', 'not-long', 'neg-float', 'neg-double',
        'int-to-long', 'int-to-float', 'int-to-double',
        'long-to-int', 'long-to-float', 'long-to-double',
        'float-to-int', 'float-to-long', 'float-to-double',
        'double-to-int', 'double-to-long', 'double-to-float',
        'int-to-byte', 'int-to-char', 'int-to-short',
    )),
    (Format.F23x, None, _ops(*_ARITHMETIC)),
    (Format.F12x, None, _ops(*(f'{name}/2addr' for name in _ARITHMETIC))),
    (Format.F22s, None, _ops(
        'add-int/lit16', 'rsub-int', 'mul-int/lit16', 'div-int/lit16', 'rem-int/lit16',
        'and-int/lit16', 'or-int/lit16', 'xor-int/lit16',
    )),
    (Format.F22b, None, _ops(
        'add-int/lit8', 'rsub-int/lit8', 'mul-int/lit8', 'div-int/lit8', 'rem-int/lit8',
        'and-int/lit8', 'or-int/lit8', 'xor-int/lit8', 'shl-int/lit8', 'shr-int/lit8', 'ushr-int/lit8',
    )),
    (Format.F45cc, ReferenceType.METHOD, _ops('invoke-polymorphic')),
    (Format.F4rcc, ReferenceType.METHOD, _ops('invoke-polymorphic/range')),
    (Format.F35c, ReferenceType.CALL_SITE, _ops('invoke-custom')),
    (Format.F3rc, ReferenceType.CALL_SITE, _ops('invoke-custom/range')),
    (Format.F21c, ReferenceType.METHOD_HANDLE, _ops('const-method-handle')),
    (Format.F21c, ReferenceType.METHOD_PROTO, _ops('const-method-type')),
    (Format.PAYLOAD, None, _ops('packed-switch-payload', 'sparse-switch-payload', 'array-payload')),
)

_DETAILS: typing.Final[dict[Opcode, tuple[Format, ReferenceType | None]]] = {
    opcode: (fmt, rtype)
    for fmt, rtype, opcodes in _GROUPS
    for opcode in opcodes
}

assert len(_DETAILS) == len(Opcode), set(Opcode) - set(_DETAILS)
