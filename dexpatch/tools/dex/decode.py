"""
Read ``smali`` text into :py:class:`dexpatch.tools.dex.method.ClassDef` and :py:class:`dexpatch.tools.dex.method.Method`,
and compile instruction text into :py:class:`dexpatch.tools.dex.instruction.Instruction`.

Debug directives (``.line``, ``.local``, ``.prologue``, ...) are dropped.
"""

from __future__ import annotations

import logging
import pathlib
import typing

import regex
import typeguard

from dexpatch.tools.dex.instruction import Instruction
from dexpatch.tools.dex.method import AccessFlags, ClassDef, Method, MethodImplementation
from dexpatch.tools.dex.opcode import Format, Opcode, ReferenceType
from dexpatch.tools.dex.reference import (
    FieldReference,
    MethodReference,
    RawReference,
    Reference,
    StringReference,
    TYPE_DESCRIPTOR,
    TypeReference,
    split_descriptors,
)

REGISTER: typing.Final[regex.Pattern[str]] = regex.compile(r'(?P<kind>[vp])(?P<index>\d+)')

LABEL: typing.Final[regex.Pattern[str]] = regex.compile(r':(?P<label>[\w$]+)')

INSTRUCTION: typing.Final[regex.Pattern[str]] = regex.compile(r'(?P<opcode>[a-z][a-z0-9/-]*)(?:\s+(?P<operands>.*))?')

REGISTER_LIST: typing.Final[regex.Pattern[str]] = regex.compile(r'\{(?P<registers>[^}]*)\}\s*(?:,\s*(?P<rest>.*))?')

REGISTER_RANGE: typing.Final[regex.Pattern[str]] = regex.compile(r'(?P<first>[vp]\d+)\s*\.\.\s*(?P<last>[vp]\d+)')

LITERAL: typing.Final[regex.Pattern[str]] = regex.compile(r'(?P<value>-?(?:0x[0-9a-fA-F]+|\d+))[LlTtSs]?')

METHOD_DECLARATION: typing.Final[regex.Pattern[str]] = regex.compile(
    rf'\.method\s+(?P<flags>(?:[a-z-]+\s+)*)(?P<name>[^\s\(]+)\((?P<parameters>(?:{TYPE_DESCRIPTOR})*)\)(?P<return_type>{TYPE_DESCRIPTOR})',
)

CLASS_DECLARATION: typing.Final[regex.Pattern[str]] = regex.compile(rf'\.class\s+(?P<flags>(?:[a-z-]+\s+)*)(?P<type>{TYPE_DESCRIPTOR})')

PAYLOADS: typing.Final[dict[str, Opcode]] = {
    '.packed-switch': Opcode.PACKED_SWITCH_PAYLOAD,
    '.sparse-switch': Opcode.SPARSE_SWITCH_PAYLOAD,
    '.array-data': Opcode.ARRAY_PAYLOAD,
}

DEBUG_DIRECTIVES: typing.Final[tuple[str, ...]] = (
    '.line', '.local', '.end local', '.restart local', '.prologue', '.epilogue', '.source',
)

def strip_comment(line: str) -> str:
    """
    Remove a trailing ``#`` comment, unless the ``#`` is inside a string literal.

    >>> from dexpatch.tools.dex.decode import strip_comment
    >>> strip_comment('const-string v0, "a # b"    # comment')
    'const-string v0, "a # b"'
    """
    quoted = False
    escaped = False
    for index, char in enumerate(line):
        if escaped:
            escaped = False
        elif char == '\\':
            escaped = True
        elif char == '"':
            quoted = not quoted
        elif char == '#' and not quoted:
            return line[:index].rstrip()
    return line.rstrip()

def split_operands(operands: str) -> list[str]:
    """
    Split on commas that are not inside a string literal.
    """
    parts: list[str] = []
    current: list[str] = []
    quoted = False
    escaped = False
    for char in operands:
        if escaped:
            escaped = False
        elif char == '\\':
            escaped = True
        elif char == '"':
            quoted = not quoted
        elif char == ',' and not quoted:
            parts.append(''.join(current).strip())
            current = []
            continue
        current.append(char)
    if (last := ''.join(current).strip()):
        parts.append(last)
    return parts

def clean(lines: typing.Iterable[str]) -> list[str]:
    return [stripped for line in lines if (stripped := strip_comment(line).strip())]

class Assembler:
    """
    Compile ``smali`` instruction text into :py:class:`dexpatch.tools.dex.instruction.Instruction`.

    Parameter registers (``pN``) are resolved to ``v`` registers from the frame size :py:attr:`registers`
    and the number of incoming parameter registers :py:attr:`ins`. Without them, only ``v`` registers are accepted.

    >>> from dexpatch.tools.dex.decode import Assembler
    >>> [str(x) for x in Assembler(registers=5, ins=2).assemble('''
    ...     invoke-static {p0, p1, v2}, Lcom/example/Ext;->hook(II)V
    ...     return-void
    ... ''')]
    ['invoke-static {v3, v4, v2}, Lcom/example/Ext;->hook(II)V', 'return-void']
    """
    def __init__(self, *, registers: int | None = None, ins: int | None = None) -> None:
        if (registers is None) != (ins is None):
            raise ValueError('Both the number of registers and of incoming parameter registers must be given.')
        if registers is not None and ins is not None and not 0 <= ins <= registers:
            raise ValueError(f'Invalid register layout: {ins} parameter registers in a frame of {registers}.')
        self.registers = registers
        self.ins = ins

    @classmethod
    def for_method(cls, method: Method) -> Assembler:
        if method.implementation is None:
            raise ValueError(f'{method.reference} has no implementation.')
        return cls(registers=method.implementation.registers, ins=method.ins_size)

    def register(self, token: str) -> int:
        if (matched := REGISTER.fullmatch(token.strip())) is None:
            raise ValueError(f'Invalid register {token!r}.')
        index = int(matched.group('index'))
        if matched.group('kind') == 'v':
            return index
        if self.registers is None or self.ins is None:
            raise ValueError(f'Cannot resolve parameter register {token!r} without a register layout.')
        if index >= self.ins:
            raise ValueError(f'Parameter register {token!r} is out of range, the method has {self.ins} parameter register(s).')
        return self.registers - self.ins + index

    def registers_list(self, text: str, fmt: Format) -> tuple[int, ...]:
        text = text.strip()
        if not text:
            return ()
        if fmt.is_range:
            if (matched := REGISTER_RANGE.fullmatch(text)) is not None:
                first, last = self.register(matched.group('first')), self.register(matched.group('last'))
                if last < first:
                    raise ValueError(f'Invalid register range {text!r}.')
                return tuple(range(first, last + 1))
            return (self.register(text),)
        return tuple(self.register(token) for token in text.split(','))

    @staticmethod
    def literal(text: str) -> int:
        if (matched := LITERAL.fullmatch(text.strip())) is None:
            raise ValueError(f'Invalid literal {text!r}.')
        return int(matched.group('value'), 0)

    @staticmethod
    def target(text: str) -> str:
        if (matched := LABEL.fullmatch(text.strip())) is None:
            raise ValueError(f'Invalid label {text!r}.')
        return matched.group('label')

    @staticmethod
    def reference(text: str, rtype: ReferenceType) -> Reference:
        text = text.strip()
        match rtype:
            case ReferenceType.STRING:
                if len(text) < 2 or not (text[0] == text[-1] == '"'):
                    raise ValueError(f'Invalid string {text!r}.')
                return StringReference(value=text[1:-1])
            case ReferenceType.TYPE:
                if len(split_descriptors(text)) != 1:
                    raise ValueError(f'Invalid type {text!r}.')
                return TypeReference(descriptor=text)
            case ReferenceType.FIELD:
                return FieldReference.parse(text)
            case ReferenceType.METHOD:
                return MethodReference.parse(text)
            case ReferenceType.CALL_SITE | ReferenceType.METHOD_PROTO | ReferenceType.METHOD_HANDLE:
                return RawReference(text=text)

    def parse_instruction(self, line: str, labels: typing.Iterable[str] = ()) -> Instruction:
        """
        Parse a single instruction line.
        """
        if (matched := INSTRUCTION.fullmatch(strip_comment(line).strip())) is None:
            raise ValueError(f'Invalid instruction {line!r}.')

        try:
            opcode = Opcode(matched.group('opcode'))
        except ValueError as e:
            raise ValueError(f'Unknown opcode in {line!r}.') from e

        fmt = opcode.format
        operands = matched.group('operands') or ''

        registers: tuple[int, ...]
        rest: list[str]
        if fmt.register_count is None:
            if (listed := REGISTER_LIST.fullmatch(operands.strip())) is None:
                raise ValueError(f'Expected a register list in {line!r}.')
            registers = self.registers_list(listed.group('registers'), fmt)
            rest = split_operands(listed.group('rest') or '')
        else:
            tokens = split_operands(operands)
            if len(tokens) < fmt.register_count:
                raise ValueError(f'{opcode} takes {fmt.register_count} register(s), got {line!r}.')
            registers = tuple(self.register(token) for token in tokens[:fmt.register_count])
            rest = tokens[fmt.register_count:]

        reference: Reference | None = None
        literal: int | None = None
        target: str | None = None
        proto: str | None = None

        if opcode.reference_type is not None:
            if not rest:
                raise ValueError(f'{opcode} expects a reference, got {line!r}.')
            reference = self.reference(rest.pop(0), opcode.reference_type)
            if fmt in (Format.F45cc, Format.F4rcc):
                if not rest:
                    raise ValueError(f'{opcode} expects a prototype, got {line!r}.')
                proto = rest.pop(0)
        elif fmt.has_literal:
            if not rest:
                raise ValueError(f'{opcode} expects a literal, got {line!r}.')
            literal = self.literal(rest.pop(0))
        elif fmt.has_target:
            if not rest:
                raise ValueError(f'{opcode} expects a label, got {line!r}.')
            target = self.target(rest.pop(0))

        if rest:
            raise ValueError(f'Unexpected operands {rest} in {line!r}.')

        return Instruction(
            opcode=opcode,
            registers=registers,
            reference=reference,
            literal=literal,
            target=target,
            labels=tuple(labels),
            proto=proto,
        )

    def assemble_lines(self, lines: typing.Sequence[str]) -> list[Instruction]:
        """
        Assemble cleaned lines made of labels, instructions and payload blocks.
        """
        instructions: list[Instruction] = []
        labels: list[str] = []

        iline = 0
        while iline < len(lines):
            line = lines[iline]

            if (label := LABEL.fullmatch(line)) is not None:
                labels.append(label.group('label'))
                iline += 1
                continue

            directive = line.split(maxsplit=1)[0]
            if directive in PAYLOADS:
                end = f'.end {directive[1:]}'
                try:
                    iend = lines.index(end, iline)
                except ValueError as e:
                    raise ValueError(f'Missing {end!r} for {line!r}.') from e
                instructions.append(Instruction(opcode=PAYLOADS[directive], payload=tuple(lines[iline:iend + 1]), labels=tuple(labels)))
                labels = []
                iline = iend + 1
                continue

            try:
                instructions.append(self.parse_instruction(line, labels=labels))
            except ValueError:
                logging.error(f'The line:\n\t{line}\ncould not be assembled.')
                raise
            labels = []
            iline += 1

        if labels:
            raise ValueError(f'Labels {labels} do not point at any instruction.')

        return instructions

    @typeguard.typechecked
    def assemble(self, text: str) -> list[Instruction]:
        """
        Assemble a block of ``smali`` text. Blank lines and comments are ignored.
        """
        return self.assemble_lines(clean(text.splitlines()))

class Decoder:
    """
    Decode ``smali`` code, either a whole ``.class`` file or bare ``.method`` blocks.

    For bare ``.method`` blocks, the `defining_class` must be given.
    """
    @typeguard.typechecked
    def __init__(self, source: pathlib.Path | None = None, code: str | None = None, *, defining_class: str | None = None) -> None:
        """
        Initialize the decoder with the ``smali`` contained in `source` or `code`.
        """
        if (source is None) == (code is None):
            raise ValueError('Exactly one of source or code must be given.')

        self.source = source
        self.code = code
        self.defining_class = defining_class
        self.classdef: ClassDef | None = None
        self.methods: list[Method] = []
        self._parse()

    def _parse(self) -> None:
        if self.source is not None:
            lines = clean(self.source.read_text().splitlines())
        else:
            assert self.code is not None
            lines = clean(self.code.splitlines())

        iline = 0

        while iline < len(lines):
            line = lines[iline]
            directive = line.split(maxsplit=1)[0]

            match directive:
                case '.class':
                    if (matched := CLASS_DECLARATION.fullmatch(line)) is None:
                        logging.error(f'The line:\n\t{line}\ndid not match {CLASS_DECLARATION.pattern}.')
                        raise ValueError(line)
                    self.classdef = ClassDef(type=matched.group('type'), access_flags=AccessFlags.parse(matched.group('flags')))
                    self.defining_class = self.classdef.type
                    iline += 1
                case '.super':
                    self._require_class(line).superclass = line.split(maxsplit=1)[1]
                    iline += 1
                case '.implements':
                    classdef = self._require_class(line)
                    classdef.interfaces = (*classdef.interfaces, line.split(maxsplit=1)[1])
                    iline += 1
                case '.source':
                    self._require_class(line).source = line.split(maxsplit=1)[1].strip('"')
                    iline += 1
                case '.annotation':
                    end = self._find(lines, '.end annotation', iline)
                    self._require_class(line).annotations.extend(lines[iline:end + 1])
                    iline = end + 1
                case '.field':
                    end = iline
                    if iline + 1 < len(lines) and lines[iline + 1].startswith('.annotation'):
                        end = self._find(lines, '.end field', iline)
                    self._require_class(line).fields.extend(lines[iline:end + 1])
                    iline = end + 1
                case '.method':
                    end = self._find(lines, '.end method', iline)
                    method = self._parse_method(lines[iline:end])
                    self.methods.append(method)
                    if self.classdef is not None:
                        self.classdef.methods.append(method)
                    iline = end + 1
                case _:
                    logging.error(f'The line:\n\t{line}\nis not a class-level directive.')
                    raise ValueError(line)

    def _require_class(self, line: str) -> ClassDef:
        if self.classdef is None:
            raise ValueError(f'{line!r} appears before the .class directive.')
        return self.classdef

    @staticmethod
    def _find(lines: typing.Sequence[str], end: str, start: int) -> int:
        for index in range(start, len(lines)):
            if lines[index] == end:
                return index
        raise ValueError(f'Missing {end!r} for {lines[start]!r}.')

    def _parse_method(self, lines: typing.Sequence[str]) -> Method:
        """
        Parse the lines of a ``.method`` block, without its ``.end method``.
        """
        if (matched := METHOD_DECLARATION.fullmatch(lines[0])) is None:
            logging.error(f'The line:\n\t{lines[0]}\ndid not match {METHOD_DECLARATION.pattern}.')
            raise ValueError(lines[0])

        if self.defining_class is None:
            raise ValueError(f'The defining class of {lines[0]!r} is unknown.')

        method = Method(
            defining_class=self.defining_class,
            name=matched.group('name'),
            parameters=split_descriptors(matched.group('parameters')),
            return_type=matched.group('return_type'),
            access_flags=AccessFlags.parse(matched.group('flags')),
        )

        registers: int | None = None
        locals_: int | None = None
        tries: list[str] = []
        body: list[str] = []

        iline = 1
        while iline < len(lines):
            line = lines[iline]
            directive = line.split(maxsplit=1)[0]

            if directive == '.registers':
                registers = int(line.split()[1], 0)
            elif directive == '.locals':
                locals_ = int(line.split()[1], 0)
            elif directive == '.annotation':
                end = self._find(lines, '.end annotation', iline)
                method.annotations.extend(lines[iline:end + 1])
                iline = end
            elif directive == '.param':
                end = iline
                if iline + 1 < len(lines) and lines[iline + 1].startswith('.annotation'):
                    end = self._find(lines, '.end param', iline)
                method.annotations.extend(lines[iline:end + 1])
                iline = end
            elif directive in ('.catch', '.catchall'):
                tries.append(line)
            elif line.startswith(DEBUG_DIRECTIVES):
                logging.debug(f'Dropping debug directive {line!r} in {method.reference}.')
            else:
                body.append(line)
            iline += 1

        if registers is None:
            registers = (locals_ + method.ins_size) if locals_ is not None else None

        if registers is None and not body:
            if not method.access_flags & (AccessFlags.ABSTRACT | AccessFlags.NATIVE):
                logging.warning(f'{method.reference} has neither a body nor the abstract or native flag.')
            return method

        if registers is None:
            registers = method.ins_size

        method.implementation = MethodImplementation(registers=registers, tries=tries)
        method.implementation.instructions.splice(
            0, Assembler(registers=registers, ins=method.ins_size).assemble_lines(body),
        )
        return method
