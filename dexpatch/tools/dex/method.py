"""
Methods, their implementation, and the classes that declare them.
"""

from __future__ import annotations

import dataclasses
import enum
import typing

import rich.tree

from dexpatch.tools.dex.instruction import InstructionSequence
from dexpatch.tools.dex.reference import MethodReference
from dexpatch.utils import rich_helpers

class AccessFlags(enum.IntFlag):
    """
    Access flags of classes and methods.

    ``BRIDGE`` and ``VARARGS`` share their values with the field flags ``VOLATILE`` and ``TRANSIENT``.
    The method meaning comes first, so that it is the canonical one.

    >>> from dexpatch.tools.dex.method import AccessFlags
    >>> AccessFlags.parse('public static final').to_smali()
    'public static final'

    References:

    * https://source.android.com/docs/core/runtime/dex-format#access-flags
    """
    PUBLIC = 0x1
    PRIVATE = 0x2
    PROTECTED = 0x4
    STATIC = 0x8
    FINAL = 0x10
    SYNCHRONIZED = 0x20
    BRIDGE = 0x40
    VARARGS = 0x80
    NATIVE = 0x100
    INTERFACE = 0x200
    ABSTRACT = 0x400
    STRICT = 0x800
    SYNTHETIC = 0x1000
    ANNOTATION = 0x2000
    ENUM = 0x4000
    CONSTRUCTOR = 0x10000
    DECLARED_SYNCHRONIZED = 0x20000
    VOLATILE = 0x40
    TRANSIENT = 0x80

    VISIBILITY = PUBLIC | PRIVATE | PROTECTED

    @classmethod
    def keyword(cls, flag: AccessFlags) -> str:
        assert flag.name is not None
        return flag.name.lower().replace('_', '-')

    @classmethod
    def parse(cls, keywords: str | typing.Iterable[str]) -> AccessFlags:
        """
        Parse ``smali`` keywords, *e.g.* ``public final``.
        """
        flags = cls(0)
        for keyword in (keywords.split() if isinstance(keywords, str) else keywords):
            try:
                flags |= cls[keyword.upper().replace('-', '_')]
            except KeyError as e:
                raise ValueError(f'Unknown access flag {keyword!r}.') from e
        return flags

    def to_smali(self) -> str:
        return ' '.join(self.keyword(flag) for flag in ORDER if flag in self)

ORDER: typing.Final[tuple[AccessFlags, ...]] = (
    AccessFlags.PUBLIC,
    AccessFlags.PRIVATE,
    AccessFlags.PROTECTED,
    AccessFlags.STATIC,
    AccessFlags.FINAL,
    AccessFlags.SYNCHRONIZED,
    AccessFlags.BRIDGE,
    AccessFlags.VARARGS,
    AccessFlags.NATIVE,
    AccessFlags.INTERFACE,
    AccessFlags.ABSTRACT,
    AccessFlags.STRICT,
    AccessFlags.SYNTHETIC,
    AccessFlags.ANNOTATION,
    AccessFlags.ENUM,
    AccessFlags.CONSTRUCTOR,
    AccessFlags.DECLARED_SYNCHRONIZED,
)
"""Order in which ``baksmali`` writes the access flags of a method."""

@dataclasses.dataclass(slots=True)
class MethodImplementation:
    """
    The body of a method.
    """
    registers: int
    """Size of the register frame, *i.e.* the ``.registers`` directive."""

    instructions: InstructionSequence = dataclasses.field(default_factory=InstructionSequence)

    tries: list[str] = dataclasses.field(default_factory=list)
    """``.catch`` and ``.catchall`` directives, kept verbatim. They refer to labels, which move with their instruction."""

@dataclasses.dataclass(slots=True, eq=False)
class Method:
    """
    A method and its optional :py:attr:`implementation`.

    Abstract and native methods have no implementation.
    """
    defining_class: str
    name: str
    parameters: tuple[str, ...]
    return_type: str
    access_flags: AccessFlags = AccessFlags(0)
    implementation: MethodImplementation | None = None
    annotations: list[str] = dataclasses.field(default_factory=list)

    @property
    def reference(self) -> MethodReference:
        return MethodReference(
            defining_class=self.defining_class,
            name=self.name,
            parameters=self.parameters,
            return_type=self.return_type,
        )

    @property
    def is_static(self) -> bool:
        return AccessFlags.STATIC in self.access_flags

    @property
    def ins_size(self) -> int:
        """
        Number of registers holding the incoming parameters, including ``this`` for instance methods.

        The parameters are in the last :py:attr:`ins_size` registers of the frame, and ``p0`` is the first of them.
        """
        return sum(2 if parameter in ('J', 'D') else 1 for parameter in self.parameters) + (0 if self.is_static else 1)

    def to_smali(self) -> str:
        lines = [' '.join(filter(None, ('.method', self.access_flags.to_smali(), f'{self.name}{self.reference.prototype}')))]
        if self.implementation is not None:
            lines.append(f'    .registers {self.implementation.registers}')
        lines.extend(f'    {line}' for line in self.annotations)
        if self.implementation is not None:
            for instruction in self.implementation.instructions:
                lines.append('')
                lines.extend(f'    :{label}' for label in instruction.labels)
                lines.extend(f'    {line}' for line in instruction.to_smali().splitlines())
            if self.implementation.tries:
                lines.append('')
                lines.extend(f'    {line}' for line in self.implementation.tries)
        lines.append('.end method')
        return '\n'.join(lines)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.reference})'

@dataclasses.dataclass(slots=True, eq=False)
class ClassDef(rich_helpers.TreeMixin):
    """
    A class, as read from a ``.smali`` file.

    Fields and annotations are kept verbatim, they are never patched.
    """
    type: str
    access_flags: AccessFlags = AccessFlags(0)
    superclass: str | None = None
    interfaces: tuple[str, ...] = ()
    source: str | None = None
    annotations: list[str] = dataclasses.field(default_factory=list)
    fields: list[str] = dataclasses.field(default_factory=list)
    methods: list[Method] = dataclasses.field(default_factory=list)

    def find_methods(self, name: str) -> list[Method]:
        return [method for method in self.methods if method.name == name]

    def find_method(self, reference: MethodReference) -> Method | None:
        return next((method for method in self.methods if method.reference == reference), None)

    def to_smali(self) -> str:
        lines = [' '.join(filter(None, ('.class', self.access_flags.to_smali(), self.type)))]
        if self.superclass is not None:
            lines.append(f'.super {self.superclass}')
        if self.source is not None:
            lines.append(f'.source "{self.source}"')
        lines.extend(f'.implements {interface}' for interface in self.interfaces)
        for block in (self.annotations, self.fields):
            if block:
                lines.append('')
                lines.extend(block)
        for method in self.methods:
            lines.append('')
            lines.append(method.to_smali())
        return '\n'.join(lines) + '\n'

    def to_tree(self) -> rich.tree.Tree:
        tree = rich.tree.Tree(rich_helpers.verbatim(f'{self.access_flags.to_smali()} {self.type}'.strip()))
        for method in self.methods:
            size = len(method.implementation.instructions) if method.implementation is not None else 'no'
            tree.add(rich_helpers.verbatim(f'{method.access_flags.to_smali()} {method.name}{method.reference.prototype} ({size} instructions)'.strip()))
        return tree

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.type})'
