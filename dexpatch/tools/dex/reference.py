"""
Items referenced by instructions, as written in ``smali``.

>>> from dexpatch.tools.dex.reference import MethodReference
>>> MethodReference.parse('Lcom/example/Player;->seek(JZ)V')
MethodReference(defining_class='Lcom/example/Player;', name='seek', parameters=('J', 'Z'), return_type='V')
"""

from __future__ import annotations

import dataclasses
import typing

import regex

TYPE_DESCRIPTOR: typing.Final[str] = r'\[*(?:[VZBSCIJFD]|L[^;\s]+;)'
"""A type descriptor, *e.g.* ``I``, ``[J`` or ``Ljava/lang/String;``."""

MEMBER_NAME: typing.Final[str] = r'[^\s\(\):;]+'
"""A simple member name, *e.g.* ``getPrimaryPlayer`` or ``<init>``."""

TYPE_DESCRIPTORS: typing.Final[regex.Pattern[str]] = regex.compile(TYPE_DESCRIPTOR)

METHOD_REFERENCE: typing.Final[regex.Pattern[str]] = regex.compile(
    rf'(?P<defining_class>{TYPE_DESCRIPTOR})->(?P<name>{MEMBER_NAME})'
    rf'\((?P<parameters>(?:{TYPE_DESCRIPTOR})*)\)(?P<return_type>{TYPE_DESCRIPTOR})',
)

FIELD_REFERENCE: typing.Final[regex.Pattern[str]] = regex.compile(
    rf'(?P<defining_class>{TYPE_DESCRIPTOR})->(?P<name>{MEMBER_NAME}):(?P<type>{TYPE_DESCRIPTOR})',
)

def split_descriptors(descriptors: str) -> tuple[str, ...]:
    """
    Split concatenated type descriptors, as found in a method prototype.

    >>> from dexpatch.tools.dex.reference import split_descriptors
    >>> split_descriptors('IJ[Ljava/lang/String;Z')
    ('I', 'J', '[Ljava/lang/String;', 'Z')
    """
    parts = tuple(TYPE_DESCRIPTORS.findall(descriptors))
    if ''.join(parts) != descriptors:
        raise ValueError(f'Invalid type descriptors {descriptors!r}.')
    return parts

@dataclasses.dataclass(frozen=True, slots=True)
class StringReference:
    """
    A string constant. The :py:attr:`value` is kept escaped as in ``smali``.
    """
    value: str

    def __str__(self) -> str:
        return f'"{self.value}"'

@dataclasses.dataclass(frozen=True, slots=True)
class TypeReference:
    descriptor: str

    def __str__(self) -> str:
        return self.descriptor

@dataclasses.dataclass(frozen=True, slots=True)
class FieldReference:
    defining_class: str
    name: str
    type: str

    @classmethod
    def parse(cls, text: str) -> FieldReference:
        if (matched := FIELD_REFERENCE.fullmatch(text)) is None:
            raise ValueError(f'Invalid field reference {text!r}.')
        return cls(defining_class=matched.group('defining_class'), name=matched.group('name'), type=matched.group('type'))

    def __str__(self) -> str:
        return f'{self.defining_class}->{self.name}:{self.type}'

@dataclasses.dataclass(frozen=True, slots=True)
class MethodReference:
    """
    Symbol identity of a method.

    Equality is structural: two references to the same declaring type, name and prototype are equal.
    """
    defining_class: str
    name: str
    parameters: tuple[str, ...]
    return_type: str

    @classmethod
    def parse(cls, text: str) -> MethodReference:
        if (matched := METHOD_REFERENCE.fullmatch(text)) is None:
            raise ValueError(f'Invalid method reference {text!r}.')
        return cls(
            defining_class=matched.group('defining_class'),
            name=matched.group('name'),
            parameters=split_descriptors(matched.group('parameters')),
            return_type=matched.group('return_type'),
        )

    @property
    def prototype(self) -> str:
        return f'({"".join(self.parameters)}){self.return_type}'

    def __str__(self) -> str:
        return f'{self.defining_class}->{self.name}{self.prototype}'

@dataclasses.dataclass(frozen=True, slots=True)
class RawReference:
    """
    Call sites, method handles and prototypes are kept verbatim.
    """
    text: str

    def __str__(self) -> str:
        return self.text

Reference: typing.TypeAlias = StringReference | TypeReference | FieldReference | MethodReference | RawReference
