"""
Combine matchers from :py:mod:`dexpatch.patch.instruction` into sequence matchers.

Sequence matchers never read past the end of the sequence they are given: running out of
instructions means no match.
"""

from __future__ import annotations

import abc
import sys
import typing

import attrs
import mypy_extensions

from dexpatch.patch.errors import PatternNotFoundError
from dexpatch.patch.instruction import Captures, InstructionMatch, InstructionMatcher
from dexpatch.tools.dex.instruction import Instruction
from dexpatch.tools.dex.reference import FieldReference, MethodReference, StringReference, TypeReference

if sys.version_info >= (3, 12):
    from typing import override
else:
    from typing_extensions import override

@mypy_extensions.mypyc_attr(allow_interpreted_subclasses = True)
class SequenceMatcher(abc.ABC):
    """
    Base class for matchers of a sequence of instructions.
    """
    @abc.abstractmethod
    def match(self, instructions: typing.Sequence[Instruction]) -> list[InstructionMatch] | None:
        """
        .. note::

            The `instructions` may be consumed more than once.
            Therefore, it must be a :py:class:`typing.Sequence`, not a :py:class:`typing.Iterable`.
        """

    @property
    @abc.abstractmethod
    def next_index(self) -> int:
        """
        Return the next index in the sequence of instructions that can be matched.

        This is the index after the last matched instruction during the last call to :py:meth:`match`, *i.e.* how far
        this matcher consumed the sequence "plus one".

        The return value is only meaningful if the last call to :py:meth:`match` returned a non-:py:obj:`None` value.
        """

    @typing.final
    def assert_matches(self, instructions: typing.Sequence[Instruction]) -> list[InstructionMatch]:
        """
        Derived matchers are allowed to provide a nice message by implementing :py:meth:`explain`.
        """
        if (matched := self.match(instructions = instructions)) is None:
            raise PatternNotFoundError(self, detail = self.explain(instructions = instructions))
        return matched

    def explain(self, *, instructions: typing.Sequence[Instruction]) -> str: # pylint: disable=unused-argument
        return f'{self!r} did not match.'

def merge_captures(matches: typing.Iterable[InstructionMatch]) -> Captures:
    """
    Merge the captures of `matches`. Later matches win on conflicting names.
    """
    captures: Captures = {}
    for matched in matches:
        captures.update(matched.captured)
    return captures

class InSequenceAtMatcher(SequenceMatcher):
    """
    Check that the first element matches exactly.

    .. note::

        It is not decorated with :py:func:`dataclasses.dataclass` because of https://github.com/mypyc/mypyc/issues/1061.
    """
    __slots__ = ('matcher',)

    def __init__(self, matcher: InstructionMatcher) -> None:
        self.matcher: typing.Final[InstructionMatcher] = matcher

    @override
    def match(self, instructions: typing.Sequence[Instruction]) -> list[InstructionMatch] | None:
        if not instructions:
            return None
        matched = self.matcher.match(instructions[0])
        return [matched] if matched is not None else None

    @override
    @property
    def next_index(self) -> int:
        return 1

    @override
    def explain(self, *, instructions: typing.Sequence[Instruction]) -> str:
        if not instructions:
            return f'{self.matcher!r} did not match an empty sequence.'
        return f'{self.matcher!r} did not match {instructions[0]!r}.'

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.matcher!r})'

class OneOrMoreInSequenceMatcher(SequenceMatcher):
    """
    Match one or more times.

    .. note::

        It is not decorated with :py:func:`dataclasses.dataclass` because of https://github.com/mypyc/mypyc/issues/1061.
    """
    __slots__ = ('_index', 'matcher')

    def __init__(self, matcher: InstructionMatcher) -> None:
        self._index: int = 0
        self.matcher: typing.Final[InstructionMatcher] = matcher

    @override
    def match(self, instructions: typing.Sequence[Instruction]) -> list[InstructionMatch] | None:
        matches: list[InstructionMatch] = []

        for instruction in instructions:
            if (matched := self.matcher.match(instruction)) is not None:
                matches.append(matched)
            else:
                break
        self._index = len(matches)
        return matches or None

    @override
    @property
    def next_index(self) -> int:
        return self._index

    @override
    def explain(self, *, instructions: typing.Sequence[Instruction]) -> str:
        if not instructions:
            return f'{self.matcher!r} did not match an empty sequence.'
        return f'{self.matcher!r} did not match {instructions[0]!r}.'

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.matcher!r})'

class ZeroOrMoreInSequenceMatcher(OneOrMoreInSequenceMatcher):
    """
    Match zero or more times.
    """
    @override
    def match(self, instructions: typing.Sequence[Instruction]) -> list[InstructionMatch] | None:
        return super().match(instructions = instructions) or []

    @override
    def explain(self, *, instructions: typing.Sequence[Instruction]) -> str:
        raise RuntimeError('It always matches.')

class OrderedInSequenceMatcher(SequenceMatcher):
    """
    Match a sequence of :py:attr:`matchers` in the order they are provided.

    .. note::

        It is not decorated with :py:func:`dataclasses.dataclass` because of https://github.com/mypyc/mypyc/issues/1061.
    """
    __slots__ = ('_index', 'matchers')

    def __init__(self, matchers: typing.Iterable[SequenceMatcher | InstructionMatcher]) -> None:
        self._index: int = 0
        self.matchers: typing.Final[tuple[SequenceMatcher | InstructionMatcher, ...]] = tuple(matchers)

    @override
    def match(self, instructions: typing.Sequence[Instruction]) -> list[InstructionMatch] | None:
        matches: list[InstructionMatch] = []

        self._index = 0

        for matcher in self.matchers:
            if isinstance(matcher, InstructionMatcher):
                if self._index >= len(instructions) or (single := matcher.match(instructions[self._index])) is None:
                    return None
                matches.append(single)
                self._index += 1
            elif (many := matcher.match(instructions[self._index:])) is not None:
                matches.extend(many)
                self._index += matcher.next_index
            else:
                return None
        return matches

    @override
    @property
    def next_index(self) -> int:
        return self._index

    @override
    def explain(self, *, instructions: typing.Sequence[Instruction]) -> str:
        return f'{self.matchers!r} did not match {list(instructions)!r}.'

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.matchers!r})'

class InSequenceMatcher(SequenceMatcher):
    """
    Check that a sequence contains an element that matches exactly.

    Stops on the first match, whose starting position is stored in :py:attr:`index`.

    .. note::

        It is not decorated with :py:func:`dataclasses.dataclass` because of https://github.com/mypyc/mypyc/issues/1061.
    """
    __slots__ = ('_index', 'index', 'matcher')

    def __init__(self, matcher: SequenceMatcher | InstructionMatcher) -> None:
        self._index: int = 0
        self.index: int | None = None
        self.matcher: typing.Final[SequenceMatcher | InstructionMatcher] = matcher

    def _match_single(self, instructions: typing.Sequence[Instruction]) -> list[InstructionMatch] | None:
        assert isinstance(self.matcher, InstructionMatcher)
        for index, instruction in enumerate(instructions):
            if (single := self.matcher.match(instruction)) is not None:
                self.index = index
                self._index = index + 1
                return [single]
        return None

    def _match_sequence(self, instructions: typing.Sequence[Instruction]) -> list[InstructionMatch] | None:
        assert isinstance(self.matcher, SequenceMatcher)
        for index in range(len(instructions)):
            if (many := self.matcher.match(instructions=instructions[index:])) is not None:
                self.index = index
                self._index = index + self.matcher.next_index
                return many
        return None

    @override
    def match(self, instructions: typing.Sequence[Instruction]) -> list[InstructionMatch] | None:
        self.index = None
        if isinstance(self.matcher, InstructionMatcher):
            return self._match_single(instructions=instructions)
        return self._match_sequence(instructions=instructions)

    @override
    @property
    def next_index(self) -> int:
        return self._index

    @override
    def explain(self, *, instructions: typing.Sequence[Instruction]) -> str:
        return f'{self.matcher!r} did not match any of the {len(instructions)} instruction(s).'

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.matcher!r})'

class AnyOfMatcher(SequenceMatcher):
    """
    Match any of the :py:attr:`matchers`.

    .. note::

        It is not decorated with :py:func:`dataclasses.dataclass` because of https://github.com/mypyc/mypyc/issues/1061.
    """
    __slots__ = ('_index', 'matched', 'matchers')

    def __init__(self, *matchers: SequenceMatcher | InstructionMatcher) -> None:
        self._index: int = 0
        self.matched: int | None = None
        self.matchers: typing.Final[tuple[SequenceMatcher | InstructionMatcher, ...]] = tuple(matchers)

    @override
    def match(self, instructions: typing.Sequence[Instruction]) -> list[InstructionMatch] | None:
        """
        Loop over the :py:attr:`matchers` and return the first match.
        """
        self.matched = None
        for index, matcher in enumerate(self.matchers):
            if isinstance(matcher, InstructionMatcher):
                if instructions and (single := matcher.match(instructions[0])) is not None:
                    self.matched = index
                    self._index = 1
                    return [single]
            elif (many := matcher.match(instructions = instructions)) is not None:
                self.matched = index
                self._index = matcher.next_index
                return many
        return None

    @override
    @property
    def next_index(self) -> int:
        return self._index

    @override
    def explain(self, *, instructions: typing.Sequence[Instruction]) -> str:
        return f'None of {self.matchers!r} did match {list(instructions)!r}.'

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}{self.matchers!r}'

class LookaheadMatcher(SequenceMatcher):
    """
    Match :py:attr:`first` on the first instruction and :py:attr:`then` on the instruction :py:attr:`lookahead` positions later.

    Instructions in between are not looked at. If the sequence ends before the lookahead position, it does not match.

    It is also a predicate over a window of instructions, returning the merged captures, as expected by
    :py:func:`dexpatch.patch.fingerprint.find`.

    .. note::

        It is not decorated with :py:func:`dataclasses.dataclass` because of https://github.com/mypyc/mypyc/issues/1061.
    """
    __slots__ = ('first', 'lookahead', 'then')

    def __init__(self, first: InstructionMatcher, then: InstructionMatcher, lookahead: int = 1) -> None:
        if lookahead < 1:
            raise ValueError(f'The lookahead must be positive, got {lookahead}.')
        self.first: typing.Final[InstructionMatcher] = first
        self.then: typing.Final[InstructionMatcher] = then
        self.lookahead: typing.Final[int] = lookahead

    @override
    def match(self, instructions: typing.Sequence[Instruction]) -> list[InstructionMatch] | None:
        if len(instructions) <= self.lookahead:
            return None
        if (head := self.first.match(instructions[0])) is None:
            return None
        if (tail := self.then.match(instructions[self.lookahead])) is None:
            return None
        return [head, tail]

    @override
    @property
    def next_index(self) -> int:
        return self.lookahead + 1

    def __call__(self, window: typing.Sequence[Instruction]) -> Captures | None:
        if (matched := self.match(window)) is None:
            return None
        return merge_captures(matched)

    @override
    def explain(self, *, instructions: typing.Sequence[Instruction]) -> str:
        return f'{self.first!r} followed by {self.then!r} {self.lookahead} instruction(s) later did not match.'

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.first!r}, {self.then!r}, lookahead={self.lookahead})'

@attrs.define(frozen=True, slots=True)
class AllInSequenceMatcher:
    """
    Use :py:class:`InSequenceMatcher` to find all matches for :py:attr:`matcher` in a sequence of instructions.
    """
    matcher: InSequenceMatcher = attrs.field(converter=lambda x: x if isinstance(x, InSequenceMatcher) else InSequenceMatcher(x))

    def match(self, instructions: typing.Sequence[Instruction]) -> list[list[InstructionMatch]]:
        """
        Return the successive non-overlapping matches.
        """
        matches: list[list[InstructionMatch]] = []
        offset = 0
        while (matched := self.matcher.match(instructions=instructions[offset:])):
            matches.append(matched)
            offset += self.matcher.next_index
        return matches

ANY: typing.Final[object] = object()
"""Sentinel for a criterion that is not checked."""

class ReferenceValidator(InstructionMatcher):
    """
    Validate the reference of the instruction matched with :py:attr:`matcher`.

    The criteria apply according to the kind of reference:

    * method: `name`, `defining_class`, `parameters`, `return_type`
    * field: `name`, `defining_class`, `type`
    * string: `string`
    * type: `type`

    A criterion that does not apply to the kind of reference of the instruction makes it not match.

    .. note::

        It is not decorated with :py:func:`dataclasses.dataclass` because of https://github.com/mypyc/mypyc/issues/1061.
    """
    __slots__ = ('criteria', 'matcher')

    def __init__(self, matcher: InstructionMatcher, **criteria: typing.Any) -> None:
        if unknown := set(criteria) - {'name', 'defining_class', 'parameters', 'return_type', 'type', 'string'}:
            raise TypeError(f'Unknown criteria {sorted(unknown)}.')
        if 'parameters' in criteria and criteria['parameters'] is not None:
            criteria['parameters'] = tuple(criteria['parameters'])
        self.matcher: typing.Final[InstructionMatcher] = matcher
        self.criteria: typing.Final[dict[str, typing.Any]] = {k: v for k, v in criteria.items() if v is not None}

    def check(self, inst: Instruction) -> bool:
        values: dict[str, typing.Any]
        match inst.reference:
            case MethodReference(defining_class=defining_class, name=name, parameters=parameters, return_type=return_type):
                values = {'defining_class': defining_class, 'name': name, 'parameters': parameters, 'return_type': return_type}
            case FieldReference(defining_class=defining_class, name=name, type=ftype):
                values = {'defining_class': defining_class, 'name': name, 'type': ftype}
            case StringReference(value=value):
                values = {'string': value}
            case TypeReference(descriptor=descriptor):
                values = {'type': descriptor}
            case _:
                values = {}
        return all(values.get(key, ANY) == expected for key, expected in self.criteria.items())

    @override
    def match(self, inst: Instruction) -> InstructionMatch | None:
        if (matched := self.matcher.match(inst)) is not None and self.check(inst):
            return matched
        return None

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.matcher!r}, {self.criteria!r})'

class RegisterValidator(InstructionMatcher):
    """
    Validate and/or capture the register at :py:attr:`index` of the instruction matched with :py:attr:`matcher`.

    If :py:attr:`register` is given, the register must be equal to it.
    If :py:attr:`capture` is given, the register is captured under that name.

    .. note::

        It is not decorated with :py:func:`dataclasses.dataclass` because of https://github.com/mypyc/mypyc/issues/1061.
    """
    __slots__ = ('capture', 'index', 'matcher', 'register')

    def __init__(self, matcher: InstructionMatcher, index: int = 0, register: int | None = None, capture: str | None = None) -> None:
        self.matcher: typing.Final[InstructionMatcher] = matcher
        self.index: typing.Final[int] = index
        self.register: typing.Final[int | None] = register
        self.capture: typing.Final[str | None] = capture

    @override
    def match(self, inst: Instruction) -> InstructionMatch | None:
        if (matched := self.matcher.match(inst)) is not None:
            try:
                register = inst.registers[self.index]
            except IndexError:
                return None
            if self.register is not None and register != self.register:
                return None
            return matched.capture(**{self.capture: register}) if self.capture is not None else matched
        return None

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.matcher!r}, index={self.index}, register={self.register}, capture={self.capture!r})'

class LiteralValidator(InstructionMatcher):
    """
    Validate the literal of the instruction matched with :py:attr:`matcher`.

    .. note::

        It is not decorated with :py:func:`dataclasses.dataclass` because of https://github.com/mypyc/mypyc/issues/1061.
    """
    __slots__ = ('literal', 'matcher')

    def __init__(self, matcher: InstructionMatcher, literal: int) -> None:
        self.matcher: typing.Final[InstructionMatcher] = matcher
        self.literal: typing.Final[int] = literal

    @override
    def match(self, inst: Instruction) -> InstructionMatch | None:
        if (matched := self.matcher.match(inst)) is not None and inst.literal == self.literal:
            return matched
        return None

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.matcher!r}, literal={self.literal})'
