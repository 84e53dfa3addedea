"""
Locate instructions within a method body, and methods within classes, by structure rather than by position.

Instruction fingerprints
    :py:func:`find` scans a sequence of instructions for the first window satisfying a predicate.
    :py:class:`InstructionFingerprint` names such a search and fails loudly when it does not match.

Method fingerprints
    :py:class:`MethodFingerprint` selects a method by its signature, access flags, an opcode pattern,
    the strings it loads, and a custom predicate.
"""

from __future__ import annotations

import logging
import typing

import attrs

from dexpatch.patch.composite_impl import InSequenceMatcher, OrderedInSequenceMatcher
from dexpatch.patch.errors import MissingBodyError, PatternNotFoundError
from dexpatch.patch.instruction import AnyMatcher, Captures, InstructionMatcher, OpcodeMatcher
from dexpatch.tools.dex.instruction import Instruction
from dexpatch.tools.dex.method import AccessFlags, ClassDef, Method
from dexpatch.tools.dex.opcode import Opcode
from dexpatch.tools.dex.reference import StringReference

WindowPredicate: typing.TypeAlias = typing.Callable[[typing.Sequence[Instruction]], Captures | bool | None]
"""
A predicate over a window of consecutive instructions.

It returns the captured operands (possibly none) when it holds, and :py:obj:`None` or :py:obj:`False` otherwise.
Returning :py:obj:`True` is the same as returning no captures.
"""

@attrs.define(frozen=True, slots=True)
class Found:
    """
    Position of the first match, and the operands captured there.
    """
    index: int
    captures: Captures = attrs.field(factory=dict)

def _on_first_instruction(matcher: InstructionMatcher) -> WindowPredicate:
    def predicate(window: typing.Sequence[Instruction]) -> Captures | None:
        matched = matcher.match(window[0])
        return matched.captured if matched is not None else None
    return predicate

def find(instructions: typing.Sequence[Instruction], predicate: WindowPredicate | InstructionMatcher, lookahead: int | None = None) -> Found | None:
    """
    Find the first position `i` for which `predicate` holds on the window ``instructions[i:i + lookahead + 1]``.

    Positions whose window would run past the end of `instructions` are not evaluated.
    If `lookahead` is not given, it is the ``lookahead`` attribute of `predicate` if it has one, 0 otherwise.
    An :py:class:`dexpatch.patch.instruction.InstructionMatcher` is applied to the first instruction of each window.

    >>> from dexpatch.patch.fingerprint import find
    >>> from dexpatch.tools.dex import Assembler, Opcode
    >>> instructions = Assembler().assemble('''
    ...     const/4 v0, 0x0
    ...     const/4 v1, 0x1
    ...     return v1
    ... ''')
    >>> find(instructions, lambda window: window[1].opcode is Opcode.RETURN and {'value': window[0].literal}, lookahead=1)
    Found(index=1, captures={'value': 1})
    >>> find(instructions, lambda window: window[0].opcode is Opcode.THROW) is None
    True
    """
    if lookahead is None:
        lookahead = getattr(predicate, 'lookahead', 0)
    if lookahead < 0:
        raise ValueError(f'The lookahead cannot be negative, got {lookahead}.')
    if isinstance(predicate, InstructionMatcher):
        predicate = _on_first_instruction(predicate)

    for index in range(len(instructions) - lookahead):
        result = predicate(tuple(instructions[index:index + lookahead + 1]))
        if result is None or result is False:
            continue
        return Found(index=index, captures={} if result is True else dict(result))
    return None

@attrs.define(frozen=True, slots=True)
class InstructionFingerprint:
    """
    A named :py:func:`find` search within the body of a method.
    """
    name: str
    predicate: WindowPredicate | InstructionMatcher
    lookahead: int | None = None

    def find(self, instructions: typing.Sequence[Instruction]) -> Found | None:
        return find(instructions, self.predicate, lookahead=self.lookahead)

    def locate(self, method: Method) -> Found:
        """
        Search the body of `method`.

        :raises MissingBodyError: If `method` has no implementation.
        :raises PatternNotFoundError: If nothing matches.
        """
        if method.implementation is None:
            raise MissingBodyError(method)
        if (found := self.find(method.implementation.instructions)) is None:
            raise PatternNotFoundError(self, method)
        logging.debug(f'Fingerprint {self.name} matched at index {found.index} of {method.reference} with {found.captures}.')
        return found

@attrs.define(frozen=True, slots=True)
class MethodMatch:
    classdef: ClassDef
    method: Method
    pattern_index: int | None = None
    """Start of the first occurrence of the opcode pattern when the match was made, if the fingerprint has one. Stale after an insertion."""

def _to_tuple(value: typing.Iterable[typing.Any] | None) -> tuple[typing.Any, ...] | None:
    return tuple(value) if value is not None else None

@attrs.define(frozen=True, slots=True, kw_only=True)
class MethodFingerprint: # pylint: disable=too-many-instance-attributes
    """
    Select a method. All the given criteria must hold.

    * :py:attr:`parameters` must have as many entries as the method has parameters, each being a prefix of the parameter type.
    * :py:attr:`opcodes` must occur consecutively in the body. :py:obj:`None` entries match any opcode.
    * :py:attr:`strings` must all be loaded with ``const-string`` in the body.

    >>> from dexpatch.patch.fingerprint import MethodFingerprint
    >>> from dexpatch.tools.dex import AccessFlags, Decoder, Opcode
    >>> classdef = Decoder(code='''
    ... .class public Lcom/example/Greeter;
    ... .super Ljava/lang/Object;
    ... .method public greet()Ljava/lang/String;
    ...     .registers 2
    ...     const-string v0, "hello"
    ...     return-object v0
    ... .end method
    ... ''').classdef
    >>> MethodFingerprint(name='greet', access_flags=AccessFlags.PUBLIC, strings=('hello',), opcodes=(Opcode.CONST_STRING, None)).resolve((classdef,)).method
    Method(Lcom/example/Greeter;->greet()Ljava/lang/String;)
    """
    name: str
    defining_class: str | None = None
    method_name: str | None = None
    return_type: str | None = None
    access_flags: AccessFlags | None = None
    parameters: tuple[str, ...] | None = attrs.field(default=None, converter=_to_tuple)
    opcodes: tuple[Opcode | None, ...] | None = attrs.field(default=None, converter=_to_tuple)
    strings: tuple[str, ...] | None = attrs.field(default=None, converter=_to_tuple)
    custom: typing.Callable[[Method, ClassDef], bool] | None = None

    def pattern(self) -> InSequenceMatcher | None:
        """
        A fresh matcher for :py:attr:`opcodes`. Sequence matchers are stateful, hence one per search.
        """
        if self.opcodes is None:
            return None
        matchers: list[InstructionMatcher] = [AnyMatcher() if opcode is None else OpcodeMatcher(opcode) for opcode in self.opcodes]
        return InSequenceMatcher(OrderedInSequenceMatcher(matchers))

    def pattern_index(self, method: Method) -> int | None:
        """
        Start of the first occurrence of :py:attr:`opcodes` in the current body of `method`, if any.
        """
        if (pattern := self.pattern()) is None or method.implementation is None:
            return None
        if pattern.match(method.implementation.instructions) is None:
            return None
        return pattern.index

    def _signature_matches(self, classdef: ClassDef, method: Method) -> bool:
        if self.defining_class is not None and classdef.type != self.defining_class:
            return False
        if self.method_name is not None and method.name != self.method_name:
            return False
        if self.return_type is not None and method.return_type != self.return_type:
            return False
        if self.access_flags is not None and method.access_flags != self.access_flags:
            return False
        if self.parameters is not None:
            if len(self.parameters) != len(method.parameters):
                return False
            if not all(actual.startswith(expected) for expected, actual in zip(self.parameters, method.parameters)):
                return False
        return True

    def match(self, classdef: ClassDef, method: Method) -> MethodMatch | None:
        if not self._signature_matches(classdef, method):
            return None

        pattern_index: int | None = None

        if self.opcodes is not None or self.strings is not None:
            if method.implementation is None:
                return None
            instructions = method.implementation.instructions

            if self.strings is not None:
                loaded = {inst.reference.value for inst in instructions if isinstance(inst.reference, StringReference)}
                if not all(string in loaded for string in self.strings):
                    return None

            if self.opcodes is not None and (pattern_index := self.pattern_index(method)) is None:
                return None

        if self.custom is not None and not self.custom(method, classdef):
            return None

        return MethodMatch(classdef=classdef, method=method, pattern_index=pattern_index)

    def resolve(self, classes: typing.Iterable[ClassDef]) -> MethodMatch:
        """
        Return the first matching method, in the order of `classes` and of their methods.

        :raises PatternNotFoundError: If no method matches.
        """
        for classdef in classes:
            for method in classdef.methods:
                if (matched := self.match(classdef, method)) is not None:
                    logging.debug(f'Fingerprint {self.name} resolved to {method.reference}.')
                    return matched
        raise PatternNotFoundError(self)
