"""
Errors raised while locating and patching methods.

They all name the method or fingerprint that failed, so that a patch broken by a new
release of the target application can be diagnosed.
"""

from __future__ import annotations

import typing

from dexpatch.tools.dex.method import Method

class PatchError(RuntimeError):
    """
    Base class of the errors raised by :py:mod:`dexpatch.patch`.
    """

class MissingBodyError(PatchError):
    """
    The method has no implementation to search or patch, *e.g.* it is abstract or native.
    """
    def __init__(self, method: Method) -> None:
        self.method = method
        super().__init__(f'Missing implementation for {method.reference}.')

class PatternNotFoundError(PatchError):
    """
    A fingerprint did not match.
    """
    def __init__(self, fingerprint: typing.Any, method: Method | None = None, *, detail: str | None = None) -> None:
        self.fingerprint = fingerprint
        self.method = method
        name = getattr(fingerprint, 'name', None) or repr(fingerprint)
        message = f'Fingerprint {name} did not match' + (f' in {method.reference}.' if method is not None else '.')
        super().__init__(message if detail is None else f'{message} {detail}')

class OutOfBoundsError(PatchError):
    """
    An insertion index lies outside of the method body.
    """
    def __init__(self, method: Method, index: int, length: int) -> None:
        self.method = method
        self.index = index
        self.length = length
        super().__init__(f'Index {index} is out of bounds for {method.reference}, which has {length} instruction(s).')
