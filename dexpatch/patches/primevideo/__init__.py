"""
Patches for Prime Video.
"""

import typing

PACKAGE: typing.Final[str] = 'com.amazon.avod.thirdpartyclient'

__all__ = ('PACKAGE',)
