"""
Hook the extension into the application.

Patches of an application call into the extension, which needs the application context.
The context is handed over at the start of the method that :py:func:`shared_extension_patch` is given.
"""

from __future__ import annotations

import typing

from dexpatch.patch.applier import add_instructions
from dexpatch.patch.fingerprint import MethodFingerprint
from dexpatch.patch.patch import BytecodePatch, PatchContext

EXTENSION_CLASS: typing.Final[str] = 'Lapp/revanced/extension/shared/Utils;'

SET_CONTEXT: typing.Final[str] = f'invoke-static {{p0}}, {EXTENSION_CLASS}->setContext(Landroid/content/Context;)V'

def shared_extension_patch(
    fingerprint: MethodFingerprint,
    *,
    compatible_with: typing.Mapping[str, typing.Iterable[str] | None] | None = None,
) -> BytecodePatch:
    """
    Build the patch that passes ``p0`` of the method selected by `fingerprint` to the extension.

    The method must be an instance method of a :code:`Context` subclass, typically ``onCreate`` of the
    application or of its first activity.
    """
    def execute(context: PatchContext) -> None:
        add_instructions(context.method(fingerprint), 0, SET_CONTEXT)

    return BytecodePatch(
        name='Shared extension',
        description=f'Hand the context over to the extension in {fingerprint.name}.',
        execute=execute,
        compatible_with=compatible_with or {},
        use=False,
    )
