from __future__ import annotations

import typing

from dexpatch.patch.fingerprint import MethodFingerprint
from dexpatch.patches.primevideo import PACKAGE
from dexpatch.patches.shared.extension import shared_extension_patch
from dexpatch.tools.dex.method import ClassDef, Method

def _is_splash_screen_on_create(method: Method, classdef: ClassDef) -> bool:
    return method.name == 'onCreate' and classdef.type.endswith('/SplashScreenActivity;')

application_init_fingerprint: typing.Final[MethodFingerprint] = MethodFingerprint(
    name='applicationInitFingerprint',
    return_type='V',
    parameters=('Landroid/os/Bundle;',),
    custom=_is_splash_screen_on_create,
)

shared_extension = shared_extension_patch(application_init_fingerprint, compatible_with={PACKAGE: None})
