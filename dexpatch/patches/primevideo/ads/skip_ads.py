"""
Skip video stream ads.

All the logic of :code:`ServerInsertedAdBreakState.enter()`, which plays the ad clips of the break, is skipped.
Instead, the extension seeks the video player over the entire break and resets the state machine.
"""

from __future__ import annotations

import typing

from dexpatch.patch.applier import add_instructions, set_access_flags
from dexpatch.patch.patch import PatchContext, bytecode_patch
from dexpatch.patches.primevideo import PACKAGE
from dexpatch.patches.primevideo.ads.fingerprints import (
    AD_BREAK_TRIGGER,
    SERVER_INSERTED_AD_BREAK_STATE,
    VIDEO_PLAYER,
    do_trigger_fingerprint,
    enter_server_inserted_ad_break_state_fingerprint,
    primary_player_fingerprint,
)
from dexpatch.patches.primevideo.extension import shared_extension
from dexpatch.tools.dex.method import AccessFlags

EXTENSION_CLASS: typing.Final[str] = 'Lapp/revanced/extension/primevideo/ads/SkipAdsPatch;'

COMPATIBLE_VERSIONS: typing.Final[tuple[str, ...]] = ('3.0.412.2947', '3.0.438.2347')

def skip_ad_break(register: int) -> str:
    """
    Hand the state (``p0``), the trigger (``p1``) and the player held in `register` to the extension, then return.
    """
    return f"""
        invoke-static {{p0, p1, v{register}}}, {EXTENSION_CLASS}->enterServerInsertedAdBreakState({SERVER_INSERTED_AD_BREAK_STATE}{AD_BREAK_TRIGGER}{VIDEO_PLAYER})V
        return-void
    """

@bytecode_patch(
    name='Skip ads',
    description='Automatically skips video stream ads.',
    compatible_with={PACKAGE: COMPATIBLE_VERSIONS},
    depends_on=(shared_extension,),
)
def skip_ads_patch(context: PatchContext) -> None:
    do_trigger = context.method(do_trigger_fingerprint)
    enter = context.method(enter_server_inserted_ad_break_state_fingerprint)
    found = primary_player_fingerprint.locate(enter)

    # The extension calls doTrigger().
    set_access_flags(do_trigger, AccessFlags.PUBLIC)

    # After the move-result-object, so that the player register is set.
    add_instructions(enter, found.index + 2, skip_ad_break(found.captures['register']))
