"""
Fingerprints of the ad break state machine.

References:

* :code:`com.amazon.avod.media.ads.internal.state.ServerInsertedAdBreakState`
* :code:`com.amazon.avod.fsm.StateBase`
"""

from __future__ import annotations

import typing

from dexpatch.patch.composite import opcode_is
from dexpatch.patch.fingerprint import InstructionFingerprint, MethodFingerprint
from dexpatch.tools.dex.method import AccessFlags
from dexpatch.tools.dex.opcode import Opcode

SERVER_INSERTED_AD_BREAK_STATE: typing.Final[str] = 'Lcom/amazon/avod/media/ads/internal/state/ServerInsertedAdBreakState;'
AD_BREAK_TRIGGER: typing.Final[str] = 'Lcom/amazon/avod/media/ads/internal/state/AdBreakTrigger;'
STATE_BASE: typing.Final[str] = 'Lcom/amazon/avod/fsm/StateBase;'
VIDEO_PLAYER: typing.Final[str] = 'Lcom/amazon/avod/media/playback/VideoPlayer;'

enter_server_inserted_ad_break_state_fingerprint: typing.Final[MethodFingerprint] = MethodFingerprint(
    name='enterServerInsertedAdBreakStateFingerprint',
    defining_class=SERVER_INSERTED_AD_BREAK_STATE,
    method_name='enter',
    access_flags=AccessFlags.PUBLIC,
    return_type='V',
    parameters=('Lcom/amazon/avod/fsm/Trigger;',),
)

do_trigger_fingerprint: typing.Final[MethodFingerprint] = MethodFingerprint(
    name='doTriggerFingerprint',
    defining_class=STATE_BASE,
    method_name='doTrigger',
    access_flags=AccessFlags.PROTECTED,
    return_type='V',
    opcodes=(Opcode.IGET_OBJECT, Opcode.INVOKE_INTERFACE, Opcode.RETURN_VOID),
)

primary_player_fingerprint: typing.Final[InstructionFingerprint] = InstructionFingerprint(
    name='getPrimaryPlayerFingerprint',
    predicate=opcode_is(Opcode.INVOKE_VIRTUAL).with_method_reference(
        name='getPrimaryPlayer', return_type=VIDEO_PLAYER,
    ).followed_by(
        opcode_is(Opcode.MOVE_RESULT_OBJECT).capture_register('register'),
    ),
)
"""
The primary video player being obtained::

    invoke-virtual {...}, ...->getPrimaryPlayer()Lcom/amazon/avod/media/playback/VideoPlayer;
    move-result-object vX

Newer releases add setup and cast instructions at the start of ``enter``, hence no fixed index.
"""
