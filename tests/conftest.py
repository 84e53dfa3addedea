import pathlib
import typing

import pytest

from dexpatch.tools.dex import ClassDef, Decoder

SERVER_INSERTED_AD_BREAK_STATE: typing.Final[str] = """\
.class public Lcom/amazon/avod/media/ads/internal/state/ServerInsertedAdBreakState;
.super Lcom/amazon/avod/media/ads/internal/state/AdBreakState;
.source "ServerInsertedAdBreakState.java"


# direct methods
.method public constructor <init>()V
    .registers 1

    invoke-direct {p0}, Lcom/amazon/avod/media/ads/internal/state/AdBreakState;-><init>()V

    return-void
.end method


# virtual methods
.method public enter(Lcom/amazon/avod/fsm/Trigger;)V
    .locals 4

    .line 42
    invoke-super {p0, p1}, Lcom/amazon/avod/media/ads/internal/state/AdBreakState;->enter(Lcom/amazon/avod/fsm/Trigger;)V

    check-cast p1, Lcom/amazon/avod/media/ads/internal/state/AdBreakTrigger;

    .line 43
    invoke-virtual {p0}, Lcom/amazon/avod/media/ads/internal/state/ServerInsertedAdBreakState;->getPrimaryPlayer()Lcom/amazon/avod/media/playback/VideoPlayer;

    move-result-object v0

    invoke-interface {v0}, Lcom/amazon/avod/media/playback/VideoPlayer;->getCurrentPosition()J

    move-result-wide v1

    invoke-virtual {p1}, Lcom/amazon/avod/media/ads/internal/state/AdBreakTrigger;->getBreak()Lcom/amazon/avod/media/ads/AdBreak;

    move-result-object v3

    if-eqz v3, :cond_0

    return-void

    :cond_0
    return-void
.end method
"""
"""
The method ``enter`` has 11 instructions. The primary player is obtained at index 2, into ``v0``.
Its frame has 6 registers, so that ``p0`` is ``v4`` and ``p1`` is ``v5``.
"""

STATE_BASE: typing.Final[str] = """\
.class public abstract Lcom/amazon/avod/fsm/StateBase;
.super Ljava/lang/Object;
.source "StateBase.java"

# interfaces
.implements Lcom/amazon/avod/fsm/State;


# instance fields
.field private final mStateMachine:Lcom/amazon/avod/fsm/StateMachine;


# virtual methods
.method protected doTrigger(Lcom/amazon/avod/fsm/Trigger;)V
    .registers 3

    iget-object v0, p0, Lcom/amazon/avod/fsm/StateBase;->mStateMachine:Lcom/amazon/avod/fsm/StateMachine;

    invoke-interface {v0, p1}, Lcom/amazon/avod/fsm/StateMachine;->doTrigger(Lcom/amazon/avod/fsm/Trigger;)V

    return-void
.end method

.method public abstract enter(Lcom/amazon/avod/fsm/Trigger;)V
.end method
"""

SPLASH_SCREEN_ACTIVITY: typing.Final[str] = """\
.class public Lcom/amazon/avod/client/activity/SplashScreenActivity;
.super Landroid/app/Activity;


# virtual methods
.method protected onCreate(Landroid/os/Bundle;)V
    .locals 0

    invoke-super {p0, p1}, Landroid/app/Activity;->onCreate(Landroid/os/Bundle;)V

    return-void
.end method
"""

def decode(code: str) -> ClassDef:
    classdef = Decoder(code=code).classdef
    assert classdef is not None
    return classdef

@pytest.fixture
def ad_break_state() -> ClassDef:
    return decode(SERVER_INSERTED_AD_BREAK_STATE)

@pytest.fixture
def state_base() -> ClassDef:
    return decode(STATE_BASE)

@pytest.fixture
def splash_screen_activity() -> ClassDef:
    return decode(SPLASH_SCREEN_ACTIVITY)

@pytest.fixture
def primevideo_classes(ad_break_state, state_base, splash_screen_activity) -> list[ClassDef]:
    """
    Fresh classes for each test, since patching mutates them.
    """
    return [splash_screen_activity, state_base, ad_break_state]

@pytest.fixture
def smali_file(tmp_path: pathlib.Path) -> pathlib.Path:
    path = tmp_path / 'StateBase.smali'
    path.write_text(STATE_BASE)
    return path
