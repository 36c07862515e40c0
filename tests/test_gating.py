from __future__ import annotations

from chat_bridge.gating import GatingState, GroupMatcher


def test_defaults_enabled_and_nothing_paused():
    gating = GatingState()
    assert gating.is_enabled()
    assert not gating.is_paused("A")


def test_pause_and_resume_are_idempotent():
    gating = GatingState()
    gating.pause("A")
    gating.pause("A")
    assert gating.paused_ids() == ["A"]

    gating.resume("A")
    gating.resume("A")
    assert not gating.is_paused("A")
    assert gating.paused_ids() == []


def test_toggle_enabled():
    gating = GatingState()
    gating.set_enabled(False)
    assert not gating.is_enabled()
    gating.set_enabled(True)
    assert gating.is_enabled()


def test_group_matcher():
    groups = GroupMatcher()
    assert groups.is_group("120363@g.us")
    assert not groups.is_group("5511999999999@c.us")
    assert groups.is_group("5511999999999@c.us", flag=True)


def test_group_matcher_falls_back_to_default_pattern():
    for pattern in (None, "", 42):
        groups = GroupMatcher(pattern)
        assert groups.is_group("120363@g.us")
        assert not groups.is_group("5511999999999@c.us")
