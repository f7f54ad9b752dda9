"""Tests for hold-to-drive buttons and keyboard input tracking."""
from unittest.mock import Mock

import pytest
from kivy.event import EventDispatcher

from directions import Direction
from inputs import HoldBehavior, InputTracker, KEY_BINDINGS, accepts_code
from rc_controller import Controller

KEY_UP, KEY_W, KEY_DOWN, KEY_SPACE = 273, 119, 274, 32


class TouchTarget(EventDispatcher):
    """Stand-in for a widget occupying the 100x100 square at the origin."""

    def collide_point(self, x, y):
        return 0 <= x <= 100 and 0 <= y <= 100

    def on_touch_down(self, touch):
        return False

    def on_touch_move(self, touch):
        return False

    def on_touch_up(self, touch):
        return False


class HoldButton(HoldBehavior, TouchTarget):
    pass


class FakeTouch:
    def __init__(self, pos):
        self.pos = pos
        self.grabbed = []

    def grab(self, widget):
        self.grabbed.append(widget)

    def ungrab(self, widget):
        self.grabbed.remove(widget)

    @property
    def grab_current(self):
        # The window re-dispatches a grabbed touch with grab_current set
        return self.grabbed[0] if self.grabbed else None


@pytest.fixture
def controller():
    return Mock()


@pytest.fixture
def tracker(controller):
    return InputTracker(controller)


def button(tracker, direction=Direction.FORWARD):
    return HoldButton(direction=direction, tracker=tracker)


class TestHoldBehavior:
    def test_touch_down_presses(self, tracker, controller):
        btn = button(tracker)
        touch = FakeTouch((50, 50))

        assert btn.on_touch_down(touch) is True

        assert btn.held is True
        assert touch.grabbed == [btn]
        controller.press.assert_called_once_with(Direction.FORWARD)

    def test_touch_outside_is_ignored(self, tracker, controller):
        btn = button(tracker)

        assert btn.on_touch_down(FakeTouch((150, 50))) is False

        assert btn.held is False
        controller.press.assert_not_called()

    def test_touch_up_releases(self, tracker, controller):
        btn = button(tracker)
        touch = FakeTouch((50, 50))
        btn.on_touch_down(touch)

        btn.on_touch_up(touch)

        assert btn.held is False
        assert touch.grabbed == []
        controller.release.assert_called_once_with(Direction.FORWARD)

    def test_moving_inside_keeps_holding(self, tracker, controller):
        btn = button(tracker)
        touch = FakeTouch((50, 50))
        btn.on_touch_down(touch)

        touch.pos = (90, 10)
        btn.on_touch_move(touch)

        assert btn.held is True
        controller.release.assert_not_called()

    def test_sliding_off_releases_once(self, tracker, controller):
        btn = button(tracker)
        touch = FakeTouch((50, 50))
        btn.on_touch_down(touch)

        touch.pos = (150, 50)
        btn.on_touch_move(touch)

        assert btn.held is False
        controller.release.assert_called_once_with(Direction.FORWARD)

        # No longer grabbed, so the lift is not ours
        assert btn.on_touch_up(touch) is False
        controller.release.assert_called_once_with(Direction.FORWARD)

    def test_second_touch_while_held_is_ignored(self, tracker, controller):
        btn = button(tracker)
        btn.on_touch_down(FakeTouch((50, 50)))

        second = FakeTouch((20, 20))
        assert btn.on_touch_down(second) is False

        assert second.grabbed == []
        controller.press.assert_called_once()

    def test_without_tracker_only_tracks_held(self):
        btn = HoldButton(direction=Direction.LEFT)
        touch = FakeTouch((50, 50))

        btn.on_touch_down(touch)
        assert btn.held is True
        btn.on_touch_up(touch)
        assert btn.held is False


class TestInputTracker:
    def test_two_buttons_share_a_direction(self, tracker, controller):
        top, pad = button(tracker), button(tracker)
        top_touch, pad_touch = FakeTouch((10, 10)), FakeTouch((60, 60))
        top.on_touch_down(top_touch)
        pad.on_touch_down(pad_touch)

        top.on_touch_up(top_touch)

        controller.press.assert_called_once_with(Direction.FORWARD)
        controller.release.assert_not_called()
        assert tracker.is_held(Direction.FORWARD)

        pad.on_touch_up(pad_touch)

        controller.release.assert_called_once_with(Direction.FORWARD)
        assert not tracker.is_held(Direction.FORWARD)

    def test_two_keys_share_a_direction(self, tracker, controller):
        tracker.key_down(KEY_W)
        tracker.key_down(KEY_UP)

        assert tracker.key_up(KEY_UP) is True
        controller.release.assert_not_called()
        assert tracker.is_held(Direction.FORWARD)

        assert tracker.key_up(KEY_W) is True
        controller.release.assert_called_once_with(Direction.FORWARD)

    def test_key_and_button_share_a_direction(self, tracker, controller):
        btn = button(tracker)
        touch = FakeTouch((50, 50))
        btn.on_touch_down(touch)
        tracker.key_down(KEY_UP)

        btn.on_touch_up(touch)
        controller.release.assert_not_called()

        tracker.key_up(KEY_UP)
        controller.release.assert_called_once_with(Direction.FORWARD)

    def test_key_repeat_presses_once(self, tracker, controller):
        for _ in range(5):
            assert tracker.key_down(KEY_DOWN) is True

        controller.press.assert_called_once_with(Direction.BACKWARD)

    def test_unbound_keys_are_not_handled(self, tracker, controller):
        assert tracker.key_down(ord('x')) is False
        assert tracker.key_up(ord('x')) is False
        controller.press.assert_not_called()

    def test_key_up_without_key_down_is_ignored(self, tracker, controller):
        assert tracker.key_up(KEY_SPACE) is False
        controller.release.assert_not_called()

    def test_key_bindings(self):
        assert KEY_BINDINGS[KEY_UP] is Direction.FORWARD
        assert KEY_BINDINGS[KEY_W] is Direction.FORWARD
        assert KEY_BINDINGS[KEY_SPACE] is Direction.STOP
        assert KEY_BINDINGS[ord('a')] is Direction.LEFT
        assert KEY_BINDINGS[ord('d')] is Direction.RIGHT

    def test_clear_resets_buttons_and_controller(self, tracker, controller):
        btn = button(tracker, Direction.LEFT)
        touch = FakeTouch((50, 50))
        btn.on_touch_down(touch)
        tracker.key_down(KEY_W)

        tracker.clear()

        assert btn.held is False
        assert tracker.holders == {}
        controller.release_all.assert_called_once()

        # The cancelled touch still lifts later without releasing again
        btn.on_touch_up(touch)
        controller.release.assert_not_called()

    def test_with_real_controller(self):
        transport = Mock()
        controller = Controller(transport, runner=Mock())
        tracker = InputTracker(controller)
        top, pad = button(tracker, Direction.LEFT), button(tracker, Direction.LEFT)
        top_touch, pad_touch = FakeTouch((10, 10)), FakeTouch((60, 60))

        top.on_touch_down(top_touch)
        pad.on_touch_down(pad_touch)
        top.on_touch_up(top_touch)

        assert controller.active == {Direction.LEFT}

        pad.on_touch_up(pad_touch)

        assert controller.active == set()


class TestAcceptsCode:
    @pytest.mark.parametrize("text, selection, expected", [
        ('', '', True),
        ('f', '', False),
        ('f', 'f', True),
    ])
    def test_single_character_field(self, text, selection, expected):
        assert accepts_code(text, selection) is expected
