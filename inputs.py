"""Physical inputs (button touches, keyboard keys) mapped to held directions.

Several inputs can drive the same direction: the top bar and the D-pad both
have forward, backward, left, right and stop, and each has two keyboard keys.
A direction stays held until the last input holding it lets go.
"""
from kivy.logger import Logger
from kivy.properties import BooleanProperty, ObjectProperty

from directions import Direction

# Kivy keycodes (Keyboard.keycodes), kept here so this module does not
# need a window
KEY_BINDINGS = {
    273: Direction.FORWARD,     # up
    119: Direction.FORWARD,     # w
    274: Direction.BACKWARD,    # down
    115: Direction.BACKWARD,    # s
    276: Direction.LEFT,        # left
    97: Direction.LEFT,         # a
    275: Direction.RIGHT,       # right
    100: Direction.RIGHT,       # d
    32: Direction.STOP,         # spacebar
}


class InputTracker:
    def __init__(self, controller):
        self.controller = controller
        self.holders = {}

    def hold(self, source, direction):
        """``source`` starts holding ``direction``. Returns False if it
        already holds something."""
        if source in self.holders:
            return False
        newly_held = not self.is_held(direction)
        self.holders[source] = direction
        if newly_held:
            self.controller.press(direction)
        return True

    def let_go(self, source):
        direction = self.holders.pop(source, None)
        if direction is None:
            return False
        if not self.is_held(direction):
            self.controller.release(direction)
        return True

    def is_held(self, direction):
        return direction in self.holders.values()

    def key_down(self, key):
        direction = KEY_BINDINGS.get(key)
        if direction is None:
            return False
        # Key repeat arrives as more key downs for a source already held
        self.hold(('key', key), direction)
        return True

    def key_up(self, key):
        if key not in KEY_BINDINGS:
            return False
        return self.let_go(('key', key))

    def clear(self):
        """Cancel every held input, e.g. on pause or focus loss."""
        for source in self.holders:
            if isinstance(source, HoldBehavior):
                source.held = False
        self.holders.clear()
        self.controller.release_all()
        Logger.debug("Inputs: all inputs released")


class HoldBehavior(object):
    """Mixin for hold-to-drive widgets. Held while a touch that started on
    the widget stays inside it; sliding off counts as a release."""
    direction = ObjectProperty(None)
    tracker = ObjectProperty(None)
    held = BooleanProperty(False)

    def on_touch_down(self, touch):
        if self.collide_point(*touch.pos) and not self.held:
            touch.grab(self)
            self.held = True
            if self.tracker:
                self.tracker.hold(self, self.direction)
            return True
        return super().on_touch_down(touch)

    def on_touch_move(self, touch):
        if touch.grab_current is self:
            if self.held and not self.collide_point(*touch.pos):
                self._end_touch(touch)
            return True
        return super().on_touch_move(touch)

    def on_touch_up(self, touch):
        if touch.grab_current is self:
            self._end_touch(touch)
            return True
        return super().on_touch_up(touch)

    def _end_touch(self, touch):
        touch.ungrab(self)
        if not self.held:
            return
        self.held = False
        if self.tracker:
            self.tracker.let_go(self)


def accepts_code(text, selection_text):
    """A command key field holds one character; typing is accepted only when
    the field is empty or its whole content is selected."""
    return len(text) - len(selection_text) <= 0
