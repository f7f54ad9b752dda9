from enum import Enum


class Direction(Enum):
    FORWARD = 'f'
    BACKWARD = 'b'
    LEFT = 'g'
    RIGHT = 'l'
    STOP = 's'
    FORWARD_LEFT = 'q'
    FORWARD_RIGHT = 'e'
    BACKWARD_LEFT = 'z'
    BACKWARD_RIGHT = 'c'

    @property
    def key(self):
        """Canonical key letter, also the default transmit code."""
        return self.value

    @property
    def setting_key(self):
        return f"key_{self.name.lower()}"

    @property
    def label(self):
        return self.name.replace('_', ' ').title()


DEFAULT_CODES = {direction: direction.key for direction in Direction}

# Evaluated top to bottom, first match wins. Diagonals come first so that two
# held straight directions are shown as the diagonal between them.
INDICATOR_RULES = (
    ({Direction.FORWARD, Direction.LEFT}, Direction.FORWARD_LEFT),
    ({Direction.FORWARD, Direction.RIGHT}, Direction.FORWARD_RIGHT),
    ({Direction.BACKWARD, Direction.LEFT}, Direction.BACKWARD_LEFT),
    ({Direction.BACKWARD, Direction.RIGHT}, Direction.BACKWARD_RIGHT),
    ({Direction.FORWARD}, Direction.FORWARD),
    ({Direction.BACKWARD}, Direction.BACKWARD),
    ({Direction.LEFT}, Direction.LEFT),
    ({Direction.RIGHT}, Direction.RIGHT),
    ({Direction.STOP}, Direction.STOP),
)


def indicated_direction(active):
    """Return the single direction to highlight for the held set, or None.

    Only used for feedback: the command stream is sent per pressed key and is
    never derived from this value.
    """
    for required, indicated in INDICATOR_RULES:
        if required <= active:
            return indicated
    return None
