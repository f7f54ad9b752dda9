import itertools

import pytest

from directions import DEFAULT_CODES, INDICATOR_RULES, Direction, indicated_direction


class TestDirection:
    def test_default_alphabet(self):
        assert ''.join(d.key for d in Direction) == 'fbglsqezc'

    def test_default_codes_are_identity(self):
        for direction, code in DEFAULT_CODES.items():
            assert code == direction.key

    def test_setting_keys_are_stable_and_unique(self):
        keys = [d.setting_key for d in Direction]
        assert Direction.FORWARD.setting_key == 'key_forward'
        assert Direction.BACKWARD_RIGHT.setting_key == 'key_backward_right'
        assert len(set(keys)) == len(keys)

    def test_label(self):
        assert Direction.FORWARD_LEFT.label == 'Forward Left'


class TestIndicatedDirection:
    @pytest.mark.parametrize("active, expected", [
        ({Direction.FORWARD, Direction.LEFT}, Direction.FORWARD_LEFT),
        ({Direction.FORWARD, Direction.RIGHT}, Direction.FORWARD_RIGHT),
        ({Direction.BACKWARD, Direction.LEFT}, Direction.BACKWARD_LEFT),
        ({Direction.BACKWARD, Direction.RIGHT}, Direction.BACKWARD_RIGHT),
        ({Direction.FORWARD}, Direction.FORWARD),
        ({Direction.BACKWARD}, Direction.BACKWARD),
        ({Direction.LEFT}, Direction.LEFT),
        ({Direction.RIGHT}, Direction.RIGHT),
        ({Direction.STOP}, Direction.STOP),
        (set(), None),
    ])
    def test_rules(self, active, expected):
        assert indicated_direction(active) is expected

    def test_forward_left_wins_over_forward_right(self):
        active = {Direction.FORWARD, Direction.LEFT, Direction.RIGHT}
        assert indicated_direction(active) is Direction.FORWARD_LEFT

    def test_forward_beats_backward_diagonal(self):
        active = {Direction.FORWARD, Direction.BACKWARD, Direction.RIGHT}
        assert indicated_direction(active) is Direction.FORWARD_RIGHT

    def test_straight_directions_beat_stop(self):
        assert indicated_direction({Direction.STOP, Direction.LEFT}) is Direction.LEFT

    def test_held_diagonal_key_alone_is_not_indicated(self):
        # Diagonal buttons are only ever indicated through their two straight parts
        assert indicated_direction({Direction.FORWARD_LEFT}) is None

    def test_order_independent(self):
        held = [Direction.BACKWARD, Direction.LEFT, Direction.STOP]
        results = {indicated_direction(set(p)) for p in itertools.permutations(held)}
        assert results == {Direction.BACKWARD_LEFT}

    def test_rule_table_order(self):
        assert [indicated for _, indicated in INDICATOR_RULES] == [
            Direction.FORWARD_LEFT, Direction.FORWARD_RIGHT,
            Direction.BACKWARD_LEFT, Direction.BACKWARD_RIGHT,
            Direction.FORWARD, Direction.BACKWARD,
            Direction.LEFT, Direction.RIGHT, Direction.STOP,
        ]
