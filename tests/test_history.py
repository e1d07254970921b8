import pytest

from retouch.application.history import ORIGINAL, ActionType, EditAction, EditHistory
from retouch.exceptions import InvalidIndex


def edit(before: str, after: str) -> EditAction:
    return EditAction(type=ActionType.AI_EDIT, before_version=before, after_version=after, prompt="p")


def history_abc() -> EditHistory:
    h = EditHistory(artifact_id="img")
    h.append(edit(ORIGINAL, "A"))
    h.append(edit("A", "B"))
    h.append(edit("B", "C"))
    return h


def test_new_history_shows_original():
    h = EditHistory(artifact_id="img")
    assert h.cursor == -1
    assert h.current_version == ORIGINAL
    assert not h.can_undo and not h.can_redo


def test_append_moves_cursor_to_end():
    h = history_abc()
    assert h.cursor == 2
    assert h.current_version == "C"


def test_undo_redo_pairs_are_identity():
    h = history_abc()
    for start in (2, 1, 0, -1):
        h.cursor = start
        before = (h.cursor, h.current_version)
        h.undo()
        h.redo()
        if start == -1:
            # undo is a no-op at the floor, so the pair lands one step forward
            assert h.cursor == 0
        else:
            assert (h.cursor, h.current_version) == before
        h.cursor = start
        h.redo()
        h.undo()
        if start == 2:
            assert h.cursor == 1
        else:
            assert (h.cursor, h.current_version) == before


def test_undo_and_redo_clamp_at_bounds():
    h = history_abc()
    h.redo()
    assert h.cursor == 2
    for _ in range(5):
        h.undo()
    assert h.cursor == -1
    assert h.current_version == ORIGINAL


def test_append_after_undo_prunes_redo_branch():
    h = history_abc()
    h.undo()
    h.undo()
    assert h.cursor == 0

    h.append(edit("A", "D"))

    assert [a.after_version for a in h.actions] == ["A", "D"]
    assert h.cursor == 1
    h.redo()
    assert h.current_version == "D"
    assert not h.can_redo


def test_before_version_chain_invariant():
    h = history_abc()
    for i, action in enumerate(h.actions):
        expected = ORIGINAL if i == 0 else h.actions[i - 1].after_version
        assert action.before_version == expected


def test_revert_appends_forward_entry():
    h = history_abc()
    action = h.revert(0)

    assert action.type == ActionType.REVERT
    assert action.before_version == "C"
    assert action.after_version == "A"
    assert len(h.actions) == 4
    assert h.cursor == 3
    assert h.current_version == "A"


def test_revert_to_original():
    h = history_abc()
    h.revert(-1)
    assert h.current_version == ORIGINAL
    assert h.actions[-1].before_version == "C"


def test_revert_after_undo_prunes_then_appends():
    h = history_abc()
    h.undo()
    h.revert(0)
    assert [a.after_version for a in h.actions] == ["A", "B", "A"]
    assert h.actions[-1].before_version == "B"


@pytest.mark.parametrize("target", [3, -2, 99])
def test_revert_out_of_range_leaves_state_unchanged(target):
    h = history_abc()
    h.undo()
    with pytest.raises(InvalidIndex):
        h.revert(target)
    assert h.cursor == 1
    assert len(h.actions) == 3
