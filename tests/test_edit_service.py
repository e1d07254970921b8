import base64
import io

import pytest
from PIL import Image

from conftest import FakeAIEditor, png_bytes
from retouch.application.history import ORIGINAL
from retouch.application.services.edit_service import EditService
from retouch.exceptions import EditFailure, InvalidIndex, MissingArtifact
from retouch.infrastructure.storage.session_store import new_artifact_id
from retouch.schemas.edit import AIEditRequest, MaskDrawRequest


def data_url(data: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(data).decode()


def half_mask(size=(40, 30)) -> bytes:
    mask = Image.new("L", size, 0)
    mask.paste(255, (size[0] // 2, 0, size[0], size[1]))
    buf = io.BytesIO()
    mask.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def edit_setup(store, codec, sessions, ai_editor):
    aid = new_artifact_id()
    store.store("s1", aid, ".png", png_bytes((40, 30), (200, 30, 30)))
    return EditService(store, codec, ai_editor, sessions), aid


def test_ai_edit_stores_png_version_and_appends_action(edit_setup, store):
    service, aid = edit_setup
    response = service.ai_edit(AIEditRequest(session_id="s1", image_id=aid, prompt="make it green"))

    assert response.new_version_id.startswith(f"{aid}_v")
    version = store.resolve("s1", response.new_version_id)
    assert version.ext == ".png"
    assert store.resolve_thumbnail("s1", response.new_version_id) is not None
    assert response.history.cursor == 0
    action = response.history.actions[0]
    assert (action.type, action.before_version, action.after_version) == ("ai-edit", ORIGINAL, response.new_version_id)
    assert service.current_file("s1", aid).read() == version.read()


def test_masked_edit_keeps_unmasked_pixels(edit_setup, store, ai_editor):
    service, aid = edit_setup
    response = service.ai_edit(AIEditRequest(
        session_id="s1", image_id=aid, prompt="recolor right half",
        inpaint_mask_data_url=data_url(half_mask()),
    ))

    assert ai_editor.calls[0]["mask"] is not None
    with Image.open(io.BytesIO(store.read("s1", response.new_version_id).read())) as img:
        rgb = img.convert("RGB")
        assert rgb.getpixel((2, 15)) == (200, 30, 30)
        assert rgb.getpixel((37, 15)) == (0, 255, 0)


def test_protect_mask_overrides_inpaint_mask(edit_setup, store):
    service, aid = edit_setup
    everything = Image.new("L", (40, 30), 255)
    buf = io.BytesIO()
    everything.save(buf, format="PNG")
    response = service.ai_edit(AIEditRequest(
        session_id="s1", image_id=aid, prompt="p",
        inpaint_mask_data_url=data_url(buf.getvalue()),
        protect_mask_data_url=data_url(half_mask()),
    ))
    with Image.open(io.BytesIO(store.read("s1", response.new_version_id).read())) as img:
        rgb = img.convert("RGB")
        assert rgb.getpixel((2, 15)) == (0, 255, 0)
        assert rgb.getpixel((37, 15)) == (200, 30, 30)


def test_second_edit_starts_from_current_version(edit_setup):
    service, aid = edit_setup
    first = service.ai_edit(AIEditRequest(session_id="s1", image_id=aid, prompt="one"))
    second = service.ai_edit(AIEditRequest(session_id="s1", image_id=aid, prompt="two"))
    assert second.history.actions[1].before_version == first.new_version_id


def test_undo_redo_revert_through_service(edit_setup):
    service, aid = edit_setup
    first = service.ai_edit(AIEditRequest(session_id="s1", image_id=aid, prompt="one"))
    service.ai_edit(AIEditRequest(session_id="s1", image_id=aid, prompt="two"))

    view = service.undo("s1", aid)
    assert view.current_version == first.new_version_id
    assert view.can_redo

    view = service.revert("s1", aid, -1)
    assert view.current_version == ORIGINAL
    assert [a.type for a in view.actions] == ["ai-edit", "revert"]
    assert view.current_image_url.endswith(f"id={aid}")

    with pytest.raises(InvalidIndex):
        service.revert("s1", aid, 5)


def test_mask_draw_records_mask_without_changing_content(edit_setup, store):
    service, aid = edit_setup
    view = service.mask_draw(MaskDrawRequest(session_id="s1", image_id=aid, mask_data_url=data_url(half_mask((10, 10)))))
    action = view.actions[0]
    assert action.type == "mask-draw"
    assert action.before_version == action.after_version == ORIGINAL
    with Image.open(io.BytesIO(store.read("s1", action.mask_version).read())) as mask:
        assert mask.size == (40, 30)


def test_ai_failure_leaves_history_untouched(store, codec, sessions):
    aid = new_artifact_id()
    store.store("s1", aid, ".png", png_bytes())
    service = EditService(store, codec, FakeAIEditor(fail=True), sessions)
    with pytest.raises(EditFailure):
        service.ai_edit(AIEditRequest(session_id="s1", image_id=aid, prompt="p"))
    assert service.history_view("s1", aid).actions == []


def test_edit_of_unknown_image_is_missing(store, codec, sessions, ai_editor):
    service = EditService(store, codec, ai_editor, sessions)
    with pytest.raises(MissingArtifact):
        service.ai_edit(AIEditRequest(session_id="s1", image_id=new_artifact_id(), prompt="p"))


@pytest.mark.parametrize("transition", [
    lambda service, aid: service.undo("s1", aid),
    lambda service, aid: service.redo("s1", aid),
    lambda service, aid: service.revert("s1", aid, -1),
    lambda service, aid: service.history_view("s1", aid),
    lambda service, aid: service.current_file("s1", aid),
])
def test_history_of_unknown_image_leaves_no_state(store, codec, sessions, ai_editor, transition):
    service = EditService(store, codec, ai_editor, sessions)
    aid = new_artifact_id()
    with pytest.raises(MissingArtifact):
        transition(service, aid)
    assert ("s1", aid) not in sessions.locks
    assert aid not in sessions.get("s1").histories
