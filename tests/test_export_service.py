import io
import time
import zipfile

import pytest
from PIL import Image

from conftest import FakeMagick, heic_bytes, jpeg_bytes, png_bytes
from retouch.application.services.export_service import ExportService, export_filename
from retouch.application.session_context import SessionRegistry
from retouch.exceptions import EncodeFailure, MissingArtifact
from retouch.infrastructure.imaging.codec import RasterCodec
from retouch.infrastructure.storage.session_store import new_artifact_id, new_version_id
from retouch.infrastructure.tools.process import ToolError
from retouch.schemas.export import ExportVersionRequest


def make_service(store, codec, metadata, sessions, **kwargs):
    return ExportService(store, codec, metadata, sessions, **kwargs)


def request(**overrides):
    fields = dict(
        session_id="s1",
        version_id="abc123def456",
        original_image_id="abc123def456",
        original_filename="IMG_4021.HEIC",
        original_format="heic",
        original_width=4000,
        original_height=3000,
        original_file_size=3_200_000,
        original_quality=85,
        target_format="heic",
    )
    fields.update(overrides)
    return ExportVersionRequest(**fields)


def test_unedited_heic_export_matches_size_and_copies_metadata(store, sessions, metadata, metadata_tool):
    magick = FakeMagick(bytes_per_quality=50_000)
    codec = RasterCodec(magick)
    store.store("s1", "abc123def456", ".heic", heic_bytes(3_200_000))
    service = make_service(store, codec, metadata, sessions)

    result = service.export_version(request())

    assert result.filename == "IMG_4021_updated.heic"
    assert result.content_type == "image/heic"
    assert result.warnings == []
    assert abs(len(result.data) - 3_200_000) / 3_200_000 <= 0.10
    # first attempt near the original quality, then a bounded search
    assert magick.encode_qualities()[0] == 85
    assert len(magick.encode_qualities()) <= 6
    copy = metadata_tool.copies[0]
    assert copy["source"].endswith("abc123def456.heic")
    assert copy["overrides"] == {"ImageWidth": 4000, "ImageHeight": 3000}
    assert result.data.endswith(b"COPIED")


def test_jpeg_export_forces_original_dimensions(store, codec, sessions, metadata):
    aid = new_artifact_id()
    vid = new_version_id(aid)
    store.store("s1", aid, ".jpg", jpeg_bytes((60, 40)))
    store.store("s1", vid, ".png", png_bytes((30, 20)))
    service = make_service(store, codec, metadata, sessions)

    result = service.export_version(request(
        version_id=vid, original_image_id=aid, original_filename="beach.jpeg",
        original_format="jpeg", original_width=60, original_height=40,
        original_quality=None, original_file_size=None, target_format="jpg",
    ))

    assert result.filename == "beach_updated.jpg"
    assert result.content_type == "image/jpeg"
    assert result.quality == 90
    body = result.data[: -len(b"COPIED")]
    with Image.open(io.BytesIO(body)) as img:
        assert img.size == (60, 40)


def test_metadata_copy_failure_is_a_warning(store, codec, sessions, metadata, metadata_tool):
    aid = new_artifact_id()
    store.store("s1", aid, ".jpg", jpeg_bytes())
    metadata_tool.fail_copy = True
    service = make_service(store, codec, metadata, sessions)

    result = service.export_version(request(
        version_id=aid, original_image_id=aid, original_format="jpeg",
        original_width=40, original_height=30, target_format="jpg",
    ))

    assert result.data
    assert len(result.warnings) == 1
    assert "Metadata copy failed" in result.warnings[0]


def test_missing_original_skips_metadata_copy(store, codec, sessions, metadata, metadata_tool):
    aid = new_artifact_id()
    vid = new_version_id(aid)
    store.store("s1", vid, ".png", png_bytes())
    service = make_service(store, codec, metadata, sessions)

    result = service.export_version(request(
        version_id=vid, original_image_id=aid, original_format="jpeg",
        original_width=40, original_height=30, target_format="jpg",
    ))

    assert metadata_tool.copies == []
    assert "not found" in result.warnings[0]


def test_missing_version_is_fatal(store, codec, sessions, metadata):
    service = make_service(store, codec, metadata, sessions)
    with pytest.raises(MissingArtifact):
        service.export_version(request(version_id=new_artifact_id()))


def test_encode_failure_is_fatal_for_the_call(store, sessions, metadata):
    codec = RasterCodec(FakeMagick(fail_encode=True))
    store.store("s1", "abc123def456", ".heic", heic_bytes())
    service = make_service(store, codec, metadata, sessions)
    with pytest.raises(EncodeFailure):
        service.export_version(request())


def test_non_heic_original_exported_as_heic_uses_single_encode(store, sessions, metadata):
    magick = FakeMagick()
    codec = RasterCodec(magick)
    aid = new_artifact_id()
    store.store("s1", aid, ".jpg", jpeg_bytes())
    service = make_service(store, codec, metadata, sessions)

    result = service.export_version(request(
        version_id=aid, original_image_id=aid, original_format="jpeg",
        original_quality=None, target_format="heic",
    ))

    assert magick.encode_qualities() == [85]
    assert result.quality == 85


def test_batch_isolates_failures(store, codec, metadata):
    good = new_artifact_id()
    store.store("s1", good, ".jpg", jpeg_bytes())
    service = make_service(store, codec, metadata, SessionRegistry(lock_timeout=10), workers=2)
    items = [
        request(version_id=good, original_image_id=good, original_filename="a.jpg",
                original_format="jpeg", original_width=40, original_height=30, target_format="jpg"),
        request(version_id=new_artifact_id(), original_image_id=new_artifact_id(), target_format="jpg"),
        request(version_id=good, original_image_id=good, original_filename="a.jpg",
                original_format="jpeg", original_width=40, original_height=30, target_format="jpg"),
    ]

    results = service.export_batch(items)
    archive, reports = service.bundle_batch(results)

    assert [r.success for r in reports] == [True, False, True]
    assert reports[1].error_kind == "missing_artifact"
    with zipfile.ZipFile(io.BytesIO(archive)) as zf:
        assert sorted(zf.namelist()) == ["a_updated.jpg", "a_updated_2.jpg"]


class SlowMagick(FakeMagick):
    def run(self, argv, timeout=None):
        time.sleep(0.1)
        return super().run(argv, timeout)


def test_batch_items_sharing_an_original_do_not_contend(store, metadata):
    aid = new_artifact_id()
    store.store("s1", aid, ".png", png_bytes())
    codec = RasterCodec(SlowMagick())
    service = make_service(store, codec, metadata, SessionRegistry(lock_timeout=0.01), workers=4)
    item = request(version_id=aid, original_image_id=aid, original_filename="a.png",
                   original_format="png", original_width=40, original_height=30, target_format="heic")

    results = service.export_batch([item, item, item])

    assert [r.error for r in results] == [None, None, None]
    assert all(r.version_id == aid for r in results)


def test_bulk_export_single_and_zip(store, codec, sessions, metadata, metadata_tool):
    a, b = new_artifact_id(), new_artifact_id()
    store.store("s1", a, ".jpg", b"aaa")
    store.store("s1", b, ".png", b"bbb")
    service = make_service(store, codec, metadata, sessions)

    single = service.bulk_export("s1", [a, new_artifact_id()])
    assert single.name == f"{a}.jpg"
    assert single.content_type == "image/jpeg"
    assert single.data == b"aaa"

    bundle = service.bulk_export("s1", [a, b], strip_metadata=True)
    assert bundle.content_type == "application/zip"
    assert metadata_tool.writes == [["-all="], ["-all="]]
    with zipfile.ZipFile(io.BytesIO(bundle.data)) as zf:
        assert sorted(zf.namelist()) == sorted([f"{a}.jpg", f"{b}.png"])

    with pytest.raises(MissingArtifact):
        service.bulk_export("s1", [new_artifact_id()])


def test_bulk_export_isolates_strip_failures(store, codec, sessions, metadata, metadata_tool):
    a, b, c = new_artifact_id(), new_artifact_id(), new_artifact_id()
    store.store("s1", a, ".jpg", b"aaa")
    store.store("s1", b, ".jpg", b"bad")
    store.store("s1", c, ".png", b"ccc")
    metadata_tool.fail_write_on = b"bad"
    service = make_service(store, codec, metadata, sessions)

    bundle = service.bulk_export("s1", [a, b, c, new_artifact_id()], strip_metadata=True)

    assert bundle.content_type == "application/zip"
    with zipfile.ZipFile(io.BytesIO(bundle.data)) as zf:
        assert sorted(zf.namelist()) == sorted([f"{a}.jpg", f"{c}.png"])
    assert [r.success for r in bundle.reports] == [True, False, True, False]
    assert bundle.reports[1].image_id == b
    assert bundle.reports[1].error_kind == "tool_error"
    assert bundle.reports[3].error_kind == "missing_artifact"


def test_bulk_export_raises_tool_error_when_every_item_fails(store, codec, sessions, metadata, metadata_tool):
    a = new_artifact_id()
    store.store("s1", a, ".jpg", b"aaa")
    metadata_tool.fail_write = True
    service = make_service(store, codec, metadata, sessions)

    with pytest.raises(ToolError):
        service.bulk_export("s1", [a], strip_metadata=True)


def test_export_filename_uses_base_name():
    assert export_filename("holiday.photo.HEIC", "heic") == "holiday.photo_updated.heic"
    assert export_filename("scan", "jpg") == "scan_updated.jpg"
