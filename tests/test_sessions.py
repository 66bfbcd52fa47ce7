import os
import time

import pytest
from conftest import FakeUpload, connected, disconnected

from nanocloud.errors import (
    DestinationExists,
    InvalidChunkParameters,
    InvalidName,
    InvalidPath,
    InvalidUploadId,
    MissingChunks,
    OperationNotAllowed,
    SizeMismatch,
    UploadAborted,
)
from nanocloud.identity import upload_identity
from nanocloud.merger import MergeResult
from nanocloud.models import ChunkAck, SessionState
from nanocloud.sessions import UploadSessionService, first_missing_index


@pytest.fixture
def service(settings):
    return UploadSessionService(settings)


def test_first_missing_index():
    assert first_missing_index(set()) == 0
    assert first_missing_index({0, 1, 3}) == 2
    assert first_missing_index({1, 2}) == 0
    assert first_missing_index({0, 1, 2}) == 3


def test_unknown_session_starts_at_zero(service):
    status = service.check_status("never-seen")
    assert not status.exists
    assert status.next_chunk_index == 0
    assert status.state == SessionState.UNKNOWN


def test_check_rejects_bad_id(service):
    with pytest.raises(InvalidUploadId):
        service.check_status("../etc")


@pytest.mark.anyio
async def test_intermediate_chunk_is_acknowledged(service):
    result = await service.receive_chunk("s1", 0, 3, "f.bin", b"abc", is_disconnected=connected)
    assert result == ChunkAck(chunk_index=0, total_chunks=3)
    status = service.check_status("s1", total_chunks=3)
    assert status.exists
    assert status.next_chunk_index == 1
    assert status.state == SessionState.IN_PROGRESS


@pytest.mark.anyio
@pytest.mark.parametrize("order", [[2, 0, 3, 1, 4], [4, 3, 2, 1, 0], [0, 1, 2, 3, 4]])
async def test_resume_point_follows_present_chunks(service, order):
    present = set()
    for index in order:
        await service.store.write_chunk("s2", index, b"x")
        present.add(index)
        status = service.check_status("s2", total_chunks=5)
        assert status.next_chunk_index == first_missing_index(present)
        if len(present) < 5:
            assert status.state == SessionState.IN_PROGRESS
    status = service.check_status("s2", total_chunks=5)
    assert status.exists
    assert status.next_chunk_index == 5
    assert status.state == SessionState.READY_TO_MERGE


@pytest.mark.anyio
async def test_last_chunk_arriving_early_keeps_session(service, settings):
    await service.receive_chunk("s3", 0, 3, "f.bin", b"a")
    with pytest.raises(MissingChunks):
        await service.receive_chunk("s3", 2, 3, "f.bin", b"c")
    assert service.store.present_indices("s3") == {0, 2}
    assert not os.path.exists(os.path.join(settings.STORAGE_ROOT, "f.bin"))

    result = await service.receive_chunk("s3", 1, 3, "f.bin", b"b")
    assert result == ChunkAck(chunk_index=1, total_chunks=3, state=SessionState.READY_TO_MERGE)
    result = await service.receive_chunk("s3", 2, 3, "f.bin", b"c")
    assert result == MergeResult("f.bin", 3)
    assert result.state == SessionState.MERGED


@pytest.mark.anyio
@pytest.mark.parametrize("index,total", [(-1, 3), (3, 3), (0, 0), (5, 2)])
async def test_invalid_chunk_parameters(service, index, total):
    with pytest.raises(InvalidChunkParameters):
        await service.receive_chunk("s4", index, total, "f.bin", b"x")
    assert not service.store.exists("s4")


@pytest.mark.anyio
async def test_validation_happens_before_any_write(service):
    with pytest.raises(InvalidUploadId):
        await service.receive_chunk("bad/id", 0, 1, "f.bin", b"x")
    with pytest.raises(InvalidName):
        await service.receive_chunk("s5", 0, 1, "..", b"x")
    with pytest.raises(InvalidPath):
        await service.receive_chunk("s5", 0, 1, "f.bin", b"x", target_path="does/not/exist")
    assert not service.store.exists("s5")


@pytest.mark.anyio
async def test_read_only_rejects_before_staging(service, settings):
    settings.READ_ONLY = True
    with pytest.raises(OperationNotAllowed) as exc:
        await service.receive_chunk("s6", 0, 2, "f.bin", b"x")
    assert exc.value.message == "System is in read-only mode"
    assert not service.store.exists("s6")


@pytest.mark.anyio
async def test_uploads_disabled(service, settings):
    settings.UPLOAD_ENABLED = False
    with pytest.raises(OperationNotAllowed) as exc:
        await service.receive_chunk("s6", 0, 2, "f.bin", b"x")
    assert exc.value.message == "Uploads disabled by administrator"


@pytest.mark.anyio
async def test_disconnect_discards_whole_session(service):
    await service.receive_chunk("s7", 0, 3, "f.bin", b"a")
    await service.receive_chunk("s7", 1, 3, "f.bin", b"b")

    with pytest.raises(UploadAborted) as exc:
        await service.receive_chunk("s7", 2, 3, "f.bin", b"c", is_disconnected=disconnected)
    assert exc.value.state == SessionState.ABORTED

    assert not service.store.exists("s7")
    status = service.check_status("s7")
    assert not status.exists
    assert status.next_chunk_index == 0


@pytest.mark.anyio
async def test_first_chunk_sweeps_stale_sessions(service, settings):
    await service.receive_chunk("old-one", 0, 2, "a.bin", b"a")
    await service.receive_chunk("recent", 0, 2, "b.bin", b"b")
    old = time.time() - (settings.CHUNK_STALE_HOURS + 1) * 3600
    os.utime(service.store.chunk_path("old-one", 0), (old, old))
    os.utime(service.store.session_dir("old-one"), (old, old))

    # A later chunk of an existing upload does not trigger a sweep
    await service.receive_chunk("recent", 1, 3, "b.bin", b"b")
    assert service.store.exists("old-one")

    await service.receive_chunk("brand-new", 0, 2, "c.bin", b"c")
    assert not service.store.exists("old-one")
    assert service.store.exists("recent")


@pytest.mark.anyio
async def test_merge_failure_keeps_chunks_for_retry(service, settings):
    await service.receive_chunk("s8", 0, 2, "f.bin", b"ab", expected_size=3)
    with pytest.raises(SizeMismatch):
        await service.receive_chunk("s8", 1, 2, "f.bin", b"cd", expected_size=3)
    assert service.store.present_indices("s8") == {0, 1}
    assert not os.path.exists(os.path.join(settings.STORAGE_ROOT, "f.bin"))

    result = await service.receive_chunk("s8", 1, 2, "f.bin", b"cd", expected_size=4)
    assert result.size == 4


@pytest.mark.anyio
async def test_existing_file_is_not_overwritten(service, settings):
    with open(os.path.join(settings.STORAGE_ROOT, "f.bin"), "wb") as f:
        f.write(b"keep")
    with pytest.raises(DestinationExists):
        await service.receive_chunk("s9", 0, 1, "f.bin", b"new")
    with open(os.path.join(settings.STORAGE_ROOT, "f.bin"), "rb") as f:
        assert f.read() == b"keep"


@pytest.mark.anyio
async def test_folder_upload_lands_in_nested_directory(service, settings):
    os.makedirs(os.path.join(settings.STORAGE_ROOT, "target"))
    result = await service.receive_chunk(
        "s10", 0, 1, "pic.jpg", b"img", relative_path="trip/day1/pic.jpg", target_path="target"
    )
    assert result.filename == "target/trip/day1/pic.jpg"
    assert os.path.isfile(os.path.join(settings.STORAGE_ROOT, "target", "trip", "day1", "pic.jpg"))


@pytest.mark.anyio
async def test_interrupted_upload_resumes_to_completion(service, settings):
    chunk = 2 * 1024 * 1024
    data = os.urandom(5 * chunk)
    upload_id = upload_identity("big.bin", len(data), 1700000000000, "", "")

    for index in range(3):
        part = FakeUpload("big.bin", data[index * chunk:(index + 1) * chunk])
        result = await service.receive_chunk(upload_id, index, 5, "big.bin", part, is_disconnected=connected)
        assert isinstance(result, ChunkAck)

    # Connection drops between requests; a later client recomputes the same id
    again = upload_identity("big.bin", len(data), 1700000000000, "", "")
    status = service.check_status(again)
    assert status.exists
    assert status.next_chunk_index == 3

    for index in range(status.next_chunk_index, 5):
        part = FakeUpload("big.bin", data[index * chunk:(index + 1) * chunk])
        result = await service.receive_chunk(again, index, 5, "big.bin", part, expected_size=len(data))

    assert result == MergeResult("big.bin", 10485760)
    with open(os.path.join(settings.STORAGE_ROOT, "big.bin"), "rb") as f:
        assert f.read() == data
    assert service.store.session_ids() == []
