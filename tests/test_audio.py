"""Tests for audio capture sessions"""
import asyncio

import pytest

from socialvox.audio import (
    AudioArtifact,
    AudioCaptureSession,
    RecordingRegistry,
    RecordingState,
    StreamCaptureDevice,
    format_elapsed,
)
from socialvox.errors import DeviceError, NotFoundError


def test_format_elapsed():
    assert format_elapsed(0) == "00:00"
    assert format_elapsed(65) == "01:05"
    assert format_elapsed(600) == "10:00"


def test_full_lifecycle_collects_only_recorded_chunks():
    device = StreamCaptureDevice()
    session = AudioCaptureSession(device, tick_interval=None)

    session.start()
    assert session.state == RecordingState.RECORDING
    device.write(b"hola ")
    session.tick()
    session.pause()
    assert device.write(b"ignorado") is False
    session.tick()
    session.resume()
    device.write(b"mundo")
    session.tick()

    artifact = session.stop()

    assert session.state == RecordingState.STOPPED
    assert artifact.data == b"hola mundo"
    assert session.elapsed_seconds == 2
    assert session.formatted_time == "00:02"
    assert device.in_use is False


@pytest.mark.parametrize("pause_first", [False, True])
def test_stop_releases_device_and_is_idempotent(pause_first):
    device = StreamCaptureDevice()
    session = AudioCaptureSession(device, tick_interval=None)
    session.start()
    if pause_first:
        session.pause()

    first = session.stop()
    second = session.stop()

    assert first is second
    assert session.state == RecordingState.STOPPED
    assert session.holds_device is False
    assert device.in_use is False


def test_stop_from_idle_has_no_artifact():
    session = AudioCaptureSession(StreamCaptureDevice(), tick_interval=None)
    assert session.stop() is None
    assert session.state == RecordingState.STOPPED


def test_pause_and_resume_are_no_ops_in_wrong_state():
    session = AudioCaptureSession(StreamCaptureDevice(), tick_interval=None)
    session.pause()
    session.resume()
    assert session.state == RecordingState.IDLE


def test_denied_permission_raises_device_error():
    session = AudioCaptureSession(StreamCaptureDevice(permission_granted=False), tick_interval=None)
    with pytest.raises(DeviceError):
        session.start()
    assert session.state == RecordingState.IDLE


def test_device_handle_is_exclusive():
    device = StreamCaptureDevice()
    first = AudioCaptureSession(device, tick_interval=None)
    second = AudioCaptureSession(device, tick_interval=None)
    first.start()
    with pytest.raises(DeviceError):
        second.start()
    first.close()
    second.start()
    assert second.state == RecordingState.RECORDING
    second.close()


def test_close_mid_recording_releases_device():
    device = StreamCaptureDevice()
    session = AudioCaptureSession(device, tick_interval=None)
    session.start()
    session.close()
    assert device.in_use is False
    assert session.state == RecordingState.STOPPED


@pytest.mark.asyncio
async def test_ticker_counts_only_while_recording():
    session = AudioCaptureSession(StreamCaptureDevice(), tick_interval=0.01)
    session.start()
    await asyncio.sleep(0.055)
    session.pause()
    counted = session.elapsed_seconds
    await asyncio.sleep(0.03)
    assert counted >= 2
    assert session.elapsed_seconds == counted
    session.stop()


def test_artifact_data_url_round_trip():
    artifact = AudioArtifact(data=b"\x00\x01audio", content_type="audio/ogg")
    url = artifact.to_data_url()
    assert url.startswith("data:audio/ogg;base64,")
    assert AudioArtifact.from_data_url(url) == artifact
    with pytest.raises(ValueError):
        AudioArtifact.from_data_url("no es una url")


def test_registry_scopes_recordings_per_user():
    registry = RecordingRegistry(tick_interval=None)
    recording = registry.start("user-a")
    registry.write("user-a", recording.id, b"abc")

    with pytest.raises(NotFoundError):
        registry.get("user-b", recording.id)

    session, artifact = registry.stop("user-a", recording.id)
    assert session.state == RecordingState.STOPPED
    assert artifact.data == b"abc"
    with pytest.raises(NotFoundError):
        registry.get("user-a", recording.id)


def test_registry_forgets_finished_recordings():
    registry = RecordingRegistry(tick_interval=None)
    for _ in range(20):
        recording = registry.start("user-a")
        registry.write("user-a", recording.id, b"x" * 1024)
        registry.stop("user-a", recording.id)
    assert len(registry) == 0

    discarded = registry.start("user-a")
    registry.discard("user-a", discarded.id)
    assert len(registry) == 0
    assert registry.device_for("user-a").in_use is False


def test_registry_close_all_frees_devices():
    registry = RecordingRegistry(tick_interval=None)
    registry.start("user-a")
    registry.close_all()
    assert registry.device_for("user-a").in_use is False
