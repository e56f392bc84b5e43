"""
Audio capture for survey interviews.

`AudioCaptureSession` drives a capture device through
IDLE -> RECORDING -> (PAUSED <-> RECORDING) -> STOPPED and produces an
`AudioArtifact`. The device handle is exclusive and is released on every
exit path, including teardown in the middle of a recording.
"""
import asyncio
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Protocol, Tuple

from .errors import DeviceError, NotFoundError
from .schemas import new_id

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "audio/webm"

_DATA_URL_RE = re.compile(r"^data:(?P<type>[\w.+-]+/[\w.+-]+)(;[^,]*)?;base64,(?P<data>.*)$", re.S)


def format_elapsed(seconds: int) -> str:
    minutes, remaining = divmod(max(seconds, 0), 60)
    return f"{minutes:02d}:{remaining:02d}"


@dataclass(frozen=True)
class AudioArtifact:
    data: bytes
    content_type: str = DEFAULT_CONTENT_TYPE

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.content_type};base64,{self.to_base64()}"

    @property
    def extension(self) -> str:
        return self.content_type.split("/")[-1].split(";")[0] or "webm"

    @classmethod
    def from_data_url(cls, data_url: str) -> "AudioArtifact":
        match = _DATA_URL_RE.match(data_url.strip())
        if match is None:
            raise ValueError("not a base64 data URL")
        try:
            data = base64.b64decode(match.group("data"), validate=True)
        except binascii.Error as exc:
            raise ValueError("invalid base64 payload") from exc
        return cls(data=data, content_type=match.group("type"))


class CaptureHandle(Protocol):
    content_type: str

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def finish(self) -> bytes: ...

    def release(self) -> None: ...


class CaptureDevice(Protocol):
    def acquire(self) -> CaptureHandle:
        """Raises DeviceError when the device is missing, denied or busy."""
        ...


class StreamHandle:
    def __init__(self, device: "StreamCaptureDevice", content_type: str):
        self._device = device
        self.content_type = content_type
        self._chunks: List[bytes] = []
        self._paused = False
        self.released = False

    def write(self, chunk: bytes) -> bool:
        # Audio arriving while paused is not part of the recording.
        if self._paused or self.released:
            return False
        if chunk:
            self._chunks.append(chunk)
        return True

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def finish(self) -> bytes:
        return b"".join(self._chunks)

    def release(self) -> None:
        if not self.released:
            self.released = True
            self._device._handle_released(self)


class StreamCaptureDevice:
    """
    Microphone of a surveyor's client, streamed to the server in chunks.

    Only one handle may be open at a time. `permission_granted=False`
    models a client that refused microphone access.
    """

    def __init__(
        self, permission_granted: bool = True, content_type: str = DEFAULT_CONTENT_TYPE
    ):
        self.permission_granted = permission_granted
        self.content_type = content_type
        self._active: Optional[StreamHandle] = None

    @property
    def in_use(self) -> bool:
        return self._active is not None

    def acquire(self) -> StreamHandle:
        if not self.permission_granted:
            raise DeviceError(
                "No se pudo acceder al micrófono. Por favor, verifique los permisos."
            )
        if self._active is not None:
            raise DeviceError("El micrófono está siendo usado por otra grabación")
        self._active = StreamHandle(self, self.content_type)
        return self._active

    def write(self, chunk: bytes) -> bool:
        if self._active is None:
            return False
        return self._active.write(chunk)

    def _handle_released(self, handle: StreamHandle) -> None:
        if self._active is handle:
            self._active = None


class RecordingState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PAUSED = "paused"
    STOPPED = "stopped"


class AudioCaptureSession:
    def __init__(self, device: CaptureDevice, tick_interval: Optional[float] = 1.0):
        self.id = new_id()
        self._device = device
        self._tick_interval = tick_interval
        self._handle: Optional[CaptureHandle] = None
        self._ticker: Optional[asyncio.Task] = None
        self.state = RecordingState.IDLE
        self.elapsed_seconds = 0
        self.artifact: Optional[AudioArtifact] = None

    @property
    def formatted_time(self) -> str:
        return format_elapsed(self.elapsed_seconds)

    @property
    def holds_device(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        if self.state != RecordingState.IDLE:
            return
        self._handle = self._device.acquire()
        self.state = RecordingState.RECORDING
        self._start_ticker()
        logger.info("Recording %s started", self.id)

    def pause(self) -> None:
        if self.state != RecordingState.RECORDING:
            return
        self._handle.pause()
        self.state = RecordingState.PAUSED
        self._stop_ticker()
        logger.info("Recording %s paused at %s", self.id, self.formatted_time)

    def resume(self) -> None:
        if self.state != RecordingState.PAUSED:
            return
        self._handle.resume()
        self.state = RecordingState.RECORDING
        self._start_ticker()
        logger.info("Recording %s resumed", self.id)

    def stop(self) -> Optional[AudioArtifact]:
        if self.state == RecordingState.STOPPED:
            return self.artifact
        was_active = self.state in (RecordingState.RECORDING, RecordingState.PAUSED)
        self.state = RecordingState.STOPPED
        self._stop_ticker()
        try:
            if was_active and self._handle is not None:
                self.artifact = AudioArtifact(
                    data=self._handle.finish(), content_type=self._handle.content_type
                )
        finally:
            self._release()
        logger.info(
            "Recording %s stopped after %s (%d bytes)",
            self.id,
            self.formatted_time,
            len(self.artifact.data) if self.artifact else 0,
        )
        return self.artifact

    def close(self) -> None:
        """Teardown: stop whatever is running and give the device back."""
        try:
            self.stop()
        finally:
            self._stop_ticker()
            self._release()

    def tick(self) -> None:
        if self.state == RecordingState.RECORDING:
            self.elapsed_seconds += 1

    def _release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.release()

    def _start_ticker(self) -> None:
        if self._tick_interval is None or self._ticker is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._ticker = loop.create_task(self._run_ticker(self._tick_interval))

    def _stop_ticker(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is not None and not ticker.done():
            ticker.cancel()

    async def _run_ticker(self, interval: float) -> None:
        while self.state == RecordingState.RECORDING:
            await asyncio.sleep(interval)
            self.tick()


class RecordingRegistry:
    """Live recordings per surveyor; one microphone per surveyor."""

    def __init__(self, tick_interval: Optional[float] = 1.0):
        self._tick_interval = tick_interval
        self._devices: Dict[str, StreamCaptureDevice] = {}
        self._sessions: Dict[str, AudioCaptureSession] = {}
        self._owners: Dict[str, str] = {}

    def device_for(self, user_id: str) -> StreamCaptureDevice:
        if user_id not in self._devices:
            self._devices[user_id] = StreamCaptureDevice()
        return self._devices[user_id]

    def start(self, user_id: str, permission_granted: bool = True) -> AudioCaptureSession:
        device = self.device_for(user_id)
        device.permission_granted = permission_granted
        session = AudioCaptureSession(device, tick_interval=self._tick_interval)
        session.start()
        self._sessions[session.id] = session
        self._owners[session.id] = user_id
        return session

    def get(self, user_id: str, recording_id: str) -> AudioCaptureSession:
        session = self._sessions.get(recording_id)
        if session is None or self._owners.get(recording_id) != user_id:
            raise NotFoundError("Grabación", recording_id)
        return session

    def write(self, user_id: str, recording_id: str, chunk: bytes) -> bool:
        session = self.get(user_id, recording_id)
        if session.state != RecordingState.RECORDING:
            return False
        return self.device_for(user_id).write(chunk)

    def stop(
        self, user_id: str, recording_id: str
    ) -> Tuple[AudioCaptureSession, Optional[AudioArtifact]]:
        """Stops the recording and forgets it; the caller keeps the artifact."""
        session = self.get(user_id, recording_id)
        try:
            artifact = session.stop()
        finally:
            self._forget(recording_id)
        return session, artifact

    def discard(self, user_id: str, recording_id: str) -> None:
        session = self.get(user_id, recording_id)
        try:
            session.close()
        finally:
            self._forget(recording_id)

    def _forget(self, recording_id: str) -> None:
        self._sessions.pop(recording_id, None)
        self._owners.pop(recording_id, None)

    def __len__(self) -> int:
        return len(self._sessions)

    def close_all(self) -> None:
        for session in list(self._sessions.values()):
            session.close()
        self._sessions.clear()
        self._owners.clear()
