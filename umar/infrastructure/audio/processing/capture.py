"""
Live microphone capture delivering fixed-size PCM16 frames to the event loop.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from ....config import (
    CHANNELS, SAMPLE_RATE_CAPTURE, SAMPLE_RATE_TARGET,
    FRAME_MS, CAPTURE_QUEUE_FRAMES
)
from .processing import pcm_to_float, stereo_to_mono, float_to_pcm16, StreamResampler
from ....utils import with_suppressed_audio_warnings

logger = logging.getLogger("audio_capture")


class AudioSource(ABC):
    """A continuous stream of mono PCM16 frames at a fixed sample rate."""

    sample_rate: int = SAMPLE_RATE_TARGET
    sample_width: int = 2

    @abstractmethod
    def frames(self) -> AsyncIterator[bytes]:
        """Yield frames until the source is closed."""

    def flush(self) -> None:
        """Drop any frames captured but not yet consumed."""

    def open(self) -> None:
        """Acquire the underlying device, if any."""

    def close(self) -> None:
        """Release the device and end frames()."""


@with_suppressed_audio_warnings
def get_best_microphone_config():
    """
    Detect the default input device and its preferred sample rate.
    Returns (device_index, channels, sample_rate) tuple.
    """
    import pyaudio

    pa = pyaudio.PyAudio()
    try:
        info = pa.get_default_input_device_info()
        device_index = int(info["index"])
        channels = min(CHANNELS, int(info.get("maxInputChannels", 1))) or 1
        sample_rate = int(info.get("defaultSampleRate", SAMPLE_RATE_CAPTURE))
        logger.info(f"Default input device {device_index}: {info.get('name')} "
                    f"({channels} ch @ {sample_rate} Hz)")
        return device_index, channels, sample_rate
    except (IOError, OSError) as e:
        raise RuntimeError(f"No microphone available: {e}")
    finally:
        pa.terminate()


class MicrophoneSource(AudioSource):
    """
    Microphone capture through PortAudio.

    PortAudio invokes the stream callback on its own thread; every buffer is
    handed to the event loop with call_soon_threadsafe, downmixed and queued
    as one frame. The device is opened at the target rate when it accepts it;
    otherwise a StreamResampler converts buffers while keeping filter state
    across them. The queue is bounded so a
    stalled consumer drops the oldest audio instead of growing without limit.
    """

    def __init__(self,
                 input_device: Optional[int] = None,
                 num_channels: int = CHANNELS,
                 sr_capture: Optional[int] = None,
                 sr_target: int = SAMPLE_RATE_TARGET,
                 frame_ms: int = FRAME_MS,
                 queue_frames: int = CAPTURE_QUEUE_FRAMES):
        self.input_device = input_device
        self.num_channels = num_channels
        self.sr_capture = sr_capture
        self.sample_rate = sr_target
        self.frame_ms = frame_ms
        self.queue_frames = queue_frames

        self._pa = None
        self._stream = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._closed = True
        self._resampler: Optional[StreamResampler] = None
        if sr_capture is not None:
            self._resampler = StreamResampler(sr_capture, sr_target)

    @property
    def is_open(self) -> bool:
        return not self._closed

    @with_suppressed_audio_warnings
    def open(self) -> None:
        """
        Acquire the microphone. Must be called from inside the running loop.

        Raises:
            RuntimeError: If the device cannot be opened (missing device,
                permission denied, unsupported format)
        """
        if not self._closed:
            return

        import pyaudio

        if self.input_device is None or self.sr_capture is None:
            device, channels, rate = get_best_microphone_config()
            if self.input_device is None:
                self.input_device = device
                self.num_channels = channels
            if self.sr_capture is None:
                self.sr_capture = self._pick_capture_rate(rate)
        self._resampler = StreamResampler(self.sr_capture, self.sample_rate)

        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self.queue_frames)
        frames_per_buffer = int(self.sr_capture * self.frame_ms / 1000)

        logger.info(f"Opening microphone: device={self.input_device} channels={self.num_channels} "
                    f"rate={self.sr_capture} frame={frames_per_buffer}")
        self._pa = pyaudio.PyAudio()
        try:
            self._stream = self._pa.open(
                format=pyaudio.paInt16,
                channels=self.num_channels,
                rate=self.sr_capture,
                input=True,
                input_device_index=self.input_device,
                frames_per_buffer=frames_per_buffer,
                stream_callback=self._on_audio,
            )
            self._stream.start_stream()
        except (IOError, OSError) as e:
            self._pa.terminate()
            self._pa = None
            raise RuntimeError(f"Could not access microphone: {e}")

        self._closed = False
        logger.info("Microphone opened successfully")

    def _pick_capture_rate(self, device_rate: int) -> int:
        """Prefer capturing at the target rate so PortAudio does the conversion."""
        import pyaudio

        pa = pyaudio.PyAudio()
        try:
            pa.is_format_supported(
                self.sample_rate,
                input_device=self.input_device,
                input_channels=self.num_channels,
                input_format=pyaudio.paInt16,
            )
            return self.sample_rate
        except ValueError:
            logger.info(f"Device does not accept {self.sample_rate} Hz, resampling from {device_rate} Hz")
            return device_rate
        finally:
            pa.terminate()

    def _on_audio(self, in_data, frame_count, time_info, status):
        import pyaudio

        if self._loop is not None and not self._closed:
            self._loop.call_soon_threadsafe(self._enqueue, in_data)
        return (None, pyaudio.paContinue)

    def _enqueue(self, raw: bytes) -> None:
        if self._closed or self._queue is None:
            return
        audio = pcm_to_float(raw, 2)
        if self.num_channels > 1:
            audio = stereo_to_mono(audio.reshape(-1, self.num_channels))
        audio = self._resampler.process(audio)
        frame = float_to_pcm16(audio)

        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(frame)

    async def frames(self) -> AsyncIterator[bytes]:
        while not self._closed and self._queue is not None:
            frame = await self._queue.get()
            if frame is None:
                break
            yield frame

    def flush(self) -> None:
        if self._queue is None:
            return
        while not self._queue.empty():
            self._queue.get_nowait()

    def close(self) -> None:
        """Release the microphone and end any consumer of frames()."""
        if self._closed:
            return
        self._closed = True
        try:
            if self._stream is not None:
                self._stream.stop_stream()
                self._stream.close()
        except (IOError, OSError) as e:
            logger.warning(f"Error stopping microphone stream: {e}")
        finally:
            if self._pa is not None:
                self._pa.terminate()
            self._stream = None
            self._pa = None

        if self._queue is not None:
            self.flush()
            self._queue.put_nowait(None)
        logger.info("Microphone closed")
