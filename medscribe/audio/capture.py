"""Microphone capture that delivers sample blocks to an asyncio event loop."""

import asyncio
import time
import logging
from abc import ABC, abstractmethod
from threading import Thread, Event, Lock
from typing import Optional, Callable
from datetime import datetime

import numpy as np
import pyaudio

from ..errors import DeviceError, ConfigError
from ..models.audio import AudioStats, AudioConstraints

logger = logging.getLogger(__name__)

BlockCallback = Callable[[np.ndarray], None]
ErrorCallback = Callable[[Exception], None]


class AudioSource(ABC):
    """A started-once source of float32 sample blocks."""

    @abstractmethod
    def start(self, loop: asyncio.AbstractEventLoop, on_block: BlockCallback,
              on_error: Optional[ErrorCallback] = None) -> None:
        """Begin delivering blocks to ``on_block`` on ``loop``.

        Delivery never blocks the caller: the hardware clock drives a
        background reader and every block is scheduled onto the loop.
        """

    @abstractmethod
    def close(self) -> None:
        """Release the device. Safe to call repeatedly or before start()."""

    @abstractmethod
    def get_recording_stats(self) -> AudioStats:
        pass


class PyAudioSource(AudioSource):
    """PortAudio-backed microphone using a blocking-read capture thread."""

    def __init__(self, pyaudio_instance: pyaudio.PyAudio, stream, constraints: AudioConstraints,
                 device_index: Optional[int] = None):
        """Wrap an already-opened (not yet started) PyAudio input stream.

        Use open_microphone() rather than constructing this directly.
        """
        self.pyaudio_instance = pyaudio_instance
        self.stream = stream
        self.constraints = constraints
        self.device_index = device_index
        self.block_size = constraints.frame_samples
        self.join_timeout = 2.0

        # Recording thread management
        self.recording_thread: Optional[Thread] = None
        self.stop_event = Event()
        self.is_recording = False
        self._release_lock = Lock()
        self._released = False
        self._close_requested = False

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.total_blocks = 0

    def start(self, loop: asyncio.AbstractEventLoop, on_block: BlockCallback,
              on_error: Optional[ErrorCallback] = None) -> None:
        if self._released or self._close_requested:
            raise DeviceError("Audio source already closed", device_index=self.device_index)
        if self.is_recording:
            logger.warning("Recording already in progress")
            return

        logger.info("Starting audio capture")
        self.stop_event.clear()
        self.start_time = datetime.now()
        self.total_blocks = 0

        self.recording_thread = Thread(
            target=self._record_continuously, args=(loop, on_block, on_error), daemon=True)
        self.recording_thread.name = "AudioCaptureThread"
        self.is_recording = True
        self.recording_thread.start()

    def close(self) -> None:
        """Stop the capture thread and release PortAudio resources."""
        self._close_requested = True
        self.stop_event.set()

        if self.recording_thread and self.recording_thread.is_alive():
            self.recording_thread.join(timeout=self.join_timeout)
            if self.recording_thread.is_alive():
                # The thread is still inside stream.read(); it releases the device when the read returns
                logger.warning("Recording thread did not stop cleanly, deferring device release to it")
                self.is_recording = False
                return

        was_recording = self.is_recording
        self.is_recording = False
        self._release()
        if was_recording:
            logger.info(f"Audio capture stopped. Total blocks: {self.total_blocks}")

    def _release(self) -> None:
        with self._release_lock:
            if self._released:
                return
            self._released = True
        try:
            if self.stream is not None:
                if self.stream.is_active():
                    self.stream.stop_stream()
                self.stream.close()
        except OSError as e:
            logger.warning(f"Error closing audio stream: {e}")
        finally:
            self.stream = None
            if self.pyaudio_instance is not None:
                self.pyaudio_instance.terminate()
                self.pyaudio_instance = None

    def _record_continuously(self, loop: asyncio.AbstractEventLoop, on_block: BlockCallback,
                             on_error: Optional[ErrorCallback]) -> None:
        """Internal method: continuous capture loop in background thread."""
        try:
            self.stream.start_stream()
            while not self.stop_event.is_set():
                raw = self.stream.read(self.block_size, exception_on_overflow=False)
                self.total_blocks += 1
                samples = np.frombuffer(raw, dtype=np.float32)
                loop.call_soon_threadsafe(on_block, samples)
        except RuntimeError:
            # Event loop closed underneath us
            logger.debug("Event loop closed, stopping capture thread")
        except OSError as e:
            logger.error(f"Audio device error during capture: {e}")
            if on_error is not None and not loop.is_closed():
                error = DeviceError(f"Microphone stopped delivering audio: {e}",
                                    device_index=self.device_index, cause=e)
                loop.call_soon_threadsafe(on_error, error)
        finally:
            self.is_recording = False
            if self.stop_event.is_set():
                self._release()

    def get_recording_stats(self) -> AudioStats:
        """Get current recording statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()

        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=duration,
            sample_rate=self.constraints.sample_rate,
            block_size=self.block_size,
            total_blocks=self.total_blocks,
        )

    def __del__(self):
        """Ensure resources are cleaned up on deletion."""
        if self.is_recording:
            self.close()


def open_microphone(constraints: Optional[AudioConstraints] = None) -> AudioSource:
    """Probe the input device and open it at the streaming format.

    Args:
        constraints: Requested rate/channels/device; defaults to 16 kHz mono

    Returns:
        An opened AudioSource, not yet delivering blocks

    Raises:
        DeviceError: No input device, or the device could not be opened
        ConfigError: The device cannot supply the requested format
    """
    constraints = constraints or AudioConstraints()
    started = time.time()
    pa = pyaudio.PyAudio()

    try:
        if constraints.device_index is not None:
            device_info = pa.get_device_info_by_index(constraints.device_index)
        else:
            device_info = pa.get_default_input_device_info()
    except (OSError, ValueError) as e:
        pa.terminate()
        raise DeviceError("No microphone available", device_index=constraints.device_index, cause=e)

    device_index = int(device_info["index"])
    if int(device_info.get("maxInputChannels", 0)) < constraints.channels:
        pa.terminate()
        raise DeviceError(f"Device '{device_info.get('name')}' has no input channels",
                          device_index=device_index)

    try:
        pa.is_format_supported(
            constraints.sample_rate,
            input_device=device_index,
            input_channels=constraints.channels,
            input_format=pyaudio.paFloat32,
        )
    except ValueError as e:
        pa.terminate()
        raise ConfigError(
            f"Microphone cannot capture {constraints.sample_rate}Hz/{constraints.channels}ch: {e}",
            field="sample_rate", value=constraints.sample_rate, cause=e)

    try:
        stream = pa.open(
            format=pyaudio.paFloat32,
            channels=constraints.channels,
            rate=constraints.sample_rate,
            input=True,
            input_device_index=device_index,
            frames_per_buffer=constraints.frame_samples,
            start=False,
        )
    except OSError as e:
        pa.terminate()
        raise DeviceError(f"Could not open microphone (permission denied?): {e}",
                          device_index=device_index, cause=e)

    logger.info(f"Microphone opened: '{device_info.get('name')}' {constraints.sample_rate}Hz, "
                f"{constraints.frame_samples} samples/block ({time.time() - started:.3f}s)")
    return PyAudioSource(pa, stream, constraints, device_index)
