"""Unit tests for SessionController."""

import asyncio

import numpy as np
import pytest
from pubsub.core import Publisher

from medscribe.errors import DeviceError, StreamError
from medscribe.models.session import SessionState, Specialty, StartOptions
from medscribe.models.transcription import TranscriptEvent
from medscribe.services.session_controller import SessionController
from medscribe.services.usage_meter import UsageMeter, UsageStatus, UnlimitedUsageMeter, DailyUsageMeter
from medscribe.transcription.publisher import SessionEventPublisher, LIFECYCLE_TOPIC


class CountingMeter(UsageMeter):
    """Allows everything and counts recorded sessions."""

    def __init__(self, allowed=True):
        self.allowed = allowed
        self.recorded = 0

    def can_proceed(self):
        if not self.allowed:
            return UsageStatus(allowed=False, remaining_quota=0, reason="Daily limit reached (5 transcriptions).")
        return UsageStatus(allowed=True, remaining_quota=None, reason="ok")

    def record_usage(self):
        self.recorded += 1
        return self.recorded


class LifecycleRecorder:
    """Subscribes to lifecycle events; pypubsub holds listeners weakly so keep a reference."""

    def __init__(self, publisher):
        self.events = []
        publisher.subscribe(self.on_event, LIFECYCLE_TOPIC)

    def on_event(self, event):
        self.events.append(event)

    @property
    def types(self):
        return [e.event_type for e in self.events]


class UIRecorder:
    def __init__(self, controller):
        self.transcripts = []
        self.segments = []
        self.errors = []
        controller.on_transcript_update(lambda text, is_interim: self.transcripts.append((text, is_interim)))
        controller.on_segment_complete(self.segments.append)
        controller.on_error(self.errors.append)


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def publisher():
    return Publisher()


@pytest.fixture
def lifecycle(publisher):
    return LifecycleRecorder(publisher)


@pytest.fixture
def meter():
    return CountingMeter()


@pytest.fixture
def controller(config, fake_backend, meter, microphones, publisher):
    return SessionController(config, fake_backend, meter,
                             event_publisher=SessionEventPublisher(publisher),
                             microphone_factory=microphones)


@pytest.fixture
def ui(controller):
    return UIRecorder(controller)


@pytest.mark.unit
class TestControllerStartStop:
    """Test cases for the start/stop lifecycle."""

    def test_start_and_stop(self, controller, fake_backend, microphones, meter, lifecycle, ui):
        async def scenario():
            started = await controller.start()
            active = controller.is_active
            result = await controller.stop()
            return started, active, result

        started, active, result = asyncio.run(scenario())

        assert started is True
        assert active is True
        assert controller.is_active is False
        assert len(fake_backend.streams) == 1
        source = microphones.opened[0]
        assert source.started is True
        assert source.close_calls >= 1
        assert meter.recorded == 1
        assert lifecycle.types == ["started", "stopped"]
        assert result["session_id"] == controller.session_info.session_id
        assert result["transcript"] == ""
        assert ui.errors == []

    def test_second_start_is_rejected(self, controller, fake_backend, microphones):
        async def scenario():
            first = await controller.start()
            second = await controller.start()
            await controller.stop()
            return first, second

        assert asyncio.run(scenario()) == (True, False)
        assert len(fake_backend.streams) == 1
        assert len(microphones.opened) == 1

    def test_concurrent_starts_open_one_stream(self, controller, fake_backend, microphones):
        fake_backend.open_delay = 0.01

        async def scenario():
            results = await asyncio.gather(controller.start(), controller.start())
            await controller.stop()
            return results

        assert sorted(asyncio.run(scenario())) == [False, True]
        assert len(fake_backend.streams) == 1
        assert len(microphones.opened) == 1

    def test_restart_gets_new_session_id(self, controller, fake_backend):
        async def scenario():
            await controller.start()
            first = (await controller.stop())["session_id"]
            await controller.start()
            second = (await controller.stop())["session_id"]
            return first, second

        first, second = asyncio.run(scenario())
        assert first != second
        assert len(fake_backend.streams) == 2

    def test_stop_is_idempotent(self, controller, lifecycle):
        async def scenario():
            await controller.start()
            controller.session.on_event(TranscriptEvent(
                result_id="r1", is_final=True, text="Hello", session_id=controller.session.session_id))
            first = await controller.stop()
            second = await controller.stop()
            return first, second

        first, second = asyncio.run(scenario())
        assert first == second
        assert first["transcript"] == "Hello "
        assert lifecycle.types.count("stopped") == 1

    def test_stop_without_session(self, controller):
        result = asyncio.run(controller.stop())
        assert result == {"transcript": "", "segments": [],
                          "medical_info": controller.get_medical_info().to_dict(), "session_id": None}

    def test_stop_during_handshake(self, controller, fake_backend, microphones, lifecycle):
        fake_backend.open_delay = 0.05

        async def scenario():
            start_task = asyncio.ensure_future(controller.start())
            await asyncio.sleep(0.01)
            await controller.stop()
            return await start_task

        assert asyncio.run(scenario()) is False
        source = microphones.opened[0]
        assert source.started is False
        assert source.close_calls == 1
        assert "started" not in lifecycle.types
        assert controller.session.state is SessionState.CLOSED


@pytest.mark.unit
class TestControllerStartFailures:
    """Test cases for start failures."""

    def test_quota_denied_opens_nothing(self, config, fake_backend, microphones):
        controller = SessionController(config, fake_backend, CountingMeter(allowed=False),
                                       microphone_factory=microphones)
        ui = UIRecorder(controller)

        assert asyncio.run(controller.start()) is False
        assert fake_backend.streams == []
        assert microphones.opened == []
        assert ui.errors == ["Daily limit reached (5 transcriptions). Upgrade to Pro for unlimited access."]

    def test_daily_meter_limits_sessions(self, config, fake_backend, microphones, temp_data_dir):
        meter = DailyUsageMeter(temp_data_dir, free_daily_limit=1)
        controller = SessionController(config, fake_backend, meter, microphone_factory=microphones)
        ui = UIRecorder(controller)

        async def scenario():
            first = await controller.start()
            await controller.stop()
            second = await controller.start()
            return first, second

        assert asyncio.run(scenario()) == (True, False)
        assert len(fake_backend.streams) == 1
        assert len(ui.errors) == 1
        assert ui.errors[0].startswith("Daily limit reached (1 transcriptions).")

    def test_handshake_failure_reported_once(self, controller, fake_backend, microphones, meter, ui):
        fake_backend.open_error = StreamError("Authentication failed")

        assert asyncio.run(controller.start()) is False
        assert ui.errors == ["Authentication failed"]
        source = microphones.opened[0]
        assert source.started is False
        assert source.close_calls == 1
        assert meter.recorded == 0
        assert controller.is_active is False

    def test_microphone_unavailable(self, config, fake_backend):
        def no_microphone(constraints):
            raise DeviceError("No input device found")

        controller = SessionController(config, fake_backend, UnlimitedUsageMeter(),
                                       microphone_factory=no_microphone)
        ui = UIRecorder(controller)

        assert asyncio.run(controller.start()) is False
        assert ui.errors == ["Microphone unavailable: No input device found"]
        assert fake_backend.streams == []

    def test_unknown_specialty_option(self, controller, fake_backend, ui):
        assert asyncio.run(controller.start(StartOptions(specialty="dermatology"))) is False
        assert ui.errors == ["Configuration error: Unknown specialty: dermatology"]
        assert fake_backend.streams == []


@pytest.mark.unit
class TestControllerStreaming:
    """Test cases for audio and transcript flow while a session is live."""

    def test_audio_blocks_become_frames(self, controller, fake_backend, microphones, sine_block):
        async def scenario():
            await controller.start()
            source = microphones.opened[0]
            source.emit(sine_block)
            source.emit(sine_block[:1000])
            await controller.stop()

        asyncio.run(scenario())
        sent = fake_backend.last_stream.sent
        assert [f.sequence_number for f in sent] == [1, 2]
        assert sent[0].sample_count == 2048
        assert sent[1].sample_count == 1000

    def test_final_events_reach_ui(self, controller, fake_backend, ui):
        async def scenario():
            await controller.start()
            fake_backend.last_stream.push(
                TranscriptEvent(result_id="r1", is_final=False, text="It hurts"),
                TranscriptEvent(result_id="r1", is_final=True, text="It hurts when I walk."),
            )
            await _settle()
            return await controller.stop()

        result = asyncio.run(scenario())
        assert ui.transcripts == [("It hurts", True), ("It hurts when I walk. ", False)]
        assert [s.speaker for s in ui.segments] == ["Patient"]
        assert result["segments"][0]["text"] == "It hurts when I walk."

    def test_stale_session_events_ignored(self, controller, ui):
        async def scenario():
            await controller.start()
            old_session = controller.session
            await controller.stop()
            await controller.start()
            old_session.on_event(TranscriptEvent(
                result_id="r1", is_final=True, text="from the old session", session_id=old_session.session_id))
            transcript = controller.get_transcript()
            await controller.stop()
            return transcript

        assert asyncio.run(scenario()) == ""
        assert ui.segments == []

    def test_stream_failure_reports_once_and_publishes(self, controller, fake_backend, microphones,
                                                       lifecycle, ui):
        async def scenario():
            await controller.start()
            fake_backend.last_stream.fail(ConnectionResetError("connection reset"))
            await _settle()
            active = controller.is_active
            result = await controller.stop()
            return active, result

        active, result = asyncio.run(scenario())
        assert active is False
        assert len(ui.errors) == 1
        assert ui.errors[0].startswith("Transcription stopped:")
        assert microphones.opened[0].close_calls >= 1
        assert lifecycle.types == ["started", "failed"]
        assert result["transcript"] == ""

    def test_capture_error_stops_session(self, controller, microphones, lifecycle, ui):
        async def scenario():
            await controller.start()
            microphones.opened[0].on_error(DeviceError("Input overflowed"))
            await controller._capture_failure_stop
            return controller.session.state

        assert asyncio.run(scenario()) is SessionState.CLOSED
        assert ui.errors == ["Microphone unavailable: Input overflowed"]
        assert lifecycle.types == ["started", "failed"]

    def test_stop_after_capture_error_waits_for_trailing_results(self, controller, fake_backend,
                                                                 microphones, lifecycle, ui):
        fake_backend.end_on_close_send = False

        async def scenario():
            await controller.start()
            stream = fake_backend.last_stream
            microphones.opened[0].on_error(DeviceError("Input overflowed"))
            await asyncio.sleep(0.01)

            async def late_results():
                await asyncio.sleep(0.05)
                stream.push(TranscriptEvent(result_id="r9", is_final=True, text="trailing final"))
                stream.end()

            helper = asyncio.ensure_future(late_results())
            result = await controller.stop()
            state = controller.session.state
            await helper
            return result, state

        result, state = asyncio.run(scenario())
        assert state is SessionState.CLOSED
        assert result["transcript"] == "trailing final "
        assert lifecycle.types == ["started", "failed", "stopped"]
        assert ui.errors == ["Microphone unavailable: Input overflowed"]

    def test_block_scheduled_before_stop_is_sent(self, controller, fake_backend, microphones, sine_block):
        async def scenario():
            await controller.start()
            source = microphones.opened[0]
            # As the capture thread does just before close()
            source.loop.call_soon_threadsafe(source.on_block, sine_block)
            await controller.stop()

        asyncio.run(scenario())
        sent = fake_backend.last_stream.sent
        assert len(sent) == 1
        assert sent[0].sample_count == 2048

    def test_send_audio_chunk(self, controller, fake_backend):
        assert controller.send_audio_chunk(b'\x00\x00') == {
            "success": False, "error": "No active transcription session"}

        async def scenario():
            await controller.start()
            odd = controller.send_audio_chunk(b'\x00\x00\x00')
            ok = controller.send_audio_chunk(np.ones(2048, dtype='<i2').tobytes())
            await controller.stop()
            return odd, ok

        odd, ok = asyncio.run(scenario())
        assert odd["success"] is False
        assert ok == {"success": True}
        assert len(fake_backend.last_stream.sent) == 1


@pytest.mark.unit
class TestControllerSpecialty:
    """Test cases for specialty changes."""

    def test_invalid_specialty_rejected(self, controller, ui):
        assert asyncio.run(controller.set_specialty("astrology")) is False
        assert controller.specialty is Specialty.PRIMARYCARE
        assert len(ui.errors) == 1

    def test_specialty_set_while_idle(self, controller, fake_backend):
        assert asyncio.run(controller.set_specialty("cardiology")) is True
        assert controller.specialty is Specialty.CARDIOLOGY
        assert fake_backend.streams == []

    def test_specialty_change_restarts_live_session(self, controller, fake_backend, meter, lifecycle):
        async def scenario():
            await controller.start()
            first_id = controller.session.session_id
            restarted = await controller.set_specialty(Specialty.NEUROLOGY)
            second_id = controller.session.session_id
            await controller.stop()
            return restarted, first_id, second_id

        restarted, first_id, second_id = asyncio.run(scenario())
        assert restarted is True
        assert first_id != second_id
        assert [c.specialty for c in fake_backend.configs] == [Specialty.PRIMARYCARE, Specialty.NEUROLOGY]
        assert meter.recorded == 1
        assert lifecycle.types == ["started", "stopped", "started", "stopped"]

    def test_available_specialties(self, controller):
        specialties = controller.get_available_specialties()
        assert {"value": "CARDIOLOGY", "label": "Cardiology"} in specialties
        assert len(specialties) == 6
