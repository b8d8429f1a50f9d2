"""Main application entry point for MedScribe."""

import sys
import signal
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

from .config import MedScribeConfig
from .context import AppContext
from .errors import ScribeError
from .models.session import Specialty, TranscriptionMode, StartOptions, available_specialties
from .notes.prompts import NOTE_TEMPLATES
from .ui.console import TranscriptConsole

logger = logging.getLogger(__name__)


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/medscribe.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config, warnings and above
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("MedScribe starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def attach_console(ui: TranscriptConsole, controller, stop_event: asyncio.Event) -> None:
    """Route controller callbacks to ``ui``; any reported error also ends the recording wait."""
    ui.attach(controller)

    def on_error(message: str) -> None:
        ui.on_error(message)
        stop_event.set()

    controller.on_error(on_error)


async def _wait_for_stop(duration: Optional[int], stop_event: asyncio.Event) -> None:
    """Return after ``duration`` seconds, on Ctrl-C/SIGTERM, or once ``stop_event`` is set."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Not available on Windows
            pass

    try:
        await asyncio.wait_for(stop_event.wait(), timeout=duration)
    except asyncio.TimeoutError:
        logger.info(f"Recording duration of {duration}s reached")
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass


async def run_consultation(context: AppContext, args: argparse.Namespace) -> int:
    """Record one consultation, save it and optionally generate a note.

    Returns:
        Process exit code
    """
    ui = TranscriptConsole(context.publisher)
    try:
        controller = context.build_controller()
    except ScribeError as e:
        ui.on_error(e.message)
        return 1
    stop_event = asyncio.Event()
    attach_console(ui, controller, stop_event)

    options = StartOptions(
        specialty=Specialty.parse(args.specialty) if args.specialty else None,
        mode=TranscriptionMode.parse(args.mode) if args.mode else None,
    )

    ui.start_live()
    try:
        if not await controller.start(options):
            return 1
        await _wait_for_stop(args.duration, stop_event)
        result = await controller.stop()
    finally:
        ui.stop_live()

    ui.show_result(result)
    store = context.build_store()
    session_info = controller.session_info.to_dict() if controller.session_info else None
    consultation_id = store.save(result, session_info)
    ui.console.print(f"[green]✅ Consultation saved as {consultation_id}[/green]")

    if args.no_note or not result["transcript"].strip():
        return 0

    generator = context.build_note_generator()
    note = await generator.generate(result["transcript"], template=args.note_template,
                                    segments=result["segments"])
    store.attach_note(consultation_id, note.to_dict())
    ui.show_note(note.to_dict())
    return 0


def main() -> None:
    """Main entry point for MedScribe application."""
    parser = argparse.ArgumentParser(
        description="MedScribe - real-time medical transcription and clinical notes",
        epilog="Press Ctrl-C to stop recording"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in defaults)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: logging.level from config)"
    )

    parser.add_argument(
        "--duration",
        type=int,
        help="Stop recording after this many seconds (default: record until Ctrl-C)"
    )

    parser.add_argument(
        "--specialty",
        type=str,
        choices=[s.value for s in Specialty],
        help="Medical specialty vocabulary (default: transcription.specialty from config)"
    )

    parser.add_argument(
        "--mode",
        type=str,
        choices=[m.value for m in TranscriptionMode],
        help="CONVERSATION (clinician and patient) or DICTATION"
    )

    parser.add_argument(
        "--note-template",
        type=str,
        default="soap",
        choices=list(NOTE_TEMPLATES),
        help="Clinical note template (default: soap)"
    )

    parser.add_argument(
        "--no-note",
        action="store_true",
        help="Do not generate a clinical note after recording"
    )

    parser.add_argument(
        "--list-specialties",
        action="store_true",
        help="List available specialties and exit"
    )

    parser.add_argument(
        "--history",
        action="store_true",
        help="List saved consultations and exit"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="MedScribe v0.1.0"
    )

    args = parser.parse_args()

    try:
        config = MedScribeConfig(args.config)
    except ScribeError as e:
        print(f"❌ Error: {e.message}")
        sys.exit(1)

    setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))
    context = AppContext(config)

    if args.list_specialties:
        TranscriptConsole(context.publisher).show_specialties(available_specialties())
        return
    if args.history:
        TranscriptConsole(context.publisher).show_history(context.build_store().list_consultations())
        return

    try:
        exit_code = asyncio.run(run_consultation(context, args))
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
        exit_code = 0
    except Exception as e:
        print(f"❌ Error: {e}")
        logger.error(f"Application error: {e}", exc_info=True)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
