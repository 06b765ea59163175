"""
voiceturn console entry point.

Wires the orchestrator to stdin so the turn loop can be driven from a
terminal, the way a hotkey and window events drive it in a desktop app:

    <Enter> / s   toggle (start when idle, otherwise interrupt)
    i             interrupt / barge-in
    d             done speaking (manual stop)
    h             hide (full teardown)
    v             print input/output volume
    q             quit
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from voiceturn.config.settings import load_settings
from voiceturn.core.audio_input import AudioCaptureSession
from voiceturn.pipeline.components import ComponentManager
from voiceturn.pipeline.config import STATE_DISPLAY
from voiceturn.pipeline.orchestrator import DialogueOrchestrator


logger = logging.getLogger("voiceturn")


def _print_status(orchestrator: DialogueOrchestrator, status: Optional[str] = None) -> None:
    text = STATE_DISPLAY[orchestrator.state]
    print(f"\rStatus: {text} | {status or orchestrator.status}            ", flush=True)


async def _stdin_reader_line(loop, queue: asyncio.Queue) -> None:
    """Read lines from stdin, put into queue. Puts None on EOF."""
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            await queue.put(None)
            break
        command = line.strip().lower()
        await queue.put(command)
        if command == "q":
            break


async def run_console(orchestrator: DialogueOrchestrator, auto_start: bool = True) -> None:
    loop = asyncio.get_running_loop()
    commands: asyncio.Queue = asyncio.Queue()

    orchestrator.add_state_listener(lambda old, new: _print_status(orchestrator))
    orchestrator.add_status_listener(lambda status: _print_status(orchestrator, status))

    reader = loop.create_task(_stdin_reader_line(loop, commands))
    print("Enter=toggle  i=interrupt  d=done speaking  h=hide  q=quit\n")

    try:
        if auto_start:
            await orchestrator.request_start()

        while True:
            command = await commands.get()
            if command is None or command == "q":
                break
            if command in ("", "s"):
                await orchestrator.request_toggle()
            elif command == "i":
                await orchestrator.request_interrupt()
            elif command == "d":
                await orchestrator.request_stop()
            elif command == "h":
                await orchestrator.request_hide()
            elif command == "v":
                print(f"in={orchestrator.input_volume():.2f} out={orchestrator.output_volume():.2f}")
            else:
                print(f"Unknown command: {command!r}")
    finally:
        reader.cancel()
        await orchestrator.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Voice turn orchestrator (console)")
    parser.add_argument("--env", default=".env", help="Path to .env file")
    parser.add_argument("--list-devices", action="store_true", help="List input devices and exit")
    parser.add_argument("--no-auto-start", action="store_true", help="Wait for a toggle before listening")
    parser.add_argument("--debug", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    settings = load_settings(args.env)
    level = logging.DEBUG if (args.debug or settings.debug.debug) else getattr(logging, settings.debug.log_level, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    if args.list_devices:
        for dev in AudioCaptureSession.list_devices():
            print(f"  [{dev['index']}] {dev['name']} ({dev['channels']}ch, {dev['sample_rate']}Hz)")
        return 0

    components = ComponentManager(settings)
    try:
        components.initialize_all()
    except (ImportError, AttributeError, ValueError) as e:
        logger.error("Could not load provider: %s", e)
        return 2

    orchestrator = components.build_orchestrator()
    try:
        asyncio.run(run_console(orchestrator, auto_start=not args.no_auto_start))
    except KeyboardInterrupt:
        print("\nInterrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
