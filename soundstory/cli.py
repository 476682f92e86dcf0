from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import TextIO

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from .backend import load_backend
from .catalog import TrackCatalog
from .classifier import LiteLLMClassifier
from .config import SoundStoryConfig
from .errors import InvalidConfigError
from .layers import AudioLayerManager
from .logging_utils import configure_logging, debug_enabled, get_log_path, log_exception
from .pipeline import AnalysisOutcome, NarrationSession
from .schema import MOODS, NARRATIVE_EVENTS, SETTINGS, STORY_PRESETS, AttributeTuple
from .selector import all_table_track_ids, select
from .store import InMemorySessionStore, JsonlSessionStore, SessionStore
from .transcriber import LiteLLMTranscriber

_LOGGER = logging.getLogger("soundstory.cli")
_CONSOLE = Console()


def render_error(context: str, exc: BaseException, *, console: Console | None = None) -> None:
    target = console or Console(stderr=True)
    body = Text.assemble(
        ("SoundStory error while ", "bold"),
        (context, "bold"),
        (":\n\n", "bold"),
        (type(exc).__name__, "bold red"),
        (": ", "bold"),
        str(exc),
        (f"\nLogs: {get_log_path()}", "dim"),
        ("\n\nSet SOUNDSTORY_DEBUG=1 for console trace.", "dim"),
    )
    target.print(Panel(body, title="Error", border_style="red"))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="soundstory")
    sub = parser.add_subparsers(dest="command", required=True)

    pick = sub.add_parser("select", help="Print the soundscape for one attribute tuple.")
    pick.add_argument("--mood", choices=MOODS, required=True)
    pick.add_argument("--setting", choices=SETTINGS, required=True)
    pick.add_argument("--intensity", type=float, required=True)
    pick.add_argument("--event", choices=NARRATIVE_EVENTS, required=True)

    narrate = sub.add_parser("narrate", help="Read transcript lines from stdin and score them live.")
    narrate.add_argument("--preset", choices=STORY_PRESETS, default="Fantasy")
    narrate.add_argument("--model", type=str, default=None)
    narrate.add_argument("--sounds-dir", type=str, default=None)
    narrate.add_argument("--store", type=str, default=None)
    narrate.add_argument("--no-audio", action="store_true")
    narrate.add_argument(
        "--audio-file",
        action="append",
        default=None,
        help="Transcribe recorded narration chunks (m4a, wav, mp3, webm) instead of reading stdin.",
    )

    history = sub.add_parser("history", help="Show stored analyses of a session.")
    history.add_argument("session_id", type=str)
    history.add_argument("--store", type=str, required=True)
    history.add_argument("--limit", type=int, default=None)
    history.add_argument("--offset", type=int, default=0)

    doctor = sub.add_parser("doctor", help="Check catalog coverage and log paths.")
    doctor.add_argument("--sounds-dir", type=str, default=None)
    return parser


def _open_store(path: str | None, config: SoundStoryConfig) -> SessionStore:
    target = path or config.store_path
    if target is None:
        return InMemorySessionStore()
    return JsonlSessionStore(target)


async def _narrate(args: argparse.Namespace, stream: TextIO) -> int:
    config = SoundStoryConfig.from_env(sounds_dir=args.sounds_dir, classifier_model=args.model)
    store = _open_store(args.store, config)
    classifier = LiteLLMClassifier(config.classifier_model, timeout=config.classifier_timeout_seconds)

    manager: AudioLayerManager | None = None
    if not args.no_audio:
        if config.sounds_dir is None:
            raise InvalidConfigError("--sounds-dir (or SOUNDSTORY_SOUNDS_DIR) is required for audio")
        catalog = TrackCatalog.from_directory(config.sounds_dir)
        manager = AudioLayerManager(load_backend(), catalog, config=config)

    transcriber = LiteLLMTranscriber(config.transcription_model) if args.audio_file else None

    narration = await NarrationSession.start(
        store,
        classifier,
        preset=args.preset,
        manager=manager,
        transcriber=transcriber,
        config=config,
    )
    if narration.audio_error is not None:
        _CONSOLE.print(f"[yellow]Audio unavailable, continuing silently:[/] {narration.audio_error}")
    _CONSOLE.print(f"Session [bold]{narration.session.id}[/] started ({args.preset}).")
    try:
        if args.audio_file:
            for audio_path in args.audio_file:
                path = Path(audio_path).expanduser()
                audio = await asyncio.to_thread(path.read_bytes)
                _print_outcome(await narration.process_audio(audio, filename=path.name))
        else:
            while True:
                line = await asyncio.to_thread(stream.readline)
                if not line:
                    break
                _print_outcome(await narration.analyze(line))
    finally:
        await narration.end()
    return 0


def _print_outcome(outcome: AnalysisOutcome | None) -> None:
    if outcome is None:
        _CONSOLE.print("[dim]no change this cycle[/]")
        return
    _CONSOLE.print(f"[dim]{outcome.record.transcript}[/]")
    _CONSOLE.print(outcome.attributes.describe())
    _CONSOLE.print_json(json.dumps(outcome.selection.as_payload()))


def _print_history(args: argparse.Namespace) -> int:
    config = SoundStoryConfig.from_env()
    store = JsonlSessionStore(args.store)
    limit = args.limit or config.history_page_size
    page = store.history(args.session_id, limit=limit, offset=args.offset)
    for record in page.analyses:
        _CONSOLE.print(f"[dim]{record.timestamp.isoformat()}[/] {record.transcript}")
        _CONSOLE.print(f"  {record.attributes.describe()}")
    _CONSOLE.print(f"{len(page.analyses)} of {page.total} analyses")
    return 0


def _doctor(args: argparse.Namespace) -> int:
    config = SoundStoryConfig.from_env(sounds_dir=args.sounds_dir)
    report = [f"Log file: {get_log_path()}"]
    if config.sounds_dir is None:
        report.append("Sounds directory: not configured (set SOUNDSTORY_SOUNDS_DIR)")
    else:
        catalog = TrackCatalog.from_directory(config.sounds_dir)
        missing = catalog.missing(all_table_track_ids())
        report.append(f"Sounds directory: {config.sounds_dir} ({len(catalog)} tracks)")
        report.append(f"Missing track ids: {len(missing)}")
        report.extend(f"- {track_id}" for track_id in missing)
    for line in report:
        _CONSOLE.print(line)
    return 0


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    try:
        parser = build_parser()
        args = parser.parse_args(argv)

        if args.command == "select":
            attributes = AttributeTuple(
                mood=args.mood,
                setting=args.setting,
                intensity=args.intensity,
                narrative_event=args.event,
            )
            _CONSOLE.print_json(json.dumps(select(attributes).as_payload()))
            return 0

        if args.command == "narrate":
            return asyncio.run(_narrate(args, sys.stdin))

        if args.command == "history":
            return _print_history(args)

        if args.command == "doctor":
            return _doctor(args)

        parser.print_help()
        return 1
    except Exception as exc:
        _LOGGER.warning("soundstory CLI failed: %s", exc, exc_info=debug_enabled())
        log_exception("soundstory CLI", exc)
        render_error("soundstory CLI", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
