"""
Command line interface.

    voxclone upload sample.wav --name Alice --language en
    voxclone record --name Bob --seconds 20
    voxclone clone <profile-id> "Text to speak." -o out.wav --emotion happy
    voxclone list
    voxclone delete <profile-id>
    voxclone languages
    voxclone devices
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

from .audio import save_audio
from .capture import list_input_devices
from .config import VoxCloneConfig, load_config
from .datatypes import CloneRequest, Emotion
from .orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="voxclone", description="Voice profile training and speech cloning")
    parser.add_argument("--storage", default=None, help="Storage directory (overrides config)")
    parser.add_argument("--config", default=None, help="JSON config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("record", help="Record a voice sample and train a profile")
    p.add_argument("--name", required=True)
    p.add_argument("--language", default="en")
    p.add_argument("--seconds", type=float, default=30.0, help="Maximum recording length")

    p = sub.add_parser("upload", help="Train a profile from an audio file")
    p.add_argument("path")
    p.add_argument("--name", default=None, help="Profile name (defaults to the file stem)")
    p.add_argument("--language", default="en")

    p = sub.add_parser("clone", help="Synthesize text with a profile")
    p.add_argument("profile_id")
    p.add_argument("text", help="Text, or @file to read it from a file")
    p.add_argument("-o", "--output", default="output.wav")
    p.add_argument("--language", default="auto")
    p.add_argument("--speed", type=float, default=1.0)
    p.add_argument("--pitch", type=float, default=1.0)
    p.add_argument("--emotion", default="neutral", choices=[e.value for e in Emotion])

    sub.add_parser("list", help="List trained profiles")

    p = sub.add_parser("delete", help="Delete a profile and its model")
    p.add_argument("profile_id")

    sub.add_parser("languages", help="List supported languages")
    sub.add_parser("devices", help="List audio input devices")
    return parser


def _print_level(elapsed: float, level: float):
    bar = "#" * int(min(level * 4, 1.0) * 40)
    print(f"\r{elapsed:6.1f}s |{bar:<40}|", end="", flush=True)


def _fail(result) -> int:
    print(f"error: {result.error}", file=sys.stderr)
    return 1


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "devices":
        for i, name in enumerate(list_input_devices()):
            print(f"{i:3d}  {name}")
        return 0

    cfg = load_config(args.config) if args.config else VoxCloneConfig()
    if args.storage:
        cfg.storage_dir = args.storage
    orch = PipelineOrchestrator(cfg)

    if args.command == "languages":
        for code in orch.supported_languages():
            info = orch.catalog.info(code)
            print(f"{code:<5} {info.name:<14} {info.locale:<8} {info.script}")
        return 0

    if args.command == "list":
        for p in orch.list_profiles():
            created = datetime.fromtimestamp(p.created_at).strftime("%Y-%m-%d %H:%M")
            print(f"{p.id}  {p.name:<20} {p.language:<4} {p.duration:6.1f}s  {created}")
        return 0

    if args.command == "delete":
        result = orch.delete_profile(args.profile_id)
        if not result.ok:
            return _fail(result)
        print(f"Deleted {result.value.name}")
        return 0

    if args.command == "upload":
        name = args.name or Path(args.path).stem
        result = orch.upload_profile(args.path, name, args.language)
        if not result.ok:
            return _fail(result)
        print(result.value.id)
        return 0

    if args.command == "record":
        print("Recording... press Ctrl+C to stop early")
        try:
            result = orch.create_profile(args.name, args.seconds, args.language, on_level=_print_level)
        except KeyboardInterrupt:
            orch.cancel_capture()
            raise
        print()
        if not result.ok:
            return _fail(result)
        print(result.value.id)
        return 0

    if args.command == "clone":
        text = args.text
        if text.startswith("@"):
            text = Path(text[1:]).read_text(encoding="utf-8")
        request = CloneRequest(
            text=text,
            profile_id=args.profile_id,
            language=args.language,
            speed=args.speed,
            pitch=args.pitch,
            emotion=args.emotion,
        )
        result = orch.clone(request)
        if not result.ok:
            return _fail(result)
        path = save_audio(result.value, args.output)
        print(f"Wrote {result.value.duration:.2f}s to {path}")
        return 0

    return 2


if __name__ == "__main__":
    sys.exit(main())
