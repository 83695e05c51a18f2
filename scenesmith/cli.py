"""scenesmith CLI entry point."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from scenesmith.agents.base import TargetIds
from scenesmith.agents.orchestrator import GenerationOrchestrator, count_completed
from scenesmith.config import Settings, get_settings
from scenesmith.exceptions import AppException
from scenesmith.services.asset_store import AssetStore
from scenesmith.services.backend import create_image_backend
from scenesmith.services.progress import ProgressLedger
from scenesmith.services.script_loader import load_script

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scenesmith",
        description="Generate character references and scene images from a script",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)

    run_parser = sub.add_parser("run", help="Generate (or resume generating) all assets")
    run_parser.add_argument("script", metavar="script.json", help="Path to a script JSON file")
    run_parser.add_argument("--output-dir", metavar="DIR", help="Override the output directory")
    run_parser.add_argument(
        "--character", action="append", default=[], metavar="NAME",
        help="Only (re)generate this character; may be repeated",
    )
    run_parser.add_argument(
        "--scene", action="append", default=[], metavar="SCENE_ID",
        help="Only (re)generate this scene, e.g. scene_003; may be repeated",
    )

    status_parser = sub.add_parser("status", help="Show how many items are completed")
    status_parser.add_argument("script", metavar="script.json", help="Path to a script JSON file")
    status_parser.add_argument("--output-dir", metavar="DIR", help="Override the output directory")
    return parser


def _settings_for(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    if args.output_dir:
        settings = settings.model_copy(update={"output_dir": Path(args.output_dir)})
    return settings


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    script = load_script(args.script)
    orchestrator = GenerationOrchestrator(settings=settings, backend=create_image_backend(settings))
    targets = TargetIds(character_names=args.character, scene_ids=args.scene)
    summary = await orchestrator.run(script, targets=targets)
    print(f"{summary.completed_items} of {summary.total_items} items completed")
    return 0


def _status(args: argparse.Namespace, settings: Settings) -> int:
    script = load_script(args.script)
    store = AssetStore(settings.output_dir)
    progress = ProgressLedger(store.progress_path).load()
    completed, total = count_completed(script, progress)
    print(f"{completed} of {total} items completed")
    print(f"  characters: {', '.join(progress.completed_characters) or '-'}")
    print(f"  scenes: {', '.join(progress.completed_scenes) or '-'}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = _settings_for(args)
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "status":
            return _status(args, settings)
        return asyncio.run(_run(args, settings))
    except AppException as exc:
        logger.error("%s: %s", exc.code, exc.message)
        return 1


if __name__ == "__main__":
    sys.exit(main())
