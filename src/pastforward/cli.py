from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .album import AggregationError, AlbumComposer
from .app_logging import LOGGER_NAME, log_with_fields, setup_logger
from .config import AppConfig, ensure_local_paths, load_config
from .eras import build_prompt, eras_for
from .models import Direction, JobStatus, StatusChange
from .scheduler import EraScheduler, PreconditionError
from .transformer import CommandTransformer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pastforward", description="Reimagine a photo across six eras")
    parser.add_argument("--config", required=True, help="Path to pastforward YAML config")
    subparsers = parser.add_subparsers(dest="command", required=True)

    eras_parser = subparsers.add_parser("eras", help="List eras and their prompts")
    eras_parser.add_argument(
        "--direction",
        choices=[d.value for d in Direction],
        help="Only list one direction",
    )

    generate = subparsers.add_parser("generate", help="Generate one image per era and the album page")
    generate.add_argument("--direction", required=True, choices=[d.value for d in Direction])
    generate.add_argument("--image", required=True, help="Source photo")
    generate.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Eras generated at once (defaults to scheduler.concurrency_limit)",
    )
    generate.add_argument(
        "--retry-failed",
        type=int,
        default=0,
        metavar="ROUNDS",
        help="Retry failed eras up to ROUNDS times after the batch",
    )
    generate.add_argument("--no-album", action="store_true", help="Skip composing the album page")
    return parser


def format_change(change: StatusChange) -> str:
    job = change.job
    line = f"  {change.job_id:18} {change.previous.value} -> {job.status.value}"
    if job.status is JobStatus.DONE:
        line += f" {job.result}"
    elif job.status is JobStatus.ERROR:
        line += f" ({job.error_message})"
    return line


def cmd_eras(direction: str | None) -> int:
    directions = [Direction(direction)] if direction else list(Direction)
    for item in directions:
        print(f"{item.value}:")
        for era in eras_for(item):
            print(f"  {era}")
            print(f"    {build_prompt(item, era)}")
    return 0


async def _generate(
    scheduler: EraScheduler,
    direction: str,
    image: Path,
    retry_rounds: int,
    composer: AlbumComposer | None,
) -> int:
    await scheduler.run_batch(direction, image)

    for round_number in range(1, retry_rounds + 1):
        failed = scheduler.failed_ids()
        if not failed:
            break
        print(f"Retry round {round_number}: {', '.join(failed)}")
        for job_id in failed:
            scheduler.retry(job_id)
        await scheduler.wait_for_retries()

    failed = scheduler.failed_ids()
    if composer is not None:
        if scheduler.is_complete():
            album = await scheduler.compose_album(composer)
            print(f"Album: {album}")
        else:
            print(f"Album not ready, failed eras: {', '.join(failed)}", file=sys.stderr)
    return 1 if failed else 0


def cmd_generate(
    config: AppConfig,
    direction: str,
    image: str,
    *,
    concurrency: int | None = None,
    retry_rounds: int = 0,
    album: bool = True,
) -> int:
    source = Path(image).expanduser()
    if not source.is_file():
        print(f"image not found: {source}", file=sys.stderr)
        return 2
    if retry_rounds < 0:
        print("--retry-failed must be >= 0", file=sys.stderr)
        return 2

    ensure_local_paths(config)
    logger = setup_logger(config.paths.log)
    transformer = CommandTransformer(config.transformer, config.paths.output)
    scheduler = EraScheduler(
        transformer,
        concurrency_limit=concurrency or config.scheduler.concurrency_limit,
        logger=logger,
    )
    scheduler.subscribe(lambda change: print(format_change(change)))
    composer = AlbumComposer(config.album, config.paths.output) if album else None

    try:
        return asyncio.run(_generate(scheduler, direction, source, retry_rounds, composer))
    except (PreconditionError, AggregationError) as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        log_with_fields(logging.getLogger(LOGGER_NAME), logging.INFO, "shutdown", reason="keyboard_interrupt")
        return 130


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "eras":
        return cmd_eras(args.direction)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        print(f"invalid config: {exc}", file=sys.stderr)
        return 2

    if args.command == "generate":
        if args.concurrency is not None and args.concurrency < 1:
            parser.error("--concurrency must be >= 1")
        return cmd_generate(
            config,
            args.direction,
            args.image,
            concurrency=args.concurrency,
            retry_rounds=args.retry_failed,
            album=not args.no_album,
        )
    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
