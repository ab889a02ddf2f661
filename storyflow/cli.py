"""storyflow command line.

    storyflow compile flow.story -o flow.bpmn --format bpmn
    storyflow export-bpmn flow.json flow.bpmn
    storyflow serve
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from .compiler import CompileResult, compile_script, compile_story
from .config import AppConfig
from .errors import StoryFlowError
from .server import CompileServer

logger = logging.getLogger(__name__)

FORMATS = ('script', 'bpmn', 'forms', 'ir')


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def _render(result: CompileResult, fmt: str) -> str:
    if fmt == 'bpmn':
        return result.bpmn()
    if fmt == 'forms':
        return json.dumps(result.forms(), indent=2, ensure_ascii=False) + '\n'
    if fmt == 'ir':
        return json.dumps(result.to_dict(), indent=2, ensure_ascii=False) + '\n'
    return result.script_json()


def _write(text: str, output: str | None) -> None:
    if output:
        Path(output).write_text(text, encoding='utf-8')
        logger.info("Wrote %s", output)
    else:
        sys.stdout.write(text)


def cmd_compile(args: argparse.Namespace, config: AppConfig) -> int:
    source = Path(args.input).read_text(encoding='utf-8')
    result = compile_story(source, config)
    _write(_render(result, args.format), args.output)
    return 0


def cmd_export_bpmn(args: argparse.Namespace, config: AppConfig) -> int:
    document = Path(args.input).read_text(encoding='utf-8')
    result = compile_script(document, config)
    _write(result.bpmn(), args.output)
    return 0


async def _serve(config: AppConfig) -> None:
    server = CompileServer(config)
    task = asyncio.ensure_future(server.start())

    loop = asyncio.get_running_loop()

    def _shutdown() -> None:
        logger.info("Shutdown signal received")
        task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _shutdown)

    try:
        await task
    except asyncio.CancelledError:
        pass


def cmd_serve(args: argparse.Namespace, config: AppConfig) -> int:
    asyncio.run(_serve(config))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='storyflow',
        description='Compile StoryFlow documents to SimpleScript, form schemas and BPMN',
    )
    parser.add_argument('--log-level', help='Override STORYFLOW_LOG_LEVEL')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('compile', help='Compile a StoryFlow file')
    p.add_argument('input', help='StoryFlow source file')
    p.add_argument('--output', '-o', help='Output file (default: stdout)')
    p.add_argument('--format', '-f', choices=FORMATS, default='script',
                   help='Output format (default: script)')
    p.set_defaults(func=cmd_compile)

    p = sub.add_parser('export-bpmn', help='Convert a SimpleScript JSON document to BPMN')
    p.add_argument('input', help='SimpleScript / IR JSON file')
    p.add_argument('output', nargs='?', help='Output .bpmn file (default: stdout)')
    p.set_defaults(func=cmd_export_bpmn)

    p = sub.add_parser('serve', help='Run the HTTP compile service')
    p.set_defaults(func=cmd_serve)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = AppConfig.from_env()
    _configure_logging(args.log_level or config.log_level)

    try:
        return args.func(args, config)
    except StoryFlowError as exc:
        print(f'error: {exc}', file=sys.stderr)
        return 1
    except (OSError, UnicodeDecodeError) as exc:
        print(f'error: {exc}', file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
