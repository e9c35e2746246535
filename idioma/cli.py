"""
Command-line interface for Idioma.
"""
import sys
import json
import argparse
import asyncio
import logging
from typing import Any, Dict

import uvicorn

from idioma.config import config, get_config
from idioma.core.article import ProficiencyLevel, SimplifiedContent
from idioma.core.exceptions import IdiomaError
from idioma.core.processor import build_service

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, str(get_config('logging.level', 'INFO')).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


def parse_args(argv=None):
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(description="Idioma - leveled news reading backend")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP gateway")
    serve.add_argument("--host", default=get_config('server.host'))
    serve.add_argument("--port", type=int, default=get_config('server.port'))

    extract = commands.add_parser("extract", help="Extract readable content from a URL")
    extract.add_argument("url")

    simplify = commands.add_parser("simplify", help="Rewrite an extracted article at a CEFR level")
    simplify.add_argument("url")
    simplify.add_argument("--level", default=ProficiencyLevel.B1.value,
                          choices=[level.value for level in ProficiencyLevel])
    simplify.add_argument("--stream", action="store_true", help="Print text as the model produces it")

    news = commands.add_parser("news", help="List news for a country and language")
    news.add_argument("country")
    news.add_argument("language")

    return parser.parse_args(argv)


def _print_json(data: Dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


async def run_command(args) -> int:
    """
    Run one pipeline command against the configured store.

    Args:
        args: Parsed arguments

    Returns:
        Process exit code
    """
    service = build_service(config)
    try:
        if args.command == "extract":
            _print_json((await service.extract(args.url)).to_dict())
        elif args.command == "simplify" and not args.stream:
            _print_json((await service.simplify(args.url, args.level)).to_dict())
        elif args.command == "simplify":
            result = await service.simplify_stream(args.url, args.level)
            if isinstance(result, SimplifiedContent):
                print(result.simplified_html)
            else:
                async for chunk in result:
                    if chunk.done:
                        print()
                        logger.info(f"Stream complete, {chunk.total_tokens} tokens")
                    else:
                        print(chunk.content, end='', flush=True)
        elif args.command == "news":
            _print_json((await service.news(args.country, args.language)).to_response())
    except IdiomaError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        await service.close()
    return 0


def serve(host: str, port: int) -> int:
    logger.info(f"Starting Idioma gateway on {host}:{port}")
    uvicorn.run("idioma.server:app", host=host, port=port)
    return 0


def main(argv=None):
    """
    Entry point for the command-line script.
    """
    setup_logging()
    args = parse_args(argv)

    try:
        if args.command == "serve":
            return serve(args.host, args.port)
        return asyncio.run(run_command(args))
    except KeyboardInterrupt:
        logger.info("Process interrupted by user")
        return 1
    except Exception as e:
        logger.exception(f"An error occurred: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
