from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from .adns import AsyncResolver
from .answer import NormalizedAnswer
from .config.config_parser import logging_config, parse_config_file, resolver_config
from .config.logging_config import init_logging
from .errors import ResolverError

logger = logging.getLogger("netadns.main")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="netadns",
        description="Resolve DNS names through the netadns asynchronous front-end",
    )
    parser.add_argument("names", nargs="+", metavar="NAME", help="Names to resolve")
    parser.add_argument("-c", "--config", default=None, help="Path to YAML config")
    parser.add_argument("-t", "--type", dest="qtype", default="A", help="Record type (default A)")
    parser.add_argument("-C", "--class", dest="qclass", default="IN", help="Record class (default IN)")
    parser.add_argument(
        "--sync", action="store_true", help="Resolve one name at a time with blocking lookups"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Seconds to wait for asynchronous answers before canceling (default 10)",
    )
    parser.add_argument(
        "--log-level", default=None, help="Override logging.level (debug, info, warn, error)"
    )
    return parser


def _load_config(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    return parse_config_file(path)


def _format_result(name: str, answer: Optional[NormalizedAnswer], err: Any) -> str:
    if answer is not None:
        return str(answer)
    return "%s: error: %s" % (name, err)


def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop, resolver: AsyncResolver, config_path: Optional[str]
) -> None:
    """Brief: SIGUSR1 reloads configuration, SIGUSR2 purges the resolver.

    Inputs:
      - loop: Running event loop (handlers run on the loop thread).
      - resolver: Resolver to reconfigure/purge.
      - config_path: Config file re-read on SIGUSR1 (no-op when None).

    Outputs:
      - None
    """

    def _reload() -> None:
        if not config_path:
            logger.info("SIGUSR1: no config file in use, nothing to reload")
            return
        try:
            cfg = parse_config_file(config_path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error("SIGUSR1: failed to reload %s: %s", config_path, e)
            return
        resolver.reload_config(resolver_config(cfg))
        logger.info("SIGUSR1: configuration reloaded from %s", config_path)

    def _purge() -> None:
        resolver.purge()
        logger.info("SIGUSR2: resolver purged")

    for signame, handler in (("SIGUSR1", _reload), ("SIGUSR2", _purge)):
        signum = getattr(signal, signame, None)
        try:
            if signum is None:
                raise NotImplementedError(signame)
            loop.add_signal_handler(signum, handler)
        except (NotImplementedError, RuntimeError, ValueError):
            logger.warning("Could not install %s handler on this platform", signame)


async def _run_async(
    args: argparse.Namespace, cfg: Dict[str, Any]
) -> List[Tuple[str, Optional[NormalizedAnswer], Any]]:
    resolver = AsyncResolver(resolver_config(cfg))
    loop = asyncio.get_running_loop()
    _install_signal_handlers(loop, resolver, args.config)
    try:
        futures = [
            resolver.lookup_promise(name, args.qtype, args.qclass) for name in args.names
        ]
        _, pending = await asyncio.wait(futures, timeout=args.timeout)
        if pending:
            logger.warning(
                "%d lookup(s) still pending after %.1f sec; purging", len(pending), args.timeout
            )
            resolver.purge()

        results: List[Tuple[str, Optional[NormalizedAnswer], Any]] = []
        for name, future in zip(args.names, futures):
            exc = future.exception()
            if exc is None:
                results.append((name, future.result(), None))
            else:
                err = exc.error if isinstance(exc, ResolverError) else exc
                results.append((name, None, err))
        return results
    finally:
        resolver.close()


async def _run_sync(
    args: argparse.Namespace, cfg: Dict[str, Any]
) -> List[Tuple[str, Optional[NormalizedAnswer], Any]]:
    resolver = AsyncResolver(resolver_config(cfg))
    try:
        return [
            (name,) + resolver.lookup_sync(name, args.qtype, args.qclass)
            for name in args.names
        ]
    finally:
        resolver.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Brief: Command-line entrypoint.

    Inputs:
      - argv: Argument list (defaults to sys.argv[1:]).

    Outputs:
      - int: 0 when every lookup produced an answer, 1 when any failed,
        2 on configuration errors.
    """
    args = _build_parser().parse_args(argv)

    try:
        cfg = _load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print("netadns: %s" % e, file=sys.stderr)
        return 2

    log_cfg = logging_config(cfg)
    if args.log_level:
        log_cfg["level"] = args.log_level
    log_cfg.setdefault("level", "warn")
    init_logging(log_cfg)

    runner = _run_sync if args.sync else _run_async
    try:
        results = asyncio.run(runner(args, cfg))
    except ValueError as e:
        # Raised while building the engine from an unusable resolver section.
        print("netadns: %s" % e, file=sys.stderr)
        return 2

    failed = 0
    for name, answer, err in results:
        print(_format_result(name, answer, err))
        if answer is None:
            failed += 1
    return 1 if failed else 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
