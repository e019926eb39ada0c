"""Depth-of-market analyzer CLI.

Usage examples:
  python -m dom_signals.apps.dom_cli run --symbol BTCUSD --duration 10 --interval 1 --seed 42
  python -m dom_signals.apps.dom_cli run --config settings.yaml --db dom_analysis.db
  python -m dom_signals.apps.dom_cli show --db dom_analysis.db --limit 20
"""
from __future__ import annotations
import argparse
import sys
from dotenv import load_dotenv
from loguru import logger
from ..core.config import ConfigError, Settings, load_settings
from ..orderflow.analyzer import OrderFlowAnalyzer
from ..orderflow.persistence import AnalysisWriter
from ..orderflow.service import AnalyzerService, SimulatedBookSource


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    logger.remove()
    logger.add(
        sys.stdout,
        level=level.upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        colorize=True,
    )
    if log_file:
        logger.add(log_file, level=level.upper(), rotation="10 MB")


def _settings(args) -> Settings:
    if args.config:
        return load_settings(args.config)
    return Settings()


def cmd_run(args) -> int:
    settings = _settings(args)
    db_path = args.db or settings.service.sqlite_path
    interval = args.interval or settings.service.interval_s
    source = SimulatedBookSource(
        symbol=args.symbol, base_price=args.base_price, seed=args.seed, settings=settings
    )
    analyzer = OrderFlowAnalyzer(source, settings)
    writer = AnalysisWriter(sqlite_path=db_path)
    try:
        with analyzer.subscribed(args.symbol, logging_enabled=not args.quiet) as ok:
            if not ok:
                logger.error(f"Analyzer init failed for {args.symbol}")
                return 1
            svc = AnalyzerService(analyzer, writer, interval_s=interval)
            cycles = svc.run_loop(duration_s=args.duration)
        logger.info(f"run.complete symbol={args.symbol} cycles={cycles} db={db_path}")
        print(writer.query_frame(limit=cycles).to_string(index=False))
    finally:
        writer.close()
    return 0


def cmd_show(args) -> int:
    writer = AnalysisWriter(sqlite_path=args.db)
    try:
        df = writer.query_frame(limit=args.limit)
    finally:
        writer.close()
    if df.empty:
        logger.warning(f"No records in {args.db}")
        return 1
    print(df.to_string(index=False))
    return 0


def build_parser():
    p = argparse.ArgumentParser("dom_cli")
    p.add_argument('--log-level', default='INFO')
    p.add_argument('--log-file', default=None)
    sub = p.add_subparsers(dest='cmd', required=True)
    pr = sub.add_parser('run')
    pr.add_argument('--config', default=None)
    pr.add_argument('--symbol', default='BTCUSD')
    pr.add_argument('--base-price', type=float, default=100.0)
    pr.add_argument('--duration', type=float, default=10.0)
    pr.add_argument('--interval', type=float, default=None)
    pr.add_argument('--seed', type=int, default=None)
    pr.add_argument('--db', default=None)
    pr.add_argument('--quiet', action='store_true', help='disable analyzer diagnostics')
    pr.set_defaults(func=cmd_run)
    ps = sub.add_parser('show')
    ps.add_argument('--db', default='dom_analysis.db')
    ps.add_argument('--limit', type=int, default=20)
    ps.set_defaults(func=cmd_show)
    return p


def main(argv=None) -> int:  # pragma: no cover
    load_dotenv()
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file)
    try:
        return args.func(args)
    except ConfigError as e:
        logger.error(f"config error: {e}")
        return 2


if __name__ == '__main__':  # pragma: no cover
    sys.exit(main())
