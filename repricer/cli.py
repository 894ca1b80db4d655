import argparse
import json
import logging
import sys
import time
import uuid

from repricer.db import get_session
from repricer.services.pricing.autopsy import build_price_autopsy
from repricer.services.pricing.exceptions import RepricerError
from repricer.services.pricing.jobs import RepriceJob
from repricer.services.pricing.locks import SkuLockManager
from repricer.services.pricing.pipeline import build_pipeline, default_price_client_factory
from repricer.settings import settings

# 로그 설정
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger("repricer.cli")

LOCKS = SkuLockManager()


def _pipeline(session, push: bool):
    return build_pipeline(
        session,
        locks=LOCKS,
        price_client_factory=default_price_client_factory if push else None,
    )


def _print(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def run_reprice_command(args) -> int:
    session = next(get_session())
    try:
        pipeline = _pipeline(session, args.push)
        result = pipeline.worker.handle(RepriceJob(sku_id=uuid.UUID(args.sku_id), force=True))
        _print(result.to_dict())
        return 0 if result.success else 2
    except RepricerError as e:
        logger.error(f"[CLI] Reprice failed: {e.message}")
        _print(e.to_dict())
        return 1
    finally:
        session.close()


def run_sweep_command(args) -> int:
    session = next(get_session())
    try:
        summary = _pipeline(session, args.push).scheduler.sweep_signals(args.limit)
        _print(summary)
        return 0
    finally:
        session.close()


def run_schedule_interval_command(args) -> int:
    session = next(get_session())
    try:
        _print(_pipeline(session, False).scheduler.emit_interval_signals())
        return 0
    finally:
        session.close()


def run_autopsy_command(args) -> int:
    session = next(get_session())
    try:
        pipeline = _pipeline(session, False)
        _print(build_price_autopsy(pipeline.repository, uuid.UUID(args.sku_id)))
        return 0
    except RepricerError as e:
        logger.error(f"[CLI] Autopsy failed: {e.message}")
        return 1
    finally:
        session.close()


def run_scheduler_command(args) -> int:
    """
    주기 실행 루프. 시그널 스윕과 time_interval 시그널 생성을 각자의 주기로 실행합니다.
    --once 이면 두 작업을 한 번씩만 실행합니다.
    """
    sweep_every = args.sweep_interval or settings.signal_sweep_interval_seconds
    interval_every = args.interval_signal_interval or settings.interval_signal_interval_seconds
    next_sweep = next_interval = time.monotonic()
    logger.info(f"[CLI] Scheduler started (sweep every {sweep_every}s, interval signals every {interval_every}s)")

    try:
        while True:
            now = time.monotonic()
            session = next(get_session())
            try:
                pipeline = _pipeline(session, args.push)
                if now >= next_interval:
                    pipeline.scheduler.emit_interval_signals()
                    next_interval = now + interval_every
                if now >= next_sweep:
                    pipeline.scheduler.sweep_signals()
                    next_sweep = now + sweep_every
            except Exception as e:
                logger.exception(f"[CLI] Scheduler tick failed: {e}")
            finally:
                session.close()

            if args.once:
                return 0
            time.sleep(max(0.0, min(next_sweep, next_interval) - time.monotonic()))
    except KeyboardInterrupt:
        logger.info("[CLI] Scheduler stopped")
        return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Repricer Operations CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    reprice_parser = subparsers.add_parser("reprice", help="Run the reprice pipeline for one SKU")
    reprice_parser.add_argument("sku_id")
    reprice_parser.add_argument("--push", action="store_true", help="Push the new price to the marketplace")

    sweep_parser = subparsers.add_parser("sweep-signals", help="Process unprocessed signals by priority")
    sweep_parser.add_argument("--limit", type=int, default=None)
    sweep_parser.add_argument("--push", action="store_true")

    subparsers.add_parser("schedule-interval", help="Emit time_interval signals for every governed SKU")

    autopsy_parser = subparsers.add_parser("autopsy", help="Explain the current price of a SKU")
    autopsy_parser.add_argument("sku_id")

    scheduler_parser = subparsers.add_parser("run-scheduler", help="Run the periodic scheduler loop")
    scheduler_parser.add_argument("--sweep-interval", type=int, default=None)
    scheduler_parser.add_argument("--interval-signal-interval", type=int, default=None)
    scheduler_parser.add_argument("--once", action="store_true")
    scheduler_parser.add_argument("--push", action="store_true")

    args = parser.parse_args(argv)

    commands = {
        "reprice": run_reprice_command,
        "sweep-signals": run_sweep_command,
        "schedule-interval": run_schedule_interval_command,
        "autopsy": run_autopsy_command,
        "run-scheduler": run_scheduler_command,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1
    return handler(args)


if __name__ == "__main__":
    sys.exit(main())
