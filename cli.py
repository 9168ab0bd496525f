import argparse
import asyncio
import logging
import os
import shutil
import time

import httpx
import requests

import plan_loader
from client import RunnerClient
from db import SettingsRepository
from gateway import NotFoundError, RepositoryGateway
from migrate import migrate
from progress_tracker import completed_count
from seed_sample_data import seed
from session_models import RunnerState, ServerSnapshot
from session_runner import SessionRunner

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def benchmark(url: str, runs: int = 10) -> float:
    times: list[float] = []
    for _ in range(runs):
        t0 = time.time()
        requests.get(f"{url}/health", timeout=5).raise_for_status()
        times.append(time.time() - t0)
    avg = sum(times) / len(times)
    print(f"Average /health response time over {runs} runs: {avg:.4f}s")
    return avg


async def session_progress(db_path: str, session_id: int | None = None) -> list[str]:
    """Describe where a session would resume, one line per exercise."""
    gateway = RepositoryGateway(db_path)
    if session_id is None:
        active = await gateway.fetch_active_session()
        if active is None:
            return ["No active session"]
        session_id = active.id
    session = await gateway.fetch_session(session_id)
    template = None
    if session.template_id is not None:
        try:
            template = await gateway.fetch_template(session.template_id)
        except NotFoundError:
            logger.info("Template %s no longer exists", session.template_id)
    logs = await gateway.fetch_session_logs(session_id)
    state, _ = plan_loader.reconcile(ServerSnapshot(session, template, logs))
    return _progress_lines(state, session.status)


def _progress_lines(state: RunnerState, status: str) -> list[str]:
    lines = [f"Session {state.session_id} ({status})"]
    for idx, entry in enumerate(state.plan):
        marker = ">" if idx == state.position.exercise_idx else " "
        skipped = " [skipped]" if idx in state.skip_queue else ""
        done = completed_count(state.logs, idx)
        lines.append(
            f"{marker} {idx + 1}. {entry.exercise_name}: {done}/{entry.target_sets}{skipped}"
        )
    return lines


def build_runner(
    db_path: str = "workout.db",
    yaml_path: str = "settings.yaml",
    transport: httpx.AsyncBaseTransport | None = None,
) -> SessionRunner:
    """Create a ``SessionRunner`` talking to the configured API server."""
    settings = SettingsRepository(db_path, yaml_path)
    conn = settings.client_settings()
    client = RunnerClient(
        base_url=conn["base_url"],
        timeout=conn["timeout"],
        transport=transport,
        token=conn["token"],
    )
    logger.debug("Runner client for %s", conn["base_url"])
    return SessionRunner(client, settings.runner_settings())


async def remote_progress(runner: SessionRunner, session_id: int | None = None) -> list[str]:
    """Like ``session_progress`` but resumes the session through the API."""
    try:
        if session_id is None:
            active = await runner.gateway.fetch_active_session()
            if active is None:
                return ["No active session"]
            session_id = active.id
        state = await runner.resume(session_id)
        session = await runner.gateway.fetch_session(session_id)
    finally:
        await runner.gateway.aclose()
    lines = _progress_lines(state, session.status)
    lines.append(
        f"Rest: {runner.settings.rest_time_set}s between sets, "
        f"{runner.settings.rest_time_exercise}s between exercises"
    )
    return lines


def main() -> None:
    parser = argparse.ArgumentParser(description="Session runner utility commands")
    sub = parser.add_subparsers(dest="cmd", required=True)

    srv = sub.add_parser("serve")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="workout.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="workout.db")

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="workout.db")

    status = sub.add_parser("status")
    status.add_argument("--db", default="workout.db")
    status.add_argument("--session", type=int, default=None)
    status.add_argument("--remote", action="store_true", help="query the API server")
    status.add_argument("--settings", default="settings.yaml")

    mig = sub.add_parser("migrate")
    mig.add_argument("--db", default="workout.db")

    bench = sub.add_parser("benchmark")
    bench.add_argument("--url", default="http://localhost:8000")
    bench.add_argument("--runs", type=int, default=10)

    args = parser.parse_args()
    configure_logging()

    if args.cmd == "serve":
        import uvicorn

        uvicorn.run("rest_api:app", host=args.host, port=args.port)
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "demo":
        tid = seed(args.db)
        print("Database already contains templates" if tid is None else f"Demo template {tid} inserted")
    elif args.cmd == "status":
        if args.remote:
            runner = build_runner(args.db, args.settings)
            lines = asyncio.run(remote_progress(runner, args.session))
        else:
            lines = asyncio.run(session_progress(args.db, args.session))
        for line in lines:
            print(line)
    elif args.cmd == "migrate":
        migrate(args.db)
        logger.info("Migrated %s", args.db)
    elif args.cmd == "benchmark":
        benchmark(args.url, args.runs)


if __name__ == "__main__":
    main()
