"""Dialogue Loop launcher. Runs the scenario loop until a restart is requested."""

import argparse
import asyncio
import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from dialogue_loop.assets import AssetLibrary
from dialogue_loop.clock import AsyncioClock
from dialogue_loop.config import Settings, load_settings
from dialogue_loop.lifecycle import SceneDirector
from dialogue_loop.pipeline import Supervisor
from dialogue_loop.stage import ConsoleStage
from dialogue_loop.status import create_app
from dialogue_loop.store import HttpQueueStore, QueueStore

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

logger = logging.getLogger("dialogue_loop")


def build_supervisor(settings: Settings, demo: bool = False) -> Supervisor:
    clock = AsyncioClock()
    store: QueueStore
    if demo:
        from dialogue_loop.demo import DEMO_SPEAKERS, create_demo_assets, create_demo_store
        create_demo_assets(settings.asset_root)
        store = create_demo_store()
        settings.speakers = settings.speakers or dict(DEMO_SPEAKERS)
        settings.outro_clips = settings.outro_clips or ["demo/outro.wav"]
        settings.scenes = settings.scenes or ["lounge", "kitchen"]
    else:
        store = HttpQueueStore(
            base_url=settings.store.url,
            api_key=settings.store.api_key,
            data_source=settings.store.data_source,
            database=settings.store.database,
            collection=settings.store.collection,
            timeout=settings.store.timeout,
        )

    assets = AssetLibrary(settings.asset_root)
    stage = ConsoleStage(
        speakers=settings.speakers,
        clock=clock,
        assets=assets,
        outro_clips=settings.outro_clips,
        scroll_speed=settings.scroll_speed,
        max_visible=settings.max_visible_characters,
    )
    return Supervisor(
        settings=settings,
        store=store,
        assets=assets,
        stage=stage,
        lifecycle=SceneDirector(),
        clock=clock,
    )


async def serve(supervisor: Supervisor, status_port: int | None) -> None:
    if status_port is None:
        await supervisor.run()
        return

    host = os.getenv("HOST", "0.0.0.0")
    server = uvicorn.Server(uvicorn.Config(create_app(supervisor), host=host, port=status_port))
    server_task = asyncio.create_task(server.serve())
    try:
        await supervisor.run()
    finally:
        server.should_exit = True
        await server_task


def main():
    parser = argparse.ArgumentParser(description="Dialogue Loop scenario player")
    parser.add_argument("--config", type=Path, default=None,
                        help="JSON config file (default: $CONFIG_FILE)")
    parser.add_argument("--demo", action="store_true",
                        help="Use an in-memory queue with generated demo scenarios")
    parser.add_argument("--status-port", type=int, default=None,
                        help="Serve /api/status on this port")
    args = parser.parse_args()

    settings = load_settings(args.config)
    if args.status_port is not None:
        settings.status_port = args.status_port

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not args.demo and not settings.store.url:
        parser.error("STORE_URL is not set; configure it in .env or the config file")

    supervisor = build_supervisor(settings, demo=args.demo)
    logger.info("Starting in scene %r", supervisor.current_scene)
    asyncio.run(serve(supervisor, settings.status_port))


if __name__ == "__main__":
    main()
