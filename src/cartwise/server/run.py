"""Run the Cartwise API under uvicorn."""

from __future__ import annotations

import asyncio
import os
from typing import Mapping, Optional

import uvicorn
from pydantic import BaseModel, Field, ValidationError, model_validator

APP_FACTORY = "cartwise.server.app:create_app"


class ServerOptions(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)
    reload: bool = False
    # Seconds to serve before shutting down; used by smoke runs.
    duration: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _reload_runs_forever(self) -> "ServerOptions":
        if self.reload and self.duration is not None:
            raise ValueError("reload cannot be combined with CARTWISE_SERVER_DURATION")
        return self


def resolve_options(
    host: Optional[str] = None,
    port: Optional[int] = None,
    reload: Optional[bool] = None,
    environ: Mapping[str, str] | None = None,
) -> ServerOptions:
    """Merge explicit arguments over ``CARTWISE_SERVER_*`` variables."""

    env = os.environ if environ is None else environ
    values: dict[str, object] = {}
    if host or env.get("CARTWISE_SERVER_HOST"):
        values["host"] = host or env["CARTWISE_SERVER_HOST"]
    if port or env.get("CARTWISE_SERVER_PORT"):
        values["port"] = port or env["CARTWISE_SERVER_PORT"]
    values["reload"] = reload if reload is not None else env.get("RELOAD") == "1"
    if env.get("CARTWISE_SERVER_DURATION"):
        values["duration"] = env["CARTWISE_SERVER_DURATION"]

    try:
        return ServerOptions(**values)
    except ValidationError as exc:
        raise SystemExit(f"Invalid server options: {exc}") from exc


async def _serve_for(server: uvicorn.Server, seconds: float) -> None:
    async def _stop_later() -> None:
        await asyncio.sleep(seconds)
        server.should_exit = True

    stopper = asyncio.create_task(_stop_later())
    try:
        await server.serve()
    finally:
        stopper.cancel()


def serve(
    host: Optional[str] = None,
    port: Optional[int] = None,
    reload: Optional[bool] = None,
) -> None:
    options = resolve_options(host, port, reload)
    # log_config=None keeps the handlers installed by create_app().
    uvicorn_kwargs = {"factory": True, "host": options.host, "port": options.port, "log_config": None}

    if options.reload:
        uvicorn.run(APP_FACTORY, reload=True, **uvicorn_kwargs)
        return

    server = uvicorn.Server(uvicorn.Config(APP_FACTORY, **uvicorn_kwargs))
    if options.duration is None:
        server.run()
    else:
        asyncio.run(_serve_for(server, options.duration))


def main() -> None:
    serve()


if __name__ == "__main__":
    main()
