from __future__ import annotations
import os
from smartflow_server.core.config import settings
from smartflow_server.core.logging_config import configure_logging

DEFAULT_PORT = 4170
APP_PATH = 'smartflow_server.main:app'


def _bind() -> tuple[str, int]:
    host = os.getenv('SMARTFLOW_HOST', '0.0.0.0')
    raw_port = os.getenv('SMARTFLOW_PORT', str(DEFAULT_PORT))
    try:
        port = int(raw_port)
    except ValueError:
        print(f"[entrypoint] invalid SMARTFLOW_PORT={raw_port!r}; using {DEFAULT_PORT}", flush=True)
        port = DEFAULT_PORT
    return host, port


def serve(*, reload: bool) -> None:
    """Run uvicorn against the app. ``reload`` is the dev variant (autoreload, uvicorn's own log config off)."""
    configure_logging(settings.log_level, playback_ticks=settings.log_playback_ticks)
    mode = 'dev' if reload else 'prod'
    if reload:
        os.environ.setdefault('SMARTFLOW_DEVMODE', '1')
    host, port = _bind()
    print(
        f"[entrypoint] {mode} version={settings.version} store={settings.entity_store_url or '<unset>'} "
        f"bind={host}:{port} log_level={settings.log_level}",
        flush=True,
    )
    if not reload:
        for line in settings.diagnostics or []:
            print(f"[entrypoint][config] {line}", flush=True)

    import uvicorn
    from uvicorn.config import LOGGING_CONFIG
    try:
        uvicorn.run(
            APP_PATH,
            host=host,
            port=port,
            reload=reload,
            log_level=settings.log_level.lower(),
            log_config=None if reload else LOGGING_CONFIG,
        )
    except BaseException as exc:  # SystemExit included
        print(f"[entrypoint] uvicorn exited with {type(exc).__name__}: {exc}", flush=True)
        raise
    finally:
        print(f"[entrypoint] {mode} server stopped", flush=True)


def main():  # pragma: no cover
    serve(reload=False)


def dev():  # pragma: no cover
    serve(reload=True)


if __name__ == '__main__':  # pragma: no cover
    main()
