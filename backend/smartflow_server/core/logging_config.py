from __future__ import annotations

import logging
from typing import Mapping

# Overlay resolution logs one line per playback tick that changes the active
# set, and the websocket stack logs every frame; both drown out request logs.
_PLAYBACK_MARKERS: tuple[str, ...] = (
    "overlays.tick",
    "> TEXT",
    "< TEXT",
    "% sending keepalive ping",
    "% received keepalive pong",
)

# Store calls go through httpx; one INFO line per row fetch is too much.
_LEVEL_FLOORS: Mapping[str, int] = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "websockets": logging.INFO,
    "websockets.server": logging.INFO,
    "uvicorn.protocols.websockets.websockets_impl": logging.INFO,
    "uvicorn.protocols.websockets.wsproto_impl": logging.INFO,
}

LOG_FORMAT = '[%(levelname)s] %(name)s: %(message)s'


class PlaybackChatterFilter(logging.Filter):
    """Drop per-tick playback records unless tick logging is switched on."""

    def __init__(self, enabled: bool = True):
        super().__init__()
        self.enabled = enabled

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.enabled:
            return True
        message = record.getMessage()
        return not any(marker in message for marker in _PLAYBACK_MARKERS)


_CHATTER_FILTER = PlaybackChatterFilter()


def _install_filter(logger: logging.Logger) -> None:
    if _CHATTER_FILTER not in logger.filters:
        logger.addFilter(_CHATTER_FILTER)


def _install_handler(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler):
            _install_filter(handler)
            return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(_CHATTER_FILTER)
    logger.addHandler(handler)


def resolve_level(level_name: str | None) -> int:
    lvl = logging.getLevelName((level_name or 'INFO').upper())
    return lvl if isinstance(lvl, int) else logging.INFO


def configure_logging(level_name: str | None = None, *, playback_ticks: bool = False) -> None:
    """Configure the root logger once; repeated calls only adjust levels.

    ``playback_ticks`` lets overlay tick lines through, which is only useful
    when debugging a player integration.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(resolve_level(level_name))
    _CHATTER_FILTER.enabled = not playback_ticks
    _install_handler(root_logger)

    for name, floor in _LEVEL_FLOORS.items():
        logger = logging.getLogger(name)
        if logger.level < floor:
            logger.setLevel(floor)
        _install_filter(logger)

    for name in ("uvicorn", "uvicorn.error", "smartflow_server"):
        _install_filter(logging.getLogger(name))
