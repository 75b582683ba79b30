"""FastAPI admin API for textwallet."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import uvicorn
from fastapi import FastAPI, HTTPException

from textwallet.core.bot import WalletBot
from textwallet.errors import WalletBotError

logger = logging.getLogger("textwallet.dashboard")

_app = FastAPI(title="textwallet admin")
_bot: WalletBot | None = None
_config_path: Path | None = None
_poll_task: asyncio.Task | None = None


def _require_bot() -> WalletBot:
    if _bot is None:
        raise HTTPException(status_code=503, detail="Bot not loaded")
    return _bot


@_app.on_event("startup")
async def startup():
    global _bot, _poll_task
    if _bot is None:
        _bot = await WalletBot.load(_config_path)
    if _bot.config.admin.poll:
        _poll_task = asyncio.create_task(_bot.start_polling())
    logger.info(f"Admin API started for '{_bot.config.name}'")


@_app.on_event("shutdown")
async def shutdown():
    global _poll_task
    if _bot:
        _bot.stop()
        if _poll_task is not None:
            await _poll_task
            _poll_task = None
        await _bot.shutdown()


# ------------------------------------------------------------------
# API routes
# ------------------------------------------------------------------


@_app.get("/api/status")
async def api_status():
    return await _require_bot().status()


@_app.get("/api/users")
async def api_users():
    bot = _require_bot()
    return await bot.registration.list_registered()


@_app.get("/api/users/{identity}")
async def api_user(identity: str):
    bot = _require_bot()
    record = await bot.registration.get_user_wallet(identity)
    if record is None:
        raise HTTPException(status_code=404, detail=f"{identity} is not registered")
    data = record.public_view()
    data["explorer_url"] = bot.chain.address_url(record.wallet_address)
    return data


@_app.delete("/api/users/{identity}")
async def api_unregister(identity: str):
    bot = _require_bot()
    try:
        removed = await bot.registration.unregister_user(identity)
    except WalletBotError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not removed:
        raise HTTPException(status_code=404, detail=f"{identity} is not registered")
    return {"status": "unregistered", "identity": identity}


# ------------------------------------------------------------------
# Runner
# ------------------------------------------------------------------


def set_bot(bot: WalletBot | None) -> None:
    """Install an already-built bot (used by tests and embedding callers)."""
    global _bot
    _bot = bot


def get_app() -> FastAPI:
    return _app


def run_server(host: str = "127.0.0.1", port: int = 4000, config_path: Path | None = None) -> None:
    global _config_path
    _config_path = config_path
    uvicorn.run(_app, host=host, port=port, log_level="info")
