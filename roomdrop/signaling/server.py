"""
aiohttp application exposing the signaling relay over a WebSocket.
"""
import asyncio
import uuid

from aiohttp import web

from roomdrop.core.config import ServerConfig
from roomdrop.core.logging import setup_logging, debug_log
from roomdrop.signaling.relay import SignalingRelay

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, OPTIONS',
    'Access-Control-Allow-Headers': '*',
}


@web.middleware
async def cors_preflight_middleware(request, handler):
    """Answer CORS preflight requests for every route."""
    if request.method == 'OPTIONS':
        return web.Response(status=204)
    return await handler(request)


async def _add_cors_headers(request, response):
    response.headers.update(CORS_HEADERS)


async def handle_relay_websocket(request):
    """Handle one client connection to the relay."""
    relay: SignalingRelay = request.app['relay']
    ws = web.WebSocketResponse()
    await ws.prepare(request)

    peer_id = uuid.uuid4().hex

    try:
        await relay.register(peer_id, ws.send_str)
        async for msg in ws:
            if msg.type == web.WSMsgType.TEXT:
                await relay.handle_message(peer_id, msg.data)
            elif msg.type == web.WSMsgType.ERROR:
                debug_log(f"❌ [Relay] WebSocket error", {
                    "peer_id": peer_id,
                    "error": str(ws.exception())
                }, "ERROR")
                break
            else:
                debug_log(f"⚠️ [Relay] Ignoring non-text frame", {
                    "peer_id": peer_id,
                    "frame_type": str(msg.type)
                }, "WARNING")
    finally:
        await relay.disconnect(peer_id)

    return ws


async def handle_status(request):
    """Handle status request."""
    relay: SignalingRelay = request.app['relay']
    return web.json_response(relay.get_status())


def create_app(config: ServerConfig = None, relay: SignalingRelay = None) -> web.Application:
    """Build the relay application."""
    config = config or ServerConfig()
    app = web.Application(middlewares=[cors_preflight_middleware])
    app['config'] = config
    app['relay'] = relay or SignalingRelay(config)
    app.on_response_prepare.append(_add_cors_headers)

    app.router.add_get(config.relay_path, handle_relay_websocket)
    app.router.add_get("/status", handle_status)
    return app


async def serve(config: ServerConfig = None):
    """Run the relay until cancelled."""
    config = config or ServerConfig()
    setup_logging(level=config.log_level, log_file="roomdrop_relay.log")
    debug_log(f"🚀 [Main] Starting RoomDrop relay", {"config": str(config)})

    app = create_app(config)
    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, config.host, config.port)
    await site.start()
    debug_log(f"🌐 [Main] Relay listening on ws://{config.host}:{config.port}{config.relay_path}")

    try:
        await asyncio.Future()
    finally:
        await runner.cleanup()
