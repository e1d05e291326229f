"""
Vision Narration Server for Blind Assistant
Receives camera frames via Socket.IO, analyzes them with a cloud vision model,
and tells the device what to speak and which pipeline state to show.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import socketio
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from config import PipelineConfig
from frame_gate import monotonic_ms
from models import Frame
from pipeline import VisionPipeline, build_pipeline
from pipeline_state import PipelineState, state_to_dict
from speech_engine import SocketSpeechEngine

# Load environment variables
load_dotenv()

config = PipelineConfig.from_env()

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

sio = socketio.AsyncServer(async_mode='asgi', cors_allowed_origins='*')
speech_engine = SocketSpeechEngine(sio)

# Built at startup
pipeline: Optional[VisionPipeline] = None
connectivity_task: Optional[asyncio.Task] = None


def broadcast_state(loop: asyncio.AbstractEventLoop):
    """State listener: push every transition to all connected devices."""
    def _listener(state: PipelineState):
        asyncio.run_coroutine_threadsafe(sio.emit('state_update', state_to_dict(state)), loop)
    return _listener


@asynccontextmanager
async def lifespan(app: FastAPI):
    global pipeline, connectivity_task
    loop = asyncio.get_running_loop()
    speech_engine.attach_loop(loop)

    logger.info("🤖 Initializing vision pipeline...")
    pipeline = build_pipeline(config, speech_engine)
    pipeline.state_machine.subscribe(broadcast_state(loop))
    connectivity_task = asyncio.create_task(pipeline.connectivity.run())
    logger.info("✓ Vision pipeline initialized successfully")
    yield
    logger.info("🛑 Shutting down server...")
    connectivity_task.cancel()
    await asyncio.gather(connectivity_task, return_exceptions=True)
    await pipeline.shutdown()


app = FastAPI(title="Vision Narration Server", lifespan=lifespan)
socket_app = socketio.ASGIApp(socketio_server=sio, other_asgi_app=app)


@app.get("/health")
async def health():
    """Health check with pipeline status."""
    return {
        "status": "healthy",
        "provider": config.provider,
        "pipeline_ready": pipeline is not None,
        "tts_ready": speech_engine.is_ready(),
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.get("/state")
async def state():
    """Current pipeline state for the presentation layer."""
    if pipeline is None:
        return {"state": "idle"}
    return state_to_dict(pipeline.state)


# ============================================================================
# WEBSOCKET EVENT HANDLERS
# ============================================================================

@sio.event
async def connect(sid, environ):
    logger.info(f"✓ Client connected: {sid}")
    if pipeline is not None:
        await sio.emit('state_update', state_to_dict(pipeline.state), room=sid)


@sio.event
async def disconnect(sid):
    logger.info(f"✗ Client disconnected: {sid}")
    speech_engine.unbind(sid)


@sio.event
async def start_pipeline(sid, data=None):
    if data is None:
        data = {}
    elif not isinstance(data, dict):
        await sio.emit('error', {'message': "Expected {'audio_enabled': true|false} or no payload"}, room=sid)
        return
    audio_enabled = data.get('audio_enabled')
    pipeline.start(audio_enabled=bool(audio_enabled) if audio_enabled is not None else None)


@sio.event
async def stop_pipeline(sid, data=None):
    pipeline.stop()


@sio.event
async def set_audio_enabled(sid, data):
    enabled = data.get('enabled') if isinstance(data, dict) else None
    if not isinstance(enabled, bool):
        await sio.emit('error', {'message': "Expected {'enabled': true|false}"}, room=sid)
        return
    pipeline.set_audio_enabled(enabled)


@sio.event
async def set_api_key(sid, data):
    api_key = data.get('api_key') if isinstance(data, dict) else None
    if not isinstance(api_key, str) or not api_key.strip():
        await sio.emit('error', {'message': 'Missing api_key'}, room=sid)
        return
    pipeline.set_api_key(api_key)


@sio.event
async def tts_ready(sid, data=None):
    ready = True if not isinstance(data, dict) else bool(data.get('ready', True))
    speech_engine.bind(sid, ready=ready)


@sio.event
async def speech_progress(sid, data):
    if not isinstance(data, dict):
        logger.warning(f"⚠️ Malformed speech_progress from {sid}")
        return
    speech_engine.handle_progress(sid, data)


@sio.event
async def video_frame_streaming(sid, data):
    captured_at_ms = monotonic_ms()
    if pipeline is None or not pipeline.coordinator.running:
        return
    # Cheap admission check before decoding
    if pipeline.frame_gate.wait_time_ms(captured_at_ms) > 0:
        logger.debug("Frame dropped due to FPS limit")
        return
    try:
        frame = Frame.from_base64(data['frame'], captured_at_ms, jpeg_quality=config.jpeg_quality)
    except (KeyError, TypeError, ValueError) as e:
        logger.error(f"Error decoding frame: {e}")
        await sio.emit('error', {'message': f'Invalid frame: {e}'}, room=sid)
        return
    pipeline.on_camera_frame(frame)


if __name__ == "__main__":
    uvicorn.run(socket_app, host=config.host, port=config.port, log_level=config.log_level.lower())
