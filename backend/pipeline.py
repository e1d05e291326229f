"""
Frame admission and analysis pipeline.

camera -> FrameGate -> AnalysisCoordinator -> VisionClient
       -> speech policy -> SpeechGate -> TTS

Every stage reports into the PipelineStateMachine, which the server
exposes to the device.
"""

import logging
from typing import Optional

from analysis_coordinator import AnalysisCoordinator
from config import ApiKeyStore, PipelineConfig
from connectivity import ConnectivityMonitor
from frame_gate import FrameGate
from models import Frame
from pipeline_state import PipelineState, PipelineStateMachine
from speech_engine import SpeechEngine
from speech_gate import SpeechGate
from vision_client import VisionClient, build_vision_client

logger = logging.getLogger(__name__)


class VisionPipeline:
    """Owns one instance of each pipeline stage."""

    def __init__(
        self,
        frame_gate: FrameGate,
        coordinator: AnalysisCoordinator,
        key_store: Optional[ApiKeyStore] = None
    ):
        self.frame_gate = frame_gate
        self.coordinator = coordinator
        self.key_store = key_store

    @property
    def state_machine(self) -> PipelineStateMachine:
        return self.coordinator.state_machine

    @property
    def speech_gate(self) -> SpeechGate:
        return self.coordinator.speech_gate

    @property
    def connectivity(self) -> ConnectivityMonitor:
        return self.coordinator.connectivity

    @property
    def state(self) -> PipelineState:
        return self.state_machine.state

    def start(self, audio_enabled: Optional[bool] = None):
        if audio_enabled is not None and audio_enabled != self.coordinator.audio_enabled:
            self.coordinator.set_audio_enabled(audio_enabled)
        self.frame_gate.reset()
        self.coordinator.start()

    def stop(self):
        self.coordinator.stop()

    def set_audio_enabled(self, enabled: bool):
        self.coordinator.set_audio_enabled(enabled)

    def set_api_key(self, api_key: str):
        """Replace the provider credential; restarts an active pipeline."""
        if self.key_store is None:
            raise RuntimeError("Pipeline has no credential store")
        self.key_store.set_api_key(api_key)
        logger.info("🔑 API key updated")
        if self.coordinator.running:
            self.coordinator.start()

    def on_camera_frame(self, frame: Frame) -> bool:
        """Admission then analysis. Returns True if a vision call was launched."""
        if not self.coordinator.running:
            return False
        if not self.frame_gate.admit(frame.captured_at_ms):
            return False
        return self.coordinator.on_frame(frame)

    def submit_frame_threadsafe(self, frame: Frame):
        """Entry point for camera threads outside the event loop."""
        if not self.frame_gate.admit(frame.captured_at_ms):
            return
        self.coordinator.submit_frame_threadsafe(frame)

    async def shutdown(self):
        await self.coordinator.shutdown()
        await self.coordinator.vision_client.aclose()
        self.speech_gate.shutdown()


def build_pipeline(
    config: PipelineConfig,
    speech_engine: SpeechEngine,
    vision_client: Optional[VisionClient] = None,
    connectivity: Optional[ConnectivityMonitor] = None,
    key_store: Optional[ApiKeyStore] = None
) -> VisionPipeline:
    """Wire a pipeline from configuration; collaborators can be injected."""
    if vision_client is None:
        key_store = key_store or ApiKeyStore(config.default_api_key())
        vision_client = build_vision_client(config, key_store)
    else:
        key_store = key_store or getattr(vision_client, "key_store", None)

    connectivity = connectivity or ConnectivityMonitor(
        host=config.connectivity_host,
        port=config.connectivity_port,
        timeout_s=config.connectivity_timeout_s,
        interval_s=config.connectivity_interval_s,
    )
    speech_gate = SpeechGate(
        speech_engine,
        dedupe_window_ms=config.dedupe_window_ms,
        max_utterance_ms=config.max_utterance_ms,
    )
    coordinator = AnalysisCoordinator(
        vision_client=vision_client,
        speech_gate=speech_gate,
        state_machine=PipelineStateMachine(),
        connectivity=connectivity,
        max_distance_m=config.max_object_distance_m,
        dedupe_window_ms=config.dedupe_window_ms,
        audio_enabled=config.audio_enabled,
    )
    logger.info(
        f"✓ Pipeline built | provider={config.provider} | max_fps={config.max_fps} | "
        f"dedupe={config.dedupe_window_ms}ms"
    )
    return VisionPipeline(FrameGate(config.max_fps), coordinator, key_store)
