"""
gateway/services/devices.py

Host-side adapters for the alarm hardware ports.
The gateway process has no speaker, motor or screen: these adapters record
what the device would do through structlog so alarms remain traceable.
"""

import structlog

from gateway.ports import AcknowledgeAction, AudioUnavailableError, Playable

logger = structlog.get_logger(__name__)


class LoggingVibrator:
    def vibrate(self, duration_ms: int) -> None:
        logger.debug("vibration_pulse", duration_ms=duration_ms)

    def cancel(self) -> None:
        logger.debug("vibration_cancelled")


class UnavailableAudioLoader:
    """No audio device on the host; every load fails and alarms are vibration-only."""

    def load(self, resource_ref: str) -> Playable:
        raise AudioUnavailableError(f"no audio output for {resource_ref}")


class LoggingAcknowledgePrompt:
    """
    Records the prompt instead of rendering it.

    The device app acknowledges through POST /alerts/active/acknowledge.
    """

    def show(
        self,
        title: str,
        message: str,
        on_acknowledge: AcknowledgeAction,
    ) -> None:
        logger.warning("acknowledge_prompt_shown", title=title, message=message)
