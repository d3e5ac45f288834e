"""
gateway/services/notification.py

Notification Dispatcher: drives the vibration and alarm-sound loop while a
glucose alert is unacknowledged.

State machine: IDLE -> PLAYING on trigger_alert, PLAYING -> IDLE only on stop.
There is no timeout. Vibration repeats on a daemon thread until stopped;
audio is best-effort and never blocks vibration.
"""

import threading
from enum import Enum
from typing import Optional

import structlog

from gateway.constants import ALARM_VOLUME
from gateway.ports import AudioLoader, Playable, Vibrator
from gateway.schemas import GlucoseAlert

logger = structlog.get_logger(__name__)


class DispatcherState(str, Enum):
    IDLE = "IDLE"
    PLAYING = "PLAYING"


class NotificationDispatcher:
    """
    Single active alarm at a time.

    stop() joins the loop thread, so once it returns no further vibration
    pulse or audio call can fire; a following trigger_alert starts cleanly.
    """

    def __init__(
        self,
        *,
        vibrator: Vibrator,
        audio_loader: Optional[AudioLoader],
        sound_ref: str,
        fallback_sound_ref: Optional[str] = None,
        pulse_ms: int = 500,
        interval_s: float = 1.5,
    ) -> None:
        self._vibrator = vibrator
        self._audio_loader = audio_loader
        self._sound_ref = sound_ref
        self._fallback_sound_ref = fallback_sound_ref
        self._pulse_ms = pulse_ms
        self._interval_s = interval_s

        self._transition_lock = threading.Lock()
        self._state = DispatcherState.IDLE
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._sound: Optional[Playable] = None

    @property
    def state(self) -> DispatcherState:
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._state is DispatcherState.PLAYING

    def preload(self) -> None:
        """Warm the alarm sound so the first alert starts without delay."""
        if self._sound is None:
            self._sound = self._load(self._sound_ref)

    def trigger_alert(self, alert: GlucoseAlert) -> bool:
        """Start the alarm loop. No-op (returns False) if already playing."""
        with self._transition_lock:
            if self._state is DispatcherState.PLAYING:
                logger.info(
                    "alarm_already_playing",
                    alert_type=alert.alert_type.value,
                    value=alert.reading.value,
                )
                return False

            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(stop_event,),
                name="glucose-alarm",
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
            self._state = DispatcherState.PLAYING
            thread.start()

        logger.info(
            "alarm_started",
            alert_type=alert.alert_type.value,
            value=alert.reading.value,
        )
        return True

    def stop(self) -> None:
        """Stop the alarm loop; returns once the loop can no longer fire."""
        with self._transition_lock:
            if self._state is DispatcherState.IDLE:
                return
            stop_event, thread = self._stop_event, self._thread
            if stop_event is not None:
                stop_event.set()
            if thread is not None and thread is not threading.current_thread():
                thread.join()
            self._stop_event = None
            self._thread = None
            self._state = DispatcherState.IDLE

        logger.info("alarm_stopped")

    def release(self) -> None:
        """Stop any alarm and drop the loaded sound."""
        self.stop()
        self._sound = None

    # ── Loop ─────────────────────────────────────────────────

    def _run(self, stop_event: threading.Event) -> None:
        self._pulse()
        sound = self._start_audio(stop_event)
        try:
            while not stop_event.wait(self._interval_s):
                self._pulse()
        finally:
            self._silence(sound)

    def _pulse(self) -> None:
        try:
            self._vibrator.vibrate(self._pulse_ms)
        except Exception as exc:
            logger.warning("vibration_failed", error=str(exc))

    def _start_audio(self, stop_event: threading.Event) -> Optional[Playable]:
        """
        Loop the alarm sound at full volume.

        On failure the sound is reloaded (fallback ref when configured) and
        played once more; after that the alert stays vibration-only.
        """
        if self._audio_loader is None or stop_event.is_set():
            return None

        if self._sound is None:
            self._sound = self._load(self._sound_ref)
        if self._sound is not None and self._play(self._sound):
            return self._sound

        if stop_event.is_set():
            return None
        self._sound = self._load(self._fallback_sound_ref or self._sound_ref)
        if self._sound is not None and self._play(self._sound):
            logger.info("alarm_audio_retry_succeeded")
            return self._sound

        logger.warning("alarm_vibration_only")
        return None

    def _load(self, resource_ref: str) -> Optional[Playable]:
        if self._audio_loader is None:
            return None
        try:
            sound = self._audio_loader.load(resource_ref)
            logger.info("alarm_sound_loaded", resource_ref=resource_ref)
            return sound
        except Exception as exc:
            logger.warning(
                "alarm_sound_load_failed",
                resource_ref=resource_ref,
                error=str(exc),
            )
            return None

    def _play(self, sound: Playable) -> bool:
        try:
            sound.set_volume(ALARM_VOLUME)
            sound.play(loop=True)
            return True
        except Exception as exc:
            logger.warning("alarm_sound_play_failed", error=str(exc))
            return False

    def _silence(self, sound: Optional[Playable]) -> None:
        try:
            self._vibrator.cancel()
        except Exception as exc:
            logger.warning("vibration_cancel_failed", error=str(exc))
        if sound is not None:
            try:
                sound.stop()
            except Exception as exc:
                logger.warning("alarm_sound_stop_failed", error=str(exc))
