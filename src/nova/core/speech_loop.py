"""
Speech Loop - listen / think / speak state machine

The browser owns the microphone and the speech synthesizer; this loop owns
the decisions. The client forwards platform events (recognition start/end/
error/result, synthesis start/end) and executes the commands the loop emits.

States:
    idle -> listening -> (wake word) -> processing -> speaking -> idle
    speaking -> interrupt_listening -> (wake word again) -> listening

Invariant: ``recognizing`` and ``speaking`` are never both true. While
speaking, only the separate interrupt listener is allowed to run.
"""

import asyncio
import re
from collections import deque
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol

import structlog
from pydantic import BaseModel

from nova.models.messages import LoopCommand, StateMessage

logger = structlog.get_logger()

DEFAULT_WAKE_WORD = "nova"

# Delays (seconds) that keep the microphone from thrashing
RESTART_AFTER_SPEECH = 0.7
RESTART_AFTER_END = 0.8
RESTART_AFTER_ERROR = 1.2
GREETING_DELAY = 0.6
CLEAR_USER_TEXT_DELAY = 0.7

THINKING_RESPONSE = "I'm thinking..."
CONNECTION_FAILED_RESPONSE = "Sorry, I couldn't connect to the assistant."
GOODBYE_RESPONSE = "Goodbye, see you soon!"

# Raised by the browser for redundant start()/stop() calls
INVALID_STATE_ERROR = "InvalidStateError"

# Recognition errors that are routine rather than faults
BENIGN_ERRORS = {"aborted", "no-speech"}


class LoopState(Enum):
    """Observable speech loop states"""
    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"
    SPEAKING = "speaking"
    INTERRUPT_LISTENING = "interrupt_listening"


def sanitize_text(text: Optional[str]) -> str:
    """Strip markdown so the synthesizer doesn't read symbols aloud"""
    if not text:
        return ""
    text = re.sub(r"\*\*|\*|_|#+|`+|>\s?", "", text)
    text = re.sub(r"\[(.*?)\]\(.*?\)", r"\1", text)
    text = re.sub(r"\n+", " ", text)
    return text.strip()


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Runs an async action after a delay"""

    def schedule(self, delay: float, action: Callable[[], Awaitable[None]]) -> TimerHandle:
        ...


class AsyncioScheduler:
    """Scheduler backed by the running event loop"""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def schedule(self, delay: float, action: Callable[[], Awaitable[None]]) -> TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self._spawn, action)

    def _spawn(self, action: Callable[[], Awaitable[None]]) -> None:
        task = asyncio.ensure_future(action())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


Emitter = Callable[[BaseModel], Awaitable[None]]
QueryHandler = Callable[[str], Awaitable[Optional[str]]]


class SpeechLoop:
    """
    Wake-word driven speech loop for one connected client

    Args:
        emit: Sends a command or state message to the client
        handler: Answers a transcript; returns the text to speak
        wake_word: Word that must appear in a transcript (case-insensitive)
        scheduler: Timer source; AsyncioScheduler by default
    """

    def __init__(
        self,
        emit: Emitter,
        handler: QueryHandler,
        wake_word: Optional[str] = None,
        scheduler: Optional[Scheduler] = None,
    ):
        self.emit = emit
        self.handler = handler
        self.wake_word = (wake_word or DEFAULT_WAKE_WORD).strip().lower()
        self.scheduler = scheduler or AsyncioScheduler()

        self.recognizing = False
        self.speaking = False
        self.processing = False
        self.interrupt_active = False
        self.closed = False
        self._start_requested = False

        self.user_text = ""
        self.ai_text = ""
        # Every delay is short, so handles that fall off the end have fired
        self._timers: deque[TimerHandle] = deque(maxlen=32)

    @property
    def state(self) -> LoopState:
        if self.speaking:
            return LoopState.INTERRUPT_LISTENING if self.interrupt_active else LoopState.SPEAKING
        if self.processing:
            return LoopState.PROCESSING
        if self.recognizing:
            return LoopState.LISTENING
        return LoopState.IDLE

    def heard_wake_word(self, transcript: Optional[str]) -> bool:
        return bool(transcript) and self.wake_word in transcript.lower()

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    async def _command(self, command: str, text: Optional[str] = None) -> None:
        await self.emit(LoopCommand(command=command, text=text))

    async def _publish_state(self) -> None:
        await self.emit(StateMessage(
            state=self.state.value,
            listening=self.recognizing,
            speaking=self.speaking,
            user_text=self.user_text,
            ai_text=self.ai_text,
        ))

    def _later(self, delay: float, action: Callable[[], Awaitable[None]]) -> None:
        if self.closed:
            return
        self._timers.append(self.scheduler.schedule(delay, action))

    # ------------------------------------------------------------------
    # Recognition control
    # ------------------------------------------------------------------

    async def safe_start(self) -> None:
        """Start recognition unless it is running, requested, or we are busy"""
        if (self.closed or self.recognizing or self._start_requested
                or self.speaking or self.processing):
            return
        self._start_requested = True
        await self._command("start_recognition")

    async def safe_stop(self) -> None:
        """Stop recognition if it is running"""
        self._start_requested = False
        if not self.recognizing:
            return
        self.recognizing = False
        await self._command("stop_recognition")

    async def _restart_if_idle(self) -> None:
        if not self.recognizing:
            await self.safe_start()

    async def start_interrupt_listener(self) -> None:
        if self.interrupt_active or self.closed:
            return
        self.interrupt_active = True
        await self._command("start_interrupt")

    async def stop_interrupt_listener(self) -> None:
        if not self.interrupt_active:
            return
        self.interrupt_active = False
        await self._command("stop_interrupt")

    # ------------------------------------------------------------------
    # Platform events
    # ------------------------------------------------------------------

    async def on_recognition_start(self) -> None:
        self._start_requested = False
        if self.closed or self.speaking or self.processing:
            # A start raced with speech; keep the mic off
            await self._command("stop_recognition")
            return
        self.recognizing = True
        await self._publish_state()

    async def on_recognition_end(self) -> None:
        self.recognizing = False
        self._start_requested = False
        await self._publish_state()
        if not self.speaking:
            self._later(RESTART_AFTER_END, self.safe_start)

    async def on_recognition_error(self, error: Optional[str] = None) -> None:
        if error == INVALID_STATE_ERROR:
            # start() on a running recognizer or stop() on a stopped one
            logger.debug("speech_loop.invalid_state_ignored")
            self._start_requested = False
            return
        if error in BENIGN_ERRORS:
            logger.debug("speech_loop.recognition_benign_error", error=error)
        else:
            logger.warning("speech_loop.recognition_error", error=error)
        self.recognizing = False
        self._start_requested = False
        await self._publish_state()
        if not self.speaking:
            self._later(RESTART_AFTER_ERROR, self.safe_start)

    async def on_result(self, transcript: Optional[str]) -> None:
        """Final recognition result from the main listener"""
        transcript = (transcript or "").strip()
        if self.closed or self.processing or self.speaking:
            logger.debug("speech_loop.result_ignored", state=self.state.value)
            return
        if not self.heard_wake_word(transcript):
            return

        logger.info("speech_loop.wake_word", transcript=transcript)
        self.processing = True
        self.user_text = transcript
        self.ai_text = ""
        await self.safe_stop()
        await self._publish_state()

        try:
            reply = await self.handler(transcript)
            text = reply or THINKING_RESPONSE
        except Exception as e:
            logger.error("speech_loop.handler_failed", error=str(e))
            text = CONNECTION_FAILED_RESPONSE
        finally:
            self.processing = False

        await self.speak(text)
        self._later(CLEAR_USER_TEXT_DELAY, self._clear_user_text)

    async def _clear_user_text(self) -> None:
        self.user_text = ""
        await self._publish_state()

    async def speak(self, text: Optional[str]) -> None:
        """Ask the client to speak; the microphone goes off first"""
        clean = sanitize_text(text)
        if not clean or self.closed:
            return
        self.ai_text = clean
        await self.safe_stop()
        self.speaking = True
        await self._command("speak", clean)
        await self._publish_state()

    async def on_speech_start(self) -> None:
        if self.closed:
            return
        self.speaking = True
        await self.safe_stop()
        await self.start_interrupt_listener()
        await self._publish_state()

    async def on_speech_end(self) -> None:
        await self.stop_interrupt_listener()
        self.speaking = False
        await self._publish_state()
        self._later(RESTART_AFTER_SPEECH, self._restart_if_idle)

    async def on_interrupt_result(self, transcript: Optional[str]) -> None:
        """Barge-in: the wake word heard while speaking stops playback"""
        if not self.interrupt_active or not self.heard_wake_word(transcript):
            return
        logger.info("speech_loop.barge_in")
        await self._command("cancel_speech")
        await self.stop_interrupt_listener()
        self.speaking = False
        await self.safe_start()
        await self._publish_state()

    async def on_interrupt_error(self, error: Optional[str] = None) -> None:
        logger.debug("speech_loop.interrupt_error", error=error)
        await self.stop_interrupt_listener()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def greet(self, user_name: Optional[str] = None) -> None:
        """Start listening and say hello after a short settle delay"""
        name = user_name or "there"

        async def _greet() -> None:
            await self.safe_start()
            await self.speak(f"Hello {name}, how can I help you today?")

        self._later(GREETING_DELAY, _greet)

    def close(self) -> None:
        """Cancel pending timers and stop reacting; emits nothing"""
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()
        self.closed = True

    async def shutdown(self, goodbye: bool = False) -> None:
        """Cancel speech and timers, release the microphone, stop restarting"""
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()

        await self._command("cancel_speech")
        await self.stop_interrupt_listener()
        await self.safe_stop()
        self.speaking = False

        if goodbye:
            await self._command("speak", GOODBYE_RESPONSE)

        self.closed = True
        logger.info("speech_loop.shutdown", goodbye=goodbye)

    async def dispatch(self, event: str, transcript: Optional[str] = None,
                       error: Optional[str] = None) -> None:
        """Route a client event name to its handler"""
        if event == "recognition_start":
            await self.on_recognition_start()
        elif event == "recognition_end":
            await self.on_recognition_end()
        elif event == "recognition_error":
            await self.on_recognition_error(error)
        elif event == "result":
            await self.on_result(transcript)
        elif event == "interrupt_result":
            await self.on_interrupt_result(transcript)
        elif event == "interrupt_error":
            await self.on_interrupt_error(error)
        elif event == "speech_start":
            await self.on_speech_start()
        elif event == "speech_end":
            await self.on_speech_end()
        elif event == "logout":
            await self.shutdown(goodbye=True)
        else:
            logger.warning("speech_loop.unknown_event", event=event)
