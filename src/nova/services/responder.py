"""
Query responder

Pipeline for a single user query:
1. Local arithmetic fast-path
2. LLM delegation with a bounded, fixed-delay retry
3. Directive extraction (date/time) or free-text passthrough

Never raises for upstream failures: configuration problems and exhausted
retries degrade to fixed user-facing strings.
"""

import asyncio
import re
from datetime import datetime
from typing import Awaitable, Callable, Optional

import structlog

from nova.core.config import config
from nova.core.error_handling import ConfigurationError, RetryExhaustedError, retry_async
from nova.core.logging_config import log_performance
from nova.models.messages import AssistantReply, ReplyType
from nova.services.calculator import evaluate_math
from nova.services.directives import Clock, interpret_model_text
from nova.services.protocols import LLMProvider

logger = structlog.get_logger()

CONFIG_ERROR_RESPONSE = "Configuration error: missing API key or model."
APOLOGY_RESPONSE = "Sorry, there was a temporary issue connecting to the assistant. Please try again."

PROMPT_TEMPLATE = """
You are {assistant_name}, a helpful and intelligent virtual assistant created by {user_name}.
Your goal is to answer the user's question clearly, logically, and conversationally.
Always reason through the question before answering, and explain your thought process naturally.
Avoid robotic responses and unnecessary JSON or markdown unless asked.
If the user asks for today's date, the current time, the day of the week or the current month,
reply with only a JSON object of the form {{"type": "get-date"}}, {{"type": "get-time"}},
{{"type": "get-day"}} or {{"type": "get-month"}}.
The user said: "{command}"
"""


def build_prompt(command: str, assistant_name: str, user_name: str) -> str:
    """Persona-framed prompt for the text-generation API"""
    return PROMPT_TEMPLATE.format(
        assistant_name=assistant_name,
        user_name=user_name,
        command=command,
    )


def strip_assistant_name(command: str, assistant_name: str) -> str:
    """Drop the spoken wake word so "nova, what is 2 plus 2" still computes"""
    if not assistant_name or not assistant_name.strip():
        return command
    pattern = re.compile(rf"\b{re.escape(assistant_name.strip())}\b[,:]?", re.IGNORECASE)
    return pattern.sub("", command).strip()


class QueryResponder:
    """
    Answers a query for a given persona

    Args:
        llm_factory: Returns the LLM provider; may raise ConfigurationError
        max_retries: Retries after the first failed model call
        retry_delay: Pause before each retry, in seconds
        clock: Source of the current time for date/time directives
        sleep: Awaitable pause, replaceable in tests
    """

    def __init__(
        self,
        llm_factory: Optional[Callable[[], LLMProvider]] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        clock: Clock = datetime.now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if llm_factory is None:
            from nova.services.llm import get_llm_service
            llm_factory = get_llm_service
        self.llm_factory = llm_factory
        self.max_retries = config.LLM_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = config.LLM_RETRY_DELAY_SEC if retry_delay is None else retry_delay
        self.clock = clock
        self.sleep = sleep

    @log_performance("responder.respond")
    async def respond(self, command: str, assistant_name: str, user_name: str) -> AssistantReply:
        """Answer ``command`` as ``assistant_name`` speaking to ``user_name``"""
        result = evaluate_math(strip_assistant_name(command, assistant_name))
        if result is not None:
            logger.info("responder.calculation", result=result)
            return AssistantReply(type=ReplyType.CALCULATION, response=f"The result is {result}")

        text = await self.ask_model(command, assistant_name, user_name)
        return interpret_model_text(text, clock=self.clock)

    async def ask_model(self, command: str, assistant_name: str, user_name: str) -> str:
        """
        Delegate to the LLM

        Returns:
            Model text, the configuration-error string, or the apology string
        """
        try:
            llm = self.llm_factory()
        except ConfigurationError as e:
            logger.error("responder.config_missing", error=str(e))
            return CONFIG_ERROR_RESPONSE

        prompt = build_prompt(command, assistant_name, user_name)

        try:
            return await retry_async(
                lambda: llm.generate(prompt),
                retries=self.max_retries,
                delay=self.retry_delay,
                operation="generate",
                component="llm",
                sleep=self.sleep,
            )
        except RetryExhaustedError as e:
            logger.warning("responder.llm_unavailable",
                           attempts=e.attempts,
                           error=str(e.last_error))
            return APOLOGY_RESPONSE


_responder: Optional[QueryResponder] = None


def get_query_responder() -> QueryResponder:
    """Dependency injection for the query responder"""
    global _responder
    if _responder is None:
        _responder = QueryResponder()
    return _responder
