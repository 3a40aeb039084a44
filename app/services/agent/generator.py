"""Response generation for caller input."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from openai import AsyncOpenAI
from pydantic import BaseModel

from app.core.config import Settings
from app.core.errors import GeneratorError
from app.services.agent.prompt import get_caller_summary, get_system_prompt
from app.services.agent.sanitizer import sanitize_input, sanitize_messages
from app.services.call_session.models import SessionContext

logger = logging.getLogger(__name__)


class GeneratedReply(BaseModel):
    """Reply text and the model that produced it."""

    text: str
    model: Optional[str] = None


class ResponseGenerator(ABC):
    """Abstract base class for reply generators."""

    @abstractmethod
    async def generate(self, context: SessionContext, sanitized_input: str) -> GeneratedReply:
        """
        Generate a spoken reply to the caller.

        Raises:
            GeneratorError: If the provider fails or times out
        """
        pass


class OpenAIResponseGenerator(ResponseGenerator):
    """Reply generator backed by an OpenAI-compatible chat completions API."""

    def __init__(self, settings: Settings):
        self.client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.generator_timeout_seconds,
            max_retries=0,
        )
        self.model = settings.generator_model
        self.temperature = settings.generator_temperature
        self.max_tokens = settings.generator_max_tokens
        self.timeout = settings.generator_timeout_seconds
        self.system_prompt = get_system_prompt(settings.company_name)

    def build_messages(self, context: SessionContext, sanitized_input: str) -> list:
        """Build the chat messages sent to the model."""
        messages = [{"role": "system", "content": self.system_prompt}]
        caller_summary = get_caller_summary(context)
        if caller_summary:
            messages.append({"role": "system", "content": caller_summary})
        messages.extend(context.history)

        # The current turn is usually already the last transcript, stored unsanitized
        last = context.history[-1] if context.history else None
        if not (
            last
            and last.get("role") == "user"
            and sanitize_input(last.get("content")).strip() == sanitized_input
        ):
            messages.append({"role": "user", "content": sanitized_input})
        return sanitize_messages(messages)

    async def generate(self, context: SessionContext, sanitized_input: str) -> GeneratedReply:
        messages = self.build_messages(context, sanitized_input)
        logger.info(
            f"[GENERATOR] Requesting reply - CallSid: {context.call_id}, "
            f"Model: {self.model}, Turns: {len(messages)}"
        )

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise GeneratorError(
                f"Reply generation timed out after {self.timeout}s for {context.call_id}"
            ) from e
        except Exception as e:
            raise GeneratorError(
                f"Reply generation failed for {context.call_id}: {type(e).__name__}: {e}"
            ) from e

        if not response.choices:
            raise GeneratorError(f"Reply generation returned no choices for {context.call_id}")

        text = (response.choices[0].message.content or "").strip()
        logger.info(
            f"[GENERATOR] Reply generated (length: {len(text)}) - CallSid: {context.call_id}"
        )
        return GeneratedReply(text=text, model=getattr(response, "model", None) or self.model)
