import logging
from typing import Optional

from openai import APIConnectionError, APIError, APITimeoutError, AsyncOpenAI

from ..config import settings
from ..exceptions import ModelCallError
from ..service.prompts import ComposedPrompt

logger = logging.getLogger(settings.SERVICE_NAME + ".llm_client")


class OpenAIDesignModel:
    """
    Sends composed design prompts to the OpenAI chat completions API and returns the raw text.

    The client is created on first use so the service can start (and serve history)
    without an API key configured.
    """

    def __init__(self, config: Optional[type(settings)] = None):
        self.config = config if config else settings
        self.model_name = self.config.OPENAI_MODEL
        self.temperature = self.config.OPENAI_TEMPERATURE
        self.max_tokens = self.config.OPENAI_MAX_TOKENS
        self._client: Optional[AsyncOpenAI] = None

        logger.info(
            f"OpenAIDesignModel initialized. Model: {self.model_name}, "
            f"temperature: {self.temperature}, max tokens: {self.max_tokens}"
        )

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.config.OPENAI_API_KEY or not self.config.OPENAI_API_KEY.get_secret_value():
                raise ModelCallError("OPENAI_API_KEY is not configured.")
            # Retries are the caller's decision, not the client's.
            self._client = AsyncOpenAI(
                api_key=self.config.OPENAI_API_KEY.get_secret_value(),
                timeout=self.config.OPENAI_TIMEOUT_S,
                max_retries=0,
            )
        return self._client

    async def complete(self, prompt: ComposedPrompt) -> str:
        client = self._get_client()
        try:
            logger.debug(
                f"Sending design prompt to {self.model_name}. User content: {prompt.user[:80]}..."
            )
            completion = await client.chat.completions.create(
                model=self.model_name,
                messages=prompt.to_messages(),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except APITimeoutError as e:
            # APITimeoutError subclasses APIConnectionError, so it is matched first.
            raise ModelCallError(f"Model request timed out: {e}") from e
        except APIConnectionError as e:
            raise ModelCallError(f"Model connection error: {e}") from e
        except APIError as e:
            raise ModelCallError(f"Model API error: {e.message}") from e

        if not completion.choices:
            raise ModelCallError("Model returned no choices.")
        choice = completion.choices[0]
        content = choice.message.content
        if not content:
            raise ModelCallError(f"Model returned empty content (finish reason: {choice.finish_reason}).")
        if choice.finish_reason == "length":
            logger.warning("Model output hit the max token limit; the design JSON is likely truncated.")
        return content

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
