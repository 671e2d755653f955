"""
Language model capability for the workflow.

Every supported provider exposes an OpenAI-compatible chat completions endpoint,
so a single ``OpenAICompatibleModel`` built on ``AsyncOpenAI`` serves them all.
The provider is resolved once by ``create_language_model`` and the rest of the
workflow only sees the ``LanguageModel`` protocol:

- ``generate_structured``: schema-constrained JSON generation with repair and retries
- ``complete``: one non-streaming turn, optionally with tools
- ``stream_turn``: one streaming turn yielding text deltas, tool calls and a finish event
"""

import asyncio
import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Protocol, Type, TypeVar, Union

from openai import APIConnectionError, AsyncOpenAI, RateLimitError
from pydantic import BaseModel, ValidationError

from browser_workflow.config import ModelSettings
from browser_workflow.errors import NoOutputGeneratedError, StructuredOutputError
from browser_workflow.models import Usage


logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)


@dataclass
class TextDelta:
    text: str


@dataclass
class ToolCallRequest:
    """
    A tool call requested by the model.

    Attributes:
        tool_call_id: Id used to pair the tool result with the call
        tool_name: Requested tool
        arguments: Parsed JSON arguments
        raw_arguments: Arguments exactly as streamed
        arguments_error: Parse error when the arguments were not a JSON object
    """
    tool_call_id: str
    tool_name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    raw_arguments: str = ""
    arguments_error: Optional[str] = None


@dataclass
class TurnFinish:
    finish_reason: str
    usage: Usage = field(default_factory=Usage)


ModelEvent = Union[TextDelta, ToolCallRequest, TurnFinish]


@dataclass
class ModelTurn:
    text: str
    tool_calls: List[ToolCallRequest]
    finish_reason: str
    usage: Usage = field(default_factory=Usage)


class LanguageModel(Protocol):
    model: str

    async def generate_structured(
        self,
        schema: Type[SchemaT],
        system_prompt: str,
        user_prompt: str,
        *,
        repair: Optional[Callable[[Any], Any]] = None,
        max_retries: int = 2,
    ) -> SchemaT: ...

    async def complete(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> ModelTurn: ...

    def stream_turn(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        tool_choice: str = "auto",
    ) -> AsyncIterator[ModelEvent]: ...


def extract_json_text(content: str) -> str:
    """Strip reasoning blocks and markdown fences around a JSON document."""
    content = _THINK_BLOCK.sub("", content)
    if "```json" in content:
        json_start = content.find("```json") + 7
        json_end = content.find("```", json_start)
        return content[json_start:json_end if json_end != -1 else None].strip()
    elif "```" in content:
        json_start = content.find("```") + 3
        json_end = content.find("```", json_start)
        return content[json_start:json_end if json_end != -1 else None].strip()
    return content.strip()


def parse_tool_arguments(raw: str) -> tuple:
    """Return (arguments, error) for a streamed tool-call argument string."""
    if not raw or not raw.strip():
        return {}, None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        return {}, f"Invalid JSON arguments: {e}"
    if not isinstance(parsed, dict):
        return {}, "Tool arguments must be a JSON object"
    return parsed, None


def _as_int(value: Any) -> int:
    return value if isinstance(value, int) else 0


def _usage_from(raw_usage: Any) -> Usage:
    if raw_usage is None:
        return Usage()
    prompt_tokens = _as_int(getattr(raw_usage, "prompt_tokens", 0))
    completion_tokens = _as_int(getattr(raw_usage, "completion_tokens", 0))
    total_tokens = _as_int(getattr(raw_usage, "total_tokens", 0)) or prompt_tokens + completion_tokens
    return Usage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens, total_tokens=total_tokens)


class OpenAICompatibleModel:
    """
    LanguageModel implementation over an OpenAI-compatible chat completions API.

    Works with Google's OpenAI endpoint, the Vercel AI gateway, OpenRouter and
    NVIDIA NIM; only the base URL, key and model name differ.
    """

    def __init__(
        self,
        model: str,
        client: Optional[AsyncOpenAI] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
        json_mode: str = "json_schema",
        default_headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize the model client.

        Args:
            model: Model identifier
            client: Optional pre-configured AsyncOpenAI client
            api_key: API key for the endpoint
            base_url: Base URL of the OpenAI-compatible endpoint
            temperature: Sampling temperature for tool-calling turns
            max_tokens: Default completion token limit
            json_mode: "json_schema", "json_object" or "none"
            default_headers: Extra headers sent with every request
        """
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.json_mode = json_mode

        if client is not None:
            self.client = client
        else:
            self.client = AsyncOpenAI(
                base_url=base_url,
                api_key=api_key,
                default_headers=default_headers or None,
            )

    def _structured_request(self, schema: Type[BaseModel], system_prompt: str) -> tuple:
        json_schema = schema.model_json_schema()
        if self.json_mode == "json_schema":
            response_format = {
                "type": "json_schema",
                "json_schema": {"name": schema.__name__, "schema": json_schema, "strict": False},
            }
            return system_prompt, {"response_format": response_format}

        system_prompt = (
            f"{system_prompt}\n\nRespond ONLY with a JSON object that matches this JSON schema:\n"
            f"{json.dumps(json_schema)}"
        )
        if self.json_mode == "json_object":
            return system_prompt, {"response_format": {"type": "json_object"}}
        return system_prompt, {}

    async def generate_structured(
        self,
        schema: Type[SchemaT],
        system_prompt: str,
        user_prompt: str,
        *,
        repair: Optional[Callable[[Any], Any]] = None,
        max_retries: int = 2,
    ) -> SchemaT:
        """
        Generate a JSON document validated against a pydantic schema.

        The raw JSON is passed through ``repair`` (when given) before validation.
        Unparseable or invalid output and transient API failures are retried with
        exponential backoff.

        Args:
            schema: Pydantic model describing the expected output
            system_prompt: System instructions
            user_prompt: User message
            repair: Deterministic fix-ups applied to the parsed JSON
            max_retries: Additional attempts after the first

        Returns:
            Validated schema instance

        Raises:
            StructuredOutputError: If every attempt failed
        """
        system_prompt, format_kwargs = self._structured_request(schema, system_prompt)
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        attempts = max_retries + 1
        last_error = None

        for attempt in range(attempts):
            if attempt > 0:
                backoff_delay = 0.5 * (2 ** (attempt - 1))  # 0.5s, 1s, 2s
                await asyncio.sleep(backoff_delay)

            logger.debug(
                "Requesting %s from %s (attempt %d/%d)", schema.__name__, self.model, attempt + 1, attempts
            )
            try:
                response = await self.client.chat.completions.create(
                    model=self.model,
                    temperature=0.0,
                    max_tokens=self.max_tokens,
                    messages=messages,
                    **format_kwargs,
                )
            except (APIConnectionError, RateLimitError) as e:
                last_error = f"API call failed: {e}"
                logger.warning("%s generation attempt %d failed: %s", schema.__name__, attempt + 1, e)
                continue

            if not response.choices:
                last_error = "Empty response from API"
                continue
            content = response.choices[0].message.content
            if not content:
                last_error = "Empty content in response"
                continue

            try:
                data = json.loads(extract_json_text(content))
                if repair is not None:
                    data = repair(data)
                return schema.model_validate(data)
            except json.JSONDecodeError as e:
                last_error = f"Failed to parse JSON response: {e}"
            except ValidationError as e:
                last_error = f"Response failed schema validation: {e.error_count()} error(s): {e}"
            except (ValueError, TypeError, OverflowError) as e:
                last_error = f"Failed to repair response: {type(e).__name__}: {e}"
            logger.warning("%s generation attempt %d unusable: %s", schema.__name__, attempt + 1, last_error)

        raise StructuredOutputError(
            f"{schema.__name__} generation failed after {attempts} attempts: {last_error}"
        )

    async def complete(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> ModelTurn:
        kwargs: Dict[str, Any] = {}
        if tools:
            kwargs["tools"] = tools
            if tool_choice:
                kwargs["tool_choice"] = tool_choice

        response = await self.client.chat.completions.create(
            model=self.model,
            temperature=self.temperature if temperature is None else temperature,
            max_tokens=max_tokens or self.max_tokens,
            messages=[{"role": "system", "content": system_prompt}, *messages],
            **kwargs,
        )
        if not response.choices:
            raise NoOutputGeneratedError("No output generated: response had no choices")

        choice = response.choices[0]
        text = choice.message.content or ""
        tool_calls = []
        for raw_call in choice.message.tool_calls or []:
            raw_arguments = raw_call.function.arguments or ""
            arguments, arguments_error = parse_tool_arguments(raw_arguments)
            tool_calls.append(
                ToolCallRequest(
                    tool_call_id=raw_call.id,
                    tool_name=raw_call.function.name,
                    arguments=arguments,
                    raw_arguments=raw_arguments,
                    arguments_error=arguments_error,
                )
            )
        if not text and not tool_calls:
            raise NoOutputGeneratedError("No output generated: empty message")

        return ModelTurn(
            text=text,
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason or "stop",
            usage=_usage_from(response.usage),
        )

    async def stream_turn(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        tool_choice: str = "auto",
    ) -> AsyncIterator[ModelEvent]:
        """
        Stream one model turn.

        Text deltas are yielded as they arrive. Tool calls are accumulated from
        their streamed fragments and yielded once the turn is complete, followed
        by a single TurnFinish.

        Raises:
            NoOutputGeneratedError: If the turn produced neither text nor tool calls
        """
        stream = await self.client.chat.completions.create(
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            messages=[{"role": "system", "content": system_prompt}, *messages],
            tools=tools,
            tool_choice=tool_choice,
            stream=True,
            stream_options={"include_usage": True},
        )

        produced_text = False
        pending: Dict[int, Dict[str, Any]] = {}
        finish_reason = None
        usage = Usage()

        async for chunk in stream:
            if getattr(chunk, "usage", None):
                usage = _usage_from(chunk.usage)
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta
            if delta is not None:
                if delta.content:
                    produced_text = True
                    yield TextDelta(text=delta.content)
                for fragment in delta.tool_calls or []:
                    slot = pending.setdefault(fragment.index, {"id": None, "name": "", "arguments": ""})
                    if fragment.id:
                        slot["id"] = fragment.id
                    if fragment.function is not None:
                        if fragment.function.name:
                            slot["name"] += fragment.function.name
                        if fragment.function.arguments:
                            slot["arguments"] += fragment.function.arguments
            if choice.finish_reason:
                finish_reason = choice.finish_reason

        if not produced_text and not pending:
            raise NoOutputGeneratedError("No output generated by the model")

        for index in sorted(pending):
            slot = pending[index]
            arguments, arguments_error = parse_tool_arguments(slot["arguments"])
            yield ToolCallRequest(
                tool_call_id=slot["id"] or f"call_{uuid.uuid4().hex[:12]}",
                tool_name=slot["name"],
                arguments=arguments,
                raw_arguments=slot["arguments"],
                arguments_error=arguments_error,
            )

        yield TurnFinish(finish_reason=finish_reason or ("tool_calls" if pending else "stop"), usage=usage)


def create_language_model(settings: ModelSettings, client: Optional[AsyncOpenAI] = None) -> OpenAICompatibleModel:
    """
    Resolve model settings to a LanguageModel.

    Raises:
        ConfigurationError: If no API key is available for the provider
    """
    api_key = None if client is not None else settings.require_api_key()
    logger.info("Using %s model %s", settings.provider.value, settings.resolved_model)
    return OpenAICompatibleModel(
        model=settings.resolved_model,
        client=client,
        api_key=api_key,
        base_url=settings.resolved_base_url,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        json_mode=settings.json_mode,
        default_headers=dict(settings.profile.default_headers),
    )
