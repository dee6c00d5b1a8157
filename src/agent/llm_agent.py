# src/agent/llm_agent.py
"""
Tool-calling session: turns one player message into tool calls and a reply.

Loop (at most `max_rounds` rounds):
    1. send system prompt + conversation + tool definitions to the backend
    2. no tool calls in the reply -> return its text (truncated to 230 chars)
    3. otherwise run each tool through ToolSurface.call(), append the results
       and go again

If a stop was requested while tools were running (the shared cancellation
token advanced past the snapshot taken at the start), the session returns ""
because another session is already handling the stop.

The backend is blocking (llama.cpp), so each round runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Protocol

from bot_core import BotCoreImpl
from env.schema import LlmConfig, PersonalityConfig

from .tools import ToolSurface, format_status

log = logging.getLogger(__name__)

JsonDict = Dict[str, Any]

MAX_REPLY_CHARS = 230
NO_RESPONSE_REPLY = "Something went wrong, I got no response."
CONFUSED_REPLY = "I got a bit confused there. Can you try again?"


class ChatBackend(Protocol):
    """OpenAI-shaped chat completion endpoint."""

    def create_chat_completion(
        self,
        messages: List[JsonDict],
        tools: List[JsonDict],
    ) -> JsonDict:
        ...


def build_system_prompt(
    bot_name: str,
    personality: str,
    status_line: str,
    sender: str,
) -> str:
    return "\n".join(
        [
            f"You are a Minecraft bot named {bot_name}.",
            f"Personality: {personality}.",
            f"Current state: {status_line}",
            f'Player "{sender}" is talking to you.',
            "Reply in the SAME language the player uses. "
            f"Keep all messages concise (under {MAX_REPLY_CHARS} characters).",
            "When you are about to execute an action, use send_chat FIRST to briefly announce "
            'what you are going to do (e.g. "On my way!" or "Starting to mine that area.").',
            'After completing a task, send only a short confirmation (e.g. "Done!" or "Arrived!"). '
            'Never add filler phrases like "What else can I do?" or "Anything else?".',
            "The bot automatically eats when hungry, defends against hostile mobs, and looks at "
            "nearby players when idle. You do not need to handle these.",
            "When mining, the bot automatically selects the best tool from its inventory unless "
            "the player asks for a particular tool.",
            "If the request is unclear or you cannot help, explain briefly without using tools.",
        ]
    )


def _parse_arguments(name: str, raw: Any) -> JsonDict:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        log.warning("LLM returned malformed tool arguments for %s", name)
        return {}
    if not isinstance(parsed, dict):
        log.warning("LLM returned non-object tool arguments for %s", name)
        return {}
    return parsed


class ToolCallingAgent:
    """
    One agent per bot; process_message() may be called concurrently for
    different players, each call owning its own message list.
    """

    def __init__(
        self,
        bot: BotCoreImpl,
        backend: ChatBackend,
        tools: Optional[ToolSurface] = None,
        llm_config: Optional[LlmConfig] = None,
        personality: Optional[PersonalityConfig] = None,
        username: Optional[str] = None,
    ) -> None:
        self._bot = bot
        self._backend = backend
        self._tools = tools if tools is not None else ToolSurface(bot)
        self._config = llm_config if llm_config is not None else bot.config.llm
        self._personality = personality if personality is not None else bot.config.personality
        self._username = username or bot.config.minecraft.username

    @property
    def tools(self) -> ToolSurface:
        return self._tools

    async def process_message(self, message: str, sender: str) -> str:
        state = self._bot.get_state()
        status_line = format_status(state) if state is not None else "Not fully spawned yet."
        messages: List[JsonDict] = [
            {
                "role": "system",
                "content": build_system_prompt(
                    self._username, self._personality.type, status_line, sender
                ),
            },
            {"role": "user", "content": message},
        ]

        log.info("LLM request from %s: %s", sender, message)
        snapshot = self._bot.cancellation.snapshot()

        for round_index in range(self._config.max_rounds):
            response = await asyncio.to_thread(
                self._backend.create_chat_completion,
                messages,
                self._tools.definitions,
            )

            choices = response.get("choices") or []
            if not choices:
                return NO_RESPONSE_REPLY

            assistant = choices[0].get("message") or {}
            tool_calls = assistant.get("tool_calls") or []
            messages.append(
                {
                    "role": "assistant",
                    "content": assistant.get("content"),
                    **({"tool_calls": tool_calls} if tool_calls else {}),
                }
            )

            if not tool_calls:
                text = (assistant.get("content") or "").strip()
                log.info("LLM response to %s: %s", sender, text)
                return text[:MAX_REPLY_CHARS]

            for call in tool_calls:
                if call.get("type", "function") != "function":
                    continue
                function = call.get("function") or {}
                name = str(function.get("name") or "")
                args = _parse_arguments(name, function.get("arguments"))
                log.info("LLM tool call: %s(%s)", name, json.dumps(args))

                result = await self._tools.call(name, args)
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.get("id") or f"call_{round_index}_{name}",
                        "content": result,
                    }
                )

            if self._bot.cancellation.was_stopped_after(snapshot):
                log.info("LLM loop aborted: task was stopped externally")
                return ""

        return CONFUSED_REPLY
