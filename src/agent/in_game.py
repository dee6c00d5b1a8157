# src/agent/in_game.py
"""
In-game control: lets players drive the bot from Minecraft chat.

A chat line is handled when it mentions the bot:
    "@BotGirl follow me", "BotGirl, status", "hey @BotGirl goto 1 64 2",
    or "...@BotGirl..." anywhere in the line.
Whispers are always handled (a leading mention is stripped).

With a ToolCallingAgent the text goes to the model. Without one a small
English/Spanish intent parser covers help, status, goto, follow, stop and
say, and answers from reply templates that depend on the personality
("shy" or plain) and the language the player wrote in.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

from bot_core import BotCoreImpl
from bot_core.errors import describe_error
from contracts import WorldLink

from .llm_agent import ToolCallingAgent

log = logging.getLogger(__name__)

MAX_CHAT_CHARS = 250
DEFAULT_DISTANCE = 3

ES = "es"
EN = "en"


@dataclass(frozen=True)
class ChatContext:
    username: str
    is_whisper: bool


@dataclass(frozen=True)
class Intent:
    kind: str  # help | status | goto | follow | stop | say | unknown
    coordinates: Optional[Tuple[float, float, float]] = None
    target_player: Optional[str] = None
    distance: Optional[int] = None
    say_message: Optional[str] = None


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")
_SPANISH_MARKS = re.compile(r"[¿¡ñáéíóú]", re.I)

_SPANISH_WORDS = (
    "sigueme", "seguime", "ayuda", "estado", "para", "detente", "ve a",
    "hola", "gracias", "acompaname", "ven conmigo", "di",
)
_ENGLISH_WORDS = (
    "follow", "help", "status", "stop", "go to", "move to", "say", "hello",
    "thanks", "where are you",
)

_SAY = re.compile(r"^(?:say|di|decir|dime)\s+(.+)$", re.I | re.S)
_HELP = re.compile(r"\b(help|ayuda|comando|comandos)\b", re.I)
_STATUS = re.compile(
    r"\b(status|estado|situacion|situacion actual|posicion|posicion actual|where are you)\b", re.I
)
_STOP = re.compile(r"\b(stop|para|parate|detente|quieta|quieto|frena|alto)\b", re.I)
_FOLLOW_ME = re.compile(
    r"\b(follow me|sigueme|seguime|sigame|ven conmigo|acompaname|me sigues)\b", re.I
)
_FOLLOW_OTHER = re.compile(r"\b(?:follow|sigue a)\s+([a-z0-9_]{3,16})(?:\s+(\d+))?", re.I)
_FOLLOW_BARE = re.compile(r"^\s*(?:follow|sigue)\b", re.I)
_GOTO_VERB = re.compile(r"\b(goto|go to|move to|go|ve a|ir a|anda a|camina a|ve)\b", re.I)
_NUMERIC_SHORTCUT = re.compile(r"^-?\d+(\.\d+)?\s+-?\d+(\.\d+)?\s+-?\d+(\.\d+)?$")
_SAY_BARE = re.compile(r"^\s*(?:say|di|decir)\b", re.I)
_DISTANCE = re.compile(r"\b(?:distance|distancia|dist)?\s*(\d{1,2})\b", re.I)


def normalize(text: str) -> str:
    """Lowercase and strip accents ("Sígueme" -> "sigueme")."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


def extract_numbers(text: str) -> List[float]:
    return [float(m) for m in _NUMBER.findall(text)]


def sanitize_distance(distance: float) -> int:
    if math.isnan(distance) or distance < 1:
        return DEFAULT_DISTANCE
    return int(min(max(int(distance), 1), 16))


def detect_language(text: str) -> str:
    if _SPANISH_MARKS.search(text):
        return ES
    normalized = normalize(text)
    es_score = sum(1 for word in _SPANISH_WORDS if word in normalized)
    en_score = sum(1 for word in _ENGLISH_WORDS if word in normalized)
    return ES if es_score >= en_score else EN


def parse_intent(content: str, sender: str) -> Intent:
    raw = content.strip()
    normalized = normalize(raw)
    numbers = extract_numbers(raw)

    say = _SAY.match(raw)
    if say:
        return Intent("say", say_message=say.group(1).strip())

    if _HELP.search(normalized):
        return Intent("help")

    if _STATUS.search(normalized):
        return Intent("status")

    if _STOP.search(normalized):
        return Intent("stop")

    if _FOLLOW_ME.search(normalized):
        distance = _DISTANCE.search(normalized)
        return Intent(
            "follow",
            target_player=sender,
            distance=sanitize_distance(float(distance.group(1))) if distance else DEFAULT_DISTANCE,
        )

    follow_other = _FOLLOW_OTHER.search(normalized)
    if follow_other:
        return Intent(
            "follow",
            target_player=follow_other.group(1),
            distance=sanitize_distance(float(follow_other.group(2) or DEFAULT_DISTANCE)),
        )

    if _FOLLOW_BARE.search(normalized):
        return Intent("follow")

    has_goto_verb = bool(_GOTO_VERB.search(normalized))
    if (has_goto_verb or _NUMERIC_SHORTCUT.match(raw)) and len(numbers) >= 3:
        return Intent("goto", coordinates=(numbers[0], numbers[1], numbers[2]))

    if has_goto_verb:
        return Intent("goto")

    if _SAY_BARE.search(normalized):
        return Intent("say")

    return Intent("unknown")


def extract_mention(message: str, bot_name: str, prefix: str = "@") -> Optional[str]:
    """
    Return the text addressed to the bot, or None if the line doesn't
    mention it. "@bot" alone yields "".
    """
    trimmed = message.strip()
    if not trimmed:
        return None

    p = re.escape(prefix)
    n = re.escape(bot_name)
    patterns = (
        re.compile(rf"^\s*{p}{n}[\s,:-]*(.*)$", re.I | re.S),
        re.compile(rf"^\s*{n}[\s,:-]*(.*)$", re.I | re.S),
        re.compile(rf"^\s*(?:hey|hi|hello|hola)\s+{p}?{n}[\s,:-]*(.*)$", re.I | re.S),
    )
    for pattern in patterns:
        match = pattern.match(trimmed)
        if match:
            return (match.group(1) or "").strip()

    inline = re.compile(rf"{p}{n}", re.I)
    if inline.search(trimmed):
        return inline.sub("", trimmed, count=1).strip()

    return None


def clip_chat(message: str) -> str:
    if len(message) > MAX_CHAT_CHARS:
        return message[: MAX_CHAT_CHARS - 3] + "..."
    return message


# ---------------------------------------------------------------------------
# Reply templates
# ---------------------------------------------------------------------------


def reply_templates(language: str, shy: bool, mention: str) -> Dict[str, List[str]]:
    """`mention` is prefix + bot name, e.g. "@botgirl"."""
    if language == ES:
        if shy:
            return {
                "help": [
                    f'Um... puedes pedirme: "{mention} status", "{mention} sigueme", '
                    f'"{mention} ve a 100 64 -20", "{mention} para".',
                    "Si quieres, te ayudo con: status, sigueme, ve a <x> <y> <z>, stop, say.",
                ],
                "unknown": [
                    f'Eh... no entendí del todo. Prueba con "{mention} help".',
                    f'Creo que me perdí un poco. Escribe "{mention} help".',
                ],
                "goto_usage": [
                    "Creo que faltan coordenadas. Ejemplo: ve a 120 64 -35.",
                    "Necesito x y z. Por ejemplo: goto 120 64 -35.",
                ],
                "goto_start": ["Ok, voy para ({x}, {y}, {z}).", "Vale, ya voy a ({x}, {y}, {z})."],
                "goto_arrived": ["Ya llegué cerca de ({x}, {y}, {z}).", "Listo, estoy por ({x}, {y}, {z})."],
                "follow_usage": [
                    "Puedes decir: sigueme, o follow <jugador>.",
                    "Prueba: sigueme, o follow Steve 3.",
                ],
                "follow_start": [
                    "Ok, te sigo {username}.",
                    "Vale {username}, voy contigo.",
                    "Dale, te sigo a distancia {distance}.",
                ],
                "stop_done": ["Vale, me detengo.", "Listo, paro aquí."],
                "say_usage": [
                    "Dime qué quieres que diga. Ejemplo: di hola equipo.",
                    "Falta el mensaje. Ejemplo: say hola.",
                ],
                "say_done": ["Hecho, ya lo dije.", "Listo, mensaje enviado."],
                "command_failed": ["Ups... no pude hacerlo: {reason}", "Perdón, fallé con eso: {reason}"],
            }
        return {
            "help": [f"Comandos: {mention} status | sigueme | ve a <x> <y> <z> | para | say <mensaje>."],
            "unknown": [f'No entendí. Usa "{mention} help".'],
            "goto_usage": ["Uso: goto <x> <y> <z>."],
            "goto_start": ["Voy a ({x}, {y}, {z})."],
            "goto_arrived": ["Llegué a ({x}, {y}, {z})."],
            "follow_usage": ["Uso: sigueme o follow <jugador> [distancia]."],
            "follow_start": ["Te sigo {username}."],
            "stop_done": ["Detenido."],
            "say_usage": ["Uso: say <mensaje>."],
            "say_done": ["Mensaje enviado."],
            "command_failed": ["No pude ejecutar eso: {reason}"],
        }

    if shy:
        return {
            "help": [
                f'Um... try: "{mention} status", "{mention} follow me", '
                f'"{mention} goto 100 64 -20", "{mention} stop".',
                "I can do: status, follow me, goto <x> <y> <z>, stop, and say <message>.",
            ],
            "unknown": [
                f'Sorry... I did not fully get that. Try "{mention} help".',
                f'I might have missed that. Use "{mention} help".',
            ],
            "goto_usage": [
                "I need coordinates. Example: goto 120 64 -35.",
                "Please give x y z, like: go to 120 64 -35.",
            ],
            "goto_start": ["Okay, moving to ({x}, {y}, {z}).", "Alright, I am heading to ({x}, {y}, {z})."],
            "goto_arrived": ["I am near ({x}, {y}, {z}) now.", "Done, I reached around ({x}, {y}, {z})."],
            "follow_usage": [
                "Try: follow me, or follow <player> [distance].",
                "You can say: follow me, or follow Steve 3.",
            ],
            "follow_start": [
                "Okay, I will follow you, {username}.",
                "Sure {username}, I am following you.",
                "Got it, following {username} at distance {distance}.",
            ],
            "stop_done": ["Okay, I will stop here.", "Got it, stopping now."],
            "say_usage": [
                "Tell me what to say. Example: say hello team.",
                "I need the message text. Example: say hello.",
            ],
            "say_done": ["Done, I said it.", "Message sent."],
            "command_failed": ["Sorry, I could not do that: {reason}", "I failed that command: {reason}"],
        }

    return {
        "help": [f"Commands: {mention} status | follow me | goto <x> <y> <z> | stop | say <message>."],
        "unknown": [f'Unknown request. Use "{mention} help".'],
        "goto_usage": ["Usage: goto <x> <y> <z>."],
        "goto_start": ["Moving to ({x}, {y}, {z})."],
        "goto_arrived": ["Arrived near ({x}, {y}, {z})."],
        "follow_usage": ["Usage: follow me or follow <player> [distance]."],
        "follow_start": ["Following {username}."],
        "stop_done": ["Stopped."],
        "say_usage": ["Usage: say <message>."],
        "say_done": ["Sent."],
        "command_failed": ["Command failed: {reason}"],
    }


def _fmt_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class InGameControl:
    """
    Per-connection chat listener. Built by BotCoreImpl's in-game factory on
    every connect(), started right away and stopped on disconnect().
    """

    def __init__(
        self,
        bot: BotCoreImpl,
        link: WorldLink,
        agent: Optional[ToolCallingAgent] = None,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._bot = bot
        self._link = link
        self._agent = agent
        self._rng = rng or random.Random()
        self._bot_name = bot.config.minecraft.username.lower()
        self._prefix = bot.config.personality.mention_prefix or "@"
        self._shy = bot.config.personality.type.lower() == "shy"
        self._active = False
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        self._link.on("chat", self._on_chat)
        self._link.on("whisper", self._on_whisper)

    def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        self._link.off("chat", self._on_chat)
        self._link.off("whisper", self._on_whisper)
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    # ------------------------------------------------------------------
    # Link listeners
    # ------------------------------------------------------------------

    def _on_chat(self, username: str = "", message: str = "") -> None:
        if not self._active or username == self._link.username:
            return
        content = extract_mention(message, self._bot_name, self._prefix)
        if content is None:
            return
        self._spawn(ChatContext(username, is_whisper=False), content)

    def _on_whisper(self, username: str = "", message: str = "") -> None:
        if not self._active or username == self._link.username:
            return
        content = extract_mention(message, self._bot_name, self._prefix)
        if content is None:
            content = message.strip()
        if not content:
            return
        self._spawn(ChatContext(username, is_whisper=True), content)

    def _spawn(self, context: ChatContext, content: str) -> None:
        task = asyncio.get_running_loop().create_task(self.handle_message(context, content))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Handling
    # ------------------------------------------------------------------

    async def handle_message(self, context: ChatContext, content: str) -> None:
        language = detect_language(content)
        agent = self._agent
        if agent is not None:
            await self._handle_with_agent(agent, context, language, content)
            return

        intent = parse_intent(content, context.username)
        log.info(
            "In-game intent from %s (%s): %s | %s",
            context.username,
            "whisper" if context.is_whisper else "chat",
            intent.kind,
            content,
        )

        try:
            if intent.kind == "help":
                self._reply(context, self.compose(language, "help"))
            elif intent.kind == "status":
                self._reply(context, self._status_line(language))
            elif intent.kind == "goto":
                await self._handle_goto(context, language, intent)
            elif intent.kind == "follow":
                self._handle_follow(context, language, intent)
            elif intent.kind == "stop":
                self._bot.stop_movement()
                self._reply(context, self.compose(language, "stop_done"))
            elif intent.kind == "say":
                self._handle_say(context, language, intent)
            else:
                self._reply(context, self.compose(language, "unknown"))
        except Exception as exc:
            reason = describe_error(exc)
            log.warning("In-game command failed (%s): %s", intent.kind, reason)
            self._reply(context, self.compose(language, "command_failed", reason=reason))

    async def _handle_with_agent(
        self,
        agent: ToolCallingAgent,
        context: ChatContext,
        language: str,
        content: str,
    ) -> None:
        log.info(
            "In-game request from %s (%s): %s",
            context.username,
            "whisper" if context.is_whisper else "chat",
            content,
        )
        try:
            reply = await agent.process_message(content, context.username)
        except Exception as exc:
            reason = describe_error(exc)
            log.warning("In-game request failed: %s", reason)
            self._reply(context, self.compose(language, "command_failed", reason=reason))
            return
        if reply:
            self._reply(context, reply)

    async def _handle_goto(self, context: ChatContext, language: str, intent: Intent) -> None:
        if intent.coordinates is None:
            self._reply(context, self.compose(language, "goto_usage"))
            return
        x, y, z = intent.coordinates
        self._reply(context, self.compose(language, "goto_start", x=x, y=y, z=z))
        await self._bot.move_to(x, y, z)
        self._reply(context, self.compose(language, "goto_arrived", x=x, y=y, z=z))

    def _handle_follow(self, context: ChatContext, language: str, intent: Intent) -> None:
        if not intent.target_player:
            self._reply(context, self.compose(language, "follow_usage"))
            return
        distance = intent.distance if intent.distance is not None else DEFAULT_DISTANCE
        target = self._resolve_player(intent.target_player)
        self._bot.follow_player(target, float(distance))
        self._reply(
            context,
            self.compose(language, "follow_start", username=target, distance=distance),
        )

    def _resolve_player(self, name: str) -> str:
        # The parser lowercases names; match them back to the online spelling.
        for online in self._bot.online_players():
            if online.lower() == name.lower():
                return online
        return name

    def _handle_say(self, context: ChatContext, language: str, intent: Intent) -> None:
        if not intent.say_message or not intent.say_message.strip():
            self._reply(context, self.compose(language, "say_usage"))
            return
        self._bot.chat(intent.say_message)
        self._reply(context, self.compose(language, "say_done"))

    def compose(self, language: str, key: str, **values: Any) -> str:
        options = reply_templates(language, self._shy, f"{self._prefix}{self._bot_name}")[key]
        text = self._rng.choice(options)
        for name in ("username", "x", "y", "z", "distance", "reason"):
            value = values.get(name)
            text = text.replace("{" + name + "}", "" if value is None else _fmt_number(value))
        return text.strip()

    def _status_line(self, language: str) -> str:
        state = self._bot.get_state()
        if state is None or state.position is None:
            return "Ahora mismo no estoy conectada." if language == ES else "I am not connected right now."
        x, y, z = state.position.key()
        if language == ES:
            return (
                f"Estoy en ({x}, {y}, {z}), vida {state.health:g}/20, "
                f"comida {state.food:g}/20, dimensión {state.dimension}."
            )
        return (
            f"I am at ({x}, {y}, {z}), health {state.health:g}/20, "
            f"food {state.food:g}/20, dimension {state.dimension}."
        )

    def _reply(self, context: ChatContext, message: str) -> None:
        if not self._bot.is_ready():
            return
        safe = clip_chat(message)
        if context.is_whisper:
            self._bot.whisper(context.username, safe)
        else:
            self._bot.chat(safe)
