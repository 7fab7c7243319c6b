"""
Turns raw game server log lines into chat room events.

Server log lines look like:

    [12:34:56] [Server thread/INFO]: Steve joined the game

Only `INFO` lines are considered.  Each `PatternRule` pairs a regular expression
with a builder for one event type; rules are tried in order and the first match
wins.
"""

import re
from dataclasses import dataclass
from typing import Callable

from mc_chat_bridge.config import DEFAULT_WELCOME_SERVER_NAME

INFO_MARKER = "/INFO]"

TIMESTAMP = r"\[\d{2}:\d{2}:\d{2}\]"
SERVER_THREAD = TIMESTAMP + r" \[Server thread/INFO\]: "
CHAT_THREAD = TIMESTAMP + r" \[Async Chat Thread - #\d+/INFO\]: "

ADVANCEMENT_PHRASES = (
    "has made the advancement",
    "has reached the goal",
    "has completed the challenge",
)

# Not a grammar: death messages whose verb is missing here are not relayed.
DEATH_VERBS = (
    "was",
    "walked",
    "drowned",
    "died",
    "experienced",
    "blew",
    "hit",
    "fell",
    "went",
    "burned",
    "tried",
    "discovered",
    "froze",
    "starved",
    "suffocated",
    "left",
    "withered",
    "didn't",
)

WELCOME_TEMPLATE = (
    "Hey {player}, sunshine! Just wanted to send a little virtual hug your way. "
    "Hope your day is as awesome as you are! "
    "Have a fantastic time here on {server}!"
)


@dataclass(frozen=True)
class ChatMessage:
    player: str
    message: str

    def render(self) -> str:
        return f"[CHAT] <{self.player}> {self.message}"


@dataclass(frozen=True)
class PlayerJoined:
    player: str

    def render(self) -> str:
        return f"[INFO] {self.player} joined the game"


@dataclass(frozen=True)
class PlayerLeft:
    player: str

    def render(self) -> str:
        return f"[INFO] {self.player} left the game"


@dataclass(frozen=True)
class Welcome:
    player: str
    server: str

    def render(self) -> str:
        return "[INFO] " + WELCOME_TEMPLATE.format(
            player=self.player, server=self.server
        )


@dataclass(frozen=True)
class Advancement:
    """Advancement, goal or challenge; `action` is the phrase the server used."""

    player: str
    action: str
    title: str

    def render(self) -> str:
        return f"[INFO] {self.player} {self.action} [{self.title}]"


@dataclass(frozen=True)
class Death:
    player: str
    message: str

    def render(self) -> str:
        return f"[INFO] {self.player} {self.message}"


ParsedEvent = ChatMessage | PlayerJoined | PlayerLeft | Welcome | Advancement | Death


@dataclass(frozen=True)
class PatternRule:
    name: str
    pattern: re.Pattern
    build: Callable[[re.Match], ParsedEvent]

    def match(self, line: str) -> ParsedEvent | None:
        found = self.pattern.search(line)
        if found is None:
            return None
        return self.build(found)


def build_rules(welcome_server_name=DEFAULT_WELCOME_SERVER_NAME):
    """
    Build the ordered rule list, most specific first.

    The welcome rule is bound to `welcome_server_name` because the greeting is
    a fixed broadcast configured on one particular server.
    """
    welcome = re.escape(
        WELCOME_TEMPLATE.format(player="\0", server=welcome_server_name)
    ).replace("\0", r"(\w+)")
    advancement = "|".join(re.escape(phrase) for phrase in ADVANCEMENT_PHRASES)
    verbs = "|".join(re.escape(verb) for verb in DEATH_VERBS)

    return (
        PatternRule(
            "chat",
            re.compile(CHAT_THREAD + r"(?:\[[^\]]+\] )?<([^>]+)> (.+)"),
            lambda m: ChatMessage(m[1], m[2]),
        ),
        PatternRule(
            "join",
            re.compile(SERVER_THREAD + r"(\w+) joined the game"),
            lambda m: PlayerJoined(m[1]),
        ),
        PatternRule(
            "leave",
            re.compile(SERVER_THREAD + r"(\w+) left the game"),
            lambda m: PlayerLeft(m[1]),
        ),
        PatternRule(
            "welcome",
            re.compile(SERVER_THREAD + welcome),
            lambda m: Welcome(m[1], welcome_server_name),
        ),
        PatternRule(
            "advancement",
            re.compile(SERVER_THREAD + rf"(\w+) ({advancement}) \[(.+)\]"),
            lambda m: Advancement(m[1], m[2], m[3]),
        ),
        PatternRule(
            "death",
            re.compile(SERVER_THREAD + rf"(\w+) ((?:{verbs}).*)"),
            lambda m: Death(m[1], m[2]),
        ),
    )


class LineParser:
    """
    Stateless matcher over an ordered tuple of `PatternRule`s.
    """

    def __init__(self, rules=None):
        self.rules = tuple(rules) if rules is not None else build_rules()

    def parse(self, line: str) -> ParsedEvent | None:
        """Return the event for `line`, or None when no rule matches."""
        if INFO_MARKER not in line:
            return None
        for rule in self.rules:
            event = rule.match(line)
            if event is not None:
                return event
        return None


default_parser = LineParser()


def parse_line(line: str) -> ParsedEvent | None:
    return default_parser.parse(line)
