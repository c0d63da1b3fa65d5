# ====== Synchronization language ======
#
#   when
#     Account.create(username, password) -> user
#   sync
#     Profile.create(user, username, "", "")
#
# A block is a `when` clause followed by a mandatory `sync` clause, each one
# or more call lines. Bare words are variables scoped to their block; true,
# false and null are literals, anything else is read as a JSON value up to
# the next `,`, `)` or newline.
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Set, Tuple, Union
import json, logging, re

from errors import ParseError

logger = logging.getLogger(__name__)


class Var:
    """Symbolic variable. Identity is per block, so two blocks that spell
    the same name get distinct instances."""
    __slots__ = ("name",)

    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return f"Var({self.name})"


Primitive = Union[bool, str, int, float, None, Var]


@dataclass(frozen=True)
class SyncLine:
    action: str
    args: Tuple[Primitive, ...]
    # None when the line has no `->` clause
    returns: Optional[Tuple[Primitive, ...]] = None


@dataclass(frozen=True)
class SyncBlock:
    when: Tuple[SyncLine, ...]
    sync: Tuple[SyncLine, ...]
    line: int = 0

    @property
    def anchor(self) -> str:
        return self.when[0].action


class RuleTable(Mapping[str, Tuple[SyncBlock, ...]]):
    """Blocks indexed by the action of their first `when` line, in source order."""

    def __init__(self, blocks: List[SyncBlock]):
        self.blocks: Tuple[SyncBlock, ...] = tuple(blocks)
        index: Dict[str, List[SyncBlock]] = {}
        for block in self.blocks:
            index.setdefault(block.anchor, []).append(block)
        self._index = {k: tuple(v) for k, v in index.items()}

    def __getitem__(self, action: str) -> Tuple[SyncBlock, ...]:
        return self._index[action]

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def anchors(self) -> List[str]:
        return list(self._index)

    def rules_for(self, action: str) -> Tuple[SyncBlock, ...]:
        return self._index.get(action, ())

    def referenced_actions(self) -> Set[str]:
        return {line.action for b in self.blocks for line in b.when + b.sync}


_IDENT = re.compile(r"[A-Za-z][A-Za-z0-9._\-!$*]*")
_WS = re.compile(r"\s*")
_KEYWORDS = ("when", "sync")
_LITERAL_END = ",)\r\n"


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.scope: Dict[str, Var] = {}

    # -- helpers --
    def error(self, message: str, pos: Optional[int] = None) -> ParseError:
        pos = self.pos if pos is None else pos
        line = self.text.count("\n", 0, pos) + 1
        column = pos - (self.text.rfind("\n", 0, pos) + 1) + 1
        end = self.text.find("\n", pos)
        snippet = self.text[pos:] if end == -1 else self.text[pos:end]
        return ParseError(message, line, column, snippet.strip())

    def skip_ws(self) -> None:
        self.pos = _WS.match(self.text, self.pos).end()

    def eof(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self) -> str:
        return self.text[self.pos] if not self.eof() else ""

    def expect(self, ch: str) -> None:
        self.skip_ws()
        if self.peek() != ch:
            raise self.error(f"Expected {ch!r}")
        self.pos += 1

    def at_keyword(self, word: Optional[str] = None) -> bool:
        m = _IDENT.match(self.text, self.pos)
        if m is None or m.group() not in _KEYWORDS:
            return False
        if word is not None and m.group() != word:
            return False
        return m.end() == len(self.text) or self.text[m.end()].isspace()

    def keyword(self, word: str) -> int:
        self.skip_ws()
        if not self.at_keyword(word):
            raise self.error(f"Expected '{word}'")
        start = self.pos
        self.pos += len(word)
        return start

    # -- grammar --
    def parse(self) -> List[SyncBlock]:
        blocks: List[SyncBlock] = []
        self.skip_ws()
        while not self.eof():
            blocks.append(self.block())
            self.skip_ws()
        return blocks

    def block(self) -> SyncBlock:
        # fresh lexical scope per block
        self.scope = {}
        start = self.keyword("when")
        when = self.lines()
        if not when:
            raise self.error("Empty 'when' clause")
        self.keyword("sync")
        sync = self.lines()
        if not sync:
            raise self.error("Empty 'sync' clause")
        line = self.text.count("\n", 0, start) + 1
        return SyncBlock(tuple(when), tuple(sync), line)

    def lines(self) -> List[SyncLine]:
        out: List[SyncLine] = []
        while True:
            self.skip_ws()
            if self.eof() or self.at_keyword():
                return out
            out.append(self.call_line())

    def call_line(self) -> SyncLine:
        m = _IDENT.match(self.text, self.pos)
        if m is None:
            raise self.error("Expected action name")
        self.pos = m.end()
        self.expect("(")
        args: List[Primitive] = []
        self.skip_ws()
        if self.peek() != ")":
            args = self.patterns()
        self.expect(")")
        returns = None
        mark = self.pos
        self.skip_ws()
        if self.text.startswith("->", self.pos):
            self.pos += 2
            returns = tuple(self.patterns())
        else:
            self.pos = mark
        return SyncLine(m.group(), tuple(args), returns)

    def patterns(self) -> List[Primitive]:
        out = [self.pattern()]
        while True:
            mark = self.pos
            self.skip_ws()
            if self.peek() != ",":
                self.pos = mark
                return out
            self.pos += 1
            out.append(self.pattern())

    def pattern(self) -> Primitive:
        self.skip_ws()
        m = _IDENT.match(self.text, self.pos)
        if m is not None:
            self.pos = m.end()
            word = m.group()
            if word == "true":
                return True
            if word == "false":
                return False
            if word == "null":
                return None
            if word not in self.scope:
                self.scope[word] = Var(word)
            return self.scope[word]
        return self.literal()

    def literal(self) -> Primitive:
        start = self.pos
        while not self.eof() and self.peek() not in _LITERAL_END:
            self.pos += 1
        raw = self.text[start:self.pos].strip()
        if not raw:
            raise self.error("Expected a value", start)
        try:
            value = json.loads(raw)
        except ValueError:
            raise self.error("Invalid literal", start) from None
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise self.error("Literal must be a string, number or null", start)
        return value


def parse(text: str) -> RuleTable:
    table = RuleTable(_Parser(text).parse())
    logger.debug("Parsed %d syncs over %d anchors", len(table.blocks), len(table))
    return table


def parse_file(path: Union[str, Path]) -> RuleTable:
    return parse(Path(path).read_text(encoding="utf-8"))
