"""Expression source text inside a parsed statement.

The catalog keeps defaults and policy expressions as they were written, the
way PostgreSQL shows them back for simple cases. They are sliced out of the
statement by token position rather than printed back from the syntax tree.
"""

from pglast.parser import scan

COMMENT_TOKENS = frozenset({"SQL_COMMENT", "C_COMMENT"})

_OPENING = frozenset({"(", "["})
_CLOSING = frozenset({")", "]"})
_SEPARATORS = frozenset({",", ";"})


class StatementSource:
    """Token view over the text of a single statement.

    Attributes:
        sql: The statement text the parse tree locations refer to.
        tokens: Scanner tokens without comments.
        depths: Parenthesis nesting depth of each token. A bracket has the
            depth of the text around it.
    """

    def __init__(self, sql: str):
        self.sql = sql
        self.tokens = [token for token in scan(sql) if token.name not in COMMENT_TOKENS]
        self.depths: list[int] = []
        depth = 0
        for token in self.tokens:
            text = self.text(token)
            if text in _CLOSING:
                depth -= 1
            self.depths.append(depth)
            if text in _OPENING:
                depth += 1

    def text(self, token) -> str:
        return self.sql[token.start:token.end + 1]

    def word(self, index: int) -> str:
        return self.text(self.tokens[index]).upper()

    def index_at(self, offset: int) -> int:
        """Index of the first token starting at or after character ``offset``."""
        for index, token in enumerate(self.tokens):
            if token.start >= offset:
                return index
        return len(self.tokens)

    def find_all(self, *words: str, start: int = 0, depth: int | None = None) -> list[int]:
        """Indexes where the token sequence ``words`` begins.

        Args:
            words: Upper-case token texts to match in order.
            start: First token index to consider.
            depth: When given, only matches at this nesting depth count.
        """
        matches = []
        for index in range(start, len(self.tokens) - len(words) + 1):
            if depth is not None and self.depths[index] != depth:
                continue
            if all(self.word(index + offset) == word for offset, word in enumerate(words)):
                matches.append(index)
        return matches

    def find(self, *words: str, start: int = 0, depth: int | None = None) -> int | None:
        matches = self.find_all(*words, start=start, depth=depth)
        return matches[0] if matches else None

    def expression(self, start: int, stop: int | None = None) -> str | None:
        """Text of the expression that begins at token ``start``.

        The expression runs until a ``,`` or ``;`` at its own depth, a closing
        bracket of the enclosing group, the first token at or after character
        offset ``stop``, or the end of the statement.
        """
        if start >= len(self.tokens):
            return None
        base = self.depths[start]
        end = start
        while end < len(self.tokens):
            token = self.tokens[end]
            if stop is not None and token.start >= stop:
                break
            if self.depths[end] < base:
                break
            if self.depths[end] == base and self.text(token) in _SEPARATORS:
                break
            end += 1
        if end == start:
            return None
        return self.sql[self.tokens[start].start:self.tokens[end - 1].end + 1]

    def parenthesized(self, index: int) -> str | None:
        """Text between the ``(`` at token ``index`` and its matching ``)``."""
        if index >= len(self.tokens) or self.text(self.tokens[index]) != "(":
            return None
        inner = self.depths[index] + 1
        end = index + 1
        while end < len(self.tokens) and self.depths[end] >= inner:
            end += 1
        if end == index + 1:
            return None
        return self.sql[self.tokens[index + 1].start:self.tokens[end - 1].end + 1]
