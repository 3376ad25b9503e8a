"""Reconstruct partial-edit states that were hashed but never observed."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final

from ai_lens.hashing import calculate_code_hash
from ai_lens.inference.models import SOURCE_INTERMEDIATE_STATE, SOURCE_PAIRED_SYMBOL_INTERMEDIATE

DEFAULT_MAX_PREFIX_STEPS = 100

PAIRED_SYMBOLS: Final[dict[str, str]] = {
    "(": ")",
    "[": "]",
    "{": "}",
    '"': '"',
    "'": "'",
    "`": "`",
}
_QUOTES: Final[frozenset[str]] = frozenset({'"', "'", "`"})
_CLOSERS: Final[dict[str, str]] = {")": "(", "]": "[", "}": "{"}

# Intermediate states are always hashed as removals of the partial text.
_INTERMEDIATE_OPERATION: Final = "-"


@dataclass(slots=True, frozen=True)
class SymbolPair:
    """Positions of one opener/closer pair inside a line."""

    open_symbol: str
    close_symbol: str
    open_index: int
    close_index: int

    @property
    def inner_length(self) -> int:
        return self.close_index - self.open_index - 1


@dataclass(slots=True, frozen=True)
class IntermediateSolution:
    """Recovered partial content plus how it was found."""

    content: str
    source_tag: str
    file_name: str
    prefix_length: int | None = None
    pair: SymbolPair | None = None


def find_symbol_pairs(line: str) -> list[SymbolPair]:
    """Collect symbol pairs in ``line`` with a single left-to-right scan.

    Quotes pair with their next occurrence and the scan resumes after the
    closing quote, so brackets inside a string literal are ignored. Brackets
    pair through an explicit stack and only pop on a matching top. Pairs are
    returned in the order their closer was found.
    """
    pairs: list[SymbolPair] = []
    stack: list[tuple[str, int]] = []
    index = 0
    length = len(line)
    while index < length:
        char = line[index]
        if char in _QUOTES:
            close_index = line.find(char, index + 1)
            if close_index == -1:
                index += 1
                continue
            pairs.append(SymbolPair(char, char, index, close_index))
            index = close_index + 1
            continue
        if char in PAIRED_SYMBOLS:
            stack.append((char, index))
        elif char in _CLOSERS and stack and stack[-1][0] == _CLOSERS[char]:
            open_symbol, open_index = stack.pop()
            pairs.append(SymbolPair(open_symbol, char, open_index, index))
        index += 1
    return pairs


class IntermediateStateSolver:
    """Brute-force search over plausible partial states of a known full line."""

    def __init__(self, max_prefix_steps: int = DEFAULT_MAX_PREFIX_STEPS) -> None:
        if max_prefix_steps < 0:
            raise ValueError("max_prefix_steps must be >= 0")
        self._max_prefix_steps = max_prefix_steps

    def solve(
        self,
        target_hash: str,
        full_content: str,
        file_names: Sequence[str],
    ) -> IntermediateSolution | None:
        """Try prefix growth first, then paired-symbol completion."""
        solution = self.solve_prefix(target_hash, full_content, file_names)
        if solution is not None:
            return solution
        return self.solve_paired_symbols(target_hash, full_content, file_names)

    def solve_prefix(
        self,
        target_hash: str,
        full_content: str,
        file_names: Sequence[str],
    ) -> IntermediateSolution | None:
        """Grow the line from its first non-whitespace character, one char per step."""
        trimmed = full_content.lstrip()
        # A blank line grows from column 0, leaving only the empty candidate.
        first_non_ws = len(full_content) - len(trimmed) if trimmed else 0
        steps = min(self._max_prefix_steps, len(trimmed))
        for prefix_length in range(steps + 1):
            candidate = full_content[: first_non_ws + prefix_length]
            file_name = self._match(target_hash, candidate, file_names)
            if file_name is not None:
                return IntermediateSolution(
                    content=candidate,
                    source_tag=SOURCE_INTERMEDIATE_STATE,
                    file_name=file_name,
                    prefix_length=prefix_length,
                )
        return None

    def solve_paired_symbols(
        self,
        target_hash: str,
        full_content: str,
        file_names: Sequence[str],
    ) -> IntermediateSolution | None:
        """Keep text outside each pair and grow only the text between them."""
        for pair in find_symbol_pairs(full_content):
            before = full_content[: pair.open_index]
            inner = full_content[pair.open_index + 1 : pair.close_index]
            after = full_content[pair.close_index + 1 :]
            for inner_length in range(len(inner) + 1):
                candidate = (
                    f"{before}{pair.open_symbol}{inner[:inner_length]}{pair.close_symbol}{after}"
                )
                file_name = self._match(target_hash, candidate, file_names)
                if file_name is not None:
                    return IntermediateSolution(
                        content=candidate,
                        source_tag=SOURCE_PAIRED_SYMBOL_INTERMEDIATE,
                        file_name=file_name,
                        prefix_length=inner_length,
                        pair=pair,
                    )
        return None

    @staticmethod
    def _match(target_hash: str, candidate: str, file_names: Sequence[str]) -> str | None:
        for file_name in file_names:
            if calculate_code_hash(file_name, _INTERMEDIATE_OPERATION, candidate) == target_hash:
                return file_name
        return None
