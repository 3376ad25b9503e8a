"""Diff sources: a protocol plus a ``git`` subprocess implementation."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from ai_lens.analysis.diff import COMMIT_HEADER_FORMAT

DEFAULT_GIT_TIMEOUT_SECONDS = 30


@dataclass(slots=True, frozen=True)
class GitCommandError(Exception):
    """Raised when a git invocation fails or cannot be started."""

    args_text: str
    returncode: int | None
    detail: str

    def __str__(self) -> str:
        return f"git {self.args_text} failed ({self.returncode}): {self.detail}"


class DiffSource(Protocol):
    """Textual commit and working-tree data consumed by the correlator."""

    def current_branch(self) -> str: ...

    def recent_commit_hashes(self, count: int) -> list[str]: ...

    def commit_header(self, commit_hash: str) -> str: ...

    def commit_numstat(self, commit_hash: str) -> str: ...

    def commit_diff(self, commit_hash: str) -> str: ...

    def status_porcelain(self) -> str: ...

    def working_numstat(self) -> str: ...

    def staged_numstat(self) -> str: ...

    def untracked_files(self) -> list[str]: ...

    def working_file_diff(self, file_name: str) -> str: ...

    def read_file(self, file_name: str) -> str: ...


class GitDiffSource:
    """Run ``git`` in the workspace and return raw stdout."""

    def __init__(self, workspace_root: Path, timeout: int = DEFAULT_GIT_TIMEOUT_SECONDS) -> None:
        self._workspace_root = workspace_root
        self._timeout = timeout

    def current_branch(self) -> str:
        return self._git("branch", "--show-current").strip() or "unknown"

    def recent_commit_hashes(self, count: int) -> list[str]:
        output = self._git("log", f"-{count}", "--pretty=format:%H")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def commit_header(self, commit_hash: str) -> str:
        return self._git(
            "show", f"--pretty=format:{COMMIT_HEADER_FORMAT}", "--no-patch", commit_hash
        )

    def commit_numstat(self, commit_hash: str) -> str:
        return self._git("show", "--numstat", "--pretty=format:", commit_hash)

    def commit_diff(self, commit_hash: str) -> str:
        return self._git("show", "--unified=1", "--pretty=format:", commit_hash)

    def status_porcelain(self) -> str:
        return self._git("status", "--porcelain")

    def working_numstat(self) -> str:
        return self._git("diff", "--numstat")

    def staged_numstat(self) -> str:
        return self._git("diff", "--cached", "--numstat")

    def untracked_files(self) -> list[str]:
        output = self._git("ls-files", "--others", "--exclude-standard")
        return [line for line in output.splitlines() if line.strip()]

    def working_file_diff(self, file_name: str) -> str:
        return self._git("diff", "HEAD", "--", file_name)

    def read_file(self, file_name: str) -> str:
        return (self._workspace_root / file_name).read_text(encoding="utf-8", errors="replace")

    def _git(self, *args: str) -> str:
        args_text = " ".join(args)
        try:
            result = subprocess.run(
                ["git", *args],
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                cwd=self._workspace_root,
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise GitCommandError(args_text=args_text, returncode=None, detail=str(exc)) from exc
        if result.returncode != 0:
            raise GitCommandError(
                args_text=args_text,
                returncode=result.returncode,
                detail=result.stderr.strip(),
            )
        return result.stdout
