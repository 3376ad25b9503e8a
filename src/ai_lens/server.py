"""STDIO JSON-line server entrypoint."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TextIO

from ai_lens.analysis import DiffSource
from ai_lens.config import CliOverrides, LensConfig, load_effective_config
from ai_lens.session import LensSession
from ai_lens.tools.builtin import register_builtin_tools
from ai_lens.tools.registry import ToolDispatchError, ToolRegistry


@dataclass(slots=True, frozen=True)
class Request:
    """Normalized incoming request."""

    request_id: str
    method: str
    params: dict[str, object]


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ai-lens", description="Serve line attribution tools over JSON lines on stdio."
    )
    parser.add_argument("--workspace-root", default=".", help="Workspace to monitor.")
    parser.add_argument(
        "--data-dir", default=None, help="State directory (default: <workspace>/.ai_lens)."
    )
    parser.add_argument("--max-lines-per-file", type=int, default=None)
    parser.add_argument("--max-cache-size", type=int, default=None)
    parser.add_argument("--causality-window-days", type=int, default=None)
    parser.add_argument("--recent-commit-count", type=int, default=None)
    return parser


class StdioServer:
    """Deterministic STDIO server routing requests to lens tools.

    Requests are drained one line at a time, so every inbound edit or feed
    batch runs to completion before the next one is read. Every request,
    including rejected ones, leaves exactly one sanitized ``request`` event.
    """

    def __init__(self, config: LensConfig, diff_source: DiffSource | None = None) -> None:
        self._config = config
        self._session = LensSession(config, diff_source=diff_source)
        self._registry = ToolRegistry()
        register_builtin_tools(self._registry, self._session)
        self._fallback_ids = 0

    @property
    def session(self) -> LensSession:
        return self._session

    def serve(self, in_stream: TextIO, out_stream: TextIO) -> None:
        """Answer each non-blank input line with one JSON response line."""
        for raw_line in in_stream:
            line = raw_line.strip()
            if not line:
                continue
            response = self.handle_json_line(line)
            out_stream.write(json.dumps(response, sort_keys=True) + "\n")
            out_stream.flush()

    def handle_json_line(self, raw_line: str) -> dict[str, object]:
        try:
            payload = json.loads(raw_line)
        except json.JSONDecodeError:
            request_id = self.next_request_id()
            response = error_envelope(request_id, "INVALID_JSON", "Request must be valid JSON.")
            self.log_request(
                request_id, "invalid_json", {"raw_line_length": len(raw_line)}, response
            )
            return response
        return self.handle_payload(payload)

    def handle_payload(self, payload: object) -> dict[str, object]:
        """Validate ``payload``, run the named tool and wrap the outcome in an envelope."""
        request_id = self.request_id_of(payload)
        tool_name = "invalid_request"
        arguments: dict[str, object] = {}
        try:
            request = self.parse_request(payload, request_id)
            tool_name, arguments = self.unwrap_tool_call(request)
            result = self._registry.dispatch(tool_name, arguments)
        except ToolDispatchError as error:
            response = error_envelope(request_id, error.code, error.message)
        except Exception:
            response = error_envelope(
                request_id, "INTERNAL_ERROR", "Unhandled server error while executing tool."
            )
        else:
            response = success_envelope(request_id, result, _pop_result_warnings(result))
        self.log_request(request_id, tool_name, arguments, response)
        return response

    def request_id_of(self, payload: object) -> str:
        """Use the caller's id when it is a string or integer, else a fallback id."""
        raw = payload.get("id") if isinstance(payload, dict) else None
        if isinstance(raw, str) and raw:
            return raw
        if isinstance(raw, int) and not isinstance(raw, bool):
            return str(raw)
        return self.next_request_id()

    def next_request_id(self) -> str:
        self._fallback_ids += 1
        return f"req-{self._fallback_ids:06d}"

    @staticmethod
    def parse_request(payload: object, request_id: str) -> Request:
        if not isinstance(payload, dict):
            raise ToolDispatchError(code="INVALID_REQUEST", message="Request must be an object.")
        method = payload.get("method")
        if not isinstance(method, str) or not method:
            raise ToolDispatchError(
                code="INVALID_REQUEST", message="Request method must be a non-empty string."
            )
        params = payload.get("params", {})
        if not isinstance(params, dict):
            raise ToolDispatchError(
                code="INVALID_PARAMS", message="Request params must be an object."
            )
        return Request(request_id=request_id, method=method, params=params)

    @staticmethod
    def unwrap_tool_call(request: Request) -> tuple[str, dict[str, object]]:
        """Return ``(tool, arguments)``, unwrapping the ``tools/call`` form."""
        if request.method != "tools/call":
            return request.method, request.params
        name = request.params.get("name")
        if not isinstance(name, str) or not name:
            raise ToolDispatchError(
                code="INVALID_PARAMS",
                message="tools/call params.name must be a non-empty string.",
            )
        arguments = request.params.get("arguments", {})
        if not isinstance(arguments, dict):
            raise ToolDispatchError(
                code="INVALID_PARAMS",
                message="tools/call params.arguments must be an object.",
            )
        return name, arguments

    def log_request(
        self,
        request_id: str,
        tool_name: str,
        arguments: dict[str, object],
        response: dict[str, object],
    ) -> None:
        """Emit the request event; argument values are sanitized by the logger."""
        metadata: dict[str, object] = {"tool": tool_name, **arguments}
        error = response.get("error")
        if isinstance(error, dict) and isinstance(error.get("code"), str):
            metadata["error_code"] = error["code"]
        self._session.event_logger.emit(
            "request", metadata, request_id=request_id, ok=response.get("ok") is True
        )


def success_envelope(
    request_id: str, result: dict[str, object], warnings: list[str]
) -> dict[str, object]:
    return {"request_id": request_id, "ok": True, "result": result, "warnings": warnings}


def error_envelope(request_id: str, code: str, message: str) -> dict[str, object]:
    return {
        "request_id": request_id,
        "ok": False,
        "result": {},
        "warnings": [],
        "error": {"code": code, "message": message},
    }


def create_server(
    workspace_root: str,
    data_dir: str | None = None,
    cli_overrides: CliOverrides | None = None,
    diff_source: DiffSource | None = None,
) -> StdioServer:
    """Load the effective config for ``workspace_root`` and build a server on it."""
    overrides = cli_overrides or CliOverrides()
    if data_dir is not None and overrides.data_dir is None:
        overrides = replace(overrides, data_dir=Path(data_dir).resolve())
    config = load_effective_config(Path(workspace_root).resolve(), overrides=overrides)
    return StdioServer(config=config, diff_source=diff_source)


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    overrides = CliOverrides(
        max_lines_per_file=args.max_lines_per_file,
        max_cache_size=args.max_cache_size,
        causality_window_days=args.causality_window_days,
        recent_commit_count=args.recent_commit_count,
    )
    server = create_server(args.workspace_root, data_dir=args.data_dir, cli_overrides=overrides)
    server.serve(in_stream=sys.stdin, out_stream=sys.stdout)
    return 0


def _pop_result_warnings(result: dict[str, object]) -> list[str]:
    raw = result.pop("__warnings__", None)
    if not isinstance(raw, list):
        return []
    return [warning for warning in raw if isinstance(warning, str)]


if __name__ == "__main__":
    raise SystemExit(main())
