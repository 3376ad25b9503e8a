from __future__ import annotations

from pathlib import Path

import pytest

from ai_lens.config import CliOverrides, load_effective_config
from ai_lens.server import create_server


def _write_config(root: Path, *lines: str) -> None:
    (root / "ai_lens.toml").write_text("\n".join(lines), encoding="utf-8")


def test_invalid_limit_type_raises_value_error(tmp_path: Path) -> None:
    _write_config(tmp_path, "[inference]", 'max_lines_per_file = "many"')

    with pytest.raises(ValueError, match="inference.max_lines_per_file"):
        create_server(workspace_root=str(tmp_path))


def test_invalid_section_type_raises_value_error(tmp_path: Path) -> None:
    _write_config(tmp_path, 'snapshots = "not-a-table"')

    with pytest.raises(ValueError, match="section 'snapshots'"):
        create_server(workspace_root=str(tmp_path))


def test_boolean_is_not_accepted_as_integer(tmp_path: Path) -> None:
    _write_config(tmp_path, "[analysis]", "recent_commit_count = true")

    with pytest.raises(ValueError, match="analysis.recent_commit_count"):
        load_effective_config(tmp_path)


def test_value_above_cap_is_rejected(tmp_path: Path) -> None:
    _write_config(tmp_path, "[analysis]", "causality_window_days = 400")

    with pytest.raises(ValueError, match="must be <= 365"):
        load_effective_config(tmp_path)


def test_result_cache_needs_room_for_two_entries(tmp_path: Path) -> None:
    _write_config(tmp_path, "[inference]", "max_cache_size = 1")

    with pytest.raises(ValueError, match="inference.max_cache_size"):
        load_effective_config(tmp_path)


def test_code_extensions_must_be_dotted_strings(tmp_path: Path) -> None:
    _write_config(tmp_path, "[analysis]", 'code_extensions = ["py"]')

    with pytest.raises(ValueError, match="analysis.code_extensions"):
        load_effective_config(tmp_path)


def test_cli_override_above_cap_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="overrides.recent_commit_count"):
        load_effective_config(tmp_path, overrides=CliOverrides(recent_commit_count=500))
