from __future__ import annotations

from pathlib import Path

import pytest

from release_o_matic.core.retention import numeric_build_dirs, prune_deployments


def _mk(env_dir: Path, *names: str) -> None:
    for name in names:
        (env_dir / name).mkdir(parents=True)
        (env_dir / name / "index.html").write_text(name)


def test_prune_keeps_highest_versions(tmp_path: Path) -> None:
    _mk(tmp_path, "1", "2", "10", "3")

    removed = prune_deployments(tmp_path, keep=2)

    assert sorted(p.name for p in removed) == ["1", "2"]
    assert sorted(v for v, _ in numeric_build_dirs(tmp_path)) == [3, 10]


def test_prune_ignores_non_numeric_entries(tmp_path: Path) -> None:
    _mk(tmp_path, "1", "2", "assets", "\u00b2", "\u0663")
    (tmp_path / "latest").symlink_to("2")

    removed = prune_deployments(tmp_path, keep=1)

    assert [p.name for p in removed] == ["1"]
    assert (tmp_path / "assets").is_dir()
    assert (tmp_path / "\u00b2").is_dir()
    assert (tmp_path / "latest").is_symlink()


def test_prune_nothing_to_do(tmp_path: Path) -> None:
    _mk(tmp_path, "1")
    assert prune_deployments(tmp_path, keep=5) == []
    assert prune_deployments(tmp_path / "missing", keep=1) == []


def test_prune_rejects_negative_keep(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        prune_deployments(tmp_path, keep=-1)
