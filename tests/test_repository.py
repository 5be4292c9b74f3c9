import shutil
from pathlib import Path

import pytest

from gitcoach.repository import RepositoryInspector

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")


def _repo(tmp_path: Path) -> tuple[RepositoryInspector, Path]:
    inspector = RepositoryInspector()
    path = tmp_path / "repo"
    inspector.initialize_repository(path)
    inspector.run_git(path, ["config", "user.name", "Test"])
    inspector.run_git(path, ["config", "user.email", "test@example.com"])
    return inspector, path


def _commit(inspector: RepositoryInspector, path: Path, name: str, content: str, message: str) -> None:
    (path / name).write_text(content, encoding="utf-8")
    inspector.run_git(path, ["add", name])
    inspector.run_git(path, ["commit", "-q", "-m", message])


def _conflicted_repo(tmp_path: Path) -> tuple[RepositoryInspector, Path]:
    inspector, path = _repo(tmp_path)
    _commit(inspector, path, "notes.txt", "base\n", "base")
    inspector.run_git(path, ["checkout", "-q", "-b", "feature"])
    _commit(inspector, path, "notes.txt", "feature\n", "feature change")
    inspector.run_git(path, ["checkout", "-q", "main"])
    _commit(inspector, path, "notes.txt", "main\n", "main change")
    inspector.run_git(path, ["merge", "feature"])
    return inspector, path


def test_non_repository_paths_are_not_repositories(tmp_path: Path) -> None:
    inspector = RepositoryInspector()
    assert inspector.is_repository(tmp_path / "missing") is False
    plain = tmp_path / "plain"
    plain.mkdir()
    assert inspector.is_repository(plain) is False


def test_queries_on_missing_path_degrade_to_defaults(tmp_path: Path) -> None:
    inspector = RepositoryInspector()
    missing = tmp_path / "missing"
    assert inspector.has_conflicts(missing) is False
    assert inspector.is_merge_in_progress(missing) is False
    assert inspector.current_branch(missing) is None
    assert inspector.list_branches(missing) == []
    assert inspector.conflicted_files(missing) == []
    assert inspector.is_working_tree_clean(missing) is False
    assert inspector.is_branch_merged(missing, "feature") is False


def test_missing_git_executable_is_reported_not_raised(tmp_path: Path) -> None:
    inspector = RepositoryInspector(git_executable="gitcoach-no-such-git")
    assert inspector.list_branches(tmp_path) == []
    output = inspector.run_git(tmp_path, ["status"])
    assert output.startswith("Error executing git command")
    with pytest.raises(OSError):
        inspector.initialize_repository(tmp_path / "repo")


@requires_git
def test_initialize_repository_on_default_branch(tmp_path: Path) -> None:
    inspector, path = _repo(tmp_path)
    assert inspector.is_repository(path) is True
    assert inspector.is_repository(path / "..") is False
    assert inspector.current_branch(path) == "main"
    assert inspector.is_working_tree_clean(path) is True

    _commit(inspector, path, "a.txt", "a\n", "first")
    assert inspector.list_branches(path) == ["main"]


@requires_git
def test_working_tree_clean_tracks_untracked_and_modified_files(tmp_path: Path) -> None:
    inspector, path = _repo(tmp_path)
    _commit(inspector, path, "a.txt", "a\n", "first")
    (path / "new.txt").write_text("new\n", encoding="utf-8")
    assert inspector.is_working_tree_clean(path) is False
    (path / "new.txt").unlink()
    (path / "a.txt").write_text("changed\n", encoding="utf-8")
    assert inspector.is_working_tree_clean(path) is False


@requires_git
def test_conflicts_and_merge_state(tmp_path: Path) -> None:
    inspector, path = _conflicted_repo(tmp_path)
    assert inspector.has_conflicts(path) is True
    assert inspector.is_merge_in_progress(path) is True
    assert inspector.conflicted_files(path) == ["notes.txt"]

    (path / "notes.txt").write_text("resolved\n", encoding="utf-8")
    inspector.run_git(path, ["add", "notes.txt"])
    assert inspector.has_conflicts(path) is False
    assert inspector.is_merge_in_progress(path) is True

    inspector.run_git(path, ["commit", "-q", "--no-edit"])
    assert inspector.is_merge_in_progress(path) is False
    assert inspector.is_branch_merged(path, "feature", "main") is True


@requires_git
def test_branch_merged_requires_reachability(tmp_path: Path) -> None:
    inspector, path = _repo(tmp_path)
    _commit(inspector, path, "a.txt", "a\n", "first")
    inspector.run_git(path, ["branch", "feature"])
    # A branch with no commits of its own is already contained in main.
    assert inspector.is_branch_merged(path, "feature") is True

    inspector.run_git(path, ["checkout", "-q", "feature"])
    _commit(inspector, path, "b.txt", "b\n", "feature work")
    assert inspector.is_branch_merged(path, "feature", "main") is False
    assert inspector.is_branch_merged(path, "absent", "main") is False

    inspector.run_git(path, ["checkout", "-q", "main"])
    inspector.run_git(path, ["merge", "-q", "--no-ff", "--no-edit", "feature"])
    assert inspector.is_branch_merged(path, "feature", "main") is True


@requires_git
def test_run_command_returns_stdout_and_stderr(tmp_path: Path) -> None:
    inspector, path = _repo(tmp_path)
    assert inspector.run_command(path, "echo hello").strip() == "hello"
    output = inspector.run_command(path, "git checkout does-not-exist")
    assert "error" in output.lower()
