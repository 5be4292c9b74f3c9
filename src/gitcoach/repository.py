"""Point-in-time queries against a git working copy via the `git` executable.

Every query is best-effort: a missing directory, a missing `git` binary, or a
non-zero exit degrades to an empty/false/None answer instead of raising.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Sequence
from pathlib import Path

import structlog

from .config import DEFAULT_BRANCH

GIT_EXECUTABLE = "git"
# Inherited values would redirect queries away from the sandbox.
_REPOSITORY_OVERRIDES = frozenset({"GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE", "GIT_COMMON_DIR"})

logger = structlog.get_logger(__name__)


def _git_environment() -> dict[str, str]:
    """Environment for non-interactive git calls."""
    env = {key: value for key, value in os.environ.items() if key not in _REPOSITORY_OVERRIDES}
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["GIT_MERGE_AUTOEDIT"] = "no"
    env.setdefault("GIT_EDITOR", "true")
    return env


def _combine_output(stdout: str, stderr: str) -> str:
    if not stderr:
        return stdout
    return f"{stdout}\n{stderr}"


class RepositoryInspector:
    """Wraps the git engine for the practice sandbox."""

    def __init__(self, git_executable: str = GIT_EXECUTABLE, default_branch: str = DEFAULT_BRANCH) -> None:
        self.git_executable = git_executable
        self.default_branch = default_branch

    def _git(self, path: Path | str, *args: str) -> subprocess.CompletedProcess[str] | None:
        """Run one git command in `path`; None when the process cannot start."""
        try:
            return subprocess.run(
                [self.git_executable, *args],
                cwd=str(path),
                capture_output=True,
                text=True,
                env=_git_environment(),
                check=False,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as exc:
            logger.debug("git_unavailable", path=str(path), args=list(args), error=str(exc))
            return None

    def _git_stdout(self, path: Path | str, *args: str) -> str | None:
        completed = self._git(path, *args)
        if completed is None or completed.returncode != 0:
            return None
        return completed.stdout

    def _ref_exists(self, path: Path | str, branch: str) -> bool:
        completed = self._git(path, "rev-parse", "--verify", "--quiet", f"refs/heads/{branch}")
        return completed is not None and completed.returncode == 0

    def is_repository(self, path: Path | str) -> bool:
        """Return whether `path` is the top level of a git working copy."""
        try:
            target = Path(path).resolve()
            if not target.is_dir():
                return False
            toplevel = self._git_stdout(target, "rev-parse", "--show-toplevel")
            if toplevel is None:
                return False
            return Path(toplevel.strip()).resolve() == target
        except OSError:
            return False

    def initialize_repository(self, path: Path | str) -> None:
        """Create `path` if needed and initialize an empty repository on the default branch."""
        target = Path(path)
        target.mkdir(parents=True, exist_ok=True)
        completed = self._git(target, "init", "--quiet")
        if completed is None:
            raise OSError(f"Could not run '{self.git_executable}' to initialize {target}.")
        if completed.returncode != 0:
            raise OSError(f"git init failed in {target}: {completed.stderr.strip()}")
        # Older git versions ignore init.defaultBranch; pin HEAD explicitly.
        self._git(target, "symbolic-ref", "HEAD", f"refs/heads/{self.default_branch}")

    def has_conflicts(self, path: Path | str) -> bool:
        return bool(self.conflicted_files(path))

    def is_merge_in_progress(self, path: Path | str) -> bool:
        completed = self._git(path, "rev-parse", "--verify", "--quiet", "MERGE_HEAD")
        return completed is not None and completed.returncode == 0

    def current_branch(self, path: Path | str) -> str | None:
        """Return the checked-out branch name, or None when detached or unreadable."""
        output = self._git_stdout(path, "symbolic-ref", "--quiet", "--short", "HEAD")
        if output is None:
            return None
        return output.strip() or None

    def list_branches(self, path: Path | str) -> list[str]:
        output = self._git_stdout(path, "for-each-ref", "--format=%(refname:short)", "refs/heads/")
        if output is None:
            return []
        return [line.strip() for line in output.splitlines() if line.strip()]

    def conflicted_files(self, path: Path | str) -> list[str]:
        """Return unmerged paths in index order, one entry per path."""
        output = self._git_stdout(path, "ls-files", "--unmerged")
        if output is None:
            return []
        files: list[str] = []
        for line in output.splitlines():
            # <mode> <object> <stage>\t<path>
            _, _, file_path = line.partition("\t")
            if file_path and file_path not in files:
                files.append(file_path)
        return files

    def is_working_tree_clean(self, path: Path | str) -> bool:
        """Return True when there are no staged, unstaged, or untracked changes."""
        output = self._git_stdout(path, "status", "--porcelain")
        if output is None:
            return False
        return not output.strip()

    def is_branch_merged(self, path: Path | str, branch: str, target: str | None = None) -> bool:
        """Return True when every commit on `branch` is reachable from `target`."""
        target_branch = target or self.default_branch
        if not self._ref_exists(path, branch) or not self._ref_exists(path, target_branch):
            return False
        unmerged = self._git_stdout(path, "rev-list", f"refs/heads/{branch}", "--not", f"refs/heads/{target_branch}")
        if unmerged is None:
            return False
        return not unmerged.strip()

    def run_git(self, path: Path | str, args: Sequence[str]) -> str:
        """Run git with explicit arguments and return combined output."""
        completed = self._git(path, *args)
        if completed is None:
            return f"Error executing git command: could not start '{self.git_executable}'"
        return _combine_output(completed.stdout, completed.stderr)

    def run_command(self, path: Path | str, command_line: str) -> str:
        """Run one shell command line in `path` and return stdout, plus stderr when present."""
        try:
            completed = subprocess.run(
                command_line,
                shell=True,
                cwd=str(path),
                capture_output=True,
                text=True,
                env=_git_environment(),
                check=False,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as exc:
            return f"Error executing command: {exc}"
        return _combine_output(completed.stdout, completed.stderr)
