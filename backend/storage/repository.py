"""
Git repository handle for the wiki working copy.

Wraps a single local working copy bound to one remote origin and exposes
only the narrow set of git operations the content store needs. Expected
outcomes (nothing to commit, merge conflicts, unreachable remote) are
reported as Result values instead of exceptions.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Dict, Optional, Any

from git import Repo, GitCommandError
from git.exc import InvalidGitRepositoryError, NoSuchPathError

from .exceptions import RepositoryException

logger = logging.getLogger(__name__)

ORIGIN = "origin"


class Outcome(Enum):
    """Outcome of a repository operation."""
    OK = "ok"
    CONTENT_NOT_MODIFIED = "content_not_modified"  # commit with no diff
    MERGE_CONFLICT = "merge_conflict"              # pull left conflicts
    CONNECTION_FAILED = "connection_failed"        # remote unreachable


@dataclass
class Result:
    """Result of a repository operation."""
    outcome: Outcome
    message: str = ""
    conflicts: List[str] = field(default_factory=list)  # working-copy-relative paths

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.OK


class Repository:
    """
    Handle on the wiki's git working copy.

    Construct it with open_or_create() once at startup and pass it to the
    content store. The handle itself does no locking; callers serialize
    mutations and pulls.
    """

    def __init__(self, repo: Repo, branch: str = "master", fetch_timeout: float = 30):
        self.repo = repo
        self.path = Path(repo.working_tree_dir)
        self.branch = branch
        self.fetch_timeout = fetch_timeout

    @classmethod
    def open_or_create(cls, data_dir: str, origin_uri: str, user_name: str, user_email: str,
                       branch: str = "master", fetch_timeout: float = 30) -> "Repository":
        """
        Open the working copy at data_dir, creating it if it doesn't exist.

        Safe to call repeatedly: an existing working copy is simply
        reopened and its identity and origin re-applied.

        Args:
            data_dir: Working copy directory
            origin_uri: URI of the master repository
            user_name: Committer name
            user_email: Committer email
            branch: Branch synchronized with origin
            fetch_timeout: Seconds before a fetch or push is killed

        Returns:
            Repository handle
        """
        try:
            repository = cls(Repo(data_dir), branch, fetch_timeout)
        except (InvalidGitRepositoryError, NoSuchPathError):
            logger.info(f"No working copy at {data_dir}, creating one")
            return cls.create(data_dir, origin_uri, user_name, user_email, branch, fetch_timeout)

        repository._setup(origin_uri, user_name, user_email)
        return repository

    @classmethod
    def create(cls, data_dir: str, origin_uri: str, user_name: str, user_email: str,
               branch: str = "master", fetch_timeout: float = 30) -> "Repository":
        """Initialize a new working copy and pull down the initial content."""
        path = Path(data_dir)
        path.mkdir(parents=True, exist_ok=True)

        try:
            repository = cls(Repo.init(path), branch, fetch_timeout)
            # Unborn HEAD points at the synced branch regardless of init.defaultBranch
            repository.repo.git.symbolic_ref('HEAD', f'refs/heads/{branch}')
        except GitCommandError as e:
            raise RepositoryException(f"Failed to initialize git repository at {data_dir}: {e}")

        repository._setup(origin_uri, user_name, user_email)

        result = repository.pull()
        if not result.ok:
            logger.warning(f"Initial pull from {origin_uri} failed: {result.message}")

        return repository

    def _setup(self, origin_uri: str, user_name: str, user_email: str):
        """Apply committer identity and register the origin remote."""
        self.configure('user.name', user_name)
        self.configure('user.email', user_email)

        try:
            if ORIGIN not in [remote.name for remote in self.repo.remotes]:
                self.repo.create_remote(ORIGIN, origin_uri)
            elif self.repo.remote(ORIGIN).url != origin_uri:
                self.repo.git.remote('set-url', ORIGIN, origin_uri)
        except GitCommandError as e:
            raise RepositoryException(f"Failed to configure remote '{ORIGIN}': {e}")

    def configure(self, key: str, value: str):
        """Set a repository-level git config value, e.g. user.name."""
        try:
            self.repo.git.config(key, value)
        except GitCommandError as e:
            raise RepositoryException(f"Failed to set {key}: {e}")

    # Synchronization

    def pull(self) -> Result:
        """
        Fetch origin and merge its branch into the local branch.

        A remote without any history is treated as success. Conflicting
        files are committed with their conflict markers so the working
        copy stays usable; the markers are resolved by later edits.

        Returns:
            Result with OK, CONNECTION_FAILED or MERGE_CONFLICT
        """
        remote_ref = f"{ORIGIN}/{self.branch}"

        try:
            self.repo.git.fetch(ORIGIN, kill_after_timeout=self.fetch_timeout)
        except GitCommandError as e:
            return Result(Outcome.CONNECTION_FAILED, f"Fetch from {ORIGIN} failed: {e}")

        if not self._has_ref(f"refs/remotes/{remote_ref}"):
            logger.debug(f"{remote_ref} has no history yet, nothing to merge")
            return Result(Outcome.OK, "Remote is empty")

        try:
            self.repo.git.merge('--no-edit', remote_ref)
        except GitCommandError as e:
            conflicted = self.unmerged_paths()
            if not conflicted:
                return Result(Outcome.MERGE_CONFLICT, f"Merge of {remote_ref} failed: {e}")

            self._commit_conflicts(remote_ref, conflicted)
            return Result(
                Outcome.MERGE_CONFLICT,
                f"Merge of {remote_ref} left conflicts in {len(conflicted)} file(s)",
                conflicted
            )

        return Result(Outcome.OK)

    def _commit_conflicts(self, remote_ref: str, paths: List[str]):
        try:
            self.repo.git.add('-A', '--', *paths)
            self.repo.git.commit('--no-edit', '-m', f"merging {remote_ref} with conflicts")
        except GitCommandError as e:
            raise RepositoryException(f"Failed to record conflicted merge: {e}")

    def push(self) -> Result:
        """Push the local branch to origin."""
        if not self.repo.head.is_valid():
            return Result(Outcome.OK, "Nothing to push")

        try:
            self.repo.git.push(ORIGIN, f"{self.branch}:{self.branch}",
                               kill_after_timeout=self.fetch_timeout)
        except GitCommandError as e:
            return Result(Outcome.CONNECTION_FAILED, f"Push to {ORIGIN} failed: {e}")

        return Result(Outcome.OK)

    # Mutations

    def stage(self, path: str):
        """Stage a working-copy-relative path for the next commit."""
        try:
            self.repo.git.add('--', path)
        except GitCommandError as e:
            raise RepositoryException(f"Failed to stage {path}: {e}")

    def has_staged_changes(self) -> bool:
        return bool(self.repo.git.diff('--cached', '--name-only'))

    def commit(self, message: str) -> Result:
        """
        Commit everything currently staged.

        Returns:
            Result with OK, or CONTENT_NOT_MODIFIED when nothing is staged
            (no empty commit is created)

        Raises:
            RepositoryException: If git refuses the commit
        """
        if not self.has_staged_changes():
            return Result(Outcome.CONTENT_NOT_MODIFIED, "Nothing to commit")

        try:
            self.repo.git.commit('-m', message)
        except GitCommandError as e:
            raise RepositoryException(f"Git commit failed: {e}")

        return Result(Outcome.OK)

    def move(self, old_path: str, new_path: str, message: str) -> Result:
        """Rename a tracked file as a single commit."""
        try:
            (self.path / new_path).parent.mkdir(parents=True, exist_ok=True)
            self.repo.git.mv('--', old_path, new_path)
        except GitCommandError as e:
            raise RepositoryException(f"Move failed: {e}")

        return self.commit(message)

    def remove(self, path: str, message: str) -> Result:
        """Delete a tracked file as a single commit."""
        if not self.is_tracked(path):
            # Never committed, so there is no history to record the removal in
            (self.path / path).unlink()
            return Result(Outcome.CONTENT_NOT_MODIFIED, f"{path} was not tracked")

        try:
            self.repo.git.rm('-q', '--', path)
        except GitCommandError as e:
            raise RepositoryException(f"Remove failed: {e}")

        return self.commit(message)

    def discard(self, path: str):
        """
        Restore the index and working file of path to HEAD.

        Paths HEAD doesn't know about are unstaged and deleted. Used to roll
        back a mutation that failed half way.
        """
        try:
            if self._in_head(path):
                self.repo.git.checkout('HEAD', '--', path)
            else:
                self.repo.git.rm('--cached', '-q', '--ignore-unmatch', '--', path)
                target = self.path / path
                if target.exists():
                    target.unlink()
        except (GitCommandError, OSError) as e:
            logger.error(f"Failed to roll back {path}: {e}")

    # Queries

    def head_sha(self) -> Optional[str]:
        if not self.repo.head.is_valid():
            return None
        return self.repo.head.commit.hexsha

    def is_tracked(self, path: str) -> bool:
        return bool(self.repo.git.ls_files('--', path))

    def tracked_files(self, directory: str) -> List[str]:
        """Working-copy-relative paths of all tracked files under directory."""
        output = self.repo.git.ls_files('-z', '--', directory)
        # Unmerged entries are listed once per stage
        return list(dict.fromkeys(p for p in output.split('\0') if p))

    def unmerged_paths(self) -> List[str]:
        output = self.repo.git.diff('--name-only', '-z', '--diff-filter=U')
        return [p for p in output.split('\0') if p]

    def history(self, path: str, limit: int = 50) -> List[Dict[str, Any]]:
        """
        Get commit history for a path, newest first.

        Args:
            path: Working-copy-relative path
            limit: Maximum number of commits to return

        Returns:
            List of commit dictionaries
        """
        if not self.repo.head.is_valid():
            return []

        try:
            commits = list(self.repo.iter_commits(paths=path, max_count=limit))
        except GitCommandError as e:
            raise RepositoryException(f"Failed to get history: {e}")

        return [{
            "sha": commit.hexsha,
            "short_sha": commit.hexsha[:7],
            "message": commit.message.strip(),
            "author": commit.author.name,
            "date": commit.committed_datetime.isoformat(),
            "timestamp": commit.committed_date
        } for commit in commits]

    def _has_ref(self, ref: str) -> bool:
        try:
            self.repo.git.rev_parse('--verify', '--quiet', ref)
        except GitCommandError:
            return False
        return True

    def _in_head(self, path: str) -> bool:
        if not self.repo.head.is_valid():
            return False
        try:
            self.repo.head.commit.tree / path
        except KeyError:
            return False
        return True
