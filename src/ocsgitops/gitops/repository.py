# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/gitops/repository.py
from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional
from urllib.parse import quote, urlsplit, urlunsplit

from ocsgitops.config.models import RepoSettings
from ocsgitops.errors import PublishConflict, StateRepositoryError
from ocsgitops.render.renderer import RenderedDocument

log = logging.getLogger("ocsgitops")

# Markers git prints when the remote has diverged.
_CONFLICT_MARKERS = ("non-fast-forward", "[rejected]", "fetch first")


class StateRepository:
    """
    The git working copy that holds rendered desired state.

    - Wraps the `git` CLI; testable against a local bare remote.
    - Writes and commits only when content changed (no empty history entries).
    - Never force-pushes: a diverged remote surfaces as PublishConflict.
    """

    def __init__(self, settings: RepoSettings, *, git: str = "git", timeout: int = 300):
        self.settings = settings
        self.root = Path(settings.local_dir)
        self.git = git
        self.timeout = timeout

    # ------------------------- internal helpers -------------------------

    @property
    def _token(self) -> str:
        return self.settings.token.get_secret_value() if self.settings.token else ""

    def _redact(self, text: str) -> str:
        token = self._token
        return text.replace(token, "***") if token else text

    def _env(self) -> dict:
        env = dict(os.environ)
        env.update(
            {
                "GIT_TERMINAL_PROMPT": "0",
                "GIT_AUTHOR_NAME": self.settings.author_name,
                "GIT_AUTHOR_EMAIL": self.settings.author_email,
                "GIT_COMMITTER_NAME": self.settings.author_name,
                "GIT_COMMITTER_EMAIL": self.settings.author_email,
            }
        )
        return env

    def _remote_url(self) -> str:
        """Remote URL with credentials injected for https remotes."""
        url = self.settings.url
        parts = urlsplit(url)
        if parts.scheme != "https" or not self._token:
            return url
        host = parts.hostname or ""
        if parts.port:
            host = f"{host}:{parts.port}"
        netloc = f"{quote(self.settings.username, safe='')}:{quote(self._token, safe='')}@{host}"
        return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))

    def _run(
        self,
        args: List[str],
        *,
        allow_rc: set[int] | None = None,
        cwd: Optional[Path] = None,
    ) -> subprocess.CompletedProcess:
        allow_rc = allow_rc or {0}
        argv = [self.git] + args
        shown = self._redact(" ".join(argv))
        log.debug("[git] $ %s", shown)

        try:
            cp = subprocess.run(
                argv,
                check=False,
                text=True,
                capture_output=True,
                cwd=str(cwd or self.root),
                env=self._env(),
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise StateRepositoryError(f"`{shown}` timed out after {self.timeout}s", step="git") from e

        if cp.returncode not in allow_rc:
            stderr = self._redact((cp.stderr or "").strip())
            raise StateRepositoryError(f"`{shown}` failed (rc={cp.returncode}): {stderr}", step="git")
        return cp

    def _is_tracked(self, rel: str) -> bool:
        cp = self._run(["ls-files", "--", rel])
        return bool(cp.stdout.strip())

    def _stage(self, rels: Iterable[str]) -> None:
        specs = [r for r in sorted(set(rels)) if (self.root / r).exists() or self._is_tracked(r)]
        if specs:
            self._run(["add", "-A", "--"] + specs)

    def _has_staged_changes(self) -> bool:
        cp = self._run(["diff", "--cached", "--quiet"], allow_rc={0, 1})
        return cp.returncode == 1

    def _remote_has_branch(self) -> bool:
        cp = self._run(
            ["rev-parse", "--verify", "--quiet", f"refs/remotes/origin/{self.settings.branch}"],
            allow_rc={0, 1},
        )
        return cp.returncode == 0

    # ------------------------- public API -------------------------

    def head(self) -> Optional[str]:
        if not (self.root / ".git").exists():
            return None
        cp = self._run(["rev-parse", "--verify", "--quiet", "HEAD"], allow_rc={0, 1, 128})
        return cp.stdout.strip() or None

    def ensure_initialized(self) -> None:
        """
        Make sure a working copy exists on the configured branch.

        - missing directory  -> clone
        - directory, no .git -> init + remote add origin
        """
        branch = self.settings.branch

        if not self.root.exists():
            log.info("[git] Cloning %s into %s", self.settings.url, self.root)
            self.root.parent.mkdir(parents=True, exist_ok=True)
            self._run(["clone", self._remote_url(), str(self.root)], cwd=self.root.parent)
            # keep credentials out of .git/config
            self._run(["remote", "set-url", "origin", self.settings.url])
            if self._remote_has_branch():
                self._run(["checkout", "-B", branch, f"origin/{branch}"])
            else:
                self._run(["symbolic-ref", "HEAD", f"refs/heads/{branch}"])
            return

        if not (self.root / ".git").exists():
            log.info("[git] Initializing new repository in %s", self.root)
            self._run(["init"])
            self._run(["remote", "add", "origin", self.settings.url])
            self._run(["symbolic-ref", "HEAD", f"refs/heads/{branch}"])
            return

        log.debug("[git] Working copy present at %s", self.root)

    def ensure_committed(
        self,
        documents: Iterable[RenderedDocument],
        message: str,
        *,
        prune_dirs: Iterable[str] = (),
    ) -> Optional[str]:
        """
        Write documents, drop stale YAML in *prune_dirs*, commit if anything changed.

        Returns the new commit sha, or None when the tree already matched.
        """
        written: set[str] = set()
        top_level: set[str] = set()

        for doc in documents:
            target = self.root / doc.path
            target.parent.mkdir(parents=True, exist_ok=True)
            content = doc.content
            if not target.exists() or target.read_text(encoding="utf-8") != content:
                target.write_text(content, encoding="utf-8")
                log.debug("[git] wrote %s", doc.path)
            written.add(Path(doc.path).as_posix())
            top_level.add(Path(doc.path).parts[0])

        prune_dirs = list(prune_dirs)
        for d in prune_dirs:
            folder = self.root / d
            if not folder.is_dir():
                continue
            for f in sorted(folder.glob("*.yaml")):
                rel = f.relative_to(self.root).as_posix()
                if rel not in written:
                    log.info("[git] removing stale manifest %s", rel)
                    f.unlink()

        self._stage(top_level | set(prune_dirs))

        if not self._has_staged_changes():
            log.info("[git] No changes to commit")
            return None

        self._run(["commit", "-m", message])
        sha = self.head()
        log.info("[git] Committed %s", sha)
        return sha

    def ensure_removed(self, paths: Iterable[str], message: str) -> Optional[str]:
        paths = list(paths)
        for rel in paths:
            target = self.root / rel
            if target.is_dir():
                shutil.rmtree(target)
            elif target.exists():
                target.unlink()

        self._stage(paths)
        if not self._has_staged_changes():
            log.info("[git] No changes to commit")
            return None

        self._run(["commit", "-m", message])
        return self.head()

    def publish(self) -> None:
        """Push HEAD to the configured branch. Never forces."""
        branch = self.settings.branch
        cp = self._run(
            ["push", self._remote_url(), f"HEAD:refs/heads/{branch}"],
            allow_rc={0, 1, 128},
        )
        if cp.returncode == 0:
            log.info("[git] Pushed to %s (%s)", self.settings.url, branch)
            return

        stderr = self._redact((cp.stderr or "").strip())
        if any(marker in stderr for marker in _CONFLICT_MARKERS):
            raise PublishConflict(
                f"push to {self.settings.url} ({branch}) rejected, remote has diverged: {stderr}",
                step="publish",
            )
        raise StateRepositoryError(
            f"push to {self.settings.url} ({branch}) failed (rc={cp.returncode}): {stderr}",
            step="publish",
        )

    def refresh(self) -> None:
        """Rebase local commits onto the remote branch before re-publishing."""
        branch = self.settings.branch
        try:
            self._run(["pull", "--rebase", self._remote_url(), branch])
        except StateRepositoryError:
            self._run(["rebase", "--abort"], allow_rc={0, 1, 128})
            raise
