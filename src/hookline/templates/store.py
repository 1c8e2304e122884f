"""Filesystem-backed instruction templates.

Templates are Markdown files laid out under a base directory:

    <base>/generic/<event_type>.md
    <base>/repos/<owner>/<repo>/<event_type>.md

A repository-specific template shadows the generic template for the same
event type. Updates overwrite in place; there is no version history.
"""

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIX = ".md"
GENERIC_DIR = "generic"
REPOS_DIR = "repos"

_KEY_SEGMENT = re.compile(r"[A-Za-z0-9_.-]+")


class InvalidTemplateKeyError(ValueError):
    """Raised when a template key segment is not a safe path component.

    Attributes:
        segment: The rejected value.
    """

    def __init__(self, segment: str):
        self.segment = segment
        super().__init__(f"Invalid template key segment: {segment!r}")


def is_valid_segment(segment: str) -> bool:
    return bool(_KEY_SEGMENT.fullmatch(segment or "")) and segment not in (".", "..")


def _check_segment(segment: str) -> str:
    if not is_valid_segment(segment):
        raise InvalidTemplateKeyError(segment)
    return segment


class TemplateStore:
    """Reads, writes and resolves templates under a base directory.

    Attributes:
        base_path: Root of the generic/ and repos/ trees.
    """

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)

    def resolve(self, repository: str, event_type: str) -> Optional[str]:
        """Find the template for a repository and event type.

        The repository-specific template wins over the generic one. Names
        without an owner/repo shape (organization logins, the GitHub
        Projects pseudo-repository) only consult generic templates.

        Args:
            repository: Full repository name, e.g. "acme/widgets".
            event_type: GitHub event type, e.g. "issues".

        Returns:
            The template text, or None when no template exists.
        """
        if not is_valid_segment(event_type):
            logger.debug("No template for unsafe event type %r", event_type)
            return None

        owner, _, repo = repository.partition("/")
        if is_valid_segment(owner) and is_valid_segment(repo):
            text = self._read(self._repository_path(owner, repo, event_type))
            if text is not None:
                logger.debug(
                    "Resolved repository template",
                    extra={"repository": repository, "event_type": event_type},
                )
                return text

        text = self._read(self._generic_path(event_type))
        if text is None:
            logger.info(
                "No prompt template found for %s/%s", repository, event_type
            )
        return text

    def get_generic(self, event_type: str) -> Optional[str]:
        return self._read(self._generic_path(_check_segment(event_type)))

    def get_repository(
        self, owner: str, repo: str, event_type: str
    ) -> Optional[str]:
        return self._read(
            self._repository_path(
                _check_segment(owner),
                _check_segment(repo),
                _check_segment(event_type),
            )
        )

    def save_generic(self, event_type: str, content: str) -> None:
        self._write(self._generic_path(_check_segment(event_type)), content)

    def save_repository(
        self, owner: str, repo: str, event_type: str, content: str
    ) -> None:
        path = self._repository_path(
            _check_segment(owner),
            _check_segment(repo),
            _check_segment(event_type),
        )
        self._write(path, content)

    def delete_generic(self, event_type: str) -> bool:
        return self._delete(self._generic_path(_check_segment(event_type)))

    def delete_repository(self, owner: str, repo: str, event_type: str) -> bool:
        return self._delete(
            self._repository_path(
                _check_segment(owner),
                _check_segment(repo),
                _check_segment(event_type),
            )
        )

    def list_templates(self) -> Dict[str, object]:
        """List the event types that have templates.

        Returns:
            {"generic": [event_type, ...],
             "repos": {"owner/repo": [event_type, ...]}}, sorted by name.
        """
        generic = self._event_types_in(self.base_path / GENERIC_DIR)

        repos: Dict[str, List[str]] = {}
        repos_root = self.base_path / REPOS_DIR
        if repos_root.is_dir():
            for owner_dir in sorted(p for p in repos_root.iterdir() if p.is_dir()):
                for repo_dir in sorted(p for p in owner_dir.iterdir() if p.is_dir()):
                    repos[f"{owner_dir.name}/{repo_dir.name}"] = (
                        self._event_types_in(repo_dir)
                    )

        return {"generic": generic, "repos": repos}

    def _generic_path(self, event_type: str) -> Path:
        return self.base_path / GENERIC_DIR / f"{event_type}{TEMPLATE_SUFFIX}"

    def _repository_path(self, owner: str, repo: str, event_type: str) -> Path:
        return (
            self.base_path / REPOS_DIR / owner / repo
            / f"{event_type}{TEMPLATE_SUFFIX}"
        )

    def _event_types_in(self, directory: Path) -> List[str]:
        if not directory.is_dir():
            return []
        return sorted(
            p.stem for p in directory.iterdir()
            if p.is_file() and p.suffix == TEMPLATE_SUFFIX
        )

    def _read(self, path: Path) -> Optional[str]:
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, path: Path, content: str) -> None:
        """Replace a template file atomically."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info("Saved template", extra={"path": str(path)})

    def _delete(self, path: Path) -> bool:
        if not path.is_file():
            return False
        path.unlink()
        logger.info("Deleted template", extra={"path": str(path)})
        return True
