"""
Working-copy prompt files.

Each artifact's current text lives in ``<base>/prompts/<name>.md``. Versions
are snapshots of this file; rollback, merge and pull write the new head
content back to it.
"""

from pathlib import Path

from loguru import logger

from .version_control.errors import NotFoundError
from .version_control.storage import artifact_filename, atomic_write

log = logger.bind(component="version_control")


class PromptLibrary:
    """Read and write the working copy of each prompt."""

    def __init__(self, prompts_dir: Path):
        self.prompts_dir = Path(prompts_dir)
        self.prompts_dir.mkdir(parents=True, exist_ok=True)

    def path(self, name: str) -> Path:
        return self.prompts_dir / f"{artifact_filename(name)}.md"

    def read(self, name: str) -> str:
        """
        Read a prompt's current content.

        Raises:
            NotFoundError: If the prompt file does not exist
        """
        path = self.path(name)
        if not path.exists():
            raise NotFoundError(f"Prompt '{name}' not found at {path}")
        return path.read_text(encoding="utf-8")

    def write(self, name: str, content: str) -> Path:
        """Atomically replace a prompt's content."""
        path = self.path(name)
        with atomic_write(path) as f:
            f.write(content)
        log.debug(f"Wrote working copy of '{name}' ({len(content)} chars)")
        return path

    def delete(self, name: str) -> None:
        path = self.path(name)
        if path.exists():
            path.unlink()
