"""
Folder synchronization between environment repositories.

Reads folder contents from a source repository and writes files into a
target repository. The contents API has no batch write, so every file is
its own create-or-update commit and its own unit of retry. Files are sent
in fixed-size batches: writes inside a batch run concurrently, batches run
one after another with a fixed delay to stay under the host rate limiter.

A file whose retries are exhausted is recorded as a failed CommitOutcome;
it never aborts its batch or the files after it.
"""
import asyncio
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Union

from config_promoter.core.config import settings
from config_promoter.core.exceptions import PromotionError, ValidationError
from config_promoter.services.environment_registry import Environment
from config_promoter.services.github_service import decode_content
from config_promoter.services.repository_host import ContentEntry, RepositoryHost
from config_promoter.utils.async_utils import chunked

logger = logging.getLogger(__name__)

RECOGNIZED_EXTENSIONS = (".xml", ".json", ".yaml", ".yml", ".properties", ".txt")
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
VERSION_FOLDER_PATTERN = re.compile(r"^V(\d+)$", re.IGNORECASE)


def ensure_extension(filename: str) -> str:
    if not filename.lower().endswith(RECOGNIZED_EXTENSIONS):
        filename += ".xml"
    return filename


def ensure_xml_declaration(content: Union[str, bytes]) -> Union[str, bytes]:
    """Prepend an XML declaration when the document has none."""
    if isinstance(content, bytes):
        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError:
            return content
        fixed = ensure_xml_declaration(text)
        return content if fixed == text else fixed.encode("utf-8")

    if content.lstrip("\ufeff \t\r\n").startswith("<?xml"):
        return content
    return f"{XML_DECLARATION}\n{content}"


@dataclass
class FileArtifact:
    """A file to be committed. Build through create() to normalize it."""
    filename: str
    content: Union[str, bytes]

    @classmethod
    def create(cls, filename: str, content: Union[str, bytes]) -> "FileArtifact":
        filename = ensure_extension(filename.strip())
        if filename.lower().endswith(".xml"):
            content = ensure_xml_declaration(content)
        return cls(filename=filename, content=content)

    def to_bytes(self) -> bytes:
        if isinstance(self.content, bytes):
            return self.content
        return self.content.encode("utf-8")


@dataclass
class CommitOutcome:
    """Result of committing one file. Exactly one per input file."""
    filename: str
    success: bool
    commit_sha: Optional[str] = None
    error: Optional[str] = None


def version_sort_key(folder: str) -> int:
    match = VERSION_FOLDER_PATTERN.match(folder)
    return int(match.group(1)) if match else 0


class FolderSync:
    def __init__(
        self,
        host: RepositoryHost,
        batch_size: int = None,
        inter_batch_delay: float = None,
    ):
        self.host = host
        self.batch_size = batch_size or settings.COMMIT_BATCH_SIZE
        self.inter_batch_delay = (
            settings.INTER_BATCH_DELAY_SECONDS if inter_batch_delay is None else inter_batch_delay
        )

    async def list_folders(self, env: Environment, version_only: bool = False) -> List[str]:
        """
        List top-level folders of an environment's repository.

        Folder discovery degrades gracefully: a missing repository or any host
        error yields an empty list.

        Args:
            env: Environment whose repository is listed
            version_only: Keep only V<n> folders, newest first
        """
        if not env.repo_identifier:
            return []

        owner, repo = env.repo_identifier
        try:
            entries = await self.host.list_contents(owner, repo, "")
        except PromotionError as e:
            logger.warning(f"Error fetching folders for {env.name}: {e}")
            return []

        folders = [entry.name for entry in entries if entry.is_dir]
        if version_only:
            folders = sorted(
                (f for f in folders if VERSION_FOLDER_PATTERN.match(f)),
                key=version_sort_key,
                reverse=True,
            )
        return folders

    async def list_folder_contents(self, owner: str, repo: str, path: str) -> List[ContentEntry]:
        """Entries directly under path. Callers drop non-file entries."""
        return await self.host.list_contents(owner, repo, path)

    async def download_file(self, entry: ContentEntry) -> bytes:
        """Raw bytes of a file entry, from inline content or its download URL."""
        if entry.content:
            return decode_content(entry.content)
        if not entry.download_url:
            raise ValidationError(f"File {entry.path or entry.name} has no content or download URL")
        return await self.host.download(entry.download_url)

    async def _commit_one(
        self,
        owner: str,
        repo: str,
        artifact: FileArtifact,
        commit_message_prefix: str,
    ) -> CommitOutcome:
        try:
            result = await self.host.put_file(
                owner,
                repo,
                artifact.filename,
                artifact.to_bytes(),
                f"{commit_message_prefix}: {artifact.filename}",
                settings.GITHUB_BRANCH,
            )
        except PromotionError as e:
            logger.error(f"Error committing {artifact.filename} to {owner}/{repo}: {e}")
            return CommitOutcome(filename=artifact.filename, success=False, error=str(e))
        return CommitOutcome(filename=artifact.filename, success=True, commit_sha=result.commit_sha)

    async def batch_commit(
        self,
        owner: str,
        repo: str,
        files: List[FileArtifact],
        commit_message_prefix: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[CommitOutcome]:
        """
        Commit files in batches, tolerating per-file failures.

        Args:
            owner: Target repository owner
            repo: Target repository name
            files: Files to write; filename is the path inside the repository
            commit_message_prefix: Each commit message is "<prefix>: <filename>"
            cancel_event: When set between batches, remaining files are not sent

        Returns:
            One CommitOutcome per input file, in input order
        """
        if not files:
            return []

        batches = chunked(files, self.batch_size)
        outcomes: List[CommitOutcome] = []

        for index, batch in enumerate(batches):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(
                    f"Batch commit to {owner}/{repo} cancelled with {len(files) - len(outcomes)} files pending"
                )
                outcomes.extend(
                    CommitOutcome(filename=f.filename, success=False, error="Cancelled before commit")
                    for f in files[len(outcomes):]
                )
                break

            if index > 0 and self.inter_batch_delay > 0:
                await asyncio.sleep(self.inter_batch_delay)

            logger.debug(f"Committing batch {index + 1}/{len(batches)} ({len(batch)} files) to {owner}/{repo}")
            batch_outcomes = await asyncio.gather(
                *[self._commit_one(owner, repo, artifact, commit_message_prefix) for artifact in batch]
            )
            outcomes.extend(batch_outcomes)

        failed = sum(1 for o in outcomes if not o.success)
        if failed:
            logger.warning(f"{failed} of {len(files)} files failed to commit to {owner}/{repo}")
        else:
            logger.info(f"Committed {len(files)} files to {owner}/{repo}")
        return outcomes
