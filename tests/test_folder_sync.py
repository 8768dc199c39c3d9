"""
Unit tests for folder listing, downloads and batched commits.
"""
import asyncio
import base64

import pytest
from unittest.mock import AsyncMock, patch

from config_promoter.core.exceptions import HostError, TransientHostError, ValidationError
from config_promoter.services.environment_registry import Environment
from config_promoter.services.folder_sync import (
    XML_DECLARATION,
    FileArtifact,
    FolderSync,
    ensure_extension,
    ensure_xml_declaration,
)
from config_promoter.services.repository_host import CommitResult, ContentEntry


def make_files(count: int):
    return [FileArtifact.create(f"V1/file-{i}.xml", f"<cfg id='{i}'/>") for i in range(count)]


class TestNormalization:
    """Tests for filename and content normalization."""

    @pytest.mark.unit
    def test_unrecognized_extension_gets_xml(self):
        assert ensure_extension("settings") == "settings.xml"
        assert ensure_extension("settings.cfg") == "settings.cfg.xml"

    @pytest.mark.unit
    def test_recognized_extension_kept(self):
        assert ensure_extension("app.json") == "app.json"
        assert ensure_extension("APP.XML") == "APP.XML"

    @pytest.mark.unit
    def test_declaration_added_once(self):
        fixed = ensure_xml_declaration("<root/>")
        assert fixed == f"{XML_DECLARATION}\n<root/>"
        assert ensure_xml_declaration(fixed) == fixed

    @pytest.mark.unit
    def test_declaration_on_bytes(self):
        assert ensure_xml_declaration(b"<root/>") == f"{XML_DECLARATION}\n<root/>".encode("utf-8")

    @pytest.mark.unit
    def test_non_utf8_bytes_untouched(self):
        raw = b"\xff\xfe<r/>"
        assert ensure_xml_declaration(raw) == raw

    @pytest.mark.unit
    def test_json_artifact_content_untouched(self):
        artifact = FileArtifact.create("app.json", '{"a": 1}')
        assert artifact.content == '{"a": 1}'


class TestListFolders:
    """Tests for FolderSync.list_folders."""

    @pytest.mark.unit
    async def test_returns_directories_only(self, mock_host):
        mock_host.list_contents.return_value = [
            ContentEntry(name="V1", path="V1", type="dir"),
            ContentEntry(name="README.md", path="README.md", type="file"),
            ContentEntry(name="shared", path="shared", type="dir"),
        ]
        sync = FolderSync(mock_host, inter_batch_delay=0)

        folders = await sync.list_folders(Environment(name="Dev", repo_name="acme/dev"))

        assert folders == ["V1", "shared"]
        mock_host.list_contents.assert_awaited_once_with("acme", "dev", "")

    @pytest.mark.unit
    async def test_version_only_sorted_newest_first(self, mock_host):
        mock_host.list_contents.return_value = [
            ContentEntry(name=name, path=name, type="dir") for name in ("V1", "V10", "shared", "V2")
        ]
        sync = FolderSync(mock_host, inter_batch_delay=0)

        folders = await sync.list_folders(Environment(name="Dev", repo_name="acme/dev"), version_only=True)

        assert folders == ["V10", "V2", "V1"]

    @pytest.mark.unit
    async def test_unconfigured_environment_returns_empty(self, mock_host):
        sync = FolderSync(mock_host, inter_batch_delay=0)
        assert await sync.list_folders(Environment(name="QA")) == []
        mock_host.list_contents.assert_not_awaited()

    @pytest.mark.unit
    async def test_host_error_returns_empty(self, mock_host):
        mock_host.list_contents.side_effect = HostError("boom", 500)
        sync = FolderSync(mock_host, inter_batch_delay=0)
        assert await sync.list_folders(Environment(name="Dev", repo_name="acme/dev")) == []


class TestDownloadFile:
    """Tests for FolderSync.download_file."""

    @pytest.mark.unit
    async def test_inline_content_is_decoded(self, mock_host):
        encoded = base64.b64encode("<a>é</a>".encode("utf-8")).decode("ascii")
        entry = ContentEntry(name="a.xml", path="V1/a.xml", type="file", content=encoded)

        data = await FolderSync(mock_host).download_file(entry)

        assert data == "<a>é</a>".encode("utf-8")
        mock_host.download.assert_not_awaited()

    @pytest.mark.unit
    async def test_falls_back_to_download_url(self, mock_host):
        mock_host.download.return_value = b"<a/>"
        entry = ContentEntry(name="a.xml", path="V1/a.xml", type="file", download_url="https://raw/a.xml")

        assert await FolderSync(mock_host).download_file(entry) == b"<a/>"
        mock_host.download.assert_awaited_once_with("https://raw/a.xml")

    @pytest.mark.unit
    async def test_no_source_raises(self, mock_host):
        entry = ContentEntry(name="a.xml", path="V1/a.xml", type="file")
        with pytest.raises(ValidationError):
            await FolderSync(mock_host).download_file(entry)


class TestBatchCommit:
    """Tests for FolderSync.batch_commit."""

    @pytest.mark.unit
    async def test_one_outcome_per_file_in_order(self, mock_host):
        files = make_files(12)
        sync = FolderSync(mock_host, batch_size=5, inter_batch_delay=0)

        outcomes = await sync.batch_commit("acme", "qa", files, "Promote V1")

        assert [o.filename for o in outcomes] == [f.filename for f in files]
        assert all(o.success for o in outcomes)
        assert mock_host.put_file.await_count == 12

    @pytest.mark.unit
    async def test_commit_message_and_branch(self, mock_host):
        sync = FolderSync(mock_host, inter_batch_delay=0)

        await sync.batch_commit("acme", "qa", make_files(1), "Promote V1")

        args = mock_host.put_file.await_args.args
        assert args[0:3] == ("acme", "qa", "V1/file-0.xml")
        assert args[4] == "Promote V1: V1/file-0.xml"
        assert args[5] == "main"

    @pytest.mark.unit
    async def test_seven_files_make_two_batches_with_one_delay(self, mock_host):
        sync = FolderSync(mock_host, batch_size=5, inter_batch_delay=1.0)
        sizes = []
        in_flight = []

        async def put_file(owner, repo, path, content, message, branch=None):
            in_flight.append(path)
            return CommitResult(path=path, commit_sha="c")

        async def record_batch(delay):
            sizes.append(len(in_flight))
            in_flight.clear()

        mock_host.put_file.side_effect = put_file
        with patch("config_promoter.services.folder_sync.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            mock_sleep.side_effect = record_batch
            outcomes = await sync.batch_commit("acme", "qa", make_files(7), "Promote V1")

        sizes.append(len(in_flight))
        assert len(outcomes) == 7
        assert sizes == [5, 2]
        mock_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.unit
    async def test_failed_file_does_not_abort_batch(self, mock_host):
        async def put_file(owner, repo, path, content, message, branch=None):
            if path.endswith("file-2.xml"):
                raise TransientHostError("rate limited", 429)
            return CommitResult(path=path, commit_sha="c")

        mock_host.put_file.side_effect = put_file
        sync = FolderSync(mock_host, batch_size=5, inter_batch_delay=0)

        outcomes = await sync.batch_commit("acme", "qa", make_files(7), "Promote V1")

        assert len(outcomes) == 7
        failed = [o for o in outcomes if not o.success]
        assert [o.filename for o in failed] == ["V1/file-2.xml"]
        assert "rate limited" in failed[0].error

    @pytest.mark.unit
    async def test_cancellation_between_batches(self, mock_host):
        cancel = asyncio.Event()

        async def put_file(owner, repo, path, content, message, branch=None):
            cancel.set()
            return CommitResult(path=path, commit_sha="c")

        mock_host.put_file.side_effect = put_file
        sync = FolderSync(mock_host, batch_size=5, inter_batch_delay=0)

        outcomes = await sync.batch_commit("acme", "qa", make_files(7), "Promote V1", cancel_event=cancel)

        assert len(outcomes) == 7
        assert sum(1 for o in outcomes if o.success) == 5
        assert all(o.error == "Cancelled before commit" for o in outcomes[5:])

    @pytest.mark.unit
    async def test_empty_input(self, mock_host):
        assert await FolderSync(mock_host).batch_commit("acme", "qa", [], "x") == []
