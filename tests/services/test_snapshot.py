"""Tests for SnapshotService — bundle contents and the in-flight guard."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from quire.config.settings import QuireSettings
from quire.domain.entities import Container, Note, Template
from quire.infrastructure.workspace import Workspace
from quire.services import snapshot as snapshot_module
from quire.services.editor import NoteEditor
from quire.services.snapshot import SnapshotBundle, SnapshotService


class RecordingUploader:
    def __init__(self) -> None:
        self.uploads: list[tuple[str, bytes]] = []

    def upload(self, name: str, payload: bytes) -> None:
        self.uploads.append((name, payload))


class FailingUploader:
    def upload(self, name: str, payload: bytes) -> None:
        raise ConnectionError("remote unavailable")


@pytest.fixture
def uploader() -> RecordingUploader:
    return RecordingUploader()


@pytest.fixture
def library(workspace: Workspace) -> Workspace:
    """A workspace holding one note per tier plus a container and template."""
    ctx = workspace.context
    group = ctx.add(Container(name="Work"))
    ctx.add(Template(name="Daily", content="## Today", category="journal"))
    ctx.add(Note(title="Inline", content="embedded body", container_id=group.id))
    ctx.add(Note(title="Binned", content="trashed body", is_trashed=True))
    ctx.save()
    NoteEditor(workspace).create_note("Filed", "file body", container_id=group.id)
    return workspace


class TestBuildBundle:
    def test_contents(self, library: Workspace, uploader: RecordingUploader) -> None:
        bundle = SnapshotService(library, uploader).build_bundle()

        assert bundle.version == "1.0"
        assert [c.name for c in bundle.containers] == ["Work"]
        assert [t.name for t in bundle.templates] == ["Daily"]
        bodies = {n.title: n.content for n in bundle.notes}
        assert bodies == {
            "Inline": "embedded body",
            "Binned": "trashed body",
            "Filed": "file body",
        }

    def test_excludes_trashed_when_configured(self, tmp_path: Path, uploader: RecordingUploader) -> None:
        ws = Workspace(QuireSettings.load(root=tmp_path, snapshot={"include_trashed": False}))
        try:
            ws.context.add(Note(title="Kept", content="a"))
            ws.context.add(Note(title="Binned", content="b", is_trashed=True))
            ws.context.save()
            bundle = SnapshotService(ws, uploader).build_bundle()
            assert [n.title for n in bundle.notes] == ["Kept"]
        finally:
            ws.close()


class TestBackup:
    def test_uploads_json_bundle(self, library: Workspace, uploader: RecordingUploader) -> None:
        result = SnapshotService(library, uploader).backup()

        assert result.ok
        assert result.data["notes"] == 3
        [(name, payload)] = uploader.uploads
        assert name.startswith("quire-snapshot-")
        assert name.endswith(".json")
        assert result.data["size"] == len(payload)
        bundle = SnapshotBundle.model_validate(json.loads(payload))
        assert len(bundle.notes) == 3

    def test_skipped_while_in_flight(self, workspace: Workspace, uploader: RecordingUploader) -> None:
        service = SnapshotService(workspace, uploader)
        assert snapshot_module._IN_FLIGHT.acquire(blocking=False)
        try:
            assert SnapshotService.is_backing_up()
            result = service.backup()
        finally:
            snapshot_module._IN_FLIGHT.release()

        assert result.error is not None
        assert result.error.code == "BACKUP_IN_PROGRESS"
        assert uploader.uploads == []
        assert not SnapshotService.is_backing_up()

    def test_upload_failure_releases_guard(self, workspace: Workspace) -> None:
        result = SnapshotService(workspace, FailingUploader()).backup()

        assert result.error is not None
        assert result.error.code == "BACKUP_FAILED"
        assert not SnapshotService.is_backing_up()

    def test_background_backup(self, library: Workspace, uploader: RecordingUploader) -> None:
        thread = SnapshotService(library, uploader).backup_in_background()
        thread.join(timeout=10)

        assert not thread.is_alive()
        assert len(uploader.uploads) == 1
        bundle = SnapshotBundle.model_validate_json(uploader.uploads[0][1])
        assert {n.title for n in bundle.notes} == {"Inline", "Binned", "Filed"}
