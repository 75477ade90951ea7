"""
End-to-end sync from a fake data folder into a destination tree.
"""

import json

from builders import write_metadata
from remarkable_excalidraw.config import SyncSettings
from remarkable_excalidraw.sync import SYNC_META_NAME, sync_backup


def settings_for(tmp_path, **kwargs):
    return SyncSettings(sync_folder=tmp_path / "out", **kwargs)


def test_first_sync(tmp_path, backup_dir):
    result = sync_backup(settings_for(tmp_path), source_dir=backup_dir)

    assert result.imported == 2
    assert result.updated == 0
    assert result.skipped == 0

    notes = tmp_path / "out" / "Work" / "Notes"
    assert sorted(p.name for p in notes.iterdir()) == [SYNC_META_NAME, "Page 01.excalidraw"]
    page = json.loads((notes / "Page 01.excalidraw").read_text(encoding="utf-8"))
    assert page["type"] == "excalidraw"
    assert len(page["elements"]) == 1

    meta = json.loads((notes / SYNC_META_NAME).read_text())
    assert meta == {"lastModified": 1000, "uuid": "doc-1"}

    assert (tmp_path / "out" / "Paper - Annotations" / "Page 01.excalidraw").exists()
    assert not (tmp_path / "out" / "Old").exists()


def test_page_failure_reported_without_aborting(tmp_path, backup_dir):
    result = sync_backup(settings_for(tmp_path), source_dir=backup_dir)
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Notes page 2: Invalid file format")


def test_unchanged_documents_skipped(tmp_path, backup_dir):
    settings = settings_for(tmp_path)
    sync_backup(settings, source_dir=backup_dir)

    result = sync_backup(settings, source_dir=backup_dir)

    assert (result.imported, result.updated, result.skipped) == (0, 0, 2)


def test_modified_document_updated(tmp_path, backup_dir):
    settings = settings_for(tmp_path)
    sync_backup(settings, source_dir=backup_dir)
    write_metadata(backup_dir, "doc-2", "Paper", last_modified=5000)

    result = sync_backup(settings, source_dir=backup_dir)

    assert (result.imported, result.updated, result.skipped) == (0, 1, 1)
    meta = json.loads((tmp_path / "out" / "Paper - Annotations" / SYNC_META_NAME).read_text())
    assert meta["lastModified"] == 5000


def test_force_reimports(tmp_path, backup_dir):
    settings = settings_for(tmp_path)
    sync_backup(settings, source_dir=backup_dir)
    result = sync_backup(settings, force=True, source_dir=backup_dir)
    assert result.updated == 2


def test_corrupt_sidecar_treated_as_new(tmp_path, backup_dir):
    settings = settings_for(tmp_path)
    sync_backup(settings, source_dir=backup_dir)
    (tmp_path / "out" / "Work" / "Notes" / SYNC_META_NAME).write_text("{oops")

    result = sync_backup(settings, source_dir=backup_dir)

    assert result.imported == 1
    assert result.skipped == 1


def test_filters(tmp_path, backup_dir):
    notebooks_only = sync_backup(
        settings_for(tmp_path, sync_pdf_annotations=False), source_dir=backup_dir
    )
    assert notebooks_only.imported == 1
    assert not (tmp_path / "out" / "Paper - Annotations").exists()

    pdfs_only = sync_backup(
        settings_for(tmp_path / "b", sync_notebooks=False), source_dir=backup_dir
    )
    assert pdfs_only.imported == 1
    assert not (tmp_path / "b" / "out" / "Work").exists()


def test_conversion_options_applied(tmp_path, backup_dir):
    sync_backup(settings_for(tmp_path, preserve_layers=False), source_dir=backup_dir)
    page = json.loads((tmp_path / "out" / "Work" / "Notes" / "Page 01.excalidraw").read_text())
    assert page["elements"][0]["groupIds"] == []


def test_missing_source(tmp_path):
    result = sync_backup(settings_for(tmp_path), source_dir=tmp_path / "missing")
    assert result.errors == ["reMarkable data folder not found. Please set it in settings."]
