"""
Shared pytest fixtures: deterministic generators and a fake reMarkable
data folder.
"""

import itertools
import json

import pytest

from builders import simple_page, v5_file, write_metadata

FIXED_TIME_MS = 1_700_000_000_000


@pytest.fixture
def id_factory():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def seed_factory():
    counter = itertools.count(1000)
    return lambda: next(counter)


@pytest.fixture
def clock():
    return lambda: FIXED_TIME_MS


@pytest.fixture
def backup_dir(tmp_path):
    """
    A data folder with:
      Work/            (folder)
      Work/Notes       (notebook, 3 pages: ok, corrupt, empty)
      Paper            (PDF document, 1 page)
      Old              (trashed notebook)
    """
    root = tmp_path / "xochitl"
    root.mkdir()

    write_metadata(root, "folder-1", "Work", doc_type="CollectionType")

    write_metadata(root, "doc-1", "Notes", parent="folder-1")
    (root / "doc-1.content").write_text(json.dumps({
        "cPages": {"pages": [{"id": "p1"}, {"id": "p2"}, {"id": "p3"}]}
    }))
    (root / "doc-1").mkdir()
    (root / "doc-1" / "p1.rm").write_bytes(simple_page())
    (root / "doc-1" / "p2.rm").write_bytes(b"not a remarkable file at all, really")
    (root / "doc-1" / "p3.rm").write_bytes(v5_file([[]]))

    write_metadata(root, "doc-2", "Paper")
    (root / "doc-2.pdf").write_bytes(b"%PDF-1.4\n")
    (root / "doc-2").mkdir()
    (root / "doc-2" / "a.rm").write_bytes(simple_page())

    write_metadata(root, "doc-3", "Old", parent="trash")
    (root / "doc-3").mkdir()
    (root / "doc-3" / "x.rm").write_bytes(simple_page())

    return root
