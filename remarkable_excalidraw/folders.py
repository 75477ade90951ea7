"""
Folder structure and metadata handling for reMarkable data directories.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class DocumentInfo:
    """Document or folder info from metadata."""
    uuid: str
    name: str
    parent: str
    doc_type: str
    last_modified: int = 0  # milliseconds since epoch

    @property
    def is_folder(self) -> bool:
        return self.doc_type == "CollectionType"

    @property
    def is_trashed(self) -> bool:
        return self.parent == "trash"


@dataclass
class PageInfo:
    """One page file of a document."""
    page_id: str
    rm_path: Path


def sanitize_name(name: str) -> str:
    """Make a visible name safe to use as a file or folder name."""
    name = re.sub(r'[\\/:*?"<>|]', '-', name)
    name = re.sub(r'\s+', ' ', name)
    return name.strip()


class MetadataCache:
    """
    Loads all metadata once and provides folder path resolution.
    """

    def __init__(self, backup_dir: Path):
        self.backup_dir = Path(backup_dir)
        self._items: dict[str, DocumentInfo] = {}
        self._loaded = False

    def load(self) -> None:
        """Load all .metadata files into the cache."""
        if self._loaded:
            return

        for metadata_file in sorted(self.backup_dir.glob("*.metadata")):
            uuid = metadata_file.stem
            try:
                with open(metadata_file, encoding="utf-8") as f:
                    data = json.load(f)
                self._items[uuid] = DocumentInfo(
                    uuid=uuid,
                    name=data.get("visibleName") or uuid,
                    parent=data.get("parent") or "",
                    doc_type=data.get("type", "DocumentType"),
                    last_modified=int(data.get("lastModified") or 0),
                )
            except (json.JSONDecodeError, ValueError, OSError) as e:
                logger.warning("Skipping unreadable metadata %s: %s", metadata_file.name, e)
                continue

        self._loaded = True

    def get(self, uuid: str) -> DocumentInfo | None:
        """Get DocumentInfo for a uuid."""
        self.load()
        return self._items.get(uuid)

    def get_folder_path(self, uuid: str) -> str:
        """
        Determine the folder path for a document.

        Returns:
            Folder path (e.g. "Work" or "Work/Meetings") or "" for root.
        """
        self.load()
        doc = self._items.get(uuid)
        if not doc:
            return ""

        # Build path by following parents
        parts = []
        seen = {uuid}
        current_parent = doc.parent

        while current_parent and current_parent != "trash" and current_parent not in seen:
            parent_doc = self._items.get(current_parent)
            if not parent_doc:
                break
            seen.add(current_parent)
            parts.append(sanitize_name(parent_doc.name))
            current_parent = parent_doc.parent

        # Reverse (we walked from child to root)
        parts.reverse()
        return "/".join(parts)

    def documents(self, include_trash: bool = False) -> list[DocumentInfo]:
        """
        Get all documents (no folders).

        Args:
            include_trash: Include items in trash
        """
        self.load()
        result = []
        for doc in self._items.values():
            if doc.is_folder:
                continue
            if not include_trash and doc.is_trashed:
                continue
            result.append(doc)
        return result

    def is_pdf(self, uuid: str) -> bool:
        return (self.backup_dir / f"{uuid}.pdf").exists()

    def pages(self, uuid: str) -> list[PageInfo]:
        """Existing page files of a document, in reading order."""
        return find_pages(self.backup_dir, uuid)


def get_page_order(content_path: Path) -> dict[str, int]:
    """
    Read page order from .content file.
    Returns mapping of page UUID -> page number (0-indexed).
    """
    page_order = {}
    try:
        with open(content_path, encoding="utf-8") as f:
            data = json.load(f)

        # Try new simple format first: pages = ["uuid1", "uuid2", ...]
        if "pages" in data and isinstance(data["pages"], list):
            pages = data["pages"]
            if pages and isinstance(pages[0], str):
                for i, page_id in enumerate(pages):
                    page_order[page_id] = i
                return page_order

        # Fall back to cPages format: cPages.pages[].id
        pages = data.get("cPages", {}).get("pages", [])
        for i, page in enumerate(pages):
            page_id = page.get("id", "")
            if page_id:
                page_order[page_id] = i
    except (json.JSONDecodeError, AttributeError, OSError):
        pass

    return page_order


def find_pages(backup_dir: Path, uuid: str) -> list[PageInfo]:
    """
    List the .rm page files of a document.

    Uses the .content page order. When that lists no existing pages,
    falls back to every .rm file in the document folder, sorted by name.
    """
    doc_dir = Path(backup_dir) / uuid
    if not doc_dir.is_dir():
        return []

    page_order = get_page_order(Path(backup_dir) / f"{uuid}.content")
    ordered = sorted(page_order, key=page_order.get)

    pages = []
    for page_id in ordered:
        rm_path = doc_dir / f"{page_id}.rm"
        if rm_path.exists():
            pages.append(PageInfo(page_id, rm_path))

    if not pages:
        pages = [PageInfo(p.stem, p) for p in sorted(doc_dir.glob("*.rm"))]

    return pages
