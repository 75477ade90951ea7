"""
Sync a reMarkable data folder to Excalidraw files.

Mirrors the reMarkable folder hierarchy under the configured sync folder,
one sub-folder per document with one .excalidraw file per page. A small
.sync-meta.json sidecar per document records the source modification time
so unchanged documents are skipped on the next run.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .config import DEFAULT_CONFIG_NAME, ConfigError, SyncSettings, load_settings
from .converter import ConversionOptions, ExcalidrawConverter, write_excalidraw
from .folders import DocumentInfo, MetadataCache, sanitize_name
from .parser import DecodeFailure, decode

logger = logging.getLogger(__name__)

SYNC_META_NAME = ".sync-meta.json"


@dataclass
class SyncResult:
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


def read_sync_meta(path: Path) -> Optional[dict]:
    """Read a sidecar; None when missing or unreadable."""
    if not path.exists():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable %s: %s", path, e)
        return None
    return data if isinstance(data, dict) else None


def write_sync_meta(path: Path, doc: DocumentInfo) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump({"lastModified": doc.last_modified, "uuid": doc.uuid}, f)


def is_up_to_date(meta: Optional[dict], doc: DocumentInfo) -> bool:
    if not meta:
        return False
    try:
        return int(meta.get("lastModified", 0)) >= doc.last_modified
    except (TypeError, ValueError):
        return False


def document_output_dir(sync_folder: Path, cache: MetadataCache, doc: DocumentInfo) -> Path:
    """Destination folder for a document, mirroring its reMarkable folder."""
    name = sanitize_name(doc.name) or doc.uuid
    if cache.is_pdf(doc.uuid):
        name = f"{name} - Annotations"
    folder_path = cache.get_folder_path(doc.uuid)
    if folder_path:
        return Path(sync_folder) / folder_path / name
    return Path(sync_folder) / name


def sync_document(
    cache: MetadataCache,
    doc: DocumentInfo,
    sync_folder: Path,
    options: ConversionOptions,
    result: SyncResult,
    force: bool = False,
) -> str:
    """
    Sync one document.

    Returns "new", "updated" or "skipped". Page failures are recorded in
    result.errors and do not stop the other pages.
    """
    pages = cache.pages(doc.uuid)
    if not pages:
        return "skipped"

    doc_output_dir = document_output_dir(sync_folder, cache, doc)
    meta_path = doc_output_dir / SYNC_META_NAME
    existing_meta = read_sync_meta(meta_path)

    if not force and is_up_to_date(existing_meta, doc):
        return "skipped"

    doc_output_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Converting %s (%d pages)", doc.name, len(pages))

    for page_num, page in enumerate(pages, start=1):
        try:
            data = page.rm_path.read_bytes()
        except OSError as e:
            logger.warning("%s page %d: %s", doc.name, page_num, e)
            result.errors.append(f"{doc.name} page {page_num}: {e}")
            continue

        decoded = decode(data)
        if isinstance(decoded, DecodeFailure):
            logger.warning("%s page %d: %s", doc.name, page_num, decoded.error)
            result.errors.append(f"{doc.name} page {page_num}: {decoded.error}")
            continue

        if decoded.document.stroke_count == 0:
            continue

        excalidraw = ExcalidrawConverter(options).convert(decoded.document)
        output_path = doc_output_dir / f"Page {page_num:02d}.excalidraw"
        write_excalidraw(excalidraw, output_path)
        logger.debug("Wrote %s", output_path)

    write_sync_meta(meta_path, doc)
    return "updated" if existing_meta else "new"


def sync_backup(
    settings: SyncSettings,
    force: bool = False,
    source_dir: Optional[Path] = None,
) -> SyncResult:
    """
    Sync every document of a reMarkable data folder.

    Args:
        settings: Sync settings
        force: Re-convert documents even when unchanged
        source_dir: Overrides the configured/auto-detected source folder
    """
    result = SyncResult()

    source_dir = source_dir or settings.source_path()
    if not source_dir or not Path(source_dir).is_dir():
        result.errors.append("reMarkable data folder not found. Please set it in settings.")
        return result

    cache = MetadataCache(source_dir)
    documents = cache.documents()
    if not settings.sync_notebooks:
        documents = [d for d in documents if cache.is_pdf(d.uuid)]
    if not settings.sync_pdf_annotations:
        documents = [d for d in documents if not cache.is_pdf(d.uuid)]

    logger.info("Found %d documents in %s", len(documents), source_dir)
    settings.sync_folder.mkdir(parents=True, exist_ok=True)
    options = settings.conversion_options()

    for doc in documents:
        try:
            status = sync_document(cache, doc, settings.sync_folder, options, result, force)
        except (OSError, ValueError) as e:
            logger.warning("Failed to sync %s: %s", doc.name, e)
            result.errors.append(f"{doc.name}: {e}")
            continue

        if status == "new":
            result.imported += 1
        elif status == "updated":
            result.updated += 1
        else:
            result.skipped += 1

    return result


def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Sync reMarkable notebooks to Excalidraw files"
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=Path(DEFAULT_CONFIG_NAME),
        help="Path to remarkable-sync.toml config"
    )
    parser.add_argument(
        "-s", "--source",
        type=Path,
        help="reMarkable data folder (overrides config)"
    )
    parser.add_argument(
        "-d", "--dest",
        type=Path,
        help="Destination folder (overrides config)"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-convert documents even when unchanged"
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress output"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug logging"
    )

    args = parser.parse_args()

    level = logging.WARNING if args.quiet else logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"Invalid config: {e}")
        raise SystemExit(1)
    if args.dest:
        settings.sync_folder = args.dest

    if not args.quiet:
        print()
        print("Syncing reMarkable to Excalidraw...")
        print()

    result = sync_backup(settings, force=args.force, source_dir=args.source)

    if not args.quiet:
        print()
        print(f"Imported {result.imported}, updated {result.updated}, skipped {result.skipped}")
        print(f"  Output: {settings.sync_folder}")
        if result.errors:
            print(f"  Errors: {len(result.errors)}")
            for error in result.errors:
                print(f"    ✗ {error}")
        print()

    if result.errors and not (result.imported or result.updated or result.skipped):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
