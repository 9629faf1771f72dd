"""Zip packaging and safe extraction of data packages.

An archive holds ``datapackage.json`` as its first entry followed by every
local payload at its declared relative path. Remote path entries are left as
references and never bundled.

Extraction refuses:
- absolute paths and ``..`` escapes
- symlinks
- archives over the member-count or total-size limits
- members that inflate past their declared size
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

from datapack_core.exceptions import ArchiveError, FetchError
from datapack_core.paths import join_paths, normalize_relative
from datapack_core.utils.io import dump_json, read_bytes, write_bytes

if TYPE_CHECKING:
    from datapack_core.package import Package

logger = logging.getLogger(__name__)

DESCRIPTOR_FILENAME = "datapackage.json"

DEFAULT_MAX_FILES = 10_000
DEFAULT_MAX_EXTRACTED_BYTES = 10 * 1024 * 1024 * 1024  # 10 GB


def is_zip_location(location: str | os.PathLike[str]) -> bool:
    return os.fspath(location).lower().split("?", 1)[0].endswith(".zip")


def payload_entries(package: Package) -> list[tuple[str, str]]:
    """``(archive name, resolved location)`` for every bundled payload, in resource order."""
    seen: set[str] = set()
    entries: list[tuple[str, str]] = []
    for resource in package.resources:
        if resource.is_inline or resource.is_remote:
            continue
        for entry in resource.path:
            arcname = normalize_relative(entry)
            if arcname in seen:
                continue
            seen.add(arcname)
            entries.append((arcname, join_paths(resource.base_path, entry)))
    return entries


def zip_package(package: Package, path: str | os.PathLike[str]) -> Path:
    """Write ``package`` and its local payloads to the zip archive at ``path``."""
    output_path = Path(path)
    with tempfile.TemporaryDirectory(prefix="datapack_zip_") as temp_dir:
        staging = Path(temp_dir)
        staged_archive = staging / "package.zip"
        (staging / DESCRIPTOR_FILENAME).write_text(dump_json(package.descriptor()) + "\n", encoding="utf-8")
        payloads = payload_entries(package)
        for arcname, location in payloads:
            logger.debug("Staging %s from %s", arcname, location)
            write_bytes(staging / "payload" / arcname, read_bytes(location))
        with zipfile.ZipFile(staged_archive, "w", compression=zipfile.ZIP_DEFLATED) as zip_file:
            zip_file.write(staging / DESCRIPTOR_FILENAME, DESCRIPTOR_FILENAME)
            for arcname, _ in payloads:
                zip_file.write(staging / "payload" / arcname, arcname)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(staged_archive), str(output_path))
        except OSError as exc:
            raise FetchError(f"error writing archive {output_path}: {exc}", location=str(output_path), cause=exc) from exc
    logger.info("Wrote package archive %s (%d payload files)", output_path, len(payloads))
    return output_path


def is_member_safe(member_path: str, dest_dir: Path) -> tuple[bool, str | None]:
    """Check that an archive member lands inside ``dest_dir``."""
    normalized = os.path.normpath(member_path)
    if os.path.isabs(normalized) or member_path.startswith(("/", "\\")):
        return False, f"absolute_path:{member_path}"
    if normalized == ".." or normalized.startswith(".." + os.sep) or normalized.startswith("../"):
        return False, f"path_traversal:{member_path}"
    try:
        final_path = (dest_dir / normalized).resolve()
        final_path.relative_to(dest_dir.resolve())
    except (OSError, ValueError):
        return False, f"escapes_dest:{member_path}"
    return True, None


def safe_extract_zip(
    archive_path: Path,
    dest_dir: Path,
    *,
    max_files: int = DEFAULT_MAX_FILES,
    max_extracted_bytes: int = DEFAULT_MAX_EXTRACTED_BYTES,
) -> int:
    """Extract ``archive_path`` into ``dest_dir``; returns the number of files written.

    Raises:
        ArchiveError: corrupt archive or any safety check failing
    """
    dest_dir = Path(dest_dir).resolve()
    dest_dir.mkdir(parents=True, exist_ok=True)
    try:
        with zipfile.ZipFile(archive_path, "r") as zf:
            members = zf.infolist()
            if len(members) > max_files:
                raise ArchiveError(
                    f"Archive contains {len(members)} files, exceeds limit of {max_files}",
                    context={"archive": str(archive_path), "reason": "too_many_files"},
                )
            total_uncompressed = sum(m.file_size for m in members)
            if total_uncompressed > max_extracted_bytes:
                raise ArchiveError(
                    f"Total uncompressed size {total_uncompressed} exceeds limit {max_extracted_bytes}",
                    context={"archive": str(archive_path), "reason": "size_limit"},
                )

            extracted = 0
            for member in members:
                is_safe, reason = is_member_safe(member.filename, dest_dir)
                if not is_safe:
                    raise ArchiveError(
                        f"Unsafe path in archive: {reason}",
                        context={"archive": str(archive_path), "reason": reason},
                    )
                mode = member.external_attr >> 16
                if mode and stat.S_ISLNK(mode):
                    raise ArchiveError(
                        f"Symlink not allowed: {member.filename}",
                        context={"archive": str(archive_path), "reason": "symlink"},
                    )
                target_path = dest_dir / member.filename
                if member.is_dir():
                    target_path.mkdir(parents=True, exist_ok=True)
                    continue
                target_path.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(member) as src, open(target_path, "wb") as dst:
                    written = 0
                    while True:
                        chunk = src.read(1024 * 1024)
                        if not chunk:
                            break
                        written += len(chunk)
                        if written > member.file_size * 1.1 + 1024:
                            raise ArchiveError(
                                f"File {member.filename} expanded beyond declared size",
                                context={"archive": str(archive_path), "reason": "decompression_bomb"},
                            )
                        dst.write(chunk)
                extracted += 1
    except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError) as exc:
        raise ArchiveError(
            f"Corrupt zip archive {archive_path}: {exc}",
            context={"archive": str(archive_path), "error": str(exc)},
        ) from exc
    logger.info("Extracted package archive %s (%d files)", archive_path, extracted)
    return extracted


def extract_package_archive(location: str) -> Path:
    """Fetch the zip at ``location`` and extract it into a fresh directory.

    The directory is the caller's to keep; it is removed here only on failure.
    Returns the path of the extracted ``datapackage.json``.
    """
    dest_dir = Path(tempfile.mkdtemp(prefix="datapack_"))
    try:
        archive_path = dest_dir / "archive.zip"
        archive_path.write_bytes(read_bytes(location))
        try:
            safe_extract_zip(archive_path, dest_dir / "package")
        finally:
            archive_path.unlink(missing_ok=True)
        descriptor_path = dest_dir / "package" / DESCRIPTOR_FILENAME
        if not descriptor_path.is_file():
            raise ArchiveError(
                f"{DESCRIPTOR_FILENAME} not found in archive {location}",
                context={"archive": location, "reason": "missing_descriptor"},
            )
    except BaseException:
        shutil.rmtree(dest_dir, ignore_errors=True)
        raise
    return descriptor_path
