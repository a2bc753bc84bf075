"""Archive builder — deterministic source archives and binary bundles.

Every archive is a gzip-compressed tar whose entries live under one
namespace root (``source/`` or ``bundle/``).  Entries are canonicalised so
the same tree produces the same bytes on any machine:

- lexicographic POSIX path order
- mtime 0, uid/gid 0, empty owner names
- dirs 0755, executables 0755, other files 0644
- gzip header mtime 0

Archives are written to a temporary file beside the destination and renamed
into place only once complete; the digest is taken over the final file.
"""

from __future__ import annotations

import gzip
import logging
import os
import shutil
import stat
import tarfile
import tempfile
import zlib
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

from viewtube_release.config import (
    BINARY_ROOT_DIR,
    REQUIRED_BINARIES,
    SOURCE_ROOT_DIR,
)
from viewtube_release.core.errors import (
    ArchiveLayoutError,
    MissingBinaryError,
    ReleaseIOError,
)
from viewtube_release.core.hasher import digest_file
from viewtube_release.models.releases import ArtifactKind, ReleaseArtifact

logger = logging.getLogger(__name__)

# Top-level entries never shipped in a source archive: VCS metadata,
# build output, dependency caches.
DEFAULT_SOURCE_EXCLUDES: frozenset[str] = frozenset(
    {".git", "target", "node_modules", "coverage"}
)

# Top-level repository entries that are not part of the served web assets.
FRONTEND_SKIP_ENTRIES: frozenset[str] = frozenset(
    {
        ".git",
        ".github",
        "node_modules",
        "coverage",
        "cypress",
        "tests",
        "target",
        "src",
        "Cargo.lock",
        "Cargo.toml",
        "package.json",
        "package-lock.json",
        "README.md",
        "LICENSE",
    }
)


# ---------------------------------------------------------------------------
# Tree walking
# ---------------------------------------------------------------------------


def _should_skip(rel: PurePosixPath, excludes: Iterable[str]) -> bool:
    return bool(rel.parts) and rel.parts[0] in excludes


def collect_tree(root: Path, excludes: Iterable[str] = ()) -> list[tuple[PurePosixPath, Path]]:
    """Return ``(relative_posix_path, absolute_path)`` for every dir and file.

    Symlinks and special files are skipped.  Excluded names are matched
    against the first path component only.  Result is sorted.
    """
    root = Path(root)
    excludes = frozenset(excludes)
    entries: list[tuple[PurePosixPath, Path]] = []
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        kept_dirs = []
        for name in sorted(dirnames):
            path = current / name
            rel = PurePosixPath(path.relative_to(root).as_posix())
            if _should_skip(rel, excludes) or path.is_symlink():
                continue
            kept_dirs.append(name)
            entries.append((rel, path))
        dirnames[:] = kept_dirs
        for name in sorted(filenames):
            path = current / name
            rel = PurePosixPath(path.relative_to(root).as_posix())
            if _should_skip(rel, excludes) or path.is_symlink() or not path.is_file():
                continue
            entries.append((rel, path))
    entries.sort(key=lambda item: item[0].as_posix())
    return entries


def _normalized_tarinfo(arcname: str, path: Path) -> tarfile.TarInfo:
    st = path.stat()
    info = tarfile.TarInfo(name=arcname)
    info.mtime = 0
    info.uid = 0
    info.gid = 0
    info.uname = ""
    info.gname = ""
    if stat.S_ISDIR(st.st_mode):
        info.type = tarfile.DIRTYPE
        info.mode = 0o755
        info.size = 0
    else:
        info.type = tarfile.REGTYPE
        info.mode = 0o755 if st.st_mode & 0o111 else 0o644
        info.size = st.st_size
    return info


def _write_archive(
    dest: Path,
    entries: list[tuple[str, Path]],
    kind: ArtifactKind,
) -> ReleaseArtifact:
    """Write *entries* as a canonical tar.gz at *dest* and digest it."""
    dest = Path(dest)
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{dest.name}.", suffix=".tmp", dir=dest.parent
        )
    except OSError as exc:
        raise ReleaseIOError(f"Cannot create archive {dest}: {exc}") from exc

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as raw:
            with gzip.GzipFile(fileobj=raw, mode="wb", compresslevel=9, mtime=0) as gz:
                with tarfile.open(fileobj=gz, mode="w", format=tarfile.GNU_FORMAT) as tar:
                    for arcname, path in sorted(entries, key=lambda e: e[0]):
                        info = _normalized_tarinfo(arcname, path)
                        if info.isdir():
                            tar.addfile(info)
                        else:
                            with open(path, "rb") as fh:
                                tar.addfile(info, fh)
        os.replace(tmp_path, dest)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise ReleaseIOError(f"Failed writing archive {dest}: {exc}") from exc
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    digest = digest_file(dest)
    logger.info("Built %s archive %s (digest %s)", kind.value, dest.name, digest)
    return ReleaseArtifact(
        kind=kind,
        path=dest,
        digest=digest,
        size_bytes=dest.stat().st_size,
    )


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def build_source_archive(
    tree_root: Path,
    dest: Path,
    excludes: Iterable[str] = DEFAULT_SOURCE_EXCLUDES,
) -> ReleaseArtifact:
    """Archive a buildable source tree under ``source/``.

    Directories are written explicitly so empty ones survive extraction.
    """
    tree_root = Path(tree_root)
    if not tree_root.is_dir():
        raise ReleaseIOError(f"Source tree not found: {tree_root}")
    entries = [
        (f"{SOURCE_ROOT_DIR}/{rel.as_posix()}", path)
        for rel, path in collect_tree(tree_root, excludes)
    ]
    return _write_archive(dest, entries, ArtifactKind.SOURCE)


def stage_frontend_assets(
    src_root: Path,
    dest_root: Path,
    skip: Iterable[str] = FRONTEND_SKIP_ENTRIES,
) -> int:
    """Copy web assets from *src_root* to *dest_root*, dirs 0755 files 0644.

    Returns the number of files copied.
    """
    copied = 0
    dest_root = Path(dest_root)
    dest_root.mkdir(parents=True, exist_ok=True)
    for rel, path in collect_tree(Path(src_root), skip):
        target = dest_root.joinpath(*rel.parts)
        if path.is_dir():
            target.mkdir(parents=True, exist_ok=True)
            os.chmod(target, 0o755)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(path, target)
            os.chmod(target, 0o644)
            copied += 1
    return copied


def stage_binaries(
    binaries_dir: Path,
    dest_dir: Path,
    binaries: Iterable[str] = REQUIRED_BINARIES,
) -> list[Path]:
    """Copy every required binary into *dest_dir* with mode 0750.

    Raises
    ------
    MissingBinaryError
        If any required binary is absent.  A missing binary is a build
        precondition failure, never a silent skip.
    """
    binaries_dir = Path(binaries_dir)
    names = list(binaries)
    missing = [name for name in names if not (binaries_dir / name).is_file()]
    if missing:
        raise MissingBinaryError(
            "Missing compiled binary "
            + ", ".join(str(binaries_dir / name) for name in missing)
        )
    dest_dir = Path(dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)
    staged = []
    for name in names:
        target = dest_dir / name
        shutil.copyfile(binaries_dir / name, target)
        os.chmod(target, 0o750)
        staged.append(target)
    return staged


def build_binary_bundle(
    binaries_dir: Path,
    assets_root: Path,
    dest: Path,
    excludes: Iterable[str] = FRONTEND_SKIP_ENTRIES,
    binaries: Iterable[str] = REQUIRED_BINARIES,
) -> ReleaseArtifact:
    """Archive prebuilt executables and web assets under ``bundle/bin`` and ``bundle/www``."""
    with tempfile.TemporaryDirectory(prefix="viewtube-bundle-") as stage_dir:
        bundle_root = Path(stage_dir) / BINARY_ROOT_DIR
        stage_binaries(binaries_dir, bundle_root / "bin", binaries)
        stage_frontend_assets(assets_root, bundle_root / "www", excludes)
        entries = [
            (f"{BINARY_ROOT_DIR}/{rel.as_posix()}", path)
            for rel, path in collect_tree(bundle_root)
        ]
        return _write_archive(dest, entries, ArtifactKind.BINARY)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def _checked_members(tar: tarfile.TarFile, expected_root: str) -> list[tarfile.TarInfo]:
    members = []
    for member in tar.getmembers():
        name = PurePosixPath(member.name)
        if name.is_absolute() or ".." in name.parts:
            raise ArchiveLayoutError(f"Unsafe path in archive: {member.name}")
        if not (member.isfile() or member.isdir()):
            raise ArchiveLayoutError(
                f"Unsupported entry type in archive: {member.name}"
            )
        if not name.parts or name.parts[0] != expected_root:
            raise ArchiveLayoutError(
                f"Entry {member.name} outside '{expected_root}' root"
            )
        members.append(member)
    return members


def extract_archive(archive: Path, dest_dir: Path, expected_root: str = SOURCE_ROOT_DIR) -> Path:
    """Extract a release archive into *dest_dir* and return its namespace root.

    Only regular files and directories under *expected_root* are accepted;
    absolute paths, ``..`` components, and links are refused before
    anything is written.
    """
    dest_dir = Path(dest_dir)
    try:
        with tarfile.open(archive, "r:gz") as tar:
            members = _checked_members(tar, expected_root)
            if hasattr(tarfile, "data_filter"):
                tar.extractall(dest_dir, members=members, filter="data")
            else:
                tar.extractall(dest_dir, members=members)
    except (tarfile.TarError, EOFError, zlib.error, gzip.BadGzipFile) as exc:
        raise ArchiveLayoutError(f"Cannot read archive {archive}: {exc}") from exc
    except OSError as exc:
        raise ReleaseIOError(f"Failed extracting {archive}: {exc}") from exc

    root = dest_dir / expected_root
    if not root.is_dir():
        raise ArchiveLayoutError(f"Release archive missing '{expected_root}' directory")
    return root
