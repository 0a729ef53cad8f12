"""
Query source resolution.

File inputs are classified once into a tagged union, then resolved into
local ``.sql`` paths. Downloads and generated scripts land in scoped
temporary files that are removed when the scope closes.
"""

from __future__ import annotations

import codecs
import logging
import os
import secrets
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Union
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

import requests

from dbaquery.domain.errors import InputValidationError, SourceError

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 60


@dataclass(frozen=True)
class DirectorySource:
    path: Path


@dataclass(frozen=True)
class FileSource:
    path: Path


@dataclass(frozen=True)
class UrlSource:
    url: str


@dataclass(frozen=True)
class PathSource:
    text: str


QuerySource = Union[DirectorySource, FileSource, UrlSource, PathSource]
Downloader = Callable[[str], bytes]


def _scheme(text: str) -> str:
    scheme = urlparse(text).scheme.lower()
    # C:\scripts\x.sql parses with scheme "c"
    return "" if len(scheme) <= 1 else scheme


def classify_source(item: object) -> QuerySource:
    """
    Classify one file input by its concrete type.

    Raises:
        InputValidationError: For anything that is not a path or string
    """
    if isinstance(item, os.PathLike):
        path = Path(item)
        if path.is_dir():
            return DirectorySource(path)
        if path.is_file():
            return FileSource(path)
        return PathSource(str(path))
    if isinstance(item, str):
        if _scheme(item) in ("http", "https"):
            return UrlSource(item)
        return PathSource(item)
    raise InputValidationError(
        f"Unsupported file input type: {type(item).__name__}", target=repr(item)
    )


class TempFileScope:
    """
    Temporary files owned by one invocation.

    Every file gets a random prefix; ``cleanup`` removes all of them and
    ignores deletion errors.
    """

    def __init__(self, temp_dir: str | Path | None = None):
        self.temp_dir = Path(temp_dir) if temp_dir else None
        self.paths: list[Path] = []

    def create(self, basename: str, content: str | bytes) -> Path:
        directory = self.temp_dir or Path(tempfile.gettempdir())
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{secrets.token_hex(6)}-{basename}"
        self.paths.append(path)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        logger.debug("Created temp file %s", path)
        return path

    def cleanup(self) -> None:
        for path in self.paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.debug("Could not remove temp file %s: %s", path, e)
        self.paths.clear()

    def __enter__(self) -> TempFileScope:
        return self

    def __exit__(self, *exc) -> None:
        self.cleanup()


def download(url: str) -> bytes:
    """
    Fetch a script over HTTP(S).

    Raises:
        SourceError: On network errors and non-2xx responses
    """
    logger.info("Downloading %s", url)
    try:
        response = requests.get(url, timeout=DOWNLOAD_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        raise SourceError(f"Download failed: {e}", target=url) from e
    return response.content


def _sql_files(directory: Path) -> list[Path]:
    # Enumeration order, not sorted
    with os.scandir(directory) as entries:
        return [
            Path(entry.path)
            for entry in entries
            if entry.is_file() and entry.name.lower().endswith(".sql")
        ]


def _resolve_path_text(text: str) -> Path:
    scheme = _scheme(text)
    if scheme == "file":
        parsed = urlparse(text)
        text = url2pathname(unquote(parsed.path))
        if parsed.netloc and parsed.netloc.lower() != "localhost":
            text = f"//{parsed.netloc}{text}"
    elif scheme:
        raise InputValidationError(f"Unsupported URI scheme: {scheme}", target=text)

    path = Path(text).expanduser()
    try:
        path = path.resolve(strict=True)
    except (OSError, RuntimeError) as e:
        raise InputValidationError(f"Cannot find path: {text}", target=text) from e
    return path


def resolve_source(
    source: QuerySource,
    scope: TempFileScope,
    downloader: Downloader = download,
) -> list[Path]:
    """
    Resolve a classified source into local script files.

    Raises:
        InputValidationError: For missing paths and unsupported schemes
        SourceError: When a download fails
    """
    if isinstance(source, DirectorySource):
        return _sql_files(source.path)
    if isinstance(source, FileSource):
        return [source.path]
    if isinstance(source, UrlSource):
        content = downloader(source.url)
        basename = Path(unquote(urlparse(source.url).path)).name or "query.sql"
        return [scope.create(basename, content)]
    if isinstance(source, PathSource):
        path = _resolve_path_text(source.text)
        if path.is_dir():
            return _sql_files(path)
        return [path]
    raise InputValidationError(f"Unsupported source: {source!r}")


def read_script(path: Path) -> str:
    """
    Read a script file, honouring UTF-8 and UTF-16 byte order marks.

    Raises:
        SourceError: If the file cannot be read
    """
    try:
        data = path.read_bytes()
    except OSError as e:
        raise SourceError(f"Cannot read file: {e}", target=str(path)) from e

    if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return data.decode("utf-16")
    return data.decode("utf-8-sig", errors="replace")
