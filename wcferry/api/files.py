"""
Staging of files handed to the host.

Send commands for images, files and emotions take a filesystem path on the
host machine. FileRef turns a location into such a path:

- a local path           used in place (or copied when copy_local=True)
- an http(s):// URL      downloaded with httpx
- data:<mime>;base64,..  decoded and written out
- raw bytes              written out

save() returns a StagedFile; call its discard() once the command is done,
whatever its outcome, so staged copies do not pile up in the cache directory.
"""

import base64
import logging
import mimetypes
import os
import re
import shutil
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, runtime_checkable
from urllib.parse import unquote, urlparse

import httpx

from ..utils import ensure_dir, default_cache_dir


HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
                  "Chrome/100.0.4896.127 Safari/537.36",
}

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w-]+=[\w.-]+)*;base64,(?P<data>.*)$", re.DOTALL)
_DISPOSITION = re.compile(r'filename="?([^";]+)"?', re.IGNORECASE)


@dataclass
class StagedFile:
    path: str
    discard: Callable[[], None]


@runtime_checkable
class FileSavable(Protocol):
    async def save(self, dir: str) -> StagedFile: ...


def _keep() -> None:
    pass


def _remover(path: str) -> Callable[[], None]:
    def discard():
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
    return discard


class FileRef:
    def __init__(self,
                 location: str | bytes,
                 name: Optional[str] = None,
                 headers: Optional[dict] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 logger: Optional[logging.Logger] = None):
        self.location = location
        self.name = name
        self.headers = {**HEADERS, **(headers or {})}
        self.transport = transport
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def is_url(location: str) -> bool:
        return re.match(r"^https?://", location, re.IGNORECASE) is not None

    async def save(self, dir: Optional[str] = None, copy_local: bool = False) -> StagedFile:
        """Materialise the location inside dir and return its path plus a discard action"""
        dir = ensure_dir(dir or default_cache_dir())
        if isinstance(self.location, (bytes, bytearray)):
            return self._staged(self._write(dir, bytes(self.location), self._name()))
        if m := _DATA_URI.match(self.location):
            mime = m.group("mime")
            return self._staged(self._write(dir, base64.b64decode(m.group("data")), self._name(mime=mime)))
        if self.is_url(self.location):
            return self._staged(await self._download(dir))
        if copy_local:
            return self._staged(self._copy(dir))
        if not os.path.exists(self.location):
            raise FileNotFoundError(f"Source file {self.location} doesn't exist")
        return StagedFile(path=self.location, discard=_keep)

    def _staged(self, path: str) -> StagedFile:
        return StagedFile(path=path, discard=_remover(path))

    def _name(self, mime: Optional[str] = None, inferred: Optional[str] = None) -> str:
        """Name with an extension: explicit name, else inferred, else a UUID; extension from mime or .dat"""
        basename = self.name or inferred or uuid.uuid4().hex
        if os.path.splitext(basename)[1]:
            return basename
        ext = (mimetypes.guess_extension(mime.split(";")[0].strip()) if mime else None) or ".dat"
        return basename + ext

    @staticmethod
    def saving_path(dir: str, name: str) -> str:
        """A path in dir for name that doesn't exist yet: name.ext, name-1.ext, name-2.ext, ..."""
        stem, ext = os.path.splitext(name)
        i = 0
        while True:
            path = os.path.join(dir, f"{stem}-{i}{ext}" if i else f"{stem}{ext}")
            if not os.path.exists(path):
                return path
            i += 1

    def _write(self, dir: str, data: bytes, name: str) -> str:
        path = self.saving_path(dir, name)
        with open(path, "wb") as f:
            f.write(data)
        return path

    def _copy(self, dir: str) -> str:
        if not os.path.exists(self.location):
            raise FileNotFoundError(f"Source file {self.location} doesn't exist")
        path = self.saving_path(dir, self._name(inferred=os.path.basename(self.location)))
        shutil.copyfile(self.location, path)
        return path

    async def _download(self, dir: str) -> str:
        path = None
        try:
            async with httpx.AsyncClient(headers=self.headers, follow_redirects=True, transport=self.transport) as client:
                async with client.stream("GET", self.location) as response:
                    response.raise_for_status()
                    disposition = _DISPOSITION.search(response.headers.get("content-disposition", ""))
                    inferred = disposition.group(1) if disposition else unquote(os.path.basename(urlparse(self.location).path))
                    path = self.saving_path(dir, self._name(mime=response.headers.get("content-type"), inferred=inferred or None))
                    with open(path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
        except Exception:
            if path:
                _remover(path)()
            raise
        self.logger.debug(f"Downloaded {self.location} to {path}")
        return path


async def acquire(locator: "str | bytes | FileSavable", dir: Optional[str] = None) -> StagedFile:
    """Resolve any supported locator to a staged local file"""
    if isinstance(locator, FileSavable):
        return await locator.save(dir or default_cache_dir())
    return await FileRef(locator).save(dir)
