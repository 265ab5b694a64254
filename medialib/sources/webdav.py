"""
WebDAV source.

Directory listings are fetched with PROPFIND (Depth: 1) and the directory
tree is descended one collection at a time. Multistatus responses are
parsed by local tag name so that any namespace prefix (d:, D:, lp1:, none)
is accepted, including prefixes the server forgot to declare.

Files needed locally (tag parsing, playback) are downloaded with a
streamed GET into a per-root cache directory, at a path derived from the
sanitized relative path of the file.

Wire contract:
    PROPFIND <baseUrl + rootPath>
    Depth: 1
    Body: propfind for resourcetype, getcontentlength, getlastmodified
    Success: any 2xx (normally 207 Multi-Status)
"""

import re
import shutil
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from pathlib import Path
from urllib.parse import quote, unquote, urlparse

import requests
from requests.auth import HTTPBasicAuth

from medialib.core.config import WebDAVConfig
from medialib.core.exceptions import SourceUnreachableError
from medialib.core.logger import get_logger
from medialib.library.models import FileRef, SourceKind, WebDAVCredentials
from medialib.sources.base import AccessState, ConnectionResult, Source
from medialib.utils.helpers import sanitize_relative_path


logger = get_logger(__name__)


PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:">'
    '<d:prop><d:resourcetype/><d:getcontentlength/><d:getlastmodified/></d:prop>'
    '</d:propfind>'
)

# Matches "<d:" / "</d:" style element prefixes
_TAG_PREFIX = re.compile(r'<(/?)[A-Za-z_][\w.-]*:')
# Matches prefixed attributes such as xmlns:d="DAV:" or d:foo="..."
_PREFIXED_ATTR = re.compile(r'\s[A-Za-z_][\w.-]*:[\w.-]+="[^"]*"')


@dataclass
class RemoteEntry:
    """One resource of a multistatus response."""
    remote_path: str
    name: str
    size: int
    is_collection: bool
    last_modified: float


def _local_name(tag: str) -> str:
    return tag.rsplit('}', 1)[-1].rsplit(':', 1)[-1].lower()


def normalize_remote_path(href: str) -> str:
    """Decoded URL path without a trailing slash ("/" for the server root)."""
    path = unquote(urlparse(href).path)
    return path.rstrip('/') or '/'


def _parse_xml(content: bytes) -> ET.Element:
    try:
        return ET.fromstring(content)
    except ET.ParseError:
        # Undeclared prefixes make the document invalid XML; strip them
        text = content.decode('utf-8', errors='replace')
        text = re.sub(r'^<\?xml[^>]*\?>', '', text.lstrip())
        text = _PREFIXED_ATTR.sub('', _TAG_PREFIX.sub(r'<\1', text))
        try:
            return ET.fromstring(text)
        except ET.ParseError as e:
            raise SourceUnreachableError(
                f"Malformed multistatus response: {e}",
                details={"original_error": str(e)}
            ) from e


def _parse_last_modified(value: str | None) -> float:
    if not value:
        return 0.0
    try:
        return parsedate_to_datetime(value.strip()).timestamp()
    except (TypeError, ValueError):
        return 0.0


def parse_multistatus(content: bytes, requested_path: str) -> list[RemoteEntry]:
    """
    Parse a PROPFIND multistatus document.

    Args:
        content: Raw response body.
        requested_path: URL path that was listed. The response entry for
                        this path (the collection itself) is excluded.

    Returns:
        Entries of the listed collection, in document order.
    """
    root = _parse_xml(content)
    requested = normalize_remote_path(requested_path)

    entries: list[RemoteEntry] = []
    for response in root.iter():
        if _local_name(response.tag) != 'response':
            continue

        href = None
        size = 0
        is_collection = False
        last_modified = 0.0

        for element in response.iter():
            name = _local_name(element.tag)
            if name == 'href' and href is None and element.text:
                href = element.text.strip()
            elif name == 'resourcetype':
                is_collection = any(_local_name(child.tag) == 'collection' for child in element)
            elif name == 'getcontentlength' and element.text:
                try:
                    size = int(element.text.strip())
                except ValueError:
                    size = 0
            elif name == 'getlastmodified':
                last_modified = _parse_last_modified(element.text)

        if href is None:
            continue

        remote_path = normalize_remote_path(href)
        if remote_path == requested:
            continue

        entries.append(RemoteEntry(
            remote_path=remote_path,
            name=remote_path.rsplit('/', 1)[-1],
            size=size,
            is_collection=is_collection,
            last_modified=last_modified,
        ))

    return entries


class WebDAVSource(Source):
    """
    Source backed by a WebDAV collection.

    Attributes:
        credentials: Server location and optional Basic-auth credentials.
        cache_dir: Per-root download cache (cache_directory / folder_id).
    """

    kind = SourceKind.WEBDAV

    def __init__(
        self,
        folder_id: str,
        credentials: WebDAVCredentials,
        cache_root: Path,
        config: WebDAVConfig | None = None,
        session: requests.Session | None = None
    ) -> None:
        super().__init__(folder_id)
        self.credentials = credentials
        self.config = config or WebDAVConfig()
        self.cache_dir = cache_root / folder_id

        # Auth and headers go on each request, so one session can serve several roots
        self.session = session or requests.Session()
        self._auth = HTTPBasicAuth(credentials.username, credentials.password or "") if credentials.username else None
        self._headers = {'User-Agent': self.config.user_agent}

        parsed = urlparse(credentials.base_url)
        self._origin = f"{parsed.scheme}://{parsed.netloc}"
        base_path = parsed.path.rstrip('/')
        root = credentials.root_path.strip('/')
        self.root_path = f"{base_path}/{root}" if root else (base_path or "/")

    def _remote_path(self, relative_path: str) -> str:
        if not relative_path:
            return self.root_path
        return f"{self.root_path.rstrip('/')}/{relative_path}"

    def _relative_path(self, remote_path: str) -> str:
        prefix = self.root_path.rstrip('/') + '/'
        if remote_path.startswith(prefix):
            return remote_path[len(prefix):]
        return remote_path.lstrip('/')

    def url_for(self, remote_path: str, collection: bool = False) -> str:
        url = self._origin + quote(remote_path, safe="/")
        if collection and not url.endswith('/'):
            url += '/'
        return url

    def propfind(self, remote_path: str) -> list[RemoteEntry]:
        """
        List one collection.

        Raises:
            SourceUnreachableError: Network failure, non-2xx status, or an
                                    unparseable response.
        """
        url = self.url_for(remote_path, collection=True)
        try:
            response = self.session.request(
                "PROPFIND",
                url,
                data=PROPFIND_BODY.encode('utf-8'),
                headers={**self._headers, 'Depth': '1', 'Content-Type': 'application/xml; charset=utf-8'},
                auth=self._auth,
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            raise SourceUnreachableError(
                f"Cannot reach WebDAV server: {e}",
                details={"url": url, "original_error": str(e)}
            ) from e

        if not 200 <= response.status_code < 300:
            raise SourceUnreachableError(
                f"PROPFIND failed with HTTP {response.status_code}",
                details={"url": url},
                status_code=response.status_code
            )

        return parse_multistatus(response.content, remote_path)

    def check_access(self, interactive: bool = False) -> AccessState:
        try:
            self.propfind(self.root_path)
        except SourceUnreachableError as e:
            logger.warning(f"WebDAV root {self.folder_id} unreachable: {e.message}")
            return AccessState.UNREACHABLE
        return AccessState.GRANTED

    def list_directory(self, relative_path: str = "") -> list[FileRef]:
        entries = [
            FileRef(
                relative_path=self._relative_path(entry.remote_path),
                name=entry.name,
                size=0 if entry.is_collection else entry.size,
                last_modified=entry.last_modified,
                is_dir=entry.is_collection,
            )
            for entry in self.propfind(self._remote_path(relative_path))
        ]
        entries.sort(key=lambda e: e.name)
        return entries

    def _get(self, ref: FileRef, headers: dict[str, str] | None = None, stream: bool = False):
        url = self.url_for(self._remote_path(ref.relative_path))
        try:
            response = self.session.get(
                url,
                headers={**self._headers, **(headers or {})},
                auth=self._auth,
                stream=stream,
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            raise SourceUnreachableError(
                f"Download failed: {e}",
                details={"url": url, "original_error": str(e)}
            ) from e

        if response.status_code not in (200, 206):
            response.close()
            raise SourceUnreachableError(
                f"GET failed with HTTP {response.status_code}",
                details={"url": url},
                status_code=response.status_code
            )
        return response

    def read_file(self, ref: FileRef, byte_range: tuple[int, int] | None = None) -> bytes:
        headers = None
        if byte_range is not None:
            headers = {'Range': f"bytes={byte_range[0]}-{byte_range[1]}"}
        response = self._get(ref, headers=headers)
        return response.content

    def cache_path_for(self, ref: FileRef) -> Path:
        """Local cache location of a remote file."""
        relative = sanitize_relative_path(ref.relative_path, self.config.max_cache_segments)
        return self.cache_dir.joinpath(*relative.parts)

    def local_copy(self, ref: FileRef) -> Path:
        target = self.cache_path_for(ref)
        if target.is_file() and target.stat().st_size == ref.size:
            return target

        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(target.name + ".part")

        response = self._get(ref, stream=True)
        try:
            with open(partial, "wb") as f:
                for chunk in response.iter_content(chunk_size=self.config.chunk_size):
                    if chunk:
                        f.write(chunk)
        except requests.RequestException as e:
            partial.unlink(missing_ok=True)
            raise SourceUnreachableError(
                f"Download interrupted: {e}",
                details={"path": ref.relative_path, "original_error": str(e)}
            ) from e
        finally:
            response.close()

        partial.replace(target)
        logger.debug(f"Cached {ref.relative_path} -> {target}")
        return target

    def clear_cache(self) -> None:
        """Delete every downloaded file of this root."""
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)
            logger.info(f"Cleared download cache for {self.folder_id}")

    def test_connection(self) -> ConnectionResult:
        try:
            entries = self.propfind(self.root_path)
        except SourceUnreachableError as e:
            if e.is_auth_error:
                return ConnectionResult(False, "Authentication failed, check username and password")
            if e.status_code == 404:
                return ConnectionResult(False, f"Path not found on server: {self.root_path}")
            return ConnectionResult(False, e.message)
        return ConnectionResult(True, f"Connected, {len(entries)} entries in {self.root_path}")
