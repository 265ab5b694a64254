"""
Metadata extraction for audio files.

Turns one scanned audio file into a Track:

    1. Embedded tags are read with mutagen. Each container family keeps its
       fields under different keys, so tags are read through a per-family
       key map:
         - ID3 (MP3, WAV, AIFF):   TIT2, TPE1, TALB, TDRC, TCON, TRCK, TPOS, APIC
         - MP4 (M4A):              ©nam, ©ART, ©alb, ©day, ©gen, trkn, disk, covr
         - Vorbis comments (FLAC, Ogg): title, artist, album, date, ...,
           FLAC picture blocks / METADATA_BLOCK_PICTURE
    2. Fields missing from the tags come from the file name
       (see clean_file_name), then from fixed defaults.
    3. The embedded picture wins over the cover inherited from the
       directory tree. Image MIME types are detected with Pillow.

A file whose tags cannot be parsed is still indexed from its name. A file
that cannot be read at all raises MetadataExtractionError.
"""

import base64
import re
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

import mutagen
from mutagen.flac import Picture
from mutagen.id3 import ID3
from mutagen.mp4 import MP4Cover, MP4Tags
from PIL import Image, UnidentifiedImageError

from medialib.core.exceptions import MediaLibError, MetadataExtractionError
from medialib.core.logger import get_logger
from medialib.library.fingerprint import fingerprint_ref
from medialib.library.models import UNKNOWN_ALBUM, UNKNOWN_ARTIST, ScanCandidate, Track
from medialib.matching.normalize import normalize_artist_field
from medialib.sources.base import Source


logger = get_logger(__name__)


AUDIO_EXTENSIONS = ('.mp3', '.wav', '.ogg', '.m4a', '.flac', '.aac')

# Download-site advertisements and copy markers found in file names
FILE_NAME_NOISE = (
    "【无损音乐网 www.wusuns.com】",
    " - 更多精彩尽在www.it688.cn",
    "_无损下载",
    "[80s下载网]",
    " (高清版)",
    " - 副本",
    "-(www.music.com)",
    "(Live)",
    "（Live）",
    "[FLAC]",
    "(Official Video)",
    "- 单曲",
)

FILE_NAME_SEPARATORS = (" - ", " – ", " — ", " ~ ", " _ ")

_EXTENSION = re.compile(r'\.[^/.]+$')
_BRACKETED = re.compile(r'[\[(].*?[\])]')
# Leading track numbers such as "01. ", "3 - ", "A1_"
_NUMBER_PREFIX = re.compile(r'^([a-zA-Z]?\d{1,3}[.\-\s_)]+\s*)')
_YEAR = re.compile(r'(\d{4})')
_LEADING_INT = re.compile(r'^\s*(\d+)')

_ID3_FRAMES = {
    "title": "TIT2",
    "artist": "TPE1",
    "album_artist": "TPE2",
    "album": "TALB",
    "date": "TDRC",
    "genre": "TCON",
    "track": "TRCK",
    "disc": "TPOS",
}

_MP4_ATOMS = {
    "title": "\xa9nam",
    "artist": "\xa9ART",
    "album_artist": "aART",
    "album": "\xa9alb",
    "date": "\xa9day",
    "genre": "\xa9gen",
    "track": "trkn",
    "disc": "disk",
}

_VORBIS_KEYS = {
    "title": "title",
    "artist": "artist",
    "album_artist": "albumartist",
    "album": "album",
    "date": "date",
    "genre": "genre",
    "track": "tracknumber",
    "disc": "discnumber",
}


def is_audio_file(name: str) -> bool:
    return name.lower().endswith(AUDIO_EXTENSIONS)


def clean_file_name(file_name: str) -> tuple[str | None, str]:
    """
    Guess artist and title from a file name.

    Strips the extension, known advertisement suffixes, bracketed content
    and a leading track number, then splits on the first separator found.

    Returns:
        (artist or None when the name holds no separator, title)

    Example:
        clean_file_name("01. 周杰伦 - 夜曲 [FLAC].flac") == ("周杰伦", "夜曲")
    """
    name = _EXTENSION.sub("", file_name)

    for noise in FILE_NAME_NOISE:
        name = name.replace(noise, "")

    name = _BRACKETED.sub("", name).strip()
    name = _NUMBER_PREFIX.sub("", name)

    for separator in FILE_NAME_SEPARATORS:
        if separator in name:
            artist, title = name.split(separator, 1)
            artist = _NUMBER_PREFIX.sub("", artist.strip())
            return (artist or None, title.strip())

    return (None, name.strip())


def detect_image_mime(data: bytes | None) -> str | None:
    """MIME type of image bytes as identified by Pillow, or None."""
    if not data:
        return None
    try:
        with Image.open(BytesIO(data)) as img:
            return Image.MIME.get(img.format)
    except (UnidentifiedImageError, OSError):
        return None


def _first_int(value) -> int | None:
    if value is None:
        return None
    if isinstance(value, tuple):
        value = value[0]
    if isinstance(value, int):
        return value or None
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def _year(value) -> int | None:
    if value is None:
        return None
    match = _YEAR.search(str(value))
    return int(match.group(1)) if match else None


@dataclass
class TagInfo:
    """Fields read from embedded tags. None where the tag is absent."""
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    year: int | None = None
    genre: str | None = None
    track_number: int | None = None
    disc_number: int | None = None
    duration: float | None = None
    bitrate: int | None = None
    picture: bytes | None = None
    picture_mime: str | None = None


def _id3_values(tags: ID3, frame_id: str) -> list:
    frame = tags.get(frame_id)
    return [str(v) for v in frame.text] if frame is not None and hasattr(frame, "text") else []


def _read_id3(tags: ID3, info: TagInfo) -> dict[str, list]:
    values = {field: _id3_values(tags, frame) for field, frame in _ID3_FRAMES.items()}

    pictures = tags.getall("APIC")
    if pictures:
        # Prefer the front cover (picture type 3)
        picture = next((p for p in pictures if p.type == 3), pictures[0])
        info.picture = picture.data
        info.picture_mime = picture.mime or None
    return values


def _read_mp4(tags: MP4Tags, info: TagInfo) -> dict[str, list]:
    values = {field: list(tags.get(atom, [])) for field, atom in _MP4_ATOMS.items()}

    covers = tags.get("covr")
    if covers:
        cover = covers[0]
        info.picture = bytes(cover)
        info.picture_mime = "image/png" if cover.imageformat == MP4Cover.FORMAT_PNG else "image/jpeg"
    return values


def _read_vorbis(audio, info: TagInfo) -> dict[str, list]:
    tags = audio.tags
    values = {field: list(tags.get(key, [])) for field, key in _VORBIS_KEYS.items()}

    pictures = list(getattr(audio, "pictures", []) or [])
    if not pictures:
        for encoded in tags.get("metadata_block_picture", []):
            try:
                pictures.append(Picture(base64.b64decode(encoded)))
            except (ValueError, mutagen.MutagenError):
                logger.debug("Ignoring malformed METADATA_BLOCK_PICTURE")
    if pictures:
        picture = next((p for p in pictures if p.type == 3), pictures[0])
        info.picture = picture.data
        info.picture_mime = picture.mime or None
    return values


def read_tags(path: Path) -> TagInfo | None:
    """
    Read embedded tags and stream info.

    Returns:
        TagInfo, or None when mutagen does not recognise or cannot parse
        the file.

    Raises:
        OSError: The file cannot be opened.
    """
    try:
        audio = mutagen.File(path)
    except mutagen.MutagenError as e:
        logger.debug(f"Unparseable tags in {path.name}: {e}")
        return None

    if audio is None:
        return None

    info = TagInfo()
    if audio.info is not None:
        length = getattr(audio.info, "length", None)
        bitrate = getattr(audio.info, "bitrate", None)
        info.duration = float(length) if length else None
        info.bitrate = int(bitrate) if bitrate else None

    tags = audio.tags
    if tags is None:
        return info

    if isinstance(tags, ID3):
        values = _read_id3(tags, info)
    elif isinstance(tags, MP4Tags):
        values = _read_mp4(tags, info)
    elif hasattr(tags, "get"):
        values = _read_vorbis(audio, info)
    else:
        return info

    def first(field: str) -> str | None:
        items = [str(v).strip() for v in values.get(field, []) if str(v).strip()]
        return items[0] if items else None

    artists = [str(v).strip() for v in values.get("artist", []) if str(v).strip()]
    info.title = first("title")
    info.artist = "/".join(artists) or first("album_artist")
    info.album = first("album")
    info.year = _year(first("date"))
    info.genre = first("genre")
    info.track_number = _first_int((values.get("track") or [None])[0])
    info.disc_number = _first_int((values.get("disc") or [None])[0])
    return info


class MetadataExtractor:
    """
    Builds Track records from scan candidates.

    Stateless and safe to call from several worker threads at once.

    Example:
        extractor = MetadataExtractor()
        track = extractor.extract(candidate, source)
    """

    def extract(self, candidate: ScanCandidate, source: Source) -> Track:
        """
        Extract the Track of one scan candidate.

        Args:
            candidate: Scanned audio file and its inherited artwork.
            source: Source the file lives on (used to get a local copy).

        Raises:
            MetadataExtractionError: The file could not be read or downloaded.
        """
        ref = candidate.file_ref
        try:
            path = source.local_copy(ref)
            tags = read_tags(path)
        except (OSError, MediaLibError) as e:
            raise MetadataExtractionError(
                f"Cannot read {ref.relative_path}: {e}",
                details={"folder_id": candidate.folder_id, "path": ref.relative_path,
                         "original_error": str(e)}
            ) from e

        if tags is None:
            logger.debug(f"No readable tags in {ref.relative_path}, using file name")
            tags = TagInfo()

        return self.build_track(candidate, tags)

    def build_track(self, candidate: ScanCandidate, tags: TagInfo) -> Track:
        """Combine tags, file-name heuristics and inherited artwork."""
        ref = candidate.file_ref
        name_artist, name_title = clean_file_name(ref.name)

        artist = normalize_artist_field(tags.artist or name_artist) or UNKNOWN_ARTIST

        if tags.picture:
            cover_blob = tags.picture
            cover_mime = tags.picture_mime or detect_image_mime(tags.picture)
        elif candidate.inherited_cover:
            cover_blob = candidate.inherited_cover
            cover_mime = detect_image_mime(candidate.inherited_cover)
        else:
            cover_blob = None
            cover_mime = None

        return Track(
            fingerprint=fingerprint_ref(ref),
            name=tags.title or name_title or ref.name,
            artist=artist,
            album=tags.album or UNKNOWN_ALBUM,
            file_name=ref.name,
            relative_path=ref.relative_path,
            folder_id=candidate.folder_id,
            size=ref.size,
            last_modified=ref.last_modified,
            year=tags.year,
            genre=tags.genre,
            duration=tags.duration,
            bitrate=tags.bitrate,
            track_number=tags.track_number,
            disc_number=tags.disc_number,
            cover_blob=cover_blob,
            cover_mime=cover_mime,
        )
