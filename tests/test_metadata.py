"""Test metadata extraction"""

import wave
from io import BytesIO

import pytest
from mutagen.id3 import APIC, TALB, TIT2, TPE1, TRCK
from mutagen.wave import WAVE
from PIL import Image

from medialib.core.exceptions import MetadataExtractionError
from medialib.library.metadata import (
    MetadataExtractor,
    TagInfo,
    detect_image_mime,
    read_tags,
)
from medialib.library.models import UNKNOWN_ALBUM, UNKNOWN_ARTIST, FileRef, ScanCandidate
from medialib.sources.local import DirectoryHandle, LocalDirectorySource


def png_bytes() -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (2, 2), "red").save(buffer, format="PNG")
    return buffer.getvalue()


def write_wav(path, seconds: int = 1) -> None:
    with wave.open(str(path), "wb") as w:
        w.setnchannels(1)
        w.setsampwidth(2)
        w.setframerate(8000)
        w.writeframes(b"\x00\x00" * 8000 * seconds)


def candidate(name: str, size: int = 10, cover: bytes | None = None, path: str | None = None) -> ScanCandidate:
    return ScanCandidate(
        file_ref=FileRef(relative_path=path or name, name=name, size=size, last_modified=7.0),
        folder_id="folder1",
        inherited_cover=cover,
    )


class TestDetectImageMime:
    """Test detect_image_mime()"""

    def test_png(self):
        assert detect_image_mime(png_bytes()) == "image/png"

    def test_not_an_image(self):
        assert detect_image_mime(b"definitely not an image") is None
        assert detect_image_mime(None) is None
        assert detect_image_mime(b"") is None


class TestBuildTrack:
    """Test field precedence in build_track()"""

    def test_tags_win(self):
        tags = TagInfo(title="Tagged", artist="Tag Artist", album="Tag Album", year=1999)
        track = MetadataExtractor().build_track(candidate("File Artist - File Title.mp3"), tags)
        assert (track.name, track.artist, track.album, track.year) == ("Tagged", "Tag Artist", "Tag Album", 1999)

    def test_file_name_fallback(self):
        track = MetadataExtractor().build_track(candidate("01. File Artist - File Title.mp3"), TagInfo())
        assert (track.name, track.artist, track.album) == ("File Title", "File Artist", UNKNOWN_ALBUM)

    def test_defaults(self):
        track = MetadataExtractor().build_track(candidate("Untitled.ogg"), TagInfo())
        assert track.name == "Untitled"
        assert track.artist == UNKNOWN_ARTIST

    def test_artist_delimiters_normalized(self):
        track = MetadataExtractor().build_track(candidate("x.mp3"), TagInfo(artist="A & B feat. C"))
        assert track.artist == "A/B/C"

    def test_identity_fields(self):
        track = MetadataExtractor().build_track(candidate("Song.mp3", size=42, path="Dir/Song.mp3"), TagInfo())
        assert track.fingerprint == "Song.mp3-42"
        assert track.relative_path == "Dir/Song.mp3"
        assert track.folder_id == "folder1"
        assert track.last_modified == 7.0

    def test_embedded_cover_wins(self):
        tags = TagInfo(picture=b"embedded", picture_mime="image/jpeg")
        track = MetadataExtractor().build_track(candidate("x.mp3", cover=b"folder"), tags)
        assert (track.cover_blob, track.cover_mime) == (b"embedded", "image/jpeg")

    def test_inherited_cover(self):
        cover = png_bytes()
        track = MetadataExtractor().build_track(candidate("x.mp3", cover=cover), TagInfo())
        assert track.cover_blob == cover
        assert track.cover_mime == "image/png"

    def test_no_cover(self):
        track = MetadataExtractor().build_track(candidate("x.mp3"), TagInfo())
        assert not track.has_cover


class TestReadTags:
    """Test reading real files"""

    def test_wav_with_id3(self, temp_dir):
        path = temp_dir / "song.wav"
        write_wav(path)
        audio = WAVE(str(path))
        audio.add_tags()
        audio.tags.add(TIT2(encoding=3, text="Wave Title"))
        audio.tags.add(TPE1(encoding=3, text=["Singer A", "Singer B"]))
        audio.tags.add(TALB(encoding=3, text="Wave Album"))
        audio.tags.add(TRCK(encoding=3, text="3/10"))
        audio.tags.add(APIC(encoding=3, mime="image/png", type=3, desc="cover", data=png_bytes()))
        audio.save()

        info = read_tags(path)

        assert info.title == "Wave Title"
        assert info.artist == "Singer A/Singer B"
        assert info.album == "Wave Album"
        assert info.track_number == 3
        assert info.picture_mime == "image/png"
        assert info.duration == pytest.approx(1.0, abs=0.01)

    def test_wav_without_tags(self, temp_dir):
        path = temp_dir / "plain.wav"
        write_wav(path)
        info = read_tags(path)
        assert info.title is None
        assert info.duration == pytest.approx(1.0, abs=0.01)

    def test_unrecognised_file(self, temp_dir):
        path = temp_dir / "garbage.xyz"
        path.write_bytes(b"nothing to see")
        assert read_tags(path) is None


class TestExtract:
    """Test MetadataExtractor.extract() against a local source"""

    def test_unparseable_falls_back_to_name(self, temp_dir):
        (temp_dir / "Artist - Title.wav").write_bytes(b"not really a wave file")
        source = LocalDirectorySource("folder1", DirectoryHandle(temp_dir, granted=True))
        track = MetadataExtractor().extract(candidate("Artist - Title.wav", size=22), source)
        assert (track.artist, track.name) == ("Artist", "Title")

    def test_missing_file(self, temp_dir):
        source = LocalDirectorySource("folder1", DirectoryHandle(temp_dir, granted=True))
        with pytest.raises(MetadataExtractionError) as exc_info:
            MetadataExtractor().extract(candidate("gone.mp3"), source)
        assert exc_info.value.details["path"] == "gone.mp3"

    def test_permission_revoked(self, temp_dir):
        source = LocalDirectorySource("folder1", DirectoryHandle(temp_dir, granted=False))
        with pytest.raises(MetadataExtractionError):
            MetadataExtractor().extract(candidate("x.mp3"), source)
