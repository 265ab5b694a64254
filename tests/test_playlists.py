"""Test playlists, favorites and history"""

import pytest

from medialib.core.exceptions import PlaylistNotFoundError
from medialib.library.playlists import PlaylistManager

from conftest import make_track


@pytest.fixture
def playlists(context):
    context.cache.put([
        make_track("Yesterday", "The Beatles"),
        make_track("Let It Be", "The Beatles"),
        make_track("Bohemian Rhapsody", "Queen"),
    ])
    return PlaylistManager(context)


YESTERDAY = "Yesterday.mp3-1000"
LET_IT_BE = "Let It Be.mp3-1000"
BOHEMIAN = "Bohemian Rhapsody.mp3-1000"


class TestPlaylists:
    """Test playlist editing"""

    def test_create_deduplicates(self, playlists):
        playlist = playlists.create("Mix", [YESTERDAY, BOHEMIAN, YESTERDAY])
        assert playlist.id.startswith("pl_")
        assert playlists.get(playlist.id).fingerprints == [YESTERDAY, BOHEMIAN]

    def test_unknown_playlist(self, playlists):
        with pytest.raises(PlaylistNotFoundError):
            playlists.get("pl_missing")

    def test_rename_and_delete(self, playlists):
        playlist = playlists.create("Mix")
        playlists.rename(playlist.id, "Renamed")
        assert [p.name for p in playlists.list_playlists()] == ["Renamed"]
        assert playlists.delete(playlist.id)
        assert playlists.list_playlists() == []

    def test_add_tracks(self, playlists):
        playlist = playlists.create("Mix", [YESTERDAY])
        assert playlists.add_tracks(playlist.id, [YESTERDAY, LET_IT_BE, LET_IT_BE]) == 1
        assert playlists.get(playlist.id).fingerprints == [YESTERDAY, LET_IT_BE]

    def test_remove_track(self, playlists):
        playlist = playlists.create("Mix", [YESTERDAY, LET_IT_BE])
        assert playlists.remove_track(playlist.id, YESTERDAY)
        assert not playlists.remove_track(playlist.id, YESTERDAY)
        assert playlists.get(playlist.id).fingerprints == [LET_IT_BE]

    @pytest.mark.parametrize("moved,target,expected", [
        (BOHEMIAN, YESTERDAY, [BOHEMIAN, YESTERDAY, LET_IT_BE]),
        (YESTERDAY, BOHEMIAN, [LET_IT_BE, YESTERDAY, BOHEMIAN]),
        (YESTERDAY, None, [LET_IT_BE, BOHEMIAN, YESTERDAY]),
        (YESTERDAY, "unknown", [LET_IT_BE, BOHEMIAN, YESTERDAY]),
        (YESTERDAY, YESTERDAY, [YESTERDAY, LET_IT_BE, BOHEMIAN]),
    ])
    def test_move_before(self, playlists, moved, target, expected):
        playlist = playlists.create("Mix", [YESTERDAY, LET_IT_BE, BOHEMIAN])
        playlists.move_before(playlist.id, moved, target)
        assert playlists.get(playlist.id).fingerprints == expected

    def test_tracks_skip_missing(self, playlists):
        """Fingerprints no longer cached are kept but not materialized"""
        playlist = playlists.create("Mix", [BOHEMIAN, "gone.mp3-1", YESTERDAY])
        assert [t.name for t in playlists.tracks(playlist.id)] == ["Bohemian Rhapsody", "Yesterday"]
        assert len(playlists.get(playlist.id).fingerprints) == 3


class TestTextImport:
    """Test building playlists from pasted text"""

    def test_create_from_text(self, playlists):
        text = "Yesterday - The Beatles\nBohemian Rhapsody - Queen\nUnknown Song - Nobody\n"
        playlist, result = playlists.create_from_text("Pasted", text)
        assert playlist.fingerprints == [YESTERDAY, BOHEMIAN]
        assert result.unmatched == ["Unknown Song - Nobody"]

    def test_append_from_text(self, playlists):
        playlist = playlists.create("Mix", [YESTERDAY])
        result = playlists.append_from_text(playlist.id, "Yesterday\nLet It - Beatles", fuzzy=True)
        assert len(result.matched) == 2
        assert playlists.get(playlist.id).fingerprints == [YESTERDAY, LET_IT_BE]


class TestFavoritesAndHistory:
    """Test favorites and playback history"""

    def test_toggle_favorite(self, playlists):
        assert playlists.toggle_favorite(YESTERDAY)
        assert [t.name for t in playlists.favorites()] == ["Yesterday"]
        assert not playlists.toggle_favorite(YESTERDAY)
        assert playlists.favorites() == []

    def test_add_remove_favorite(self, playlists):
        playlists.add_favorite(BOHEMIAN)
        playlists.add_favorite(BOHEMIAN)
        assert len(playlists.favorites()) == 1
        playlists.remove_favorite(BOHEMIAN)
        assert playlists.favorites() == []

    def test_record_play(self, playlists, context):
        track = context.cache.get_by_fingerprint(YESTERDAY)
        playlists.record_play(track)
        playlists.record_play(track)
        history = playlists.history()
        assert len(history) == 1
        assert (history[0].name, history[0].artist) == ("Yesterday", "The Beatles")

    def test_history_limit(self, context):
        manager = PlaylistManager(context, history_limit=2)
        for name in ("A", "B", "C"):
            manager.record_play(make_track(name))
        assert len(manager.history()) == 2
        manager.clear_history()
        assert manager.history() == []
