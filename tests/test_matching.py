"""Test text normalization and the text match engine"""

from medialib.matching.matcher import (
    SCORE_CONTAINS,
    SCORE_EXACT,
    SCORE_NONE,
    SCORE_STARTS_WITH,
    TextMatcher,
    match_tracks,
    title_score,
)
from medialib.matching.normalize import (
    TextNormalizer,
    join_artists,
    normalize_artist_field,
    split_artists,
)

from conftest import make_track


class TestNormalizer:
    """Test TextNormalizer"""

    def test_width_and_case(self):
        normalize = TextNormalizer()
        assert normalize("ＹＥＳＴＥＲＤＡＹ ") == "yesterday"
        assert normalize("Hello   World") == "hello world"
        assert normalize(None) == ""

    def test_traditional_folding_is_opt_in(self):
        assert TextNormalizer()("愛") == "愛"
        assert TextNormalizer(fold_traditional=True)("愛") == "爱"


class TestSplitArtists:
    """Test artist splitting"""

    def test_delimiters(self):
        assert split_artists("A / B & C, D; E") == ["A", "B", "C", "D", "E"]
        assert split_artists("Main feat. Guest") == ["Main", "Guest"]
        assert split_artists("Main ft. Guest") == ["Main", "Guest"]

    def test_latin_names_keep_spaces(self):
        assert split_artists("The Beatles") == ["The Beatles"]

    def test_cjk_split_on_spaces(self):
        assert split_artists("周杰伦 费玉清") == ["周杰伦", "费玉清"]

    def test_duplicates_and_blanks(self):
        assert split_artists("A / A / ") == ["A"]
        assert split_artists("") == []
        assert split_artists(None) == []

    def test_join(self):
        assert join_artists(["A", "B"]) == "A/B"
        assert normalize_artist_field("A & B") == "A/B"
        assert normalize_artist_field(None) == ""


class TestTitleScore:
    """Test title scoring"""

    def test_exact_mode(self):
        assert title_score("song", "song", fuzzy=False) == SCORE_EXACT
        assert title_score("song two", "song", fuzzy=False) == SCORE_NONE

    def test_fuzzy_mode(self):
        assert title_score("song", "song", fuzzy=True) == SCORE_EXACT
        assert title_score("song two", "song", fuzzy=True) == SCORE_STARTS_WITH
        assert title_score("my song", "song", fuzzy=True) == SCORE_CONTAINS
        assert title_score("other", "song", fuzzy=True) == SCORE_NONE

    def test_empty_query(self):
        assert title_score("song", "", fuzzy=True) == SCORE_NONE


class TestTextMatcher:
    """Test matching "Title - Artist" lines"""

    def setup_method(self):
        self.tracks = [
            make_track("Yesterday", "The Beatles"),
            make_track("Let It Be", "The Beatles"),
            make_track("Hey Jude", "The Beatles", file_name="jude.mp3"),
            make_track("夜曲", "周杰伦"),
            make_track("Duet", "Singer A/Singer B"),
            make_track("Song - Part 2", "Band"),
        ]

    def test_exact_match_with_artist(self):
        result = match_tracks("Yesterday - The Beatles", self.tracks)
        assert [t.name for t in result.matched] == ["Yesterday"]
        assert result.unmatched == []

    def test_every_library_track_matches_itself(self):
        """Each track is found by its own "Title - Artist" line"""
        matcher = TextMatcher(self.tracks)
        for track in self.tracks:
            line = f"{track.name} - {track.artist.replace('/', ' & ')}"
            assert matcher.match_line(line) is track

    def test_title_only_line(self):
        result = match_tracks("Let It Be", self.tracks)
        assert [t.name for t in result.matched] == ["Let It Be"]

    def test_width_and_case_insensitive(self):
        result = match_tracks("ＹＥＳＴＥＲＤＡＹ - the beatles", self.tracks)
        assert [t.name for t in result.matched] == ["Yesterday"]

    def test_last_separator_wins(self):
        """Titles containing " - " survive"""
        result = match_tracks("Song - Part 2 - Band", self.tracks)
        assert [t.name for t in result.matched] == ["Song - Part 2"]

    def test_partial_artist_name(self):
        """An input artist may be part of a longer name"""
        result = match_tracks("Yesterday - Beatles", self.tracks)
        assert [t.name for t in result.matched] == ["Yesterday"]

    def test_every_input_artist_must_match(self):
        assert match_tracks("Duet - Singer A & Singer B", self.tracks).matched
        assert not match_tracks("Duet - Singer A & Nobody", self.tracks).matched

    def test_wrong_artist(self):
        result = match_tracks("Yesterday - Queen", self.tracks)
        assert result.matched == []
        assert result.unmatched == ["Yesterday - Queen"]

    def test_exact_rejects_partial_title(self):
        assert not match_tracks("Yester - The Beatles", self.tracks).matched

    def test_fuzzy_accepts_partial_title(self):
        result = match_tracks("Yester - The Beatles", self.tracks, fuzzy=True)
        assert [t.name for t in result.matched] == ["Yesterday"]

    def test_fuzzy_prefers_exact(self):
        tracks = [make_track("Love Song", "X"), make_track("Love", "X")]
        result = match_tracks("Love - X", tracks, fuzzy=True)
        assert [t.name for t in result.matched] == ["Love"]

    def test_tie_prefers_higher_bitrate(self):
        low = make_track("Same", "X", size=1, bitrate=128000)
        high = make_track("Same", "X", size=2, bitrate=320000)
        result = match_tracks("Same - X", [low, high])
        assert result.matched == [high]

    def test_duplicates_returned_once(self):
        """Several lines resolving to one track give one result"""
        text = "Yesterday - The Beatles\nyesterday\n\n  Yesterday - Beatles  "
        result = match_tracks(text, self.tracks)
        assert len(result.matched) == 1
        assert len({t.fingerprint for t in result.matched}) == len(result.matched)

    def test_unmatched_lines_stripped(self):
        result = match_tracks("  Nothing Here  \n\n", self.tracks)
        assert result.unmatched == ["Nothing Here"]

    def test_cjk(self):
        result = match_tracks("夜曲 - 周杰伦", self.tracks)
        assert [t.name for t in result.matched] == ["夜曲"]

    def test_traditional_folding(self):
        tracks = [make_track("爱", "歌手")]
        assert not match_tracks("愛 - 歌手", tracks).matched
        assert match_tracks("愛 - 歌手", tracks, normalizer=TextNormalizer(fold_traditional=True)).matched

    def test_empty_separator_artist_falls_back_to_title(self):
        result = match_tracks("Hey Jude - /", self.tracks)
        assert [t.name for t in result.matched] == ["Hey Jude"]
