import pytest

from trackparty.domain.entities import (
    AggregationResult,
    Album,
    Attribution,
    AttributionSource,
    ExplicitPreference,
    Member,
    NoPreference,
    SourceType,
    Track,
    base_member_id,
    normalize_preference,
)


class TestNormalizePreference:
    """Tests for collapsing preferences into the tagged variant."""

    def test_none_becomes_no_preference(self):
        assert normalize_preference(None) == NoPreference()

    def test_all_flags_false_becomes_no_preference(self):
        preference = ExplicitPreference(playlist_id="p1")
        assert normalize_preference(preference) == NoPreference()

    def test_explicit_preference_with_a_flag_is_kept(self):
        preference = ExplicitPreference(include_recent=True)
        assert normalize_preference(preference) is preference

    def test_playlist_flag_without_id_stays_explicit(self):
        preference = ExplicitPreference(include_playlist=True)
        assert normalize_preference(preference) is preference


class TestMemberIds:

    @pytest.mark.parametrize("member_id,expected", [
        ("user1", "user1"),
        ("user1#participant", "user1"),
        ("user1#a#b", "user1"),
    ])
    def test_base_member_id_strips_suffix(self, member_id, expected):
        assert base_member_id(member_id) == expected

    def test_member_base_id(self):
        assert Member(id="host#participant", role="player").base_id == "host"


class TestTrack:

    def test_release_year_parsed_from_date(self):
        track = Track(id="t1", album=Album(release_date="1999-12-31"))
        assert track.release_year == 1999

    def test_release_year_accepts_year_only_precision(self):
        assert Track(id="t1", album=Album(release_date="2004")).release_year == 2004

    def test_release_year_missing(self):
        assert Track(id="t1").release_year is None

    def test_to_json_uses_catalog_shape(self):
        track = Track(id="t1", title="Song", artists=["A", "B"], duration_ms=1000)
        data = track.to_json()
        assert data["name"] == "Song"
        assert data["artists"] == [{"name": "A"}, {"name": "B"}]
        assert data["preview_url"] is None


class TestAggregationResult:

    def _result(self):
        t1, t2, t3 = Track(id="t1"), Track(id="t2"), Track(id="t3")
        return AggregationResult(
            tracks=[t1, t2, t3],
            by_member={"a": ["t1", "t2"], "b": ["t2", "t3"]},
            attributions={
                "t1": Attribution("t1", [AttributionSource("a", "Ann", SourceType.LIKED)]),
                "t2": Attribution("t2", [
                    AttributionSource("b", "Bob", SourceType.TOP_TRACKS),
                    AttributionSource("a", "Ann", SourceType.LIKED),
                ]),
                "t3": Attribution("t3", [
                    AttributionSource("b", "Bob", SourceType.PLAYLIST, "Road Trip"),
                ]),
            },
        )

    def test_empty_result(self):
        result = AggregationResult()
        assert result.is_empty
        assert result.to_json() == {"tracks": [], "byUser": {}, "attributions": {}}

    def test_primary_contributions_count_first_source(self):
        assert self._result().primary_contributions() == {"a": 1, "b": 2}

    def test_to_json_uses_camel_case_keys(self):
        data = self._result().to_json()
        assert data["byUser"] == {"a": ["t1", "t2"], "b": ["t2", "t3"]}
        assert data["attributions"]["t3"] == {
            "trackId": "t3",
            "sources": [{
                "userId": "b",
                "userName": "Bob",
                "sourceType": "playlist",
                "sourceDetail": "Road Trip",
            }],
        }
        assert "sourceDetail" not in data["attributions"]["t1"]["sources"][0]
