from trackparty.application.selection import PoolEntry, quota_per_member, select_balanced
from trackparty.domain.entities import AttributionSource, SourceType
from trackparty.tests.fakes import make_track


def entry(track_id, *member_ids):
    return PoolEntry(
        track=make_track(track_id),
        sources=[AttributionSource(m, m.upper(), SourceType.LIKED) for m in member_ids],
    )


class TestQuota:

    def test_ceiling_division(self):
        assert quota_per_member(10, 3) == 4
        assert quota_per_member(9, 3) == 3
        assert quota_per_member(1, 4) == 1

    def test_no_members(self):
        assert quota_per_member(10, 0) == 0


class TestSelectBalanced:
    """Tests for the two-pass balanced selection."""

    def test_every_member_reaches_quota_in_first_pass(self):
        pool = []
        for i in range(10):
            for member in ("a", "b", "c"):
                pool.append(entry(f"{member}{i}", member))

        selection = select_balanced(pool, ["a", "b", "c"], 9)

        assert len(selection.tracks) == 9
        assert selection.member_counts == {"a": 3, "b": 3, "c": 3}
        assert selection.fill_pass_count == 0

    def test_prolific_member_does_not_crowd_out_others(self):
        pool = [entry(f"a{i}", "a") for i in range(20)] + [entry("b0", "b"), entry("b1", "b")]

        selection = select_balanced(pool, ["a", "b"], 6)

        ids = [t.id for t in selection.tracks]
        assert "b0" in ids and "b1" in ids
        assert selection.first_pass_count == 5
        assert selection.fill_pass_count == 1
        assert len(ids) == 6

    def test_shared_track_credits_every_contributor(self):
        pool = [entry("shared", "a", "b"), entry("a1", "a"), entry("b1", "b")]

        selection = select_balanced(pool, ["a", "b"], 2)

        assert [t.id for t in selection.tracks] == ["shared", "a1"]
        assert selection.member_counts == {"a": 1, "b": 1}
        assert [s.user_id for s in selection.attributions["shared"].sources] == ["a", "b"]

    def test_shared_track_taken_when_only_one_contributor_is_under_quota(self):
        pool = [entry("a1", "a"), entry("shared", "a", "b")]

        selection = select_balanced(pool, ["a", "b"], 2)

        assert [t.id for t in selection.tracks] == ["a1", "shared"]
        assert selection.member_counts == {"a": 2, "b": 1}

    def test_fill_pass_preserves_pool_order(self):
        pool = [entry("a1", "a"), entry("a2", "a"), entry("a3", "a"), entry("b1", "b")]

        selection = select_balanced(pool, ["a", "b"], 4)

        assert [t.id for t in selection.tracks] == ["a1", "a2", "b1", "a3"]

    def test_never_exceeds_target(self):
        pool = [entry(f"t{i}", "a") for i in range(10)]
        selection = select_balanced(pool, ["a"], 4)
        assert len(selection.tracks) == 4

    def test_small_pool_returns_everything_once(self):
        pool = [entry("t1", "a"), entry("t2", "b")]
        selection = select_balanced(pool, ["a", "b"], 100)
        assert [t.id for t in selection.tracks] == ["t1", "t2"]
        assert set(selection.attributions) == {"t1", "t2"}
