"""Tests for remote-vs-local reconciliation."""
import itertools

from printsync.sync.reconcile import LocalRef, ReconcilePlan, reconcile


def _locals(*pairs):
    return [LocalRef(id=i, remote_id=r) for i, r in pairs]


class TestReconcile:
    def test_create_update_delete_split(self):
        """Remote A,B,D vs local A,B,C: create D, update A,B, delete C."""
        plan = reconcile(["A", "B", "D"], _locals((1, "A"), (2, "B"), (3, "C")))
        assert plan.to_create == ("D",)
        assert set(plan.to_update) == {"A", "B"}
        assert plan.to_delete == (3,)

    def test_identical_sets_only_update(self):
        plan = reconcile(["A", "B"], _locals((1, "A"), (2, "B")))
        assert plan.to_create == ()
        assert plan.to_delete == ()
        assert plan.to_update == ("A", "B")

    def test_empty_remote_deletes_everything(self):
        plan = reconcile([], _locals((1, "A"), (2, "B")))
        assert plan.to_create == ()
        assert plan.to_update == ()
        assert set(plan.to_delete) == {1, 2}

    def test_empty_local_creates_everything(self):
        plan = reconcile(["A", "B"], [])
        assert plan.to_create == ("A", "B")
        assert plan.to_update == ()
        assert plan.to_delete == ()

    def test_both_empty_is_empty_plan(self):
        plan = reconcile([], [])
        assert plan.is_empty
        assert plan == ReconcilePlan((), (), ())

    def test_ids_compared_as_text(self):
        """Printful ids are ints in JSON but stored as text locally."""
        plan = reconcile([301, 302], _locals((1, "301")))
        assert plan.to_update == ("301",)
        assert plan.to_create == ("302",)
        assert plan.to_delete == ()

    def test_duplicate_remote_ids_collapse(self):
        plan = reconcile(["A", "A", "B"], [])
        assert plan.to_create == ("A", "B")

    def test_remote_order_preserved(self):
        plan = reconcile(["C", "A", "B"], [])
        assert plan.to_create == ("C", "A", "B")

    def test_local_primary_keys_never_matched(self):
        """A local id that happens to equal a remote id means nothing."""
        plan = reconcile(["7"], _locals((7, "X")))
        assert plan.to_create == ("7",)
        assert plan.to_delete == (7,)

    def test_membership_independent_of_input_order(self):
        remote = ["A", "B", "D", "E"]
        local = _locals((1, "A"), (2, "B"), (3, "C"), (4, "F"))
        expected = reconcile(remote, local)
        for r in itertools.permutations(remote):
            for loc in itertools.permutations(local):
                plan = reconcile(r, loc)
                assert set(plan.to_create) == set(expected.to_create)
                assert set(plan.to_update) == set(expected.to_update)
                assert set(plan.to_delete) == set(expected.to_delete)

    def test_accepts_generators(self):
        plan = reconcile((r for r in ["A"]), iter(_locals((1, "A"))))
        assert plan.to_update == ("A",)
