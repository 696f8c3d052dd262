"""Trigger gate: push / pr / schedule / manual admission."""

from datetime import datetime, timezone

import pytest

from matrixci import ConfigurationError, Event, EventKind, TriggerGate, branches, schedule, triggers


def at(y, mo, d, h=0, mi=0):
    return datetime(y, mo, d, h, mi, tzinfo=timezone.utc)


@pytest.fixture
def gate():
    return TriggerGate(
        triggers(
            push=["master"],
            pr=["master", "release/*"],
            schedules=[schedule("0 0 * * *", ["master", "develop"], display_name="Daily midnight build")],
        )
    )


class TestPush:
    def test_included_branch_admitted(self, gate):
        d = gate.admit(Event(kind=EventKind.PUSH, branch="master"))
        assert d.admitted
        assert d.branch == "master"
        assert d.batched is False

    def test_full_ref_is_normalized(self, gate):
        d = gate.admit(Event(kind=EventKind.PUSH, branch="refs/heads/master"))
        assert d.admitted
        assert d.branch == "master"

    def test_other_branch_rejected(self, gate):
        d = gate.admit(Event(kind=EventKind.PUSH, branch="feature/x"))
        assert not d.admitted
        assert "not in push include-list" in d.reason

    def test_every_push_is_its_own_run(self, gate):
        decisions = [gate.admit(Event(kind=EventKind.PUSH, branch="master")) for _ in range(3)]
        assert all(d.admitted and not d.batched for d in decisions)

    def test_batch_flag_is_reported(self):
        g = TriggerGate(triggers(push=["master"], batch=True))
        assert g.admit(Event(kind=EventKind.PUSH, branch="master")).batched

    def test_exclude_wins(self):
        g = TriggerGate(triggers(push=branches(["release/*"], exclude=["release/old*"])))
        assert g.admit(Event(kind=EventKind.PUSH, branch="release/1.0")).admitted
        assert not g.admit(Event(kind=EventKind.PUSH, branch="release/old-1")).admitted


class TestPullRequest:
    def test_destination_branch_must_match(self, gate):
        assert gate.admit(Event(kind=EventKind.PULL_REQUEST, branch="master", source_branch="fix")).admitted
        assert gate.admit(Event(kind=EventKind.PULL_REQUEST, branch="release/2.0")).admitted
        assert not gate.admit(Event(kind=EventKind.PULL_REQUEST, branch="develop")).admitted

    def test_independent_of_push_rule(self):
        g = TriggerGate(triggers(push=["master"], pr=["develop"]))
        assert g.admit(Event(kind=EventKind.PULL_REQUEST, branch="develop")).admitted
        assert not g.admit(Event(kind=EventKind.PULL_REQUEST, branch="master")).admitted


class TestSchedule:
    def test_matching_tick_binds_first_branch(self, gate):
        d = gate.admit(Event(kind=EventKind.SCHEDULE, at=at(2024, 3, 5)))
        assert d.admitted
        assert d.branch == "master"
        assert d.reason == "Daily midnight build"

    def test_non_matching_tick_rejected(self, gate):
        assert not gate.admit(Event(kind=EventKind.SCHEDULE, at=at(2024, 3, 5, 12, 30))).admitted

    def test_cron_must_be_a_configured_schedule(self, gate):
        tick = at(2024, 3, 5)
        assert gate.admit(Event(kind=EventKind.SCHEDULE, at=tick, cron="0 0 * * *")).admitted
        assert not gate.admit(Event(kind=EventKind.SCHEDULE, at=tick, cron="0 0 * * 1")).admitted

    def test_schedule_without_branches_never_runs(self):
        g = TriggerGate(triggers(schedules=[schedule("* * * * *")]))
        assert not g.admit(Event(kind=EventKind.SCHEDULE, at=at(2024, 1, 1))).admitted

    def test_each_binding_gives_one_decision_per_branch(self):
        g = TriggerGate(
            triggers(schedules=[schedule("0 0 * * *", ["master", "develop", "release/*"])], schedule_binding="each")
        )
        decisions = g.decisions(Event(kind=EventKind.SCHEDULE, at=at(2024, 1, 1)))
        assert [d.branch for d in decisions] == ["master", "develop"]

    def test_first_binding_skips_globs_and_excluded_branches(self):
        g = TriggerGate(
            triggers(schedules=[schedule("0 0 * * *", branches(["release/*", "legacy", "master"], exclude=["legacy"]))])
        )
        d = g.admit(Event(kind=EventKind.SCHEDULE, at=at(2024, 1, 1)))
        assert d.admitted
        assert d.branch == "master"

    def test_first_binding_with_only_globs_is_rejected(self):
        g = TriggerGate(triggers(schedules=[schedule("0 0 * * *", ["release/*"])]))
        assert not g.admit(Event(kind=EventKind.SCHEDULE, at=at(2024, 1, 1))).admitted

    def test_branch_override_must_be_included(self, gate):
        tick = at(2024, 1, 1)
        assert gate.admit(Event(kind=EventKind.SCHEDULE, at=tick, branch="develop")).branch == "develop"
        assert not gate.admit(Event(kind=EventKind.SCHEDULE, at=tick, branch="feature")).admitted


class TestManual:
    def test_manual_defaults_to_first_push_branch(self, gate):
        d = gate.admit(Event(kind=EventKind.MANUAL))
        assert d.admitted and d.branch == "master"

    def test_manual_explicit_branch(self, gate):
        assert gate.admit(Event(kind=EventKind.MANUAL, branch="feature/x")).branch == "feature/x"

    def test_manual_without_any_branch(self):
        assert not TriggerGate(triggers()).admit(Event(kind=EventKind.MANUAL)).admitted


class TestConfig:
    def test_invalid_cron_is_configuration_error(self):
        with pytest.raises(ConfigurationError, match="invalid trigger configuration"):
            triggers(schedules=[schedule("0 25 * * *", ["master"])])

    def test_config_is_immutable(self, gate):
        with pytest.raises(Exception):
            gate.config.schedule_binding = "each"
