"""Job runner: ordering, fail-fast, skips, env propagation, timeouts, cancellation."""

import sys
import threading

import pytest

from matrixci import ActionResult, Status, axis, os_is, os_is_not, sh, step, value, variant
from matrixci.agents import Agent
from matrixci.errors import ErrorKind
from matrixci.matrix import expand
from matrixci.model import Job
from matrixci.runner import JobRunner

AGENT = Agent("agent-1", 0)


def ok(ctx):
    return 0


def fail(ctx):
    return 3


def make_job(steps, platform="Linux"):
    cells = expand([axis("IMAGE", img=value("image", AGENT_OS=platform))])
    return Job(cell=cells[0], steps=steps)


def runner(**kw):
    kw.setdefault("poll_interval", 0.01)
    return JobRunner(**kw)


class TestOrdering:
    def test_all_pass(self):
        job = make_job([sh("a", ok), sh("b", ok)])
        assert runner().run(job, AGENT) is Status.PASSED
        assert job.statuses == [Status.PASSED, Status.PASSED]
        assert job.agent == "agent-1"

    def test_steps_run_in_declared_order(self):
        seen = []
        job = make_job([sh(n, lambda ctx, n=n: seen.append(n)) for n in "abcd"])
        runner().run(job, AGENT)
        assert seen == ["a", "b", "c", "d"]

    def test_fail_fast(self):
        ran = []
        job = make_job([sh("s1", ok), sh("s2", fail), sh("s3", lambda ctx: ran.append("s3"))])
        verdict = runner().run(job, AGENT)
        assert verdict is Status.FAILED
        assert job.statuses == [Status.PASSED, Status.FAILED, Status.SKIPPED]
        assert job.error is ErrorKind.STEP_FAILURE
        assert job.records[1].exit_code == 3
        assert ran == []

    def test_bool_and_result_return_values(self):
        job = make_job([sh("a", lambda ctx: True), sh("b", lambda ctx: ActionResult(0)), sh("c", lambda ctx: False)])
        assert runner().run(job, AGENT) is Status.FAILED
        assert job.statuses == [Status.PASSED, Status.PASSED, Status.FAILED]


class TestPlatformDispatch:
    def test_non_applicable_step_is_skipped_and_job_passes(self):
        job = make_job([sh("win only", fail, when=os_is("Windows_NT")), sh("build", ok)])
        assert runner().run(job, AGENT) is Status.PASSED
        assert job.statuses == [Status.SKIPPED, Status.PASSED]

    def test_removing_non_applicable_steps_keeps_verdict(self):
        steps = [sh("win", fail, when=os_is("Windows_NT")), sh("build", ok), sh("test", fail)]
        full = make_job(steps)
        trimmed = make_job([s for s in steps if s.resolve(full.platform) is not None])
        assert runner().run(full, AGENT) is runner().run(trimmed, AGENT) is Status.FAILED

    def test_variant_chosen_by_platform(self):
        seen = []
        install = step(
            "install",
            variant(os_is_not("Windows_NT"), lambda ctx: seen.append("posix")),
            variant(os_is("Windows_NT"), lambda ctx: seen.append("windows")),
        )
        runner().run(make_job([install], platform="Windows_NT"), AGENT)
        runner().run(make_job([install], platform="Darwin"), AGENT)
        assert seen == ["windows", "posix"]


class TestEnvironment:
    def test_published_variable_visible_to_later_steps(self):
        seen = {}
        job = make_job([
            sh("s1", lambda ctx: ctx.publish("X", 1)),
            sh("s2", lambda ctx: seen.update(x=ctx.env.get("X"))),
        ])
        runner().run(job, AGENT)
        assert seen == {"x": "1"}
        assert job.env["X"] == "1"

    def test_skipped_step_publishes_nothing(self):
        seen = {}
        job = make_job([
            sh("s1", lambda ctx: ctx.publish("X", 1), when=os_is("Windows_NT")),
            sh("s2", lambda ctx: seen.update(has_x="X" in ctx.env)),
        ])
        runner().run(job, AGENT)
        assert seen == {"has_x": False}

    def test_later_write_shadows_earlier(self):
        seen = []
        job = make_job([
            sh("s1", lambda ctx: ctx.publish("X", "a")),
            sh("s2", lambda ctx: ctx.publish("X", "b")),
            sh("s3", lambda ctx: seen.append(ctx.env["X"])),
        ])
        runner().run(job, AGENT)
        assert seen == ["b"]

    def test_failed_step_emissions_are_dropped(self):
        def publish_then_fail(ctx):
            ctx.publish("X", "1")
            return 1

        job = make_job([sh("s1", publish_then_fail)])
        runner().run(job, AGENT)
        assert "X" not in job.env

    def test_undeclared_emission_ignored(self):
        def publish_two(ctx):
            ctx.publish("PATH_EXTRA", "/opt")
            ctx.publish("SECRET", "nope")

        job = make_job([sh("s1", publish_two, publishes=["PATH_EXTRA"])])
        runner().run(job, AGENT)
        assert job.env.get("PATH_EXTRA") == "/opt"
        assert "SECRET" not in job.env

    def test_seed_env_contains_cell_values(self):
        seen = {}
        job = make_job([sh("s1", lambda ctx: seen.update(ctx.env))])
        runner().run(job, AGENT)
        assert seen["IMAGE"] == "image"
        assert seen["AGENT_OS"] == "Linux"


class TestTimeoutAndErrors:
    def test_timeout_fails_job(self):
        def slow(ctx):
            ctx.cancelled.wait(5)

        job = make_job([sh("slow", slow, timeout=0.1), sh("after", ok)])
        assert runner().run(job, AGENT) is Status.FAILED
        assert job.statuses == [Status.FAILED, Status.SKIPPED]
        assert job.error is ErrorKind.TIMEOUT
        assert job.records[0].error is ErrorKind.TIMEOUT

    def test_runner_default_timeout(self):
        job = make_job([sh("slow", lambda ctx: ctx.cancelled.wait(5))])
        assert runner(default_timeout=0.1).run(job, AGENT) is Status.FAILED
        assert job.error is ErrorKind.TIMEOUT

    def test_exception_in_action_is_infrastructure_error(self):
        def boom(ctx):
            raise RuntimeError("agent lost")

        job = make_job([sh("boom", boom), sh("after", ok)])
        assert runner().run(job, AGENT) is Status.FAILED
        assert job.error is ErrorKind.INFRASTRUCTURE
        assert job.statuses == [Status.FAILED, Status.SKIPPED]

    def test_sys_exit_status_fails_step(self):
        job = make_job([sh("exit", lambda ctx: sys.exit(2)), sh("after", ok)])
        assert runner().run(job, AGENT) is Status.FAILED
        assert job.statuses == [Status.FAILED, Status.SKIPPED]
        assert job.error is ErrorKind.STEP_FAILURE
        assert job.records[0].exit_code == 2

    def test_sys_exit_with_message_is_exit_code_one(self):
        job = make_job([sh("exit", lambda ctx: sys.exit("broken toolchain"))])
        assert runner().run(job, AGENT) is Status.FAILED
        assert job.records[0].exit_code == 1

    def test_bare_sys_exit_passes(self):
        job = make_job([sh("exit", lambda ctx: sys.exit())])
        assert runner().run(job, AGENT) is Status.PASSED

    def test_zero_output_tail_keeps_nothing(self):
        def chatty(ctx):
            ctx.log("hello")

        job = make_job([sh("chatty", chatty)])
        runner(output_tail=0).run(job, AGENT)
        assert job.records[0].output == ""

        job = make_job([sh("chatty", chatty)])
        runner(output_tail=3).run(job, AGENT)
        assert job.records[0].output == "llo"

    def test_missing_cwd_is_infrastructure_error(self, tmp_path):
        job = make_job([sh("build", "true", cwd="does-not-exist")])
        assert runner(workdir=tmp_path).run(job, AGENT) is Status.FAILED
        assert job.error is ErrorKind.INFRASTRUCTURE


class TestCancellation:
    def test_cancel_mid_job(self):
        started = threading.Event()
        cancel = threading.Event()

        def third(ctx):
            started.set()
            ctx.cancelled.wait(5)

        job = make_job([sh("s1", ok), sh("s2", ok), sh("s3", third), sh("s4", ok), sh("s5", ok)])
        r = runner(cancel_event=cancel)
        t = threading.Thread(target=r.run, args=(job, AGENT))
        t.start()
        assert started.wait(5)
        cancel.set()
        t.join(5)

        assert job.verdict is Status.CANCELLED
        assert job.statuses == [
            Status.PASSED,
            Status.PASSED,
            Status.CANCELLED,
            Status.SKIPPED,
            Status.SKIPPED,
        ]
        assert job.error is ErrorKind.CANCELLED

    def test_cancel_before_start(self):
        cancel = threading.Event()
        cancel.set()
        job = make_job([sh("s1", ok), sh("s2", ok)])
        assert runner(cancel_event=cancel).run(job, AGENT) is Status.CANCELLED
        assert job.statuses == [Status.SKIPPED, Status.SKIPPED]


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell commands")
class TestShellActions:
    def test_exit_status(self, tmp_path):
        job = make_job([sh("ok", "true"), sh("bad", "exit 4"), sh("never", "true")])
        assert runner(workdir=tmp_path).run(job, AGENT) is Status.FAILED
        assert job.statuses == [Status.PASSED, Status.FAILED, Status.SKIPPED]
        assert job.records[1].exit_code == 4

    def test_emission_line_publishes_variable(self, tmp_path):
        job = make_job([
            sh("set", 'echo "##vso[task.setvariable variable=GREETING;]hello world"'),
            sh("check", 'test "$GREETING" = "hello world"'),
        ])
        assert runner(workdir=tmp_path).run(job, AGENT) is Status.PASSED
        assert job.env["GREETING"] == "hello world"

    def test_cell_values_exported(self, tmp_path):
        job = make_job([sh("check", 'test "$AGENT_OS" = Linux && test "$IMAGE" = image')])
        assert runner(workdir=tmp_path).run(job, AGENT) is Status.PASSED

    def test_shell_timeout_kills_process(self, tmp_path):
        job = make_job([sh("sleep", "sleep 30", timeout=0.2)])
        assert runner(workdir=tmp_path).run(job, AGENT) is Status.FAILED
        assert job.error is ErrorKind.TIMEOUT
        assert job.records[0].duration < 10
