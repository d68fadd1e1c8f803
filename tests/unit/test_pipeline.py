# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import pytest

from pgoperator.controller.pipeline import Pipeline, PipelineHalt


def boom():
    raise RuntimeError("boom")


def halt():
    raise PipelineHalt("already done")


def test_steps_run_in_order(logger) -> None:
    ran = []
    result = (Pipeline("p", logger)
              .add("a", lambda: ran.append("a") or 1)
              .add("b", lambda: ran.append("b") or 2)
              .run())

    assert ran == ["a", "b"]
    assert result.ok
    assert not result.aborted
    assert result.step("b").value == 2
    assert result.error is None


def test_fatal_failure_stops_the_run(logger) -> None:
    ran = []
    result = (Pipeline("p", logger)
              .add("a", lambda: ran.append("a"))
              .add("b", boom)
              .add("c", lambda: ran.append("c"))
              .run())

    assert ran == ["a"]
    assert result.aborted
    assert result.failed_step.name == "b"
    assert isinstance(result.error, RuntimeError)
    assert not result.ran("c")


def test_non_fatal_failure_continues(logger) -> None:
    ran = []
    result = (Pipeline("p", logger)
              .add("a", boom, fatal=False)
              .add("b", lambda: ran.append("b"))
              .run())

    assert ran == ["b"]
    assert not result.aborted
    assert not result.ok
    assert result.failed_step.name == "a"
    assert len(result.errors) == 1


def test_halt_ends_without_error(logger) -> None:
    ran = []
    result = (Pipeline("p", logger)
              .add("check", halt)
              .add("a", lambda: ran.append("a"))
              .run())

    assert ran == []
    assert result.halted
    assert result.ok
    assert not result.aborted


def test_nothing_is_rolled_back(logger) -> None:
    assert Pipeline.FAIL_FAST is True
    assert Pipeline.ROLLBACK is False

    created = []
    result = (Pipeline("p", logger)
              .add("create", lambda: created.append("claim"))
              .add("fail", boom)
              .run())

    assert result.aborted
    assert created == ["claim"]


@pytest.mark.parametrize("fatal", [True, False])
def test_step_results_record_fatality(logger, fatal) -> None:
    result = Pipeline("p", logger).add("a", boom, fatal=fatal).run()

    assert result.step("a").fatal == fatal
    assert result.aborted == fatal
