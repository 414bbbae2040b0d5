#!/usr/bin/env python3
"""
Tests for the scheduled harvest triggers.
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from processing.batch import JobExecutionAlreadyRunningError
from processing.models import BatchStatus
from processing.scheduler import (
    build_scheduler,
    run_scheduled_harvest,
    run_scheduled_recovery,
)


def test_both_triggers_registered():
    scheduler = build_scheduler(MagicMock())

    jobs = {job.id: job for job in scheduler.get_jobs()}

    assert set(jobs) == {"harvest_full_run", "harvest_recovery"}
    assert jobs["harvest_full_run"].func is run_scheduled_harvest
    assert jobs["harvest_recovery"].func is run_scheduled_recovery
    assert jobs["harvest_full_run"].max_instances == 1


def test_full_run_trigger_never_raises():
    coordinator = MagicMock()
    coordinator.run_now.side_effect = JobExecutionAlreadyRunningError("saraminJob", 3)

    run_scheduled_harvest(coordinator)

    coordinator.run_now.assert_called_once_with()


def test_full_run_trigger_calls_coordinator():
    coordinator = MagicMock()
    coordinator.run_now.return_value = BatchStatus.COMPLETED

    run_scheduled_harvest(coordinator)

    coordinator.run_now.assert_called_once_with()


def test_recovery_trigger_calls_coordinator():
    coordinator = MagicMock()

    run_scheduled_recovery(coordinator)

    coordinator.recover_or_run.assert_called_once_with()
