# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
import logging

import pytest

from rtlint import driver


@pytest.fixture(autouse=True)
def _detach_cli_log_handler():
	"""
	`main()` installs a stderr handler on the `rtlint` logger.

	Captured streams are closed between tests, so drop the handler afterwards
	rather than letting the next test log into a stale stream.
	"""
	yield
	if driver._handler is not None:
		logging.getLogger("rtlint").removeHandler(driver._handler)
		driver._handler = None
