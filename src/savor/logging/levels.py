"""
HUMAN logging level -- readable trace of an evolution cycle.

Custom level between INFO (20) and WARNING (30). It does not mean
severity: it marks the few events a writer wants to follow (draft
requested, analysis ready, skill evolved) without technical noise.

Hierarchy:
    debug  (10) -> prompts, raw payloads, timing
    info   (20) -> store operations (skill created, record saved)
    human  (25) -> * what the cycle does: draft, edit, diff, analysis, commit
    warn   (30) -> non-fatal problems (lineage repaired, no API key)
    error  (40) -> errors
"""

import logging

import structlog

HUMAN = 25
logging.addLevelName(HUMAN, "HUMAN")


def _human_method(self, message, *args, **kwargs):
    if self.isEnabledFor(HUMAN):
        self._log(HUMAN, message, args, **kwargs)


# stdlib loggers get a .human() method like .info()
logging.Logger.human = _human_method

# structlog's filtering tables do not know level 25
try:
    structlog.stdlib.LEVEL_TO_NAME[HUMAN] = "human"
except AttributeError:
    pass

# Before configure_logging runs, events go to PrintLogger, which has one
# method per known level name
if not hasattr(structlog.PrintLogger, "human"):
    structlog.PrintLogger.human = structlog.PrintLogger.msg
