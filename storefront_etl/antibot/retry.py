"""Failure taxonomy and retry classification for crawl work items."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

LOGGER = logging.getLogger(__name__)


class ErrorClass(str, Enum):
    """How a failed work item is accounted for."""

    TRANSIENT = "transient"  # network/timeout, retried
    BLOCKED = "blocked"  # bot-block page, never retried
    PARSE = "parse"  # required field missing, never retried
    PERSISTENCE = "persistence"  # store upsert failed, never retried


class CrawlError(Exception):
    """Base class for failures raised while processing a work item."""

    error_class = ErrorClass.TRANSIENT


class TransientFetchError(CrawlError):
    """Navigation or network failure while loading a page."""

    error_class = ErrorClass.TRANSIENT


class BotBlockedError(CrawlError):
    """Fetched page is a captcha or robot-check interstitial."""

    error_class = ErrorClass.BLOCKED


class ParseError(CrawlError):
    """A field required for routing could not be extracted."""

    error_class = ErrorClass.PARSE


class PersistenceError(CrawlError):
    """The record store rejected an upsert."""

    error_class = ErrorClass.PERSISTENCE


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of :func:`classify`."""

    error_class: ErrorClass
    retryable: bool

    @property
    def terminal(self) -> bool:
        return not self.retryable


def classify(error: BaseException) -> RetryDecision:
    """Map an exception to its error class and retry eligibility.

    Parameters
    ----------
    error : BaseException
        Exception raised while processing a work item

    Returns
    -------
    RetryDecision
        Only transient failures are retryable. Exceptions outside the
        :class:`CrawlError` hierarchy are treated as transient.
    """
    if isinstance(error, CrawlError):
        error_class = error.error_class
    else:
        LOGGER.debug("Unclassified %s treated as transient", type(error).__name__)
        error_class = ErrorClass.TRANSIENT
    return RetryDecision(
        error_class=error_class,
        retryable=error_class == ErrorClass.TRANSIENT,
    )
