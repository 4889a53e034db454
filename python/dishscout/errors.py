"""Failures a scrape can surface to its caller.

Only stage-level failures are exceptions. A capture that sees no matching
request returns ``None`` and a response with no usable cards yields an empty
result; neither is raised.
"""


class ScrapeError(Exception):
    stage = "scrape"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.detail = message


class LaunchError(ScrapeError):
    stage = "launch"


class BrowserShutdownError(LaunchError):
    stage = "shutdown"


class CaptureError(ScrapeError):
    stage = "capture"


class NetworkError(ScrapeError):
    stage = "replay"


class ResponseParseError(ScrapeError):
    stage = "parse"
