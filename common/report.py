"""Reporting abstraction for timesync-testkit."""

from abc import ABC, abstractmethod


class Report(ABC):
    """Abstract base class for printed reports."""

    @abstractmethod
    def print(self) -> None:
        """Print the report to stdout."""
        pass

    @abstractmethod
    def success(self) -> bool:
        """Return True if the report indicates success."""
        pass
