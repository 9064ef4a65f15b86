"""Root of the FilingDesk exception hierarchy."""


class FilingDeskError(Exception):
    """Base exception for FilingDesk failures."""


__all__ = ["FilingDeskError"]
