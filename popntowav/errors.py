class PopnToWavError(Exception):
    """Base class for everything the converter raises on purpose."""


class FormatError(PopnToWavError):
    """Malformed or truncated archive/chart data."""


class DecodeError(PopnToWavError):
    """Structurally invalid compressed keysound payload."""


class ResampleError(PopnToWavError):
    """Sample-rate conversion failed."""


class ExtractError(PopnToWavError):
    """The external ifs extraction step failed."""


class MissingChartError(PopnToWavError):
    """
    The requested difficulty is not in the package.
    This is the one user-actionable failure, so it carries what *is* available.
    """

    def __init__(self, difficulty, available):
        self.difficulty = difficulty
        self.available = list(available)
        listing = ", ".join(self.available) if self.available else "none"
        super().__init__(f"no {difficulty} chart. available charts: {listing}")
