class LearnitError(Exception):
    """Base class for errors reported back to API callers."""


class FileReadError(LearnitError):
    pass


class ExtractionError(LearnitError):
    pass


class GenerationError(LearnitError):
    pass
