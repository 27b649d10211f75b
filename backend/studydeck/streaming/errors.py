"""Stream-level failures.

Record-level problems (bad JSON, missing required fields) never reach this
module: the decoder drops them and the stream goes on.
"""

from studydeck.schemas.presentation import PartialPresentation


class PresentationStreamError(Exception):
    """Terminal failure of one generation stream.

    ``partial`` is the last snapshot assembled before the failure, so callers
    can still show whatever was generated.
    """

    def __init__(self, message: str, partial: PartialPresentation | None = None):
        super().__init__(message)
        self.partial = partial

    @property
    def has_usable_partial(self) -> bool:
        return self.partial is not None and len(self.partial.slides) > 0


class StreamTransportError(PresentationStreamError):
    """The upstream chunk source failed mid-stream."""


class PresentationValidationError(PresentationStreamError):
    """The stream finished but produced no title or no slides."""
