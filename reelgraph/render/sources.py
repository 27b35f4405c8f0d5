"""Source resolution: turn a clip's source id into readable media."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

import httpx

from reelgraph.config import get_settings
from reelgraph.exceptions import MissingSourceError
from reelgraph.utils.media_info import has_audio_track

logger = logging.getLogger(__name__)


def _is_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


class SourceResolver(ABC):
    """Looks up where a source lives and fetches its bytes."""

    @abstractmethod
    def locate(self, source_id: str) -> str | None:
        """Local path or URL of the source, or None when it is unknown."""

    def has_audio(self, source_id: str) -> bool:
        """Whether the source carries an audio stream worth mixing."""
        return True

    def fetch_source(self, source_id: str) -> bytes:
        location = self.locate(source_id)
        if location is None:
            raise MissingSourceError(source_id)
        if _is_url(location):
            resp = httpx.get(location, timeout=get_settings().job_queue_timeout_s, follow_redirects=True)
            if resp.status_code == 404:
                raise MissingSourceError(source_id)
            resp.raise_for_status()
            return resp.content
        try:
            return Path(location).read_bytes()
        except FileNotFoundError:
            raise MissingSourceError(source_id) from None


class MappingSourceResolver(SourceResolver):
    """Resolves from an explicit source id -> path/URL mapping.

    Sources listed in ``silent`` are treated as having no audio stream.
    """

    def __init__(self, locations: dict[str, str], silent: set[str] | None = None):
        self.locations = dict(locations)
        self.silent = set(silent or ())

    def locate(self, source_id: str) -> str | None:
        return self.locations.get(source_id)

    def has_audio(self, source_id: str) -> bool:
        return source_id not in self.silent


class DirectorySourceResolver(SourceResolver):
    """Resolves source ids to files in a local directory.

    A file named exactly after the id wins; otherwise the first file whose
    stem equals the id (any extension) is used. Audio presence is probed
    with ffprobe.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def locate(self, source_id: str) -> str | None:
        exact = self.root / source_id
        if exact.is_file():
            return str(exact)
        for candidate in sorted(self.root.glob(f"{source_id}.*")):
            if candidate.is_file():
                return str(candidate)
        logger.debug(f"[COMPILE] Source {source_id} not found under {self.root}")
        return None

    def has_audio(self, source_id: str) -> bool:
        location = self.locate(source_id)
        return location is not None and has_audio_track(location)
