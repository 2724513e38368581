"""
Pydantic schemas for guest preferences and the aggregates derived from them.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import Field, model_validator

from qrate.schemas.common import CamelModel, Envelope

UNKNOWN_ARTIST = "Unknown Artist"


class SubmittedTrack(CamelModel):
    """
    One track from a guest's list. Accepts both the streaming-service shape
    (artists as objects, album as object) and a flat manual shape
    (`artist`, `album` as strings).
    """

    id: str = ""
    name: str = ""
    artists: list[str] = []
    album: Optional[str] = None
    popularity: int = Field(0, ge=0)
    preview_url: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def flatten_nested(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        artists = data.get("artists")
        if artists is None:
            data["artists"] = [data["artist"]] if data.get("artist") else []
        elif isinstance(artists, str):
            data["artists"] = [artists]
        elif isinstance(artists, list):
            data["artists"] = [
                (a.get("name") if isinstance(a, dict) else a) or "" for a in artists
            ]
        if isinstance(data.get("album"), dict):
            data["album"] = data["album"].get("name")
        if data.get("id") is None:
            data["id"] = ""
        data["name"] = data.get("name") or data.get("title") or ""
        if data.get("popularity") is None:
            data["popularity"] = 0
        return data

    @property
    def primary_artist(self) -> str:
        return self.artists[0] if self.artists and self.artists[0] else UNKNOWN_ARTIST


class PreferenceSubmit(CamelModel):
    guest_id: Optional[str] = Field(None, max_length=128)
    artists: list[str] = []
    genres: list[str] = []
    recent_tracks: list[Any] = []
    playlists: list[Any] = []
    tracks_data: Optional[list[SubmittedTrack]] = None
    tracks: Optional[list[SubmittedTrack]] = None
    stats: dict[str, Any] = {}
    source: Literal["manual", "spotify"] = "manual"

    @property
    def submitted_tracks(self) -> list[SubmittedTrack]:
        """`tracksData` wins over `tracks` when both are sent."""
        if self.tracks_data is not None:
            return self.tracks_data
        return self.tracks or []


class GuestPreferenceRecord(CamelModel):
    guest_id: str
    artists: list[str] = []
    genres: list[str] = []
    recent_tracks: list[Any] = []
    playlists: list[Any] = []
    tracks_data: list[SubmittedTrack] = []
    stats: dict[str, Any] = {}
    source: str = "manual"
    submitted_at: Optional[datetime] = None


class PreferenceAccepted(Envelope):
    guest_id: str


class SongEntry(CamelModel):
    id: str
    title: str
    artist: str
    album: Optional[str] = None
    frequency: int
    popularity: int = 0
    preview_url: Optional[str] = None


class SongListEnvelope(Envelope):
    songs: list[SongEntry]


class GenreCount(CamelModel):
    name: str
    count: int
    percentage: int


class ArtistCount(CamelModel):
    name: str
    count: int


class SongRecommendation(CamelModel):
    id: str
    title: str
    artist: str
    album: Optional[str] = None
    match_score: int
    reasons: list[str]
    frequency: int
    popularity: int = 0
    preview_url: Optional[str] = None


class EventInsights(CamelModel):
    total_guests: int
    top_genres: list[GenreCount]
    top_artists: list[ArtistCount]
    recommendations: list[SongRecommendation]


class InsightsEnvelope(Envelope):
    insights: EventInsights
