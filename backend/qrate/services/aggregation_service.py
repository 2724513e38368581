"""
Aggregation engine: crowd-level views over guest preferences.

Rankings read the EventSong counters. When an event has none (counters lost
to a fallback-only write, or preferences imported before counting existed)
the ranking is rebuilt from the stored preference lists, keyed by
(track id or name, primary artist).
"""

import random
from collections import Counter
from typing import Optional

from qrate.core.config import get_settings
from qrate.core.logging import get_logger
from qrate.schemas.preference import (
    ArtistCount, EventInsights, GenreCount, GuestPreferenceRecord, SongEntry, SongRecommendation,
)
from qrate.services.interfaces.store import Entity, Store
from qrate.services.preference_service import track_occurrence

logger = get_logger(__name__)

TOP_GENRES_LIMIT = 5
TOP_ARTISTS_LIMIT = 10
POPULAR_TRACK_THRESHOLD = 70


def _rank(songs: list[SongEntry]) -> list[SongEntry]:
    return sorted(songs, key=lambda s: (-s.frequency, -s.popularity, s.title, s.artist))


def _entry_from_row(row: dict) -> SongEntry:
    return SongEntry(
        id=row.get("track_id") or "",
        title=row["track_name"],
        artist=row["artist_name"],
        album=row.get("album_name"),
        frequency=row["frequency"],
        popularity=row.get("popularity") or 0,
        preview_url=row.get("preview_url"),
    )


def count_from_preferences(preferences: list[GuestPreferenceRecord]) -> list[SongEntry]:
    counted: dict[tuple[str, str], SongEntry] = {}
    for preference in preferences:
        for track in preference.tracks_data:
            occurrence = track_occurrence(track)
            key = (track.id or track.name, occurrence["artist_name"])
            if key in counted:
                counted[key].frequency += 1
                continue
            counted[key] = SongEntry(
                id=track.id,
                title=track.name,
                artist=occurrence["artist_name"],
                album=track.album,
                frequency=1,
                popularity=track.popularity,
                preview_url=track.preview_url,
            )
    return list(counted.values())


async def ranked_songs(store: Store, event_code: str, limit: Optional[int] = None) -> list[SongEntry]:
    """Songs by frequency, then popularity, descending."""
    rows = await store.query(Entity.EVENT_SONG, event_code)
    if rows:
        songs = [_entry_from_row(row) for row in rows]
    else:
        preferences = await store.query(Entity.PREFERENCE, event_code)
        songs = count_from_preferences([GuestPreferenceRecord.model_validate(p) for p in preferences])
        if songs:
            logger.info("song_ranking_recounted", event_code=event_code, songs=len(songs))

    ranked = _rank(songs)
    return ranked[:limit] if limit is not None else ranked


async def top_songs(store: Store, event_code: str) -> list[SongEntry]:
    return await ranked_songs(store, event_code, get_settings().TOP_SONGS_LIMIT)


async def session_pool(
    store: Store,
    event_code: str,
    rng: Optional[random.Random] = None,
) -> list[SongEntry]:
    """
    A random draw from the top of the ranking, for seeding a set.

    Draws without replacement from the distinct (track id, artist) pairs of
    the top SESSION_POOL_SOURCE_LIMIT songs, so it always terminates and
    never repeats a track even when fewer songs exist than requested.
    """
    settings = get_settings()
    ranked = await ranked_songs(store, event_code, settings.SESSION_POOL_SOURCE_LIMIT)

    distinct: dict[tuple[str, str], SongEntry] = {}
    for song in ranked:
        distinct.setdefault((song.id, song.artist), song)

    unique = list(distinct.values())
    return (rng or random).sample(unique, min(settings.SESSION_POOL_SIZE, len(unique)))


def _recommendation(song: SongEntry) -> SongRecommendation:
    plural = "time" if song.frequency == 1 else "times"
    reasons = [
        f"Appeared {song.frequency} {plural} in guest playlists",
        "Top crowd favorite",
        "High popularity track" if song.popularity > POPULAR_TRACK_THRESHOLD else "Crowd-selected",
    ]
    return SongRecommendation(
        id=song.id,
        title=song.title,
        artist=song.artist,
        album=song.album,
        match_score=min(song.frequency * 10, 100),
        reasons=reasons,
        frequency=song.frequency,
        popularity=song.popularity,
        preview_url=song.preview_url,
    )


async def event_insights(store: Store, event_code: str) -> EventInsights:
    records = await store.query(Entity.PREFERENCE, event_code)
    preferences = [GuestPreferenceRecord.model_validate(r) for r in records]
    total_guests = len(preferences)

    genres: Counter = Counter()
    artists: Counter = Counter()
    for preference in preferences:
        genres.update(preference.genres)
        artists.update(preference.artists)

    top_genres = [
        GenreCount(name=name, count=count, percentage=round(count / total_guests * 100))
        for name, count in genres.most_common(TOP_GENRES_LIMIT)
    ]
    top_artists = [
        ArtistCount(name=name, count=count)
        for name, count in artists.most_common(TOP_ARTISTS_LIMIT)
    ]
    songs = await top_songs(store, event_code)

    return EventInsights(
        total_guests=total_guests,
        top_genres=top_genres,
        top_artists=top_artists,
        recommendations=[_recommendation(s) for s in songs],
    )
