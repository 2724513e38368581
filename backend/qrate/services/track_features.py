"""
Synthetic track features.

There is no audio analysis behind these. Each track gets a tempo, key,
energy, danceability and genre tags derived from a 32-bit string hash of the
track name immediately followed by the artist name:

    h = int32(h * 31 + code_unit) over the UTF-16 code units, then |h|

    bpm          = clamp(60 + h % 120, 60, 180)
    key          = KEYS[h % 12]
    energy       = clamp(30 + (bpm - 60) / 2 + h % 30, 0, 100)
    danceability = clamp(energy * 0.8 + h % 20, 0, 100)
    genre        = [GENRES[h % 10]] + [GENRES[(h + 7) % 10]] when h % 3 == 0

The numbers are stable for a given (track, artist): a request keeps its
features between polls, and the same track has the same features in every
event.
"""

from qrate.schemas.request import TrackFeatures

KEYS = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")
GENRES = ("Pop", "Rock", "Hip-Hop", "Electronic", "R&B", "Country", "Jazz", "Latin", "Reggae", "Blues")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def string_hash(value: str) -> int:
    """Non-negative 32-bit rolling hash over UTF-16 code units."""
    data = value.encode("utf-16-le")
    h = 0
    for i in range(0, len(data), 2):
        h = (h * 31 + int.from_bytes(data[i:i + 2], "little")) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def derive_synthetic_features(track_name: str, artist_name: str) -> TrackFeatures:
    h = string_hash(track_name + artist_name)

    bpm = int(_clamp(60 + h % 120, 60, 180))
    energy = _clamp(30 + (bpm - 60) / 2 + h % 30, 0, 100)
    danceability = _clamp(energy * 0.8 + h % 20, 0, 100)

    genre = [GENRES[h % 10]]
    if h % 3 == 0:
        genre.append(GENRES[(h + 7) % 10])

    return TrackFeatures(
        bpm=bpm,
        key=KEYS[h % 12],
        energy=energy,
        danceability=danceability,
        genre=genre,
    )
