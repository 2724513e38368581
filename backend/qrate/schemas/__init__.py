from qrate.schemas.event import EventCreate, EventRecord, EventDetail, EventSessionRecord
from qrate.schemas.preference import PreferenceSubmit, SubmittedTrack, SongEntry, EventInsights
from qrate.schemas.request import (
    SongRequestCreate, SongRequestUpdate, SongRequestRecord, VoteCast, VoteTally,
    TrackFeatures, NextTrack,
)
from qrate.schemas.settings import RequestSettingsUpdate, RequestSettingsRecord
from qrate.schemas.analytics import RequestAnalytics

__all__ = [
    "EventCreate", "EventRecord", "EventDetail", "EventSessionRecord",
    "PreferenceSubmit", "SubmittedTrack", "SongEntry", "EventInsights",
    "SongRequestCreate", "SongRequestUpdate", "SongRequestRecord", "VoteCast", "VoteTally",
    "TrackFeatures", "NextTrack",
    "RequestSettingsUpdate", "RequestSettingsRecord",
    "RequestAnalytics",
]
