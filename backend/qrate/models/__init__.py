from qrate.models.event import Event
from qrate.models.preference import GuestPreference
from qrate.models.event_song import EventSong
from qrate.models.event_session import EventSession
from qrate.models.song_request import SongRequest, RequestVote, GuestRequestQuota
from qrate.models.request_settings import RequestSettings
from qrate.models.request_metric import RequestMetric

__all__ = [
    "Event", "GuestPreference", "EventSong", "EventSession",
    "SongRequest", "RequestVote", "GuestRequestQuota",
    "RequestSettings", "RequestMetric",
]
