"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags quota        # Test quota races
  locust -f locustfile.py --tags votes        # Test vote tally races
  locust -f locustfile.py --tags throughput   # Test queue reads
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import random
import string
from locust import HttpUser, task, between, tag, events

API = "/api/v1"

# Shared state
EVENT_CODES = []
LOAD_EVENT_CODE = "LOAD01"
SHARED_GUEST_ID = "guest_quota_race"
HOT_REQUEST_ID = None


def random_guest():
    return "guest_" + "".join(random.choices(string.ascii_lowercase + string.digits, k=10))


def random_track():
    return f"Track {random.randint(1, 5000)}", f"Artist {random.randint(1, 300)}"


def ensure_load_event(client):
    client.post(f"{API}/events", json={
        "name": "Load Test Party",
        "theme": "Load",
        "code": LOAD_EVENT_CODE,
    }, name=f"{API}/events")


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print(f"SETUP: load event {LOAD_EVENT_CODE}")
    print("="*60)


class QuotaRaceUser(HttpUser):
    """
    TEST 1: Quota - every user submits as the SAME guest

    Run: locust -f locustfile.py --tags quota -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM song_requests
      WHERE event_code = 'LOAD01' AND guest_id = 'guest_quota_race';
    Should be <= max_requests_per_guest (10 by default)
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        ensure_load_event(self.client)

    @tag("quota")
    @task
    def submit_as_shared_guest(self):
        track, artist = random_track()
        with self.client.post(f"{API}/events/{LOAD_EVENT_CODE}/requests",
            json={"guestId": SHARED_GUEST_ID, "trackName": track, "artistName": artist},
            name=f"{API}/events/{{code}}/requests [shared guest]",
            catch_response=True
        ) as resp:
            if resp.status_code in (201, 400, 409):
                resp.success()  # 400 quota, 409 duplicate are expected
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class VoteRaceUser(HttpUser):
    """
    TEST 2: Votes - many guests flip-flopping on one request

    Run: locust -f locustfile.py --tags votes -u 100 -r 50 --run-time 30s

    After test, verify for the hot request:
      vote_count     == COUNT(*) FROM request_votes WHERE vote_type = 'upvote'
      downvote_count == COUNT(*) FROM request_votes WHERE vote_type = 'downvote'
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        global HOT_REQUEST_ID
        ensure_load_event(self.client)
        self.guest_id = random_guest()
        if HOT_REQUEST_ID is None:
            resp = self.client.post(f"{API}/events/{LOAD_EVENT_CODE}/requests", json={
                "guestId": random_guest(),
                "trackName": "Hot Track",
                "artistName": "Hot Artist",
            })
            if resp.status_code == 201:
                HOT_REQUEST_ID = resp.json()["request"]["id"]
                print(f"\n✓ Hot request {HOT_REQUEST_ID}\n")

    @tag("votes")
    @task
    def flip_vote(self):
        if not HOT_REQUEST_ID:
            return
        with self.client.post(f"{API}/events/{LOAD_EVENT_CODE}/requests/{HOT_REQUEST_ID}/vote",
            json={"guestId": self.guest_id, "voteType": random.choice(["upvote", "downvote"])},
            name=f"{API}/events/{{code}}/requests/{{id}}/vote",
            catch_response=True
        ) as resp:
            if resp.status_code in (200, 409):
                resp.success()  # 409: retries exhausted under contention
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 3: Throughput - the host screen polling the queue

    Run twice:
      1. Database up: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Database down: stop Postgres, run again (served from Redis)

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    def on_start(self):
        ensure_load_event(self.client)

    @tag("throughput", "read")
    @task(10)
    def list_queue(self):
        self.client.get(f"{API}/events/{LOAD_EVENT_CODE}/requests",
            name=f"{API}/events/{{code}}/requests")

    @tag("throughput", "read")
    @task(5)
    def best_next(self):
        self.client.get(f"{API}/events/{LOAD_EVENT_CODE}/requests/best-next",
            name=f"{API}/events/{{code}}/requests/best-next")

    @tag("throughput", "read")
    @task(2)
    def top_songs(self):
        self.client.get(f"{API}/events/{LOAD_EVENT_CODE}/top-songs",
            name=f"{API}/events/{{code}}/top-songs")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 4: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_event(self):
        with self.client.get(f"{API}/events/NOPE00", catch_response=True) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def missing_track_name(self):
        with self.client.post(f"{API}/events/{LOAD_EVENT_CODE}/requests",
            json={"guestId": random_guest(), "artistName": "Someone"},
            catch_response=True
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def bad_vote_type(self):
        with self.client.post(f"{API}/events/{LOAD_EVENT_CODE}/requests/req_missing/vote",
            json={"guestId": random_guest(), "voteType": "sideways"},
            catch_response=True
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def bad_status(self):
        with self.client.put(f"{API}/events/{LOAD_EVENT_CODE}/requests/req_missing",
            json={"status": "skipped"},
            catch_response=True
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(f"{API}/events/{LOAD_EVENT_CODE}/requests",
            data="not json at all",
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 422])


class RealisticUser(HttpUser):
    """
    TEST 5: Realistic party workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates a night out:
      - Mostly watching the queue
      - Some votes and requests
      - Rare preference submissions and new events
    """
    wait_time = between(1, 3)

    def on_start(self):
        ensure_load_event(self.client)
        if LOAD_EVENT_CODE not in EVENT_CODES:
            EVENT_CODES.append(LOAD_EVENT_CODE)
        self.guest_id = random_guest()

    @task(50)
    def watch_queue(self):
        code = random.choice(EVENT_CODES)
        self.client.get(f"{API}/events/{code}/requests", name=f"{API}/events/{{code}}/requests")

    @task(20)
    def vote(self):
        code = random.choice(EVENT_CODES)
        resp = self.client.get(f"{API}/events/{code}/requests", name=f"{API}/events/{{code}}/requests")
        if resp.status_code == 200 and resp.json()["requests"]:
            request_id = random.choice(resp.json()["requests"])["id"]
            self.client.post(f"{API}/events/{code}/requests/{request_id}/vote",
                json={"guestId": self.guest_id, "voteType": random.choice(["upvote", "downvote"])},
                name=f"{API}/events/{{code}}/requests/{{id}}/vote")

    @task(10)
    def request_song(self):
        track, artist = random_track()
        self.client.post(f"{API}/events/{random.choice(EVENT_CODES)}/requests",
            json={"guestId": self.guest_id, "trackName": track, "artistName": artist},
            name=f"{API}/events/{{code}}/requests")

    @task(3)
    def submit_preferences(self):
        tracks = []
        for _ in range(random.randint(5, 20)):
            track, artist = random_track()
            tracks.append({"id": track.lower().replace(" ", "_"), "name": track, "artists": [artist]})
        self.client.post(f"{API}/events/{random.choice(EVENT_CODES)}/preferences",
            json={"guestId": self.guest_id, "tracks": tracks, "genres": ["Pop"]},
            name=f"{API}/events/{{code}}/preferences")

    @task(1)
    def create_event(self):
        resp = self.client.post(f"{API}/events", json={
            "name": f"Party {random.randint(1, 10000)}",
            "theme": random.choice(["80s", "House", "Latin"]),
        })
        if resp.status_code == 201:
            EVENT_CODES.append(resp.json()["event"]["code"])
