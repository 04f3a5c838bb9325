import pytest

from lib.errors import AuthError, InvalidReferenceError, UpstreamError
from lib.linker import ActivityLinker
from lib.strava import StravaClient, build_activity_record, resolve_activity_ref

STRAVA_API = "https://strava.test/api/v3"
STRAVA_OAUTH = "https://strava.test/oauth/token"


@pytest.fixture
def linker(tracker, strava):
    tracker.set_strava_token("strava-good")
    return ActivityLinker(tracker, strava)


@pytest.mark.parametrize("ref, expected", [
    ("12345", "12345"),
    ("  12345 ", "12345"),
    ("https://www.strava.com/activities/12345", "12345"),
    ("https://www.strava.com/activities/12345/overview?foo=9", "12345"),
    ("strava.com/activities/777", "777"),
])
def test_resolve_activity_ref(ref, expected) -> None:
    assert resolve_activity_ref(ref) == expected


@pytest.mark.parametrize("ref", ["", "abc", "https://www.strava.com/athletes/42", None])
def test_resolve_activity_ref_rejects_garbage(ref) -> None:
    with pytest.raises(InvalidReferenceError):
        resolve_activity_ref(ref)


def test_link_stores_record_locally_before_sync(linker, tracker, cache, github, timers) -> None:
    tracker.login("good-token")

    record = linker.link("RouteA", "12345")

    assert record.activity_id == "12345"
    assert record.name == "Tempus Fugit x2"
    assert record.average_heartrate is None
    assert record.fetched_at is not None
    assert cache.read_local().activities["RouteA"].activity_id == "12345"
    assert github.writes() == []
    assert len(timers.live(1.0)) == 1


def test_link_again_overwrites(linker, strava_api) -> None:
    strava_api.activities["999"] = {"id": 999, "name": "Second try"}

    linker.link("RouteA", "12345")
    linker.link("RouteA", "https://www.strava.com/activities/999")

    assert linker.tracker.snapshot.activities["RouteA"].activity_id == "999"


def test_invalid_reference_makes_no_network_call(linker, strava_api) -> None:
    with pytest.raises(InvalidReferenceError):
        linker.link("RouteA", "not an activity")

    assert strava_api.calls == []


def test_link_without_strava_token(tracker, strava, strava_api) -> None:
    linker = ActivityLinker(tracker, strava)

    with pytest.raises(AuthError):
        linker.link("RouteA", "12345")

    assert strava_api.calls == []


def test_link_with_expired_strava_token(tracker, strava) -> None:
    tracker.set_strava_token("strava-expired")

    with pytest.raises(AuthError):
        ActivityLinker(tracker, strava).link("RouteA", "12345")


def test_link_unknown_activity_is_upstream_error(linker, cache) -> None:
    with pytest.raises(UpstreamError) as excinfo:
        linker.link("RouteA", "404404")

    assert excinfo.value.status_code == 404
    assert cache.read_local() is None


def test_unlink_removes_record(linker, cache) -> None:
    linker.link("RouteA", "12345")

    assert linker.unlink("RouteA") is True
    assert "RouteA" not in cache.read_local().activities


def test_unlink_missing_route_is_noop(linker, cache) -> None:
    assert linker.unlink("Nowhere") is False
    assert cache.read_local().activities == {}


def test_activity_details_are_cached_for_an_hour(strava_api) -> None:
    now = [1000.0]
    client = StravaClient(STRAVA_API, STRAVA_OAUTH, cache_ttl=3600,
                          session=strava_api, clock=lambda: now[0])

    client.fetch_activity("12345", "strava-good")
    now[0] += 3599
    client.fetch_activity("12345", "strava-good")
    assert len(strava_api.calls) == 1

    now[0] += 2
    client.fetch_activity("12345", "strava-good")
    assert len(strava_api.calls) == 2


def test_build_activity_record_falls_back_to_legacy_type() -> None:
    record = build_activity_record({"id": 5, "type": "Ride", "distance": 1000.0}, fetched_at=1)

    assert record.sport_type == "Ride"
    assert record.distance == 1000.0
    assert record.to_dict() == {"activityId": "5", "sportType": "Ride", "distance": 1000.0, "fetchedAt": 1}
