"""Tests for the request cache engine."""

from __future__ import annotations

import threading
from pathlib import Path

import httpx
import pytest

from cachedsession.client import CachedSession
from cachedsession.client.session import merge_query_params
from cachedsession.exceptions import StoreError, TransportError
from cachedsession.models import CacheSettings, CacheStats, SearchResult

URL = "https://api.test/items"


@pytest.fixture
def lock() -> threading.Lock:
    return threading.Lock()


@pytest.fixture
def make_session(db_path: Path, transport, clock):
    """Build sessions sharing the test database, transport and clock."""
    sessions: list[CachedSession] = []

    def factory(**kwargs) -> CachedSession:
        kwargs.setdefault("transport", transport)
        kwargs.setdefault("clock", clock)
        session = CachedSession(db_path, **kwargs)
        sessions.append(session)
        return session

    yield factory
    for session in sessions:
        session.close()


@pytest.fixture
def session(make_session) -> CachedSession:
    return make_session(expire_after=60)


# ---------------------------------------------------------------------------
# Hits and misses
# ---------------------------------------------------------------------------


class TestCacheAside:
    def test_first_request_misses_then_hits(self, session, lock, handler) -> None:
        bodies = [session.get(URL, lock) for _ in range(4)]

        assert bodies == ["response-1"] * 4
        assert handler.calls == 1
        assert session.stats(lock) == CacheStats(hits=3, misses=1, size=1)

    def test_hit_increments_entry_hit_count(self, session, lock) -> None:
        session.get(URL, lock)
        session.get(URL, lock)
        session.get(URL, lock)
        assert session.get_entry(URL, lock).hit_count == 2

    def test_entry_metadata(self, session, lock, clock) -> None:
        session.get(URL, lock)
        entry = session.get_entry(URL, lock)
        assert entry.body == "response-1"
        assert entry.status_code == 200
        assert entry.created_at == int(clock.now)
        assert entry.expires_at == int(clock.now) + 60
        assert entry.hit_count == 0

    def test_method_is_case_insensitive(self, session, lock, handler) -> None:
        session.request("get", URL, lock)
        session.request("GET", URL, lock)
        assert handler.calls == 1
        assert session.get_entry(URL, lock, method="get") is not None

    def test_head_is_cached_separately_from_get(self, session, lock, handler) -> None:
        session.get(URL, lock)
        session.head(URL, lock)
        session.head(URL, lock)
        assert handler.calls == 2
        assert session.size(lock) == 2
        assert session.list_cached_urls(lock) == [URL]


class TestExpiry:
    def test_entry_is_fresh_just_before_expiry(self, session, lock, clock, handler) -> None:
        session.get(URL, lock)
        clock.advance(59)
        assert session.get(URL, lock) == "response-1"
        assert handler.calls == 1

    def test_entry_expires_at_exact_boundary(self, session, lock, clock, handler) -> None:
        session.get(URL, lock)
        clock.advance(60)
        assert session.get(URL, lock) == "response-2"
        assert handler.calls == 2
        assert session.stats(lock) == CacheStats(hits=0, misses=2, size=1)

    def test_refetch_resets_hit_count_and_ttl(self, session, lock, clock) -> None:
        session.get(URL, lock)
        session.get(URL, lock)
        assert session.get_entry(URL, lock).hit_count == 1

        clock.advance(120)
        session.get(URL, lock)
        entry = session.get_entry(URL, lock)
        assert entry.hit_count == 0
        assert entry.created_at == int(clock.now)
        assert entry.expires_at == int(clock.now) + 60

    def test_changed_ttl_applies_to_new_writes_only(self, session, lock, clock) -> None:
        session.get(URL, lock)
        session.settings.expire_after = 5
        session.get(URL + "/other", lock)
        assert session.get_entry(URL, lock).expires_at == int(clock.now) + 60
        assert session.get_entry(URL + "/other", lock).expires_at == int(clock.now) + 5

    def test_zero_ttl_is_never_served(self, make_session, lock, handler) -> None:
        session = make_session(expire_after=0)
        session.get(URL, lock)
        session.get(URL, lock)
        assert handler.calls == 2
        assert session.size(lock) == 1


class TestStaleIfError:
    def test_stale_served_when_enabled(self, make_session, lock, clock, handler) -> None:
        session = make_session(expire_after=10, stale_if_error=True)
        session.get(URL, lock)
        clock.advance(11)
        handler.error = httpx.ConnectError("offline")

        assert session.get(URL, lock) == "response-1"
        assert session.stats(lock) == CacheStats(hits=0, misses=2, size=1)
        # The stale entry is neither refreshed nor counted as a hit.
        assert session.get_entry(URL, lock).hit_count == 0

    def test_error_raised_when_disabled(self, make_session, lock, clock, handler) -> None:
        session = make_session(expire_after=10)
        session.get(URL, lock)
        clock.advance(11)
        handler.error = httpx.ConnectError("offline")

        with pytest.raises(TransportError):
            session.get(URL, lock)
        assert session.stats(lock).misses == 2

    def test_error_raised_without_any_entry(self, make_session, lock, handler) -> None:
        session = make_session(stale_if_error=True)
        handler.error = httpx.ConnectError("offline")
        with pytest.raises(TransportError):
            session.get(URL, lock)
        assert session.stats(lock) == CacheStats(hits=0, misses=1, size=0)

    def test_error_status_does_not_trigger_fallback(
        self, make_session, lock, clock, handler
    ) -> None:
        session = make_session(expire_after=10, stale_if_error=True)
        session.get(URL, lock)
        clock.advance(11)
        handler.responder = lambda request: httpx.Response(500, text="server error")

        assert session.get(URL, lock) == "server error"
        # The 500 is not cached, so the expired entry stays as it was.
        assert session.get_entry(URL, lock).body == "response-1"

    def test_network_error_is_logged(self, session, lock, handler, caplog) -> None:
        handler.error = httpx.ConnectError("offline")
        with caplog.at_level("WARNING", logger="cachedsession"):
            with pytest.raises(TransportError):
                session.get(URL, lock)
        assert "HTTP request error" in caplog.text


class TestGating:
    def test_disallowed_method_bypasses_cache(self, session, lock, handler) -> None:
        session.post(URL, lock, data="x")
        session.post(URL, lock, data="x")
        assert handler.calls == 2
        assert session.stats(lock) == CacheStats(hits=0, misses=0, size=0)

    def test_url_filter_bypasses_cache(self, session, lock, handler) -> None:
        session.settings.url_filter = lambda url: "private" not in url
        session.get("https://api.test/private/me", lock)
        session.get("https://api.test/private/me", lock)
        session.get("https://api.test/public", lock)

        assert handler.calls == 3
        assert session.list_cached_urls(lock) == ["https://api.test/public"]
        assert session.stats(lock) == CacheStats(hits=0, misses=1, size=1)

    def test_disallowed_status_is_not_written(self, session, lock, handler) -> None:
        handler.responder = lambda request: httpx.Response(404, text="missing")
        assert session.get(URL, lock) == "missing"
        assert session.get(URL, lock) == "missing"
        assert handler.calls == 2
        assert session.stats(lock) == CacheStats(hits=0, misses=2, size=0)

    def test_allowable_status_codes_extend_caching(self, make_session, lock, handler) -> None:
        session = make_session(allowable_status_codes={200, 404})
        handler.responder = lambda request: httpx.Response(404, text="missing")
        session.get(URL, lock)
        session.get(URL, lock)
        assert handler.calls == 1
        assert session.get_entry(URL, lock).status_code == 404

    def test_post_caching_ignores_body(self, make_session, lock, handler) -> None:
        session = make_session(allowable_methods={"GET", "POST"})
        first = session.post(URL, lock, data='{"q": 1}')
        second = session.post(URL, lock, data='{"q": 2}')
        assert first == second == "response-1"
        assert handler.calls == 1

    def test_settings_object_overrides_policy_args(self, make_session, lock, handler) -> None:
        settings = CacheSettings(expire_after=5, allowable_methods={"POST"})
        session = make_session(expire_after=999, settings=settings)
        session.get(URL, lock)
        session.post(URL, lock)
        session.post(URL, lock)
        assert handler.calls == 2
        assert session.get_entry(URL, lock, method="POST") is not None
        assert session.get_entry(URL, lock) is None


class TestToggles:
    def test_caching_disabled_bypasses_cache(self, session, lock, handler) -> None:
        session.get(URL, lock)
        with session.caching_disabled(lock):
            assert session.cache_enabled is False
            assert session.get(URL, lock) == "response-2"
        assert session.cache_enabled is True
        assert session.stats(lock) == CacheStats(hits=0, misses=1, size=1)
        # Bypassed responses are not written back.
        assert session.get(URL, lock) == "response-1"

    def test_nested_toggles_restore_previous_state(self, session, lock) -> None:
        with session.caching_disabled(lock):
            with session.caching_enabled(lock):
                assert session.cache_enabled is True
                with session.caching_disabled(lock):
                    assert session.cache_enabled is False
                assert session.cache_enabled is True
            assert session.cache_enabled is False
        assert session.cache_enabled is True

    def test_toggle_restored_after_exception(self, session, lock) -> None:
        session.cache_enabled = False
        with pytest.raises(RuntimeError):
            with session.caching_enabled(lock):
                raise RuntimeError("boom")
        assert session.cache_enabled is False


class TestParams:
    def test_get_merges_params_into_url(self, session, lock, handler) -> None:
        session.get(URL, lock, params={"page": "2"})
        assert handler.requests[0].url == httpx.URL(URL + "?page=2")
        assert session.list_cached_urls(lock) == [URL + "?page=2"]

    def test_params_replace_existing_key(self) -> None:
        merged = merge_query_params("https://api.test/x?a=1&b=2", {"a": "9"})
        assert httpx.URL(merged).params == httpx.QueryParams({"a": "9", "b": "2"})

    def test_empty_params_leave_url_untouched(self) -> None:
        assert merge_query_params("https://api.test/x?a=1", None) == "https://api.test/x?a=1"
        assert merge_query_params("https://api.test/x", {}) == "https://api.test/x"

    def test_unparseable_url_with_params_is_transport_error(self, session, lock, handler) -> None:
        with pytest.raises(TransportError) as exc_info:
            session.get("http://[::1", lock, params={"q": "x"})
        assert isinstance(exc_info.value.__cause__, httpx.InvalidURL)
        assert handler.calls == 0


class TestCookies:
    def test_set_cookie_header_is_ingested(self, session, lock, handler) -> None:
        handler.responder = lambda request: httpx.Response(
            200, text="ok", headers=[("Set-Cookie", "sid=abc; Path=/"), ("Set-Cookie", "bad")]
        )
        session.get(URL, lock)
        assert session.get_cookie("sid", lock) == "abc"
        assert session.cookies.items() == [("sid", "abc")]

    def test_cookies_ingested_from_uncached_responses(self, session, lock, handler) -> None:
        handler.responder = lambda request: httpx.Response(
            500, headers={"Set-Cookie": "trace=1"}
        )
        session.get(URL, lock)
        assert session.get_cookie("trace", lock) == "1"

    def test_jar_cookies_are_sent(self, session, lock, handler) -> None:
        session.set_cookie("sid", "abc", lock)
        session.get(URL, lock)
        assert handler.requests[0].headers["Cookie"] == "sid=abc"

    def test_caller_cookie_header_is_kept(self, session, lock, handler) -> None:
        session.set_cookie("sid", "abc", lock)
        session.get(URL, lock, headers={"Cookie": "pref=1", "Accept": "text/plain"})
        request = handler.requests[0]
        assert request.headers["Cookie"] == "pref=1; sid=abc"
        assert request.headers["Accept"] == "text/plain"

    def test_no_cookie_header_when_jar_empty(self, session, lock, handler) -> None:
        session.get(URL, lock)
        assert "cookie" not in handler.requests[0].headers

    def test_cookies_persist_across_sessions(self, make_session, lock) -> None:
        first = make_session()
        first.set_cookie("sid", "abc", lock)
        first.close()

        second = make_session(load_cookies=True)
        assert second.get_cookie("sid", lock) == "abc"

    def test_cookies_not_loaded_by_default(self, make_session, lock) -> None:
        make_session().set_cookie("sid", "abc", lock)
        second = make_session()
        assert second.get_cookie("sid", lock) is None
        second.load_cookies(lock)
        assert second.get_cookie("sid", lock) == "abc"

    def test_save_cookies_overwrites_store(self, make_session, lock) -> None:
        first = make_session()
        first.set_cookie("a", "1", lock)
        other = make_session()
        other.set_cookie("b", "2", lock)

        first.save_cookies(lock)
        assert first.store.load_cookies(0) == {"a": "1"}

    def test_clear_cookies(self, session, lock) -> None:
        session.set_cookie("a", "1", lock)
        session.clear_cookies(lock)
        assert session.get_cookie("a", lock) is None
        assert session.store.load_cookies(0) == {}


class TestManagement:
    def test_clear_cache_resets_everything(self, session, lock) -> None:
        session.get(URL, lock)
        session.get(URL, lock)
        session.clear_cache(lock)
        assert session.stats(lock) == CacheStats(hits=0, misses=0, size=0)
        assert session.list_cached_urls(lock) == []

    def test_clear_expired(self, make_session, lock, clock) -> None:
        session = make_session(expire_after=10)
        session.get(URL + "/old", lock)
        clock.advance(5)
        session.get(URL + "/new", lock)
        clock.advance(5)

        assert session.clear_expired(lock) == 1
        assert session.list_cached_urls(lock) == [URL + "/new"]
        assert session.clear_expired(lock) == 0

    def test_clear_expired_keeps_counters(self, make_session, lock, clock) -> None:
        session = make_session(expire_after=1)
        session.get(URL, lock)
        clock.advance(1)
        session.clear_expired(lock)
        assert session.stats(lock) == CacheStats(hits=0, misses=1, size=0)

    def test_search(self, session, lock) -> None:
        session.get("https://api.test/users/1", lock)
        session.get("https://api.test/users/2", lock)
        session.get("https://api.test/orders/1", lock)

        assert session.search("%/users/%", lock) == [
            SearchResult(url="https://api.test/users/1", status_code=200),
            SearchResult(url="https://api.test/users/2", status_code=200),
        ]
        assert session.search("%/orders/_", lock) == [
            SearchResult(url="https://api.test/orders/1", status_code=200)
        ]

    def test_get_entry_missing(self, session, lock) -> None:
        assert session.get_entry(URL, lock) is None

    def test_list_cached_urls_sorted(self, session, lock) -> None:
        session.get("https://b.test/", lock)
        session.get("https://a.test/", lock)
        assert session.list_cached_urls(lock) == ["https://a.test/", "https://b.test/"]


class TestLifecycle:
    def test_closed_session_raises_store_error(self, make_session, lock) -> None:
        session = make_session()
        session.close()
        with pytest.raises(StoreError):
            session.get(URL, lock)

    def test_context_manager_closes_store(self, db_path, transport, lock) -> None:
        with CachedSession(db_path, transport=transport) as session:
            session.get(URL, lock)
        with pytest.raises(StoreError):
            session.size(lock)

    def test_injected_transport_is_not_closed(self, db_path, transport, handler, lock) -> None:
        CachedSession(db_path, transport=transport).close()
        with CachedSession(db_path, transport=transport) as session:
            session.get(URL + "/again", lock)
        assert handler.calls == 1

    def test_lock_is_released_after_every_call(self, session, lock, handler) -> None:
        session.get(URL, lock)
        handler.error = httpx.ConnectError("offline")
        with pytest.raises(TransportError):
            session.get(URL + "/x", lock)
        assert not lock.locked()
