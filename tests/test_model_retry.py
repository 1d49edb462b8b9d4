"""Tests for the rate-limit retry policy."""

from __future__ import annotations

import pytest

from pocketdr.config import ChatConfig
from pocketdr.models.base import ModelDescriptor, RateLimited, Success, Unavailable
from pocketdr.models.retry import Deadline, RateLimitRetryPolicy, attempt_with_retry

M1 = ModelDescriptor("m1")


class TestRetryPolicyConfig:
    def test_defaults(self):
        policy = RateLimitRetryPolicy()
        assert policy.backoff_seconds == 3.0
        assert policy.max_retries == 1

    def test_from_chat_config_clamps(self):
        policy = RateLimitRetryPolicy.from_chat_config(
            ChatConfig(backoff_seconds=-2.0, max_retries=9),
        )
        assert policy.backoff_seconds == 0.0
        assert policy.max_retries == 3


class TestAttemptWithRetry:
    @pytest.mark.asyncio
    async def test_success_returns_without_sleep(self, scripted_endpoint, fake_clock):
        endpoint = scripted_endpoint({"m1": [Success("ok")]})

        outcome = await attempt_with_retry(
            endpoint, M1, "sys", [], "hi",
            policy=RateLimitRetryPolicy(), sleep=fake_clock.sleep,
        )

        assert outcome == Success("ok")
        assert endpoint.call_count("m1") == 1
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_rate_limit_retries_once_after_backoff(self, scripted_endpoint, fake_clock):
        endpoint = scripted_endpoint({
            "m1": [RateLimited("m1", "HTTP 429"), Success("second try")],
        })

        outcome = await attempt_with_retry(
            endpoint, M1, "sys", [], "hi",
            policy=RateLimitRetryPolicy(backoff_seconds=3.0), sleep=fake_clock.sleep,
        )

        assert outcome == Success("second try")
        assert endpoint.call_count("m1") == 2
        assert fake_clock.sleeps == [3.0]

    @pytest.mark.asyncio
    async def test_second_rate_limit_is_returned_unchanged(self, scripted_endpoint, fake_clock):
        last = RateLimited("m1", "HTTP 429 again")
        endpoint = scripted_endpoint({"m1": [RateLimited("m1", "HTTP 429"), last]})

        outcome = await attempt_with_retry(
            endpoint, M1, "sys", [], "hi",
            policy=RateLimitRetryPolicy(), sleep=fake_clock.sleep,
        )

        assert outcome is last
        assert endpoint.call_count("m1") == 2
        assert fake_clock.sleeps == [3.0]

    @pytest.mark.asyncio
    async def test_unavailable_is_not_retried(self, scripted_endpoint, fake_clock):
        endpoint = scripted_endpoint({"m1": [Unavailable("m1", "HTTP 500")]})

        outcome = await attempt_with_retry(
            endpoint, M1, "sys", [], "hi",
            policy=RateLimitRetryPolicy(), sleep=fake_clock.sleep,
        )

        assert isinstance(outcome, Unavailable)
        assert endpoint.call_count("m1") == 1
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_zero_retries_disables_retry(self, scripted_endpoint, fake_clock):
        endpoint = scripted_endpoint({"m1": [RateLimited("m1", "HTTP 429")]})

        outcome = await attempt_with_retry(
            endpoint, M1, "sys", [], "hi",
            policy=RateLimitRetryPolicy(max_retries=0), sleep=fake_clock.sleep,
        )

        assert isinstance(outcome, RateLimited)
        assert endpoint.call_count("m1") == 1

    @pytest.mark.asyncio
    async def test_skips_retry_when_deadline_too_close(self, scripted_endpoint, fake_clock):
        endpoint = scripted_endpoint({"m1": [RateLimited("m1", "HTTP 429"), Success("late")]})
        deadline = Deadline.after(2.0, clock=fake_clock)

        outcome = await attempt_with_retry(
            endpoint, M1, "sys", [], "hi",
            policy=RateLimitRetryPolicy(backoff_seconds=3.0),
            sleep=fake_clock.sleep,
            deadline=deadline,
        )

        assert isinstance(outcome, RateLimited)
        assert endpoint.call_count("m1") == 1
        assert fake_clock.sleeps == []


class TestDeadline:
    def test_remaining_tracks_clock(self, fake_clock):
        deadline = Deadline.after(5.0, clock=fake_clock)
        assert deadline.remaining() == 5.0
        fake_clock.now += 5.0
        assert deadline.expired()
