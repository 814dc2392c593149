"""
Tests for VideoJobPoller.
"""

import asyncio

import pytest

from jovitools.models.api import VideoJobState
from jovitools.models.domain import VideoJobStatus
from jovitools.services.video_poller import VideoJobPoller


def snapshot(state: VideoJobState, url: str | None = None) -> VideoJobStatus:
    return VideoJobStatus(job_id="job-1", state=state, percentage=0, video_url=url)


class ScriptedFetcher:
    """Returns queued results in order and counts calls."""

    def __init__(self, results: list[VideoJobStatus | Exception]) -> None:
        self.results = list(results)
        self.calls = 0

    async def __call__(self, job_id: str) -> VideoJobStatus:
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


class TestPolling:
    """Polling until a terminal state."""

    async def test_stops_after_completed(self):
        """processing, processing, completed: exactly three fetches."""
        fetcher = ScriptedFetcher(
            [
                snapshot(VideoJobState.PROCESSING),
                snapshot(VideoJobState.PROCESSING),
                snapshot(VideoJobState.COMPLETED, "https://cdn.example.com/v.mp4"),
            ]
        )
        async with VideoJobPoller(fetcher, interval=0) as poller:
            final = await poller.wait("job-1", timeout=5)

        assert final.state == VideoJobState.COMPLETED
        assert final.video_url == "https://cdn.example.com/v.mp4"
        assert fetcher.calls == 3

    async def test_completed_without_url_keeps_polling(self):
        fetcher = ScriptedFetcher(
            [
                snapshot(VideoJobState.COMPLETED),
                snapshot(VideoJobState.COMPLETED, "https://cdn.example.com/v.mp4"),
            ]
        )
        async with VideoJobPoller(fetcher, interval=0) as poller:
            final = await poller.wait("job-1", timeout=5)

        assert final.video_url
        assert fetcher.calls == 2

    async def test_failed_is_terminal(self):
        fetcher = ScriptedFetcher([snapshot(VideoJobState.FAILED)])
        async with VideoJobPoller(fetcher, interval=0) as poller:
            final = await poller.wait("job-1", timeout=5)

        assert final.state == VideoJobState.FAILED
        assert fetcher.calls == 1

    async def test_transient_error_is_retried(self):
        fetcher = ScriptedFetcher(
            [
                RuntimeError("timeout"),
                snapshot(VideoJobState.COMPLETED, "https://cdn.example.com/v.mp4"),
            ]
        )
        async with VideoJobPoller(fetcher, interval=0) as poller:
            final = await poller.wait("job-1", timeout=5)

        assert final.state == VideoJobState.COMPLETED
        assert fetcher.calls == 2

    async def test_on_update_sees_every_snapshot(self):
        seen: list[VideoJobState] = []

        async def on_update(status: VideoJobStatus) -> None:
            seen.append(status.state)

        fetcher = ScriptedFetcher(
            [
                snapshot(VideoJobState.PROCESSING),
                snapshot(VideoJobState.COMPLETED, "https://cdn.example.com/v.mp4"),
            ]
        )
        async with VideoJobPoller(fetcher, interval=0, on_update=on_update) as poller:
            await poller.wait("job-1", timeout=5)

        assert seen == [VideoJobState.PROCESSING, VideoJobState.COMPLETED]


class TestCancellation:
    """Cancelling watched jobs."""

    async def test_watch_twice_returns_same_task(self):
        fetcher = ScriptedFetcher([snapshot(VideoJobState.PROCESSING)])
        async with VideoJobPoller(fetcher, interval=0.01) as poller:
            first = poller.watch("job-1")
            second = poller.watch("job-1")
            assert first is second
            assert poller.active_jobs == ["job-1"]

    async def test_cancel_stops_polling(self):
        fetcher = ScriptedFetcher([snapshot(VideoJobState.PROCESSING)])
        poller = VideoJobPoller(fetcher, interval=0.01)
        task = poller.watch("job-1")
        await asyncio.sleep(0.03)

        assert poller.cancel("job-1") is True
        with pytest.raises(asyncio.CancelledError):
            await task
        calls = fetcher.calls
        await asyncio.sleep(0.03)

        assert fetcher.calls == calls
        assert not poller.is_watching("job-1")
        assert poller.cancel("job-1") is False

    async def test_leaving_context_cancels_everything(self):
        fetcher = ScriptedFetcher([snapshot(VideoJobState.PROCESSING)])
        async with VideoJobPoller(fetcher, interval=0.01) as poller:
            tasks = [poller.watch("job-1"), poller.watch("job-2")]
            await asyncio.sleep(0)

        assert all(task.cancelled() for task in tasks)
        assert poller.active_jobs == []

    async def test_wait_timeout_cancels_job(self):
        fetcher = ScriptedFetcher([snapshot(VideoJobState.PROCESSING)])
        poller = VideoJobPoller(fetcher, interval=0.01)

        with pytest.raises(TimeoutError):
            await poller.wait("job-1", timeout=0.05)
        await asyncio.sleep(0.01)

        assert not poller.is_watching("job-1")
