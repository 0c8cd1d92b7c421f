"""Deepgram, DashScope and Supabase Storage adapters against mocked HTTP transports."""

from __future__ import annotations

import json
import unittest

import httpx

from matrixai.adapters.storage import SupabaseAssetStorage
from matrixai.adapters.workers import (
    DashScopeVideoInvoker,
    DeepgramTranscriptionInvoker,
    MockWorkerInvoker,
    TaskState,
)
from matrixai.errors import AssetRelocationError, ExternalWorkerError
from matrixai.schemas.job import JobKind

_DEEPGRAM_URL = "https://api.deepgram.test/v1/listen"
_DASHSCOPE_URL = "https://dashscope.test/api/v1"


def _deepgram_body(transcript: str, request_id: str | None = "req-123") -> dict:
    return {
        "metadata": {"request_id": request_id} if request_id else {},
        "results": {
            "channels": [
                {"alternatives": [{"transcript": transcript, "words": [{"word": "hello", "start": 0.0}]}]}
            ]
        },
    }


class DeepgramTranscriptionInvokerTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: list[httpx.Response] = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return self.responses.pop(0)

        self.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        self.invoker = DeepgramTranscriptionInvoker(_DEEPGRAM_URL, "dg-key", client=self.client)

    async def asyncTearDown(self) -> None:
        await self.client.aclose()

    async def test_submit_parks_transcript_for_first_poll(self) -> None:
        self.responses.append(httpx.Response(200, json=_deepgram_body("hello there")))

        submission = await self.invoker.submit("https://cdn.example.com/a.mp3", {"language": "en-US"})

        self.assertEqual(submission.task_handle, "req-123")
        request = self.requests[0]
        self.assertEqual(request.headers["Authorization"], "Token dg-key")
        self.assertEqual(request.url.params["model"], "whisper")
        self.assertEqual(request.url.params["language"], "en-US")
        self.assertEqual(request.url.params["smart_format"], "true")
        self.assertEqual(json.loads(request.content), {"url": "https://cdn.example.com/a.mp3"})

        result = await self.invoker.poll("req-123")
        self.assertEqual(result.state, TaskState.SUCCEEDED)
        self.assertEqual(result.result_ref, "hello there")
        self.assertEqual(result.metadata["language"], "en-US")
        self.assertEqual(len(result.metadata["words"]), 1)

        again = await self.invoker.poll("req-123")
        self.assertEqual(again.state, TaskState.FAILED)

    async def test_discard_drops_parked_transcript(self) -> None:
        self.responses.append(httpx.Response(200, json=_deepgram_body("hello there")))
        submission = await self.invoker.submit("https://cdn.example.com/a.mp3", {})

        self.invoker.discard(submission.task_handle)
        self.invoker.discard("never-submitted")

        result = await self.invoker.poll(submission.task_handle)
        self.assertEqual(result.state, TaskState.FAILED)
        self.assertEqual(result.error, "Transcription result is no longer available")

    async def test_missing_request_id_gets_generated_handle(self) -> None:
        self.responses.append(httpx.Response(200, json=_deepgram_body("hi", request_id=None)))

        submission = await self.invoker.submit("https://cdn.example.com/a.mp3", {})

        self.assertTrue(submission.task_handle.startswith("dg-"))
        self.assertEqual(self.requests[0].url.params["language"], "en-GB")

    async def test_error_responses_raise_worker_error(self) -> None:
        cases = [
            (httpx.Response(401, json={"err_msg": "bad key"}), "Deepgram API error: 401"),
            (httpx.Response(200, json=_deepgram_body("   ")), "empty transcription"),
            (httpx.Response(200, content=b"not json"), "malformed"),
            (httpx.Response(200, json={"results": {}}), "empty transcription"),
        ]
        for response, expected in cases:
            with self.subTest(expected=expected):
                self.responses.append(response)
                with self.assertRaises(ExternalWorkerError) as context:
                    await self.invoker.submit("https://cdn.example.com/a.mp3", {})
                self.assertIn(expected, str(context.exception))

    async def test_missing_api_key_fails_without_calling_out(self) -> None:
        invoker = DeepgramTranscriptionInvoker(_DEEPGRAM_URL, None, client=self.client)

        with self.assertRaises(ExternalWorkerError) as context:
            await invoker.submit("https://cdn.example.com/a.mp3", {})

        self.assertEqual(str(context.exception), "Transcription service is not configured")
        self.assertEqual(self.requests, [])


class DashScopeVideoInvokerTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: list[httpx.Response | Exception] = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            outcome = self.responses.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        self.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        self.invoker = DashScopeVideoInvoker(_DASHSCOPE_URL, "ds-key", model="wanx2.1-t2v-turbo", client=self.client)

    async def asyncTearDown(self) -> None:
        await self.client.aclose()

    async def test_submit_starts_async_task(self) -> None:
        self.responses.append(
            httpx.Response(200, json={"request_id": "r-1", "output": {"task_id": "t-1", "task_status": "PENDING"}})
        )

        submission = await self.invoker.submit("a red fox", {"size": "1280*720"})

        self.assertEqual(submission.task_handle, "t-1")
        self.assertEqual(submission.task_status, "PENDING")
        self.assertEqual(submission.request_id, "r-1")
        request = self.requests[0]
        self.assertEqual(str(request.url), f"{_DASHSCOPE_URL}/services/aigc/video-generation/video-synthesis")
        self.assertEqual(request.headers["X-DashScope-Async"], "enable")
        self.assertEqual(request.headers["Authorization"], "Bearer ds-key")
        self.assertEqual(
            json.loads(request.content),
            {"model": "wanx2.1-t2v-turbo", "input": {"prompt": "a red fox"}, "parameters": {"size": "1280*720"}},
        )

    async def test_submit_failures(self) -> None:
        cases = [
            (httpx.Response(200, json={"output": {}}), "no task ID returned"),
            (httpx.Response(400, json={"code": "InvalidParameter"}), "DashScope API error: 400"),
            (httpx.ReadTimeout("slow"), "Video generation timeout"),
        ]
        for outcome, expected in cases:
            with self.subTest(expected=expected):
                self.responses.append(outcome)
                with self.assertRaises(ExternalWorkerError) as context:
                    await self.invoker.submit("a red fox", {"size": "1280*720"})
                self.assertIn(expected, str(context.exception))

    async def test_poll_maps_task_statuses(self) -> None:
        self.responses.extend(
            [
                httpx.Response(200, json={"output": {"task_status": "RUNNING"}}),
                httpx.Response(
                    200,
                    json={
                        "output": {
                            "task_status": "SUCCEEDED",
                            "video_url": "https://oss.example.com/v.mp4",
                            "orig_prompt": "a red fox",
                            "end_time": "2025-01-01 00:00:00",
                        }
                    },
                ),
                httpx.Response(200, json={"output": {"task_status": "FAILED", "message": "Content moderation"}}),
                httpx.Response(200, json={"output": {"task_status": "CANCELED"}}),
            ]
        )

        running = await self.invoker.poll("t-1")
        succeeded = await self.invoker.poll("t-1")
        failed = await self.invoker.poll("t-1")
        canceled = await self.invoker.poll("t-1")

        self.assertEqual(str(self.requests[0].url), f"{_DASHSCOPE_URL}/tasks/t-1")
        self.assertEqual(running.state, TaskState.IN_PROGRESS)
        self.assertEqual(running.task_status, "RUNNING")
        self.assertEqual(succeeded.state, TaskState.SUCCEEDED)
        self.assertEqual(succeeded.result_ref, "https://oss.example.com/v.mp4")
        self.assertEqual(succeeded.metadata, {"orig_prompt": "a red fox", "end_time": "2025-01-01 00:00:00"})
        self.assertEqual(failed.state, TaskState.FAILED)
        self.assertEqual(failed.error, "Content moderation")
        self.assertEqual(canceled.error, "Video generation failed on DashScope")

    async def test_poll_transport_error_is_worker_error(self) -> None:
        self.responses.append(httpx.ConnectError("refused"))

        with self.assertRaises(ExternalWorkerError):
            await self.invoker.poll("t-1")

    async def test_missing_api_key(self) -> None:
        invoker = DashScopeVideoInvoker(_DASHSCOPE_URL, "", model="m", client=self.client)

        with self.assertRaises(ExternalWorkerError) as context:
            await invoker.submit("prompt", {})

        self.assertEqual(str(context.exception), "Video generation service is not properly configured")
        self.assertEqual(self.requests, [])


class SupabaseAssetStorageTests(unittest.IsolatedAsyncioTestCase):
    async def test_relocate_downloads_and_uploads_asset(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.method == "GET":
                return httpx.Response(200, content=b"video-bytes")
            return httpx.Response(200, json={"Key": "user-uploads/users/u/videos/v.mp4"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            storage = SupabaseAssetStorage("https://proj.supabase.test", "service", "user-uploads", client=client)
            url = await storage.relocate("https://oss.example.com/v.mp4", "users/u/videos/v.mp4", content_type="video/mp4")

        self.assertEqual(url, "https://proj.supabase.test/storage/v1/object/public/user-uploads/users/u/videos/v.mp4")
        upload = seen[1]
        self.assertEqual(str(upload.url), "https://proj.supabase.test/storage/v1/object/user-uploads/users/u/videos/v.mp4")
        self.assertEqual(upload.headers["Content-Type"], "video/mp4")
        self.assertEqual(upload.headers["x-upsert"], "true")
        self.assertEqual(upload.content, b"video-bytes")

    async def test_relocate_failures_raise_relocation_error(self) -> None:
        for download_status, upload_status in ((404, 200), (200, 500)):
            with self.subTest(download_status=download_status, upload_status=upload_status):

                def handler(request: httpx.Request) -> httpx.Response:
                    if request.method == "GET":
                        return httpx.Response(download_status, content=b"x")
                    return httpx.Response(upload_status, text="bucket missing")

                async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                    storage = SupabaseAssetStorage("https://proj.supabase.test", "service", "user-uploads", client=client)
                    with self.assertRaises(AssetRelocationError):
                        await storage.relocate("https://oss.example.com/v.mp4", "users/u/v.mp4", content_type="video/mp4")


class MockWorkerInvokerTests(unittest.IsolatedAsyncioTestCase):
    async def test_tasks_finish_on_first_poll(self) -> None:
        transcriber = MockWorkerInvoker(JobKind.TRANSCRIPTION)
        synthesizer = MockWorkerInvoker(JobKind.VIDEO_SYNTHESIS)

        audio = await transcriber.submit("https://cdn.example.com/a.mp3", {})
        video = await synthesizer.submit("a prompt", {})

        self.assertEqual(
            (await transcriber.poll(audio.task_handle)).result_ref,
            "mock transcript for https://cdn.example.com/a.mp3",
        )
        self.assertTrue((await synthesizer.poll(video.task_handle)).result_ref.endswith(".mp4"))
        self.assertEqual((await synthesizer.poll("unknown")).state, TaskState.FAILED)


if __name__ == "__main__":
    unittest.main()
