# -*- coding: utf-8 -*-

from __future__ import annotations

import unittest
from typing import Any, Dict

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fitjobs.jobs.client import JobStatusClient
from fitjobs.jobs.errors import ServiceError, TransportError, UnexpectedResponseError, ValidationError
from fitjobs.jobs.models import CacheHit, DietGenerationRequest, JobStarted, JobStatus


def _stub_service(state: Dict[str, Any]) -> FastAPI:
    """Minimal stand-in for the workers service."""
    app = FastAPI()

    @app.post("/diet/generate")
    async def generate(request: Request):
        body = await request.json()
        state["last_body"] = body
        state["last_auth"] = request.headers.get("authorization")
        mode = state.get("submit_mode", "job")
        if mode == "cache":
            return {"success": True, "data": {"planId": "p1"}, "metadata": {"cached": True}}
        if mode == "invalid":
            return JSONResponse(
                {"success": False, "error": {"code": "VALIDATION_ERROR", "message": "calorieTarget too low"}},
                status_code=400,
            )
        if mode == "overloaded":
            return JSONResponse({"success": False, "error": "Service busy"}, status_code=503)
        if mode == "weird":
            return JSONResponse({"success": True, "data": None}, status_code=202)
        if mode == "negative_estimate":
            return JSONResponse(
                {"success": True, "data": {"jobId": "j1", "status": "pending", "estimatedTimeMinutes": -2}},
                status_code=202,
            )
        return JSONResponse(
            {"success": True, "data": {"jobId": "j1", "status": "pending", "estimatedTimeMinutes": 3}},
            status_code=202,
        )

    @app.get("/diet/jobs/{job_id}")
    async def job_status(job_id: str):
        if job_id == "missing":
            return JSONResponse(
                {"success": False, "error": {"code": "JOB_NOT_FOUND", "message": "Job not found"}},
                status_code=404,
            )
        if job_id == "throttled":
            return JSONResponse({"success": False, "error": "Too many requests"}, status_code=429)
        if job_id == "odd":
            return {"success": True, "data": {"jobId": job_id, "status": "exploded"}}
        if job_id == "error-object":
            return {
                "success": True,
                "data": {
                    "jobId": job_id,
                    "status": "failed",
                    "error": {"code": "AI_ERROR", "message": "model overloaded"},
                },
            }
        if job_id == "bad-created-at":
            return {
                "success": True,
                "data": {"jobId": job_id, "status": "processing", "metadata": {"createdAt": ["not", "a", "date"]}},
            }
        return {
            "success": True,
            "data": {
                "jobId": job_id,
                "status": "completed",
                "result": {"planId": "p2"},
                "metadata": {"createdAt": "2026-01-01T00:00:00Z", "generationTimeMs": 81234},
            },
        }

    @app.get("/diet/jobs")
    async def list_jobs():
        return {
            "success": True,
            "data": {
                "jobs": [
                    {"jobId": "j1", "status": "processing", "createdAt": "2026-01-01T00:00:00Z"},
                    {"jobId": "j0", "status": "failed", "error": "model overloaded"},
                    {"jobId": "j9", "status": "exploded"},
                    {"status": "pending"},
                ]
            },
        }

    return app


class TestJobStatusClient(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.state: Dict[str, Any] = {}
        self.http = httpx.AsyncClient(transport=httpx.ASGITransport(app=_stub_service(self.state)))
        self.client = JobStatusClient(
            "diet",
            base_url="http://workers.test",
            auth_token="token-123",
            http_client=self.http,
        )

    async def asyncTearDown(self) -> None:
        await self.http.aclose()

    async def test_submit_job_started(self) -> None:
        request = DietGenerationRequest.model_validate(
            {
                "profile": {
                    "age": 31,
                    "gender": "female",
                    "weight": 62,
                    "height": 168,
                    "activity_level": "moderate",
                    "fitness_goal": "weight_loss",
                },
                "calorie_target": 1800,
                "meals_per_day": 3,
            }
        )
        outcome = await self.client.submit(request)

        self.assertIsInstance(outcome, JobStarted)
        self.assertEqual(outcome.job_id, "j1")
        self.assertEqual(outcome.estimated_time_remaining_seconds, 180)
        body = self.state["last_body"]
        self.assertTrue(body["async"])
        self.assertEqual(body["calorieTarget"], 1800)
        self.assertEqual(body["profile"]["activityLevel"], "moderate")
        self.assertEqual(self.state["last_auth"], "Bearer token-123")

    async def test_submit_cache_hit(self) -> None:
        self.state["submit_mode"] = "cache"
        outcome = await self.client.submit({"profile": {}})
        self.assertIsInstance(outcome, CacheHit)
        self.assertEqual(outcome.result, {"planId": "p1"})

    async def test_submit_rejected(self) -> None:
        self.state["submit_mode"] = "invalid"
        with self.assertRaises(ValidationError) as ctx:
            await self.client.submit({"profile": {}})
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.code, "VALIDATION_ERROR")
        self.assertIn("calorieTarget", str(ctx.exception))

    async def test_submit_server_error_is_transport(self) -> None:
        self.state["submit_mode"] = "overloaded"
        with self.assertRaises(TransportError) as ctx:
            await self.client.submit({"profile": {}})
        self.assertEqual(ctx.exception.status_code, 503)

    async def test_submit_unexpected_shape(self) -> None:
        self.state["submit_mode"] = "weird"
        with self.assertRaises(UnexpectedResponseError):
            await self.client.submit({"profile": {}})

    async def test_poll_completed(self) -> None:
        result = await self.client.poll("j1")
        self.assertEqual(result.status, JobStatus.completed)
        self.assertEqual(result.result, {"planId": "p2"})
        self.assertEqual(result.generation_time_ms, 81234)
        self.assertEqual(result.created_at, "2026-01-01T00:00:00Z")

    async def test_poll_missing_job_is_service_error(self) -> None:
        with self.assertRaises(ServiceError) as ctx:
            await self.client.poll("missing")
        self.assertNotIsInstance(ctx.exception, ValidationError)
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(ctx.exception.code, "JOB_NOT_FOUND")

    async def test_poll_rate_limited_is_transport(self) -> None:
        with self.assertRaises(TransportError):
            await self.client.poll("throttled")

    async def test_poll_unknown_status(self) -> None:
        with self.assertRaises(UnexpectedResponseError):
            await self.client.poll("odd")

    async def test_submit_negative_estimate(self) -> None:
        self.state["submit_mode"] = "negative_estimate"
        with self.assertRaises(UnexpectedResponseError):
            await self.client.submit({"profile": {}})

    async def test_poll_failed_with_error_object(self) -> None:
        result = await self.client.poll("error-object")
        self.assertEqual(result.status, JobStatus.failed)
        self.assertEqual(result.error, "model overloaded")

    async def test_poll_malformed_field(self) -> None:
        with self.assertRaises(UnexpectedResponseError):
            await self.client.poll("bad-created-at")

    async def test_list_jobs_skips_malformed_items(self) -> None:
        items = await self.client.list_jobs()
        self.assertEqual([i.job_id for i in items], ["j1", "j0"])
        self.assertEqual(items[1].status, JobStatus.failed)
        self.assertEqual(items[1].error, "model overloaded")


class TestJobStatusClientNetwork(unittest.IsolatedAsyncioTestCase):
    async def test_connection_failure_is_transport(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as http:
            client = JobStatusClient("diet", base_url="http://workers.test", http_client=http)
            with self.assertRaises(TransportError):
                await client.poll("j1")

    async def test_timeout_is_transport(self) -> None:
        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(slow)) as http:
            client = JobStatusClient("diet", base_url="http://workers.test", http_client=http)
            with self.assertRaises(TransportError) as ctx:
                await client.submit({"profile": {}})
            self.assertIn("timed out", str(ctx.exception))

    async def test_non_json_body(self) -> None:
        def html(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        async with httpx.AsyncClient(transport=httpx.MockTransport(html)) as http:
            client = JobStatusClient("diet", base_url="http://workers.test", http_client=http)
            with self.assertRaises(UnexpectedResponseError):
                await client.poll("j1")


if __name__ == "__main__":
    unittest.main()
