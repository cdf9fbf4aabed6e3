"""
Locust load testing for the job queue API.

Run with:
    locust -f tests/load/locustfile.py --host=http://localhost:8080

Or headless:
    locust -f tests/load/locustfile.py --host=http://localhost:8080 \
        --headless -u 50 -r 5 --run-time 5m

Rate limiting is per tenant (10 submissions per minute by default), so a
busy load test sees a steady share of 429 responses; those are counted as
successes here.
"""

import json
import random
import uuid

from locust import HttpUser, between, task

# Test tenant configuration
TEST_TENANTS = [f"load-test-tenant-{i}" for i in range(20)]


class JobQueueUser(HttpUser):
    """
    Simulated client of the job queue.

    Simulates realistic traffic patterns:
    - Job submissions (most common)
    - Job status checks
    - Job listing
    - Metrics queries
    """

    wait_time = between(0.5, 2)

    def on_start(self):
        """Called when a user starts."""
        self.tenant_id = random.choice(TEST_TENANTS)
        self.created_job_ids: list[str] = []

    @task(10)
    def submit_job(self):
        """Submit a new job."""
        payload = json.dumps({"message": f"Load test at {uuid.uuid4().hex[:8]}"})

        with self.client.post(
            "/api/jobs",
            json={"tenant_id": self.tenant_id, "payload": payload},
            name="/api/jobs [POST]",
            catch_response=True,
        ) as response:
            if response.status_code == 201:
                job_id = response.json().get("id")
                if job_id:
                    self.created_job_ids.append(job_id)
                    # Keep only recent job IDs
                    if len(self.created_job_ids) > 100:
                        self.created_job_ids = self.created_job_ids[-100:]
                response.success()
            elif response.status_code == 429:
                response.success()

    @task(5)
    def get_job_status(self):
        """Check status of a previously created job."""
        if not self.created_job_ids:
            return

        job_id = random.choice(self.created_job_ids)
        self.client.get(f"/api/jobs/{job_id}", name="/api/jobs/{job_id} [GET]")

    @task(3)
    def list_jobs(self):
        """List jobs for the tenant."""
        params = {"tenant_id": self.tenant_id, "limit": 20}
        status_filter = random.choice([None, "pending", "running", "done", "failed"])
        if status_filter:
            params["status"] = status_filter

        self.client.get("/api/jobs", params=params, name="/api/jobs [GET]")

    @task(2)
    def get_metrics(self):
        """Get queue metrics."""
        self.client.get("/api/metrics", name="/api/metrics [GET]")

    @task(1)
    def health_check(self):
        """Check API health."""
        self.client.get("/health", name="/health [GET]")


class IdempotencyTestUser(HttpUser):
    """
    User that tests idempotency by submitting the same job multiple times.
    """

    wait_time = between(1, 3)

    def on_start(self):
        """Called when a user starts."""
        self.tenant_id = f"idempotency-tenant-{uuid.uuid4().hex[:8]}"
        self.submitted: dict[str, str] = {}

    @task(3)
    def submit_new_job(self):
        """Submit a new job and remember its key."""
        idempotency_key = f"idem-{uuid.uuid4().hex}"

        with self.client.post(
            "/api/jobs",
            json={
                "tenant_id": self.tenant_id,
                "payload": "original",
                "idempotency_key": idempotency_key,
            },
            name="/api/jobs [POST] (new)",
            catch_response=True,
        ) as response:
            if response.status_code == 201:
                self.submitted[idempotency_key] = response.json()["id"]
                if len(self.submitted) > 50:
                    self.submitted.pop(next(iter(self.submitted)))
                response.success()
            elif response.status_code == 429:
                response.success()

    @task(7)
    def submit_duplicate_job(self):
        """Resubmit with a known idempotency key."""
        if not self.submitted:
            return

        idempotency_key = random.choice(list(self.submitted))

        with self.client.post(
            "/api/jobs",
            json={
                "tenant_id": self.tenant_id,
                "payload": "different_payload",
                "idempotency_key": idempotency_key,
            },
            name="/api/jobs [POST] (duplicate)",
            catch_response=True,
        ) as response:
            # Should return the existing job, not create a new one
            if response.status_code != 200:
                response.failure(f"Expected 200 on replay, got {response.status_code}")
            elif response.json()["id"] != self.submitted[idempotency_key]:
                response.failure("Duplicate job created!")
