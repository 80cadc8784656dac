"""
Tests for scheduled job endpoints in teesheet/api/jobs.py.

These tests verify the Cloud Scheduler integration endpoint including
authentication, sweep results and error cases.
"""

from datetime import date, datetime, time
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from teesheet.api.jobs import verify_oidc_token
from teesheet.models.schemas import HoleCount, WaitlistEntry, WaitlistStatus
from teesheet.services.booking_service import SweepResult


@pytest.fixture
def test_client() -> TestClient:
    """Create a TestClient for the FastAPI app."""
    from teesheet.main import app

    return TestClient(app)


@pytest.fixture
def offered_entry() -> WaitlistEntry:
    """A waitlist entry that has just been offered a freed slot."""
    return WaitlistEntry(
        id="wl000002",
        phone_number="+886912345678",
        play_date=date(2026, 3, 2),
        peak_window_id="peak_a",
        desired_start=time(5, 30),
        desired_end=time(7, 30),
        status=WaitlistStatus.NOTIFIED,
        lock_expiry=datetime(2026, 3, 1, 9, 15),
        offered_start=time(6, 10),
        offered_duration_class=HoleCount.EIGHTEEN,
        created_at=datetime(2026, 3, 1, 8, 0),
        updated_at=datetime(2026, 3, 1, 9, 0),
    )


class TestJobsAuthentication:
    """Tests for API key authentication on the jobs endpoint."""

    def test_missing_credentials_returns_401(self, test_client: TestClient) -> None:
        """Test that a request with neither OIDC token nor API key is rejected."""
        response = test_client.post("/jobs/sweep-waitlist")

        assert response.status_code == 401
        assert "Authentication required" in response.json()["detail"]

    def test_invalid_api_key_returns_401(self, test_client: TestClient) -> None:
        """Test that invalid API key returns 401."""
        with patch("teesheet.api.jobs.settings") as mock_settings:
            mock_settings.scheduler_api_key = "correct-key"

            response = test_client.post(
                "/jobs/sweep-waitlist",
                headers={"X-Scheduler-API-Key": "wrong-key"},
            )

            assert response.status_code == 401
            assert "Invalid scheduler API key" in response.json()["detail"]

    def test_unconfigured_api_key_returns_401(self, test_client: TestClient) -> None:
        """Test that any key is rejected when the server has none configured."""
        with patch("teesheet.api.jobs.settings") as mock_settings:
            mock_settings.scheduler_api_key = None

            response = test_client.post(
                "/jobs/sweep-waitlist",
                headers={"X-Scheduler-API-Key": "any-key"},
            )

            assert response.status_code == 401

    def test_invalid_bearer_token_falls_through(self, test_client: TestClient) -> None:
        """Test that a bad OIDC token without an API key is rejected."""
        with patch("teesheet.api.jobs.verify_oidc_token", return_value=False):
            response = test_client.post(
                "/jobs/sweep-waitlist",
                headers={"Authorization": "Bearer not-a-token"},
            )

            assert response.status_code == 401

    def test_valid_oidc_token_succeeds(self, test_client: TestClient) -> None:
        with (
            patch("teesheet.api.jobs.verify_oidc_token", return_value=True),
            patch("teesheet.api.jobs.booking_service") as mock_service,
        ):
            mock_service.sweep_waitlist = AsyncMock(return_value=SweepResult())

            response = test_client.post(
                "/jobs/sweep-waitlist",
                headers={"Authorization": "Bearer valid-token"},
            )

            assert response.status_code == 200

    def test_oidc_token_verified_from_header_alone(self, test_client: TestClient) -> None:
        with (
            patch("teesheet.api.jobs.verify_oidc_token", return_value=True) as mock_verify,
            patch("teesheet.api.jobs.booking_service") as mock_service,
        ):
            mock_service.sweep_waitlist = AsyncMock(return_value=SweepResult())

            test_client.post(
                "/jobs/sweep-waitlist",
                headers={"Authorization": "Bearer valid-token"},
            )

            mock_verify.assert_called_once_with("Bearer valid-token")

    def test_non_bearer_authorization_is_not_an_oidc_token(self) -> None:
        assert verify_oidc_token("Basic dXNlcjpwYXNz") is False


class TestSweepWaitlist:
    """Tests for the waitlist sweep job."""

    def test_sweep_reports_counts(
        self, test_client: TestClient, offered_entry: WaitlistEntry
    ) -> None:
        with (
            patch("teesheet.api.jobs.settings") as mock_settings,
            patch("teesheet.api.jobs.booking_service") as mock_service,
        ):
            mock_settings.scheduler_api_key = "test-key"
            mock_service.sweep_waitlist = AsyncMock(
                return_value=SweepResult(expired=1, offers=[offered_entry])
            )

            response = test_client.post(
                "/jobs/sweep-waitlist",
                headers={"X-Scheduler-API-Key": "test-key"},
            )

            assert response.status_code == 200
            data = response.json()
            assert data["expired"] == 1
            assert data["offers_made"] == 1
            assert data["offers"][0]["id"] == "wl000002"
            assert data["offers"][0]["offered_start"] == "06:10:00"
            mock_service.sweep_waitlist.assert_called_once()

    def test_nothing_to_sweep(self, test_client: TestClient) -> None:
        with (
            patch("teesheet.api.jobs.settings") as mock_settings,
            patch("teesheet.api.jobs.booking_service") as mock_service,
        ):
            mock_settings.scheduler_api_key = "test-key"
            mock_service.sweep_waitlist = AsyncMock(return_value=SweepResult())

            response = test_client.post(
                "/jobs/sweep-waitlist",
                headers={"X-Scheduler-API-Key": "test-key"},
            )

            assert response.status_code == 200
            assert response.json()["expired"] == 0
            assert response.json()["offers"] == []

    def test_sweep_failure_returns_500(self, test_client: TestClient) -> None:
        with (
            patch("teesheet.api.jobs.settings") as mock_settings,
            patch("teesheet.api.jobs.booking_service") as mock_service,
        ):
            mock_settings.scheduler_api_key = "test-key"
            mock_service.sweep_waitlist = AsyncMock(side_effect=RuntimeError("database is locked"))

            response = test_client.post(
                "/jobs/sweep-waitlist",
                headers={"X-Scheduler-API-Key": "test-key"},
            )

            assert response.status_code == 500
            assert response.json()["detail"] == "Waitlist sweep failed"
