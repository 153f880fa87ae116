"""
Tests for Adherence API
========================

Tests adherence windows and streaks.
"""

import pytest
from datetime import datetime, time, timedelta
from fastapi import status
from fastapi.testclient import TestClient

from models import DoseStatus
from tools.time_windows import utcnow


def start_of_today() -> datetime:
    return datetime.combine(utcnow().date(), time(0, 0))


class TestAdherenceWindow:
    """Tests for window adherence"""

    @pytest.mark.api
    def test_empty_window_is_full_adherence(self, client: TestClient, test_user):
        response = client.get(f"/api/v1/users/{test_user.id}/adherence")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["window"] == "today"
        assert data["scheduled"] == 0
        assert data["percentage"] == 100.0

    @pytest.mark.api
    def test_today_counts_due_doses(self, client: TestClient, test_user, lisinopril, make_dose):
        make_dose(lisinopril, start_of_today(), status=DoseStatus.MISSED)

        response = client.get(f"/api/v1/users/{test_user.id}/adherence", params={"window": "today"})

        data = response.json()
        assert data["scheduled"] == 1
        assert data["missed"] == 1
        assert data["percentage"] == 0.0

    @pytest.mark.api
    def test_month_window(self, client: TestClient, test_user, lisinopril, make_dose):
        make_dose(lisinopril, start_of_today(), status=DoseStatus.TAKEN)

        response = client.get(f"/api/v1/users/{test_user.id}/adherence", params={"window": "month"})

        data = response.json()
        assert data["window"] == "month"
        assert data["taken"] == 1

    @pytest.mark.api
    def test_unknown_window(self, client: TestClient, test_user):
        response = client.get(f"/api/v1/users/{test_user.id}/adherence", params={"window": "year"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_unknown_user(self, client: TestClient):
        response = client.get("/api/v1/users/99999/adherence")

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestAdherenceStreak:
    """Tests for streak endpoint"""

    @pytest.mark.api
    def test_streak_counts_yesterday(self, client: TestClient, test_user, lisinopril, make_dose):
        yesterday = start_of_today() - timedelta(days=1)
        make_dose(lisinopril, yesterday + timedelta(hours=8), status=DoseStatus.TAKEN)
        make_dose(lisinopril, yesterday + timedelta(hours=20), status=DoseStatus.TAKEN)

        response = client.get(f"/api/v1/users/{test_user.id}/adherence/streak")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["current"] == 1
        assert data["lookback_days"] == 30
        assert data["last_counted_day"] == yesterday.date().isoformat()

    @pytest.mark.api
    def test_streak_lookback_validation(self, client: TestClient, test_user):
        response = client.get(f"/api/v1/users/{test_user.id}/adherence/streak", params={"lookback_days": 0})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
