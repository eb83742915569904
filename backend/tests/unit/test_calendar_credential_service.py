"""
Unit tests for the calendar credential store.
"""

from datetime import timedelta

import pytest

from core.exceptions import (
    AppointmentValidationError, AuthExpiredError, CalendarNotConnectedError, CalendarProviderError
)
from models import CalendarCredential
from services.calendar_credential_service import CalendarCredentialStore, normalize_sync_direction
from services.calendar_provider import TokenGrant
from utils.datetime_utils import utc_now
from tests.utils import create_clinic, create_user_with_clinic_association, expired_refresh_error


@pytest.fixture
def doctor_setup(db_session):
    clinic = create_clinic(db_session)
    doctor = create_user_with_clinic_association(db_session, clinic, "doctor@example.com")
    return clinic, doctor


@pytest.fixture
def store(db_session, fake_provider, calendar_config):
    return CalendarCredentialStore(db_session, fake_provider, calendar_config)


def expire_access_token(db_session, credential: CalendarCredential) -> None:
    credential.token_expires_at = utc_now() - timedelta(minutes=5)
    db_session.commit()


class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_stores_encrypted_tokens(self, db_session, store, doctor_setup):
        clinic, doctor = doctor_setup
        result = await store.connect(doctor.id, clinic.id, "auth-code")

        assert result == {"success": True, "calendar_id": "doctor@example.com", "calendar_name": "Dr. Test"}
        credential = store.get_credential(doctor.id)
        assert credential.clinic_id == clinic.id
        assert credential.sync_direction == "bidirectional"
        assert credential.sync_future_days == 30
        assert credential.last_sync_status == "pending"
        assert credential.access_token != "access-1"
        assert store.encryption.decrypt_text(credential.access_token) == "access-1"
        assert store.encryption.decrypt_text(credential.refresh_token) == "refresh-1"

    @pytest.mark.asyncio
    async def test_failed_exchange_stores_nothing(self, db_session, store, fake_provider, doctor_setup):
        clinic, doctor = doctor_setup
        fake_provider.exchange_error = CalendarProviderError("invalid_grant")

        result = await store.connect(doctor.id, clinic.id, "bad-code")
        assert result == {"success": False, "error": "Failed to exchange authorization code"}
        assert db_session.query(CalendarCredential).count() == 0

    @pytest.mark.asyncio
    async def test_expired_grant_with_failing_refresh(self, db_session, store, fake_provider, doctor_setup):
        clinic, doctor = doctor_setup
        fake_provider.grant = TokenGrant(access_token="stale", expires_in=0, refresh_token="refresh-1")
        fake_provider.refresh_error = expired_refresh_error()

        result = await store.connect(doctor.id, clinic.id, "auth-code")
        assert result == {"success": False, "error": "Failed to refresh Google token"}
        assert fake_provider.refreshed == ["refresh-1"]
        assert db_session.query(CalendarCredential).count() == 0

    @pytest.mark.asyncio
    async def test_expired_grant_is_refreshed_before_saving(self, store, fake_provider, doctor_setup):
        clinic, doctor = doctor_setup
        fake_provider.grant = TokenGrant(access_token="stale", expires_in=0, refresh_token="refresh-1")

        result = await store.connect(doctor.id, clinic.id, "auth-code")
        assert result["success"] is True
        credential = store.get_credential(doctor.id)
        assert store.encryption.decrypt_text(credential.access_token) == "access-2"
        assert store.encryption.decrypt_text(credential.refresh_token) == "refresh-1"

    @pytest.mark.asyncio
    async def test_calendar_lookup_failure(self, db_session, store, fake_provider, doctor_setup):
        clinic, doctor = doctor_setup
        fake_provider.calendar_error = CalendarProviderError("403 Forbidden")

        result = await store.connect(doctor.id, clinic.id, "auth-code")
        assert result == {"success": False, "error": "Failed to access Google Calendar"}
        assert db_session.query(CalendarCredential).count() == 0

    @pytest.mark.asyncio
    async def test_reconnect_keeps_settings(self, store, doctor_setup):
        clinic, doctor = doctor_setup
        await store.connect(doctor.id, clinic.id, "auth-code")
        store.update_settings(doctor.id, sync_direction="to_google", sync_future_days=60)

        await store.connect(doctor.id, clinic.id, "second-code")
        credential = store.get_credential(doctor.id)
        assert credential.sync_direction == "to_remote"
        assert credential.sync_future_days == 60


class TestAccessToken:

    @pytest.mark.asyncio
    async def test_valid_token_is_returned_without_refresh(self, store, fake_provider, doctor_setup):
        clinic, doctor = doctor_setup
        await store.connect(doctor.id, clinic.id, "auth-code")

        assert await store.get_valid_access_token(doctor.id) == "access-1"
        assert fake_provider.refreshed == []

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed_before_use(self, db_session, store, fake_provider, doctor_setup):
        clinic, doctor = doctor_setup
        await store.connect(doctor.id, clinic.id, "auth-code")
        expire_access_token(db_session, store.get_credential(doctor.id))

        assert await store.get_valid_access_token(doctor.id) == "access-2"
        assert fake_provider.refreshed == ["refresh-1"]
        # The refreshed token is persisted, so the next call does not refresh again
        assert await store.get_valid_access_token(doctor.id) == "access-2"
        assert fake_provider.refreshed == ["refresh-1"]

    @pytest.mark.asyncio
    async def test_refresh_failure_raises_auth_expired(self, db_session, store, fake_provider, doctor_setup):
        clinic, doctor = doctor_setup
        await store.connect(doctor.id, clinic.id, "auth-code")
        expire_access_token(db_session, store.get_credential(doctor.id))
        fake_provider.refresh_error = expired_refresh_error()

        with pytest.raises(AuthExpiredError, match="Failed to refresh Google token"):
            await store.get_valid_access_token(doctor.id)

    @pytest.mark.asyncio
    async def test_missing_refresh_token_raises_auth_expired(self, db_session, store, fake_provider, doctor_setup):
        clinic, doctor = doctor_setup
        fake_provider.grant = TokenGrant(access_token="access-1", expires_in=3600)
        await store.connect(doctor.id, clinic.id, "auth-code")
        expire_access_token(db_session, store.get_credential(doctor.id))

        with pytest.raises(AuthExpiredError):
            await store.get_valid_access_token(doctor.id)
        assert fake_provider.refreshed == []

    @pytest.mark.asyncio
    async def test_not_connected(self, store, doctor_setup):
        _, doctor = doctor_setup
        with pytest.raises(CalendarNotConnectedError):
            await store.get_valid_access_token(doctor.id)


class TestSettingsAndStatus:

    @pytest.mark.asyncio
    async def test_status_never_exposes_tokens(self, store, doctor_setup):
        clinic, doctor = doctor_setup
        assert store.get_status(doctor.id) == {"connected": False}

        await store.connect(doctor.id, clinic.id, "auth-code")
        status = store.get_status(doctor.id)
        assert status["connected"] is True
        assert status["calendar_id"] == "doctor@example.com"
        assert status["last_sync_at"] is None
        assert not any("token" in key for key in status)

    @pytest.mark.asyncio
    async def test_settings_validation(self, store, doctor_setup):
        clinic, doctor = doctor_setup
        await store.connect(doctor.id, clinic.id, "auth-code")

        with pytest.raises(AppointmentValidationError):
            store.update_settings(doctor.id, sync_future_days=0)
        with pytest.raises(AppointmentValidationError):
            store.update_settings(doctor.id, sync_direction="sideways")

        credential = store.update_settings(doctor.id, sync_enabled=False)
        assert credential.sync_enabled is False

    def test_settings_require_connection(self, store, doctor_setup):
        _, doctor = doctor_setup
        with pytest.raises(CalendarNotConnectedError):
            store.update_settings(doctor.id, sync_enabled=False)

    @pytest.mark.asyncio
    async def test_record_sync_result(self, store, doctor_setup):
        clinic, doctor = doctor_setup
        await store.connect(doctor.id, clinic.id, "auth-code")

        store.record_sync_result(doctor.id, ["Event A failed", "Event B failed"])
        status = store.get_status(doctor.id)
        assert status["last_sync_status"] == "error"
        assert status["last_sync_error"] == "Event A failed; Event B failed"
        assert status["last_sync_at"].tzinfo is not None

        store.record_sync_result(doctor.id, [])
        status = store.get_status(doctor.id)
        assert status["last_sync_status"] == "success"
        assert status["last_sync_error"] is None

    @pytest.mark.asyncio
    async def test_disconnect(self, db_session, store, doctor_setup):
        clinic, doctor = doctor_setup
        await store.connect(doctor.id, clinic.id, "auth-code")

        assert store.disconnect(doctor.id) is True
        assert store.disconnect(doctor.id) is False
        assert db_session.query(CalendarCredential).count() == 0


@pytest.mark.parametrize("direction,expected", [
    ("to_google", "to_remote"),
    ("from_google", "from_remote"),
    ("bidirectional", "bidirectional"),
    ("to_remote", "to_remote"),
])
def test_normalize_sync_direction(direction, expected):
    assert normalize_sync_direction(direction) == expected


def test_unknown_sync_direction():
    with pytest.raises(AppointmentValidationError):
        normalize_sync_direction("both")
