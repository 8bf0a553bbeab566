"""Tests for onboarding checklist intake.

WHAT:
    Validation of required fields, atomic store + phase completion, and the
    single-submission policy.

REFERENCES:
    - portal/services/checklist_intake.py (module under test)
"""

import uuid
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from portal.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from portal.models import ChecklistSubmission
from portal.schemas import ChecklistPayload
from portal.services import checklist_intake, progress_store


class TestValidation:

    def test_empty_payload_lists_every_required_field(self):
        """WHAT: All missing fields are reported at once, in form order.
        WHY: The form highlights every problem in one round trip.
        """
        assert checklist_intake.validate_checklist(ChecklistPayload()) == [
            "payment_option",
            "tax_id",
            "domain",
            "target_audience",
            "company_info",
            "web_design.color_scheme",
            "market_research.competitors",
            "legal_info.address",
            "legal_info.impressum",
            "legal_info.privacy",
        ]

    def test_whitespace_counts_as_missing(self, valid_checklist):
        payload = valid_checklist.model_copy(update={"domain": "   "})
        payload.market_research.competitors = [" ", ""]

        assert checklist_intake.validate_checklist(payload) == [
            "domain",
            "market_research.competitors",
        ]

    def test_complete_payload_is_valid(self, valid_checklist):
        assert checklist_intake.validate_checklist(valid_checklist) == []


class TestSubmit:

    def test_submit_stores_and_completes_onboarding(self, test_db_session, customer, valid_checklist):
        submission = checklist_intake.submit(test_db_session, customer.id, valid_checklist)

        assert submission.domain == "acme-coaching.de"
        assert submission.market_research["competitors"] == ["coachhub.io"]
        assert submission.legal_info["impressum"] == "ACME Coaching GmbH"

        view = progress_store.get_progress(test_db_session, customer.id)
        assert view.current_phase == "landingpage"
        assert view.progress == 40
        assert view.completed_phases == ["onboarding"]
        assert view.onboarding_completed is True

    def test_invalid_submission_writes_nothing(self, test_db_session, customer):
        with pytest.raises(ValidationError) as exc_info:
            checklist_intake.submit(test_db_session, customer.id, ChecklistPayload(tax_id="DE1"))

        assert "tax_id" not in exc_info.value.fields
        assert "payment_option" in exc_info.value.fields
        assert test_db_session.query(ChecklistSubmission).count() == 0
        assert progress_store.get_progress(test_db_session, customer.id).current_phase == "onboarding"

    def test_second_submission_conflicts(self, test_db_session, customer, valid_checklist):
        checklist_intake.submit(test_db_session, customer.id, valid_checklist)

        with pytest.raises(ConflictError):
            checklist_intake.submit(test_db_session, customer.id, valid_checklist)

        assert test_db_session.query(ChecklistSubmission).count() == 1
        view = progress_store.get_progress(test_db_session, customer.id)
        assert view.completed_phases == ["onboarding"]

    def test_unknown_customer(self, test_db_session, valid_checklist):
        with pytest.raises(NotFoundError):
            checklist_intake.submit(test_db_session, uuid.uuid4(), valid_checklist)

    def test_storage_failure_rolls_back_both_writes(self, test_db_session, customer, valid_checklist):
        """WHAT: A failed commit leaves neither checklist nor phase change.
        WHY: Store and phase transition are one unit.
        """
        with patch.object(test_db_session, "commit", side_effect=OperationalError("commit", {}, Exception("disk full"))):
            with pytest.raises(PersistenceError):
                checklist_intake.submit(test_db_session, customer.id, valid_checklist)

        assert test_db_session.query(ChecklistSubmission).count() == 0
        assert progress_store.get_progress(test_db_session, customer.id).progress == 20

    def test_concurrent_progress_update_is_retried(self, test_db_session, customer, valid_checklist):
        """WHAT: A stale customer version retries instead of reporting a duplicate.
        WHY: An admin advancing the phase at the same moment is not a second submission.
        """
        real_commit = test_db_session.commit
        attempts = []

        def stale_once():
            attempts.append(len(attempts) + 1)
            if len(attempts) == 1:
                raise StaleDataError("users row changed")
            real_commit()

        with patch.object(test_db_session, "commit", side_effect=stale_once):
            submission = checklist_intake.submit(test_db_session, customer.id, valid_checklist)

        assert attempts == [1, 2]
        assert submission.user_id == customer.id
        assert test_db_session.query(ChecklistSubmission).count() == 1
        assert progress_store.get_progress(test_db_session, customer.id).current_phase == "landingpage"

    def test_persistent_stale_version_is_not_reported_as_duplicate(
        self, test_db_session, customer, valid_checklist
    ):
        with patch.object(test_db_session, "commit", side_effect=StaleDataError("users row changed")):
            with pytest.raises(ConflictError) as exc_info:
                checklist_intake.submit(test_db_session, customer.id, valid_checklist)

        assert "already submitted" not in exc_info.value.message
        assert test_db_session.query(ChecklistSubmission).count() == 0

    def test_does_not_regress_advanced_customer(self, test_db_session, customer, valid_checklist):
        progress_store.advance_phase(test_db_session, customer.id, "ads")

        checklist_intake.submit(test_db_session, customer.id, valid_checklist)

        view = progress_store.get_progress(test_db_session, customer.id)
        assert view.current_phase == "ads"
        assert view.progress == 60
        assert view.completed_phases == ["onboarding", "landingpage"]


class TestGetChecklist:

    def test_not_submitted(self, test_db_session, customer):
        with pytest.raises(NotFoundError):
            checklist_intake.get_checklist(test_db_session, customer.id)

    def test_returns_submission(self, test_db_session, customer, valid_checklist):
        checklist_intake.submit(test_db_session, customer.id, valid_checklist)
        assert checklist_intake.get_checklist(test_db_session, customer.id).tax_id == "DE123456789"
