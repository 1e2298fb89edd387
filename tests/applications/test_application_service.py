"""
ApplicationService: applications, attributes and documents.
"""

from uuid import uuid4

import pytest

from admissions_kernel.exceptions import ApplicationNotFoundError, DocumentNotFoundError


class TestApplications:

    def test_create_is_uninitialized(self, application_service, applicant):
        info = application_service.create_application(
            "undergraduate", applicant.actor_id, {"gpa": 3.8}
        )
        assert info.application_type == "undergraduate"
        assert info.current_status_id is None
        assert info.version == 1
        assert application_service.get_attributes(info.application_id) == {"gpa": 3.8}

    def test_update_merges(self, application_service, create_application, applicant):
        app_id = create_application({"gpa": 3.8, "is_submitted": False})
        info = application_service.update_attributes(
            app_id, {"is_submitted": True}, applicant.actor_id
        )
        assert application_service.get_attributes(app_id) == {"gpa": 3.8, "is_submitted": True}
        assert info.version == 2

    def test_update_replaces(self, application_service, create_application, applicant):
        app_id = create_application({"gpa": 3.8})
        application_service.update_attributes(
            app_id, {"is_submitted": True}, applicant.actor_id, replace=True
        )
        assert application_service.get_attributes(app_id) == {"is_submitted": True}

    def test_unknown_application(self, application_service, applicant):
        with pytest.raises(ApplicationNotFoundError):
            application_service.get_application(uuid4())
        with pytest.raises(ApplicationNotFoundError):
            application_service.update_attributes(uuid4(), {}, applicant.actor_id)

    def test_delete(self, application_service, create_application, admin, auditor_service):
        app_id = create_application()
        application_service.attach_document(app_id, "transcript", admin.actor_id)
        application_service.delete_application(app_id, admin.actor_id)
        with pytest.raises(ApplicationNotFoundError):
            application_service.get_application(app_id)
        assert auditor_service.get_trace("Application", app_id).last_action == (
            "application_deleted"
        )


class TestDocuments:

    def test_attach(self, application_service, create_application, applicant):
        app_id = create_application()
        record = application_service.attach_document(app_id, "transcript", applicant.actor_id)
        assert record.document_type == "transcript"
        assert not record.verified
        assert record.verified_at is None

    def test_attach_preverified(
        self, application_service, create_application, admin, deterministic_clock
    ):
        app_id = create_application()
        record = application_service.attach_document(
            app_id, "transcript", admin.actor_id, verified=True
        )
        assert record.verified
        assert record.verified_at == deterministic_clock.now()

    def test_verify_once(
        self, application_service, create_application, applicant, admin, auditor_service
    ):
        app_id = create_application()
        doc = application_service.attach_document(app_id, "transcript", applicant.actor_id)

        first = application_service.verify_document(doc.document_id, admin.actor_id)
        second = application_service.verify_document(doc.document_id, admin.actor_id)

        assert first.verified and second.verified
        assert second.verified_at == first.verified_at
        actions = auditor_service.get_trace("Application", app_id).actions
        assert actions.count("document_verified") == 1

    def test_verify_unknown(self, application_service, admin):
        with pytest.raises(DocumentNotFoundError):
            application_service.verify_document(uuid4(), admin.actor_id)
