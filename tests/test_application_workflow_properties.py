"""Property-based tests for the application workflow state machine."""

import pytest
from hypothesis import given, strategies as st, settings, HealthCheck

from conftest import ADMIN
from job_tracker.core.errors import ForbiddenError, InvalidStateError
from job_tracker.core.models import Actor, ActorRole, ApplicationStatus
from job_tracker.jobs.application import (
    DOWNSTREAM_STATUSES,
    TERMINAL_STATUSES,
    validate_transition,
)

USER = Actor(id="user-1")

OPERATIONS = ["approve", "reject", "apply", "withdraw"] + sorted(s.value for s in DOWNSTREAM_STATUSES)


def expected_outcome(current: ApplicationStatus, operation: str):
    """Reference model: the status an operation leads to, or None when it must fail."""
    if current in TERMINAL_STATUSES:
        return None
    if operation == "approve":
        return ApplicationStatus.APPROVED if current == ApplicationStatus.PENDING_REVIEW else None
    if operation == "reject":
        return ApplicationStatus.REJECTED if current == ApplicationStatus.PENDING_REVIEW else None
    if operation == "apply":
        return ApplicationStatus.APPLIED if current == ApplicationStatus.APPROVED else None
    if operation == "withdraw":
        return ApplicationStatus.WITHDRAWN
    return ApplicationStatus(operation)


def perform(services, application_id: str, operation: str):
    workflow = services.applications
    if operation == "approve":
        return workflow.review(application_id, ADMIN, approve=True)
    if operation == "reject":
        return workflow.review(application_id, ADMIN, approve=False)
    if operation == "apply":
        return workflow.apply_on_behalf(application_id, ADMIN)
    if operation == "withdraw":
        return workflow.withdraw(application_id, USER)
    return workflow.advance_status(application_id, ApplicationStatus(operation), ADMIN)


class TestApplicationWorkflowProperties:
    """Property tests over random operation sequences."""

    @given(operations=st.lists(st.sampled_from(OPERATIONS), min_size=1, max_size=8))
    @settings(max_examples=30, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_operation_sequences_follow_the_state_machine(self, make_services, seed_job, operations):
        """
        For any sequence of operations:
        1. Each operation succeeds exactly when the reference model allows it
        2. Failures are InvalidState and leave the application untouched
        3. The timeline covers every status held and ends at the current status
        """
        services = make_services()
        job_id = seed_job(services)
        application = services.applications.save_job(job_id, USER)

        current = application.status
        held = {current}
        for operation in operations:
            expected = expected_outcome(current, operation)
            if expected is None:
                with pytest.raises(InvalidStateError):
                    perform(services, application.id, operation)
            else:
                current = perform(services, application.id, operation).status
                assert current == expected
                held.add(current)

            view = services.applications.get_application(application.id, ADMIN)
            assert view.status == current
            assert len(view.timeline) >= len(held)
            assert view.timeline[-1].status == current
            assert view.timeline[0].status == ApplicationStatus.PENDING_REVIEW

    @given(
        terminal=st.sampled_from(sorted(TERMINAL_STATUSES, key=lambda s: s.value)),
        operation=st.sampled_from(OPERATIONS),
    )
    @settings(max_examples=40, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_terminal_applications_are_locked(self, make_services, seed_job, terminal, operation):
        """Once terminal, every further transition fails with InvalidState and writes nothing."""
        services = make_services()
        job_id = seed_job(services)
        application = services.applications.save_job(job_id, USER)

        if terminal == ApplicationStatus.REJECTED:
            services.applications.review(application.id, ADMIN, approve=False)
        elif terminal == ApplicationStatus.WITHDRAWN:
            services.applications.withdraw(application.id, USER)
        else:
            services.applications.advance_status(application.id, terminal, ADMIN)

        before = services.applications.get_application(application.id, ADMIN)
        with pytest.raises(InvalidStateError):
            perform(services, application.id, operation)

        after = services.applications.get_application(application.id, ADMIN)
        assert after.status == terminal
        assert after.timeline == before.timeline

    @given(prefix=st.lists(st.sampled_from(["approve", "reject", "viewed", "application_sent"]), max_size=2))
    @settings(max_examples=30, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_apply_on_behalf_requires_approved(self, make_services, seed_job, prefix):
        """Apply-on-behalf succeeds only from exactly approved."""
        services = make_services()
        job_id = seed_job(services)
        application = services.applications.save_job(job_id, USER)

        status = application.status
        for operation in prefix:
            if expected_outcome(status, operation) is not None:
                status = perform(services, application.id, operation).status

        if status == ApplicationStatus.APPROVED:
            applied = services.applications.apply_on_behalf(application.id, ADMIN)
            assert applied.status == ApplicationStatus.APPLIED
            assert applied.applied_by == ADMIN.id
        else:
            with pytest.raises(InvalidStateError):
                services.applications.apply_on_behalf(application.id, ADMIN)

    @given(
        current=st.sampled_from(list(ApplicationStatus)),
        target=st.sampled_from(list(ApplicationStatus)),
        role=st.sampled_from(list(ActorRole)),
    )
    @settings(max_examples=300, deadline=2000)
    def test_validate_transition_property(self, current, target, role):
        """Authorization is decided first, then terminal states reject everything."""
        actor = Actor(id="someone", role=role)
        authorized = (target == ApplicationStatus.WITHDRAWN) != (role == ActorRole.ADMIN)

        if not authorized:
            with pytest.raises(ForbiddenError):
                validate_transition(current, target, actor)
        elif current in TERMINAL_STATUSES or target == ApplicationStatus.PENDING_REVIEW:
            with pytest.raises(InvalidStateError):
                validate_transition(current, target, actor)
        elif target in (ApplicationStatus.APPROVED, ApplicationStatus.REJECTED):
            if current == ApplicationStatus.PENDING_REVIEW:
                validate_transition(current, target, actor)
            else:
                with pytest.raises(InvalidStateError):
                    validate_transition(current, target, actor)
        elif target == ApplicationStatus.APPLIED:
            if current == ApplicationStatus.APPROVED:
                validate_transition(current, target, actor)
            else:
                with pytest.raises(InvalidStateError):
                    validate_transition(current, target, actor)
        else:
            validate_transition(current, target, actor)
