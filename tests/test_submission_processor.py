import uuid
from datetime import timedelta
import pytest
from unittest.mock import Mock
from django.utils import timezone
from apps.domain.exceptions import (
    EnvelopeClosed,
    InvalidState,
    NotFound,
    NotYourTurn,
    ValidationFailed,
)
from apps.domain.models import Envelope, Recipient, SignatureField
from apps.application.services.field_placement import Submission, ERROR_REQUIRED
from apps.application.services.envelope_state_machine import EnvelopeStateMachine
from apps.application.services.recipient_registry import RecipientRegistry
from apps.application.services.submission_processor import (
    SessionRecipientResolver,
    SubmissionProcessor,
    SubmissionResult,
    TokenRecipientResolver,
)


@pytest.mark.django_db
class TestSigningScenarios:
    def test_sequential_signing(self, processor, sequential_envelope, values_for):
        envelope, r1, r2 = sequential_envelope

        with pytest.raises(NotYourTurn):
            processor.submit(r2.token, Submission(values_for(r2)))

        first = processor.submit(r1.token, Submission(values_for(r1)))
        assert first.to_dict() == {'signed': True, 'completed': False}

        second = processor.submit(r2.token, Submission(values_for(r2)))
        assert second.to_dict() == {'signed': True, 'completed': True}

        again = processor.submit(r1.token, Submission(values_for(r1)))
        assert again.to_dict() == {'signed': True, 'completed': False, 'already_signed': True}

        envelope.refresh_from_db()
        assert envelope.status == Envelope.STATUS_COMPLETED

    def test_captured_signature_fills_blank_signature_fields(self, processor, sequential_envelope, signature_image):
        envelope, r1, r2 = sequential_envelope
        date_field = r1.fields.get(field_type=SignatureField.TYPE_DATE)
        signature_field = r1.fields.get(field_type=SignatureField.TYPE_SIGNATURE)

        result = processor.submit(
            r1.token,
            Submission({str(date_field.id): '2024-01-01'}, signature_image=signature_image),
        )

        assert result.signed is True
        signature_field.refresh_from_db()
        date_field.refresh_from_db()
        assert signature_field.value == signature_image
        assert signature_field.filled_at is not None
        assert date_field.value == '2024-01-01'

    def test_captured_signature_fills_every_blank_block(self, processor, envelope, make_recipient, make_field,
                                                        signature_image):
        recipient = make_recipient(envelope, 'Ana', 'ana@example.com')
        blocks = [
            make_field(recipient, SignatureField.TYPE_SIGNATURE, page=1),
            make_field(recipient, SignatureField.TYPE_INITIAL, page=1, coord_y=0.5),
            make_field(recipient, SignatureField.TYPE_INITIAL, page=2, coord_y=0.5),
        ]
        envelope.status = Envelope.STATUS_SENT
        envelope.save()

        assert processor.submit(recipient.token, Submission({}, signature_image=signature_image)).completed is True
        for block in blocks:
            block.refresh_from_db()
            assert block.value == signature_image

    def test_cancel_after_first_signature(self, processor, state_machine, sequential_envelope, values_for):
        envelope, r1, r2 = sequential_envelope
        processor.submit(r1.token, Submission(values_for(r1)))
        state_machine.cancel(envelope)

        with pytest.raises(EnvelopeClosed):
            processor.submit(r2.token, Submission(values_for(r2)))

        envelope.refresh_from_db()
        r2.refresh_from_db()
        assert envelope.status == Envelope.STATUS_CANCELLED
        assert r2.status == Recipient.STATUS_INVITED

    def test_parallel_signers(self, processor, envelope, make_recipient, make_field, values_for):
        a = make_recipient(envelope, 'A', 'a@example.com', 1)
        b = make_recipient(envelope, 'B', 'b@example.com', 1)
        make_field(a, SignatureField.TYPE_TEXT)
        make_field(b, SignatureField.TYPE_TEXT)
        envelope.status = Envelope.STATUS_SENT
        envelope.save()

        assert processor.submit(b.token, Submission(values_for(b))).to_dict() == {'signed': True, 'completed': False}
        assert processor.submit(a.token, Submission(values_for(a))).to_dict() == {'signed': True, 'completed': True}

    def test_parallel_signers_from_separate_requests(self, mock_facade, mock_finalizer, envelope, make_recipient,
                                                     make_field, values_for, django_capture_on_commit_callbacks):
        a = make_recipient(envelope, 'A', 'a@example.com', 1)
        b = make_recipient(envelope, 'B', 'b@example.com', 1)
        make_field(a, SignatureField.TYPE_TEXT)
        make_field(b, SignatureField.TYPE_TEXT)
        envelope.status = Envelope.STATUS_SENT
        envelope.save()

        def new_processor():
            return SubmissionProcessor(
                facade=mock_facade,
                registry=RecipientRegistry(facade=mock_facade),
                state_machine=EnvelopeStateMachine(facade=mock_facade, finalizer=mock_finalizer),
            )

        # each request resolved its recipient before the other one committed
        resolved = [TokenRecipientResolver().resolve(a.token), TokenRecipientResolver().resolve(b.token)]
        with django_capture_on_commit_callbacks(execute=True):
            results = [
                new_processor().submit_for(resolved[0], Submission(values_for(a))),
                new_processor().submit_for(resolved[1], Submission(values_for(b))),
            ]

        assert all(r.signed for r in results)
        assert [r.completed for r in results].count(True) == 1
        mock_finalizer.finalize.assert_called_once_with(envelope.pk)
        envelope.refresh_from_db()
        assert envelope.status == Envelope.STATUS_COMPLETED


@pytest.mark.django_db
class TestSubmitRules:
    def test_unknown_token(self, processor):
        with pytest.raises(NotFound):
            processor.submit('no-such-token', Submission({}))

    def test_draft_token_does_not_resolve(self, processor, envelope, make_recipient):
        recipient = make_recipient(envelope, 'Ana', 'ana@example.com')
        with pytest.raises(NotFound):
            processor.submit(recipient.token, Submission({}))

    def test_declined_recipient(self, processor, registry, sequential_envelope, values_for):
        envelope, r1, r2 = sequential_envelope
        registry.mark_declined(r1.id)
        with pytest.raises(InvalidState):
            processor.submit(r1.token, Submission(values_for(r1)))

    def test_validation_failure_reports_field_ids(self, processor, sequential_envelope, signature_image):
        envelope, r1, r2 = sequential_envelope
        date_field = r1.fields.get(field_type=SignatureField.TYPE_DATE)
        signature_field = r1.fields.get(field_type=SignatureField.TYPE_SIGNATURE)

        with pytest.raises(ValidationFailed) as exc:
            processor.submit(r1.token, Submission({str(signature_field.id): signature_image}))

        assert exc.value.details['field_ids'] == [str(date_field.id)]
        assert exc.value.field_errors == {str(date_field.id): ERROR_REQUIRED}
        r1.refresh_from_db()
        signature_field.refresh_from_db()
        assert r1.status == Recipient.STATUS_INVITED
        assert signature_field.value is None

    def test_field_of_another_recipient_is_rejected(self, processor, sequential_envelope, values_for):
        envelope, r1, r2 = sequential_envelope
        values = values_for(r1)
        foreign = r2.fields.first()
        values[str(foreign.id)] = '2024-01-01'

        with pytest.raises(ValidationFailed) as exc:
            processor.submit(r1.token, Submission(values))
        assert str(foreign.id) in exc.value.field_errors

    def test_resubmission_does_not_mutate(self, processor, sequential_envelope, values_for):
        envelope, r1, r2 = sequential_envelope
        processor.submit(r1.token, Submission(values_for(r1)))
        date_field = r1.fields.get(field_type=SignatureField.TYPE_DATE)
        signed_at = Recipient.objects.get(pk=r1.pk).signed_at

        result = processor.submit(r1.token, Submission({str(date_field.id): '2030-12-31'}))

        assert result.already_signed is True
        date_field.refresh_from_db()
        assert date_field.value == '2024-01-01'
        assert Recipient.objects.get(pk=r1.pk).signed_at == signed_at
        assert envelope.events.filter(event_type='SIGNED').count() == 1

    def test_unset_checkbox_is_committed_as_false(self, processor, envelope, make_recipient, make_field):
        recipient = make_recipient(envelope, 'Ana', 'ana@example.com')
        box = make_field(recipient, SignatureField.TYPE_CHECKBOX)
        envelope.status = Envelope.STATUS_SENT
        envelope.save()

        processor.submit(recipient.token, Submission({}))

        box.refresh_from_db()
        assert box.value == 'false'

    def test_resubmit_after_completion_reports_already_signed(self, processor, sequential_envelope, values_for):
        envelope, r1, r2 = sequential_envelope
        processor.submit(r1.token, Submission(values_for(r1)))
        processor.submit(r2.token, Submission(values_for(r2)))

        result = processor.submit(r2.token, Submission(values_for(r2)))
        assert result == SubmissionResult(signed=True, completed=False, already_signed=True)


@pytest.mark.django_db
class TestSigningContext:
    def test_context_contains_only_own_fields(self, processor, mock_facade, sequential_envelope):
        envelope, r1, r2 = sequential_envelope
        context = processor.get_signing_context(r2)

        assert context['envelope'] == envelope
        assert context['recipient'] == r2
        assert {f.id for f in context['fields']} == {f.id for f in r2.fields.all()}
        assert context['can_act'] is False
        assert context['pdf_download_url'] == 'https://files.example.com/fv_source.pdf'
        mock_facade.get_download_url.assert_called_once_with('fv_source')

    def test_context_prefers_published_artifact(self, processor, mock_facade, sequential_envelope):
        envelope, r1, r2 = sequential_envelope
        Envelope.objects.filter(pk=envelope.pk).update(
            status=Envelope.STATUS_COMPLETED,
            artifact_status=Envelope.ARTIFACT_PUBLISHED,
            completed_file_version_id='fv_signed',
        )
        context = processor.get_signing_context(r1)
        assert context['can_act'] is False
        mock_facade.get_download_url.assert_called_once_with('fv_signed')

    def test_context_survives_storage_outage(self, processor, mock_facade, sequential_envelope):
        envelope, r1, r2 = sequential_envelope
        mock_facade.get_download_url.side_effect = Exception('storage down')
        context = processor.get_signing_context(r1)
        assert context['pdf_download_url'] is None
        assert context['can_act'] is True

    def test_cancelled_envelope_is_unavailable(self, processor, state_machine, sequential_envelope):
        envelope, r1, r2 = sequential_envelope
        state_machine.cancel(envelope)
        with pytest.raises(EnvelopeClosed):
            processor.get_signing_context(r1)


@pytest.mark.django_db
class TestViewedAndDecline:
    def test_mark_viewed(self, processor, sequential_envelope):
        envelope, r1, r2 = sequential_envelope
        assert processor.mark_viewed(r1).status == Recipient.STATUS_VIEWED

    def test_mark_viewed_on_cancelled(self, processor, state_machine, sequential_envelope):
        envelope, r1, r2 = sequential_envelope
        state_machine.cancel(envelope)
        with pytest.raises(EnvelopeClosed):
            processor.mark_viewed(r1)

    def test_mark_viewed_reads_status_after_locking_recipient(self, processor, registry, mock_facade,
                                                               sequential_envelope):
        envelope, r1, r2 = sequential_envelope
        lock = registry.lock

        def cancel_while_waiting(recipient_id):
            locked = lock(recipient_id)
            Envelope.objects.filter(pk=envelope.pk).update(status=Envelope.STATUS_CANCELLED)
            return locked

        registry.lock = cancel_while_waiting
        with pytest.raises(EnvelopeClosed):
            processor.mark_viewed(r1)

        r1.refresh_from_db()
        assert r1.status == Recipient.STATUS_INVITED
        mock_facade.notify.assert_not_called()

    def test_mark_viewed_on_completed_is_noop(self, processor, mock_facade, sequential_envelope):
        envelope, r1, r2 = sequential_envelope
        Envelope.objects.filter(pk=envelope.pk).update(status=Envelope.STATUS_COMPLETED)

        assert processor.mark_viewed(r1).status == Recipient.STATUS_INVITED
        mock_facade.notify.assert_not_called()

    def test_decline_blocks_completion(self, processor, sequential_envelope, values_for):
        envelope, r1, r2 = sequential_envelope
        processor.submit(r1.token, Submission(values_for(r1)))
        declined = processor.decline(r2, 'Not authorised to sign')

        assert declined.status == Recipient.STATUS_DECLINED
        envelope.refresh_from_db()
        assert envelope.status == Envelope.STATUS_SENT
        with pytest.raises(InvalidState):
            processor.submit(r2.token, Submission(values_for(r2)))

    def test_decline_out_of_turn_is_allowed(self, processor, sequential_envelope):
        envelope, r1, r2 = sequential_envelope
        assert processor.decline(r2).status == Recipient.STATUS_DECLINED

    def test_decline_on_cancelled(self, processor, state_machine, sequential_envelope):
        envelope, r1, r2 = sequential_envelope
        state_machine.cancel(envelope)
        with pytest.raises(EnvelopeClosed):
            processor.decline(r1)


@pytest.mark.django_db
class TestResolvers:
    def test_token_resolver(self, sequential_envelope):
        envelope, r1, r2 = sequential_envelope
        assert TokenRecipientResolver().resolve(r1.token) == r1

    def test_token_resolver_rejects_empty(self):
        with pytest.raises(NotFound):
            TokenRecipientResolver().resolve('')

    def test_session_resolver_matches_email_case_insensitively(self, sequential_envelope):
        envelope, r1, r2 = sequential_envelope
        user = Mock(is_authenticated=True, email='BRUNO@Example.com')
        assert SessionRecipientResolver(user).resolve(envelope.contract_id) == r2

    def test_session_resolver_uses_latest_sent_envelope(self, sequential_envelope, user, make_recipient):
        envelope, r1, r2 = sequential_envelope
        Envelope.objects.filter(pk=envelope.pk).update(created_at=timezone.now() - timedelta(days=1))
        newer = Envelope.objects.create(
            contract_id=envelope.contract_id,
            title='Amendment',
            source_file_version_id='fv_amend',
            created_by=user,
            status=Envelope.STATUS_SENT,
        )
        newer_recipient = make_recipient(newer, 'Ana Lima', 'ana@example.com')
        Envelope.objects.create(
            contract_id=envelope.contract_id,
            title='Unsent draft',
            source_file_version_id='fv_draft',
            created_by=user,
        )

        resolved = SessionRecipientResolver(Mock(is_authenticated=True, email='ana@example.com')).resolve(envelope.contract_id)
        assert resolved == newer_recipient

    def test_session_resolver_unknown_user(self, sequential_envelope):
        envelope, r1, r2 = sequential_envelope
        with pytest.raises(NotFound):
            SessionRecipientResolver(Mock(is_authenticated=True, email='nobody@example.com')).resolve(envelope.contract_id)

    def test_session_resolver_anonymous(self, sequential_envelope):
        envelope, r1, r2 = sequential_envelope
        with pytest.raises(NotFound):
            SessionRecipientResolver(Mock(is_authenticated=False, email='ana@example.com')).resolve(envelope.contract_id)

    def test_session_resolver_unknown_contract(self):
        with pytest.raises(NotFound):
            SessionRecipientResolver(Mock(is_authenticated=True, email='ana@example.com')).resolve(uuid.uuid4())

    def test_session_submission_uses_same_processor(self, processor, sequential_envelope, values_for):
        envelope, r1, r2 = sequential_envelope
        recipient = SessionRecipientResolver(Mock(is_authenticated=True, email='ana@example.com')).resolve(envelope.contract_id)
        assert processor.submit_for(recipient, Submission(values_for(recipient))).signed is True
