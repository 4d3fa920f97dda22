import logging
from datetime import timedelta
from django.core.management.base import BaseCommand
from apps.domain.models import Envelope
from apps.application.services.envelope_state_machine import EnvelopeStateMachine, retryable_finalization

logger = logging.getLogger('apps')


class Command(BaseCommand):
    help = 'Re-runs finalization for completed envelopes whose signed PDF failed to publish or never reported back'

    def add_arguments(self, parser):
        parser.add_argument('--envelope', dest='envelope_ids', action='append', default=[],
                            help='Only retry this envelope id (repeatable)')
        parser.add_argument('--stale-minutes', type=int, default=None,
                            help='Treat PENDING artifacts dispatched longer ago than this as stalled '
                                 '(defaults to FINALIZER_STALE_AFTER_MINUTES)')

    def handle(self, *args, **options):
        stale_after = None
        if options['stale_minutes'] is not None:
            stale_after = timedelta(minutes=options['stale_minutes'])

        envelopes = Envelope.objects.filter(retryable_finalization(stale_after=stale_after))
        if options['envelope_ids']:
            envelopes = envelopes.filter(pk__in=options['envelope_ids'])

        state_machine = EnvelopeStateMachine()
        retried = 0
        for envelope in envelopes:
            if state_machine.retry_finalization(envelope, stale_after=stale_after):
                retried += 1

        logger.info(f'Finalization retried for {retried} envelope(s)')
        self.stdout.write(self.style.SUCCESS(f'Retried finalization for {retried} envelope(s)'))
