import json

from django.core.management.base import BaseCommand, CommandError

from shipsync.lock import RunLock
from shipsync.orchestrator import STATUS_FAILED, TRIGGER_MANUAL, TRIGGERS, SyncOrchestrator


class Command(BaseCommand):
    help = "Synchronise the ship catalog now and print the run summary."

    def add_arguments(self, parser):
        parser.add_argument('--trigger', choices=TRIGGERS, default=TRIGGER_MANUAL)
        parser.add_argument(
            '--force-unlock', action='store_true',
            help="Clear a run lock left behind by a crashed run before syncing.",
        )

    def handle(self, *args, **options):
        if options['force_unlock'] and RunLock().force_release():
            self.stderr.write(self.style.WARNING("Cleared an existing sync lock."))

        summary = SyncOrchestrator().run(options['trigger'])
        self.stdout.write(json.dumps(summary.as_dict(), indent=2))
        if summary.status == STATUS_FAILED:
            raise CommandError(f"Ship sync failed with {summary.error_count} error(s).")
