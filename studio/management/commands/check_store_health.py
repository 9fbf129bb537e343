"""
Management command to check that the studio catalog can be read.

Suitable for a monitoring cron job: exits with an error when any
dependency fails to answer.
"""

from django.core.management.base import BaseCommand, CommandError

from studio.facade import YogaStudioAPI
from studio.store import DocumentStore


class Command(BaseCommand):
    help = 'Check that the course and schedule collections can be read'

    def add_arguments(self, parser):
        parser.add_argument(
            '--database',
            default='default',
            help='Database alias of the document store (default: default)'
        )

    def handle(self, *args, **options):
        self.stdout.write(f"Checking store health on '{options['database']}'...")

        api = YogaStudioAPI(store=DocumentStore(using=options['database']))
        report = api.health_check().data

        for name, service in report['services'].items():
            self.stdout.write(f"  {name}: {service['status']} - {service['message']}")

        if report['status'] != 'HEALTHY':
            raise CommandError(f"Store is {report['status']}")

        self.stdout.write(self.style.SUCCESS('Store is HEALTHY'))
