from django.core.management.base import BaseCommand

from lab_core.workflows.sla_scanner import sla_stats, update_all_sla_statuses


class Command(BaseCommand):
    help = "Reclassify open samples as on_time / at_risk / breached"

    def add_arguments(self, parser):
        parser.add_argument(
            "--stats",
            action="store_true",
            help="Print SLA counts after the refresh",
        )

    def handle(self, *args, **options):
        outcome = update_all_sla_statuses()
        self.stdout.write(
            self.style.SUCCESS(
                f"SLA refresh: {outcome['updated']} updated, {outcome['errors']} errors"
            )
        )

        if options["stats"]:
            for key, value in sla_stats().items():
                self.stdout.write(f"{key}: {value}")
