import json
import sys

from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone

from core.health import PROBES, run_checks


class Command(BaseCommand):
    help = "Run internal health checks (DB, cache) and print a summary for CI/CD pipelines."

    def add_arguments(self, parser):
        parser.add_argument("--db", action="store_true", help="Check database connectivity")
        parser.add_argument("--cache", action="store_true", help="Check cache connectivity")
        parser.add_argument("--json", action="store_true", help="Output as JSON (default is pretty text)")

    def handle(self, *args, **opts):
        ok, checks = run_checks([name for name in PROBES if opts.get(name)])
        results = {
            "time": timezone.now().isoformat(),
            "debug": bool(settings.DEBUG),
            "ok": ok,
            "checks": checks,
        }

        if opts.get("json"):
            self.stdout.write(json.dumps(results, indent=2))
        else:
            self.stdout.write(f"\n=== Tili Core Health Check ({results['time']}) ===\n")
            self.stdout.write(f"Debug={results['debug']}\n\n")
            for key, val in checks.items():
                mark = "OK  " if val["ok"] else "FAIL"
                err = f" ({val.get('error')})" if not val["ok"] else ""
                self.stdout.write(f" {mark} {key.upper()}{err}\n")
            self.stdout.write(f"\nOverall: {'OK' if ok else 'FAILED'}\n")

        # non-zero exit for CI
        if not ok:
            sys.exit(1)
