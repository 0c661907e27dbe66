"""
Management command to verify the pipeline's external tools and secrets.

Usage:
    python manage.py check_toolchain                 # Check every tool
    python manage.py check_toolchain docker git      # Check specific tools
    python manage.py check_toolchain --list          # List known tools
    python manage.py check_toolchain --secrets       # Also report missing secrets per stage
    python manage.py check_toolchain --json          # Output as JSON
"""

import json
import shutil
import sys

from django.core.management.base import BaseCommand, CommandError

from apps.orchestration.models import PipelineStage
from apps.toolchain.exceptions import MissingSecretError
from apps.toolchain.runner import CommandRunner
from apps.toolchain.secret_store import SecretStore
from apps.toolchain.tools import TOOL_REGISTRY, get_tool


class Command(BaseCommand):
    help = "Check that the tools and secrets used by pipeline stages are available"

    def add_arguments(self, parser):
        parser.add_argument(
            "tools",
            nargs="*",
            type=str,
            help="Specific tools to check (e.g., docker terraform). Checks all if not specified.",
        )
        parser.add_argument(
            "--list",
            action="store_true",
            help="List all known tools and exit.",
        )
        parser.add_argument(
            "--secrets",
            action="store_true",
            help="Also check that each stage's secrets are set.",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            dest="json_output",
            help="Output results as JSON.",
        )

    def handle(self, *args, **options):
        if options["list"]:
            self._list_tools()
            return

        names = options["tools"] or list(TOOL_REGISTRY.keys())
        invalid = [name for name in names if name not in TOOL_REGISTRY]
        if invalid:
            raise CommandError(
                f"Unknown tool(s): {', '.join(invalid)}. "
                f"Available: {', '.join(TOOL_REGISTRY.keys())}"
            )

        runner = CommandRunner()
        tools = []
        for name in names:
            tool = get_tool(name, runner)
            tools.append(
                {
                    "tool": name,
                    "binary": tool.binary,
                    "available": tool.is_available(),
                    "path": shutil.which(tool.binary) or "",
                }
            )

        secrets = []
        if options["secrets"]:
            store = SecretStore()
            for stage in PipelineStage.values:
                try:
                    store.for_stage(stage)
                    secrets.append({"stage": stage, "missing": []})
                except MissingSecretError as e:
                    secrets.append({"stage": stage, "missing": e.names})

        if options["json_output"]:
            self.stdout.write(json.dumps({"tools": tools, "secrets": secrets}, indent=2))
        else:
            self._output_text(tools, secrets)

        # sonar-scanner can be downloaded on demand, so it never fails the check.
        missing_tools = [t for t in tools if not t["available"] and t["tool"] != "sonar-scanner"]
        missing_secrets = [s for s in secrets if s["missing"]]
        if missing_tools or missing_secrets:
            sys.exit(1)

    def _list_tools(self):
        self.stdout.write(self.style.SUCCESS("Available tools:\n"))
        for name, tool_class in TOOL_REGISTRY.items():
            doc = tool_class.__doc__ or "No description"
            description = doc.strip().split("\n")[0]
            self.stdout.write(f"  {self.style.WARNING(name):20} {description}")
        self.stdout.write("")

    def _output_text(self, tools, secrets):
        self.stdout.write("")
        self.stdout.write(self.style.SUCCESS("=" * 60))
        self.stdout.write(self.style.SUCCESS(" PIPELINE TOOLCHAIN"))
        self.stdout.write(self.style.SUCCESS("=" * 60))
        self.stdout.write("")

        for entry in tools:
            if entry["available"]:
                status = self.style.SUCCESS("[OK]")
                detail = entry["path"] or entry["binary"]
            else:
                status = self.style.ERROR("[MISSING]")
                detail = entry["binary"]
            self.stdout.write(f"{status} {entry['tool']}: {detail}")

        if secrets:
            self.stdout.write("")
            for entry in secrets:
                if entry["missing"]:
                    self.stdout.write(
                        self.style.ERROR(
                            f"[MISSING] {entry['stage']}: {', '.join(entry['missing'])}"
                        )
                    )
                else:
                    self.stdout.write(self.style.SUCCESS(f"[OK] {entry['stage']} secrets"))

        self.stdout.write("")
