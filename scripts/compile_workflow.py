#!/usr/bin/env python3
"""Validate, optionally repair, and compile a workflow into rules.

Usage::

    python scripts/compile_workflow.py scripts/example_workflow.json --optimize
    python scripts/compile_workflow.py --template sla-driven
    python scripts/compile_workflow.py scripts/example_workflow.json --optimize --json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from workflow_compiler import (
    WORKFLOW_TEMPLATES,
    WorkflowDefinitionError,
    decompose_workflow,
    export_workflow,
    optimize_workflow,
    parse_workflow,
    validate_workflow,
)
from workflow_compiler.config import get_settings
from workflow_compiler.schema import optimize_result_to_dict, validation_to_dict

logger = logging.getLogger("compile_workflow")


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")

    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("path", nargs="?", type=Path, help="workflow JSON document")
    source.add_argument("--template", choices=sorted(WORKFLOW_TEMPLATES), help="starter template")
    parser.add_argument("--optimize", action="store_true", help="auto-repair before compiling")
    parser.add_argument(
        "--json",
        action="store_true",
        help="print one JSON report with repairs, validation and the export",
    )
    args = parser.parse_args(argv)

    # 1. Load the workflow graph
    if args.template:
        workflow = WORKFLOW_TEMPLATES[args.template]()
    else:
        try:
            with open(args.path) as f:
                workflow = parse_workflow(json.load(f))
        except (OSError, json.JSONDecodeError, WorkflowDefinitionError) as exc:
            print(f"Cannot load workflow: {exc}", file=sys.stderr)
            return 1
    logger.info("Loaded workflow %s (%s) v%d", workflow.name, workflow.id, workflow.version)

    report: dict[str, Any] = {}

    # 2. Repair if asked to
    if args.optimize or settings.optimize_before_compile:
        result = optimize_workflow(workflow)
        report["optimize"] = optimize_result_to_dict(result)
        if not args.json:
            for change in result.changes:
                print(f"  fixed [{change.type.value}] {change.description}", file=sys.stderr)
        workflow = result.workflow

    # 3. Report validation issues
    validation = validate_workflow(workflow)
    report["validation"] = validation_to_dict(validation)
    if not args.json:
        for issue in validation.errors:
            print(f"  {issue.severity.value:7s} {issue.message}", file=sys.stderr)

    # 4. Compile the export envelope
    if validation.valid:
        rules = decompose_workflow(workflow)
        report["export"] = export_workflow(
            workflow, rules, exported_at=datetime.now(timezone.utc)
        )

    if args.json:
        print(json.dumps(report, indent=settings.json_indent, ensure_ascii=False))
    elif validation.valid:
        print(json.dumps(report["export"], indent=settings.json_indent, ensure_ascii=False))
    else:
        print("Workflow has validation errors; not compiling.", file=sys.stderr)
    return 0 if validation.valid else 1


if __name__ == "__main__":
    sys.exit(main())
