#!/usr/bin/env python3
"""forgeloop - quality-gated code generation from a project plan.

Usage:
    python main.py run test                      # first task only
    python main.py run all                       # every task in the plan
    python main.py run phase "Database"          # tasks whose phase/title/path match
    python main.py run all --resume              # continue an unfinished run
    python main.py run all --fresh               # discard the checkpoint, start over
    python main.py run all --max-iters 2 --no-reflect
    python main.py list                          # phases and task counts
    python main.py status                        # checkpoint progress
"""

import argparse
import sys

from dotenv import load_dotenv

from agents.reflect import ReflectAgent
from config.defaults import load_config
from core.errors import PipelineError
from core.orchestrator import Pipeline
from core.plan_parser import list_phases
from core.session import load_last_session
from utils.logs import configure_logging


def _print_resume_prompt(summary):
    print("\nFound an unfinished run:")
    print(f"   Mode: {summary['mode']}" + (f" ({summary['phaseName']})" if summary["phaseName"] else ""))
    print(f"   Progress: {summary['completed']}/{summary['total']} tasks")
    print(f"   Last task: {summary['lastTask']}")
    print(f"   Updated: {summary['updatedAt']}")
    print("\nRerun with --resume to continue or --fresh to start over.")


def run_reflection(pipeline):
    """Reflect on the session just written, if auto-reflect is enabled."""
    settings = pipeline.knowledge.reflect_settings()
    if not settings["enabled"]:
        return
    session = load_last_session(pipeline.log_path, pipeline.checkpoints)
    if session is None or not session.tasks:
        print("\nNo session data to reflect on.")
        return
    agent = ReflectAgent(
        llm=pipeline.llm,
        cost_tracker=pipeline.cost_tracker,
        knowledge=pipeline.knowledge,
        model=pipeline.config["reflect_model"],
        max_tokens=pipeline.config["reflect_max_tokens"],
        timeout=pipeline.config.get("api_timeout") or None,
    )
    reflection = agent.analyze_session(session)
    if not reflection.proposed_updates:
        print("\nNo new learnings extracted.")
        return
    agent.approval_loop(reflection)


def cmd_run(args, config):
    if args.mode == "phase" and not args.name:
        print("run phase needs a phase name, e.g.: run phase \"Phase 2\"")
        return 1
    if args.resume and args.fresh:
        print("--resume and --fresh are mutually exclusive")
        return 1

    pipeline = Pipeline(config)
    report = pipeline.run(args.mode, args.name, resume=args.resume, fresh=args.fresh)
    if report.needs_choice:
        _print_resume_prompt(report.checkpoint_summary)
        return 0
    if report.error:
        return 1
    if not args.no_reflect and report.outcomes:
        run_reflection(pipeline)
    return 0


def cmd_list(args, config):
    pipeline = Pipeline(config)
    _, tasks = pipeline.load_tasks()
    print(f"{len(tasks)} task(s) in plan:\n")
    for phase, count in list_phases(tasks):
        print(f"  {phase or '(no phase)'}: {count} task(s)")
    return 0


def cmd_status(args, config):
    pipeline = Pipeline(config)
    if pipeline.checkpoints.load() is None:
        print("No checkpoint found.")
        return 0
    summary = pipeline.checkpoints.summary()
    state = "finished" if summary["finished"] else "in progress"
    print(f"Checkpoint ({state}):")
    print(f"   Mode: {summary['mode']}" + (f" ({summary['phaseName']})" if summary["phaseName"] else ""))
    print(f"   Progress: {summary['completed']}/{summary['total']} tasks")
    print(f"   Last task: {summary['lastTask']}")
    print(f"   Updated: {summary['updatedAt']}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        prog="forgeloop",
        description="Quality-gated code generation from a project plan",
    )
    parser.add_argument("--verbose", action="store_true", help="Show diagnostic logging")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Generate code for plan tasks")
    run_parser.add_argument("mode", choices=["test", "all", "phase"],
                            help="test: first task, all: every task, phase: matching tasks")
    run_parser.add_argument("name", nargs="?", help="Phase name (phase mode)")
    run_parser.add_argument("--resume", action="store_true",
                            help="Continue the unfinished run from its checkpoint")
    run_parser.add_argument("--fresh", action="store_true",
                            help="Discard any checkpoint and start over")
    run_parser.add_argument("--max-iters", type=int,
                            help="Max generate/review iterations per task (capped at 5)")
    run_parser.add_argument("--no-reflect", action="store_true",
                            help="Skip reflection after the run")

    subparsers.add_parser("list", help="List plan phases and task counts")
    subparsers.add_parser("status", help="Show checkpoint progress")
    return parser


def main(argv=None):
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    commands = {"run": cmd_run, "list": cmd_list, "status": cmd_status}
    if args.command not in commands:
        parser.print_help()
        return 1

    config = load_config(max_iterations=getattr(args, "max_iters", None))
    try:
        return commands[args.command](args, config)
    except PipelineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
