#!/usr/bin/env python3
"""Reflect CLI - learn from finished QA sessions.

Usage:
    python reflect.py                    # reflect on the last session
    python reflect.py --session <file>   # reflect on a specific log file
    python reflect.py --status           # knowledge base status
    python reflect.py --on               # enable auto-reflect after runs
    python reflect.py --off              # disable auto-reflect
"""

import argparse
import os
import sys

from dotenv import load_dotenv

from agents.reflect import ReflectAgent
from config.defaults import load_config
from core.checkpoint import CheckpointManager
from core.cost import CostTracker
from core.knowledge import KnowledgeStore
from core.session import load_last_session, load_log_file
from utils.logs import configure_logging


def _in_project(config, path):
    return path if os.path.isabs(path) else os.path.join(config["project_path"], path)


def show_status(knowledge):
    stats = knowledge.stats()
    settings = knowledge.reflect_settings()
    print("\nKNOWLEDGE BASE STATUS\n")
    print("Files:")
    print(f"   Static (human-maintained): {stats['staticFiles']}")
    print(f"   Lesson files: {stats['lessonFiles']}")
    print(f"   Pattern files: {stats['patternFiles']}")
    print("\nContent:")
    print(f"   Total lessons learned: {stats['totalLessons']}")
    print(f"   Architecture decisions: {stats['totalDecisions']}")
    print("\nConfiguration:")
    print(f"   Auto-reflect: {'enabled' if settings['enabled'] else 'disabled'}")
    print(f"   Mode: {settings['mode']}")
    print(f"   Auto-approve: {', '.join(settings['autoApprove'])}")


def set_auto_reflect(knowledge, enabled):
    try:
        knowledge.set_reflect_enabled(enabled)
    except OSError as e:
        print(f"Failed to update config: {e}", file=sys.stderr)
        return 1
    if enabled:
        print("Auto-reflect enabled")
        print("   Learnings will be extracted after each pipeline run.")
    else:
        print("Auto-reflect disabled")
        print('   Run "python reflect.py" manually to extract learnings.')
    return 0


def reflect(config, knowledge, session_file=None, agent=None):
    """Analyze a session and run the approval loop. Returns (applied, skipped) or None."""
    print("\nStarting reflection...\n")
    session = None
    if session_file:
        print(f"Loading session from: {session_file}")
        session = load_log_file(session_file)
    if session is None or not session.tasks:
        checkpoints = CheckpointManager(_in_project(config, config["checkpoint_dir"]),
                                        config["pipeline_name"])
        session = load_last_session(_in_project(config, config["qa_log_path"]), checkpoints)

    if session is None or not session.tasks:
        print("No session data found.")
        print("   Run the pipeline first, or specify a log file with --session")
        return None

    print(f"Found {len(session.tasks)} task(s) to analyze\n")
    agent = agent or ReflectAgent(
        cost_tracker=CostTracker(),
        knowledge=knowledge,
        model=config["reflect_model"],
        max_tokens=config["reflect_max_tokens"],
        timeout=config.get("api_timeout") or None,
    )
    reflection = agent.analyze_session(session)
    if not reflection.proposed_updates:
        print("No new learnings extracted from this session.")
        print("   Either everything passed on the first try or the lessons already exist.")
        return [], []
    return agent.approval_loop(reflection)


def build_parser():
    parser = argparse.ArgumentParser(prog="reflect", description="Learn from QA sessions")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--session", "-s", metavar="FILE", help="Path to a session log file")
    group.add_argument("--status", action="store_true", help="Show knowledge base status")
    group.add_argument("--on", action="store_true", help="Enable auto-reflect")
    group.add_argument("--off", action="store_true", help="Disable auto-reflect")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show detailed output")
    return parser


def main(argv=None):
    load_dotenv()
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    config = load_config()
    knowledge = KnowledgeStore(_in_project(config, config["knowledge_dir"]))

    if args.status:
        show_status(knowledge)
        return 0
    if args.on or args.off:
        return set_auto_reflect(knowledge, args.on)
    reflect(config, knowledge, session_file=args.session)
    return 0


if __name__ == "__main__":
    sys.exit(main())
