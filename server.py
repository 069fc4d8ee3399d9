#!/usr/bin/env python3
"""Status API for forgeloop - checkpoint, plan preview and knowledge base."""

import os

from dotenv import load_dotenv
from flask import Flask, jsonify, request

from config.defaults import load_config
from core.checkpoint import CheckpointManager
from core.knowledge import KnowledgeStore
from core.plan_parser import list_phases, parse_plan

load_dotenv()

app = Flask(__name__)
config = load_config()


def _in_project(path):
    return path if os.path.isabs(path) else os.path.join(config["project_path"], path)


knowledge = KnowledgeStore(_in_project(config["knowledge_dir"]))
checkpoints = CheckpointManager(_in_project(config["checkpoint_dir"]), config["pipeline_name"])


@app.route("/api/checkpoint")
def api_checkpoint():
    """Progress of the current (or last) run."""
    checkpoint = checkpoints.load()
    if checkpoint is None:
        return jsonify({"error": "No checkpoint"}), 404
    result = checkpoints.summary()
    result["pending"] = checkpoint.pending_indices()
    result["results"] = checkpoint.results
    return jsonify(result)


@app.route("/api/checkpoint", methods=["DELETE"])
def api_clear_checkpoint():
    checkpoints.clear()
    return jsonify({"cleared": True})


@app.route("/api/tasks", methods=["POST"])
def api_tasks():
    """Parse plan text and return the tasks a run would process."""
    data = request.get_json(silent=True)
    if not data or not str(data.get("plan", "")).strip():
        return jsonify({"error": "Missing plan"}), 400

    tasks = parse_plan(data["plan"])
    return jsonify({
        "tasks": [t.to_dict() for t in tasks],
        "phases": [{"name": name, "tasks": count} for name, count in list_phases(tasks)],
        "total": len(tasks),
    })


@app.route("/api/knowledge")
def api_knowledge():
    result = knowledge.stats()
    result["reflect"] = knowledge.reflect_settings()
    return jsonify(result)


@app.route("/api/reflect", methods=["POST"])
def api_reflect():
    """Toggle auto-reflect: {"enabled": true|false}."""
    data = request.get_json(silent=True)
    if not data or not isinstance(data.get("enabled"), bool):
        return jsonify({"error": "Missing boolean 'enabled'"}), 400
    knowledge.set_reflect_enabled(data["enabled"])
    return jsonify(knowledge.reflect_settings())


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5001))
    print(f"forgeloop status API at http://localhost:{port}")
    app.run(debug=False, port=port)
