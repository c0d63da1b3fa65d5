from __future__ import annotations
from typing import Any, Optional
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException
import logging

from concepts import Account, ConceptError, Follower, Id, Mapper, Merge, Profile
from config import Settings, get_settings
from engine import ActionMap, SyncContext, Synchronizer
from errors import SyncError, UnknownAction
from sync import parse, parse_file

logger = logging.getLogger(__name__)

DEFAULT_SYNCS = """
when
  Account.create(username, password, email) -> user
sync
  Profile.create(user, username, "", "")

when
  Account.update(user, username) -> true
  Profile.getById(user) -> profile
sync
  Profile.rename(user, username)

when
  Follower.follow(user, target) -> true
sync
  Profile.adjustFollowers(target, 1)

when
  Follower.unfollow(user, target) -> true
sync
  Profile.adjustFollowers(target, -1)

when
  Account.delete(user) -> true
sync
  Profile.delete(user)
  Follower.removeUser(user)
"""


# ====== Build & Run ======

def build_engine(settings: Optional[Settings] = None) -> Synchronizer:
    settings = settings or get_settings()
    syncs = parse_file(settings.sync_file) if settings.sync_file else parse(DEFAULT_SYNCS)
    actions = ActionMap.from_concepts(Account(), Profile(), Follower(), Merge(), Mapper())
    context = SyncContext(syncs, actions)
    for name in context.unknown_actions():
        logger.warning("Sync references unregistered action %s", name, extra={"action": name})
    return Synchronizer(context, max_traces=settings.max_cascade_traces)


def to_json(value: Any) -> Any:
    if isinstance(value, Id):
        return str(value)
    if isinstance(value, dict):
        return {k: to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    return value


def make_app(eng: Synchronizer) -> Flask:
    app = Flask(__name__)

    @app.errorhandler(UnknownAction)
    def unknown_action(err: UnknownAction):
        return jsonify(err.to_response()), 404

    @app.errorhandler(SyncError)
    def sync_error(err: SyncError):
        logger.error("Sync failed: %s", err.message, extra={"error_code": err.code})
        return jsonify(err.to_response()), 500

    @app.errorhandler(ConceptError)
    def concept_error(err: ConceptError):
        return jsonify({"error": {"code": type(err).__name__, "message": str(err)}}), err.status

    @app.errorhandler(Exception)
    def action_error(err: Exception):
        if isinstance(err, HTTPException):
            return err
        # anything else escaping run was raised by an action itself
        logger.warning("Action failed: %s", err, exc_info=err, extra={"error_code": "ACTION_FAILED"})
        return jsonify({"error": {"code": "ACTION_FAILED", "message": f"{type(err).__name__}: {err}"}}), 400

    @app.post("/actions/<path:name>")
    async def run_action(name: str):
        body = request.get_json(silent=True)
        if body is None:
            body = {}
        if not isinstance(body, dict):
            return jsonify({"error": {"code": "BAD_REQUEST", "message": "body must be a JSON object"}}), 400
        args = body.get("args", [])
        if not isinstance(args, list):
            return jsonify({"error": {"code": "BAD_REQUEST", "message": "args must be a list"}}), 400
        result = await eng.run(name, args)
        return jsonify({"result": to_json(result)})

    @app.get("/syncs")
    def list_syncs():
        table = eng.context.syncs
        return jsonify({anchor: len(table[anchor]) for anchor in table.anchors()})

    return app
