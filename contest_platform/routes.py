# contest_platform/routes.py

# JSON routes for the contest platform. Each handler shapes the request body,
# lets the guard decide who may proceed, and hands off to the services held in
# app.extensions['contest_platform'].

import logging
import traceback
from datetime import datetime, timezone

from flask import Blueprint, current_app, g, jsonify, request
from werkzeug.exceptions import HTTPException

from contest_platform import limiter
from contest_platform.authentication.rbac import Capability, Permission, endpoint_capability, guarded
from contest_platform.errors import PlatformError, ServerError

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__)


def _services():
    return current_app.extensions['contest_platform']


def _json_body():
    return _services().validator.require_object(request.get_json(silent=True))


def _login_limit():
    return current_app.config['LOGIN_RATE_LIMIT']


@api.get('/')
@guarded(Capability.PUBLIC)
def index():
    endpoints = []
    for rule in sorted(current_app.url_map.iter_rules(), key=lambda r: r.rule):
        if rule.endpoint == 'static':
            continue
        view = current_app.view_functions[rule.endpoint]
        for method in sorted(rule.methods - {'HEAD', 'OPTIONS'}):
            endpoints.append({
                'method': method,
                'path': rule.rule,
                'auth': endpoint_capability(view).value,
            })
    return jsonify({
        'message': 'Contest Platform API',
        'status': 'Server is running',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'environment': _services().settings.environment,
        'endpoints': endpoints,
    })


# ---------------------------------------------------------------- auth ---- #

@api.post('/auth/register')
@guarded(Capability.PUBLIC)
def register():
    body = _json_body()
    user, token = _services().credentials.register(
        body.get('username'), body.get('email'), body.get('password'))
    return jsonify({'success': True, 'token': token, 'user': user.to_dict()}), 201


@api.post('/auth/login')
@limiter.limit(_login_limit)
@guarded(Capability.PUBLIC)
def login():
    body = _json_body()
    user, token = _services().credentials.login(body.get('email'), body.get('password'))
    return jsonify({'success': True, 'token': token, 'user': user.to_dict()}), 200


@api.get('/auth/me')
@guarded(Capability.AUTHENTICATED)
def me():
    return jsonify({'success': True, 'user': g.identity.to_dict()})


# -------------------------------------------------------- competitions ---- #

@api.get('/competitions')
@guarded(Capability.PUBLIC)
def list_competitions():
    competitions = _services().lifecycle.list()
    return jsonify({
        'success': True,
        'count': len(competitions),
        'data': [c.to_dict() for c in competitions],
    })


@api.get('/competitions/<int:competition_id>')
@guarded(Capability.PUBLIC)
def get_competition(competition_id):
    competition = _services().lifecycle.get(competition_id)
    return jsonify({'success': True, 'data': competition.to_dict()})


@api.post('/competitions')
@guarded(Capability.AUTHENTICATED, Permission.CREATE_COMPETITION)
def create_competition():
    competition = _services().lifecycle.create(g.identity, _json_body())
    return jsonify({'success': True, 'data': competition.to_dict()}), 201


@api.put('/competitions/<int:competition_id>')
@guarded(Capability.OWNER_OR_ADMIN)
def update_competition(competition_id):
    # Raw body: its shape is checked after ownership, so a stranger gets 403 whatever they sent.
    competition = _services().lifecycle.update(
        g.identity, competition_id, request.get_json(silent=True))
    return jsonify({'success': True, 'data': competition.to_dict()})


@api.delete('/competitions/<int:competition_id>')
@guarded(Capability.OWNER_OR_ADMIN)
def delete_competition(competition_id):
    _services().lifecycle.delete(g.identity, competition_id)
    return jsonify({'success': True, 'message': 'Competition deleted successfully'})


# ------------------------------------------------------ entries / votes ---- #

@api.get('/competitions/<int:competition_id>/entries')
@guarded(Capability.PUBLIC)
def list_entries(competition_id):
    entries = _services().ledger.entries_for(competition_id)
    return jsonify({
        'success': True,
        'count': len(entries),
        'data': [e.to_dict() for e in entries],
    })


@api.post('/competitions/<int:competition_id>/entries')
@guarded(Capability.AUTHENTICATED, Permission.SUBMIT_ENTRY)
def submit_entry(competition_id):
    entry = _services().ledger.submit_entry(g.identity, competition_id, _json_body())
    return jsonify({'success': True, 'data': entry.to_dict()}), 201


@api.post('/entries/<int:entry_id>/votes')
@guarded(Capability.AUTHENTICATED, Permission.CAST_VOTE)
def cast_vote(entry_id):
    result = _services().ledger.cast_vote(g.identity, entry_id)
    body = {'success': True, 'accepted': result.accepted, 'totalVotes': result.total_votes}
    if result.already_voted:
        body['message'] = 'You have already voted for this entry'
    return jsonify(body), 200


@api.get('/entries/<int:entry_id>/votes')
@guarded(Capability.PUBLIC)
def tally(entry_id):
    ledger = _services().ledger
    entry = ledger.get_entry(entry_id)
    return jsonify({'success': True, 'entryId': entry.id, 'totalVotes': ledger.tally(entry.id)})


# -------------------------------------------------------------- errors ---- #

def handle_platform_error(error):
    if error.http_status >= 500:
        logger.error("%s: %s", error.code, error.message, exc_info=error.__cause__)
    else:
        logger.info("%s %s -> %s %s", request.method, request.path, error.http_status, error.code)
    body, status = error.to_response(), error.http_status
    if error.http_status >= 500 and error.__cause__ is not None and _services().settings.is_development:
        body['detail'] = repr(error.__cause__)
    return jsonify(body), status


def handle_http_error(error):
    # Unknown routes, wrong methods, rate limits and the like.
    code = (error.name or 'error').upper().replace(' ', '_')
    return jsonify({'success': False, 'code': code, 'message': error.description}), error.code


def handle_unexpected_error(error):
    logger.exception("Unhandled error on %s %s", request.method, request.path)
    body, status = ServerError().to_response(), ServerError.http_status
    if _services().settings.is_development:
        body['detail'] = repr(error)
        body['stack'] = traceback.format_exc()
    return jsonify(body), status


def register_error_handlers(app):
    app.register_error_handler(PlatformError, handle_platform_error)
    app.register_error_handler(HTTPException, handle_http_error)
    app.register_error_handler(Exception, handle_unexpected_error)
