from flask import jsonify


def respond_error(message_or_dict, status=400, code=None):
    """Return a standardized error response."""
    if isinstance(message_or_dict, dict):
        body = {'success': False, 'errors': message_or_dict}
    else:
        body = {'success': False, 'error': message_or_dict}
    if code:
        body['code'] = code
    return jsonify(body), status


def respond_success(payload=None, status=200):
    if payload is None:
        payload = {}
    body = {'success': True}
    if isinstance(payload, dict):
        body.update(payload)
    else:
        body['data'] = payload
    return jsonify(body), status


def parse_limit(args, default_limit=50, max_limit=200):
    """Read ?limit= from request args; raises ValueError on bad input."""
    raw = args.get('limit')
    if raw is None:
        return default_limit
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        raise ValueError('limit must be an integer')
    if limit < 1 or limit > max_limit:
        raise ValueError(f'limit must be between 1 and {max_limit}')
    return limit
