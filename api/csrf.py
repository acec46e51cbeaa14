from flask import Blueprint, current_app, request

bp = Blueprint("csrf", __name__)


@bp.get("/csrf-token")
def csrf_token():
    """
    Issue a CSRF token and set the secret cookie it is bound to
    ---
    tags:
      - CSRF
    responses:
      200:
        description: Echo csrfToken in the X-CSRF-Token header (or a csrf_token body field) on POST requests
        schema:
          type: object
          properties:
            csrfToken:
              type: string
    """
    response = current_app.response_class(status=200, mimetype="application/json")
    token = current_app.extensions["csrf_guard"].generate_token(response, request)
    response.set_data(current_app.json.dumps({"csrfToken": token}))
    return response
