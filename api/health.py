from flask import Blueprint

from utils.decorators import current_services

bp = Blueprint("health", __name__)

VERSION = "1.0.0"


@bp.get("/health")
def health():
    """
    Health check
    ---
    tags:
      - Health
    responses:
      200:
        description: API is up
        schema:
          type: object
          properties:
            status:
              type: string
              example: ok
            version:
              type: string
              example: 1.0.0
            sweeper:
              type: boolean
    """
    return {"status": "ok", "version": VERSION, "sweeper": current_services().sweeper.running}, 200
