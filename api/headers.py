"""
Security headers added to every response.

The API only ever returns JSON, so its content policy allows nothing. The
Swagger UI pages load their own scripts and styles and keep the browser
defaults. HSTS is only sent in production, where cookies are Secure.
"""
from flask import request

from .config import is_production

API_CONTENT_SECURITY_POLICY = "default-src 'none'; frame-ancestors 'none'"
DOCS_PATHS = ("/apidocs", "/flasgger_static", "/swagger.json")

BASE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "X-XSS-Protection": "0",
}


def register_security_headers(app):
    hsts = None
    if is_production(app.config):
        hsts = f"max-age={app.config['HSTS_MAX_AGE']}; includeSubDomains"

    @app.after_request
    def add_security_headers(response):
        for name, value in BASE_HEADERS.items():
            response.headers.setdefault(name, value)
        if not request.path.startswith(DOCS_PATHS):
            response.headers.setdefault("Content-Security-Policy", API_CONTENT_SECURITY_POLICY)
        if hsts:
            response.headers.setdefault("Strict-Transport-Security", hsts)
        return response
