"""Health check endpoint."""

from http.server import BaseHTTPRequestHandler
import json

from hobbly.utils.catalog_config import CatalogConfig


def health_payload() -> dict:
    """Liveness plus whether the Supabase settings are present (never their values)."""
    return {
        "status": "ok",
        "service": "hobbly-catalog",
        "supabase_configured": bool(CatalogConfig.SUPABASE_URL and CatalogConfig.SUPABASE_KEY),
        "tag_resolution_policy": CatalogConfig.TAG_RESOLUTION_POLICY,
    }


class handler(BaseHTTPRequestHandler):
    """Health check handler for Vercel serverless function."""

    def do_GET(self):
        """Handle GET request."""
        self.send_response(200)
        self.send_header('Content-Type', 'application/json')
        self.end_headers()
        self.wfile.write(json.dumps(health_payload()).encode('utf-8'))

    def do_POST(self):
        """Handle POST request (same as GET for health check)."""
        self.do_GET()
