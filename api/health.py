"""Health check endpoint."""

from http.server import BaseHTTPRequestHandler
import json

from src.utils.config import get_gateway_url


class handler(BaseHTTPRequestHandler):
    """Health check handler; reports the configured Gateway endpoint alongside liveness."""

    def do_GET(self):
        """Handle GET request."""
        self.send_response(200)
        self.send_header('Content-Type', 'application/json')
        self.end_headers()
        response = json.dumps({
            "status": "ok",
            "service": "mission-control-orchestrator",
            "gateway_url": get_gateway_url(),
        })
        self.wfile.write(response.encode('utf-8'))

    def do_POST(self):
        """Handle POST request (same as GET for health check)."""
        self.do_GET()
