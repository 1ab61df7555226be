"""
Production entry point.

Serves the built client from STATIC_DIST_DIR on the public PORT (SPA routes
fall back to index.html) and forwards /api/* to the application server,
which runs as a child process on INTERNAL_PORT. The child's stdout and
stderr are relayed into this process's log.
"""
import logging
import os
import subprocess
import sys
import threading

import requests
from flask import Flask, Response, jsonify, request, send_from_directory

from .config import Config

logger = logging.getLogger(__name__)

PROXY_METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS', 'HEAD']
PROXY_TIMEOUT = 600  # TTS requests can take minutes

# Per-connection headers that must not be forwarded, plus the ones requests
# already resolved while decoding the upstream body
EXCLUDED_HEADERS = {
    'connection', 'keep-alive', 'proxy-authenticate', 'proxy-authorization',
    'te', 'trailers', 'transfer-encoding', 'upgrade', 'host',
    'content-encoding', 'content-length',
}


def _forward_headers(headers):
    return {key: value for key, value in headers.items() if key.lower() not in EXCLUDED_HEADERS}


def create_proxy_app(static_dir, internal_url, timeout=PROXY_TIMEOUT):
    static_dir = os.path.abspath(static_dir)
    internal_url = internal_url.rstrip('/')
    app = Flask(__name__, static_folder=None)

    @app.route('/api', defaults={'path': ''}, methods=PROXY_METHODS)
    @app.route('/api/<path:path>', methods=PROXY_METHODS)
    def proxy_api(path):
        url = f"{internal_url}/api/{path}" if path else f"{internal_url}/api"
        try:
            upstream = requests.request(
                request.method,
                url,
                params=request.args,
                data=request.get_data(),
                headers=_forward_headers(request.headers),
                allow_redirects=False,
                timeout=timeout,
            )
        except requests.RequestException as e:
            logger.error(f"[PROXY] {request.method} {url} failed: {e}")
            return jsonify({'success': False, 'error': 'Application server unavailable'}), 502
        return Response(upstream.content, status=upstream.status_code,
                        headers=_forward_headers(upstream.headers))

    @app.route('/', defaults={'path': ''})
    @app.route('/<path:path>')
    def serve_client(path):
        if path and os.path.isfile(os.path.join(static_dir, path)):
            return send_from_directory(static_dir, path)
        return send_from_directory(static_dir, 'index.html')

    return app


def _relay(stream, log, prefix):
    for line in iter(stream.readline, ''):
        log(f"{prefix}{line.rstrip()}")
    stream.close()


def spawn_app_process(port, command=None):
    """Start the application server on ``port`` and relay its output."""
    command = command or [sys.executable, '-m', 'voicetext.app']
    env = dict(os.environ, PORT=str(port))
    process = subprocess.Popen(
        command,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=env,
        text=True,
        bufsize=1,
    )
    for stream, log, prefix in (
        (process.stdout, logger.info, 'App: '),
        (process.stderr, logger.error, 'App Error: '),
    ):
        threading.Thread(target=_relay, args=(stream, log, prefix), daemon=True).start()
    logger.info(f"[PROXY] Application server started (pid {process.pid}) on port {port}")
    return process


def main():
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    internal_port = Config.INTERNAL_PORT
    process = spawn_app_process(internal_port)
    app = create_proxy_app(Config.STATIC_DIST_DIR, f'http://127.0.0.1:{internal_port}')
    print(f"Production server running on port {Config.PORT}")
    try:
        app.run(host='0.0.0.0', port=Config.PORT)
    finally:
        process.terminate()


if __name__ == '__main__':
    main()
