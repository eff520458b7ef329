"""View invalidation after successful mutations.

Each application keeps a registry of admin views and the instant they were
last invalidated; readers compare that against what they rendered.  When a
``REVALIDATE_WEBHOOK_URL`` is configured the paths are also pushed to it so
a front end cache can drop them; that push runs on its own thread so a slow
webhook never holds up the response.
"""
from __future__ import annotations

import logging
import random
import threading
import time
from typing import Any, Dict, Iterable, Optional

import requests
from flask import Blueprint, current_app, has_app_context, jsonify, request

from poolcrm.timeutils import to_iso, utcnow

logger = logging.getLogger(__name__)

bp = Blueprint('views', __name__)

EXTENSION_KEY = 'poolcrm_views'
MAX_TRIES = 3


class ViewRegistry:
    """Path -> last invalidation instant, safe to share between threads."""

    def __init__(self) -> None:
        self._stale: Dict[str, Any] = {}
        self.lock = threading.Lock()

    def invalidate(self, path: str):
        now = utcnow()
        with self.lock:
            self._stale[path] = now
        return now

    def last_invalidated(self, path: str):
        with self.lock:
            return self._stale.get(path)

    def snapshot(self) -> Dict[str, Any]:
        with self.lock:
            return dict(self._stale)


class RevalidationClient:
    def __init__(self, url: str, secret: str = '', timeout: int = 5,
                 sleep=time.sleep) -> None:
        self.url = url
        self.timeout = timeout
        self.sleep = sleep
        self.session = requests.Session()
        self.session.headers.update({'Accept': 'application/json'})
        if secret:
            self.session.headers['X-Revalidate-Secret'] = secret

    def post(self, paths: Iterable[str]) -> bool:
        """POST the paths, retrying network errors, 429 and 5xx.

        Returns ``False`` instead of raising once retries are exhausted.
        """
        body = {'paths': list(paths)}
        tries = 0
        while True:
            try:
                r = self.session.post(self.url, json=body, timeout=self.timeout)
            except requests.RequestException as e:
                tries += 1
                if tries >= MAX_TRIES:
                    logger.warning('Revalidation webhook unreachable: %s', e)
                    return False
                self.sleep(min(2 ** tries, 30) + random.random())
                continue
            if r.status_code == 429 or r.status_code >= 500:
                tries += 1
                if tries >= MAX_TRIES:
                    logger.warning('Revalidation webhook failed with HTTP %s', r.status_code)
                    return False
                self.sleep(min(2 ** tries, 30) + random.random())
                continue
            if r.status_code >= 400:
                logger.warning('Revalidation webhook rejected %s: HTTP %s', body['paths'], r.status_code)
                return False
            return True


def init_views(app) -> None:
    app.extensions[EXTENSION_KEY] = ViewRegistry()
    url = app.config.get('REVALIDATE_WEBHOOK_URL')
    app.extensions[EXTENSION_KEY + '_client'] = (
        RevalidationClient(
            url,
            secret=app.config.get('REVALIDATE_SECRET') or '',
            timeout=app.config.get('REVALIDATE_TIMEOUT', 5),
        )
        if url else None
    )


def get_registry() -> ViewRegistry:
    return current_app.extensions[EXTENSION_KEY]


def get_client() -> Optional[RevalidationClient]:
    return current_app.extensions.get(EXTENSION_KEY + '_client')


def _start_background(client: RevalidationClient, paths) -> threading.Thread:
    def runner():
        try:
            client.post(paths)
        except Exception:
            logger.exception('Revalidation webhook error for %s', paths)

    thread = threading.Thread(target=runner, name='revalidate', daemon=False)
    thread.start()
    return thread


def revalidate_paths(*paths: str) -> Optional[threading.Thread]:
    """Mark ``paths`` stale and push them to the webhook off the request path.

    Returns the webhook thread, or ``None`` when no webhook is configured.
    """
    if not has_app_context():
        return None
    registry = get_registry()
    for path in paths:
        registry.invalidate(path)
    client = get_client()
    if client is None:
        return None
    return _start_background(client, list(paths))


def revalidate_path(path: str) -> Optional[threading.Thread]:
    return revalidate_paths(path)


@bp.route('/')
def view_status():
    path = request.args.get('path', '').strip()
    if not path:
        return jsonify(success=True, data={
            p: to_iso(ts) for p, ts in sorted(get_registry().snapshot().items())
        })
    ts = get_registry().last_invalidated(path)
    return jsonify(success=True, data={'path': path, 'invalidated_at': to_iso(ts)})
