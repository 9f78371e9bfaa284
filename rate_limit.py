# In-memory failed-login limiter, keyed by IP and by IP+email
import time
import os
import hashlib
import logging
from collections import defaultdict, deque

logger = logging.getLogger(__name__)


class LoginRateLimiter:
    def __init__(self):
        self.buckets = defaultdict(deque)
        self.enabled = os.environ.get('LOGIN_RATELIMIT_ENABLED', '1') == '1'
        self.max_fails = int(os.environ.get('LOGIN_RATELIMIT_MAX_FAILS', '5'))
        self.window_sec = int(os.environ.get('LOGIN_RATELIMIT_WINDOW_SEC', '60'))

    def _get_client_ip(self, request):
        forwarded = request.headers.get('X-Forwarded-For')
        return forwarded.split(',')[0].strip() if forwarded else (request.remote_addr or 'unknown')

    def _keys(self, request, email):
        client_ip = self._get_client_ip(request)
        # Emails never reach the bucket keys in clear text
        email_hash = hashlib.sha256(email.lower().encode()).hexdigest()[:16]
        return [('ip', f"ip::{client_ip}"), ('ipuser', f"ipuser::{client_ip}::{email_hash}")]

    def _cleanup_bucket(self, bucket):
        cutoff = time.time() - self.window_sec
        while bucket and bucket[0] < cutoff:
            bucket.popleft()

    def check_rate_limit(self, request, email):
        """Seconds until retry when limited, otherwise None"""
        if not self.enabled:
            return None

        for key_type, key in self._keys(request, email):
            bucket = self.buckets[key]
            self._cleanup_bucket(bucket)
            if len(bucket) >= self.max_fails:
                retry_after = max(1, int(bucket[0] + self.window_sec - time.time()))
                self._emit_diagnostic('hit', key_type, len(bucket))
                return retry_after
        return None

    def record_failed_attempt(self, request, email):
        if not self.enabled:
            return

        now = time.time()
        for key_type, key in self._keys(request, email):
            bucket = self.buckets[key]
            self._cleanup_bucket(bucket)
            bucket.append(now)
            self._emit_diagnostic('recorded_fail', key_type, len(bucket))

    def clear_user_bucket(self, request, email):
        if not self.enabled:
            return

        key_type, key = self._keys(request, email)[1]
        if self.buckets.pop(key, None) is not None:
            self._emit_diagnostic('cleared_on_success', key_type, 0)

    def _emit_diagnostic(self, event, key_type, hits):
        logger.info(f"login_rate_limit event={event} key_type={key_type} window={self.window_sec} max_fails={self.max_fails} hits={hits}")


login_rate_limiter = LoginRateLimiter()
