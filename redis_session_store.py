"""
Server-side session store
Filesystem backend by default (shared by every worker on one host), Redis for
multi-host production (SESSION_BACKEND=redis), in-memory for tests and local
development (SESSION_BACKEND=memory). All enforce an idle and an absolute timeout.
"""

import os
import redis
import uuid
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from cachelib import FileSystemCache

logger = logging.getLogger(__name__)


def _now_iso(now: datetime) -> str:
    return now.isoformat() + 'Z'


def _parse_iso(value: str) -> datetime:
    return datetime.fromisoformat(value.replace('Z', ''))


class SessionStore:
    """Session store interface"""

    def __init__(self):
        self.idle_minutes = int(os.environ.get('SESSION_IDLE_MIN', 30))
        self.absolute_minutes = int(os.environ.get('SESSION_ABSOLUTE_MINUTES', 1440))

    def create_session(self, user_id: int) -> Dict:
        raise NotImplementedError

    def get_session(self, session_id: str) -> Optional[Dict]:
        """Session data, or None if missing or past the absolute timeout"""
        raise NotImplementedError

    def update_session(self, session_id: str, session_data: Dict) -> None:
        raise NotImplementedError

    def destroy_session(self, session_id: str) -> None:
        raise NotImplementedError

    def destroy_all_user_sessions(self, user_id: int) -> int:
        raise NotImplementedError

    def list_user_sessions(self, user_id: int) -> List[str]:
        raise NotImplementedError

    def _is_expired(self, session_data: Dict, now: datetime) -> bool:
        if now > _parse_iso(session_data['absolute_expires_at']):
            return True
        last_seen = _parse_iso(session_data.get('last_seen', session_data['created_at']))
        return now - last_seen >= timedelta(minutes=self.idle_minutes)

    def _new_session_data(self, user_id: int) -> Dict:
        now = datetime.utcnow()
        return {
            'user_id': user_id,
            'created_at': _now_iso(now),
            'last_seen': _now_iso(now),
            'absolute_expires_at': _now_iso(now + timedelta(minutes=self.absolute_minutes)),
        }


class MemorySessionStore(SessionStore):
    """Process-local store for tests and development; not shared between workers"""

    def __init__(self):
        super().__init__()
        self.sessions = {}
        logger.info("Initialized in-memory session store")

    def create_session(self, user_id: int) -> Dict:
        self._sweep_expired()
        session_id = f"mem_{uuid.uuid4().hex}"
        session_data = self._new_session_data(user_id)
        session_data['session_id'] = session_id
        self.sessions[session_id] = session_data
        logger.info(f"Session created: {session_id} for user {user_id}")
        return dict(session_data)

    def _sweep_expired(self) -> int:
        """Drop sessions past their idle or absolute timeout"""
        now = datetime.utcnow()
        expired = [sid for sid, data in self.sessions.items() if self._is_expired(data, now)]
        for session_id in expired:
            del self.sessions[session_id]
        if expired:
            logger.info(f"Swept {len(expired)} expired sessions")
        return len(expired)

    def get_session(self, session_id: str) -> Optional[Dict]:
        session_data = self.sessions.get(session_id)
        if not session_data:
            return None

        if datetime.utcnow() > _parse_iso(session_data['absolute_expires_at']):
            self.destroy_session(session_id)
            logger.info(f"Session expired (absolute): {session_id}")
            return None

        return dict(session_data)

    def update_session(self, session_id: str, session_data: Dict) -> None:
        if session_id in self.sessions:
            self.sessions[session_id] = dict(session_data)

    def destroy_session(self, session_id: str) -> None:
        session_data = self.sessions.pop(session_id, None)
        if session_data:
            logger.info(f"Session destroyed: {session_id} for user {session_data.get('user_id')}")

    def destroy_all_user_sessions(self, user_id: int) -> int:
        session_ids = self.list_user_sessions(user_id)
        for session_id in session_ids:
            del self.sessions[session_id]
        logger.info(f"Destroyed {len(session_ids)} sessions for user {user_id}")
        return len(session_ids)

    def list_user_sessions(self, user_id: int) -> List[str]:
        return [sid for sid, data in self.sessions.items() if data.get('user_id') == user_id]


class FilesystemSessionStore(SessionStore):
    """
    Session files under SESSION_STORE_DIR via cachelib, so every worker
    process on the host sees the same sessions. Each write resets the file's
    timeout to the idle window; the cache prunes expired files once it grows
    past SESSION_STORE_THRESHOLD entries.
    """

    def __init__(self, cache_dir: str, threshold: int = 10000):
        super().__init__()
        self.cache = FileSystemCache(cache_dir, threshold=threshold, default_timeout=self.idle_minutes * 60)
        logger.info(f"Initialized filesystem session store: dir={cache_dir}, idle={self.idle_minutes}m")

    def _session_key(self, session_id: str) -> str:
        return f"sess:{session_id}"

    def _user_key(self, user_id) -> str:
        return f"user:{user_id}"

    def create_session(self, user_id: int) -> Dict:
        session_id = f"fs_{uuid.uuid4().hex}"
        session_data = self._new_session_data(user_id)
        session_data['session_id'] = session_id

        self.cache.set(self._session_key(session_id), session_data)
        user_sessions = self.list_user_sessions(user_id)
        user_sessions.append(session_id)
        self.cache.set(self._user_key(user_id), user_sessions, timeout=self.absolute_minutes * 60)

        logger.info(f"Filesystem session created: {session_id} for user {user_id}")
        return dict(session_data)

    def get_session(self, session_id: str) -> Optional[Dict]:
        session_data = self.cache.get(self._session_key(session_id))
        if not session_data:
            return None

        if datetime.utcnow() > _parse_iso(session_data['absolute_expires_at']):
            self.destroy_session(session_id)
            logger.info(f"Filesystem session expired (absolute): {session_id}")
            return None

        return dict(session_data)

    def update_session(self, session_id: str, session_data: Dict) -> None:
        if self.cache.has(self._session_key(session_id)):
            self.cache.set(self._session_key(session_id), dict(session_data))

    def destroy_session(self, session_id: str) -> None:
        session_data = self.cache.get(self._session_key(session_id))
        self.cache.delete(self._session_key(session_id))
        if session_data:
            user_id = session_data.get('user_id')
            remaining = [sid for sid in self.list_user_sessions(user_id) if sid != session_id]
            self.cache.set(self._user_key(user_id), remaining, timeout=self.absolute_minutes * 60)
            logger.info(f"Filesystem session destroyed: {session_id} for user {user_id}")

    def destroy_all_user_sessions(self, user_id: int) -> int:
        session_ids = self.list_user_sessions(user_id)
        for session_id in session_ids:
            self.cache.delete(self._session_key(session_id))
        self.cache.delete(self._user_key(user_id))
        logger.info(f"Filesystem destroyed {len(session_ids)} sessions for user {user_id}")
        return len(session_ids)

    def list_user_sessions(self, user_id: int) -> List[str]:
        """Live session ids; entries whose file has expired are skipped"""
        session_ids = self.cache.get(self._user_key(user_id)) or []
        return [sid for sid in session_ids if self.cache.has(self._session_key(sid))]


class RedisSessionStore(SessionStore):
    """Redis hashes under coachfit:sess:<id>, indexed per user"""

    KEY_PREFIX = 'coachfit:sess'

    def __init__(self, redis_url: str):
        super().__init__()
        self.redis_client = redis.from_url(redis_url, decode_responses=True)
        self.redis_client.ping()
        logger.info(f"Initialized Redis session store: idle={self.idle_minutes}m, absolute={self.absolute_minutes}m")

    def _session_key(self, session_id: str) -> str:
        return f"{self.KEY_PREFIX}:{session_id}"

    def _user_key(self, user_id) -> str:
        return f"{self.KEY_PREFIX}:user:{user_id}"

    def create_session(self, user_id: int) -> Dict:
        session_id = f"redis_{uuid.uuid4().hex}"
        session_data = self._new_session_data(user_id)

        pipe = self.redis_client.pipeline()
        pipe.hset(self._session_key(session_id), mapping={k: str(v) for k, v in session_data.items()})
        # Redis TTL backs up the idle check done in the app
        pipe.expire(self._session_key(session_id), self.idle_minutes * 60)
        pipe.sadd(self._user_key(user_id), session_id)
        pipe.expire(self._user_key(user_id), self.absolute_minutes * 60)
        pipe.execute()

        session_data['session_id'] = session_id
        logger.info(f"Redis session created: {session_id} for user {user_id}")
        return session_data

    def get_session(self, session_id: str) -> Optional[Dict]:
        try:
            session_data = self.redis_client.hgetall(self._session_key(session_id))
            if not session_data:
                return None

            if datetime.utcnow() > _parse_iso(session_data['absolute_expires_at']):
                self.destroy_session(session_id)
                logger.info(f"Redis session expired (absolute): {session_id}")
                return None

            session_data['user_id'] = int(session_data['user_id'])
            session_data['session_id'] = session_id
            return session_data

        except (redis.RedisError, ValueError, KeyError) as e:
            logger.error(f"Redis session get error: {e}")
            return None

    def update_session(self, session_id: str, session_data: Dict) -> None:
        key = self._session_key(session_id)
        try:
            pipe = self.redis_client.pipeline()
            pipe.hset(key, mapping={k: str(v) for k, v in session_data.items() if v is not None})
            pipe.expire(key, self.idle_minutes * 60)
            pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Redis session update error: {e}")

    def destroy_session(self, session_id: str) -> None:
        key = self._session_key(session_id)
        try:
            user_id = self.redis_client.hget(key, 'user_id')
            pipe = self.redis_client.pipeline()
            pipe.delete(key)
            if user_id:
                pipe.srem(self._user_key(user_id), session_id)
            pipe.execute()
            logger.info(f"Redis session destroyed: {session_id} for user {user_id}")
        except redis.RedisError as e:
            logger.error(f"Redis session destroy error: {e}")

    def destroy_all_user_sessions(self, user_id: int) -> int:
        try:
            session_ids = self.redis_client.smembers(self._user_key(user_id))
            if not session_ids:
                return 0

            pipe = self.redis_client.pipeline()
            for session_id in session_ids:
                pipe.delete(self._session_key(session_id))
            pipe.delete(self._user_key(user_id))
            pipe.execute()

            logger.info(f"Redis destroyed {len(session_ids)} sessions for user {user_id}")
            return len(session_ids)

        except redis.RedisError as e:
            logger.error(f"Redis destroy all sessions error: {e}")
            return 0

    def list_user_sessions(self, user_id: int) -> List[str]:
        try:
            return list(self.redis_client.smembers(self._user_key(user_id)))
        except redis.RedisError as e:
            logger.error(f"Redis list sessions error: {e}")
            return []


def _filesystem_store() -> SessionStore:
    cache_dir = os.environ.get('SESSION_STORE_DIR', '/tmp/coachfit_session_store')
    threshold = int(os.environ.get('SESSION_STORE_THRESHOLD', 10000))
    return FilesystemSessionStore(cache_dir, threshold=threshold)


def get_session_store() -> SessionStore:
    """
    Pick the backend from SESSION_BACKEND (filesystem, redis or memory).
    Redis problems fall back to the filesystem store.
    """
    backend = os.environ.get('SESSION_BACKEND', 'filesystem').lower()

    if backend == 'memory':
        logger.warning("Using in-memory session store; sessions are not shared between workers")
        return MemorySessionStore()

    if backend != 'redis':
        return _filesystem_store()

    redis_url = os.environ.get('REDIS_URL')
    if not redis_url:
        logger.warning("SESSION_BACKEND=redis but REDIS_URL not set, falling back to filesystem store")
        return _filesystem_store()

    try:
        return RedisSessionStore(redis_url)
    except Exception as e:
        logger.error(f"Failed to initialize Redis session store: {e}")
        logger.warning("Falling back to filesystem session store")
        return _filesystem_store()
