import os
import time
import logging
from typing import Dict, Tuple

import psycopg2
import redis
import requests

from config import DATABASE_URL, LOG_LEVEL, REDIS_HOST, REDIS_PORT

logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("HealthMonitor")


API_URL = os.getenv("API_URL", "http://backend:8000").rstrip("/")
CHECK_INTERVAL = int(os.getenv("HEALTH_CHECK_INTERVAL", "60"))


def check_http_service(name: str, url: str, timeout: float = 5.0) -> Tuple[bool, str]:
    try:
        resp = requests.get(url, timeout=timeout)
        if resp.ok:
            return True, f"{name}: OK ({resp.status_code})"
        return False, f"{name}: FAIL ({resp.status_code})"
    except requests.RequestException as e:
        return False, f"{name}: ERROR ({e})"


def check_api() -> Tuple[bool, str]:
    return check_http_service("api /health", f"{API_URL}/health")


def check_cache_via_api() -> Tuple[bool, str]:
    try:
        resp = requests.get(f"{API_URL}/cache/info", timeout=5.0)
        resp.raise_for_status()
        cache_status = resp.json().get("status")
    except (requests.RequestException, ValueError) as e:
        return False, f"api /cache/info: ERROR ({e})"

    if cache_status == "available":
        return True, "api /cache/info: OK"
    return False, f"api /cache/info: cache {cache_status}"


def check_database() -> Tuple[bool, str]:
    try:
        conn = psycopg2.connect(DATABASE_URL)
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
            cur.fetchone()
        conn.close()
        return True, "postgres: OK"
    except psycopg2.Error as e:
        return False, f"postgres: ERROR ({e})"


def check_redis() -> Tuple[bool, str]:
    try:
        r = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, decode_responses=True, socket_connect_timeout=5)
        r.ping()
        return True, "redis: OK"
    except redis.RedisError as e:
        return False, f"redis: ERROR ({e})"


CHECKS = {
    "api": check_api,
    "cache_via_api": check_cache_via_api,
    "database": check_database,
    "redis": check_redis,
}


def monitor_all_services(checks=None) -> Dict[str, bool]:
    checks = checks or CHECKS

    results: Dict[str, bool] = {}
    logger.info("=" * 60)
    logger.info("Health check results:")

    for name, func in checks.items():
        ok, message = func()
        results[name] = ok
        if ok:
            logger.info(f"[OK ] {message}")
        else:
            logger.warning(f"[FAIL] {message}")

    logger.info("=" * 60)
    return results


if __name__ == "__main__":
    logger.info("Health Monitor Service Started")
    logger.info("Waiting 15 seconds before first check to let services start...")
    time.sleep(15)

    logger.info(f"Checking services every {CHECK_INTERVAL} seconds...")

    while True:
        try:
            monitor_all_services()
        except Exception as e:
            logger.error(f"Error during monitoring: {e}")
        logger.info(f"Next check in {CHECK_INTERVAL} seconds...")
        time.sleep(CHECK_INTERVAL)
