import logging
import threading
import time

import schedule
from dotenv import load_dotenv

from config import config_fingerprint, get_collections, get_settings, load_config
from constants import ALL
from devops.errors import DevOpsError
from workload import AggregationRequest, DelayStatus, aggregate_workload

load_dotenv()

_last_fingerprint = None


def check_config_change(on_change) -> bool:
    """Reload the config and call ``on_change`` if the collections changed.

    The first check always counts as a change so the initial load happens as
    soon as a complete collection is configured.
    """
    global _last_fingerprint
    load_config.cache_clear()
    fingerprint = config_fingerprint()
    if fingerprint == _last_fingerprint:
        return False
    _last_fingerprint = fingerprint
    if not get_collections():
        logging.warning("No complete collection configured; skipping refresh")
        return True
    on_change()
    return True


def log_workload_summary():
    """Aggregate every project and team and log each member's open count."""
    request = AggregationRequest.from_settings(get_collections(), ALL, ALL, get_settings())
    try:
        workload = aggregate_workload(request)
    except DevOpsError as e:
        logging.error("Workload refresh failed: %s", e)
        return
    for member, entry in sorted(workload.items(), key=lambda x: x[1].total, reverse=True):
        delayed = sum(1 for item in entry.items if item.delay_status == DelayStatus.DELAYED)
        logging.info("%s: %d open, %d delayed", member, entry.total, delayed)


def schedule_refresh(on_change, minutes=None):
    minutes = minutes or get_settings()["refresh_minutes"]
    return schedule.every(minutes).minutes.do(check_config_change, on_change)


def run_pending_forever():
    while True:
        schedule.run_pending()
        time.sleep(1)


def start_background_refresh(on_change):
    """Check for config changes now and then on a schedule in a daemon thread."""
    check_config_change(on_change)
    schedule_refresh(on_change)
    thread = threading.Thread(target=run_pending_forever, daemon=True)
    thread.start()
    return thread


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    check_config_change(log_workload_summary)
    schedule_refresh(log_workload_summary)
    run_pending_forever()
