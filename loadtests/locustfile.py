"""FoodRun Load Testing — Locust entry point.

Discovers all user classes from the scenarios package.

Usage:
    # All scenarios (web UI):
    locust -f loadtests/locustfile.py

    # Order journeys only:
    locust -f loadtests/locustfile.py DeliveryUser

    # Headless (CI mode):
    locust -f loadtests/locustfile.py DeliveryUser --headless \
           -u 50 -r 5 -t 300s --csv=results/loadtest
"""

import logging
import time

import requests
from locust import events

# Import all user classes so Locust discovers them
from loadtests.helpers.response import extract_error_detail
from loadtests.scenarios.delivery import DeliveryUser  # noqa: F401
from loadtests.scenarios.stress import CourierPingUser, OrderFloodUser  # noqa: F401

logger = logging.getLogger("loadtest")


@events.request.add_listener
def on_request(request_type, name, response, exception, **_kw):
    """Log error details for every failed request."""
    if exception:
        logger.error("[EXCEPTION] %s %s: %s", request_type, name, exception)
    elif response is not None and response.status_code >= 400:
        detail = extract_error_detail(response)
        logger.error("[%s] %s %s: %s", response.status_code, request_type, name, detail)


@events.test_start.add_listener
def on_test_start(environment, **_kwargs):
    print(f"\n[LOADTEST] Started at {time.strftime('%H:%M:%S')}")
    print(f"[LOADTEST] Target host: {environment.host}")
    print()


@events.test_stop.add_listener
def on_test_stop(environment, **_kwargs):
    """Print the realtime bus metrics when the test ends."""
    print(f"\n[LOADTEST] Stopped at {time.strftime('%H:%M:%S')}")
    try:
        resp = requests.get(f"{environment.host}/realtime/metrics", timeout=5)
        data = resp.json().get("data", {})
        print("[LOADTEST] Realtime bus:")
        for key in ("connected_clients", "events_published", "delivery_failures"):
            print(f"  {key}: {data.get(key)}")
        print()
    except requests.RequestException as e:
        print(f"[LOADTEST] Could not fetch realtime metrics: {e}\n")
