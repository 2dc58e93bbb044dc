import base64, json, requests
from logging import getLogger
from requests import Response

from seatbook.src.constants import (
    OPENOBSERVE_HOST,
    OPENOBSERVE_ORG,
    OPENOBSERVE_PASSWORD,
    OPENOBSERVE_PORT,
    OPENOBSERVE_PROTOCOL,
    OPENOBSERVE_STREAM,
    OPENOBSERVE_USERNAME,
)

# Prepare Basic Auth credentials
credentials = base64.b64encode(
    bytes(OPENOBSERVE_USERNAME + ":" + OPENOBSERVE_PASSWORD, "utf-8")
).decode("utf-8")

# Default headers for all requests
headers = {"Content-type": "application/json", "Authorization": "Basic " + credentials}

# Construct OpenObserve endpoint URL
openobserve_host = f"{OPENOBSERVE_PROTOCOL}://{OPENOBSERVE_HOST}:{OPENOBSERVE_PORT}"
openobserve_url = f"{openobserve_host}/api/{OPENOBSERVE_ORG}/{OPENOBSERVE_STREAM}/_json"

logger = getLogger("uvicorn.error")


def _ingest(payload) -> Response | None:
    try:
        response = requests.post(
            openobserve_url,
            headers=headers,
            data=json.dumps(payload, default=str),
            timeout=5,
        )
    except requests.RequestException as e:
        logger.warning("OpenObserve ingestion failed: %s", e)
        return None
    if not response.ok:
        logger.warning(
            "OpenObserve rejected event (%s): %s", response.status_code, response.text
        )
    return response


def logEvent(eventData: dict) -> Response | None:
    """
    Send an event log to the configured OpenObserve instance.

    This function serializes the given event data as JSON and sends it
    to the OpenObserve API using HTTP POST with Basic authentication.

    Args:
        eventData (dict): A dictionary representing the event log to be sent.
            Example:
                {
                    "_method": "POST",
                    "_path": "/operator/tickets/counter",
                    "_app_id": 1,
                    "_user_id": 7
                }

    Returns:
        requests.Response | None: The HTTP response returned by the OpenObserve API,
        or None when the instance could not be reached.
    """
    return _ingest(eventData)


def logEvents(events: list[dict]) -> Response | None:
    """Send several events in a single ingestion request."""
    if not events:
        return None
    return _ingest(events)
