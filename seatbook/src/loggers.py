from seatbook.src import openobserve
from seatbook.src.schemas import RequestInfo


def logEvent(requestInfo: RequestInfo, data: dict, userId: int | None = None) -> None:
    """
    Log an event to OpenObserve with request and user context.

    Args:
        requestInfo (RequestInfo): Metadata about the current request.
        data (dict): Additional event-specific details to include in the log.
        userId (int | None): Identifier of the acting user, when known.

    Notes:
        - Automatically attaches `_app_id`, `_method` and `_path`.
        - `_user_id` is attached only when a user is provided by the caller.
    """
    logDetails = {
        "_method": requestInfo.method,
        "_path": requestInfo.path,
        "_app_id": requestInfo.app_id,
    }
    if userId is not None:
        logDetails["_user_id"] = userId

    logDetails.update(data)
    openobserve.logEvent(logDetails)


def logEvents(
    requestInfo: RequestInfo, dataList: list[dict], userId: int | None = None
) -> None:
    """Log one event per item in a single OpenObserve request."""
    events = []
    for data in dataList:
        logDetails = {
            "_method": requestInfo.method,
            "_path": requestInfo.path,
            "_app_id": requestInfo.app_id,
        }
        if userId is not None:
            logDetails["_user_id"] = userId
        logDetails.update(data)
        events.append(logDetails)
    openobserve.logEvents(events)
