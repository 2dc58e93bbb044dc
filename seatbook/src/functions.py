from typing import List, Type, Dict, Any

from seatbook.src import schemas
from seatbook.src.exceptions import APIException


def makeExceptionResponses(exceptions: List[Type[APIException]]) -> Dict[int, dict]:
    """
    Generate OpenAPI response documentation from a list of APIException classes.

    Exceptions sharing a status code are fused into a single response entry
    with one example per exception.

    Args:
        exceptions (List[Type[APIException]]): Exception classes raised by the endpoint.

    Returns:
        Dict[int, dict]: A dictionary of OpenAPI response specs grouped by status code.

    Example:
        >>> makeExceptionResponses([exceptions.SeatInUse, exceptions.InvalidIdentifier])
        {409: {...}, 404: {...}}
    """
    responses = {}

    for exception in exceptions:
        status_code = exception.status_code
        example_key = exception.__name__
        errorKind = (exception.headers or {}).get("X-Error", example_key)
        example_value = {
            "summary": errorKind,
            "value": {
                "success": False,
                "data": {"errorKind": errorKind},
                "message": exception.detail,
            },
        }

        if status_code not in responses:
            responses[status_code] = {
                "model": schemas.ErrorResponse,
                "content": {
                    "application/json": {"examples": {example_key: example_value}}
                },
            }
        else:
            responses[status_code]["content"]["application/json"]["examples"][
                example_key
            ] = example_value

    return responses


def enumStr(enumClass) -> str:
    """
    Convert an Enum class into a comma-separated string of its members.

    Each enum member is formatted as "<NAME>: <VALUE>".

    Example:
        >>> enumStr(SeatStatus)
        'AVAILABLE: 1, BOOKED: 2, HIDDEN: 3'
    """
    return ", ".join(f"{x.name}: {x.value}" for x in enumClass)


def isValidTransition(
    transitions: dict[Any, list[Any]], old_state: Any, new_state: Any
) -> bool:
    """
    Check if a state transition is valid.

    Args:
        transitions (dict[Any, list[Any]]): Mapping of valid transitions.
            Example:
                {
                    TicketStatus.PENDING: [TicketStatus.COMPLETED],
                    TicketStatus.COMPLETED: [TicketStatus.CANCELLED],
                }
        old_state (Any): Current state value.
        new_state (Any): Desired new state value.

    Returns:
        bool: True if transition is valid, False otherwise.

    Notes:
        - If `old_state` is not in the transitions mapping, this will return False.
        - Terminal states are simply absent from the mapping.
    """
    if not transitions:
        return False
    if old_state not in transitions:
        return False
    return new_state in transitions[old_state]


def updateIfChanged(
    targetObj, sourceObj, fields: List[str], nullable: List[str] = ()
) -> None:
    """
    Update attributes on a target object from a source object
    only if the values differ and the new value is not None.

    Designed for use with SQLAlchemy models, where `fields` are typically
    provided as `Model.field.key`.

    Fields listed in `nullable` are also cleared when the source is a
    pydantic model that explicitly sets them to None.

    Example:
        >>> updateIfChanged(
        ...     seat,
        ...     item,
        ...     [Seat.seat_type.key, Seat.is_hidden.key, Seat.price_override.key],
        ...     nullable=[Seat.price_override.key],
        ... )
        # seat will be updated where values differ; unchanged fields are skipped silently
    """
    fieldsSet = getattr(sourceObj, "model_fields_set", set())
    for field in fields:
        new_value = getattr(sourceObj, field, None)
        if new_value is None and not (field in nullable and field in fieldsSet):
            continue
        old_value = getattr(targetObj, field)
        if old_value != new_value:
            setattr(targetObj, field, new_value)


def makeEnvelope(data: Any = None, message: str | None = None) -> dict:
    """Wrap a successful result in the `{success, data, message}` envelope."""
    envelope = {"success": True, "data": data}
    if message is not None:
        envelope["message"] = message
    return envelope
