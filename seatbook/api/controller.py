from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from seatbook.api import bus, seat, route, trip, ticket, public
from seatbook.src import exceptions
from seatbook.src.enums import AppID


# ------------------------------------------------------
# Error envelopes
# ------------------------------------------------------
async def httpExceptionHandler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(exceptions.errorEnvelope(exc)),
        headers=exc.headers,
    )


async def validationExceptionHandler(request: Request, exc: RequestValidationError):
    error = exceptions.PydanticError(detail=jsonable_encoder(exc.errors()))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=exceptions.errorEnvelope(error),
        headers=error.headers,
    )


def addErrorHandlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, httpExceptionHandler)
    app.add_exception_handler(RequestValidationError, validationExceptionHandler)


# ------------------------------------------------------
# Create separate FastAPI apps for each user domain
# ------------------------------------------------------
app_operator = FastAPI(title="Operator APP")
app_public = FastAPI(title="Public APP")

app_operator.state.id = AppID.OPERATOR
app_public.state.id = AppID.PUBLIC

addErrorHandlers(app_operator)
addErrorHandlers(app_public)


# ------------------------------------------------------
# Operator routers
# ------------------------------------------------------
app_operator.include_router(bus.route_operator)
app_operator.include_router(seat.route_operator)
app_operator.include_router(route.route_operator)
app_operator.include_router(trip.route_operator)
app_operator.include_router(ticket.route_operator)


# ------------------------------------------------------
# Public routers
# ------------------------------------------------------
app_public.include_router(public.route_public)
