from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from seatbook.src import schemas
from seatbook.src.constants import API_TITLE, API_VERSION
from seatbook.api.controller import addErrorHandlers, app_operator, app_public


app = FastAPI(title=API_TITLE, version=API_VERSION)
addErrorHandlers(app)

origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/operator", app_operator, "Operator API")
app.mount("/public", app_public, "Public API")


# Health check endpoint
@app.get("/health", tags=["Health Check"], response_model=schemas.HealthStatus)
async def health_check():
    return {"status": "OK", "version": API_VERSION}
