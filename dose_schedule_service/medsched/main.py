from fastapi import FastAPI
from medsched.core.logging_config import configure_logging
from medsched.api.routes_schedule import router as schedule_router
from medsched.api.routes_today import router as today_router

configure_logging()

app = FastAPI(title="Dose Schedule Service", version="1.0")

app.include_router(schedule_router)
app.include_router(today_router)

@app.get("/health")
def health():
    return {"ok": True}
@app.get("/")
def root():
    return {"ok": True, "service": "Dose Schedule Service"}
